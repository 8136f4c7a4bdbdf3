import json
from unittest import IsolatedAsyncioTestCase
from unittest.mock import AsyncMock

import httpx

from pickup_svc.schemas import UserProfile
from pickup_svc.services.identity import (
    MOCK_PARENT, BearerIdentityProvider, HttpUserDirectory, MockIdentityProvider, StaticUserDirectory, UserDirectory,
)

PROFILE = {
    "id": "u42",
    "email": "ada@example.com",
    "name": "Ada Parent",
    "students": [{"id": "s1", "name": "Bo Parent", "grade": "K", "schoolId": "school-1"}],
}


class MockIdentityTests(IsolatedAsyncioTestCase):
    async def test_mock_parent(self):
        identity = MockIdentityProvider()
        user = await identity.get_current_user()
        self.assertEqual(user.id, "mock-user-123")
        self.assertEqual(user.student("student-1").name, "Jane Doe")
        self.assertTrue((await identity.get_auth_token()).startswith("mock-auth-token-"))

    async def test_sign_out(self):
        identity = MockIdentityProvider()
        await identity.sign_out()
        self.assertIsNone(await identity.get_current_user())
        self.assertIsNone(await identity.get_auth_token())


class BearerIdentityTests(IsolatedAsyncioTestCase):
    async def test_profile_from_directory(self):
        directory = StaticUserDirectory([UserProfile.model_validate(PROFILE)])
        identity = BearerIdentityProvider({"sub": "u42"}, "raw.jwt", directory)
        user = await identity.get_current_user()
        self.assertEqual(user.name, "Ada Parent")
        self.assertEqual(await identity.get_auth_token(), "raw.jwt")

    async def test_falls_back_to_claims(self):
        identity = BearerIdentityProvider(
            {"sub": 7, "email": "x@example.com", "name": "Claim Name"}, "raw.jwt", StaticUserDirectory(),
        )
        user = await identity.get_current_user()
        self.assertEqual(user.id, "7")
        self.assertEqual(user.name, "Claim Name")

    async def test_directory_error_falls_back_to_claims(self):
        directory = UserDirectory()
        directory.get_profile = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        identity = BearerIdentityProvider({"sub": "u42"}, "raw.jwt", directory)
        self.assertEqual((await identity.get_current_user()).id, "u42")

    async def test_signed_out(self):
        identity = BearerIdentityProvider({"sub": "u42"}, "raw.jwt")
        await identity.sign_out()
        self.assertIsNone(await identity.get_current_user())
        self.assertIsNone(await identity.get_auth_token())


class HttpUserDirectoryTests(IsolatedAsyncioTestCase):
    def _directory(self, handler, **kwargs):
        return HttpUserDirectory("http://auth.local/", transport=httpx.MockTransport(handler), **kwargs)

    async def test_fetches_profile(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, content=json.dumps(PROFILE))

        profile = await self._directory(handler, service_token="svc").get_profile("u42")
        self.assertEqual(profile.name, "Ada Parent")
        self.assertEqual(profile.students[0].school_id, "school-1")
        self.assertEqual(seen["url"], "http://auth.local/users/u42/profile")
        self.assertEqual(seen["auth"], "Bearer svc")

    async def test_missing_profile(self):
        directory = self._directory(lambda request: httpx.Response(404))
        self.assertIsNone(await directory.get_profile("nobody"))

    async def test_server_error_raises(self):
        directory = self._directory(lambda request: httpx.Response(500))
        with self.assertRaises(httpx.HTTPStatusError):
            await directory.get_profile("u42")

    async def test_static_directory_add(self):
        directory = StaticUserDirectory()
        self.assertIsNone(await directory.get_profile(MOCK_PARENT.id))
        directory.add(MOCK_PARENT)
        self.assertEqual((await directory.get_profile(MOCK_PARENT.id)).name, "John Doe")
