from __future__ import annotations
import logging
import time
from typing import Any, Dict, Iterable

import httpx
from pydantic import ValidationError

from ..schemas import StudentInfo, UserProfile, VehicleInfo

logger = logging.getLogger(__name__)

MOCK_PARENT = UserProfile(
    id="mock-user-123",
    email="parent@example.com",
    name="John Doe",
    phone="+1234567890",
    students=[StudentInfo(id="student-1", name="Jane Doe", grade="3rd", school_id="school-1")],
    vehicle=VehicleInfo(make="Toyota", model="Camry", color="Blue", license_plate="ABC123"),
)


# --- user directory: display-name lookups by id ---

class UserDirectory:
    async def get_profile(self, user_id: str) -> UserProfile | None:
        raise NotImplementedError

class StaticUserDirectory(UserDirectory):
    def __init__(self, profiles: Iterable[UserProfile] = ()):
        self._profiles = {p.id: p for p in profiles}

    def add(self, profile: UserProfile) -> None:
        self._profiles[profile.id] = profile

    async def get_profile(self, user_id: str) -> UserProfile | None:
        return self._profiles.get(user_id)

class HttpUserDirectory(UserDirectory):
    """Profiles served by authentication-svc: GET {base}/users/{id}/profile."""

    def __init__(
        self, base_url: str, *, service_token: str | None = None, timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._service_token = service_token
        self._timeout = timeout
        self._transport = transport

    async def get_profile(self, user_id: str) -> UserProfile | None:
        url = f"{self._base_url}/users/{user_id}/profile"
        headers = {"Authorization": f"Bearer {self._service_token}"} if self._service_token else {}
        async with httpx.AsyncClient(transport=self._transport) as client:
            r = await client.get(url, headers=headers, timeout=self._timeout)
        if r.status_code == 404:
            return None
        r.raise_for_status()
        return UserProfile.model_validate(r.json())


# --- identity of the caller ---

class IdentityProvider:
    async def get_current_user(self) -> UserProfile | None:
        raise NotImplementedError

    async def get_auth_token(self) -> str | None:
        raise NotImplementedError

    async def sign_out(self) -> None:
        raise NotImplementedError

class MockIdentityProvider(IdentityProvider):
    def __init__(self, profile: UserProfile | None = MOCK_PARENT):
        self._profile = profile

    async def get_current_user(self) -> UserProfile | None:
        return self._profile

    async def get_auth_token(self) -> str | None:
        if self._profile is None:
            return None
        return f"mock-auth-token-{int(time.time() * 1000)}"

    async def sign_out(self) -> None:
        self._profile = None

class BearerIdentityProvider(IdentityProvider):
    """
    Caller identified by a verified bearer JWT. The profile comes from the
    directory, falling back to whatever the claims carry.
    """

    def __init__(self, claims: Dict[str, Any], raw_token: str, directory: UserDirectory | None = None):
        self._claims = claims
        self._raw_token: str | None = raw_token
        self._directory = directory
        self._profile: UserProfile | None = None

    async def get_current_user(self) -> UserProfile | None:
        if self._raw_token is None:
            return None
        if self._profile is not None:
            return self._profile
        sub = self._claims.get("sub")
        if not sub:
            return None
        if self._directory is not None:
            try:
                self._profile = await self._directory.get_profile(str(sub))
            except (httpx.HTTPError, ValidationError):
                logger.warning("profile lookup failed for %s", sub, exc_info=True)
        if self._profile is None:
            try:
                self._profile = UserProfile.model_validate({
                    "id": str(sub),
                    "email": self._claims.get("email", ""),
                    "name": self._claims.get("name", ""),
                    "students": self._claims.get("students", []),
                })
            except ValidationError:
                logger.warning("unusable profile claims for %s", sub)
                return None
        return self._profile

    async def get_auth_token(self) -> str | None:
        return self._raw_token

    async def sign_out(self) -> None:
        self._raw_token = None
        self._profile = None
