from __future__ import annotations
import logging
import secrets
from datetime import datetime, time as dtime, timedelta, timezone
from typing import Awaitable, Callable
from zoneinfo import ZoneInfo

from ..core import qr
from ..core.errors import (
    InvalidTokenFormat, NotAuthenticated, NotAuthorized, StorageFailure, TokenAlreadyUsed, TokenExpired,
)
from ..core.redis import ConsumedTokenRegistry
from ..schemas import (
    PickupToken, School, ScannedStudentInfo, TokenPayload, ValidationResult,
)
from .identity import IdentityProvider
from .storage import CURRENT_TOKEN_KEY, TOKEN_KEY, BlobStore

logger = logging.getLogger(__name__)

# (user_id, student_id, school_id) -> may this parent pick up now?
AuthorizationCheck = Callable[[str, str, str], Awaitable[bool]]
Clock = Callable[[], datetime]

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def allow_all(user_id: str, student_id: str, school_id: str) -> bool:
    return True

def pickup_window_check(
    schools: list[School], *, tz: str = "UTC", clock: Clock = utcnow
) -> AuthorizationCheck:
    """Authorize only inside one of the school's configured pickup windows."""
    by_id = {s.id: s for s in schools}
    zone = ZoneInfo(tz)

    async def check(user_id: str, student_id: str, school_id: str) -> bool:
        school = by_id.get(school_id)
        if school is None or not school.pickup_times:
            return False
        now = clock().astimezone(zone).time()
        for w in school.pickup_times:
            if dtime.fromisoformat(w.start) <= now <= dtime.fromisoformat(w.end):
                return True
        return False

    return check


class TokenEngine:
    def __init__(
        self,
        store: BlobStore,
        identity: IdentityProvider,
        *,
        scheme: str = "geofenceschool",
        ttl_minutes: int = 15,
        authorize: AuthorizationCheck = allow_all,
        consumed: ConsumedTokenRegistry | None = None,
        clock: Clock = utcnow,
    ):
        self._store = store
        self._identity = identity
        self._scheme = scheme
        self._ttl = timedelta(minutes=ttl_minutes)
        self._authorize = authorize
        self._consumed = consumed
        self._clock = clock

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    async def generate_token(self, student_id: str, school_id: str) -> PickupToken:
        user = await self._identity.get_current_user()
        if user is None:
            raise NotAuthenticated()

        if not await self._check_authorization(user.id, student_id, school_id):
            raise NotAuthorized()

        now = self._clock()
        token = PickupToken(
            id=_new_token_id(now),
            user_id=user.id,
            student_id=student_id,
            school_id=school_id,
            generated_at=now,
            expires_at=now + self._ttl,
            is_used=False,
            qr_code_data=await self._qr_code_data(user.id, student_id, school_id, now),
        )
        await self._store.set_json(_current_key(user.id), token.to_json_dict())
        logger.info("pickup token %s issued for user=%s student=%s school=%s", token.id, user.id, student_id, school_id)
        return token

    async def get_current_token(self) -> PickupToken | None:
        user = await self._identity.get_current_user()
        if user is None:
            return None
        try:
            raw = await self._store.get_json(_current_key(user.id))
        except StorageFailure:
            logger.exception("could not load current token")
            return None
        if raw is None:
            return None
        token = PickupToken.model_validate(raw)
        if self._is_expired(token):
            return None
        return token

    async def invalidate_token(self) -> None:
        user = await self._identity.get_current_user()
        if user is None:
            return
        raw = await self._store.get_json(_current_key(user.id))
        if raw is not None:
            token = PickupToken.model_validate(raw)
            token.is_used = True
            await self._store.set_json(f"{TOKEN_KEY}:{token.id}", token.to_json_dict())
            if self._consumed is not None:
                data = qr.extract_token_data(token.qr_code_data, self._scheme)
                await self._consumed.consume(qr.credential_digest(data), int(self._ttl.total_seconds()))
            logger.info("pickup token %s invalidated", token.id)
        await self._store.delete(_current_key(user.id))

    async def validate_token(self, scanned_data: str, *, consume: bool = True) -> ValidationResult:
        """
        Check a scanned credential. Never raises; failures come back as valid=False.
        With consume=False the replay registry is only read, so a preview does not
        use up the credential.
        """
        try:
            payload = await self._verify(scanned_data, consume)
        except (InvalidTokenFormat, TokenExpired, TokenAlreadyUsed) as e:
            logger.info("rejected scan: %s", e)
            return ValidationResult(valid=False, error=str(e))

        return ValidationResult(
            valid=True,
            student_info=ScannedStudentInfo(
                student_id=payload.student_id,
                user_id=payload.user_id,
                school_id=payload.school_id,
                timestamp=payload.timestamp,
                version=payload.version,
            ),
        )

    # helpers

    async def _verify(self, scanned_data: str, consume: bool) -> TokenPayload:
        token_data = qr.extract_token_data(scanned_data, self._scheme)
        payload = qr.decode_payload(token_data)

        issued = qr.parse_timestamp(payload.timestamp)
        age_seconds = (self._clock() - issued).total_seconds()
        if age_seconds > self._ttl.total_seconds():
            raise TokenExpired()

        if self._consumed is not None:
            key = qr.credential_digest(token_data)
            # issued may sit anywhere up to datetime.max; keep the key ttl within one token lifetime
            remaining = min(int(self._ttl.total_seconds() - age_seconds), int(self._ttl.total_seconds()))
            try:
                if consume:
                    first = await self._consumed.consume(key, remaining)
                else:
                    first = not await self._consumed.is_consumed(key)
            except Exception:
                # registry down: fall back to time-only validation
                logger.exception("replay guard unavailable")
                first = True
            if not first:
                raise TokenAlreadyUsed()
        return payload

    async def _check_authorization(self, user_id: str, student_id: str, school_id: str) -> bool:
        try:
            return bool(await self._authorize(user_id, student_id, school_id))
        except Exception:
            logger.exception("authorization check failed")
            return False

    async def _qr_code_data(self, user_id: str, student_id: str, school_id: str, ts: datetime) -> str:
        auth_token = await self._identity.get_auth_token()
        payload = TokenPayload(
            user_id=user_id,
            student_id=student_id,
            school_id=school_id,
            timestamp=qr.format_timestamp(ts),
            auth_token=auth_token or "mock-token",
            version=qr.PAYLOAD_VERSION,
        )
        return qr.build_deep_link(self._scheme, qr.encode_payload(payload))

    def _is_expired(self, token: PickupToken) -> bool:
        return self._clock() > token.expires_at


def _current_key(user_id: str) -> str:
    return f"{CURRENT_TOKEN_KEY}:{user_id}"

def _new_token_id(now: datetime) -> str:
    return f"token-{int(now.timestamp() * 1000)}-{secrets.token_hex(5)}"
