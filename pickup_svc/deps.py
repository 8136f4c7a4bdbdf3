from __future__ import annotations
from typing import Any, Dict, Tuple
from fastapi import Depends, Header, HTTPException, Request, status
import time
import httpx
import jwt

from .core.config import Settings
from .services.checkins import CheckInLedger
from .services.geofence import GeofenceMonitor
from .services.identity import BearerIdentityProvider, IdentityProvider, MockIdentityProvider
from .services.scanning import ScanInput
from .services.stats import StatsAggregator
from .services.tokens import TokenEngine

STAFF_ROLES = {"staff", "admin", "organiser"}

# jwks url -> (keys, fetched at)
_JWKS: Dict[str, Tuple[Dict[str, Any], float]] = {}
_JWKS_TTL: int = 3600

async def fetch_jwks(url: str) -> Dict[str, Any]:
    now = time.time()
    cached = _JWKS.get(url)
    if cached is None or (now - cached[1]) > _JWKS_TTL:
        async with httpx.AsyncClient() as client:
            r = await client.get(url, timeout=5.0)
            r.raise_for_status()
            cached = (r.json(), now)
            _JWKS[url] = cached
    return cached[0]

async def get_signing_key(url: str):
    from jwt.algorithms import RSAAlgorithm
    jwks = await fetch_jwks(url)
    key = jwks["keys"][0]
    return RSAAlgorithm.from_jwk(key)

def _bearer(authorization: str | None) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")
    return authorization.split(" ", 1)[1].strip()

async def get_claims(request: Request, authorization: str | None = Header(default=None)) -> Dict[str, Any]:
    token = _bearer(authorization)
    try:
        key = await get_signing_key(request.app.state.settings.auth_jwks_url)
    except httpx.HTTPError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Auth keys unavailable")
    try:
        payload = jwt.decode(token, key=key, algorithms=["RS256"], options={"verify_aud": False})
    except jwt.PyJWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    if "sub" not in payload:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")
    return payload

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings

async def get_identity(request: Request, authorization: str | None = Header(default=None)) -> IdentityProvider:
    state = request.app.state
    if state.settings.use_mock_mode:
        return MockIdentityProvider(state.mock_profile)
    claims = await get_claims(request, authorization)
    return BearerIdentityProvider(claims, _bearer(authorization), state.directory)

async def require_staff(request: Request, authorization: str | None = Header(default=None)) -> None:
    if request.app.state.settings.use_mock_mode:
        return None
    claims = await get_claims(request, authorization)
    if claims.get("role") not in STAFF_ROLES:
        raise HTTPException(status_code=403, detail="Staff role required")
    return None

def get_token_engine(request: Request, identity: IdentityProvider = Depends(get_identity)) -> TokenEngine:
    state = request.app.state
    return TokenEngine(
        state.store,
        identity,
        scheme=state.settings.deep_link_scheme,
        ttl_minutes=state.settings.token_ttl_minutes,
        authorize=state.authorize,
        consumed=state.consumed,
    )

def get_ledger(request: Request) -> CheckInLedger:
    return request.app.state.ledger

def get_stats(request: Request) -> StatsAggregator:
    return request.app.state.stats

def get_geofence(request: Request) -> GeofenceMonitor:
    return request.app.state.geofence

def get_scan_input(request: Request) -> ScanInput:
    return request.app.state.scan_input
