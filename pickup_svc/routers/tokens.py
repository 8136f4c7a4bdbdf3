from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException, Response, status

from ..core.errors import NotAuthenticated, NotAuthorized, StorageFailure
from ..core.qr import render_png
from ..deps import get_identity, get_token_engine
from ..schemas import PickupToken, TokenCreate, UserProfile
from ..services.identity import IdentityProvider
from ..services.tokens import TokenEngine

router = APIRouter(tags=["pickup"])

# --- 1) Parent generates a pickup token (15 min TTL)
@router.post("/pickup/tokens", response_model=PickupToken, status_code=201)
async def generate_token(payload: TokenCreate, engine: TokenEngine = Depends(get_token_engine)):
    try:
        return await engine.generate_token(payload.student_id, payload.school_id)
    except NotAuthenticated as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    except NotAuthorized as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except StorageFailure:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Failed to store pickup token")

@router.get("/pickup/tokens/current", response_model=PickupToken)
async def current_token(engine: TokenEngine = Depends(get_token_engine)):
    token = await engine.get_current_token()
    if token is None:
        raise HTTPException(status_code=404, detail="No active pickup token")
    return token

# PNG for the parent's phone screen
@router.get("/pickup/tokens/current/qr.png")
async def current_token_png(engine: TokenEngine = Depends(get_token_engine)):
    token = await engine.get_current_token()
    if token is None:
        raise HTTPException(status_code=404, detail="No active pickup token")
    return Response(content=render_png(token.qr_code_data), media_type="image/png")

@router.delete("/pickup/tokens/current", status_code=204)
async def invalidate_token(engine: TokenEngine = Depends(get_token_engine)):
    try:
        await engine.invalidate_token()
    except StorageFailure:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Failed to invalidate token")
    return Response(status_code=204)

@router.get("/me", response_model=UserProfile)
async def me(identity: IdentityProvider = Depends(get_identity)):
    user = await identity.get_current_user()
    if user is None:
        raise HTTPException(status_code=401, detail="User not authenticated")
    return user
