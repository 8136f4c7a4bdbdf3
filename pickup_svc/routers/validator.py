from __future__ import annotations
import logging
from fastapi import APIRouter, Depends, HTTPException, Request

from ..core.qr import parse_timestamp
from ..core.redis import allow_request
from ..deps import get_ledger, get_scan_input, get_token_engine, require_staff
from ..schemas import ScanIn, ScanResult, ValidationResult
from ..services.checkins import CheckInLedger
from ..services.scanning import ScanInput, ScanUnavailable
from ..services.tokens import TokenEngine

logger = logging.getLogger(__name__)

CHECK_IN_NOT_RECORDED = "Token valid but the check-in could not be recorded"

router = APIRouter(prefix="/validator", tags=["validator"], dependencies=[Depends(require_staff)])

async def _rate_limit(request: Request):
    ip = request.client.host if request.client else "unknown"
    try:
        allowed = await allow_request(ip, "validator.scan")
    except Exception:
        logger.warning("rate limiter unavailable", exc_info=True)
        return
    if not allowed:
        raise HTTPException(status_code=429, detail="Too many requests")

async def _scan(data: str, engine: TokenEngine, ledger: CheckInLedger) -> ScanResult:
    result = await engine.validate_token(data)
    if not result.valid or result.student_info is None:
        return ScanResult(valid=False, error=result.error)

    info = result.student_info
    check_in = None
    error = None
    try:
        check_in = await ledger.register_check_in(info.user_id, info.student_id, info.school_id)
    except Exception:
        # valid token, but not on the board
        logger.exception("check-in registration failed for user=%s student=%s", info.user_id, info.student_id)
        error = CHECK_IN_NOT_RECORDED

    generated = parse_timestamp(info.timestamp)
    try:
        expires = generated + engine.ttl
    except OverflowError:
        expires = None
    return ScanResult(
        valid=True,
        student_info=info,
        error=error,
        check_in=check_in,
        token_generated_at=generated,
        token_expires_at=expires,
    )

# --- 1) Validate only, nothing lands on the board and the credential stays unused
@router.post("/validate", response_model=ValidationResult)
async def validate(payload: ScanIn, engine: TokenEngine = Depends(get_token_engine)):
    return await engine.validate_token(payload.data, consume=False)

# --- 2) Staff scans a parent's QR: validate + register on the pickup board
@router.post("/scan", response_model=ScanResult, dependencies=[Depends(_rate_limit)])
async def scan(
    payload: ScanIn,
    engine: TokenEngine = Depends(get_token_engine),
    ledger: CheckInLedger = Depends(get_ledger),
    scan_input: ScanInput = Depends(get_scan_input),
):
    return await _scan(scan_input.read_text(payload.data), engine, ledger)

# --- 3) Camera variant: raw image body
@router.post("/scan-image", response_model=ScanResult, dependencies=[Depends(_rate_limit)])
async def scan_image(
    request: Request,
    engine: TokenEngine = Depends(get_token_engine),
    ledger: CheckInLedger = Depends(get_ledger),
    scan_input: ScanInput = Depends(get_scan_input),
):
    body = await request.body()
    try:
        data = scan_input.read_image(body)
    except ScanUnavailable as e:
        raise HTTPException(status_code=501, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return await _scan(data, engine, ledger)
