from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException, Response

from ..core.errors import InvalidStatusTransition
from ..deps import get_ledger, require_staff
from ..schemas import CheckIn, CheckInCount, StatusUpdate
from ..services.checkins import CheckInLedger

router = APIRouter(prefix="/checkins", tags=["checkins"], dependencies=[Depends(require_staff)])

# --- 1) Pickup board: oldest first, recently completed kept for an hour
@router.get("", response_model=list[CheckIn])
async def board(school_id: str | None = None, ledger: CheckInLedger = Depends(get_ledger)):
    return await ledger.get_check_ins(school_id)

@router.get("/count", response_model=CheckInCount)
async def outstanding_count(school_id: str | None = None, ledger: CheckInLedger = Depends(get_ledger)):
    return CheckInCount(school_id=school_id, count=await ledger.get_check_in_count(school_id))

# --- 2) Staff moves a check-in along waiting -> processing -> completed
@router.patch("/{check_in_id}/status", response_model=CheckIn)
async def update_status(check_in_id: str, payload: StatusUpdate, ledger: CheckInLedger = Depends(get_ledger)):
    try:
        check_in = await ledger.update_check_in_status(check_in_id, payload.status)
    except InvalidStatusTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    if check_in is None:
        raise HTTPException(status_code=404, detail="Check-in not found")
    return check_in

@router.delete("/{check_in_id}", status_code=204)
async def remove(check_in_id: str, ledger: CheckInLedger = Depends(get_ledger)):
    if not await ledger.remove_check_in(check_in_id):
        raise HTTPException(status_code=404, detail="Check-in not found")
    return Response(status_code=204)

@router.delete("", status_code=204)
async def clear_all(ledger: CheckInLedger = Depends(get_ledger)):
    await ledger.clear_all_check_ins()
    return Response(status_code=204)
