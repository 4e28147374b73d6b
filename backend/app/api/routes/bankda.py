from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import db, require_admin
from app.models.bankda_transaction import BankdaTransaction
from app.schemas.bankda import (
    IgnoreIn,
    ManualMatchIn,
    MatchStatus,
    MessageOut,
    SearchMemberOut,
    SummaryOut,
    SyncOut,
    TransactionOut,
)
from app.services import bankda_resolution
from app.services.audit import log_event
from app.services.bankda_errors import (
    BankdaError,
    ChargeFailed,
    CreditStateError,
    InvalidTransition,
    MemberNotFound,
    TransactionNotFound,
)
from app.services.bankda_sync import get_summary, sync_and_record
from app.utils.timezone import to_bkdate

router = APIRouter(prefix="/api/admin/bankda", tags=["bankda"])

_STATUS_CODES = {
    TransactionNotFound: 404,
    MemberNotFound: 404,
    InvalidTransition: 409,
    CreditStateError: 409,
    ChargeFailed: 500,
}


def _http_error(e: BankdaError) -> HTTPException:
    return HTTPException(status_code=_STATUS_CODES.get(type(e), 400), detail=e.code)


def bankda_source():
    # None selects the configured BankdaClient
    return None


@router.get("/summary", response_model=SummaryOut)
def summary(s: Session = Depends(db), u=Depends(require_admin)):
    return get_summary(s)


@router.get("/transactions", response_model=list[TransactionOut])
def list_transactions(
    status: MatchStatus | None = Query(None),
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    limit: int = Query(500, ge=1, le=2000),
    s: Session = Depends(db),
    u=Depends(require_admin),
):
    q = select(BankdaTransaction)
    if status is not None:
        q = q.where(BankdaTransaction.match_status == status)
    if start_date is not None:
        q = q.where(BankdaTransaction.bkdate >= to_bkdate(start_date))
    if end_date is not None:
        q = q.where(BankdaTransaction.bkdate <= to_bkdate(end_date))
    q = q.order_by(BankdaTransaction.bkdate.desc(), BankdaTransaction.bktime.desc(), BankdaTransaction.id.desc())
    return s.execute(q.limit(limit)).scalars().unique().all()


@router.get("/search-members", response_model=list[SearchMemberOut])
def search_members(
    q: str = Query(""),
    limit: int = Query(20, ge=1, le=100),
    s: Session = Depends(db),
    u=Depends(require_admin),
):
    return bankda_resolution.search_members(s, q, limit=limit)


@router.post("/sync", response_model=SyncOut, response_model_exclude_none=True)
def sync(s: Session = Depends(db), u=Depends(require_admin), source=Depends(bankda_source)):
    outcome = sync_and_record(s, source)
    log_event(
        s,
        username=u.get("sub"),
        action="bankda.sync",
        entity_type="bankda_sync",
        details=outcome.as_response(),
    )
    return outcome.as_response()


@router.post("/transactions/{tx_id}/manual-match", response_model=MessageOut, response_model_exclude_none=True)
def manual_match(tx_id: int, body: ManualMatchIn, s: Session = Depends(db), u=Depends(require_admin)):
    try:
        result = bankda_resolution.manual_match(s, tx_id, body.member_id, username=u.get("sub"))
    except BankdaError as e:
        raise _http_error(e)
    if result.already_charged:
        raise HTTPException(status_code=409, detail="already_charged")
    return {
        "message": f"수동 매칭 완료 (잔액: {result.balance_after:,}원)",
        "depositHistoryId": result.deposit_history_id,
    }


@router.post("/transactions/{tx_id}/ignore", response_model=MessageOut, response_model_exclude_none=True)
def ignore(tx_id: int, body: IgnoreIn, s: Session = Depends(db), u=Depends(require_admin)):
    try:
        bankda_resolution.ignore(s, tx_id, body.memo, username=u.get("sub"))
    except BankdaError as e:
        raise _http_error(e)
    return {"message": "무시 처리되었습니다"}


@router.post("/transactions/{tx_id}/retry-charge", response_model=MessageOut, response_model_exclude_none=True)
def retry_charge(tx_id: int, s: Session = Depends(db), u=Depends(require_admin)):
    try:
        result = bankda_resolution.retry_charge(s, tx_id, username=u.get("sub"))
    except BankdaError as e:
        raise _http_error(e)
    if result.already_charged:
        raise HTTPException(status_code=409, detail="already_charged")
    return {
        "message": f"충전 완료 (잔액: {result.balance_after:,}원)",
        "depositHistoryId": result.deposit_history_id,
    }
