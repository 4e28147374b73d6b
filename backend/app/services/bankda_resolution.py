from __future__ import annotations

from sqlalchemy import select, or_
from sqlalchemy.orm import Session

from app.models.bankda_transaction import BankdaTransaction
from app.models.member import Member
from app.services.audit import log_event
from app.services.bankda_errors import InvalidTransition, MemberNotFound, TransactionNotFound
from app.services.deposit_credit import CREDITABLE_STATUSES, CreditResult, credit

RESOLVABLE_STATUSES = ("unmatched", "duplicate_name", "pending")


def _require_tx(s: Session, tx_id: int) -> BankdaTransaction:
    tx = s.execute(select(BankdaTransaction).where(BankdaTransaction.id == tx_id)).scalar_one_or_none()
    if tx is None:
        raise TransactionNotFound()
    return tx


def manual_match(s: Session, tx_id: int, member_id: str, username: str) -> CreditResult:
    tx = _require_tx(s, tx_id)

    # a manual record whose crediting failed may be retried, possibly with another member
    retry = tx.match_status == "manual" and not tx.deposit_charged
    if tx.match_status not in RESOLVABLE_STATUSES and not retry:
        raise InvalidTransition(f"cannot manually match a {tx.match_status} transaction")

    member = s.execute(select(Member).where(Member.id == member_id)).scalar_one_or_none()
    if member is None:
        raise MemberNotFound()

    previous = tx.match_status
    tx.match_status = "manual"
    tx.matched_member_id = member.id
    s.commit()

    log_event(
        s,
        username=username,
        action="bankda.manual_match",
        entity_type="bankda_transaction",
        entity_id=tx_id,
        details={"member_id": member_id, "from_status": previous, "amount": str(tx.bkinput)},
    )

    return credit(s, tx_id, member_id, "bankda-manual")


def ignore(s: Session, tx_id: int, memo: str | None, username: str) -> BankdaTransaction:
    tx = _require_tx(s, tx_id)
    if tx.match_status not in RESOLVABLE_STATUSES:
        raise InvalidTransition(f"cannot ignore a {tx.match_status} transaction")

    previous = tx.match_status
    tx.match_status = "ignored"
    tx.admin_memo = memo if memo is not None else ""
    s.commit()

    log_event(
        s,
        username=username,
        action="bankda.ignore",
        entity_type="bankda_transaction",
        entity_id=tx_id,
        details={"from_status": previous, "memo": tx.admin_memo},
    )
    s.refresh(tx)
    return tx


def retry_charge(s: Session, tx_id: int, username: str) -> CreditResult:
    tx = _require_tx(s, tx_id)
    if tx.match_status not in CREDITABLE_STATUSES:
        raise InvalidTransition(f"cannot charge a {tx.match_status} transaction")
    if tx.deposit_charged:
        return CreditResult.charged(tx.deposit_history_id)
    if tx.matched_member_id is None:
        raise InvalidTransition("transaction has no matched member")

    member_id = tx.matched_member_id
    source = "bankda-manual" if tx.match_status == "manual" else "bankda-auto"

    log_event(
        s,
        username=username,
        action="bankda.retry_charge",
        entity_type="bankda_transaction",
        entity_id=tx_id,
        details={"member_id": member_id, "previous_error": tx.charge_error},
    )
    return credit(s, tx_id, member_id, source)


def search_members(s: Session, q: str, limit: int = 20) -> list[Member]:
    q = (q or "").strip()
    if not q:
        return []
    stmt = (
        select(Member)
        .where(
            or_(
                Member.member_name.icontains(q, autoescape=True),
                Member.company_name.icontains(q, autoescape=True),
                Member.phone.icontains(q, autoescape=True),
            )
        )
        .order_by(Member.company_name.asc(), Member.id.asc())
        .limit(limit)
    )
    return list(s.execute(stmt).scalars().all())
