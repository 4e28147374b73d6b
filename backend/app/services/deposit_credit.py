from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal
from uuid import uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.bankda_transaction import BankdaTransaction
from app.models.deposit_history import DepositHistory
from app.models.member import Member
from app.services.bankda_errors import (
    ChargeFailed,
    CreditStateError,
    MemberNotFound,
    TransactionNotFound,
)
from app.services.bankda_matcher import depositor_name

log = logging.getLogger(__name__)

CreditSource = Literal["bankda-auto", "bankda-manual"]

CREDITABLE_STATUSES = ("matched", "manual")

_DESCRIPTIONS = {
    "bankda-auto": "뱅크다 자동입금 (입금자: {name})",
    "bankda-manual": "뱅크다 수동입금 (입금자: {name})",
}


@dataclass(frozen=True)
class CreditResult:
    success: bool
    deposit_history_id: str | None = None
    already_charged: bool = False
    balance_after: int | None = None

    @classmethod
    def charged(cls, history_id: str | None) -> CreditResult:
        return cls(success=False, deposit_history_id=history_id, already_charged=True)


def record_charge_error(s: Session, tx_id: int, reason: str) -> None:
    s.execute(
        update(BankdaTransaction)
        .where(BankdaTransaction.id == tx_id, BankdaTransaction.deposit_charged.is_(False))
        .values(charge_error=reason[:512])
        .execution_options(synchronize_session=False)
    )
    s.commit()


def credit(s: Session, tx_id: int, member_id: str, source: CreditSource) -> CreditResult:
    """Credit a matched/manual bank transaction to a member, at most once.

    The balance increment, the history row and the ``deposit_charged`` flip
    are committed together. The conditional update on ``deposit_charged`` is
    the serialization point: of two concurrent callers only one claims the
    row; the other sees ``already_charged``. On failure nothing is applied,
    ``charge_error`` is recorded and ``ChargeFailed`` (or ``MemberNotFound``)
    is raised.

    Any pending changes on ``s`` must be committed by the caller first.
    """
    if source not in _DESCRIPTIONS:
        raise ValueError(f"unknown credit source {source!r}")

    tx = s.execute(select(BankdaTransaction).where(BankdaTransaction.id == tx_id)).scalar_one_or_none()
    if tx is None:
        raise TransactionNotFound()
    if tx.deposit_charged:
        return CreditResult.charged(tx.deposit_history_id)
    if tx.match_status not in CREDITABLE_STATUSES:
        raise CreditStateError(f"cannot credit transaction in status {tx.match_status}")

    amount = int(tx.bkinput or 0)
    bkcode = tx.bkcode
    name = depositor_name(tx) or tx.bkname or ""
    history_id = str(uuid4())

    if s.get(Member, member_id) is None:
        record_charge_error(s, tx_id, MemberNotFound.code)
        log.warning("bankda credit failed for %s: %s", bkcode, MemberNotFound.code)
        raise MemberNotFound(f"member {member_id} not found")

    try:
        claimed = s.execute(
            update(BankdaTransaction)
            .where(
                BankdaTransaction.id == tx_id,
                BankdaTransaction.deposit_charged.is_(False),
                BankdaTransaction.match_status.in_(CREDITABLE_STATUSES),
            )
            .values(
                deposit_charged=True,
                deposit_history_id=history_id,
                matched_member_id=member_id,
                matched_at=func.now(),
                charge_error=None,
            )
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            s.rollback()
            s.expire_all()
            current = s.get(BankdaTransaction, tx_id)
            if current is not None and current.deposit_charged:
                return CreditResult.charged(current.deposit_history_id)
            raise CreditStateError("transaction changed while crediting")

        bumped = s.execute(
            update(Member)
            .where(Member.id == member_id)
            .values(deposit=Member.deposit + amount)
            .execution_options(synchronize_session=False)
        )
        if bumped.rowcount != 1:
            raise MemberNotFound(f"member {member_id} not found")

        balance_after = s.execute(select(Member.deposit).where(Member.id == member_id)).scalar_one()

        s.add(
            DepositHistory(
                id=history_id,
                member_id=member_id,
                type="charge",
                amount=amount,
                balance_after=int(balance_after),
                source=source,
                description=_DESCRIPTIONS[source].format(name=name),
                bankda_transaction_id=tx_id,
                bkcode=bkcode,
            )
        )
        s.commit()
    except MemberNotFound as e:
        s.rollback()
        record_charge_error(s, tx_id, e.code)
        log.warning("bankda credit failed for %s: %s", bkcode, e.code)
        raise
    except CreditStateError:
        s.rollback()
        raise
    except SQLAlchemyError as e:
        s.rollback()
        reason = f"storage_error: {e.__class__.__name__}"
        record_charge_error(s, tx_id, reason)
        log.warning("bankda credit failed for %s: %s", bkcode, reason)
        raise ChargeFailed(reason) from e

    s.expire_all()
    log.info("bankda credited %s: %d -> member %s (%s)", bkcode, amount, member_id, source)
    return CreditResult(success=True, deposit_history_id=history_id, balance_after=int(balance_after))

