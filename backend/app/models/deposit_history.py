from uuid import uuid4

from sqlalchemy import String, DateTime, BigInteger, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base


def _new_id() -> str:
    return str(uuid4())


class DepositHistory(Base):
    """Append-only balance ledger. Rows are never updated or deleted."""

    __tablename__ = "deposit_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    member_id: Mapped[str] = mapped_column(ForeignKey("members.id"), index=True)
    type: Mapped[str] = mapped_column(String(16), default="charge")
    amount: Mapped[int] = mapped_column(BigInteger)
    balance_after: Mapped[int] = mapped_column(BigInteger)
    source: Mapped[str] = mapped_column(String(32), index=True)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)

    # one entry per bank transaction, enforced by the unique index
    bankda_transaction_id: Mapped[int | None] = mapped_column(
        ForeignKey("bankda_transactions.id"), nullable=True, unique=True
    )
    bkcode: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    created_at: Mapped[DateTime] = mapped_column(DateTime, server_default=func.now(), index=True)
