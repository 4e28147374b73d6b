from datetime import datetime

from sqlalchemy import String, Integer, DateTime, BigInteger, Boolean, ForeignKey, Index, false, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.base import Base
from app.models.member import Member

MATCH_STATUSES = ("pending", "matched", "unmatched", "duplicate_name", "manual", "ignored")


class BankdaTransaction(Base):
    __tablename__ = "bankda_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    bkcode: Mapped[str] = mapped_column(String(64), unique=True, index=True)

    bank_code: Mapped[str | None] = mapped_column(String(16), nullable=True)
    accountnum: Mapped[str | None] = mapped_column(String(32), nullable=True)
    bkname: Mapped[str | None] = mapped_column(String(64), nullable=True)
    bkdate: Mapped[str] = mapped_column(String(8), index=True)
    bktime: Mapped[str] = mapped_column(String(6))
    bkjukyo: Mapped[str | None] = mapped_column(String(128), nullable=True)
    bkcontent: Mapped[str | None] = mapped_column(String(256), nullable=True)
    bketc: Mapped[str | None] = mapped_column(String(256), nullable=True)
    bkinput: Mapped[int] = mapped_column(BigInteger, default=0)
    bkoutput: Mapped[int] = mapped_column(BigInteger, default=0)
    bkjango: Mapped[int] = mapped_column(BigInteger, default=0)

    match_status: Mapped[str] = mapped_column(String(16), default="pending", index=True)
    matched_member_id: Mapped[str | None] = mapped_column(ForeignKey("members.id"), nullable=True, index=True)
    matched_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    deposit_charged: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    # no FK: the claim update writes it before the history row is inserted
    deposit_history_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    charge_error: Mapped[str | None] = mapped_column(String(512), nullable=True)
    admin_memo: Mapped[str | None] = mapped_column(String(512), nullable=True)

    created_at: Mapped[DateTime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[DateTime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    matched_member: Mapped[Member | None] = relationship(Member, lazy="joined")


Index("ix_bankda_transactions_bkdate_bktime", BankdaTransaction.bkdate, BankdaTransaction.bktime)
