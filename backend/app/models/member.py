from uuid import uuid4

from sqlalchemy import String, DateTime, BigInteger, func
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base


def _new_id() -> str:
    return str(uuid4())


class Member(Base):
    __tablename__ = "members"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    company_name: Mapped[str] = mapped_column(String(128), index=True)
    member_name: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    deposit: Mapped[int] = mapped_column(BigInteger, default=0, server_default="0")
    grade: Mapped[str] = mapped_column(String(32), default="basic", server_default="basic")
    created_at: Mapped[DateTime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[DateTime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())
