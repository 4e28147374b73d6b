from datetime import datetime
from typing import Literal

from pydantic import BaseModel, computed_field, field_validator
from pydantic.alias_generators import to_camel

from app.utils.timezone import as_seoul, format_bkdate, format_bktime

MatchStatus = Literal["pending", "matched", "unmatched", "duplicate_name", "manual", "ignored"]


class _CamelModel(BaseModel):
    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True


class MatchedMemberOut(_CamelModel):
    member_name: str | None
    company_name: str


class TransactionOut(_CamelModel):
    id: int
    bkcode: str
    bank_code: str | None = None
    accountnum: str | None
    bkname: str | None
    bkdate: str
    bktime: str
    bkjukyo: str | None
    bkcontent: str | None
    bketc: str | None
    bkinput: int
    bkoutput: int
    bkjango: int
    match_status: MatchStatus
    matched_member_id: str | None
    matched_at: datetime | None
    deposit_charged: bool
    deposit_history_id: str | None
    charge_error: str | None
    admin_memo: str | None
    created_at: datetime | None
    updated_at: datetime | None
    matched_member: MatchedMemberOut | None = None

    @field_validator("matched_at", "created_at", "updated_at")
    @classmethod
    def in_seoul(cls, v: datetime | None):
        return as_seoul(v)

    @computed_field(alias="bkdateDisplay")
    @property
    def bkdate_display(self) -> str:
        return format_bkdate(self.bkdate)

    @computed_field(alias="bktimeDisplay")
    @property
    def bktime_display(self) -> str:
        return format_bktime(self.bktime)


class SummaryOut(_CamelModel):
    today_count: int
    today_amount: int
    matched_count: int
    unmatched_count: int
    last_sync_at: datetime | None


class SearchMemberOut(_CamelModel):
    id: str
    member_name: str | None
    company_name: str
    phone: str | None
    deposit: int
    grade: str


class SyncOut(_CamelModel):
    success: bool
    processed: int | None = None
    matched: int | None = None
    unmatched: int | None = None
    duplicate_name: int | None = None
    skipped: int | None = None
    charge_failed: int | None = None
    rate_limited: bool | None = None
    error: str | None = None


class ManualMatchIn(_CamelModel):
    member_id: str

    @field_validator("member_id")
    @classmethod
    def member_id_required(cls, v: str):
        v = (v or "").strip()
        if not v:
            raise ValueError("memberId is required")
        return v


class IgnoreIn(_CamelModel):
    memo: str | None = ""

    @field_validator("memo")
    @classmethod
    def memo_trim(cls, v: str | None):
        if v is None:
            return ""
        return v.strip()[:512]


class MessageOut(_CamelModel):
    message: str
    deposit_history_id: str | None = None
