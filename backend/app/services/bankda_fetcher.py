from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Iterable, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.bankda_transaction import BankdaTransaction
from app.services.bankda_errors import BankdaProviderError, BankdaRateLimited
from app.utils.timezone import to_bkdate

log = logging.getLogger(__name__)


class RowSource(Protocol):
    def fetch_rows(self, date_from: str, date_to: str) -> list[dict]: ...


@dataclass(frozen=True, order=True)
class FetchCursor:
    bkdate: str
    bktime: str
    bkcode: str

    def to_str(self) -> str:
        return f"{self.bkdate}|{self.bktime}|{self.bkcode}"

    @classmethod
    def parse(cls, raw: str | None) -> FetchCursor | None:
        if not raw:
            return None
        parts = raw.split("|", 2)
        if len(parts) != 3:
            return None
        return cls(parts[0], parts[1], parts[2])


@dataclass(frozen=True)
class BankRow:
    bkcode: str
    bkdate: str
    bktime: str
    bkinput: int
    bkoutput: int = 0
    bkjango: int = 0
    bank_code: str | None = None
    accountnum: str | None = None
    bkname: str | None = None
    bkjukyo: str | None = None
    bkcontent: str | None = None
    bketc: str | None = None

    @property
    def key(self) -> FetchCursor:
        return FetchCursor(self.bkdate, self.bktime, self.bkcode)


@dataclass
class FetchResult:
    rows: list[BankRow] = field(default_factory=list)
    next_cursor: FetchCursor | None = None
    skipped: int = 0
    non_deposit: int = 0
    rate_limited: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return not self.rate_limited and self.error is None


def parse_amount(v) -> int:
    if v is None or v == "":
        return 0
    if isinstance(v, bool):
        raise ValueError(f"bad amount {v!r}")
    if isinstance(v, int):
        return v
    raw = str(v).strip().replace(",", "").replace("원", "")
    if not raw:
        return 0
    try:
        d = Decimal(raw)
    except InvalidOperation as e:
        raise ValueError(f"bad amount {v!r}") from e
    if d != d.to_integral_value():
        raise ValueError(f"fractional amount {v!r}")
    return int(d)


def _text(v) -> str | None:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _remark(v) -> str | None:
    # verbatim: depositor matching is exact, whitespace included
    if v is None or v == "":
        return None
    return str(v)


def _bkdate(v) -> str:
    s = str(v or "").strip()
    if len(s) != 8 or not s.isdigit():
        raise ValueError(f"bad bkdate {v!r}")
    return s


def _bktime(v) -> str:
    s = str(v or "").strip()
    if not s.isdigit() or len(s) > 6:
        raise ValueError(f"bad bktime {v!r}")
    return s.zfill(6)


def normalize_rows(raw_rows: Iterable[dict]) -> list[BankRow]:
    """Turn provider rows into BankRow values in chronological order.

    Rows without a provider ``bkcode`` get ``accountnum-bkdatebktime-seq``
    where ``seq`` counts rows sharing account, date and time in provider order.
    """
    seq_by_stamp: dict[tuple[str, str, str], int] = {}
    out: list[BankRow] = []
    for raw in raw_rows:
        bkdate = _bkdate(raw.get("bkdate"))
        bktime = _bktime(raw.get("bktime"))
        accountnum = _text(raw.get("accountnum"))

        stamp = (accountnum or "", bkdate, bktime)
        seq = seq_by_stamp.get(stamp, 0)
        seq_by_stamp[stamp] = seq + 1

        code = _text(raw.get("bkcode")) or f"{accountnum or 'acct'}-{bkdate}{bktime}-{seq:03d}"
        out.append(
            BankRow(
                bkcode=code,
                bkdate=bkdate,
                bktime=bktime,
                bkinput=parse_amount(raw.get("bkinput")),
                bkoutput=parse_amount(raw.get("bkoutput")),
                bkjango=parse_amount(raw.get("bkjango")),
                bank_code=_text(raw.get("bank_code") or raw.get("bankcode")),
                accountnum=accountnum,
                bkname=_text(raw.get("bkname")),
                bkjukyo=_remark(raw.get("bkjukyo")),
                bkcontent=_remark(raw.get("bkcontent")),
                bketc=_remark(raw.get("bketc")),
            )
        )

    # stable: same-second rows keep provider order
    out.sort(key=lambda r: (r.bkdate, r.bktime))
    return out


def fetch_window(cursor: FetchCursor | None, today: date) -> tuple[str, str]:
    date_to = to_bkdate(today)
    if cursor is None:
        return (to_bkdate(today - timedelta(days=max(0, settings.bankda_lookback_days))), date_to)
    floor = to_bkdate(today - timedelta(days=max(0, settings.bankda_max_window_days)))
    return (max(cursor.bkdate, floor), date_to)


def existing_codes(s: Session, codes: list[str]) -> set[str]:
    found: set[str] = set()
    for i in range(0, len(codes), 500):
        chunk = codes[i : i + 500]
        found.update(
            s.execute(select(BankdaTransaction.bkcode).where(BankdaTransaction.bkcode.in_(chunk))).scalars().all()
        )
    return found


def fetch_new_transactions(
    s: Session,
    source: RowSource,
    cursor: FetchCursor | None,
    today: date,
) -> FetchResult:
    """Read-only: the ledger is consulted for deduplication but never written."""
    date_from, date_to = fetch_window(cursor, today)

    try:
        raw_rows = source.fetch_rows(date_from, date_to)
    except BankdaRateLimited as e:
        log.warning("bankda rate limited for %s..%s: %s", date_from, date_to, e)
        return FetchResult(next_cursor=cursor, rate_limited=True, error=str(e))
    except BankdaProviderError as e:
        log.error("bankda fetch failed for %s..%s: %s", date_from, date_to, e)
        return FetchResult(next_cursor=cursor, error=str(e))

    try:
        rows = normalize_rows(raw_rows)
    except ValueError as e:
        log.error("bankda payload rejected: %s", e)
        return FetchResult(next_cursor=cursor, error=f"bankda_bad_row: {e}")

    next_cursor = cursor
    if rows:
        last = max(r.key for r in rows)
        next_cursor = last if cursor is None else max(cursor, last)

    deposits = [r for r in rows if r.bkinput > 0]
    non_deposit = len(rows) - len(deposits)

    known = existing_codes(s, [r.bkcode for r in deposits])
    fresh: list[BankRow] = []
    skipped = 0
    for r in deposits:
        if r.bkcode in known:
            skipped += 1
            continue
        known.add(r.bkcode)
        fresh.append(r)

    if non_deposit:
        log.info("bankda dropped %d non-deposit rows", non_deposit)

    return FetchResult(rows=fresh, next_cursor=next_cursor, skipped=skipped, non_deposit=non_deposit)
