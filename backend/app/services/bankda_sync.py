from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import SessionLocal
from app.models.bankda_sync_run import BankdaSyncRun
from app.models.bankda_transaction import BankdaTransaction
from app.services.bankda_client import BankdaClient
from app.services.bankda_errors import BankdaError
from app.services.bankda_fetcher import FetchCursor, RowSource, fetch_new_transactions
from app.services.bankda_matcher import depositor_name, load_member_snapshot, match
from app.services.deposit_credit import credit
from app.utils.timezone import as_seoul, to_bkdate, today_seoul

log = logging.getLogger(__name__)

_cycle_lock = threading.Lock()


@dataclass
class SyncOutcome:
    success: bool
    processed: int = 0
    matched: int = 0
    unmatched: int = 0
    duplicate_name: int = 0
    skipped: int = 0
    charge_failed: int = 0
    rate_limited: bool = False
    error: str | None = None

    def as_response(self) -> dict:
        if not self.success:
            return {"success": False, "rateLimited": self.rate_limited, "error": self.error}
        return {
            "success": True,
            "processed": self.processed,
            "matched": self.matched,
            "unmatched": self.unmatched,
            "duplicateName": self.duplicate_name,
            "skipped": self.skipped,
            "chargeFailed": self.charge_failed,
        }


def last_successful_run(s: Session) -> BankdaSyncRun | None:
    return (
        s.execute(
            select(BankdaSyncRun)
            .where(BankdaSyncRun.status == "success")
            .order_by(BankdaSyncRun.finished_at.desc(), BankdaSyncRun.id.desc())
            .limit(1)
        )
        .scalars()
        .first()
    )


def load_cursor(s: Session) -> FetchCursor | None:
    run = last_successful_run(s)
    return FetchCursor.parse(run.cursor) if run is not None else None


def _record_run(
    s: Session,
    outcome: SyncOutcome,
    started_at: datetime,
    cursor: FetchCursor | None,
) -> None:
    # end the read transaction so now() below is the finish time
    s.commit()
    status = "success" if outcome.success else ("rate_limited" if outcome.rate_limited else "error")
    s.add(
        BankdaSyncRun(
            status=status,
            started_at=started_at,
            finished_at=func.now(),
            processed=outcome.processed,
            matched=outcome.matched,
            unmatched=outcome.unmatched,
            duplicate_name=outcome.duplicate_name,
            skipped=outcome.skipped,
            charge_failed=outcome.charge_failed,
            cursor=cursor.to_str() if cursor is not None else None,
            error=outcome.error[:512] if outcome.error else None,
        )
    )
    s.commit()


def run_sync_cycle(
    s: Session,
    source: RowSource,
    cursor: FetchCursor | None,
    today: date | None = None,
) -> tuple[SyncOutcome, FetchCursor | None]:
    """One fetch-match-credit pass over rows newer than ``cursor``.

    Returns the outcome and the cursor to persist for the next cycle. Each row
    is committed on its own, so a failure on one row never undoes another; a
    failed fetch writes nothing.
    """
    today = today or today_seoul()
    fetched = fetch_new_transactions(s, source, cursor, today)

    if fetched.rate_limited:
        return SyncOutcome(success=False, rate_limited=True, error=fetched.error or "bankda_rate_limited"), cursor
    if fetched.error is not None:
        return SyncOutcome(success=False, error=fetched.error), cursor

    outcome = SyncOutcome(success=True, skipped=fetched.skipped)
    snapshot = load_member_snapshot(s, [depositor_name(r) for r in fetched.rows])

    for row in fetched.rows:
        tx = BankdaTransaction(
            bkcode=row.bkcode,
            bank_code=row.bank_code,
            accountnum=row.accountnum,
            bkname=row.bkname,
            bkdate=row.bkdate,
            bktime=row.bktime,
            bkjukyo=row.bkjukyo,
            bkcontent=row.bkcontent,
            bketc=row.bketc,
            bkinput=row.bkinput,
            bkoutput=row.bkoutput,
            bkjango=row.bkjango,
            match_status="pending",
            deposit_charged=False,
        )
        s.add(tx)
        try:
            s.commit()
        except IntegrityError:
            # another writer ingested the same bkcode first
            s.rollback()
            outcome.skipped += 1
            continue

        result = match(tx, snapshot)
        tx.match_status = result.status
        if result.status == "matched":
            tx.matched_member_id = result.member_id
            tx.matched_at = func.now()
        s.commit()
        outcome.processed += 1

        if result.status == "matched":
            outcome.matched += 1
            try:
                credit(s, tx.id, result.member_id, "bankda-auto")
            except BankdaError as e:
                outcome.charge_failed += 1
                log.warning("bankda auto credit failed for %s: %s", row.bkcode, e.code)
        elif result.status == "duplicate_name":
            outcome.duplicate_name += 1
            outcome.unmatched += 1
        else:
            outcome.unmatched += 1

    log.info(
        "bankda sync: processed=%d matched=%d unmatched=%d duplicate_name=%d skipped=%d",
        outcome.processed,
        outcome.matched,
        outcome.unmatched,
        outcome.duplicate_name,
        outcome.skipped,
    )
    return outcome, fetched.next_cursor


def sync_and_record(s: Session, source: RowSource | None = None, today: date | None = None) -> SyncOutcome:
    """Run one cycle with the persisted cursor and journal its outcome."""
    if not _cycle_lock.acquire(blocking=False):
        return SyncOutcome(success=False, error="sync_in_progress")
    try:
        started_at = s.execute(select(func.now())).scalar_one()
        cursor = load_cursor(s)
        outcome, next_cursor = run_sync_cycle(s, source if source is not None else BankdaClient(), cursor, today)
        _record_run(s, outcome, started_at, next_cursor if outcome.success else cursor)
        return outcome
    finally:
        _cycle_lock.release()


def get_summary(s: Session, today: date | None = None) -> dict:
    bkdate = to_bkdate(today or today_seoul())

    today_count, today_amount = s.execute(
        select(func.count(BankdaTransaction.id), func.coalesce(func.sum(BankdaTransaction.bkinput), 0)).where(
            BankdaTransaction.bkdate == bkdate
        )
    ).one()
    matched_count = s.execute(
        select(func.count(BankdaTransaction.id)).where(BankdaTransaction.match_status.in_(("matched", "manual")))
    ).scalar_one()
    unmatched_count = s.execute(
        select(func.count(BankdaTransaction.id)).where(
            BankdaTransaction.match_status.in_(("unmatched", "duplicate_name"))
        )
    ).scalar_one()

    last = last_successful_run(s)
    return {
        "todayCount": int(today_count or 0),
        "todayAmount": int(today_amount or 0),
        "matchedCount": int(matched_count or 0),
        "unmatchedCount": int(unmatched_count or 0),
        "lastSyncAt": as_seoul(last.finished_at) if last is not None else None,
    }


def sync_bankda_once() -> SyncOutcome:
    with SessionLocal() as s:
        return sync_and_record(s)


async def bankda_sync_loop() -> None:
    if not getattr(settings, "bankda_sync_enabled", False):
        return

    interval = int(getattr(settings, "bankda_sync_interval_seconds", 600) or 600)
    await asyncio.sleep(3)

    while True:
        try:
            outcome = await asyncio.to_thread(sync_bankda_once)
            if outcome.rate_limited:
                logging.warning("bankda_sync skipped: rate limited")
            elif not outcome.success:
                logging.error("bankda_sync failed: %s", outcome.error)
        except Exception as e:
            logging.exception("bankda_sync failed", exc_info=e)

        await asyncio.sleep(max(60, interval))
