from datetime import date, timedelta

from sqlalchemy import select

import app.services.bankda_sync as bs
from app.models.bankda_sync_run import BankdaSyncRun
from app.models.bankda_transaction import BankdaTransaction
from app.models.deposit_history import DepositHistory
from app.models.member import Member
from app.services.bankda_errors import BankdaProviderError, BankdaRateLimited
from app.services.bankda_fetcher import FetchCursor
from app.services.bankda_sync import get_summary, load_cursor, run_sync_cycle, sync_and_record

from conftest import FakeSource, mk_member, mk_row, mk_tx

TODAY = date(2026, 10, 19)


def _tx_by_code(session, code):
    return session.execute(select(BankdaTransaction).where(BankdaTransaction.bkcode == code)).scalar_one()


def _all_tx(session):
    return session.execute(select(BankdaTransaction).order_by(BankdaTransaction.id)).scalars().all()


def test_exact_name_deposit_is_matched_and_credited(session):
    m = mk_member(session, "프레시마트", deposit=0)
    outcome, _ = run_sync_cycle(session, FakeSource([mk_row("프레시마트", 50000, bkcode="A1")]), None, TODAY)

    assert outcome.success
    assert (outcome.processed, outcome.matched, outcome.unmatched, outcome.skipped) == (1, 1, 0, 0)

    tx = _tx_by_code(session, "A1")
    assert tx.match_status == "matched"
    assert tx.matched_member_id == m.id
    assert tx.deposit_charged is True
    assert tx.deposit_history_id is not None
    assert session.get(Member, m.id).deposit == 50000
    assert len(session.execute(select(DepositHistory)).scalars().all()) == 1


def test_namesakes_are_left_for_the_operator(session):
    a = mk_member(session, "김철수", deposit=1000)
    b = mk_member(session, "김철수", deposit=2000)
    outcome, _ = run_sync_cycle(session, FakeSource([mk_row("김철수", 30000, bkcode="B1")]), None, TODAY)

    assert outcome.duplicate_name == 1
    assert outcome.unmatched == 1
    assert outcome.matched == 0

    tx = _tx_by_code(session, "B1")
    assert tx.match_status == "duplicate_name"
    assert tx.matched_member_id is None
    assert tx.deposit_charged is False
    assert session.get(Member, a.id).deposit == 1000
    assert session.get(Member, b.id).deposit == 2000
    assert session.execute(select(DepositHistory)).scalars().all() == []


def test_unknown_depositor_is_unmatched(session):
    mk_member(session, "프레시마트")
    outcome, _ = run_sync_cycle(session, FakeSource([mk_row("존재하지않는사람", 20000, bkcode="C1")]), None, TODAY)
    assert outcome.unmatched == 1
    assert _tx_by_code(session, "C1").match_status == "unmatched"


def test_depositor_whitespace_is_part_of_the_name(session):
    plain = mk_member(session, "김철수", deposit=0)
    outcome, _ = run_sync_cycle(session, FakeSource([mk_row("김철수 ", 30000, bkcode="W1")]), None, TODAY)

    assert (outcome.matched, outcome.unmatched) == (0, 1)
    tx = _tx_by_code(session, "W1")
    assert tx.match_status == "unmatched"
    assert tx.bkjukyo == "김철수 "
    assert tx.deposit_charged is False
    assert session.get(Member, plain.id).deposit == 0
    assert session.execute(select(DepositHistory)).scalars().all() == []


def test_trailing_space_member_matches_identical_remark(session):
    m = mk_member(session, "김철수 ", deposit=0)
    outcome, _ = run_sync_cycle(session, FakeSource([mk_row("김철수 ", 30000, bkcode="W2")]), None, TODAY)

    assert outcome.matched == 1
    assert _tx_by_code(session, "W2").matched_member_id == m.id
    assert session.get(Member, m.id).deposit == 30000


def test_refetched_rows_are_skipped_and_not_recharged(session):
    m = mk_member(session, "프레시마트")
    rows = [mk_row("프레시마트", 50000, bkcode="D1", bktime="090000")]
    run_sync_cycle(session, FakeSource(rows), None, TODAY)

    rows.append(mk_row("프레시마트", 7000, bkcode="D2", bktime="100000"))
    outcome, _ = run_sync_cycle(session, FakeSource(rows), None, TODAY)

    assert outcome.skipped == 1
    assert outcome.processed == 1
    assert len(_all_tx(session)) == 2
    assert session.get(Member, m.id).deposit == 57000
    assert len(session.execute(select(DepositHistory)).scalars().all()) == 2


def test_rate_limit_changes_nothing(session):
    mk_member(session, "프레시마트")
    sync_and_record(session, FakeSource([mk_row("프레시마트", 1000, bkcode="E0")]), TODAY)
    before = get_summary(session, TODAY)["lastSyncAt"]
    assert before is not None
    assert before.utcoffset() == timedelta(hours=9)

    outcome = sync_and_record(session, FakeSource(exc=BankdaRateLimited("조회 제한")), TODAY)

    assert outcome.as_response() == {"success": False, "rateLimited": True, "error": "조회 제한"}
    assert len(_all_tx(session)) == 1
    assert get_summary(session, TODAY)["lastSyncAt"] == before

    statuses = session.execute(select(BankdaSyncRun.status).order_by(BankdaSyncRun.id)).scalars().all()
    assert statuses == ["success", "rate_limited"]


def test_fetch_error_aborts_without_mutation(session):
    mk_member(session, "프레시마트")
    outcome = sync_and_record(session, FakeSource(exc=BankdaProviderError("bankda_timeout")), TODAY)

    assert not outcome.success
    assert not outcome.rate_limited
    assert outcome.error == "bankda_timeout"
    assert _all_tx(session) == []
    assert get_summary(session, TODAY)["lastSyncAt"] is None


def test_charge_failure_does_not_abort_the_cycle(session, monkeypatch):
    good = mk_member(session, "이영희")
    mk_member(session, "프레시마트")

    real_credit = bs.credit

    def flaky_credit(s, tx_id, member_id, source):
        tx = s.get(BankdaTransaction, tx_id)
        if tx.bkjukyo == "프레시마트":
            from app.services.deposit_credit import record_charge_error
            from app.services.bankda_errors import ChargeFailed

            record_charge_error(s, tx_id, "storage_error: OperationalError")
            raise ChargeFailed("storage_error: OperationalError")
        return real_credit(s, tx_id, member_id, source)

    monkeypatch.setattr(bs, "credit", flaky_credit)
    rows = [
        mk_row("프레시마트", 50000, bkcode="F1", bktime="090000"),
        mk_row("이영희", 10000, bkcode="F2", bktime="091000"),
    ]
    outcome, _ = run_sync_cycle(session, FakeSource(rows), None, TODAY)

    assert outcome.processed == 2
    assert outcome.matched == 2
    assert outcome.charge_failed == 1

    failed = _tx_by_code(session, "F1")
    assert failed.match_status == "matched"
    assert failed.deposit_charged is False
    assert failed.charge_error == "storage_error: OperationalError"

    ok = _tx_by_code(session, "F2")
    assert ok.deposit_charged is True
    assert ok.charge_error is None
    assert session.get(Member, good.id).deposit == 10000


def test_rows_are_processed_chronologically(session):
    m = mk_member(session, "프레시마트")
    rows = [
        mk_row("프레시마트", 300, bkcode="G3", bkdate="20261019", bktime="120000"),
        mk_row("프레시마트", 100, bkcode="G1", bkdate="20261018", bktime="080000"),
        mk_row("프레시마트", 200, bkcode="G2", bkdate="20261019", bktime="070000"),
    ]
    run_sync_cycle(session, FakeSource(rows), None, TODAY)

    history = (
        session.execute(
            select(DepositHistory).where(DepositHistory.member_id == m.id).order_by(DepositHistory.balance_after)
        )
        .scalars()
        .all()
    )
    assert [h.bkcode for h in history] == ["G1", "G2", "G3"]
    assert [h.balance_after for h in history] == [100, 300, 600]
    assert [t.bkcode for t in _all_tx(session)] == ["G1", "G2", "G3"]


def test_cursor_is_persisted_by_successful_runs_only(session):
    src = FakeSource([mk_row("누군가", 1000, bkcode="H1", bkdate="20261019", bktime="090000")])
    sync_and_record(session, src, TODAY)
    assert load_cursor(session) == FetchCursor("20261019", "090000", "H1")

    sync_and_record(session, FakeSource(exc=BankdaProviderError("boom")), TODAY)
    assert load_cursor(session) == FetchCursor("20261019", "090000", "H1")

    again = FakeSource([])
    sync_and_record(session, again, TODAY)
    assert again.calls == [("20261019", "20261019")]
    assert load_cursor(session) == FetchCursor("20261019", "090000", "H1")


def test_overlapping_cycle_is_refused(session):
    assert bs._cycle_lock.acquire(blocking=False)
    try:
        outcome = sync_and_record(session, FakeSource([mk_row("a", 1)]), TODAY)
    finally:
        bs._cycle_lock.release()
    assert outcome.as_response() == {"success": False, "rateLimited": False, "error": "sync_in_progress"}
    assert _all_tx(session) == []


def test_summary_is_computed_from_the_ledger(session):
    mk_tx(session, "a", 1000, status="matched", bkdate="20261019")
    mk_tx(session, "b", 2000, status="unmatched", bkdate="20261019")
    mk_tx(session, "c", 4000, status="duplicate_name", bkdate="20261018")
    mk_tx(session, "d", 8000, status="manual", bkdate="20261017")
    mk_tx(session, "e", 16000, status="ignored", bkdate="20261019")

    s = get_summary(session, TODAY)
    assert s["todayCount"] == 3
    assert s["todayAmount"] == 19000
    assert s["matchedCount"] == 2
    assert s["unmatchedCount"] == 2
    assert s["lastSyncAt"] is None
