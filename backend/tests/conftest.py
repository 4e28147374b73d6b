from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.models.audit_log import AuditLog  # noqa: F401
from app.models.bankda_sync_run import BankdaSyncRun  # noqa: F401
from app.models.bankda_transaction import BankdaTransaction
from app.models.deposit_history import DepositHistory  # noqa: F401
from app.models.member import Member
from app.models.user import User  # noqa: F401
from app.services.bankda_errors import BankdaProviderError


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite+pysqlite://",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session(engine):
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    s = Session()
    try:
        yield s
    finally:
        s.close()


class FakeSource:
    """Stands in for BankdaClient: returns canned rows or raises."""

    def __init__(self, rows=None, exc: BankdaProviderError | None = None):
        self.rows = list(rows or [])
        self.exc = exc
        self.calls: list[tuple[str, str]] = []

    def fetch_rows(self, date_from: str, date_to: str) -> list[dict]:
        self.calls.append((date_from, date_to))
        if self.exc is not None:
            raise self.exc
        return [dict(r) for r in self.rows]


def mk_member(session, member_name, company_name=None, phone=None, deposit=0, member_id=None, grade="basic"):
    m = Member(
        id=member_id or str(uuid4()),
        member_name=member_name,
        company_name=company_name or f"Company-{uuid4().hex[:8]}",
        phone=phone,
        deposit=deposit,
        grade=grade,
    )
    session.add(m)
    session.commit()
    return m


def mk_row(bkjukyo, bkinput, bkcode=None, bkdate="20261019", bktime="101500", bketc=None, bkoutput=0):
    return {
        "bkcode": bkcode or f"BK{uuid4().hex[:12]}",
        "accountnum": "110123456789",
        "bkname": "신한",
        "bkdate": bkdate,
        "bktime": bktime,
        "bkjukyo": bkjukyo,
        "bkcontent": "인터넷뱅킹",
        "bketc": bketc,
        "bkinput": bkinput,
        "bkoutput": bkoutput,
        "bkjango": 1_000_000,
    }


def mk_tx(session, bkjukyo, bkinput, status="pending", bkcode=None, bkdate="20261019", bktime="101500", bketc=None):
    tx = BankdaTransaction(
        bkcode=bkcode or f"BK{uuid4().hex[:12]}",
        accountnum="110123456789",
        bkname="신한",
        bkdate=bkdate,
        bktime=bktime,
        bkjukyo=bkjukyo,
        bketc=bketc,
        bkinput=bkinput,
        bkoutput=0,
        bkjango=0,
        match_status=status,
        deposit_charged=False,
    )
    session.add(tx)
    session.commit()
    return tx
