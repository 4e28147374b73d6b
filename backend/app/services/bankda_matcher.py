from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Literal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.member import Member

MatchStatus = Literal["matched", "unmatched", "duplicate_name"]


@dataclass(frozen=True)
class MemberSnapshot:
    id: str
    member_name: str | None


@dataclass(frozen=True)
class MatchResult:
    status: MatchStatus
    member_id: str | None = None
    candidate_name: str | None = None


def depositor_name(tx) -> str | None:
    """Primary remarks first, else the first token of the secondary remarks."""
    primary = getattr(tx, "bkjukyo", None)
    if primary:
        return primary
    etc = getattr(tx, "bketc", None) or ""
    tokens = etc.split()
    return tokens[0] if tokens else None


def match(tx, members: Iterable[MemberSnapshot]) -> MatchResult:
    # Exact comparison only. Amount never breaks a tie between namesakes.
    name = depositor_name(tx)
    if not name:
        return MatchResult(status="unmatched")

    hits = sorted({m.id for m in members if m.member_name is not None and m.member_name == name})
    if len(hits) == 1:
        return MatchResult(status="matched", member_id=hits[0], candidate_name=name)
    if len(hits) > 1:
        return MatchResult(status="duplicate_name", candidate_name=name)
    return MatchResult(status="unmatched", candidate_name=name)


def load_member_snapshot(s: Session, names: Iterable[str] | None = None) -> list[MemberSnapshot]:
    q = select(Member.id, Member.member_name).where(Member.member_name.is_not(None))
    if names is not None:
        wanted = sorted({n for n in names if n})
        if not wanted:
            return []
        q = q.where(Member.member_name.in_(wanted))
    return [MemberSnapshot(id=i, member_name=n) for (i, n) in s.execute(q).all()]
