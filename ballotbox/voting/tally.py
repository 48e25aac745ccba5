"""
Tally engine.

`public_tally` and `admin_tally` are separate entry points over the same
aggregation core. Only `admin_tally` ever loads voter records; the public
result types have no field that could carry them.

Only verified ballots count. Rows are ordered by vote count descending, then
candidate id ascending, so unchanged data always yields the same output.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from django.db.models import Count
from django.db.models.functions import ExtractDay, ExtractHour
from django.utils import timezone

from elections.models import ABSTAIN, VotingSession

from .models import Vote


@dataclass(frozen=True)
class CandidateResult:
    candidate: str
    name: str
    count: int
    percentage: float


@dataclass(frozen=True)
class PublicTally:
    session: VotingSession
    results: Tuple[CandidateResult, ...]
    total_votes: int


@dataclass(frozen=True)
class BallotDetail:
    voter_id: int
    username: str
    name: str
    email: str
    role: str
    voted_at: object
    ip_address: str


@dataclass(frozen=True)
class AdminCandidateResult:
    candidate: str
    name: str
    count: int
    percentage: float
    ballots: Tuple[BallotDetail, ...]


@dataclass(frozen=True)
class AdminTally:
    session: VotingSession
    results: Tuple[AdminCandidateResult, ...]
    total_votes: int


def percentage(count: int, total: int) -> float:
    if total == 0:
        return 0.0
    return round(count / total * 100, 2)


def _verified_ballots(session: VotingSession):
    return Vote.objects.verified().for_session(session)


def _aggregate(session: VotingSession) -> Tuple[List[Tuple[str, str, int]], int]:
    """
    Count verified ballots per candidate.

    Returns ``([(candidate, name, count), ...], total)`` sorted by count
    descending then candidate id. Every listed candidate appears, with zero
    if nobody chose it; abstentions appear when the session allows them.
    """
    counts: Dict[str, int] = dict(
        _verified_ballots(session)
        .order_by()
        .values("candidate")
        .annotate(count=Count("id"))
        .values_list("candidate", "count")
    )

    names = {candidate.key: candidate.name for candidate in session.candidates.all()}
    if session.allow_abstain or ABSTAIN in counts:
        names.setdefault(ABSTAIN, "Abstain")
    for key in counts:
        names.setdefault(key, key)

    rows = [(key, name, counts.get(key, 0)) for key, name in names.items()]
    rows.sort(key=lambda row: (-row[2], row[0]))
    return rows, sum(counts.values())


def public_tally(session: VotingSession) -> PublicTally:
    rows, total = _aggregate(session)
    return PublicTally(
        session=session,
        results=tuple(
            CandidateResult(candidate=key, name=name, count=count, percentage=percentage(count, total))
            for key, name, count in rows
        ),
        total_votes=total,
    )


def admin_tally(session: VotingSession) -> AdminTally:
    """Public tally plus, for each candidate, who voted for it, when and from where."""
    rows, total = _aggregate(session)

    ballots: Dict[str, List[BallotDetail]] = {}
    for vote in _verified_ballots(session).select_related("voter").order_by("created_at", "id"):
        voter = vote.voter
        ballots.setdefault(vote.candidate, []).append(
            BallotDetail(
                voter_id=voter.pk,
                username=voter.username,
                name=voter.get_full_name(),
                email=voter.email,
                role=voter.role,
                voted_at=vote.created_at,
                ip_address=vote.ip_address,
            )
        )

    return AdminTally(
        session=session,
        results=tuple(
            AdminCandidateResult(
                candidate=key,
                name=name,
                count=count,
                percentage=percentage(count, total),
                ballots=tuple(ballots.get(key, ())),
            )
            for key, name, count in rows
        ),
        total_votes=total,
    )


def votes_by_hour(session: VotingSession, now: Optional[object] = None) -> List[Dict[str, int]]:
    """
    Verified ballots cast in the trailing 24 hours, bucketed by day of month
    and hour of day, ordered by day then hour.
    """
    now = now or timezone.now()
    buckets = (
        _verified_ballots(session)
        .filter(created_at__gte=now - timedelta(hours=24), created_at__lte=now)
        .annotate(day=ExtractDay("created_at"), hour=ExtractHour("created_at"))
        .order_by()
        .values("day", "hour")
        .annotate(count=Count("id"))
        .order_by("day", "hour")
    )
    return [{"day": b["day"], "hour": b["hour"], "count": b["count"]} for b in buckets]
