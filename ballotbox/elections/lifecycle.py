"""
Voting session state machine.

A session moves upcoming -> active -> completed purely as a function of the
clock and its stored voting window; `cancelled` is set by an administrator
and never left again. Status is recomputed on every read. Writing the
recomputed value back is a cache refresh only: failures are logged and the
read carries on with the computed value.
"""

import logging

from django.db import DatabaseError, transaction
from django.utils import timezone

from .models import VotingSession

logger = logging.getLogger("elections")

Status = VotingSession.Status


def compute_status(session: VotingSession, now=None) -> str:
    """Status of `session` at `now` (defaults to the current time)."""
    if session.status == Status.CANCELLED:
        return Status.CANCELLED

    now = now or timezone.now()
    if now < session.voting_start_time:
        return Status.UPCOMING
    if now <= session.voting_end_time:
        return Status.ACTIVE
    return Status.COMPLETED


def is_voting_active(session: VotingSession, now=None) -> bool:
    return compute_status(session, now) == Status.ACTIVE


def refresh_status(session: VotingSession, now=None) -> str:
    """
    Recompute the status, update the instance in memory and try to persist
    it. Returns the computed status whether or not the write succeeded.
    """
    status = compute_status(session, now)
    if status == session.status:
        return status

    session.status = status
    try:
        # Savepoint so a failed write cannot poison an enclosing transaction.
        with transaction.atomic():
            (
                VotingSession.objects.filter(pk=session.pk)
                .exclude(status=Status.CANCELLED)
                .update(status=status)
            )
        logger.debug(f"Session {session.session_id} status persisted as {status}")
    except DatabaseError as e:
        logger.warning(f"Could not persist status {status} for session {session.session_id}: {e}")
    return status


def cancel_session(session: VotingSession, actor=None) -> VotingSession:
    """Cancel a session. Cancelling twice is a no-op."""
    if session.status == Status.CANCELLED:
        return session

    session.status = Status.CANCELLED
    session.save(update_fields=["status", "updated_at"])
    logger.info(
        f"Session {session.session_id} cancelled by {getattr(actor, 'username', 'system')}"
    )
    return session
