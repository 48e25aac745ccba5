"""
Result disclosure gate.

Administrators may always see a session's tally. Everyone else sees it once
the session is flagged public or its announcement time has passed. The
decision is recomputed on every request.
"""

import logging

from django.utils import timezone

from .exceptions import NotYetAnnounced

logger = logging.getLogger("voting")


class CallerRole:
    PUBLIC = "public"
    ADMIN = "admin"


def role_for(user):
    if user is not None and user.is_authenticated and getattr(user, "is_admin", False):
        return CallerRole.ADMIN
    return CallerRole.PUBLIC


def should_show_results(session, now=None) -> bool:
    now = now or timezone.now()
    return session.is_results_public or now >= session.result_announcement_time


def can_reveal(session, role, now=None) -> bool:
    if role == CallerRole.ADMIN:
        return True
    return should_show_results(session, now)


def check_disclosure(session, role, now=None) -> None:
    """Raise NotYetAnnounced when `role` may not see `session`'s results yet."""
    if not can_reveal(session, role, now):
        logger.info(f"Results for {session.session_id} withheld until {session.result_announcement_time}")
        raise NotYetAnnounced(session.result_announcement_time)
