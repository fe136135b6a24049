"""Permanent Google Meet link per tutor.

Each tutor has at most one permanent room. The local record is a cache of
a Google Calendar event; Google decides whether it is still alive, so the
record is validated against Google every time it is handed out instead of
trusting a time-based expiry.

States of a tutor's record:

    Unset --create--> Active
    Active --reuse--> Active (same event, usage counted)
    Active --event missing/cancelled--> Invalidated --create--> Active
    any --force_new--> Active (new event)

Invalidated records are kept (with their usage history) until the next
successful creation overwrites them; they are never deleted.

The read-validate-create sequence runs under the tutor's provisioning
lease so two concurrent requests cannot both create an event and leave one
of them orphaned in the tutor's calendar. Every write is committed together
with a check that the lease is still held, so a request whose lease lapsed
mid-flight stores nothing.
"""
import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlmodel import Session

from tutormeet.calendar.client import create_event_with_conferencing, get_event_status
from tutormeet.calendar.timeslot import validate_time_slot
from tutormeet.core.config import settings
from tutormeet.core.errors import LinkProvisioningBusy, MeetingError, TutorNotFound
from tutormeet.core.locking import renew, tutor_lock
from tutormeet.models import Tutor

logger = logging.getLogger(__name__)
lifecycle_logger = logging.getLogger("tutormeet.lifecycle")

DEFAULT_TITLE = "Permanent Tutor Room"


@dataclass(frozen=True)
class LinkResult:
    """Outcome of a best-effort permanent link request.

    Exactly one of ``link`` and ``error`` is set.
    """

    link: dict | None = None
    error: MeetingError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _emit(event: str, tutor: Tutor, calendar_event_id: str | None, meeting_id: str | None):
    """Write a structured lifecycle record for audit."""
    lifecycle_logger.info(
        json.dumps(
            {
                "event": f"permanent_link_{event}",
                "tutor_id": str(tutor.id),
                "calendar_event_id": calendar_event_id,
                "meeting_id": meeting_id,
            }
        )
    )


def format_permanent_link(tutor: Tutor) -> dict:
    return {
        "meeting_id": tutor.permanent_meeting_id,
        "join_url": tutor.permanent_join_url,
        "created_at": tutor.permanent_created_at,
        "usage_count": tutor.permanent_usage_count,
        "last_used_at": tutor.permanent_last_used_at,
        "invalidated_at": tutor.permanent_invalidated_at,
        "calendar_event_id": tutor.permanent_calendar_event_id,
    }


def _reuse_or_invalidate(session: Session, provider, tutor: Tutor, owner: str) -> bool:
    """Validate the active link. Returns True if it was reused."""
    status = get_event_status(
        provider, tutor.permanent_calendar_event_id, tutor.oauth_refresh_token
    )
    now = datetime.now(UTC)

    if status.valid:
        # Google is authoritative for the join URL of a live event
        tutor.permanent_join_url = status.join_url
        tutor.permanent_usage_count += 1
        tutor.permanent_last_used_at = now
        session.add(tutor)
        renew(session, tutor.id, owner)
        session.commit()
        _emit("reused", tutor, tutor.permanent_calendar_event_id, tutor.permanent_meeting_id)
        return True

    tutor.permanent_invalidated_at = now
    session.add(tutor)
    renew(session, tutor.id, owner)
    session.commit()
    _emit("invalidated", tutor, tutor.permanent_calendar_event_id, tutor.permanent_meeting_id)
    return False


def _create(
    session: Session,
    provider,
    tutor: Tutor,
    owner: str,
    title: str,
    scheduled_time,
    duration_minutes,
    force_new: bool,
) -> None:
    tutor_id = tutor.id
    had_existing = bool(tutor.permanent_join_url)

    if scheduled_time is None:
        # Google rejects events starting in the past; start the room shortly ahead
        scheduled_time = datetime.now(UTC) + timedelta(minutes=settings.permanent_link_lead_minutes)
    slot = validate_time_slot(scheduled_time, duration_minutes)

    created = create_event_with_conferencing(
        provider, title, slot.start_time, slot.end_time, tutor.oauth_refresh_token
    )

    now = datetime.now(UTC)
    tutor.permanent_join_url = created.join_url
    tutor.permanent_meeting_id = created.meeting_id
    tutor.permanent_calendar_event_id = created.calendar_event_id
    tutor.permanent_created_at = now
    tutor.permanent_last_used_at = now
    tutor.permanent_invalidated_at = None
    tutor.permanent_usage_count += 1
    session.add(tutor)
    try:
        renew(session, tutor_id, owner)
    except LinkProvisioningBusy:
        logger.warning(
            f"Calendar event {created.calendar_event_id} for tutor {tutor_id} "
            f"was created after the lease lapsed and is not stored"
        )
        raise
    session.commit()

    _emit(
        "regenerated" if had_existing or force_new else "assigned",
        tutor,
        created.calendar_event_id,
        created.meeting_id,
    )


def get_or_create_permanent_link(
    session: Session,
    provider,
    tutor_id: UUID,
    title: str | None = None,
    scheduled_time=None,
    duration_minutes=None,
    force_new: bool = False,
) -> dict:
    """
    Return the tutor's permanent meeting link, provisioning it if needed.

    A live link is reused as is. A link whose event was deleted or
    cancelled is invalidated and replaced. ``force_new`` always creates a
    new event.

    Args:
        session: Database session.
        provider: Google capability object (see ``GoogleCalendarProvider``).
        tutor_id: Tutor owning the link.
        title: Event summary for a newly created room.
        scheduled_time: Start of a newly created room; defaults to a couple
            of minutes from now.
        duration_minutes: Length of a newly created room's event.
        force_new: Create a new event even if the current one is valid.

    Returns:
        dict with keys: meeting_id, join_url, created_at, usage_count,
        last_used_at, invalidated_at, calendar_event_id

    Raises:
        TutorNotFound: If the tutor does not exist.
        LinkProvisioningBusy: If another request holds the tutor's lease
            for too long, or took it over after it lapsed under this one.
        MeetingError: Slot, credential or provider failures.
    """
    if session.get(Tutor, tutor_id) is None:
        raise TutorNotFound()
    if duration_minutes is None:
        duration_minutes = settings.default_duration_minutes

    # End the read so the lease is taken with nothing pending on the session
    session.commit()

    with tutor_lock(session.get_bind(), tutor_id) as owner:
        try:
            # Re-read: another request may have provisioned while we waited
            tutor = session.get(Tutor, tutor_id, populate_existing=True)

            if not force_new and tutor.has_active_permanent_link:
                if _reuse_or_invalidate(session, provider, tutor, owner):
                    return format_permanent_link(tutor)

            _create(
                session,
                provider,
                tutor,
                owner,
                title or DEFAULT_TITLE,
                scheduled_time,
                duration_minutes,
                force_new,
            )
            return format_permanent_link(tutor)
        except Exception:
            session.rollback()
            raise


def try_get_or_create_permanent_link(session: Session, provider, tutor_id: UUID, **kwargs) -> LinkResult:
    """
    Best-effort variant of ``get_or_create_permanent_link``.

    Classified failures are returned instead of raised so that a caller
    for which the link is optional (for example a booking confirmation)
    decides whether its absence matters. Unclassified exceptions still
    propagate.
    """
    try:
        return LinkResult(link=get_or_create_permanent_link(session, provider, tutor_id, **kwargs))
    except MeetingError as e:
        logger.warning(f"Permanent link unavailable for tutor {tutor_id}: {e.code}")
        return LinkResult(error=e)
