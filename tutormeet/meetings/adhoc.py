"""One-off Google Meet meetings for scheduled sessions."""
import logging
from uuid import UUID

from sqlmodel import Session

from tutormeet.calendar.client import NOT_CONNECTED_MESSAGE, create_event_with_conferencing
from tutormeet.calendar.timeslot import validate_time_slot
from tutormeet.core.config import settings
from tutormeet.core.errors import AuthFailed
from tutormeet.models import AdHocMeeting, Tutor

logger = logging.getLogger(__name__)


def create_adhoc_meeting(
    session: Session,
    provider,
    tutor_id: UUID,
    student_id: UUID,
    title: str,
    scheduled_time,
    duration_minutes=None,
) -> dict:
    """
    Create a single-use meeting for one tutor/student session.

    Every call creates a new Google Calendar event; nothing is cached or
    reused, so no lock is needed.

    Returns:
        dict with keys: id, meeting_id, join_url, start_time, end_time

    Raises:
        InvalidTimeSlot: If the requested slot is invalid.
        AuthFailed: If the tutor has not connected a Google account. This is
            checked before any call to Google.
        MeetingError: Provider failures while creating the event.
    """
    if duration_minutes is None:
        duration_minutes = settings.default_duration_minutes
    slot = validate_time_slot(scheduled_time, duration_minutes)

    tutor = session.get(Tutor, tutor_id)
    if not tutor or not tutor.oauth_refresh_token:
        raise AuthFailed(NOT_CONNECTED_MESSAGE)

    created = create_event_with_conferencing(
        provider, title, slot.start_time, slot.end_time, tutor.oauth_refresh_token
    )

    meeting = AdHocMeeting(
        tutor_id=tutor.id,
        student_id=student_id,
        meeting_id=created.meeting_id,
        calendar_event_id=created.calendar_event_id,
        join_url=created.join_url,
        title=title,
        start_time=slot.start_time,
        end_time=slot.end_time,
    )
    session.add(meeting)
    session.commit()
    session.refresh(meeting)

    logger.info(
        f"Created ad-hoc meeting {meeting.meeting_id} for tutor {tutor_id} "
        f"and student {student_id}"
    )
    return {
        "id": meeting.id,
        "meeting_id": meeting.meeting_id,
        "join_url": meeting.join_url,
        "start_time": slot.start_time,
        "end_time": slot.end_time,
    }
