"""Meeting link routes."""
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlmodel import Session, SQLModel

from tutormeet.calendar.provider import get_provider
from tutormeet.core.database import get_session
from tutormeet.meetings.adhoc import create_adhoc_meeting
from tutormeet.meetings.permanent import get_or_create_permanent_link
from tutormeet.routes.identity import current_tutor_id

router = APIRouter(prefix="/meetings", tags=["meetings"])


class AdHocMeetingRequest(SQLModel):
    student_id: UUID
    title: str
    scheduled_time: datetime | str
    duration_minutes: float | None = None


class PermanentLinkRequest(SQLModel):
    title: str | None = None
    scheduled_time: datetime | str | None = None
    duration_minutes: float | None = None
    force_new: bool = False


@router.post("/adhoc", status_code=201)
def create_meeting(
    body: AdHocMeetingRequest,
    tutor_id: UUID = Depends(current_tutor_id),
    session: Session = Depends(get_session),
    provider=Depends(get_provider),
):
    """
    Create a one-off Google Meet meeting for a scheduled session.

    Returns JSON with meeting_id, join_url, start_time and end_time. Fails
    with 401 if the tutor has not connected Google and 400 for a slot in
    the past or a non-positive duration.
    """
    return create_adhoc_meeting(
        session,
        provider,
        tutor_id,
        body.student_id,
        body.title,
        body.scheduled_time,
        body.duration_minutes,
    )


@router.post("/permanent")
def permanent_link(
    body: PermanentLinkRequest | None = None,
    tutor_id: UUID = Depends(current_tutor_id),
    session: Session = Depends(get_session),
    provider=Depends(get_provider),
):
    """
    Get the tutor's permanent Google Meet link, creating it if needed.

    The cached link is checked against Google Calendar first and reused
    while its event is alive. Set force_new to replace it regardless.
    """
    body = body or PermanentLinkRequest()
    return get_or_create_permanent_link(
        session,
        provider,
        tutor_id,
        title=body.title,
        scheduled_time=body.scheduled_time,
        duration_minutes=body.duration_minutes,
        force_new=body.force_new,
    )
