"""Create and inspect Google Calendar events that carry a Meet conference."""
import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

from tutormeet.calendar.errors import map_provider_error, provider_status
from tutormeet.core.errors import AuthFailed, MeetingError, MeetingLinkFailed, MeetingLinkInvalid

logger = logging.getLogger(__name__)

NOT_CONNECTED_MESSAGE = (
    "Google account is not connected. Please connect your Google account first."
)


@dataclass(frozen=True)
class CreatedEvent:
    join_url: str
    meeting_id: str
    calendar_event_id: str


@dataclass(frozen=True)
class EventStatus:
    """Liveness of a calendar event as reported by Google."""

    valid: bool
    join_url: str | None = None
    reason: str | None = None

    @classmethod
    def invalid(cls) -> "EventStatus":
        return cls(valid=False, reason=MeetingLinkInvalid.code)


def _rfc3339(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


def extract_join_url(google_event: dict) -> str | None:
    """Meet URL of an event: ``hangoutLink``, else the video entry point."""
    if google_event.get("hangoutLink"):
        return google_event["hangoutLink"]

    entry_points = (google_event.get("conferenceData") or {}).get("entryPoints") or []
    for entry_point in entry_points:
        if entry_point.get("entryPointType") == "video" and entry_point.get("uri"):
            return entry_point["uri"]
    if entry_points:
        return entry_points[0].get("uri")
    return None


def build_event_body(title: str, start_time: datetime, end_time: datetime) -> dict:
    """
    Event insert body requesting a new Google Meet conference.

    The conference request id is fresh for every call; Google uses it to
    de-duplicate retried create requests, so reusing one would hand back
    the conference of an earlier event.
    """
    return {
        "summary": title,
        "start": {"dateTime": _rfc3339(start_time)},
        "end": {"dateTime": _rfc3339(end_time)},
        "conferenceData": {
            "createRequest": {
                "requestId": uuid4().hex,
                "conferenceSolutionKey": {"type": "hangoutsMeet"},
            }
        },
    }


def create_event_with_conferencing(
    provider,
    title: str,
    start_time: datetime,
    end_time: datetime,
    refresh_token: str | None,
) -> CreatedEvent:
    """
    Create a calendar event with a Google Meet conference for one tutor.

    Raises:
        AuthFailed: If no refresh token is stored (checked before any call)
            or Google rejects the credential.
        MeetingLinkFailed: If Google created the event but returned no
            join URL, meeting id or event id.
        MeetingError: Any other classified upstream failure.
    """
    if not refresh_token:
        raise AuthFailed(NOT_CONNECTED_MESSAGE)

    try:
        google_event = provider.insert_event(
            refresh_token, build_event_body(title, start_time, end_time)
        )
    except MeetingError:
        raise
    except Exception as e:
        raise map_provider_error(e) from e

    google_event = google_event or {}
    event_id = google_event.get("id")
    join_url = extract_join_url(google_event)
    meeting_id = (google_event.get("conferenceData") or {}).get("conferenceId") or event_id

    if not join_url or not meeting_id or not event_id:
        logger.error(f"Calendar event created without a usable Meet link: {event_id}")
        raise MeetingLinkFailed()

    logger.info(f"Created calendar event {event_id} with meeting {meeting_id}")
    return CreatedEvent(join_url=join_url, meeting_id=meeting_id, calendar_event_id=event_id)


def get_event_status(provider, calendar_event_id: str, refresh_token: str | None) -> EventStatus:
    """
    Check whether a calendar event still backs a usable meeting link.

    A missing token, a deleted or cancelled event, or an event without a
    join URL all mean the cached link is stale. Any other failure points at
    the provider or the credential and is raised.
    """
    if not refresh_token:
        return EventStatus.invalid()

    try:
        google_event = provider.get_event(refresh_token, calendar_event_id)
    except MeetingError:
        raise
    except Exception as e:
        if provider_status(e) in (404, 410):
            logger.info(f"Calendar event {calendar_event_id} no longer exists")
            return EventStatus.invalid()
        raise map_provider_error(e) from e

    if not google_event or google_event.get("status") == "cancelled":
        return EventStatus.invalid()

    join_url = extract_join_url(google_event)
    if not join_url:
        return EventStatus.invalid()
    return EventStatus(valid=True, join_url=join_url)
