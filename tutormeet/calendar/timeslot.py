"""Validate proposed meeting time slots."""
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from tutormeet.core.config import settings
from tutormeet.core.errors import InvalidTimeSlot


@dataclass(frozen=True)
class TimeSlot:
    """A validated meeting window."""

    start_time: datetime
    end_time: datetime

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time


def _parse_start(scheduled_time: datetime | str | None) -> datetime:
    """Parse a start instant; naive values are taken to be UTC."""
    if isinstance(scheduled_time, datetime):
        start = scheduled_time
    elif isinstance(scheduled_time, str) and scheduled_time.strip():
        try:
            start = datetime.fromisoformat(scheduled_time.strip().replace("Z", "+00:00"))
        except ValueError:
            raise InvalidTimeSlot("Invalid scheduledTime") from None
    else:
        raise InvalidTimeSlot("Invalid scheduledTime")

    if start.tzinfo is None:
        start = start.replace(tzinfo=UTC)
    return start.astimezone(UTC)


def _parse_duration(duration_minutes) -> float:
    if duration_minutes is None or isinstance(duration_minutes, bool):
        raise InvalidTimeSlot("Invalid durationMinutes")
    try:
        minutes = float(duration_minutes)
    except (TypeError, ValueError):
        raise InvalidTimeSlot("Invalid durationMinutes") from None
    if not minutes > 0:  # also rejects NaN
        raise InvalidTimeSlot("Invalid durationMinutes")
    return minutes


def validate_time_slot(
    scheduled_time: datetime | str | None,
    duration_minutes,
    *,
    now: datetime | None = None,
) -> TimeSlot:
    """
    Validate a proposed (start, duration) pair.

    The start must lie after ``now`` minus a short grace period, which
    absorbs clock skew and queueing between the client submitting the
    request and this check running.

    Raises:
        InvalidTimeSlot: If the start cannot be parsed, the duration is
            missing or not positive, the end is not after the start, or
            the start is already in the past.
    """
    start_time = _parse_start(scheduled_time)
    minutes = _parse_duration(duration_minutes)

    try:
        end_time = start_time + timedelta(minutes=minutes)
    except OverflowError:
        raise InvalidTimeSlot("Invalid time range") from None
    if end_time <= start_time:
        raise InvalidTimeSlot("Invalid time range")

    now = now or datetime.now(UTC)
    if start_time <= now - timedelta(seconds=settings.time_slot_grace_seconds):
        raise InvalidTimeSlot("Scheduled time must be in the future")

    return TimeSlot(start_time=start_time, end_time=end_time)
