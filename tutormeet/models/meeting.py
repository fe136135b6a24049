"""Ad-hoc meeting model for one-off sessions.

An ad-hoc meeting is created for a single scheduled session and is never
reused. Each record corresponds to exactly one Google Calendar event and is
immutable once written; the session that requested it keeps a reference
to it by id.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Optional
from uuid import UUID, uuid4

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from tutormeet.models.tutor import Tutor


class AdHocMeeting(SQLModel, table=True):
    """A single-use Google Meet meeting between a tutor and a student.

    Attributes:
        id: Unique identifier (UUID).
        tutor_id: Foreign key to the owning Tutor.
        student_id: The learner the meeting was booked for. Learners live in
            the marketplace data model, so this is a plain reference.
        meeting_id: Google Meet conference id.
        calendar_event_id: Google Calendar event backing the meeting.
        join_url: URL participants use to join.
        title: Event summary shown in the calendar.
        start_time: Scheduled start.
        end_time: Scheduled end.
        created_at: When the record was written.
        tutor: Reference to the parent Tutor object.
    """
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tutor_id: UUID = Field(foreign_key="tutor.id", index=True)
    student_id: UUID = Field(index=True)
    meeting_id: str
    calendar_event_id: str
    join_url: str
    title: str
    start_time: datetime
    end_time: datetime
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # Relationship
    tutor: Optional["Tutor"] = Relationship(back_populates="meetings")
