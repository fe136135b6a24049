"""Tutor model carrying the Google credential and the permanent meeting link.

The tutor record proper (profile, subjects, availability) is owned by the
marketplace data model. This service persists only what the meeting core
mutates: the tutor's OAuth credential, the tutor's permanent Google Meet
link, and the lease that serialises permanent-link provisioning. All
three are embedded as columns on the tutor row so that one row holds the
whole per-tutor state.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from tutormeet.models.meeting import AdHocMeeting


class Tutor(SQLModel, table=True):
    """A tutor and the meeting resources the tutor owns.

    Credential columns are mutated only by ``tutormeet.oauth.session``;
    permanent-link columns only by ``tutormeet.meetings.permanent``.

    Attributes:
        id: Unique identifier (UUID), shared with the marketplace tutor.
        display_name: Name shown in meeting titles and logs.
        oauth_refresh_token: Long-lived Google refresh token. Absent means
            the tutor is not connected.
        oauth_scopes: Comma-separated list of granted OAuth scopes.
        oauth_expires_at: Expiry of the last access token obtained.
        oauth_connected_at: When the current credential was stored.
        oauth_revoked_at: Set by an explicit revoke, cleared on reconnect.
        permanent_join_url: Google Meet URL of the permanent room.
        permanent_meeting_id: Conference id of the permanent room.
        permanent_calendar_event_id: Calendar event backing the room.
        permanent_created_at: When the current room was provisioned.
        permanent_last_used_at: Last time the room was handed out.
        permanent_usage_count: Times the room was handed out or created.
        permanent_invalidated_at: Set when the backing event was found
            missing or cancelled; the record is kept for its history.
        link_lock_owner: Token of the request holding the provisioning lease.
        link_lock_expires_at: When that lease lapses.
        meetings: Ad-hoc meetings created for this tutor.
    """
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    display_name: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # OAuth credential
    oauth_refresh_token: str | None = None
    oauth_scopes: str = ""  # Comma-separated list of scopes
    oauth_expires_at: datetime | None = None
    oauth_connected_at: datetime | None = None
    oauth_revoked_at: datetime | None = None

    # Permanent meeting link
    permanent_join_url: str | None = None
    permanent_meeting_id: str | None = None
    permanent_calendar_event_id: str | None = None
    permanent_created_at: datetime | None = None
    permanent_last_used_at: datetime | None = None
    permanent_usage_count: int = Field(default=0)
    permanent_invalidated_at: datetime | None = None

    # Provisioning lease
    link_lock_owner: str | None = None
    link_lock_expires_at: datetime | None = Field(default=None, index=True)

    # Relationships
    meetings: list["AdHocMeeting"] = Relationship(back_populates="tutor")

    @property
    def is_connected(self) -> bool:
        return bool(self.oauth_refresh_token)

    @property
    def scope_list(self) -> list[str]:
        return [s for s in self.oauth_scopes.split(",") if s]

    @property
    def has_active_permanent_link(self) -> bool:
        """A permanent link exists and has not been invalidated."""
        return bool(
            self.permanent_join_url
            and self.permanent_calendar_event_id
            and self.permanent_invalidated_at is None
        )
