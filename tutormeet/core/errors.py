"""Error taxonomy for the meeting core.

Every failure that leaves the meeting core is one of the classes below.
Each carries a stable ``code`` and an HTTP-style ``status_code`` hint that
the HTTP layer uses when rendering the error; the core itself never
inspects status codes of its own errors.

Errors that already belong to this taxonomy are passed through unchanged
by every layer. Anything else raised by the upstream provider is routed
through ``tutormeet.calendar.errors.map_provider_error`` exactly once.
"""


class MeetingError(Exception):
    """Base class for classified meeting-core failures.

    Attributes:
        code: Stable machine-readable error code.
        status_code: HTTP status hint for the boundary layer.
        message: Human-readable description.
    """

    code = "MEETING_ERROR"
    status_code = 500
    default_message = "Meeting operation failed"

    def __init__(self, message: str | None = None, *, status_code: int | None = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class AuthConfigurationMissing(MeetingError):
    """Google OAuth client credentials or redirect URI are not configured."""

    code = "AUTH_CONFIGURATION_MISSING"
    status_code = 500
    default_message = "Google OAuth credentials are not configured"


class AuthFailed(MeetingError):
    """The tutor's credential is missing, expired or revoked."""

    code = "AUTH_FAILED"
    status_code = 401
    default_message = "Google authorization failed"


class QuotaExceeded(MeetingError):
    code = "QUOTA_EXCEEDED"
    status_code = 429
    default_message = "Google API quota exceeded"


class PermissionDenied(MeetingError):
    code = "PERMISSION_DENIED"
    status_code = 403
    default_message = "Google API permission denied"


class ProviderError(MeetingError):
    """Unclassified upstream failure; the caller may retry with backoff."""

    code = "GOOGLE_API_ERROR"
    status_code = 500
    default_message = "Google API request failed"


class InvalidTimeSlot(MeetingError):
    code = "INVALID_TIME_SLOT"
    status_code = 400
    default_message = "Invalid time slot"


class MeetingLinkFailed(MeetingError):
    """The provider accepted the event but returned no usable meeting link."""

    code = "MEETING_LINK_FAILED"
    status_code = 500
    default_message = "Failed to generate meeting link"


class MeetingLinkInvalid(MeetingError):
    """A cached meeting link no longer resolves to a live provider event.

    Used as an internal signal that triggers invalidation; it is not
    returned to clients.
    """

    code = "MEETING_LINK_INVALID"
    status_code = 410
    default_message = "Meeting link is no longer valid"


class TutorNotFound(MeetingError):
    code = "TUTOR_NOT_FOUND"
    status_code = 404
    default_message = "Tutor not found"


class LinkProvisioningBusy(MeetingError):
    """Another request holds the tutor's permanent-link lease."""

    code = "LINK_PROVISIONING_BUSY"
    status_code = 409
    default_message = "Permanent link is being provisioned by another request"
