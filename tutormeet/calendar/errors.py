"""Translate upstream Google failures into the meeting error taxonomy."""
import json
import logging

from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError

from tutormeet.calendar.provider import TokenEndpointError
from tutormeet.core.errors import (
    AuthFailed,
    MeetingError,
    PermissionDenied,
    ProviderError,
    QuotaExceeded,
)

logger = logging.getLogger(__name__)

# 403 reasons Google uses for quota and rate limiting
QUOTA_REASONS = frozenset(
    {"quotaExceeded", "rateLimitExceeded", "userRateLimitExceeded", "dailyLimitExceeded"}
)

# OAuth error codes meaning the stored refresh token is no longer usable
INVALID_GRANT_ERRORS = frozenset({"invalid_grant", "invalid_token"})


def _load_json(content) -> dict:
    if isinstance(content, dict):
        return content
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    if not content:
        return {}
    try:
        payload = json.loads(content)
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def _describe_payload(payload: dict) -> tuple[str | None, str | None, str | None]:
    """Return (reason, oauth_error, message) from a Google error body.

    Calendar API errors nest details under ``error``; OAuth token endpoint
    errors put a string code in ``error`` and text in ``error_description``.
    """
    error = payload.get("error")
    if isinstance(error, dict):
        errors = error.get("errors") or [{}]
        reason = errors[0].get("reason") if isinstance(errors[0], dict) else None
        return reason, None, error.get("message")
    if isinstance(error, str):
        return None, error, payload.get("error_description") or error
    return None, None, None


def _describe(exc: Exception) -> tuple[int | None, str | None, str | None, str]:
    """Extract (status, reason, oauth_error, message) from any upstream failure."""
    status = reason = oauth_error = message = None

    if isinstance(exc, HttpError):
        status = exc.resp.status
        reason, oauth_error, message = _describe_payload(_load_json(exc.content))
    elif isinstance(exc, TokenEndpointError):
        status = exc.status
        reason, oauth_error, message = _describe_payload(exc.payload)
    elif isinstance(exc, RefreshError):
        # google-auth passes the token endpoint response as the second arg
        payload = exc.args[1] if len(exc.args) > 1 else None
        reason, oauth_error, message = _describe_payload(_load_json(payload))
        if oauth_error is None and "invalid_grant" in str(exc):
            oauth_error = "invalid_grant"
    else:
        # oauthlib and requests-style errors
        status = getattr(exc, "status_code", None)
        error_code = getattr(exc, "error", None)
        if isinstance(error_code, str):
            oauth_error = error_code
            message = getattr(exc, "description", None)

    if isinstance(status, str) and status.isdigit():
        status = int(status)
    if not isinstance(status, int):
        status = None
    return status, reason, oauth_error, message or str(exc) or exc.__class__.__name__


def provider_status(exc: Exception) -> int | None:
    """HTTP status of an upstream failure, if it carried one."""
    return _describe(exc)[0]


def map_provider_error(exc: Exception) -> MeetingError:
    """
    Classify an upstream failure.

    Errors that are already classified are returned unchanged, so a layer
    that catches everything can re-map without double wrapping.
    """
    if isinstance(exc, MeetingError):
        return exc

    status, reason, oauth_error, message = _describe(exc)

    if oauth_error in INVALID_GRANT_ERRORS or status == 401:
        mapped = AuthFailed(message)
    elif status == 403 and reason in QUOTA_REASONS:
        mapped = QuotaExceeded(message)
    elif status == 429:
        mapped = QuotaExceeded(message)
    elif status == 403:
        mapped = PermissionDenied(message)
    else:
        mapped = ProviderError(message, status_code=status or 500)

    logger.debug(f"Mapped {exc.__class__.__name__} (status={status}) to {mapped.code}")
    return mapped
