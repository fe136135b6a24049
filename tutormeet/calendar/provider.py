"""Google identity and Calendar capabilities used by the meeting core.

Every call is scoped to one tutor: Calendar requests are authenticated
with the refresh token passed in, never with a system-wide credential.
Failures are raised as they come from the Google libraries; classifying
them is the caller's job (see ``tutormeet.calendar.errors``).
"""
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from urllib.parse import urlencode

import httplib2
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build

from tutormeet.core.config import settings
from tutormeet.core.errors import AuthConfigurationMissing

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
GOOGLE_TOKENINFO_URI = "https://oauth2.googleapis.com/tokeninfo"
GOOGLE_REVOKE_URI = "https://oauth2.googleapis.com/revoke"

# Google may grant fewer scopes than requested (granular consent)
os.environ.setdefault("OAUTHLIB_RELAX_TOKEN_SCOPE", "1")


@dataclass(frozen=True)
class TokenGrant:
    """Result of exchanging an authorization code."""

    refresh_token: str | None
    scopes: list[str] = field(default_factory=list)
    expires_at: datetime | None = None


@dataclass(frozen=True)
class AccessToken:
    token: str | None
    expires_at: datetime | None = None


@dataclass(frozen=True)
class TokenInfo:
    """Token metadata reported by Google's tokeninfo endpoint."""

    scopes: list[str] = field(default_factory=list)
    expires_at: datetime | None = None


class TokenEndpointError(Exception):
    """Non-200 response from the tokeninfo or revoke endpoint."""

    def __init__(self, status: int, payload: dict):
        self.status = status
        self.payload = payload
        detail = payload.get("error_description") or payload.get("error") or "unknown error"
        super().__init__(f"Google token endpoint returned {status}: {detail}")


class TimeoutRequest(Request):
    """google-auth transport that applies the configured provider timeout."""

    def __call__(self, url, method="GET", body=None, headers=None, timeout=None, **kwargs):
        return super().__call__(
            url,
            method=method,
            body=body,
            headers=headers,
            timeout=timeout or settings.provider_timeout_seconds,
            **kwargs,
        )


def _parse_scopes(value) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return value.split()
    return list(value)


class GoogleCalendarProvider:
    """Google OAuth and Calendar API calls on behalf of individual tutors."""

    def is_configured(self) -> bool:
        return bool(
            settings.google_client_id
            and settings.google_client_secret
            and settings.google_redirect_uri
        )

    def _client_config(self) -> dict:
        if not self.is_configured():
            raise AuthConfigurationMissing()
        return {
            "web": {
                "client_id": settings.google_client_id,
                "client_secret": settings.google_client_secret,
                "auth_uri": GOOGLE_AUTH_URI,
                "token_uri": GOOGLE_TOKEN_URI,
                "redirect_uris": [settings.google_redirect_uri],
            }
        }

    def _flow(self) -> Flow:
        # No PKCE verifier: the callback may land on a different worker, and
        # nothing is kept server-side between the two legs of the flow.
        return Flow.from_client_config(
            self._client_config(),
            scopes=settings.google_oauth_scope_list,
            redirect_uri=settings.google_redirect_uri,
            autogenerate_code_verifier=False,
        )

    def _credentials(self, refresh_token: str) -> Credentials:
        self._client_config()
        return Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=GOOGLE_TOKEN_URI,
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
        )

    def _calendar_service(self, refresh_token: str):
        """Build a Calendar API service authenticated as one tutor."""
        http = AuthorizedHttp(
            self._credentials(refresh_token),
            http=httplib2.Http(timeout=settings.provider_timeout_seconds),
        )
        return build("calendar", "v3", http=http, cache_discovery=False)

    # OAuth

    def authorization_url(self, state: str) -> str:
        url, _ = self._flow().authorization_url(
            access_type="offline",
            prompt="consent",
            include_granted_scopes="true",
            state=state,
        )
        return url

    def exchange_code(self, code: str) -> TokenGrant:
        flow = self._flow()
        flow.fetch_token(code=code, timeout=settings.provider_timeout_seconds)
        token = flow.oauth2session.token or {}

        expires_at = None
        if token.get("expires_at"):
            expires_at = datetime.fromtimestamp(float(token["expires_at"]), UTC)

        return TokenGrant(
            refresh_token=flow.credentials.refresh_token,
            scopes=_parse_scopes(token.get("scope")),
            expires_at=expires_at,
        )

    def fetch_access_token(self, refresh_token: str) -> AccessToken:
        credentials = self._credentials(refresh_token)
        credentials.refresh(TimeoutRequest())
        expiry = credentials.expiry
        if expiry is not None and expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=UTC)  # google-auth uses naive UTC
        return AccessToken(token=credentials.token, expires_at=expiry)

    def token_info(self, access_token: str) -> TokenInfo:
        response = TimeoutRequest()(
            url=f"{GOOGLE_TOKENINFO_URI}?{urlencode({'access_token': access_token})}",
            method="GET",
        )
        payload = json.loads(response.data or b"{}")
        if response.status != 200:
            raise TokenEndpointError(response.status, payload)

        expires_at = None
        if payload.get("exp"):
            expires_at = datetime.fromtimestamp(int(payload["exp"]), UTC)
        elif payload.get("expires_in"):
            expires_at = datetime.now(UTC) + timedelta(seconds=int(payload["expires_in"]))

        return TokenInfo(scopes=_parse_scopes(payload.get("scope")), expires_at=expires_at)

    def revoke(self, refresh_token: str) -> None:
        self._client_config()
        response = TimeoutRequest()(
            url=GOOGLE_REVOKE_URI,
            method="POST",
            body=urlencode({"token": refresh_token}),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        if response.status != 200:
            raise TokenEndpointError(response.status, json.loads(response.data or b"{}"))
        logger.info("Revoked Google credential")

    # Calendar

    def insert_event(self, refresh_token: str, body: dict) -> dict:
        service = self._calendar_service(refresh_token)
        return (
            service.events()
            .insert(
                calendarId=settings.google_calendar_id,
                body=body,
                conferenceDataVersion=1,
            )
            .execute()
        )

    def get_event(self, refresh_token: str, event_id: str) -> dict:
        service = self._calendar_service(refresh_token)
        return (
            service.events()
            .get(calendarId=settings.google_calendar_id, eventId=event_id)
            .execute()
        )


_provider = GoogleCalendarProvider()


def get_provider() -> GoogleCalendarProvider:
    """Dependency returning the process-wide provider."""
    return _provider
