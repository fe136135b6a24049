"""Tests for the OAuth credential lifecycle."""

from datetime import UTC, datetime, timedelta
from urllib.parse import parse_qs, urlparse
from uuid import uuid4

import pytest
from fakes import SCOPE, http_error
from google.auth.exceptions import RefreshError

from tutormeet.calendar.provider import AccessToken, GoogleCalendarProvider, TokenGrant
from tutormeet.core.config import settings
from tutormeet.core.errors import (
    AuthConfigurationMissing,
    AuthFailed,
    ProviderError,
    QuotaExceeded,
    TutorNotFound,
)
from tutormeet.models import Tutor
from tutormeet.oauth import session as oauth
from tutormeet.oauth.state import OAuthState, decode_state, encode_state


def _state_from_url(url: str) -> str:
    return parse_qs(urlparse(url).query)["state"][0]


class TestAuthorizationUrl:
    def test_state_identifies_tutor_and_redirect(self, provider, tutor):
        result = oauth.build_authorization_url(provider, tutor.id, "/settings")
        state = decode_state(_state_from_url(result["url"]))
        assert state.tutor_id == tutor.id
        assert state.redirect == "/settings"
        assert result["scopes"] == settings.google_oauth_scope_list

    def test_unconfigured_client(self, monkeypatch):
        monkeypatch.setattr(settings, "google_client_id", "")
        monkeypatch.setattr(settings, "google_client_secret", "")
        with pytest.raises(AuthConfigurationMissing):
            oauth.build_authorization_url(GoogleCalendarProvider(), uuid4())

    def test_google_consent_url_requests_offline_access(self, monkeypatch):
        monkeypatch.setattr(settings, "google_client_id", "client-id.apps.googleusercontent.com")
        monkeypatch.setattr(settings, "google_client_secret", "client-secret")
        monkeypatch.setattr(settings, "google_redirect_uri", "http://localhost:8000/oauth/google/callback")

        result = oauth.build_authorization_url(GoogleCalendarProvider(), uuid4())
        query = parse_qs(urlparse(result["url"]).query)
        assert query["access_type"] == ["offline"]
        assert query["prompt"] == ["consent"]
        assert query["client_id"] == ["client-id.apps.googleusercontent.com"]
        assert SCOPE in query["scope"][0]
        assert "code_challenge" not in query
        decode_state(query["state"][0])


class TestCompleteAuthorization:
    def test_stores_refresh_token(self, session, provider, tutor):
        state = encode_state(OAuthState(tutor_id=tutor.id, redirect="/after"))
        result = oauth.complete_authorization(session, provider, "auth-code", state)

        assert result == {"redirect": "/after"}
        session.refresh(tutor)
        assert tutor.oauth_refresh_token == "refresh-new"
        assert tutor.scope_list == [SCOPE]
        assert tutor.oauth_connected_at is not None
        assert tutor.oauth_revoked_at is None
        assert tutor.is_connected

    def test_default_redirect(self, session, provider, tutor):
        state = encode_state(OAuthState(tutor_id=tutor.id))
        result = oauth.complete_authorization(session, provider, "auth-code", state)
        assert result["redirect"] == settings.frontend_url

    def test_keeps_existing_refresh_token_when_none_returned(
        self, session, provider, connected_tutor
    ):
        provider.grant = TokenGrant(refresh_token=None, scopes=[SCOPE])
        state = encode_state(OAuthState(tutor_id=connected_tutor.id))
        oauth.complete_authorization(session, provider, "auth-code", state)
        session.refresh(connected_tutor)
        assert connected_tutor.oauth_refresh_token == "refresh-stored"

    def test_no_refresh_token_at_all(self, session, provider, tutor):
        provider.grant = TokenGrant(refresh_token=None)
        state = encode_state(OAuthState(tutor_id=tutor.id))
        with pytest.raises(AuthFailed):
            oauth.complete_authorization(session, provider, "auth-code", state)
        session.refresh(tutor)
        assert tutor.oauth_refresh_token is None

    def test_reconnect_clears_revocation(self, session, provider, tutor):
        tutor.oauth_revoked_at = datetime.now(UTC)
        session.add(tutor)
        session.commit()
        oauth.complete_authorization(
            session, provider, "auth-code", encode_state(OAuthState(tutor_id=tutor.id))
        )
        session.refresh(tutor)
        assert tutor.oauth_revoked_at is None

    @pytest.mark.parametrize("code", [None, ""])
    def test_missing_code(self, session, provider, tutor, code):
        state = encode_state(OAuthState(tutor_id=tutor.id))
        with pytest.raises(AuthFailed):
            oauth.complete_authorization(session, provider, code, state)
        assert provider.calls["exchange_code"] == 0

    def test_missing_or_bad_state(self, session, provider):
        for state in (None, "forged.state"):
            with pytest.raises(AuthFailed):
                oauth.complete_authorization(session, provider, "auth-code", state)
        assert provider.calls["exchange_code"] == 0

    def test_unknown_tutor(self, session, provider):
        state = encode_state(OAuthState(tutor_id=uuid4()))
        with pytest.raises(TutorNotFound):
            oauth.complete_authorization(session, provider, "auth-code", state)

    def test_exchange_failure_is_mapped(self, session, provider, tutor):
        provider.errors["exchange_code"] = http_error(429)
        state = encode_state(OAuthState(tutor_id=tutor.id))
        with pytest.raises(QuotaExceeded):
            oauth.complete_authorization(session, provider, "auth-code", state)


class TestStatus:
    def test_missing_token(self, session, provider, tutor):
        result = oauth.get_status(session, provider, tutor.id)
        assert result == {"connected": False, "expires_at": None, "scopes": [], "status": "missing_token"}
        assert provider.total_calls == 0

    def test_unknown_tutor_reports_missing_token(self, session, provider):
        assert oauth.get_status(session, provider, uuid4())["status"] == "missing_token"

    def test_connected(self, session, provider, connected_tutor):
        result = oauth.get_status(session, provider, connected_tutor.id)
        assert result["connected"] is True
        assert result["status"] == "connected"
        assert result["scopes"] == [SCOPE]
        assert result["expires_at"] == provider.info.expires_at

    def test_revoked_grant_is_reported_not_raised(self, session, provider, connected_tutor):
        provider.errors["fetch_access_token"] = RefreshError(
            "invalid_grant: Token has been expired or revoked.",
            {"error": "invalid_grant"},
        )
        result = oauth.get_status(session, provider, connected_tutor.id)
        assert result["status"] == "invalid_grant"
        assert result["connected"] is False

    def test_no_access_token(self, session, provider, connected_tutor):
        provider.access_token = AccessToken(token=None)
        result = oauth.get_status(session, provider, connected_tutor.id)
        assert result["status"] == "token_error"
        assert provider.calls["token_info"] == 0

    def test_infrastructure_failure_raises(self, session, provider, connected_tutor):
        provider.errors["token_info"] = http_error(503)
        with pytest.raises(ProviderError):
            oauth.get_status(session, provider, connected_tutor.id)

    def test_status_does_not_write(self, session, provider, connected_tutor):
        before = connected_tutor.oauth_expires_at
        oauth.get_status(session, provider, connected_tutor.id)
        session.refresh(connected_tutor)
        assert connected_tutor.oauth_expires_at == before


class TestForceRefresh:
    def test_records_new_expiry(self, session, provider, connected_tutor):
        expires_at = datetime.now(UTC).replace(microsecond=0) + timedelta(hours=2)
        provider.info = provider.info.__class__(scopes=[SCOPE], expires_at=expires_at)

        result = oauth.force_refresh(session, provider, connected_tutor.id)
        assert result["status"] == "refreshed"
        assert result["connected"] is True
        assert result["expires_at"] == expires_at
        session.refresh(connected_tutor)
        assert connected_tutor.oauth_expires_at.replace(tzinfo=UTC) == expires_at

    def test_not_connected(self, session, provider, tutor):
        with pytest.raises(AuthFailed):
            oauth.force_refresh(session, provider, tutor.id)

    def test_revoked_grant_raises(self, session, provider, connected_tutor):
        provider.errors["fetch_access_token"] = RefreshError("invalid_grant: Bad Request")
        with pytest.raises(AuthFailed):
            oauth.force_refresh(session, provider, connected_tutor.id)

    def test_no_access_token_raises(self, session, provider, connected_tutor):
        provider.access_token = AccessToken(token=None)
        with pytest.raises(AuthFailed):
            oauth.force_refresh(session, provider, connected_tutor.id)


class TestRevoke:
    def test_revokes_and_forgets(self, session, provider, connected_tutor):
        assert oauth.revoke(session, provider, connected_tutor.id) == {"revoked": True}
        assert provider.revoked == ["refresh-stored"]
        session.refresh(connected_tutor)
        assert connected_tutor.oauth_refresh_token is None
        assert connected_tutor.oauth_revoked_at is not None
        assert not connected_tutor.is_connected

    def test_idempotent(self, session, provider, connected_tutor):
        oauth.revoke(session, provider, connected_tutor.id)
        assert oauth.revoke(session, provider, connected_tutor.id) == {"revoked": True}
        assert provider.calls["revoke"] == 1

    def test_never_connected(self, session, provider, tutor):
        assert oauth.revoke(session, provider, tutor.id) == {"revoked": True}
        assert provider.total_calls == 0

    def test_upstream_failure_keeps_credential(self, session, provider, connected_tutor):
        provider.errors["revoke"] = http_error(500)
        with pytest.raises(ProviderError):
            oauth.revoke(session, provider, connected_tutor.id)
        session.refresh(connected_tutor)
        assert connected_tutor.oauth_refresh_token == "refresh-stored"

    def test_status_after_revoke(self, session, provider, connected_tutor):
        oauth.revoke(session, provider, connected_tutor.id)
        assert oauth.get_status(session, provider, connected_tutor.id)["status"] == "missing_token"


def test_tutor_model_scope_list(session):
    tutor = Tutor(display_name="Scopes", oauth_scopes=f"{SCOPE},openid")
    assert tutor.scope_list == [SCOPE, "openid"]
