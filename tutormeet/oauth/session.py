"""Manage each tutor's Google OAuth credential.

This module is the only writer of the ``oauth_*`` columns on ``Tutor``.
The credential record moves through three states:

    not connected --complete_authorization--> connected
    connected --revoke--> not connected (``oauth_revoked_at`` stamped)
    connected --force_refresh--> connected (expiry updated)

Refresh tokens are exchanged for short-lived access tokens on demand and
access tokens are never stored.
"""
import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlmodel import Session

from tutormeet.calendar.errors import map_provider_error
from tutormeet.core.config import settings
from tutormeet.core.errors import AuthFailed, MeetingError, TutorNotFound
from tutormeet.models import Tutor
from tutormeet.oauth.state import OAuthState, decode_state, encode_state

logger = logging.getLogger(__name__)


def _status(connected: bool, status: str, expires_at=None, scopes=None) -> dict:
    return {
        "connected": connected,
        "expires_at": expires_at,
        "scopes": list(scopes or []),
        "status": status,
    }


def build_authorization_url(provider, tutor_id: UUID, redirect: str | None = None) -> dict:
    """
    Build the Google consent URL for a tutor.

    The returned URL requests offline access so Google issues a refresh
    token, and carries a signed state token identifying the tutor and the
    page to return to.

    Raises:
        AuthConfigurationMissing: If the OAuth client is not configured.
    """
    state = encode_state(OAuthState(tutor_id=tutor_id, redirect=redirect))
    url = provider.authorization_url(state)
    return {"url": url, "scopes": settings.google_oauth_scope_list}


def complete_authorization(
    session: Session, provider, code: str | None, state: str | None
) -> dict:
    """
    Handle the OAuth callback: exchange the code and store the credential.

    Google only returns a refresh token on first consent (or when consent
    is forced), so a missing one falls back to the token already stored.

    Returns:
        dict with key ``redirect``: where to send the browser next.

    Raises:
        AuthFailed: If the code is missing, the state is invalid, or no
            refresh token is available after the exchange.
        TutorNotFound: If the state names an unknown tutor.
    """
    if not code:
        raise AuthFailed("Missing authorization code")

    oauth_state = decode_state(state)

    tutor = session.get(Tutor, oauth_state.tutor_id)
    if not tutor:
        raise TutorNotFound()

    try:
        grant = provider.exchange_code(code)
    except MeetingError:
        raise
    except Exception as e:
        raise map_provider_error(e) from e

    refresh_token = grant.refresh_token or tutor.oauth_refresh_token
    if not refresh_token:
        raise AuthFailed("Refresh token not received. Please revoke access and reconnect.")

    tutor.oauth_refresh_token = refresh_token
    if grant.scopes:
        tutor.oauth_scopes = ",".join(grant.scopes)
    tutor.oauth_expires_at = grant.expires_at or tutor.oauth_expires_at
    tutor.oauth_connected_at = datetime.now(UTC)
    tutor.oauth_revoked_at = None
    session.add(tutor)
    session.commit()

    logger.info(f"Stored Google credential for tutor {tutor.id}")
    return {"redirect": oauth_state.redirect or settings.frontend_url}


def _fetch_token_status(provider, refresh_token: str) -> tuple:
    """Exchange a refresh token and introspect the resulting access token.

    Returns (access_token, token_info); token_info is None when Google
    issued no access token.
    """
    access = provider.fetch_access_token(refresh_token)
    if not access.token:
        return access, None
    return access, provider.token_info(access.token)


def get_status(session: Session, provider, tutor_id: UUID) -> dict:
    """
    Report whether the tutor's Google credential currently works.

    An expired or revoked grant is reported as ``invalid_grant`` rather
    than raised; only configuration and infrastructure failures raise.
    Nothing is written, so no lock is taken.
    """
    tutor = session.get(Tutor, tutor_id)
    if not tutor or not tutor.oauth_refresh_token:
        return _status(False, "missing_token")

    try:
        access, info = _fetch_token_status(provider, tutor.oauth_refresh_token)
    except MeetingError:
        raise
    except Exception as e:
        mapped = map_provider_error(e)
        if isinstance(mapped, AuthFailed):
            logger.info(f"Google grant for tutor {tutor_id} is no longer valid")
            return _status(False, "invalid_grant")
        raise mapped from e

    if info is None:
        return _status(False, "token_error")
    return _status(True, "connected", info.expires_at or access.expires_at, info.scopes)


def force_refresh(session: Session, provider, tutor_id: UUID) -> dict:
    """
    Obtain a fresh access token now and record its expiry.

    Unlike ``get_status`` this is caller-initiated, so a credential that
    cannot be refreshed raises ``AuthFailed``.
    """
    tutor = session.get(Tutor, tutor_id)
    if not tutor or not tutor.oauth_refresh_token:
        raise AuthFailed("Google account is not connected")

    try:
        access, info = _fetch_token_status(provider, tutor.oauth_refresh_token)
    except MeetingError:
        raise
    except Exception as e:
        raise map_provider_error(e) from e

    if info is None:
        raise AuthFailed("Failed to refresh access token")

    expires_at = info.expires_at or access.expires_at
    tutor.oauth_expires_at = expires_at
    tutor.oauth_revoked_at = None
    session.add(tutor)
    session.commit()

    logger.info(f"Refreshed Google credential for tutor {tutor_id}")
    return _status(True, "refreshed", expires_at, info.scopes)


def revoke(session: Session, provider, tutor_id: UUID) -> dict:
    """
    Revoke the tutor's Google credential and forget it.

    Revoking when nothing is stored succeeds, so the call is idempotent.
    """
    tutor = session.get(Tutor, tutor_id)
    if not tutor or not tutor.oauth_refresh_token:
        return {"revoked": True}

    try:
        provider.revoke(tutor.oauth_refresh_token)
    except MeetingError:
        raise
    except Exception as e:
        raise map_provider_error(e) from e

    tutor.oauth_refresh_token = None
    tutor.oauth_scopes = ""
    tutor.oauth_expires_at = None
    tutor.oauth_revoked_at = datetime.now(UTC)
    session.add(tutor)
    session.commit()

    logger.info(f"Revoked Google credential for tutor {tutor_id}")
    return {"revoked": True}
