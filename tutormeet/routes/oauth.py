"""Google OAuth connection routes."""
from uuid import UUID

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from sqlmodel import Session

from tutormeet.calendar.provider import get_provider
from tutormeet.core.database import get_session
from tutormeet.oauth import session as oauth
from tutormeet.routes.identity import current_tutor_id

router = APIRouter(prefix="/oauth/google", tags=["oauth"])


@router.get("/start")
def start_authorization(
    redirect: str | None = None,
    tutor_id: UUID = Depends(current_tutor_id),
    provider=Depends(get_provider),
):
    """
    Start connecting the tutor's Google account.

    Returns JSON with the Google consent URL the browser should open and
    the scopes being requested.
    """
    return oauth.build_authorization_url(provider, tutor_id, redirect)


@router.get("/callback")
def complete_authorization(
    code: str | None = None,
    state: str | None = None,
    session: Session = Depends(get_session),
    provider=Depends(get_provider),
):
    """
    OAuth redirect target.

    Google sends the browser here after consent. The tutor is identified by
    the signed state, not the X-Tutor-Id header, because this request comes
    from Google's redirect. Redirects to the page the flow was started from.
    """
    result = oauth.complete_authorization(session, provider, code, state)
    return RedirectResponse(result["redirect"], status_code=303)


@router.get("/status")
def oauth_status(
    tutor_id: UUID = Depends(current_tutor_id),
    session: Session = Depends(get_session),
    provider=Depends(get_provider),
):
    """
    Get the tutor's Google connection status.

    Returns JSON with connected, expires_at, scopes and status, where status
    is one of "connected", "missing_token", "invalid_grant" or "token_error".
    """
    return oauth.get_status(session, provider, tutor_id)


@router.post("/refresh")
def refresh_oauth(
    tutor_id: UUID = Depends(current_tutor_id),
    session: Session = Depends(get_session),
    provider=Depends(get_provider),
):
    """Refresh the tutor's access token now. Returns 401 if the grant is gone."""
    return oauth.force_refresh(session, provider, tutor_id)


@router.post("/revoke")
def revoke_oauth(
    tutor_id: UUID = Depends(current_tutor_id),
    session: Session = Depends(get_session),
    provider=Depends(get_provider),
):
    """Disconnect the tutor's Google account. Safe to call repeatedly."""
    return oauth.revoke(session, provider, tutor_id)
