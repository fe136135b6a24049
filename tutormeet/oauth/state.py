"""Signed OAuth ``state`` tokens.

The consent redirect comes back to whichever worker receives the callback,
so the context of the flow (which tutor, where to send the browser next)
travels inside the ``state`` parameter instead of a server-side session.

The payload is the JSON form of ``OAuthState``, signed and timestamped with
itsdangerous' ``URLSafeTimedSerializer`` keyed by ``settings.secret_key``.
New fields must be optional so tokens issued before a deploy still decode;
incompatible changes bump ``STATE_VERSION``.
"""
import logging
from uuid import UUID

from itsdangerous import BadData, SignatureExpired, URLSafeTimedSerializer
from pydantic import BaseModel, ValidationError

from tutormeet.core.config import settings
from tutormeet.core.errors import AuthFailed

logger = logging.getLogger(__name__)

STATE_VERSION = 1
STATE_SALT = "oauth-state"

INVALID_STATE_MESSAGE = (
    "Missing tutor identity in OAuth state. Please start the OAuth flow again."
)


class OAuthState(BaseModel):
    version: int = STATE_VERSION
    tutor_id: UUID
    redirect: str | None = None


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(settings.secret_key, salt=STATE_SALT)


def encode_state(state: OAuthState) -> str:
    return _serializer().dumps(state.model_dump(mode="json"))


def decode_state(value: str | None) -> OAuthState:
    """
    Verify and decode a state token.

    Raises:
        AuthFailed: If the token is missing, tampered with, malformed,
            from an unknown version, or older than
            ``settings.oauth_state_max_age_seconds``.
    """
    if not value:
        raise AuthFailed(INVALID_STATE_MESSAGE)

    try:
        payload = _serializer().loads(value, max_age=settings.oauth_state_max_age_seconds)
    except SignatureExpired:
        raise AuthFailed("OAuth state has expired. Please start the OAuth flow again.") from None
    except BadData:
        logger.warning("Rejected OAuth state with a bad signature")
        raise AuthFailed(INVALID_STATE_MESSAGE) from None

    try:
        state = OAuthState.model_validate(payload)
    except ValidationError:
        raise AuthFailed(INVALID_STATE_MESSAGE) from None

    if state.version != STATE_VERSION:
        raise AuthFailed(INVALID_STATE_MESSAGE)
    return state
