"""Tutor identity handed over by the authentication layer."""
from uuid import UUID

from fastapi import Header


def current_tutor_id(x_tutor_id: UUID = Header(...)) -> UUID:
    """
    Authenticated tutor id.

    Authentication happens upstream of this service; the gateway resolves
    the tutor and forwards the id in the ``X-Tutor-Id`` header, which is
    trusted as is.
    """
    return x_tutor_id
