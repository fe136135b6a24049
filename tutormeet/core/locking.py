"""Per-tutor lease serialising permanent-link provisioning.

Workers share nothing but the database, so mutual exclusion is a lease
stored on the tutor row and taken with a conditional UPDATE: the statement
only matches when the lease is free or has lapsed, and the database
guarantees at most one concurrent UPDATE wins. Each statement runs in its
own short transaction so the lease is visible to other workers at once.

Leases expire after ``settings.link_lock_ttl_seconds`` so a worker that
dies while holding one cannot block the tutor forever. A lease can still
lapse under a slow holder, so writes made under it go through ``renew``,
which commits only while the holder still owns the lease.
"""
import logging
import time
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

from sqlalchemy import or_, update
from sqlalchemy.engine import Engine
from sqlmodel import Session

from tutormeet.core.config import settings
from tutormeet.core.errors import LinkProvisioningBusy
from tutormeet.models import Tutor

logger = logging.getLogger(__name__)


def try_acquire(engine: Engine, tutor_id: UUID, owner: str, ttl_seconds: float) -> bool:
    """Take the tutor's lease if it is free or lapsed. Returns True on success."""
    now = datetime.now(UTC)
    statement = (
        update(Tutor)
        .where(Tutor.id == tutor_id)
        .where(or_(Tutor.link_lock_owner.is_(None), Tutor.link_lock_expires_at < now))
        .values(
            link_lock_owner=owner,
            link_lock_expires_at=now + timedelta(seconds=ttl_seconds),
        )
    )
    with engine.begin() as connection:
        result = connection.execute(statement)
    return result.rowcount == 1


def release(engine: Engine, tutor_id: UUID, owner: str) -> bool:
    """Release the lease if ``owner`` still holds it. Returns True if released."""
    statement = (
        update(Tutor)
        .where(Tutor.id == tutor_id)
        .where(Tutor.link_lock_owner == owner)
        .values(link_lock_owner=None, link_lock_expires_at=None)
    )
    with engine.begin() as connection:
        result = connection.execute(statement)
    return result.rowcount == 1


@contextmanager
def tutor_lock(
    engine: Engine,
    tutor_id: UUID,
    *,
    ttl_seconds: float | None = None,
    wait_seconds: float | None = None,
):
    """
    Hold the tutor's provisioning lease for the duration of the block.

    Polls until the lease is free, for at most ``wait_seconds``.

    Raises:
        LinkProvisioningBusy: If the lease could not be taken in time.
    """
    ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.link_lock_ttl_seconds
    wait_seconds = wait_seconds if wait_seconds is not None else settings.link_lock_wait_seconds
    owner = uuid4().hex
    deadline = time.monotonic() + wait_seconds

    while not try_acquire(engine, tutor_id, owner, ttl_seconds):
        if time.monotonic() >= deadline:
            logger.warning(f"Timed out waiting for permanent link lease of tutor {tutor_id}")
            raise LinkProvisioningBusy()
        time.sleep(settings.link_lock_poll_seconds)

    logger.debug(f"Acquired permanent link lease for tutor {tutor_id}")
    try:
        yield owner
    finally:
        if not release(engine, tutor_id, owner):
            logger.warning(f"Permanent link lease for tutor {tutor_id} lapsed before release")


def renew(session: Session, tutor_id: UUID, owner: str, ttl_seconds: float | None = None) -> None:
    """
    Confirm ``owner`` still holds the lease and extend it.

    Runs inside the session's open transaction. Call it right before
    committing a write made under the lease so the write and the ownership
    check commit together.

    Raises:
        LinkProvisioningBusy: If the lease lapsed and another request took
            it. The session is rolled back.
    """
    ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.link_lock_ttl_seconds
    statement = (
        update(Tutor)
        .where(Tutor.id == tutor_id)
        .where(Tutor.link_lock_owner == owner)
        .values(link_lock_expires_at=datetime.now(UTC) + timedelta(seconds=ttl_seconds))
    )
    result = session.connection().execute(statement)
    if result.rowcount != 1:
        session.rollback()
        logger.warning(f"Permanent link lease of tutor {tutor_id} was taken over; discarding write")
        raise LinkProvisioningBusy()
