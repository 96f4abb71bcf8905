import logging
import os
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.job_lease import JobLease

logger = logging.getLogger(__name__)

WORKER_ID = os.getenv("WORKER_ID", f"{os.getpid()}-{uuid.uuid4().hex[:8]}")


def _new_token() -> str:
    # Unique per acquisition, so two threads of one process never share a lease
    return f"{WORKER_ID}:{uuid.uuid4().hex}"


def acquire_lease(
    db: Session,
    name: str,
    ttl_seconds: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Optional[str]:
    """
    Atomically take the named lease.

    Returns the holder token on success, None while anyone else (including
    another thread of this process) holds an unexpired lease. Pass the token
    to ``refresh_lease`` / ``release_lease``.
    """
    now = now or datetime.utcnow()
    expires_at = now + timedelta(seconds=ttl_seconds or settings.JOB_LEASE_SECONDS)
    token = _new_token()

    result = db.execute(
        update(JobLease)
        .where(
            JobLease.name == name,
            or_(JobLease.owner.is_(None), JobLease.expires_at < now),
        )
        .values(owner=token, expires_at=expires_at)
    )
    if result.rowcount == 1:
        db.commit()
        return token
    db.rollback()

    # First run ever: the row does not exist yet
    exists = db.query(JobLease.name).filter(JobLease.name == name).first()
    if exists:
        logger.info(f"🔒 Lease '{name}' is held, skipping")
        return None

    try:
        db.add(JobLease(name=name, owner=token, expires_at=expires_at))
        db.commit()
        return token
    except IntegrityError:
        db.rollback()
        logger.info(f"🔒 Lease '{name}' was created concurrently, skipping")
        return None


def refresh_lease(
    db: Session,
    name: str,
    token: str,
    ttl_seconds: Optional[int] = None,
    now: Optional[datetime] = None,
) -> bool:
    """Extends a lease we still hold. False means it expired and someone else took it."""
    if not token:
        return False
    now = now or datetime.utcnow()
    result = db.execute(
        update(JobLease)
        .where(JobLease.name == name, JobLease.owner == token)
        .values(expires_at=now + timedelta(seconds=ttl_seconds or settings.JOB_LEASE_SECONDS))
    )
    db.commit()
    return result.rowcount == 1


def release_lease(db: Session, name: str, token: Optional[str]) -> None:
    if not token:
        return
    db.execute(
        update(JobLease)
        .where(JobLease.name == name, JobLease.owner == token)
        .values(owner=None, expires_at=None)
    )
    db.commit()
