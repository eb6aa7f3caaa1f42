"""
Immutable audit trail for payment submissions.

Every session transition gets an append-only audit log entry with:
  - Submission ID (which session)
  - Action (what happened)
  - Details (state, interaction kind, status, error)
  - Timestamp (UTC)

Session transitions happen on synchronous notification paths, so
AuditTrail schedules each write as a task on the running loop, in its
own database session, and exposes flush() to wait for them.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payment_engine.models.records import AuditLog, Submission

logger = logging.getLogger("payment_engine.audit")


async def log_event(
    session: AsyncSession,
    action: str,
    submission_id: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> AuditLog:
    """
    Create an immutable audit log entry.

    Args:
        session: Database session.
        action: What happened (e.g. "submitted", "interaction_requested", "completed").
        submission_id: The submission this event relates to.
        details: Arbitrary context (serialized to JSON).

    Returns:
        The created AuditLog record.
    """
    entry = AuditLog(
        submission_id=submission_id,
        action=action,
        details=json.dumps(details, default=str) if details else None,
        timestamp=datetime.now(timezone.utc),
    )
    session.add(entry)
    logger.info(
        "AUDIT | submission=%s action=%s | %s",
        submission_id or "-",
        action,
        json.dumps(details, default=str)[:200] if details else "",
    )
    return entry


def append_note(existing_notes: Optional[list[str]], message: str) -> list[str]:
    """Append a timestamped note to a session's running history."""
    prefix = f"[{datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')}] "
    notes = list(existing_notes or [])
    notes.append(prefix + message)
    return notes


class AuditTrail:
    """Persists session transitions to the audit store."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory
        self._pending: set[asyncio.Task] = set()
        self._lock = asyncio.Lock()  # One writer at a time keeps upserts ordered

    def record(
        self,
        action: str,
        submission: dict[str, Any],
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Schedule an audit write.

        Args:
            action: What happened.
            submission: Current column values of the Submission row (must include "id").
            details: Context for the audit entry.
        """
        task = asyncio.get_running_loop().create_task(self._write(action, submission, details))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        """Wait until every scheduled write has been committed."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def _write(
        self,
        action: str,
        submission: dict[str, Any],
        details: Optional[dict[str, Any]],
    ) -> None:
        try:
            async with self._lock, self._session_factory() as session:
                await session.merge(Submission(**submission))
                await log_event(session, action, submission_id=submission["id"], details=details)
                await session.commit()
        except Exception:
            logger.exception("Failed to persist audit event %s for %s", action, submission.get("id"))
