"""Append-only JSONL audit trail using structlog.

Every governed task is logged: allowed, blocked, errored, and the final
kill. Records are never rewritten. Readers skip lines that fail to
decode, so a write cut short by a crash costs at most that one line.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import structlog
from pydantic import ValidationError

from leash.config import default_audit_path
from leash.models import AuditAction, AuditEvent

logger = structlog.get_logger()


def new_event_id() -> str:
    """Generate a short, unique audit event ID."""
    return f"evt-{uuid.uuid4().hex[:12]}"


class AuditLog:
    """Append-only store of AuditEvent records in a JSONL file."""

    def __init__(self, log_path: str | Path | None = None) -> None:
        """Open the audit log for appending.

        Args:
            log_path: Path to the JSONL audit file. Defaults to
                ``LEASH_AUDIT_PATH`` or ./leash-audit.jsonl. Parent
                directories are created if needed.
        """
        self._log_path = Path(log_path) if log_path is not None else default_audit_path()
        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self._log_path, "a", encoding="utf-8", buffering=1)  # noqa: SIM115

        # PrintLogger writes and flushes each line under its own lock
        self._logger = structlog.wrap_logger(
            structlog.PrintLogger(file=self._file),
            wrapper_class=structlog.BoundLogger,
            processors=[structlog.processors.JSONRenderer(ensure_ascii=False)],
        )

    @property
    def path(self) -> Path:
        return self._log_path

    def log(self, event: AuditEvent) -> None:
        """Append one event. Write failures propagate."""
        self._logger.msg(**event.to_record())

    def iter_events(self) -> Iterator[AuditEvent]:
        """Lazily decode events in write order, skipping corrupt lines."""
        if not self._log_path.exists():
            return
        with open(self._log_path, encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    yield AuditEvent.model_validate(json.loads(line))
                except (json.JSONDecodeError, ValidationError) as e:
                    logger.debug(
                        "audit_line_skipped",
                        path=str(self._log_path),
                        line=lineno,
                        error=str(e),
                    )

    def query(
        self,
        *,
        action: AuditAction | str | None = None,
        agent: str | None = None,
        since: datetime | None = None,
    ) -> list[AuditEvent]:
        """Return events matching all given filters, in write order.

        Args:
            action: Only events with this action.
            agent: Only events for this agent name.
            since: Only events at or after this instant. Naive datetimes
                are taken as UTC.
        """
        wanted = AuditAction(action) if action is not None else None
        if since is not None and since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)

        events: list[AuditEvent] = []
        for event in self.iter_events():
            if wanted is not None and event.action != wanted:
                continue
            if agent is not None and event.agent != agent:
                continue
            if since is not None and event.timestamp < since:
                continue
            events.append(event)
        return events

    def export(self) -> list[AuditEvent]:
        """Return every readable event in the log."""
        return list(self.iter_events())

    def close(self) -> None:
        """Close the audit log file."""
        self._file.close()

    def __enter__(self) -> AuditLog:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
