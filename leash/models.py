"""Value types shared by the policy engine, audit log and session controller."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AuditAction(str, Enum):
    """Outcome recorded for an audit event."""

    ALLOWED = "allowed"
    BLOCKED = "blocked"
    ERROR = "error"
    KILLED = "killed"


class OutputFlag(BaseModel):
    """A deny keyword found in executor output."""

    model_config = ConfigDict(frozen=True)

    pattern: str
    keyword: str
    snippet: str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEvent(BaseModel):
    """One immutable record in the audit trail."""

    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: datetime = Field(default_factory=_utcnow)
    agent: str
    task: str = ""
    action: AuditAction
    reason: str | None = None
    duration_ms: int | None = None
    flags: list[OutputFlag] | None = None
    domains: list[str] | None = None

    def to_record(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict, omitting absent fields."""
        return self.model_dump(mode="json", exclude_none=True)


@dataclass(frozen=True)
class Decision:
    """Result of evaluating a task against a policy.

    ``reason`` is set exactly when the task is not allowed.
    """

    allowed: bool
    reason: str | None = None


@dataclass(frozen=True)
class TaskResult:
    """What the caller of ``SessionController.task`` gets back."""

    allowed: bool
    audit_id: str
    output: str | None = None
    reason: str | None = None
    flags: tuple[OutputFlag, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dict, leaving out keys that do not apply."""
        result: dict[str, Any] = {"allowed": self.allowed, "audit_id": self.audit_id}
        if self.output is not None:
            result["output"] = self.output
        if self.reason is not None:
            result["reason"] = self.reason
        if self.flags:
            result["flags"] = [flag.model_dump() for flag in self.flags]
        return result


@dataclass(frozen=True)
class SessionStatus:
    """Read-only snapshot of a governed session."""

    active: bool
    agent: str
    uptime: str
    allowed_count: int
    blocked_count: int
    executor_session_id: str | None = None
