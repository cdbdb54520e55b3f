"""Governed session: budget, expiry, policy checks and audit around an executor.

Each submitted task goes through a fixed pipeline:

1. Reject empty descriptions (caller bug, not audited)
2. Check termination, TTL and action budget
3. Evaluate the policy (deny first)
4. Reserve one action from the budget
5. Execute via the backend
6. Scan the output and log the result

Steps 2-4 run under a single lock so that concurrent submissions can
never overshoot the budget. The backend call itself is not serialized.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any, Mapping

import structlog

from leash.config import Policy, build_policy
from leash.executor import Executor
from leash.models import AuditAction, AuditEvent, OutputFlag, SessionStatus, TaskResult
from leash.security.audit import AuditLog, new_event_id
from leash.security.output_scanner import scan_output
from leash.security.policy import evaluate_policy

logger = structlog.get_logger()

EMPTY_TASK_REASON = "empty task description"
KILLED_REASON = "session killed"
EXPIRED_REASON = "session expired"
BUDGET_REASON = "action budget exhausted"


class SessionState(str, Enum):
    """Lifecycle of a governed session. TERMINATED is final."""

    ACTIVE = "active"
    TERMINATED = "terminated"


def format_duration(seconds: float) -> str:
    """Render an uptime like ``42s``, ``5min`` or ``2h 3min``."""
    total = int(seconds)
    if total < 60:
        return f"{total}s"
    minutes = total // 60
    if minutes < 60:
        return f"{minutes}min"
    return f"{minutes // 60}h {minutes % 60}min"


class SessionController:
    """Runs tasks through policy, budget and audit before the executor sees them."""

    def __init__(
        self,
        policy: Policy | Mapping[str, Any],
        executor: Executor,
        audit: AuditLog,
    ) -> None:
        """Initialize the session.

        Args:
            policy: The policy, or an inline mapping to validate.
            executor: Backend that runs allowed tasks.
            audit: Audit log that records every decision.

        Raises:
            ConfigurationError: If the policy is invalid.
        """
        self._policy = build_policy(policy)
        self._ttl = self._policy.ttl_seconds
        self._executor = executor
        self._audit = audit
        self._log = logger.bind(agent=self._policy.agent)

        self._start = self._now()
        self._state = SessionState.ACTIVE
        self._action_count = 0
        self._allowed_count = 0
        self._blocked_count = 0
        self._lock = asyncio.Lock()

        self._expiry_handle: asyncio.TimerHandle | None = None
        self._expiry_task: asyncio.Task[None] | None = None
        self._arm_expiry()

    @property
    def policy(self) -> Policy:
        return self._policy

    @property
    def state(self) -> SessionState:
        return self._state

    async def task(self, description: str) -> TaskResult:
        """Submit a task description for governed execution.

        Returns:
            A TaskResult. Blocked and failed tasks always carry a reason;
            executor failures are reported here, never raised.
        """
        audit_id = new_event_id()
        started = self._now()

        if not description or not description.strip():
            return TaskResult(allowed=False, audit_id=audit_id, reason=EMPTY_TASK_REASON)

        self._arm_expiry()

        async with self._lock:
            reason = self._admission_reason()
            if reason is None:
                reason = evaluate_policy(description, self._policy).reason
            if reason is not None:
                self._audit.log(
                    self._event(audit_id, description, AuditAction.BLOCKED, reason=reason)
                )
                self._blocked_count += 1
                self._log.info("task_blocked", audit_id=audit_id, reason=reason)
                return TaskResult(allowed=False, audit_id=audit_id, reason=reason)

            # Reserved before execution; not refunded if the backend fails
            self._action_count += 1

        try:
            output = await self._executor.execute(description)
        except Exception as e:
            message = str(e) or type(e).__name__
            async with self._lock:
                self._audit.log(
                    AuditEvent(
                        id=audit_id,
                        agent=self._policy.agent,
                        task=description,
                        action=AuditAction.ERROR,
                        reason=message,
                    )
                )
                self._blocked_count += 1
            self._log.warning("task_execution_failed", audit_id=audit_id, error=message)
            return TaskResult(allowed=False, audit_id=audit_id, reason=f"error: {message}")

        duration_ms = int((self._now() - started) * 1000)
        flags = scan_output(output, self._policy)

        async with self._lock:
            self._audit.log(
                self._event(
                    audit_id,
                    description,
                    AuditAction.ALLOWED,
                    duration_ms=duration_ms,
                    flags=flags,
                )
            )
            self._allowed_count += 1
        self._log.info(
            "task_allowed", audit_id=audit_id, duration_ms=duration_ms, flags=len(flags)
        )
        return TaskResult(allowed=True, audit_id=audit_id, output=output, flags=tuple(flags))

    async def terminate(self) -> None:
        """End the session. Later calls are no-ops."""
        await self._terminate("terminated")

    def status(self) -> SessionStatus:
        """Snapshot of the session. Never mutates state."""
        return SessionStatus(
            active=self._state is SessionState.ACTIVE and not self._expired(),
            agent=self._policy.agent,
            uptime=format_duration(self._now() - self._start),
            allowed_count=self._allowed_count,
            blocked_count=self._blocked_count,
            executor_session_id=self._executor.session_id,
        )

    def audit_events(self) -> list[AuditEvent]:
        """Return the full audit trail."""
        return self._audit.export()

    async def __aenter__(self) -> SessionController:
        self._arm_expiry()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.terminate()

    def _now(self) -> float:
        return time.monotonic()

    def _expired(self) -> bool:
        return self._ttl is not None and self._now() - self._start >= self._ttl

    def _admission_reason(self) -> str | None:
        """Why a new task cannot start, or None. Caller holds the lock."""
        if self._state is SessionState.TERMINATED:
            return KILLED_REASON
        if self._expired():
            return EXPIRED_REASON
        max_actions = self._policy.max_actions
        if max_actions is not None and self._action_count >= max_actions:
            self._log.warning("budget_exhausted", max_actions=max_actions)
            return BUDGET_REASON
        return None

    def _event(
        self,
        audit_id: str,
        description: str,
        action: AuditAction,
        *,
        reason: str | None = None,
        duration_ms: int | None = None,
        flags: list[OutputFlag] | None = None,
    ) -> AuditEvent:
        """Build a task event carrying the policy's domains, if any."""
        return AuditEvent(
            id=audit_id,
            agent=self._policy.agent,
            task=description,
            action=action,
            reason=reason,
            duration_ms=duration_ms,
            flags=flags or None,
            domains=list(self._policy.domains) or None,
        )

    def _arm_expiry(self) -> None:
        """Schedule automatic termination when the TTL elapses.

        Needs a running event loop; a session built outside one is armed
        on its first ``task()`` call instead.
        """
        if self._ttl is None or self._expiry_handle is not None:
            return
        if self._state is SessionState.TERMINATED:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        remaining = max(0.0, self._ttl - (self._now() - self._start))
        self._expiry_handle = loop.call_later(remaining, self._on_expiry)

    def _on_expiry(self) -> None:
        self._log.info("session_ttl_elapsed", ttl_seconds=self._ttl)
        self._expiry_task = asyncio.get_running_loop().create_task(
            self._terminate(EXPIRED_REASON)
        )
        self._expiry_task.add_done_callback(self._log_expiry_failure)

    def _log_expiry_failure(self, task: asyncio.Task[None]) -> None:
        if task.cancelled() or task.exception() is None:
            return
        self._log.error("session_expiry_failed", error=str(task.exception()))

    async def _terminate(self, reason: str) -> None:
        async with self._lock:
            if self._state is SessionState.TERMINATED:
                return
            self._state = SessionState.TERMINATED
            if self._expiry_handle is not None:
                self._expiry_handle.cancel()

        try:
            await self._executor.kill()
        except Exception as e:
            # Kill record is written regardless of the backend outcome
            self._log.warning("executor_kill_failed", error=str(e))

        self._audit.log(
            AuditEvent(
                id=new_event_id(),
                agent=self._policy.agent,
                task="",
                action=AuditAction.KILLED,
                reason=reason,
            )
        )
        self._log.info(
            "session_terminated",
            reason=reason,
            allowed=self._allowed_count,
            blocked=self._blocked_count,
        )
