"""Shared fixtures: a scriptable fake executor and an audit log in tmp_path."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest
import structlog

from leash.executor import Executor, ExecutorNotFound
from leash.security.audit import AuditLog


class FakeExecutor(Executor):
    """In-memory backend that records calls and returns canned output."""

    def __init__(self, output: Any = "task completed successfully", delay: float = 0.0) -> None:
        super().__init__()
        self.output = output
        self.delay = delay
        self.create_delay = 0.0
        self.fail_with: Exception | None = None
        self.kill_error: Exception | None = None
        self.state = "running"
        self.created: list[dict[str, Any]] = []
        self.tasks: list[str] = []
        self.deleted: list[str] = []

    async def _create_session(self, params: dict[str, Any]) -> str:
        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        self.created.append(params)
        return f"fake-session-{len(self.created)}"

    async def _run_task(self, session_id: str, task: str) -> Any:
        self.tasks.append(task)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        return self.output

    async def _delete_session(self, session_id: str) -> None:
        if self.kill_error is not None:
            raise self.kill_error
        self.deleted.append(session_id)

    async def _session_state(self, session_id: str) -> str:
        if self.state == "gone":
            raise ExecutorNotFound(session_id)
        return self.state


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Undo any structlog configuration a CLI test installed."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def audit(tmp_path: Path):
    log = AuditLog(tmp_path / "audit.jsonl")
    yield log
    log.close()
