"""Base class for the untrusted backend that actually runs tasks.

The governance layer never looks inside the executor. It only needs a
handful of calls: create a session, run a task in it, kill it, and ask
whether it is still alive. Concrete backends implement the raw calls
(``_create_session``, ``_run_task``, ``_delete_session``,
``_session_state``); this base class supplies the session bookkeeping
around them.
"""

from __future__ import annotations

import asyncio
import copy
import json
from abc import ABC, abstractmethod
from typing import Any

import structlog

logger = structlog.get_logger()

# Passed to every new backend session
HARDENED_SESSION_DEFAULTS: dict[str, Any] = {
    "session": {
        "proxy": {"active": True, "country_code": "us"},
        "timeout": {"idle_timeout": 15, "max_duration": 30},
    },
    "browser": {
        "extra_stealth": {"active": True},
        "captcha_solver": {"active": True},
        "adblock": {"active": True},
        "popup_blocker": {"active": True},
    },
}

# Session states a backend may report that count as alive
ALIVE_STATES: frozenset[str] = frozenset({"running"})


class ExecutorError(Exception):
    """Raised when the backend fails to create, run or delete a session."""


class ExecutorNotFound(ExecutorError):
    """Raised when the backend no longer knows the session (already gone)."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id!r}")


def parse_result(result: Any) -> str:
    """Normalize a raw backend result into text.

    Strings pass through. A mapping with a string ``result`` key yields
    that string; any other mapping is rendered as JSON. Empty results
    become the empty string.
    """
    if not result:
        return ""
    if isinstance(result, str):
        return result
    if isinstance(result, dict):
        inner = result.get("result")
        if isinstance(inner, str):
            return inner
        return json.dumps(result, default=str)
    return str(result)


class Executor(ABC):
    """Abstract backend that runs task descriptions in a remote session."""

    def __init__(self, session_params: dict[str, Any] | None = None) -> None:
        self._session_params = session_params or copy.deepcopy(HARDENED_SESSION_DEFAULTS)
        self._session_id: str | None = None
        # Serializes lazy creation and kill so there is at most one live session
        self._session_lock = asyncio.Lock()

    @property
    def session_id(self) -> str | None:
        """The current backend session ID, if one has been created."""
        return self._session_id

    @abstractmethod
    async def _create_session(self, params: dict[str, Any]) -> str:
        """Create a backend session and return its ID."""

    @abstractmethod
    async def _run_task(self, session_id: str, task: str) -> Any:
        """Run a task in the session and return the raw backend result."""

    @abstractmethod
    async def _delete_session(self, session_id: str) -> None:
        """Delete a session. Raise ExecutorNotFound if it is already gone."""

    @abstractmethod
    async def _session_state(self, session_id: str) -> str:
        """Return the backend's state string. Raise ExecutorNotFound if gone."""

    async def create(self) -> str:
        """Create a new backend session with the hardened parameters.

        Raises:
            ExecutorError: If the backend returns no session ID.
        """
        session_id = await self._create_session(self._session_params)
        if not session_id:
            raise ExecutorError("Backend returned no session ID")
        self._session_id = session_id
        logger.info("executor_session_created", session_id=session_id)
        return session_id

    async def execute(self, task: str) -> str:
        """Run a task, creating a session first if none exists."""
        session_id = self._session_id or await self._ensure_session()
        raw = await self._run_task(session_id, task)
        return parse_result(raw)

    async def _ensure_session(self) -> str:
        """Return the current session, creating it once for concurrent callers."""
        async with self._session_lock:
            if self._session_id is not None:
                return self._session_id
            return await self.create()

    async def kill(self) -> None:
        """Delete the current session. A session that is already gone is fine."""
        async with self._session_lock:
            session_id = self._session_id
            if session_id is None:
                return
            try:
                await self._delete_session(session_id)
            except ExecutorNotFound:
                logger.debug("executor_session_already_gone", session_id=session_id)
            finally:
                self._session_id = None
        logger.info("executor_session_killed", session_id=session_id)

    async def is_alive(self) -> bool:
        """Whether the backend still reports the session as running.

        Raises:
            ExecutorError: On backend failures other than not-found.
        """
        if self._session_id is None:
            return False
        try:
            state = await self._session_state(self._session_id)
        except ExecutorNotFound:
            return False
        return state in ALIVE_STATES
