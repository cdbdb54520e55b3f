"""Leash: policy, budget and audit governance for untrusted task executors."""

from __future__ import annotations

__version__ = "0.1.0"

from leash.config import ConfigurationError, DefaultAction, Policy, load_policy
from leash.executor import Executor, ExecutorError, ExecutorNotFound
from leash.models import AuditAction, AuditEvent, Decision, OutputFlag, SessionStatus, TaskResult
from leash.security import AuditLog, evaluate_policy, matches_pattern, sanitize, scan_output
from leash.session import SessionController, SessionState

__all__ = [
    "AuditAction",
    "AuditEvent",
    "AuditLog",
    "ConfigurationError",
    "Decision",
    "DefaultAction",
    "Executor",
    "ExecutorError",
    "ExecutorNotFound",
    "OutputFlag",
    "Policy",
    "SessionController",
    "SessionState",
    "SessionStatus",
    "TaskResult",
    "__version__",
    "evaluate_policy",
    "load_policy",
    "matches_pattern",
    "sanitize",
    "scan_output",
]
