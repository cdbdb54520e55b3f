"""Security layer: input sanitization, policy evaluation, output scanning, audit logging."""

from __future__ import annotations

from leash.security.audit import AuditLog
from leash.security.output_scanner import scan_output
from leash.security.policy import evaluate_policy, matches_pattern
from leash.security.sanitizer import sanitize

__all__ = [
    "AuditLog",
    "evaluate_policy",
    "matches_pattern",
    "sanitize",
    "scan_output",
]
