"""Deny-first policy evaluation.

Tasks are matched against glob-style patterns where ``*`` matches any
sequence of characters and the whole task must match the pattern. Deny
patterns are checked before allow patterns, so a task that matches both
is always blocked.
"""

from __future__ import annotations

import re
from functools import lru_cache

import structlog

from leash.config import DefaultAction, Policy
from leash.models import Decision
from leash.security.sanitizer import sanitize

logger = structlog.get_logger()

DEFAULT_DENY_REASON = "no matching allow rule (default: deny)"


@lru_cache(maxsize=512)
def _compile(pattern: str) -> re.Pattern[str]:
    """Translate a glob into an anchored regex.

    Unlike fnmatch, only ``*`` is special: ``?`` and ``[...]`` are literal.
    """
    parts = (re.escape(part) for part in pattern.casefold().split("*"))
    return re.compile(".*".join(parts), re.DOTALL)


def matches_pattern(text: str, pattern: str) -> bool:
    """Check if text matches a glob pattern, ignoring case.

    Args:
        text: The (already sanitized) task string.
        pattern: Glob pattern; ``*`` matches zero or more characters.

    Returns:
        True if the entire text matches the pattern.
    """
    return _compile(pattern).fullmatch(text.casefold()) is not None


def _first_match(text: str, patterns: tuple[str, ...]) -> str | None:
    """Return the first pattern in declared order that matches text."""
    for pattern in patterns:
        if matches_pattern(text, pattern):
            return pattern
    return None


def evaluate_policy(task: str, policy: Policy) -> Decision:
    """Decide whether a task may run under a policy.

    The task is sanitized once, then scanned in two phases: deny patterns
    first (first match blocks), then allow patterns (first match allows).
    If nothing matches, the policy's default action applies.

    Args:
        task: The raw task description.
        policy: The policy to evaluate against.

    Returns:
        A Decision; ``reason`` is set only when the task is blocked.
    """
    clean = sanitize(task)

    denied_by = _first_match(clean, policy.deny)
    if denied_by is not None:
        logger.info("policy_denied", agent=policy.agent, pattern=denied_by)
        return Decision(allowed=False, reason=f"blocked by deny pattern: {denied_by}")

    allowed_by = _first_match(clean, policy.allow)
    if allowed_by is not None:
        logger.debug("policy_allowed", agent=policy.agent, pattern=allowed_by)
        return Decision(allowed=True)

    if policy.default == DefaultAction.ALLOW:
        logger.debug("policy_default_allowed", agent=policy.agent)
        return Decision(allowed=True)

    logger.info("policy_default_denied", agent=policy.agent)
    return Decision(allowed=False, reason=DEFAULT_DENY_REASON)
