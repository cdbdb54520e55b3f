"""Post-execution scan of executor output for deny-pattern keywords.

Detection only. A task that was allowed stays allowed; any flags are
attached to the audit record and the task result for human review.
"""

from __future__ import annotations

import re

import structlog

from leash.config import Policy
from leash.models import OutputFlag

logger = structlog.get_logger()

MIN_KEYWORD_LENGTH = 2
SNIPPET_CONTEXT = 20


def extract_keyword(pattern: str) -> str | None:
    """Reduce a deny glob to its literal keyword.

    ``*send*`` gives ``send`` and ``delete*`` gives ``delete``. Patterns
    that leave fewer than two characters (like a bare ``*``) give None,
    since they would flag every output.
    """
    keyword = pattern.replace("*", "").strip().lower()
    return keyword if len(keyword) >= MIN_KEYWORD_LENGTH else None


def scan_output(output: str, policy: Policy) -> list[OutputFlag]:
    """Flag deny keywords that appear in executor output.

    Output is searched as returned, without sanitization. Each deny
    pattern contributes at most one flag, for the keyword's first
    case-insensitive occurrence.

    Args:
        output: Text returned by the executor.
        policy: The session policy whose deny patterns supply keywords.

    Returns:
        One OutputFlag per matching deny pattern, in declared order.
    """
    if not output or not policy.deny:
        return []

    flags: list[OutputFlag] = []
    for pattern in policy.deny:
        keyword = extract_keyword(pattern)
        if keyword is None:
            continue

        match = re.search(re.escape(keyword), output, re.IGNORECASE)
        if match is None:
            continue

        start = max(0, match.start() - SNIPPET_CONTEXT)
        end = min(len(output), match.end() + SNIPPET_CONTEXT)
        snippet = output[start:end].strip()
        flags.append(OutputFlag(pattern=pattern, keyword=keyword, snippet=snippet))
        logger.warning("output_flagged", pattern=pattern, keyword=keyword)

    return flags
