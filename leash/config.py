"""Policy configuration loading and validation using Pydantic models.

Policies arrive either as an inline mapping or as a YAML policy file.
Both are validated into an immutable ``Policy`` before any session can
start; invalid input raises ``ConfigurationError`` instead of falling
back to defaults.
"""

from __future__ import annotations

import os
import re
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_AGENT_NAME = "leash-agent"
DEFAULT_AUDIT_PATH = "./leash-audit.jsonl"
AUDIT_PATH_ENV = "LEASH_AUDIT_PATH"

_DURATION_RE = re.compile(r"^(\d+)(min|h|d)$")
_UNIT_SECONDS = {"min": 60, "h": 60 * 60, "d": 24 * 60 * 60}


class ConfigurationError(ValueError):
    """Raised when a policy is malformed or fails validation."""


class DefaultAction(str, Enum):
    """What happens to a task that matches no allow or deny pattern."""

    ALLOW = "allow"
    DENY = "deny"


def parse_duration(value: str) -> int:
    """Parse a duration string like ``60min``, ``8h`` or ``30d`` into seconds.

    Raises:
        ConfigurationError: If the string is not a positive duration.
    """
    match = _DURATION_RE.match(value.strip())
    if not match:
        raise ConfigurationError(f"Invalid duration: {value!r}")
    seconds = int(match.group(1)) * _UNIT_SECONDS[match.group(2)]
    if seconds <= 0:
        raise ConfigurationError(f"Invalid duration: {value!r} (must be positive)")
    return seconds


class Policy(BaseModel):
    """Allow/deny rules and session limits for one governed agent."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    agent: str = DEFAULT_AGENT_NAME
    allow: tuple[str, ...] = ()
    deny: tuple[str, ...] = ()
    default: DefaultAction = DefaultAction.DENY
    expire: str | None = None
    max_actions: int | None = Field(default=None, ge=0, alias="maxActions")
    domains: tuple[str, ...] = ()

    @field_validator("expire")
    @classmethod
    def check_expire(cls, v: str | None) -> str | None:
        """Reject TTLs that do not parse to a positive duration."""
        if v is not None:
            try:
                parse_duration(v)
            except ConfigurationError as e:
                raise ValueError(str(e)) from e
        return v

    @property
    def ttl_seconds(self) -> int | None:
        """Session time-to-live in seconds, or None when unlimited."""
        return parse_duration(self.expire) if self.expire else None


def build_policy(data: Policy | Mapping[str, Any]) -> Policy:
    """Validate an inline policy mapping (or pass a Policy through).

    Raises:
        ConfigurationError: If the mapping fails validation.
    """
    if isinstance(data, Policy):
        return data
    try:
        return Policy.model_validate(dict(data))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid policy: {e}") from e


def load_policy(path: str | Path) -> Policy:
    """Load a policy from a YAML file.

    The file layout groups patterns under ``rules`` and uses snake_case
    limits::

        agent: inbox-bot
        rules:
          allow: ["read*"]
          deny: ["*send*"]
        default: deny
        expire_after: 8h
        max_actions: 50
        domains: [mail.example.com]

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the document is empty, not a mapping, or invalid.
    """
    policy_path = Path(path)
    if not policy_path.is_file():
        raise FileNotFoundError(f"Policy file not found: {policy_path}")

    with open(policy_path, encoding="utf-8") as f:
        try:
            doc = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML policy: {e}") from e

    if not isinstance(doc, dict):
        raise ConfigurationError("Invalid YAML policy: expected a mapping")

    rules = doc.get("rules") or {}
    if not isinstance(rules, dict):
        raise ConfigurationError("Invalid YAML policy: 'rules' must be a mapping")

    data: dict[str, Any] = {
        "allow": rules.get("allow") or [],
        "deny": rules.get("deny") or [],
    }
    for key, field in (
        ("agent", "agent"),
        ("default", "default"),
        ("expire_after", "expire"),
        ("max_actions", "max_actions"),
        ("domains", "domains"),
    ):
        if doc.get(key) is not None:
            data[field] = doc[key]

    return build_policy(data)


def default_audit_path() -> Path:
    """Audit file location from ``LEASH_AUDIT_PATH``, else the working directory."""
    return Path(os.environ.get(AUDIT_PATH_ENV) or DEFAULT_AUDIT_PATH)
