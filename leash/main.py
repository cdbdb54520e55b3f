"""CLI entry point for offline policy work using Click."""

from __future__ import annotations

import logging
import os
import sys

import click
import structlog

from leash import __version__
from leash.config import ConfigurationError, Policy, load_policy
from leash.security.output_scanner import scan_output
from leash.security.policy import evaluate_policy


def _configure_logging(log_level: str) -> None:
    """Configure structlog for console output on stderr."""
    level = logging.getLevelName(log_level.upper())
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer() if sys.stderr.isatty() else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            level if isinstance(level, int) else logging.WARNING
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def _load(policy_path: str | None) -> Policy:
    """Load the policy named on the command line or by LEASH_POLICY, exiting on failure."""
    path = policy_path or os.environ.get("LEASH_POLICY", "./leash.yaml")
    try:
        return load_policy(path)
    except (FileNotFoundError, ConfigurationError) as e:
        click.echo(f"FAIL: {e}", err=True)
        sys.exit(1)


policy_option = click.option(
    "--policy",
    "policy_path",
    type=click.Path(dir_okay=False, resolve_path=True),
    default=None,
    help="Path to the YAML policy. Defaults to LEASH_POLICY env or ./leash.yaml.",
)

log_level_option = click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Logging level. Defaults to LEASH_LOG_LEVEL env or WARNING.",
)


@click.group()
@click.version_option(version=__version__, prog_name="leash")
def cli() -> None:
    """Leash - policy governance for autonomous browser agents."""


@cli.command()
@policy_option
@log_level_option
def check_policy(policy_path: str | None, log_level: str | None) -> None:
    """Validate a policy file and summarize it."""
    _configure_logging(log_level or os.environ.get("LEASH_LOG_LEVEL", "WARNING"))
    policy = _load(policy_path)

    click.echo("Policy OK")
    click.echo(f"  Agent: {policy.agent}")
    click.echo(f"  Default action: {policy.default.value}")
    click.echo(f"  Allow patterns: {len(policy.allow)}")
    for pattern in policy.allow:
        click.echo(f"    + {pattern}")
    click.echo(f"  Deny patterns: {len(policy.deny)}")
    for pattern in policy.deny:
        click.echo(f"    - {pattern}")
    budget = policy.max_actions if policy.max_actions is not None else "unlimited"
    click.echo(f"  Action budget: {budget}")
    click.echo(f"  Expires after: {policy.expire or 'never'}")
    if policy.domains:
        click.echo(f"  Domains: {', '.join(policy.domains)}")


@cli.command()
@policy_option
@log_level_option
@click.argument("task")
def evaluate(policy_path: str | None, log_level: str | None, task: str) -> None:
    """Dry-run a task description against a policy.

    Exits 0 if the task would be allowed and 1 if it would be blocked.
    """
    _configure_logging(log_level or os.environ.get("LEASH_LOG_LEVEL", "WARNING"))
    policy = _load(policy_path)

    decision = evaluate_policy(task, policy)
    if decision.allowed:
        click.echo("ALLOWED")
        return
    click.echo(f"BLOCKED: {decision.reason}")
    sys.exit(1)


@cli.command()
@policy_option
@log_level_option
@click.option(
    "--file",
    "output_file",
    type=click.File("r", encoding="utf-8"),
    default="-",
    help="File holding executor output. Defaults to stdin.",
)
def scan(policy_path: str | None, log_level: str | None, output_file) -> None:
    """Scan executor output for the policy's deny keywords.

    Exits 1 if anything was flagged.
    """
    _configure_logging(log_level or os.environ.get("LEASH_LOG_LEVEL", "WARNING"))
    policy = _load(policy_path)

    flags = scan_output(output_file.read(), policy)
    if not flags:
        click.echo("No flags.")
        return
    for flag in flags:
        click.echo(f"{flag.pattern}  keyword={flag.keyword!r}  snippet={flag.snippet!r}")
    sys.exit(1)


if __name__ == "__main__":
    cli()
