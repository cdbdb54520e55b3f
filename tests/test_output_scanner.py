"""Tests for post-execution output scanning."""

from __future__ import annotations

import pytest

from leash.config import Policy
from leash.models import OutputFlag
from leash.security.output_scanner import extract_keyword, scan_output


@pytest.fixture
def policy() -> Policy:
    return Policy(
        allow=["read*", "check*"],
        deny=["*send*", "*delete*", "*export*"],
        default="deny",
    )


class TestExtractKeyword:
    """Tests for reducing deny globs to keywords."""

    def test_surrounding_stars(self) -> None:
        assert extract_keyword("*send*") == "send"

    def test_trailing_star(self) -> None:
        assert extract_keyword("delete*") == "delete"

    def test_bare_star(self) -> None:
        assert extract_keyword("*") is None

    def test_single_character(self) -> None:
        assert extract_keyword("*x*") is None

    def test_lowercased_and_trimmed(self) -> None:
        assert extract_keyword("* Export *") == "export"

    def test_inner_stars_removed(self) -> None:
        assert extract_keyword("*wire*money*") == "wiremoney"


class TestScanOutput:
    """Tests for scan_output()."""

    def test_clean_output(self, policy: Policy) -> None:
        assert scan_output("Here are your 5 unread messages from today.", policy) == []

    def test_flags_deny_keyword(self, policy: Policy) -> None:
        flags = scan_output("Successfully exported 500 contacts to CSV file.", policy)
        assert len(flags) == 1
        assert flags[0].pattern == "*export*"
        assert flags[0].keyword == "export"
        assert "export" in flags[0].snippet

    def test_multiple_patterns_flagged(self, policy: Policy) -> None:
        flags = scan_output("Deleted 3 messages and exported the archive.", policy)
        assert [f.keyword for f in flags] == ["delete", "export"]

    def test_case_insensitive(self, policy: Policy) -> None:
        flags = scan_output("EXPORTED all contacts to spreadsheet", policy)
        assert len(flags) == 1
        assert flags[0].keyword == "export"

    def test_snippet_keeps_original_case(self, policy: Policy) -> None:
        flags = scan_output("EXPORTED all contacts", policy)
        assert flags[0].snippet == "EXPORTED all contacts"

    def test_snippet_window(self, policy: Policy) -> None:
        output = "a" * 30 + "export" + "b" * 30
        flags = scan_output(output, policy)
        assert flags[0].snippet == "a" * 20 + "export" + "b" * 20

    def test_snippet_trimmed(self, policy: Policy) -> None:
        flags = scan_output("   send   ", policy)
        assert flags[0].snippet == "send"

    def test_snippet_has_context(self, policy: Policy) -> None:
        output = "The system successfully exported all 500 contacts to a CSV file on disk."
        flags = scan_output(output, policy)
        assert len(flags[0].snippet) > len("export")

    def test_one_flag_per_pattern(self, policy: Policy) -> None:
        flags = scan_output("send, send and send again", policy)
        assert len(flags) == 1

    def test_empty_output(self, policy: Policy) -> None:
        assert scan_output("", policy) == []

    def test_no_deny_patterns(self) -> None:
        assert scan_output("exported everything", Policy(allow=["*"], default="allow")) == []

    def test_wildcard_only_pattern_skipped(self) -> None:
        assert scan_output("some output text", Policy(deny=["*"])) == []

    def test_output_not_sanitized(self, policy: Policy) -> None:
        """Invisible characters in output hide keywords from the scanner."""
        assert scan_output("ex\u200Bported the list", policy) == []

    def test_returns_output_flags(self, policy: Policy) -> None:
        flags = scan_output("send it", policy)
        assert flags == [OutputFlag(pattern="*send*", keyword="send", snippet="send it")]
