"""Tests for display formatters"""
from datetime import datetime, timedelta, timezone

import pytest

from git_watchtower.constants import BranchStyleType
from git_watchtower.formatters import (
    format_branch_name,
    format_duration,
    format_pr_status,
    format_remote_status,
    format_sparkline,
    format_time_ago,
    get_branch_style_type,
)
from git_watchtower.models.branch import Branch
from git_watchtower.models.pr import PrState, PrStatus

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class TestFormatTimeAgo:
    """Test relative time formatting."""

    @pytest.mark.parametrize(
        "delta, expected",
        [
            (timedelta(seconds=3), "just now"),
            (timedelta(seconds=42), "42s ago"),
            (timedelta(minutes=5), "5m ago"),
            (timedelta(hours=3), "3h ago"),
            (timedelta(days=1, hours=2), "1 day ago"),
            (timedelta(days=9), "9 days ago"),
        ],
    )
    def test_buckets(self, delta, expected):
        assert format_time_ago(NOW - delta, now=NOW) == expected

    def test_naive_datetime_treated_as_utc(self):
        naive = (NOW - timedelta(minutes=2)).replace(tzinfo=None)
        assert format_time_ago(naive, now=NOW) == "2m ago"

    def test_future_date(self):
        assert format_time_ago(NOW + timedelta(minutes=1), now=NOW) == "just now"


@pytest.mark.parametrize("ms, expected", [(0, "0ms"), (850.7, "850ms"), (1000, "1.0s"), (12345, "12.3s")])
def test_format_duration(ms, expected):
    assert format_duration(ms) == expected


class TestBranchCells:
    """Test branch row cells."""

    def test_branch_name_markers(self):
        assert format_branch_name(Branch("feature/a")) == "feature/a"
        assert format_branch_name(Branch("feature/a", is_new=True)) == "✦ feature/a"
        assert format_branch_name(Branch("feature/a", is_deleted=True)) == "✗ feature/a"
        assert format_branch_name(Branch("main"), is_current=True) == "main *"

    @pytest.mark.parametrize(
        "branch, expected",
        [
            (Branch("a", is_local=False, has_remote=True), "☁"),
            (Branch("a", has_remote=True, has_updates=True), "↓"),
            (Branch("a", has_remote=True), "✓"),
            (Branch("a"), "✗"),
        ],
    )
    def test_remote_status(self, branch, expected):
        assert format_remote_status(branch) == expected


class TestPrBadge:
    """Test PR badges."""

    def test_none(self):
        assert format_pr_status(None) == ""

    def test_open_passing_and_approved(self):
        status = PrStatus(42, "x", PrState.OPEN, approved=True, checks_pass=True, checks_count=3)
        assert format_pr_status(status) == "#42 open ✓ 👍"

    def test_open_failing(self):
        status = PrStatus(42, "x", PrState.OPEN, checks_fail=True, checks_count=3)
        assert format_pr_status(status) == "#42 open ✗"

    def test_open_pending(self):
        assert format_pr_status(PrStatus(1, "x", PrState.OPEN, checks_count=1)) == "#1 open …"

    def test_merged_hides_checks(self):
        status = PrStatus(7, "x", PrState.MERGED, approved=True, checks_pass=True, checks_count=2)
        assert format_pr_status(status) == "#7 merged"


class TestBranchStyle:
    """Test row style selection."""

    def test_deleted_wins(self):
        branch = Branch("main", is_deleted=True, is_new=True)
        assert get_branch_style_type(branch, "main") == BranchStyleType.DELETED

    def test_current(self):
        assert get_branch_style_type(Branch("main"), "main") == BranchStyleType.CURRENT

    def test_merged(self):
        merged = PrStatus(1, "x", PrState.MERGED)
        assert get_branch_style_type(Branch("feature/a", is_new=True), "main", merged) == BranchStyleType.MERGED

    def test_merged_base_branch_not_dimmed(self):
        merged = PrStatus(1, "x", PrState.MERGED)
        assert get_branch_style_type(Branch("develop"), "main", merged) == BranchStyleType.ACTIVE

    def test_updated_then_new_then_active(self):
        assert get_branch_style_type(Branch("a", just_updated=True, is_new=True)) == BranchStyleType.UPDATED
        assert get_branch_style_type(Branch("a", has_updates=True)) == BranchStyleType.UPDATED
        assert get_branch_style_type(Branch("a", is_new=True)) == BranchStyleType.NEW
        assert get_branch_style_type(Branch("a")) == BranchStyleType.ACTIVE


class TestSparkline:
    """Test commit activity sparklines."""

    @pytest.mark.parametrize(
        "counts, expected",
        [
            ([0] * 7, "       "),
            ([], "       "),
            ([1, 0, 0, 0, 0, 0, 0], "█      "),
            ([0, 1, 2, 3, 4, 5, 7], " ▂▃▄▅▆█"),
            ([10, 1, 0, 0, 0, 0, 0], "█▁     "),
        ],
    )
    def test_levels(self, counts, expected):
        assert format_sparkline(counts) == expected

    def test_short_input_padded_on_the_left(self):
        assert format_sparkline([2, 2]) == "     ██"

    def test_long_input_keeps_the_latest_days(self):
        assert format_sparkline([9] + [1] * 7) == "███████"

    def test_width(self):
        assert len(format_sparkline([3, 1, 4], width=3)) == 3
