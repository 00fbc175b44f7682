from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from app.crawlers.github.errors import NotFoundError, ValidationError
from app.models.activity import CommitCategory, CommitRecord, WorkLog
from app.services.worklog import WorkLogAnalyzer, build_work_log, categorize_commit, render_work_log_digest

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)

TWELVE_MESSAGES = [
    "Add login form",
    "Add pagination",
    "Implement search",
    "New dashboard widget",
    "feature: export CSV",
    "Fix crash on empty input",
    "Resolve merge conflict",
    "bug: null pointer in loader",
    "Refactor user service",
    "Clean up imports",
    "Bump version to 1.2",
    "Merge branch main",
]


def _commits(messages: list[str]) -> list[CommitRecord]:
    return [
        CommitRecord(sha=f"sha{index}", message=message, author_date=NOW - timedelta(hours=index + 1))
        for index, message in enumerate(messages)
    ]


class FakeCommitGateway:
    def __init__(self, commits: list[CommitRecord] | None = None, error: Exception | None = None) -> None:
        self.commits = commits or []
        self.error = error
        self.calls: list[tuple[str, str, datetime]] = []

    async def list_commits(self, owner: str, repo: str, since: datetime) -> list[CommitRecord]:
        self.calls.append((owner, repo, since))
        if self.error:
            raise self.error
        return self.commits


class FakeEnhancer:
    def __init__(self, answer: str | None) -> None:
        self.answer = answer
        self.seen: list[Any] = []

    async def enhance(self, work_log: WorkLog, repository: str) -> str | None:
        self.seen.append((work_log, repository))
        return self.answer


def _analyzer(gateway: FakeCommitGateway, **kwargs) -> WorkLogAnalyzer:
    return WorkLogAnalyzer(gateway, now_provider=lambda tz=None: NOW, **kwargs)


@pytest.mark.parametrize(
    "message,expected",
    [
        ("Fix typo in header", CommitCategory.FIXES),
        ("fixed flaky test", CommitCategory.FIXES),
        ("Add README badges", CommitCategory.FEATURES),
        ("Patch and add retries", CommitCategory.FIXES),
        ("Optimize query plan", CommitCategory.REFACTOR),
        ("Update docs for setup", CommitCategory.DOCS),
        ("Use a prefix for keys", CommitCategory.CHORE),
        ("", CommitCategory.CHORE),
        ("Bump deps\n\nfix: included in body only", CommitCategory.CHORE),
    ],
)
def test_categorize_commit_uses_first_line_and_word_starts(message, expected) -> None:
    assert categorize_commit(message) == expected


def test_build_work_log_counts_twelve_commits() -> None:
    work_log = build_work_log(_commits(TWELVE_MESSAGES), 7)

    assert work_log.commit_count == 12
    assert work_log.category_counts == {
        CommitCategory.FIXES: 3,
        CommitCategory.FEATURES: 5,
        CommitCategory.REFACTOR: 2,
        CommitCategory.DOCS: 0,
        CommitCategory.CHORE: 2,
    }
    assert work_log.most_active_category == CommitCategory.FEATURES
    assert work_log.latest_commit.sha == "sha0"
    assert sum(work_log.category_counts.values()) == work_log.commit_count
    assert "12 commits in the last 7 days" in work_log.narrative_summary
    assert work_log.highlights[CommitCategory.FEATURES] == ("Add login form", "Add pagination", "Implement search")


def test_most_active_ties_follow_category_priority() -> None:
    work_log = build_work_log(_commits(["Add endpoint", "Fix endpoint"]), 7)

    assert work_log.most_active_category == CommitCategory.FIXES


def test_latest_commit_is_by_author_date_not_input_order() -> None:
    commits = [
        CommitRecord(sha="old", message="Add a", author_date=NOW - timedelta(days=3)),
        CommitRecord(sha="new", message="Add b", author_date=NOW - timedelta(hours=1)),
    ]

    assert build_work_log(commits, 7).latest_commit.sha == "new"


def test_build_work_log_returns_none_without_commits() -> None:
    assert build_work_log([], 7) is None


def test_work_log_rejects_inconsistent_counts() -> None:
    with pytest.raises(ValueError):
        WorkLog(
            timeframe_days=7,
            commit_count=3,
            category_counts={CommitCategory.FIXES: 1},
            most_active_category=CommitCategory.FIXES,
            latest_commit=None,
            narrative_summary="",
        )


def test_render_work_log_digest() -> None:
    digest = render_work_log_digest(build_work_log(_commits(TWELVE_MESSAGES), 7))

    assert digest.splitlines() == [
        "Work Log (7 days):",
        "• 12 commits",
        "• New features: 5",
        "• Bug fixes: 3",
        "• Primary focus: features",
    ]


@pytest.mark.asyncio
async def test_generate_work_log_queries_window_and_summarizes() -> None:
    gateway = FakeCommitGateway(_commits(TWELVE_MESSAGES))

    work_log = await _analyzer(gateway).generate_work_log("octo", "printf", 7)

    assert work_log.commit_count == 12
    assert gateway.calls == [("octo", "printf", NOW - timedelta(days=7))]


@pytest.mark.asyncio
async def test_generate_work_log_returns_none_for_empty_history(caplog) -> None:
    gateway = FakeCommitGateway([])

    with caplog.at_level(logging.WARNING, logger="app.services.worklog"):
        work_log = await _analyzer(gateway).generate_work_log("octo", "quiet", 7)

    assert work_log is None
    assert "No commits for octo/quiet" in caplog.text


@pytest.mark.asyncio
async def test_generate_work_log_rejects_non_positive_timeframe() -> None:
    gateway = FakeCommitGateway(_commits(TWELVE_MESSAGES))

    with pytest.raises(ValidationError):
        await _analyzer(gateway).generate_work_log("octo", "printf", 0)
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_generate_work_log_propagates_gateway_errors() -> None:
    gateway = FakeCommitGateway(error=NotFoundError("missing", path="/repos/octo/ghost/commits", status_code=404))

    with pytest.raises(NotFoundError):
        await _analyzer(gateway).generate_work_log("octo", "ghost", 7)


@pytest.mark.asyncio
async def test_enhancer_rewrites_narrative_and_falls_back_to_template() -> None:
    gateway = FakeCommitGateway(_commits(TWELVE_MESSAGES))

    enhanced = await _analyzer(gateway, enhancer=FakeEnhancer("A busy week of shipping.")).generate_work_log(
        "octo", "printf", 7
    )
    fallback = await _analyzer(gateway, enhancer=FakeEnhancer(None)).generate_work_log("octo", "printf", 7)

    assert enhanced.narrative_summary == "A busy week of shipping."
    assert enhanced.commit_count == 12
    assert fallback.narrative_summary.startswith("12 commits")
