"""Commit history analysis: raw commits into a categorized work log."""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime, timedelta
from typing import Callable, Optional, Protocol, Sequence

from app.config.settings import settings
from app.crawlers.github.errors import ValidationError
from app.models.activity import CommitCategory, CommitRecord, WorkLog

logger = logging.getLogger(__name__)

HIGHLIGHTS_PER_CATEGORY = 3

# Word-start matching: "fix" matches "fixes" and "fixed" but not "prefix".
CATEGORY_PATTERNS: tuple[tuple[CommitCategory, re.Pattern[str]], ...] = (
    (CommitCategory.FIXES, re.compile(r"\b(?:fix|bug|patch|resolve)", re.IGNORECASE)),
    (CommitCategory.FEATURES, re.compile(r"\b(?:add|feature|implement|new)", re.IGNORECASE)),
    (CommitCategory.REFACTOR, re.compile(r"\b(?:refactor|clean|restructure|optimi[sz]e)", re.IGNORECASE)),
    (CommitCategory.DOCS, re.compile(r"\b(?:doc|readme|comment)", re.IGNORECASE)),
)

_CATEGORY_ORDER = tuple(CommitCategory)

_NOUNS = {
    CommitCategory.FIXES: ("fix", "fixes"),
    CommitCategory.FEATURES: ("feature", "features"),
    CommitCategory.REFACTOR: ("refactor", "refactors"),
    CommitCategory.DOCS: ("docs change", "docs changes"),
    CommitCategory.CHORE: ("chore", "chores"),
}


class CommitSource(Protocol):
    async def list_commits(self, owner: str, repo: str, since: datetime) -> list[CommitRecord]:
        ...


class NarrativeRewriter(Protocol):
    async def enhance(self, work_log: WorkLog, repository: str) -> Optional[str]:
        ...


def categorize_commit(message: str) -> CommitCategory:
    """Bucket a commit by the first line of its message."""

    headline = message.strip().splitlines()[0] if message and message.strip() else ""
    for category, pattern in CATEGORY_PATTERNS:
        if pattern.search(headline):
            return category
    return CommitCategory.CHORE


def build_work_log(commits: Sequence[CommitRecord], timeframe_days: int) -> Optional[WorkLog]:
    """Pure core of the analyzer. Returns None when there is no activity."""

    if timeframe_days <= 0:
        raise ValidationError(f"timeframe_days must be positive, got {timeframe_days}")
    if not commits:
        return None

    counts = {category: 0 for category in _CATEGORY_ORDER}
    highlights: dict[CommitCategory, list[str]] = {}
    ordered = sorted(commits, key=lambda commit: commit.author_date, reverse=True)
    for commit in ordered:
        category = categorize_commit(commit.message)
        counts[category] += 1
        bucket = highlights.setdefault(category, [])
        if len(bucket) < HIGHLIGHTS_PER_CATEGORY and commit.headline:
            bucket.append(commit.headline)

    most_active = max(_CATEGORY_ORDER, key=lambda category: (counts[category], -_CATEGORY_ORDER.index(category)))

    return WorkLog(
        timeframe_days=timeframe_days,
        commit_count=len(commits),
        category_counts=counts,
        most_active_category=most_active,
        latest_commit=ordered[0],
        narrative_summary=_template_narrative(len(commits), timeframe_days, counts, most_active),
        highlights={category: tuple(lines) for category, lines in highlights.items()},
    )


def render_work_log_digest(work_log: WorkLog) -> str:
    """Multi-line digest suitable for pasting into a post."""

    lines = [f"Work Log ({_days(work_log.timeframe_days)}):", f"• {_plural(work_log.commit_count, 'commit', 'commits')}"]
    features = work_log.category_counts.get(CommitCategory.FEATURES, 0)
    fixes = work_log.category_counts.get(CommitCategory.FIXES, 0)
    if features:
        lines.append(f"• New features: {features}")
    if fixes:
        lines.append(f"• Bug fixes: {fixes}")
    if work_log.most_active_category is not None:
        lines.append(f"• Primary focus: {work_log.most_active_category.value}")
    return "\n".join(lines)


class WorkLogAnalyzer:
    """Fetches a repository's recent commits and summarizes them."""

    def __init__(
        self,
        gateway: CommitSource,
        *,
        enhancer: Optional[NarrativeRewriter] = None,
        now_provider: Callable[..., datetime] = datetime.now,
    ) -> None:
        self.gateway = gateway
        self.enhancer = enhancer
        self.now_provider = now_provider

    async def generate_work_log(
        self,
        owner: str,
        repo: str,
        timeframe_days: Optional[int] = None,
    ) -> Optional[WorkLog]:
        days = settings.WORKLOG_DEFAULT_DAYS if timeframe_days is None else timeframe_days
        if days <= 0:
            raise ValidationError(f"timeframe_days must be positive, got {days}")

        since = self.now_provider(UTC) - timedelta(days=days)
        commits = await self.gateway.list_commits(owner, repo, since)
        work_log = build_work_log(commits, days)
        if work_log is None:
            logger.warning(f"No commits for {owner}/{repo} in the last {days} days")
            return None

        logger.info(
            f"Work log for {owner}/{repo}: {work_log.commit_count} commits, "
            f"most active {work_log.most_active_category.value}"
        )

        if self.enhancer is not None:
            enhanced = await self.enhancer.enhance(work_log, f"{owner}/{repo}")
            if enhanced:
                work_log = work_log.with_narrative(enhanced)
        return work_log


def _template_narrative(
    commit_count: int,
    timeframe_days: int,
    counts: dict[CommitCategory, int],
    most_active: CommitCategory,
) -> str:
    parts = [_plural(counts[category], *_NOUNS[category]) for category in _CATEGORY_ORDER if counts[category]]
    if len(parts) > 1:
        breakdown = ", ".join(parts[:-1]) + f" and {parts[-1]}"
    else:
        breakdown = parts[0]
    return (
        f"{_plural(commit_count, 'commit', 'commits')} in the last {_days(timeframe_days)}: {breakdown}. "
        f"Most of the work went into {most_active.value}."
    )


def _plural(count: int, singular: str, plural: str) -> str:
    return f"{count} {singular if count == 1 else plural}"


def _days(days: int) -> str:
    return _plural(days, "day", "days")
