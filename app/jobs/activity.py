"""Activity intelligence entrypoints shared by the API and other callers."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import Any, AsyncIterator, Awaitable, Optional, Sequence

from app.config.settings import settings
from app.crawlers.github.client import GitHubGateway, parse_repository_url, sanitize_for_log
from app.crawlers.github.errors import GatewayError, ValidationError
from app.models.activity import (
    ClassificationResult,
    CommitRecord,
    Platform,
    PlatformContent,
    RepositorySummary,
    ShareableProject,
    WorkLog,
)
from app.services.classifier import ProjectClassifier, ReadmeLookup
from app.services.content import ContentSynthesizer, shareable_from_repository
from app.services.narrative import NarrativeEnhancer
from app.services.worklog import WorkLogAnalyzer, build_work_log

logger = logging.getLogger(__name__)

__all__ = [
    "classify_repositories",
    "classify_user_repositories",
    "generate_platform_content",
    "generate_repository_content",
    "generate_work_log",
    "parse_repository_url",
]


def classify_repositories(
    repositories: Sequence[RepositorySummary],
    readme_lookup: ReadmeLookup | None = None,
    *,
    classifier: ProjectClassifier | None = None,
    now: Optional[datetime] = None,
) -> dict[int, ClassificationResult]:
    """Classify repositories as curriculum projects, keyed by repository id."""
    return (classifier or ProjectClassifier()).classify_repositories(repositories, readme_lookup, now=now)


async def generate_work_log(
    owner: str,
    repo: str,
    timeframe_days: Optional[int] = None,
    *,
    gateway: Any | None = None,
    analyzer: WorkLogAnalyzer | None = None,
) -> Optional[WorkLog]:
    """Summarize a repository's recent commits. None means no activity in the window."""
    if analyzer is not None:
        return await analyzer.generate_work_log(owner, repo, timeframe_days)

    async with _gateway_scope(gateway) as active_gateway:
        return await WorkLogAnalyzer(active_gateway, enhancer=_default_enhancer()).generate_work_log(
            owner, repo, timeframe_days
        )


def generate_platform_content(
    project: ShareableProject,
    work_log: Optional[WorkLog] = None,
    raw_commits: Sequence[CommitRecord] = (),
    custom_message: str = "",
    *,
    synthesizer: ContentSynthesizer | None = None,
) -> dict[Platform, PlatformContent]:
    """One share text per platform, each within its platform's limit where enforced."""
    return (synthesizer or ContentSynthesizer()).generate_platform_content(
        project, work_log, raw_commits, custom_message
    )


async def classify_user_repositories(
    username: str,
    *,
    gateway: Any | None = None,
    fetch_readmes: bool = True,
    classifier: ProjectClassifier | None = None,
) -> list[tuple[RepositorySummary, ClassificationResult]]:
    """Fetch a user's repositories and classify each, most recently updated first."""
    async with _gateway_scope(gateway) as active_gateway:
        repositories = await active_gateway.list_repositories(username)
        readmes: dict[int, Optional[str]] = {}
        if fetch_readmes and repositories:
            readmes = await _fetch_readmes(active_gateway, username, repositories)

    results = classify_repositories(repositories, readmes, classifier=classifier)
    return [(repo, results[repo.id]) for repo in repositories]


async def generate_repository_content(
    owner: str,
    repo: str,
    *,
    timeframe_days: Optional[int] = None,
    custom_message: str = "",
    gateway: Any | None = None,
    classifier: ProjectClassifier | None = None,
) -> tuple[Optional[WorkLog], dict[Platform, PlatformContent]]:
    """Work log plus platform content for one repository, fetched in a single pass."""
    days = settings.WORKLOG_DEFAULT_DAYS if timeframe_days is None else timeframe_days
    if days <= 0:
        raise ValidationError(f"timeframe_days must be positive, got {days}")

    async with _gateway_scope(gateway) as active_gateway:
        summary = await active_gateway.get_repository(owner, repo)
        since = datetime.now(UTC) - timedelta(days=days)
        commits, languages, readme = await asyncio.gather(
            active_gateway.list_commits(owner, repo, since),
            _optional(active_gateway.list_languages(owner, repo), {}, f"languages for {owner}/{repo}"),
            _optional(active_gateway.get_readme(owner, repo), None, f"README for {owner}/{repo}"),
        )

    work_log = build_work_log(commits, days)
    enhancer = _default_enhancer()
    if work_log is not None and enhancer is not None:
        enhanced = await enhancer.enhance(work_log, f"{owner}/{repo}")
        if enhanced:
            work_log = work_log.with_narrative(enhanced)

    classification = (classifier or ProjectClassifier()).classify(summary, readme)
    project = shareable_from_repository(summary, technologies=languages.keys(), category=classification.category)
    recent_commits = sorted(commits, key=lambda commit: commit.author_date, reverse=True)
    return work_log, generate_platform_content(project, work_log, recent_commits, custom_message)


@asynccontextmanager
async def _gateway_scope(gateway: Any | None) -> AsyncIterator[Any]:
    """Use the caller's gateway as-is, or open and close a fresh one."""
    if gateway is not None:
        yield gateway
        return
    async with GitHubGateway() as owned:
        yield owned


def _default_enhancer() -> NarrativeEnhancer | None:
    if not settings.NARRATIVE_LLM_ENABLED:
        return None
    return NarrativeEnhancer()


async def _fetch_readmes(
    gateway: Any,
    username: str,
    repositories: Sequence[RepositorySummary],
) -> dict[int, Optional[str]]:
    """README per repository; a failed fetch degrades to None unless every fetch failed."""
    semaphore = asyncio.Semaphore(max(1, settings.GITHUB_README_CONCURRENCY))

    async def fetch(repo: RepositorySummary) -> Optional[str]:
        async with semaphore:
            return await gateway.get_readme(repo.owner or username, repo.name)

    outcomes = await asyncio.gather(*(fetch(repo) for repo in repositories), return_exceptions=True)

    readmes: dict[int, Optional[str]] = {}
    errors: list[GatewayError] = []
    for repo, outcome in zip(repositories, outcomes):
        if isinstance(outcome, GatewayError):
            logger.warning(f"README unavailable for {repo.name}: {sanitize_for_log(str(outcome))}")
            errors.append(outcome)
            readmes[repo.id] = None
            continue
        if isinstance(outcome, BaseException):
            raise outcome
        readmes[repo.id] = outcome

    if errors and len(errors) == len(repositories):
        raise errors[0]
    return readmes


async def _optional(call: Awaitable[Any], fallback: Any, what: str) -> Any:
    try:
        return await call
    except GatewayError as exc:
        logger.warning(f"Falling back without {what}: {sanitize_for_log(str(exc))}")
        return fallback
