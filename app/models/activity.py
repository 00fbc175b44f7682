"""Value objects passed between the gateway, analyzers and the import workflow."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


class ProjectCategory(str, enum.Enum):
    """Showcase categories, in tie-break priority order."""

    WEB = "web"
    BACKEND = "backend"
    MOBILE = "mobile"
    DATA_SCIENCE = "data-science"
    AI = "ai"
    DEVOPS = "devops"
    OTHER = "other"


class CommitCategory(str, enum.Enum):
    """Work-log buckets, in assignment priority order."""

    FIXES = "fixes"
    FEATURES = "features"
    REFACTOR = "refactor"
    DOCS = "docs"
    CHORE = "chore"


class Platform(str, enum.Enum):
    """Sharing targets with their own length and tone constraints."""

    TWITTER = "twitter"
    LINKEDIN = "linkedin"
    FACEBOOK = "facebook"
    DISCORD = "discord"


@dataclass(frozen=True, slots=True)
class RepositoryRef:
    """Owner/name pair parsed from a repository URL."""

    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass(frozen=True, slots=True)
class RepositorySummary:
    """Repository snapshot fetched once per import session."""

    id: int
    name: str
    description: Optional[str]
    primary_language: Optional[str]
    star_count: int
    fork_count: int
    url: str
    updated_at: Optional[datetime]
    is_private: bool = False
    owner: str = ""
    homepage: Optional[str] = None
    topics: tuple[str, ...] = ()
    is_fork: bool = False

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}" if self.owner else self.name


@dataclass(frozen=True, slots=True)
class CommitRecord:
    """A single commit as returned by the commits endpoint."""

    sha: str
    message: str
    author_date: datetime
    url: Optional[str] = None
    author_name: Optional[str] = None

    @property
    def headline(self) -> str:
        return self.message.strip().splitlines()[0].strip() if self.message.strip() else ""


@dataclass(frozen=True, slots=True)
class MatchedSignal:
    """One scoring contribution recorded for transparency."""

    signal: str
    weight: float


@dataclass(frozen=True, slots=True)
class ClassificationResult:
    """Curriculum-project verdict for one repository."""

    repository_id: int
    confidence: float
    category: ProjectCategory
    matched_signals: tuple[MatchedSignal, ...] = ()
    score: float = 0.0
    is_curriculum: bool = False


@dataclass(frozen=True, slots=True)
class WorkLog:
    """Time-windowed, categorized summary of commit activity."""

    timeframe_days: int
    commit_count: int
    category_counts: dict[CommitCategory, int]
    most_active_category: Optional[CommitCategory]
    latest_commit: Optional[CommitRecord]
    narrative_summary: str
    highlights: dict[CommitCategory, tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.timeframe_days <= 0:
            raise ValueError(f"timeframe_days must be positive, got {self.timeframe_days}")
        if self.commit_count < 0:
            raise ValueError(f"commit_count must not be negative, got {self.commit_count}")
        counted = sum(self.category_counts.values())
        if counted != self.commit_count:
            raise ValueError(
                f"category counts sum to {counted} but commit_count is {self.commit_count}"
            )

    def with_narrative(self, narrative: str) -> "WorkLog":
        return WorkLog(
            timeframe_days=self.timeframe_days,
            commit_count=self.commit_count,
            category_counts=dict(self.category_counts),
            most_active_category=self.most_active_category,
            latest_commit=self.latest_commit,
            narrative_summary=narrative,
            highlights=dict(self.highlights),
        )


@dataclass(frozen=True, slots=True)
class PlatformContent:
    """Generated share text for one platform."""

    platform: Platform
    content: str
    limit: Optional[int]
    optimized: bool
    truncated: bool = False
    shareable: bool = True

    @property
    def length(self) -> int:
        return len(self.content)

    @property
    def is_empty(self) -> bool:
        return self.length == 0

    def as_dict(self) -> dict:
        return {
            "platform": self.platform.value,
            "content": self.content,
            "length": self.length,
            "limit": self.limit,
            "optimized": self.optimized,
            "truncated": self.truncated,
            "shareable": self.shareable,
            "is_empty": self.is_empty,
        }


@dataclass(frozen=True, slots=True)
class ShareableProject:
    """Project fields the content synthesizer reads."""

    title: str
    description: Optional[str] = None
    live_url: Optional[str] = None
    source_url: Optional[str] = None
    technologies: tuple[str, ...] = ()
    category: ProjectCategory = ProjectCategory.OTHER


@dataclass(frozen=True, slots=True)
class ImportRecord:
    """Plain project record handed to the persistence collaborator."""

    title: str
    description: str
    technologies: tuple[str, ...]
    github_url: str
    live_url: Optional[str]
    category: ProjectCategory
    original_repo_name: str
    confidence: float
    last_updated: Optional[datetime]
    is_public: bool

    def as_dict(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "technologies": list(self.technologies),
            "github_url": self.github_url,
            "live_url": self.live_url,
            "category": self.category.value,
            "original_repo_name": self.original_repo_name,
            "confidence": self.confidence,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "is_public": self.is_public,
        }
