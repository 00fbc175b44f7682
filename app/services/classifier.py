"""Curriculum ("ALX-style") project detection by weighted-signal scoring."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Callable, Iterable, Mapping, Optional, Sequence, Union

from app.config.settings import settings
from app.models.activity import ClassificationResult, MatchedSignal, ProjectCategory, RepositorySummary

logger = logging.getLogger(__name__)

NAME_KEYWORD_WEIGHT = 2.0
NAME_KEYWORD_CAP = 4.0
README_MARKER_WEIGHT = 1.0
README_MARKER_CAP = 2.0
LANGUAGE_WEIGHT = 1.5
RECENT_ACTIVITY_WEIGHT = 1.0
STALE_PENALTY = -1.0
CATEGORY_KEYWORD_WEIGHT = 0.5

MAX_ATTAINABLE_SCORE = NAME_KEYWORD_CAP + README_MARKER_CAP + LANGUAGE_WEIGHT + RECENT_ACTIVITY_WEIGHT

# Tokens seen in program repository names and descriptions.
CURRICULUM_TOKENS = (
    "alx",
    "holberton",
    "0x",
    "simple_shell",
    "printf",
    "monty",
    "sorting_algorithms",
    "binary_trees",
    "airbnb_clone",
    "low_level_programming",
    "higher_level_programming",
    "system_engineering",
    "software engineering",
)

README_MARKERS = (
    ("task heading", re.compile(r"(?im)^#{1,6}\s*\d+\.\s+\S")),
    ("checklist", re.compile(r"(?m)^\s*[-*]\s+\[[ xX]\]\s")),
    ("task labels", re.compile(r"(?i)\b(?:mandatory|advanced)\b")),
    ("learning objectives", re.compile(r"(?i)\b(?:learning objectives|requirements|resources)\b")),
    ("program name", re.compile(r"(?i)\b(?:alx|holberton)\b")),
)

LANGUAGE_AFFINITY: dict[str, ProjectCategory] = {
    "html": ProjectCategory.WEB,
    "css": ProjectCategory.WEB,
    "javascript": ProjectCategory.WEB,
    "typescript": ProjectCategory.WEB,
    "vue": ProjectCategory.WEB,
    "c": ProjectCategory.BACKEND,
    "c++": ProjectCategory.BACKEND,
    "python": ProjectCategory.BACKEND,
    "java": ProjectCategory.BACKEND,
    "go": ProjectCategory.BACKEND,
    "rust": ProjectCategory.BACKEND,
    "php": ProjectCategory.BACKEND,
    "ruby": ProjectCategory.BACKEND,
    "c#": ProjectCategory.BACKEND,
    "swift": ProjectCategory.MOBILE,
    "kotlin": ProjectCategory.MOBILE,
    "dart": ProjectCategory.MOBILE,
    "objective-c": ProjectCategory.MOBILE,
    "jupyter notebook": ProjectCategory.DATA_SCIENCE,
    "r": ProjectCategory.DATA_SCIENCE,
    "shell": ProjectCategory.DEVOPS,
    "dockerfile": ProjectCategory.DEVOPS,
    "hcl": ProjectCategory.DEVOPS,
    "puppet": ProjectCategory.DEVOPS,
}

CATEGORY_KEYWORDS: dict[ProjectCategory, tuple[str, ...]] = {
    ProjectCategory.WEB: (
        "frontend", "html", "css", "javascript", "react", "bootstrap", "web", "airbnb", "full stack", "fullstack",
    ),
    ProjectCategory.BACKEND: (
        "backend", "api", "database", "sql", "flask", "django", "shell", "unix", "interpreter",
        "command line", "printf", "malloc", "low_level", "low level", "monty", "server",
    ),
    ProjectCategory.MOBILE: ("mobile", "android", "ios", "flutter", "react native"),
    ProjectCategory.DATA_SCIENCE: ("data science", "pandas", "numpy", "analytics", "visualization"),
    ProjectCategory.AI: ("machine learning", "machine_learning", "neural", "deep learning", "tensorflow", "pytorch"),
    ProjectCategory.DEVOPS: (
        "devops", "deployment", "docker", "nginx", "load balancer", "load_balancer", "monitoring",
        "system_engineering", "puppet", "ci/cd",
    ),
}

CATEGORY_PRIORITY: tuple[ProjectCategory, ...] = tuple(ProjectCategory)

ReadmeLookup = Union[Mapping[int, Optional[str]], Callable[[RepositorySummary], Optional[str]]]


@dataclass(slots=True)
class ClassifierConfig:
    """Windows and threshold for the curriculum classifier."""

    recent_days: int = field(default_factory=lambda: settings.CLASSIFIER_RECENT_DAYS)
    stale_days: int = field(default_factory=lambda: settings.CLASSIFIER_STALE_DAYS)
    confidence_threshold: float = field(default_factory=lambda: settings.CLASSIFIER_CONFIDENCE_THRESHOLD)
    now_provider: Callable[..., datetime] = datetime.now


class ProjectClassifier:
    """Pure scorer: the same repository and README always produce the same result."""

    def __init__(self, config: ClassifierConfig | None = None) -> None:
        self.config = config or ClassifierConfig()

    def classify(
        self,
        repository: RepositorySummary,
        readme_text: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> ClassificationResult:
        score = 0.0
        signals: list[MatchedSignal] = []
        category_weights: dict[ProjectCategory, float] = {}

        name_and_description = f"{repository.name} {repository.description or ''}".lower()

        name_score = 0.0
        for token in CURRICULUM_TOKENS:
            if token not in name_and_description:
                continue
            weight = min(NAME_KEYWORD_WEIGHT, NAME_KEYWORD_CAP - name_score)
            if weight <= 0:
                break
            name_score += weight
            signals.append(MatchedSignal(signal=f"keyword:{token}", weight=weight))
        score += name_score

        readme = readme_text or ""
        readme_score = 0.0
        for label, pattern in README_MARKERS:
            if not readme or not pattern.search(readme):
                continue
            weight = min(README_MARKER_WEIGHT, README_MARKER_CAP - readme_score)
            if weight <= 0:
                break
            readme_score += weight
            signals.append(MatchedSignal(signal=f"readme:{label}", weight=weight))
        score += readme_score

        language = (repository.primary_language or "").strip().lower()
        affinity = LANGUAGE_AFFINITY.get(language)
        if affinity is not None:
            score += LANGUAGE_WEIGHT
            category_weights[affinity] = category_weights.get(affinity, 0.0) + LANGUAGE_WEIGHT
            signals.append(MatchedSignal(signal=f"language:{language}", weight=LANGUAGE_WEIGHT))

        recency_weight = self._recency_weight(repository.updated_at, now)
        if recency_weight:
            score += recency_weight
            label = "recently-updated" if recency_weight > 0 else "stale"
            signals.append(MatchedSignal(signal=f"activity:{label}", weight=recency_weight))

        score = max(score, 0.0)

        category_text = f"{name_and_description} {' '.join(repository.topics)} {readme[:2000]}".lower()
        for category, keywords in CATEGORY_KEYWORDS.items():
            hits = sum(1 for keyword in keywords if keyword in category_text)
            if hits:
                category_weights[category] = category_weights.get(category, 0.0) + hits * CATEGORY_KEYWORD_WEIGHT

        confidence = round(min(1.0, score / MAX_ATTAINABLE_SCORE), 4)
        category = self._pick_category(category_weights)

        logger.debug(
            f"Classified '{repository.name}' as {category.value} "
            f"(score={score:.2f}, confidence={confidence:.2f}, signals={len(signals)})"
        )

        return ClassificationResult(
            repository_id=repository.id,
            confidence=confidence,
            category=category,
            matched_signals=tuple(signals),
            score=round(score, 4),
            is_curriculum=confidence >= self.config.confidence_threshold,
        )

    def classify_repositories(
        self,
        repositories: Iterable[RepositorySummary],
        readme_lookup: ReadmeLookup | None = None,
        *,
        now: Optional[datetime] = None,
    ) -> dict[int, ClassificationResult]:
        """Classify many repositories; README text comes from a mapping or a callable."""

        now = now or self.config.now_provider(UTC)
        results: dict[int, ClassificationResult] = {}
        for repository in repositories:
            results[repository.id] = self.classify(repository, _lookup_readme(readme_lookup, repository), now=now)
        return results

    @staticmethod
    def rank_curriculum_projects(
        repositories: Sequence[RepositorySummary],
        classifications: Mapping[int, ClassificationResult],
    ) -> list[tuple[RepositorySummary, ClassificationResult]]:
        """Curriculum matches ordered by confidence, then most recently updated."""

        matches = [
            (repository, classifications[repository.id])
            for repository in repositories
            if repository.id in classifications and classifications[repository.id].is_curriculum
        ]
        matches.sort(
            key=lambda item: (
                -item[1].confidence,
                -(item[0].updated_at.timestamp() if item[0].updated_at else 0.0),
                item[0].name.lower(),
            )
        )
        return matches

    def _recency_weight(self, updated_at: Optional[datetime], now: Optional[datetime]) -> float:
        if updated_at is None:
            return 0.0
        now = now or self.config.now_provider(UTC)
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        updated = updated_at if updated_at.tzinfo else updated_at.replace(tzinfo=UTC)
        age_days = max((now - updated).days, 0)
        if age_days <= self.config.recent_days:
            return RECENT_ACTIVITY_WEIGHT
        if age_days >= self.config.stale_days:
            return STALE_PENALTY
        return 0.0

    @staticmethod
    def _pick_category(weights: Mapping[ProjectCategory, float]) -> ProjectCategory:
        best = ProjectCategory.OTHER
        best_weight = 0.0
        for category in CATEGORY_PRIORITY:
            weight = weights.get(category, 0.0)
            if weight > best_weight:
                best, best_weight = category, weight
        return best


def _lookup_readme(readme_lookup: ReadmeLookup | None, repository: RepositorySummary) -> Optional[str]:
    if readme_lookup is None:
        return None
    if callable(readme_lookup):
        try:
            return readme_lookup(repository)
        except Exception as exc:
            logger.warning(f"README lookup failed for '{repository.name}', classifying without it: {exc}")
            return None
    return readme_lookup.get(repository.id)
