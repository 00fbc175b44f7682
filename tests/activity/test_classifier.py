from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from app.models.activity import ProjectCategory, RepositorySummary
from app.services.classifier import MAX_ATTAINABLE_SCORE, ClassifierConfig, ProjectClassifier

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)

TASK_README = """# 0x16. C - Simple Shell

## Learning Objectives
- How does a shell work

## Tasks

### 0. Betty would be proud
mandatory

### 1. Simple shell 0.1
- [x] Handle command lines with arguments
"""


def _repo(
    repo_id: int = 1,
    name: str = "alx-simple_shell",
    description: str | None = "A simple UNIX command line interpreter",
    language: str | None = "C",
    age_days: int = 3,
    **extra,
) -> RepositorySummary:
    return RepositorySummary(
        id=repo_id,
        name=name,
        description=description,
        primary_language=language,
        star_count=0,
        fork_count=0,
        url=f"https://github.com/octo/{name}",
        updated_at=NOW - timedelta(days=age_days),
        owner="octo",
        **extra,
    )


def _classifier(**overrides) -> ProjectClassifier:
    options = {"recent_days": 90, "stale_days": 730, "confidence_threshold": 0.35}
    options.update(overrides)
    return ProjectClassifier(ClassifierConfig(**options))


def test_simple_shell_repository_is_a_confident_backend_project() -> None:
    result = _classifier().classify(_repo(), now=NOW)

    assert result.category == ProjectCategory.BACKEND
    assert result.confidence > 0.6
    assert result.is_curriculum is True
    signals = {signal.signal for signal in result.matched_signals}
    assert "keyword:alx" in signals
    assert "language:c" in signals
    assert "activity:recently-updated" in signals


def test_name_keyword_contribution_is_capped() -> None:
    result = _classifier().classify(
        _repo(name="0x0B-alx-holberton-printf", description=None, language=None, age_days=200),
        now=NOW,
    )

    keyword_weight = sum(s.weight for s in result.matched_signals if s.signal.startswith("keyword:"))
    assert keyword_weight == pytest.approx(4.0)
    assert result.score == pytest.approx(4.0)


def test_every_signal_saturates_confidence_at_one() -> None:
    result = _classifier().classify(_repo(name="0x0B-alx-printf"), TASK_README, now=NOW)

    assert result.score == pytest.approx(MAX_ATTAINABLE_SCORE)
    assert result.confidence == 1.0


def test_stale_repository_without_signals_floors_at_zero() -> None:
    result = _classifier().classify(
        _repo(name="notes", description=None, language=None, age_days=2000),
        now=NOW,
    )

    assert result.score == 0.0
    assert result.confidence == 0.0
    assert result.category == ProjectCategory.OTHER
    assert result.is_curriculum is False


@pytest.mark.parametrize(
    "repo",
    [
        _repo(),
        _repo(name="dotfiles", description="My config", language="Shell"),
        _repo(name="landing", description="Bootstrap landing page", language="HTML", age_days=400),
        _repo(name="x", description="", language="Brainfuck", age_days=5000),
        _repo(name="0x00-python-hello_world", description=None, language="Python"),
    ],
)
def test_confidence_is_always_within_unit_interval(repo) -> None:
    result = _classifier().classify(repo, TASK_README, now=NOW)

    assert 0.0 <= result.confidence <= 1.0


def test_classification_is_deterministic() -> None:
    classifier = _classifier()

    first = classifier.classify(_repo(), TASK_README, now=NOW)
    second = classifier.classify(_repo(), TASK_README, now=NOW)

    assert first == second


def test_unrelated_repository_stays_below_threshold() -> None:
    result = _classifier().classify(
        _repo(name="dotfiles", description="My terminal config", language="Shell"),
        now=NOW,
    )

    assert result.is_curriculum is False
    assert result.category == ProjectCategory.DEVOPS


def test_category_ties_follow_priority_order() -> None:
    result = _classifier().classify(
        _repo(name="misc", description="html api", language=None, age_days=200),
        now=NOW,
    )

    assert result.category == ProjectCategory.WEB


def test_threshold_is_configurable() -> None:
    repo = _repo(name="dotfiles", description="My terminal config", language="Shell")

    assert _classifier(confidence_threshold=0.2).classify(repo, now=NOW).is_curriculum is True


def test_classify_repositories_uses_readme_lookup_and_survives_lookup_errors() -> None:
    repos = [_repo(repo_id=1), _repo(repo_id=2, name="alx-printf", description="printf clone")]

    def lookup(repo: RepositorySummary):
        if repo.id == 2:
            raise RuntimeError("readme backend down")
        return TASK_README

    results = _classifier().classify_repositories(repos, lookup, now=NOW)

    assert set(results) == {1, 2}
    assert any(s.signal.startswith("readme:") for s in results[1].matched_signals)
    assert not any(s.signal.startswith("readme:") for s in results[2].matched_signals)


def test_rank_curriculum_projects_orders_by_confidence_then_recency() -> None:
    classifier = _classifier()
    repos = [
        _repo(repo_id=1, name="alx-printf", description=None, age_days=10),
        _repo(repo_id=2, name="alx-monty", description=None, age_days=2),
        _repo(repo_id=3, name="dotfiles", description="config", language=None),
        _repo(repo_id=4, name="0x0B-alx-holberton", description=None),
    ]
    results = classifier.classify_repositories(repos, {4: TASK_README}, now=NOW)

    ranked = classifier.rank_curriculum_projects(repos, results)

    assert [repo.id for repo, _ in ranked] == [4, 2, 1]
