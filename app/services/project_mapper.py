"""Mapping helpers from classified repositories to showcase import records."""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional

from app.models.activity import ClassificationResult, ImportRecord, RepositorySummary

README_DESCRIPTION_MIN_LENGTH = 20
README_DESCRIPTION_MAX_LENGTH = 200

_TASK_PREFIX = re.compile(r"^0x[0-9a-fA-F]+$")


def build_project_title(repo_name: str) -> str:
    """Human title from a repository name, e.g. `0x0B-malloc_free` -> `0x0B - Malloc Free`."""
    words = [word for word in re.split(r"[-_\s]+", repo_name.strip()) if word]
    if not words:
        return repo_name.strip()

    prefix = None
    if _TASK_PREFIX.match(words[0]) and len(words) > 1:
        prefix = words.pop(0)

    title = " ".join(word[:1].upper() + word[1:] for word in words)
    return f"{prefix} - {title}" if prefix else title


def extract_readme_description(readme_text: Optional[str]) -> Optional[str]:
    """First substantial non-heading README line, clipped to a short paragraph."""
    if not readme_text:
        return None

    for raw_line in readme_text.splitlines():
        line = raw_line.strip()
        if len(line) <= README_DESCRIPTION_MIN_LENGTH:
            continue
        if line.startswith(("#", "*", "-", "|", "!", "<", "```")):
            continue
        if len(line) > README_DESCRIPTION_MAX_LENGTH:
            return line[:README_DESCRIPTION_MAX_LENGTH].rstrip() + "..."
        return line
    return None


def map_repository_to_import_record(
    *,
    repository: RepositorySummary,
    classification: ClassificationResult,
    languages: Mapping[str, int] | None = None,
    readme_text: Optional[str] = None,
) -> ImportRecord:
    """Map a repository and its verdict into the record handed to persistence."""

    description = _pick_text(
        repository.description,
        extract_readme_description(readme_text),
        fallback=f"{repository.name} - ALX Software Engineering project",
    )
    technologies = _pick_technologies(languages, repository.primary_language)

    return ImportRecord(
        title=build_project_title(repository.name),
        description=description,
        technologies=technologies,
        github_url=repository.url,
        live_url=_pick_text(repository.homepage, None),
        category=classification.category,
        original_repo_name=repository.name,
        confidence=classification.confidence,
        last_updated=repository.updated_at,
        is_public=not repository.is_private,
    )


def _pick_text(primary: Any, secondary: Any, *, fallback: str | None = None) -> str | None:
    if isinstance(primary, str) and primary.strip():
        return primary.strip()
    if isinstance(secondary, str) and secondary.strip():
        return secondary.strip()
    return fallback


def _pick_technologies(languages: Mapping[str, int] | None, primary_language: Optional[str]) -> tuple[str, ...]:
    if languages:
        ordered = sorted(languages.items(), key=lambda item: (-item[1], item[0].lower()))
        return tuple(name for name, _ in ordered if name.strip())
    if primary_language and primary_language.strip():
        return (primary_language.strip(),)
    return ()
