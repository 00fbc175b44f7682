"""Platform-specific share text built from a project and its work log"""

from typing import Dict, Iterable, List, Optional, Sequence, Tuple
import logging
import re

from app.models.activity import (
    CommitRecord,
    Platform,
    PlatformContent,
    ProjectCategory,
    RepositorySummary,
    ShareableProject,
    WorkLog,
)

logger = logging.getLogger(__name__)

PLATFORM_LIMITS: Dict[Platform, int] = {
    Platform.TWITTER: 280,
    Platform.LINKEDIN: 1300,
    Platform.FACEBOOK: 400,
    Platform.DISCORD: 2000,
}

# Limits that are reported but never enforced by truncation.
ADVISORY_PLATFORMS = frozenset({Platform.DISCORD})

HASHTAG_COUNTS: Dict[Platform, int] = {
    Platform.TWITTER: 3,
    Platform.LINKEDIN: 5,
}

ELLIPSIS = "…"
SEPARATOR = "\n"
DISCORD_COMMIT_LINES = 5

BASE_HASHTAGS = ("#ALXStudents", "#SoftwareEngineering", "#Coding")

CATEGORY_HASHTAGS: Dict[ProjectCategory, str] = {
    ProjectCategory.WEB: "#WebDev",
    ProjectCategory.BACKEND: "#Backend",
    ProjectCategory.MOBILE: "#MobileDev",
    ProjectCategory.DATA_SCIENCE: "#DataScience",
    ProjectCategory.AI: "#AI",
    ProjectCategory.DEVOPS: "#DevOps",
}

TECH_HASHTAG_OVERRIDES = {
    "c++": "#Cpp",
    "c#": "#CSharp",
    "f#": "#FSharp",
    "jupyter notebook": "#Jupyter",
}


def build_hashtags(project: ShareableProject, count: int) -> List[str]:
    """Deterministic hashtags: category first, then technologies, then program tags."""

    if count <= 0:
        return []

    candidates: List[str] = []
    category_tag = CATEGORY_HASHTAGS.get(project.category)
    if category_tag:
        candidates.append(category_tag)
    for tech in project.technologies:
        tag = _tech_hashtag(tech)
        if tag:
            candidates.append(tag)
    candidates.extend(BASE_HASHTAGS)

    tags: List[str] = []
    seen = set()
    for tag in candidates:
        if tag.lower() in seen:
            continue
        seen.add(tag.lower())
        tags.append(tag)
        if len(tags) == count:
            break
    return tags


def fit_to_limit(base: str, suffix: str, limit: int) -> Tuple[str, bool]:
    """Join base and suffix within limit, shortening only the base.

    The suffix (a URL) is never cut: it is kept whole or dropped entirely
    when it cannot fit next to even an ellipsis.

    Returns:
        (content, truncated)
    """
    content = _join(base, suffix)
    if len(content) <= limit:
        return content, False

    if suffix and len(suffix) + len(SEPARATOR) >= limit:
        suffix = ""
        if len(base) <= limit:
            return base, True

    reserved = len(suffix) + len(SEPARATOR) if suffix else 0
    budget = max(limit - reserved - len(ELLIPSIS), 0)

    cut = -1
    window = base[: budget + 1]
    for index in range(len(window) - 1, -1, -1):
        if window[index].isspace():
            cut = index
            break

    shortened = base[:cut] if cut > 0 else base[:budget]
    shortened = shortened.rstrip()
    return _join(shortened + ELLIPSIS, suffix), True


class ContentSynthesizer:
    """Builds one PlatformContent per platform. Pure: no I/O, never raises."""

    def generate_platform_content(
        self,
        project: ShareableProject,
        work_log: Optional[WorkLog] = None,
        raw_commits: Sequence[CommitRecord] = (),
        custom_message: str = "",
    ) -> Dict[Platform, PlatformContent]:
        suffix = project.live_url or project.source_url or ""
        contents: Dict[Platform, PlatformContent] = {}

        for platform in Platform:
            limit = PLATFORM_LIMITS[platform]
            if custom_message:
                base = custom_message
            else:
                base = self._template(platform, project, work_log, raw_commits)

            if platform in ADVISORY_PLATFORMS:
                content = _join(base, suffix)
                contents[platform] = PlatformContent(
                    platform=platform,
                    content=content,
                    limit=limit,
                    optimized=len(content) <= limit,
                    truncated=False,
                    shareable=False,
                )
                continue

            content, truncated = fit_to_limit(base, suffix, limit)
            if truncated:
                logger.info(
                    f"Truncated {platform.value} content for '{project.title}' "
                    f"from {len(_join(base, suffix))} to {len(content)} characters"
                )
            contents[platform] = PlatformContent(
                platform=platform,
                content=content,
                limit=limit,
                optimized=not truncated,
                truncated=truncated,
            )

        return contents

    def _template(
        self,
        platform: Platform,
        project: ShareableProject,
        work_log: Optional[WorkLog],
        raw_commits: Sequence[CommitRecord],
    ) -> str:
        title = project.title.strip()
        description = (project.description or "").strip()
        narrative = work_log.narrative_summary.strip() if work_log else ""
        hashtags = " ".join(build_hashtags(project, HASHTAG_COUNTS.get(platform, 0)))

        if platform is Platform.TWITTER:
            opener = f"Just shipped {title}!" if title else ""
            return _paragraphs([_sentence(opener, description), narrative, hashtags], SEPARATOR)

        if platform is Platform.LINKEDIN:
            opener = f"I'm excited to share my latest project: {title}." if title else ""
            stack = f"Built with {', '.join(project.technologies)}." if project.technologies else ""
            return _paragraphs([opener, description, narrative, stack, hashtags], "\n\n")

        if platform is Platform.FACEBOOK:
            opener = f"Check out my new project, {title}!" if title else ""
            return _paragraphs([_sentence(opener, description), narrative], SEPARATOR)

        heading = f"**{title}**" if title else ""
        commit_lines = [commit.headline for commit in raw_commits[:DISCORD_COMMIT_LINES] if commit.headline]
        recent = ""
        if commit_lines:
            recent = "Recent commits:\n" + "\n".join(f"- {line}" for line in commit_lines)
        return _paragraphs([heading, description, narrative, recent], SEPARATOR)


def shareable_from_repository(
    repository: RepositorySummary,
    *,
    technologies: Iterable[str] = (),
    category: ProjectCategory = ProjectCategory.OTHER,
) -> ShareableProject:
    techs = tuple(technologies) or ((repository.primary_language,) if repository.primary_language else ())
    return ShareableProject(
        title=repository.name,
        description=repository.description,
        live_url=repository.homepage or None,
        source_url=repository.url,
        technologies=techs,
        category=category,
    )


def _tech_hashtag(tech: str) -> Optional[str]:
    key = tech.strip().lower()
    if not key:
        return None
    if key in TECH_HASHTAG_OVERRIDES:
        return TECH_HASHTAG_OVERRIDES[key]
    cleaned = re.sub(r"[^A-Za-z0-9]", "", tech)
    return f"#{cleaned}" if cleaned else None


def _join(base: str, suffix: str) -> str:
    if not suffix:
        return base
    if not base:
        return suffix
    return f"{base}{SEPARATOR}{suffix}"


def _sentence(*parts: str) -> str:
    return " ".join(part for part in parts if part)


def _paragraphs(parts: List[str], separator: str) -> str:
    return separator.join(part for part in parts if part)
