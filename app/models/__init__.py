"""Activity pipeline models"""

from app.models.activity import (
    ClassificationResult,
    CommitCategory,
    CommitRecord,
    ImportRecord,
    MatchedSignal,
    Platform,
    PlatformContent,
    ProjectCategory,
    RepositoryRef,
    RepositorySummary,
    ShareableProject,
    WorkLog,
)

__all__ = [
    "ClassificationResult",
    "CommitCategory",
    "CommitRecord",
    "ImportRecord",
    "MatchedSignal",
    "Platform",
    "PlatformContent",
    "ProjectCategory",
    "RepositoryRef",
    "RepositorySummary",
    "ShareableProject",
    "WorkLog",
]
