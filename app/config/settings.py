"""Application settings and configuration"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "Showcase Activity"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # GitHub API
    GITHUB_TOKEN: Optional[str] = None
    GITHUB_API_BASE_URL: str = "https://api.github.com"
    GITHUB_TIMEOUT_SECONDS: float = 15.0
    GITHUB_REPOS_PER_PAGE: int = 100
    GITHUB_COMMITS_PER_PAGE: int = 100  # Hard-capped at 100 by the API
    GITHUB_README_CONCURRENCY: int = 8  # Parallel README fetches per classification request

    # GitHub rate-limit policy: one bounded retry, only for short cooldowns
    GITHUB_MAX_ATTEMPTS: int = 2
    GITHUB_RATE_LIMIT_MAX_WAIT_SECONDS: float = 5.0
    GITHUB_RATE_LIMIT_BUFFER_SECONDS: int = 1

    # Response cache (per gateway instance, in-memory)
    GITHUB_CACHE_TTL_SECONDS: float = 300.0

    # Work log
    WORKLOG_DEFAULT_DAYS: int = 7

    # Curriculum project classifier
    CLASSIFIER_RECENT_DAYS: int = 90
    CLASSIFIER_STALE_DAYS: int = 730
    CLASSIFIER_CONFIDENCE_THRESHOLD: float = 0.35

    # Optional LLM rewrite of work-log narratives
    OPENAI_API_KEY: Optional[str] = None
    NARRATIVE_LLM_ENABLED: bool = False
    NARRATIVE_LLM_MODEL: str = "gpt-4o-mini"
    NARRATIVE_LLM_MAX_TOKENS: int = 200

    USER_AGENT: str = "ShowcaseActivity/1.0"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env


settings = Settings()
