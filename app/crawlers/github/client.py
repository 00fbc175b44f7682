"""Async GitHub REST gateway with bounded rate-limit retry and a short-lived response cache."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import re
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlparse

import httpx
from dateutil import parser as date_parser
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_none

from app.config.settings import settings
from app.crawlers.github.errors import NetworkError, NotFoundError, RateLimitedError, ValidationError
from app.models.activity import CommitRecord, RepositoryRef, RepositorySummary

logger = logging.getLogger(__name__)

_REDACTED_VALUE = "***REDACTED***"
_SENSITIVE_KEYS = ("authorization", "token", "api_key", "apikey", "secret", "password", "cookie")
_TOKEN_PATTERNS = (
    re.compile(r"(?i)(bearer\s+)[^\s,;]+"),
    re.compile(r"(?i)(token\s*[=:]\s*)[^\s,;]+"),
    re.compile(r"(?i)(access_token=)[^&\s]+"),
)

_OWNER_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,38})$")
_REPO_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")
MAX_COMMITS_PER_PAGE = 100


def sanitize_for_log(value: Any, *, key: Optional[str] = None) -> Any:
    """Return a copy of a log payload with credentials masked."""

    if key and any(keyword in key.lower() for keyword in _SENSITIVE_KEYS):
        return _REDACTED_VALUE
    if isinstance(value, dict):
        return {str(k): sanitize_for_log(v, key=str(k)) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [sanitize_for_log(item) for item in value]
    if isinstance(value, str):
        redacted = value
        for pattern in _TOKEN_PATTERNS:
            redacted = pattern.sub(rf"\1{_REDACTED_VALUE}", redacted)
        return redacted
    return value


def sanitize_log_extra(**kwargs: Any) -> dict[str, Any]:
    """Helper for `extra=` payloads in structured logging."""

    return {key: sanitize_for_log(value, key=key) for key, value in kwargs.items()}


def parse_repository_url(url: Any) -> Optional[RepositoryRef]:
    """Extract owner/repo from `https://host/owner/repo[.git][/...]`; None when malformed.

    Trailing segments such as `/tree/main` or `/issues` are ignored.
    """

    if not isinstance(url, str) or not url.strip():
        return None

    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None

    segments = [segment for segment in parsed.path.split("/") if segment]
    if len(segments) < 2:
        return None

    owner, repo = segments[0], segments[1]
    if repo.lower().endswith(".git"):
        repo = repo[: -len(".git")]
    if not _OWNER_PATTERN.match(owner) or not repo or repo in (".", "..") or not _REPO_PATTERN.match(repo):
        return None
    return RepositoryRef(owner=owner, repo=repo)


def _parse_datetime(raw: Any) -> Optional[datetime]:
    if not isinstance(raw, str) or not raw:
        return None
    try:
        return date_parser.isoparse(raw)
    except (ValueError, OverflowError):
        return None


class _RateLimitRetryableError(Exception):
    """Short cooldown already waited out; tenacity should try once more."""

    def __init__(self, wait_seconds: float, status_code: int) -> None:
        super().__init__(f"GitHub rate limit encountered ({status_code})")
        self.wait_seconds = wait_seconds
        self.status_code = status_code


class GitHubGateway:
    """Read-only GitHub client used by the classifier, work-log analyzer and import workflow."""

    API_VERSION = "2022-11-28"
    ACCEPT_JSON = "application/vnd.github+json"

    def __init__(
        self,
        *,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_attempts: Optional[int] = None,
        rate_limit_max_wait_seconds: Optional[float] = None,
        rate_limit_buffer_seconds: Optional[int] = None,
        cache_ttl_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._token = token or settings.GITHUB_TOKEN
        self._base_url = base_url or settings.GITHUB_API_BASE_URL
        self._timeout_seconds = timeout_seconds or settings.GITHUB_TIMEOUT_SECONDS
        self._max_attempts = max_attempts or settings.GITHUB_MAX_ATTEMPTS
        self._rate_limit_max_wait = (
            rate_limit_max_wait_seconds
            if rate_limit_max_wait_seconds is not None
            else settings.GITHUB_RATE_LIMIT_MAX_WAIT_SECONDS
        )
        self._rate_limit_buffer_seconds = (
            rate_limit_buffer_seconds
            if rate_limit_buffer_seconds is not None
            else settings.GITHUB_RATE_LIMIT_BUFFER_SECONDS
        )
        self._cache_ttl = cache_ttl_seconds if cache_ttl_seconds is not None else settings.GITHUB_CACHE_TTL_SECONDS
        self._transport = transport
        self._clock = clock
        self._sleep = sleep
        self._client: Optional[httpx.AsyncClient] = None
        self._cache: dict[tuple[str, tuple[tuple[str, str], ...]], tuple[float, Any]] = {}

    async def __aenter__(self) -> "GitHubGateway":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def clear_cache(self) -> None:
        self._cache.clear()

    parse_repository_url = staticmethod(parse_repository_url)

    async def list_repositories(self, username: str) -> list[RepositorySummary]:
        """List a user's public repositories, most recently updated first."""

        username = (username or "").strip()
        if not username or not _OWNER_PATTERN.match(username):
            raise ValidationError(f"Invalid GitHub username: {username!r}")

        payload = await self._get_json(
            f"/users/{username}/repos",
            params={"sort": "updated", "per_page": min(settings.GITHUB_REPOS_PER_PAGE, 100)},
        )
        if not isinstance(payload, list):
            raise NetworkError("Unexpected repository list payload", path=f"/users/{username}/repos")
        return [self._to_repository(item) for item in payload if isinstance(item, dict)]

    async def get_repository(self, owner: str, repo: str) -> RepositorySummary:
        path = f"/repos/{owner}/{repo}"
        payload = await self._get_json(path)
        if not isinstance(payload, dict):
            raise NetworkError("Unexpected repository payload", path=path)
        return self._to_repository(payload)

    async def list_commits(self, owner: str, repo: str, since: datetime) -> list[CommitRecord]:
        """Return one page of commits authored since `since`, newest first."""

        path = f"/repos/{owner}/{repo}/commits"
        per_page = max(1, min(settings.GITHUB_COMMITS_PER_PAGE, MAX_COMMITS_PER_PAGE))
        payload = await self._get_json(path, params={"since": since.isoformat(), "per_page": per_page})
        if not isinstance(payload, list):
            raise NetworkError("Unexpected commit list payload", path=path)

        commits: list[CommitRecord] = []
        for item in payload:
            commit = self._to_commit(item)
            if commit is None:
                logger.debug("Skipping commit without author date", extra=sanitize_log_extra(path=path))
                continue
            commits.append(commit)
        return commits

    async def get_readme(self, owner: str, repo: str) -> Optional[str]:
        """Return decoded README text, or None when the repository has none."""

        path = f"/repos/{owner}/{repo}/readme"
        try:
            payload = await self._get_json(path)
        except NotFoundError:
            return None

        if not isinstance(payload, dict):
            return None
        encoded = payload.get("content") if isinstance(payload.get("content"), str) else ""
        if not encoded:
            return None
        if payload.get("encoding", "base64") != "base64":
            return encoded

        try:
            return base64.b64decode(encoded).decode("utf-8", errors="replace")
        except (binascii.Error, ValueError) as exc:
            logger.warning(
                "Failed to decode README content",
                extra=sanitize_log_extra(path=path, error=str(exc)),
            )
            return None

    async def list_languages(self, owner: str, repo: str) -> dict[str, int]:
        """Language byte counts, largest first."""

        path = f"/repos/{owner}/{repo}/languages"
        payload = await self._get_json(path)
        if not isinstance(payload, dict):
            return {}
        usage = [(str(name), int(size)) for name, size in payload.items() if isinstance(size, int)]
        return dict(sorted(usage, key=lambda item: item[1], reverse=True))

    async def _get_json(self, path: str, *, params: Optional[dict[str, Any]] = None) -> Any:
        cache_key = (path, tuple(sorted((str(k), str(v)) for k, v in (params or {}).items())))
        cached = self._cache.get(cache_key)
        if cached is not None:
            expires_at, payload = cached
            if self._clock() < expires_at:
                logger.debug("GitHub cache hit", extra=sanitize_log_extra(path=path, params=params))
                return payload
            del self._cache[cache_key]

        payload = await self._request(path, params=params)
        if self._cache_ttl > 0:
            self._cache[cache_key] = (self._clock() + self._cache_ttl, payload)
        return payload

    async def _request(self, path: str, *, params: Optional[dict[str, Any]] = None) -> Any:
        client = await self._ensure_client()

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_attempts),
                wait=wait_none(),
                retry=retry_if_exception_type(_RateLimitRetryableError),
                reraise=True,
            ):
                with attempt:
                    response = await client.get(path, params=params)

                    if response.status_code == 404:
                        raise NotFoundError("GitHub resource not found", path=path, status_code=404)

                    if self._is_rate_limited(response):
                        wait_seconds = self._compute_rate_limit_wait(response.headers)
                        logger.warning(
                            "GitHub API rate limit encountered",
                            extra=sanitize_log_extra(
                                path=path,
                                params=params,
                                status_code=response.status_code,
                                retry_after_seconds=wait_seconds,
                            ),
                        )
                        last_attempt = attempt.retry_state.attempt_number >= self._max_attempts
                        if wait_seconds > self._rate_limit_max_wait or last_attempt:
                            raise RateLimitedError(
                                "GitHub rate limit exhausted",
                                retry_after=wait_seconds,
                                path=path,
                                status_code=response.status_code,
                            )
                        await self._sleep(wait_seconds)
                        raise _RateLimitRetryableError(wait_seconds, response.status_code)

                    response.raise_for_status()
                    return response.json()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            logger.warning(
                "GitHub request failed",
                extra=sanitize_log_extra(path=path, params=params, status_code=status_code, error=str(exc)),
            )
            raise NetworkError("GitHub request failed", path=path, status_code=status_code) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "GitHub transport error",
                extra=sanitize_log_extra(path=path, params=params, error=str(exc)),
            )
            raise NetworkError(f"GitHub transport error: {exc}", path=path) from exc
        except ValueError as exc:
            raise NetworkError(f"GitHub returned invalid JSON: {exc}", path=path) from exc

        raise NetworkError("Unknown GitHub request failure", path=path)

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client:
            return self._client

        headers = {
            "Accept": self.ACCEPT_JSON,
            "User-Agent": settings.USER_AGENT,
            "X-GitHub-Api-Version": self.API_VERSION,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=self._timeout_seconds,
            transport=self._transport,
        )
        return self._client

    @staticmethod
    def _is_rate_limited(response: httpx.Response) -> bool:
        if response.status_code == 429:
            return True
        if response.status_code != 403:
            return False
        return response.headers.get("x-ratelimit-remaining") == "0" or "retry-after" in response.headers

    def _compute_rate_limit_wait(self, headers: httpx.Headers) -> float:
        retry_after = headers.get("retry-after")
        if retry_after is not None:
            try:
                return max(float(retry_after), 0.0)
            except ValueError:
                pass

        reset_raw = headers.get("x-ratelimit-reset")
        if reset_raw is not None:
            try:
                wait_seconds = int(reset_raw) - int(time.time()) + self._rate_limit_buffer_seconds
                return float(max(wait_seconds, 0))
            except ValueError:
                pass

        return 60.0

    @staticmethod
    def _to_repository(payload: dict[str, Any]) -> RepositorySummary:
        owner = payload.get("owner") if isinstance(payload.get("owner"), dict) else {}
        topics = payload.get("topics") if isinstance(payload.get("topics"), list) else []
        name = str(payload.get("name") or "")
        return RepositorySummary(
            id=int(payload.get("id") or 0),
            name=name,
            description=payload.get("description") or None,
            primary_language=payload.get("language") or None,
            star_count=int(payload.get("stargazers_count") or 0),
            fork_count=int(payload.get("forks_count") or 0),
            url=str(payload.get("html_url") or ""),
            updated_at=_parse_datetime(payload.get("pushed_at") or payload.get("updated_at")),
            is_private=bool(payload.get("private", False)),
            owner=str(owner.get("login") or ""),
            homepage=payload.get("homepage") or None,
            topics=tuple(str(topic) for topic in topics),
            is_fork=bool(payload.get("fork", False)),
        )

    @staticmethod
    def _to_commit(payload: Any) -> Optional[CommitRecord]:
        if not isinstance(payload, dict):
            return None
        commit = payload.get("commit") if isinstance(payload.get("commit"), dict) else {}
        author = commit.get("author") if isinstance(commit.get("author"), dict) else {}
        committer = commit.get("committer") if isinstance(commit.get("committer"), dict) else {}

        authored_at = _parse_datetime(author.get("date")) or _parse_datetime(committer.get("date"))
        if authored_at is None:
            return None
        return CommitRecord(
            sha=str(payload.get("sha") or ""),
            message=str(commit.get("message") or ""),
            author_date=authored_at,
            url=payload.get("html_url") or None,
            author_name=author.get("name") or None,
        )
