"""Import workflow: username -> repository selection -> curriculum review -> hand-off."""

from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol, Sequence

from app.crawlers.github.client import sanitize_for_log, sanitize_log_extra
from app.crawlers.github.errors import GatewayError, RateLimitedError
from app.models.activity import ClassificationResult, ImportRecord, RepositorySummary
from app.services.classifier import ProjectClassifier
from app.services.project_mapper import map_repository_to_import_record

logger = logging.getLogger(__name__)

LEVEL_INFO = "info"
LEVEL_WARNING = "warning"
LEVEL_ERROR = "error"


class Step(str, enum.Enum):
    USERNAME = "username"
    SELECT_REPOS = "select_repos"
    REVIEW_IMPORT = "review_import"
    DONE = "done"


class RepositorySource(Protocol):
    async def list_repositories(self, username: str) -> list[RepositorySummary]:
        ...

    async def get_readme(self, owner: str, repo: str) -> Optional[str]:
        ...

    async def list_languages(self, owner: str, repo: str) -> dict[str, int]:
        ...


class ProjectSink(Protocol):
    """Persistence collaborator that stores imported projects."""

    async def save_projects(self, records: list[ImportRecord]) -> Sequence[Any]:
        ...


@dataclass(frozen=True, slots=True)
class ActionResult:
    success: bool
    step: Step
    message: str = ""
    level: str = LEVEL_INFO
    retry_after: Optional[float] = None


@dataclass(slots=True)
class ImportSession:
    """Mutable state of one pass through the import wizard."""

    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    step: Step = Step.USERNAME
    platform: str = "github"
    username: Optional[str] = None
    repositories: list[RepositorySummary] = field(default_factory=list)
    selected_ids: set[int] = field(default_factory=set)
    classifications: dict[int, ClassificationResult] = field(default_factory=dict)
    readmes: dict[int, Optional[str]] = field(default_factory=dict)
    languages: dict[int, dict[str, int]] = field(default_factory=dict)
    detection_failures: dict[int, str] = field(default_factory=dict)
    imported: list[Any] = field(default_factory=list)
    closed: bool = False

    def selected_repositories(self) -> list[RepositorySummary]:
        return [repo for repo in self.repositories if repo.id in self.selected_ids]


Apply = Callable[[], ActionResult]


class ImportWorkflow:
    """Drives one import session. Every action returns an ActionResult and never raises core errors."""

    def __init__(
        self,
        gateway: RepositorySource,
        sink: ProjectSink,
        *,
        classifier: ProjectClassifier | None = None,
        now_provider: Callable[..., datetime] = datetime.now,
    ) -> None:
        self.gateway = gateway
        self.sink = sink
        self.classifier = classifier or ProjectClassifier()
        self.now_provider = now_provider
        self.session = ImportSession()
        self._lock = asyncio.Lock()
        self._task: asyncio.Future | None = None

    @property
    def step(self) -> Step:
        return self.session.step

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def submit_username(self, username: str) -> ActionResult:
        cleaned = (username or "").strip()
        session = self.session
        if session.step is not Step.USERNAME:
            return self._reject(f"Cannot submit a username from step '{session.step.value}'")
        if not cleaned:
            return self._reject("Please enter a GitHub username.")

        if cleaned == session.username and session.repositories:
            session.step = Step.SELECT_REPOS
            return ActionResult(True, session.step, f"Showing {len(session.repositories)} repositories for {cleaned}")

        async def operation() -> Apply:
            repositories = await self.gateway.list_repositories(cleaned)

            def apply() -> ActionResult:
                if not repositories:
                    return ActionResult(False, session.step, f"No repositories found for {cleaned}.", LEVEL_WARNING)
                session.username = cleaned
                session.repositories = list(repositories)
                session.selected_ids = set()
                session.classifications = {}
                session.readmes = {}
                session.languages = {}
                session.detection_failures = {}
                session.step = Step.SELECT_REPOS
                return ActionResult(True, session.step, f"Found {len(repositories)} repositories for {cleaned}")

            return apply

        return await self._run("submit_username", session, operation)

    def toggle_selection(self, repository_id: int) -> ActionResult:
        session = self.session
        rejection = self._check_selectable(session)
        if rejection:
            return rejection
        if repository_id not in {repo.id for repo in session.repositories}:
            return self._reject(f"Unknown repository id {repository_id}")
        if repository_id in session.selected_ids:
            session.selected_ids.discard(repository_id)
        else:
            session.selected_ids.add(repository_id)
        return self._selection_result(session)

    def set_selection(self, repository_ids: Iterable[int]) -> ActionResult:
        session = self.session
        rejection = self._check_selectable(session)
        if rejection:
            return rejection
        known = {repo.id for repo in session.repositories}
        session.selected_ids = {repo_id for repo_id in repository_ids if repo_id in known}
        return self._selection_result(session)

    def select_all(self) -> ActionResult:
        return self.set_selection(repo.id for repo in self.session.repositories)

    def clear_selection(self) -> ActionResult:
        return self.set_selection(())

    async def detect(self, fetch_readmes: bool = True) -> ActionResult:
        session = self.session
        if session.step is not Step.SELECT_REPOS:
            return self._reject(f"Cannot run detection from step '{session.step.value}'")
        selected = session.selected_repositories()
        if not selected:
            return self._reject("Select at least one repository first.")

        async def operation() -> Apply:
            outcomes = await asyncio.gather(
                *(self._inspect(session, repo, fetch_readmes) for repo in selected),
                return_exceptions=True,
            )

            now = self.now_provider(UTC)
            classifications: dict[int, ClassificationResult] = {}
            readmes: dict[int, Optional[str]] = {}
            languages: dict[int, dict[str, int]] = {}
            failures: dict[int, str] = {}
            first_error: GatewayError | None = None

            for repo, outcome in zip(selected, outcomes):
                if isinstance(outcome, GatewayError):
                    failures[repo.id] = outcome.user_message
                    first_error = first_error or outcome
                    continue
                if isinstance(outcome, BaseException):
                    raise outcome
                readme, repo_languages = outcome
                readmes[repo.id] = readme
                languages[repo.id] = repo_languages
                classifications[repo.id] = self.classifier.classify(repo, readme, now=now)

            if not classifications and first_error is not None:
                raise first_error

            def apply() -> ActionResult:
                session.classifications.update(classifications)
                session.readmes.update(readmes)
                session.languages.update(languages)
                for repo_id in failures:
                    # A verdict from an earlier pass is stale once the repository fails.
                    session.classifications.pop(repo_id, None)
                    session.readmes.pop(repo_id, None)
                    session.languages.pop(repo_id, None)
                session.detection_failures = failures
                session.step = Step.REVIEW_IMPORT
                matches = sum(1 for result in classifications.values() if result.is_curriculum)
                message = f"Analyzed {len(classifications)} repositories, {matches} look like curriculum projects"
                if failures:
                    return ActionResult(
                        True,
                        session.step,
                        f"{message}. {len(failures)} could not be analyzed.",
                        LEVEL_WARNING,
                    )
                return ActionResult(True, session.step, message)

            return apply

        return await self._run("detect", session, operation)

    async def import_selected(self) -> ActionResult:
        session = self.session
        if session.step is not Step.REVIEW_IMPORT:
            return self._reject(f"Cannot import from step '{session.step.value}'")

        records = [
            map_repository_to_import_record(
                repository=repo,
                classification=session.classifications[repo.id],
                languages=session.languages.get(repo.id),
                readme_text=session.readmes.get(repo.id),
            )
            for repo in session.selected_repositories()
            if repo.id in session.classifications
        ]
        if not records:
            return self._reject("Nothing to import: no analyzed repositories are selected.")

        async def operation() -> Apply:
            saved = await self.sink.save_projects(records)

            def apply() -> ActionResult:
                session.imported = list(saved or [])
                session.step = Step.DONE
                return ActionResult(True, session.step, f"Imported {len(records)} projects")

            return apply

        return await self._run("import_selected", session, operation)

    def back(self) -> ActionResult:
        session = self.session
        if self.busy:
            return self._busy()
        if session.step is Step.REVIEW_IMPORT:
            session.step = Step.SELECT_REPOS
        elif session.step is Step.SELECT_REPOS:
            session.step = Step.USERNAME
        else:
            return self._reject(f"Cannot go back from step '{session.step.value}'")
        return ActionResult(True, session.step)

    def close(self) -> ActionResult:
        """Discard the session and cancel any in-flight action."""
        session = self.session
        session.closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.info(
                "Cancelled in-flight import action on close",
                extra=sanitize_log_extra(session_id=session.session_id),
            )
        self.session = ImportSession()
        return ActionResult(True, self.session.step, "Import session closed")

    async def _inspect(
        self,
        session: ImportSession,
        repo: RepositorySummary,
        fetch_readme: bool,
    ) -> tuple[Optional[str], dict[str, int]]:
        owner = repo.owner or session.username or ""
        readme = await self.gateway.get_readme(owner, repo.name) if fetch_readme else None
        try:
            repo_languages = await self.gateway.list_languages(owner, repo.name)
        except GatewayError as exc:
            logger.warning(f"Language breakdown unavailable for {owner}/{repo.name}: {sanitize_for_log(str(exc))}")
            repo_languages = {}
        return readme, repo_languages

    async def _run(
        self,
        action: str,
        session: ImportSession,
        operation: Callable[[], Awaitable[Apply]],
    ) -> ActionResult:
        if self._lock.locked():
            return self._busy()

        async with self._lock:
            task = asyncio.ensure_future(operation())
            self._task = task
            try:
                apply = await task
            except asyncio.CancelledError:
                if session.closed:
                    return ActionResult(False, self.session.step, "Import session was closed", LEVEL_WARNING)
                raise
            except RateLimitedError as exc:
                logger.warning(
                    f"Import action '{action}' hit the GitHub rate limit",
                    extra=sanitize_log_extra(session_id=session.session_id, retry_after=exc.retry_after),
                )
                return ActionResult(False, session.step, exc.user_message, LEVEL_ERROR, exc.retry_after)
            except GatewayError as exc:
                logger.warning(
                    f"Import action '{action}' failed: {sanitize_for_log(str(exc))}",
                    extra=sanitize_log_extra(session_id=session.session_id, status_code=exc.status_code),
                )
                return ActionResult(False, session.step, exc.user_message, LEVEL_ERROR)
            except Exception:
                logger.exception(f"Import action '{action}' failed unexpectedly")
                return ActionResult(False, session.step, "Something went wrong. Please try again.", LEVEL_ERROR)
            finally:
                self._task = None

            if session.closed or session is not self.session:
                logger.info(f"Discarding late result of '{action}' for a closed session")
                return ActionResult(False, self.session.step, "Import session was closed", LEVEL_WARNING)
            return apply()

    def _check_selectable(self, session: ImportSession) -> ActionResult | None:
        if self.busy:
            return self._busy()
        if session.step is not Step.SELECT_REPOS:
            return self._reject(f"Selection is only available in step '{Step.SELECT_REPOS.value}'")
        return None

    def _selection_result(self, session: ImportSession) -> ActionResult:
        return ActionResult(True, session.step, f"{len(session.selected_ids)} repositories selected")

    def _reject(self, message: str) -> ActionResult:
        return ActionResult(False, self.session.step, message, LEVEL_WARNING)

    def _busy(self) -> ActionResult:
        return ActionResult(False, self.session.step, "Another action is still running.", LEVEL_WARNING)
