"""Error taxonomy surfaced by the GitHub gateway."""

from __future__ import annotations

from typing import Optional


class GatewayError(Exception):
    """Base class for failures the gateway reports to its callers."""

    user_message = "GitHub request failed. Please try again."

    def __init__(self, message: str, *, path: Optional[str] = None, status_code: Optional[int] = None) -> None:
        details = ", ".join(
            f"{key}: {value}" for key, value in (("path", path), ("status", status_code)) if value is not None
        )
        super().__init__(f"{message} ({details})" if details else message)
        self.path = path
        self.status_code = status_code


class NotFoundError(GatewayError):
    """The user or repository does not exist."""

    user_message = "GitHub user or repository not found. Please check the name."


class RateLimitedError(GatewayError):
    """The hourly request quota is exhausted."""

    def __init__(
        self,
        message: str,
        *,
        retry_after: Optional[float] = None,
        path: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, path=path, status_code=status_code)
        self.retry_after = retry_after

    @property
    def user_message(self) -> str:  # type: ignore[override]
        if self.retry_after:
            return f"GitHub rate limit reached. Try again in {int(round(self.retry_after))} seconds."
        return "GitHub rate limit reached. Try again later."


class NetworkError(GatewayError):
    """Transient transport failure or unexpected upstream status."""


class ValidationError(GatewayError):
    """Malformed input such as an empty username or an unparseable URL."""

    @property
    def user_message(self) -> str:  # type: ignore[override]
        return str(self)
