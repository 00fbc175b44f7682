from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from types import SimpleNamespace
from typing import Any

from app.models.activity import CommitRecord
from app.services.narrative import NarrativeEnhancer
from app.services.worklog import build_work_log


class FakeCompletions:
    def __init__(self, content: str | None = None, error: Exception | None = None, no_choices: bool = False) -> None:
        self.content = content
        self.error = error
        self.no_choices = no_choices
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        if self.no_choices:
            return SimpleNamespace(choices=[])
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _client(completions: FakeCompletions) -> Any:
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def _work_log():
    now = datetime(2026, 10, 19, tzinfo=UTC)
    commits = [
        CommitRecord(sha="1", message="Add pipe support", author_date=now),
        CommitRecord(sha="2", message="Fix exit status", author_date=now),
    ]
    return build_work_log(commits, 7)


def test_enhance_returns_model_text_and_sends_highlights() -> None:
    completions = FakeCompletions(content="  Added pipes and fixed exit codes this week.  ")
    enhancer = NarrativeEnhancer(client=_client(completions), model="gpt-4o-mini")

    text = asyncio.run(enhancer.enhance(_work_log(), "octo/simple_shell"))

    assert text == "Added pipes and fixed exit codes this week."
    call = completions.calls[0]
    assert call["model"] == "gpt-4o-mini"
    prompt = call["messages"][1]["content"]
    assert "octo/simple_shell" in prompt
    assert "- Add pipe support" in prompt


def test_enhance_failure_or_empty_answer_returns_none() -> None:
    failing = NarrativeEnhancer(client=_client(FakeCompletions(error=RuntimeError("quota"))), model="m")
    empty = NarrativeEnhancer(client=_client(FakeCompletions(content="   ")), model="m")

    assert asyncio.run(failing.enhance(_work_log(), "octo/simple_shell")) is None
    assert asyncio.run(empty.enhance(_work_log(), "octo/simple_shell")) is None


def test_enhance_without_choices_returns_none() -> None:
    enhancer = NarrativeEnhancer(client=_client(FakeCompletions(no_choices=True)), model="m")

    assert asyncio.run(enhancer.enhance(_work_log(), "octo/simple_shell")) is None
