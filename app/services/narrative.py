"""Optional LLM rewrite of the deterministic work-log narrative"""

from typing import Any, Optional
import logging

from openai import AsyncOpenAI

from app.config.settings import settings
from app.models.activity import WorkLog

logger = logging.getLogger(__name__)


class NarrativeEnhancer:
    """Rewrites a work-log narrative into a friendlier paragraph.

    The template narrative is always the fallback: any failure or empty
    answer returns None so the caller keeps the original text.
    """

    def __init__(self, client: Optional[Any] = None, model: Optional[str] = None):
        if client is None:
            if not settings.OPENAI_API_KEY:
                raise ValueError("OPENAI_API_KEY is required when NARRATIVE_LLM_ENABLED is set")
            client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        self.client = client
        self.model = model or settings.NARRATIVE_LLM_MODEL

    async def enhance(self, work_log: WorkLog, repository: str) -> Optional[str]:
        prompt = self._build_prompt(work_log, repository)
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {
                        "role": "system",
                        "content": "You write short, factual progress updates for a developer's portfolio.",
                    },
                    {"role": "user", "content": prompt},
                ],
                temperature=0.3,
                max_tokens=settings.NARRATIVE_LLM_MAX_TOKENS,
            )
            content = (response.choices[0].message.content or "").strip()
        except Exception as e:
            logger.warning(f"Narrative enhancement failed for {repository}, keeping template text: {e}")
            return None

        return content or None

    def _build_prompt(self, work_log: WorkLog, repository: str) -> str:
        counts = ", ".join(
            f"{category.value}: {count}" for category, count in work_log.category_counts.items() if count
        )
        highlights = "\n".join(
            f"- {line}" for lines in work_log.highlights.values() for line in lines
        )
        return f"""Rewrite this activity summary for {repository} as one paragraph of at most three sentences.
Do not invent work that is not listed.

Summary: {work_log.narrative_summary}
Commit counts over {work_log.timeframe_days} days: {counts}
Highlights:
{highlights or '- (none)'}
"""
