from __future__ import annotations

import logging
from typing import Optional, Sequence

from ..config import Settings, get_settings
from ..exceptions import PlanParseError
from ..llm.provider import GenerationProvider
from .base import GenerationPlan, GenerationStrategy, build_plan, default_plan
from .extractor import extract_structured
from .prompts import PLANNER_SYSTEM_PROMPT, PLANNER_USER_PROMPT

logger = logging.getLogger(__name__)

PLANNER_MAX_TOKENS = 1500


class GenerationPlanner:
    """Resolves a request into a GenerationPlan, calling the model only when needed."""

    def __init__(
        self,
        provider: GenerationProvider,
        *,
        settings: Optional[Settings] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.provider = provider
        self.settings = settings or get_settings()
        self._log = log or logger

    def needs_planning_call(
        self,
        strategy: Optional[GenerationStrategy],
        page_names: Optional[Sequence[str]],
    ) -> bool:
        if strategy is None:
            return True
        return strategy == GenerationStrategy.MULTI and not page_names

    def plan_from_hints(
        self,
        prompt: str,
        *,
        strategy: GenerationStrategy,
        page_names: Optional[Sequence[str]] = None,
        total_pages: Optional[int] = None,
    ) -> GenerationPlan:
        return build_plan({}, prompt, strategy=strategy, page_names=page_names, total_pages=total_pages)

    def planning_messages(self, prompt: str, context: Optional[str] = None) -> list[dict]:
        context_str = f"Context: {context}" if context else ""
        return [
            {"role": "system", "content": PLANNER_SYSTEM_PROMPT},
            {"role": "user", "content": PLANNER_USER_PROMPT.format(user_message=prompt, context=context_str)},
        ]

    async def request_plan_text(self, prompt: str, context: Optional[str] = None) -> str:
        return await self.provider.complete(
            self.planning_messages(prompt, context),
            model=self.settings.planner_model,
            max_tokens=PLANNER_MAX_TOKENS,
            temperature=0.2,
        )

    def plan_from_text(
        self,
        raw: str,
        prompt: str,
        *,
        strategy: Optional[GenerationStrategy] = None,
        page_names: Optional[Sequence[str]] = None,
        total_pages: Optional[int] = None,
    ) -> GenerationPlan:
        """Parse planning output; unparseable output yields the default single-unit plan."""
        result = extract_structured(raw)
        if not result.ok:
            error = PlanParseError(f"Planning response had no usable JSON: {result.error}")
            self._log.warning("Falling back to single-page plan: %s", error.with_trace())
            return default_plan(prompt, str(error))

        data = result.value
        if isinstance(data, list):
            # A bare array is read as the page list.
            data = {"pages": data, "strategy": "multi" if len(data) > 1 else "single"}
        self._log.info(
            "Plan extracted",
            extra={"data": {"strategy": result.strategy, "keys": sorted(data.keys())}},
        )
        return build_plan(data, prompt, strategy=strategy, page_names=page_names, total_pages=total_pages)


__all__ = ["GenerationPlanner", "PLANNER_MAX_TOKENS"]
