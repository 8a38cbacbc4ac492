from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from ..config import Settings, get_settings
from ..events.emitter import StreamEmitter
from ..events.models import (
    BaseEvent,
    PageCompleteEvent,
    PageStartEvent,
    PlanCompleteEvent,
    StageCompleteEvent,
    StageFailedEvent,
    StageRetryEvent,
    StageStartEvent,
)
from ..exceptions import GenerationCancelled, SiteBuilderError, StageFailedError, TransientProviderError
from ..llm.provider import GenerationProvider, Message
from ..llm.retry import with_retry
from ..log import GenerationCallLogger
from ..planner.base import GenerationPlan, GenerationStrategy, StageDescriptor, build_plan
from ..planner.generation_planner import GenerationPlanner
from ..utils.html import extract_html_document
from .cancellation import CancellationToken

logger = logging.getLogger(__name__)


class ControllerState(str, enum.Enum):
    PLANNING = "planning"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class GenerationRequest:
    prompt: str
    strategy: Optional[GenerationStrategy] = None
    page_names: Optional[List[str]] = None
    total_pages: Optional[int] = None
    stage_index: int = 0
    accumulated_html: Optional[str] = None
    target_page: Optional[str] = None
    artifacts: Dict[str, str] = field(default_factory=dict)
    is_modification: bool = False
    current_html: Optional[str] = None
    project_id: Optional[str] = None
    page_id: Optional[str] = None


@dataclass
class StageResult:
    stage: StageDescriptor
    output: str
    retries: int = 0
    placeholder: bool = False


@dataclass
class PageArtifact:
    page_name: str
    html: str
    title: str = ""
    is_main_page: bool = False
    page_index: int = 0
    total_pages: int = 1
    section_index: Optional[int] = None
    total_sections: Optional[int] = None
    page_id: Optional[str] = None
    project_id: Optional[str] = None
    preview_url: Optional[str] = None


@dataclass
class GenerationOutcome:
    state: ControllerState
    plan: Optional[GenerationPlan] = None
    pages: List[PageArtifact] = field(default_factory=list)
    stage_results: List[StageResult] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def html(self) -> Optional[str]:
        if not self.pages:
            return None
        return self.pages[0].html


PageCallback = Callable[[GenerationPlan, PageArtifact], Awaitable[None]]


class StageController:
    """Executes a generation plan stage by stage.

    Each stage is one streamed generation call wrapped in linear-backoff
    retry. Deltas are forwarded to the emitter while the call runs; the
    cancellation token is polled before every call and between chunks.
    """

    def __init__(
        self,
        provider: GenerationProvider,
        *,
        settings: Optional[Settings] = None,
        emitter: Optional[StreamEmitter] = None,
        token: Optional[CancellationToken] = None,
        planner: Optional[GenerationPlanner] = None,
        on_page_complete: Optional[PageCallback] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.provider = provider
        self.settings = settings or get_settings()
        self.emitter = emitter
        self.token = token or CancellationToken()
        self._log = log or logger
        self.planner = planner or GenerationPlanner(provider, settings=self.settings, log=self._log)
        self.on_page_complete = on_page_complete
        self.state = ControllerState.PLANNING
        self.stage_results: List[StageResult] = []
        self.current_stage: Optional[StageDescriptor] = None

    # ------------------------------------------------------------------ events

    def emit(self, event: BaseEvent) -> None:
        if self.emitter is not None:
            self.emitter.emit(event)

    def _forward_delta(self, content: str, stage: StageDescriptor) -> None:
        if self.emitter is not None:
            self.emitter.emit_delta(content, stage=stage.name, page=stage.page_name)

    def check_cancelled(self) -> None:
        self.token.raise_if_cancelled()

    # ---------------------------------------------------------------- planning

    async def resolve_plan(self, request: GenerationRequest) -> GenerationPlan:
        if request.is_modification and request.current_html:
            return build_plan({}, request.prompt, strategy=GenerationStrategy.SINGLE)

        planner = self.planner
        if not planner.needs_planning_call(request.strategy, request.page_names):
            return planner.plan_from_hints(
                request.prompt,
                strategy=request.strategy,
                page_names=request.page_names,
                total_pages=request.total_pages,
            )

        self.check_cancelled()
        raw = await with_retry(
            planner.request_plan_text,
            request.prompt,
            max_retries=self.settings.generation_max_retries,
            base_delay=self.settings.generation_retry_delay,
            retry_on=(TransientProviderError,),
        )
        self.check_cancelled()
        return planner.plan_from_text(
            raw,
            request.prompt,
            strategy=request.strategy,
            page_names=request.page_names,
            total_pages=request.total_pages,
        )

    # ------------------------------------------------------------------ stages

    async def _stream_once(
        self,
        stage: StageDescriptor,
        messages: Sequence[Message],
        *,
        max_tokens: Optional[int],
        attempt: int,
    ) -> str:
        self.check_cancelled()
        parts: List[str] = []
        model = self.provider.default_model
        with GenerationCallLogger(model, stage=stage.name, attempt=attempt, logger=self._log) as call_log:
            stream = self.provider.stream(
                list(messages),
                max_tokens=max_tokens or self.settings.max_tokens,
                temperature=self.settings.temperature,
            )
            try:
                async for delta in stream:
                    if self.token.cancelled:
                        # Drain the in-flight call; its output is neither kept nor forwarded.
                        continue
                    parts.append(delta)
                    self._forward_delta(delta, stage)
                self.check_cancelled()
            except GenerationCancelled:
                raise
            except Exception as exc:
                call_log.error(str(exc), partial_text_len=sum(len(part) for part in parts))
                if self.token.cancelled:
                    raise GenerationCancelled() from exc
                raise
            finally:
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()
            text = "".join(parts)
            call_log.success(len(text))
        self.check_cancelled()
        return text

    async def run_stage(
        self,
        stage: StageDescriptor,
        messages: Sequence[Message],
        *,
        max_tokens: Optional[int] = None,
        total_stages: Optional[int] = None,
        emit_events: bool = True,
    ) -> StageResult:
        """Run one stage with retry; failures surface as StageFailedError."""
        self.current_stage = stage
        retries = 0

        if emit_events:
            self.emit(
                StageStartEvent(
                    stage_index=stage.index,
                    stage=stage.name,
                    total_stages=total_stages or stage.index + 1,
                    page_name=stage.page_name,
                )
            )

        async def _attempt() -> str:
            return await self._stream_once(stage, messages, max_tokens=max_tokens, attempt=retries + 1)

        def _on_retry(attempt: int, exc: BaseException, delay: float) -> None:
            nonlocal retries
            retries += 1
            if self.emitter is not None:
                self.emitter.discard_deltas()
            # reset=True: clients drop the deltas received for this stage so far.
            self.emit(
                StageRetryEvent(
                    stage_index=stage.index,
                    stage=stage.name,
                    attempt=attempt,
                    delay=delay,
                    error=str(exc),
                )
            )

        try:
            output = await with_retry(
                _attempt,
                max_retries=self.settings.generation_max_retries,
                base_delay=self.settings.generation_retry_delay,
                retry_on=(TransientProviderError,),
                on_retry=_on_retry,
            )
        except GenerationCancelled:
            raise
        except Exception as exc:
            retryable = exc.retryable if isinstance(exc, SiteBuilderError) else False
            failure = StageFailedError(
                f"Stage '{stage.name}' failed after {retries + 1} attempt(s): {exc}",
                stage=stage.name,
                retries=retries,
                retryable=retryable,
            )
            if emit_events:
                self.emit(
                    StageFailedEvent(
                        stage_index=stage.index,
                        stage=stage.name,
                        retries=retries,
                        error=str(exc),
                    )
                )
            raise failure from exc

        result = StageResult(stage=stage, output=output, retries=retries)
        self.stage_results.append(result)
        if emit_events:
            self.emit(
                StageCompleteEvent(
                    stage_index=stage.index,
                    stage=stage.name,
                    retries=retries,
                    output_chars=len(output),
                )
            )
        return result

    # ------------------------------------------------------------------- pages

    def page_started(self, page_name: str, page_index: int, total_pages: int) -> None:
        self.emit(PageStartEvent(page_name=page_name, page_index=page_index, total_pages=total_pages))

    async def page_completed(self, plan: GenerationPlan, artifact: PageArtifact) -> PageArtifact:
        self.check_cancelled()
        artifact.html = extract_html_document(artifact.html) or artifact.html
        if self.on_page_complete is not None:
            await self.on_page_complete(plan, artifact)
        self.emit(
            PageCompleteEvent(
                page_name=artifact.page_name,
                page_index=artifact.page_index,
                total_pages=artifact.total_pages,
                html=artifact.html,
                project_id=artifact.project_id,
                page_id=artifact.page_id,
            )
        )
        return artifact

    # --------------------------------------------------------------------- run

    async def run(self, request: GenerationRequest, *, project_id: Optional[str] = None) -> GenerationOutcome:
        from .strategies import get_strategy

        plan: Optional[GenerationPlan] = None
        pages: List[PageArtifact] = []
        self.state = ControllerState.PLANNING
        try:
            plan = await self.resolve_plan(request)
            self.emit(PlanCompleteEvent(**plan.summary()))
            self.state = ControllerState.GENERATING
            strategy = get_strategy(plan.strategy, modification=bool(request.is_modification and request.current_html))
            pages = await strategy.execute(self, plan, request, project_id=project_id or request.project_id)
        except GenerationCancelled as exc:
            self.state = ControllerState.CANCELLED
            self._log.info("Generation cancelled at stage %s", self._stage_label())
            return GenerationOutcome(self.state, plan, [], list(self.stage_results), exc)
        except Exception as exc:
            self.state = ControllerState.FAILED
            self._log.warning("Generation failed at stage %s: %s", self._stage_label(), exc)
            return GenerationOutcome(self.state, plan, pages, list(self.stage_results), exc)

        self.state = ControllerState.COMPLETED
        return GenerationOutcome(self.state, plan, pages, list(self.stage_results))

    def _stage_label(self) -> str:
        return self.current_stage.name if self.current_stage is not None else "planning"


def placeholder_component(name: str) -> str:
    safe = "".join(ch for ch in name if ch.isalnum() or ch in "-_") or "component"
    return f'<section class="component component-{safe}" data-component="{safe}"><!-- {safe} unavailable --></section>'


__all__ = [
    "ControllerState",
    "GenerationRequest",
    "GenerationOutcome",
    "PageArtifact",
    "StageController",
    "StageResult",
    "placeholder_component",
]
