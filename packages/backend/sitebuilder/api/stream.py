from __future__ import annotations

import asyncio
import logging
from typing import AsyncGenerator, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from ..config import get_settings
from ..events.emitter import StreamEmitter
from ..exceptions import InvalidRequestError, SiteBuilderError
from ..llm.provider import GenerationProvider
from ..pipeline.cancellation import CancellationRegistry
from ..pipeline.controller import GenerationRequest
from ..pipeline.runner import GenerationRunner
from ..planner.base import parse_strategy
from ..schemas.stream import CancelResponse, StreamRequest
from .utils import ProviderBuilder, get_provider_builder

router = APIRouter(prefix="/api/stream", tags=["stream"])

logger = logging.getLogger(__name__)


def _log_stream_task_result(task: "asyncio.Task[object]") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Generation task failed", exc_info=exc)


def build_generation_request(payload: StreamRequest) -> GenerationRequest:
    return GenerationRequest(
        prompt=(payload.message or "").strip(),
        strategy=parse_strategy(payload.requested_strategy),
        page_names=list(payload.page_names) or None,
        total_pages=payload.total_pages,
        stage_index=payload.stage_index,
        accumulated_html=payload.accumulated_html,
        target_page=payload.target_page,
        artifacts=dict(payload.artifacts),
        is_modification=payload.is_modification,
        current_html=payload.current_html,
        project_id=payload.project_id,
        page_id=payload.page_id,
    )


async def _run_generation(
    runner: GenerationRunner,
    generation_request: GenerationRequest,
    provider: GenerationProvider,
    request_id: str,
) -> None:
    try:
        await runner.run(generation_request)
    except Exception as exc:
        logger.exception("Unhandled error in generation %s", request_id)
        runner.emitter.fail(exc)
    finally:
        CancellationRegistry.get_instance().unregister(request_id)
        try:
            await provider.aclose()
        except Exception:
            logger.exception("Failed to close generation provider")


def _open_stream(payload: StreamRequest, request: Request, build_provider: ProviderBuilder) -> StreamingResponse:
    settings = get_settings()
    request_id = payload.request_id or uuid4().hex
    emitter = StreamEmitter(
        request_id=request_id,
        keepalive_interval=settings.stream_keepalive_seconds,
        flush_chars=settings.stream_flush_chars,
        flush_interval=settings.stream_flush_interval,
    )
    registry = CancellationRegistry.get_instance()
    token = registry.register(request_id)
    generation_request = build_generation_request(payload)

    async def event_stream() -> AsyncGenerator[str, None]:
        task: Optional[asyncio.Task[None]] = None
        emitter.start()
        if not generation_request.prompt:
            registry.unregister(request_id)
            emitter.fail(InvalidRequestError("message is required"))
        else:
            try:
                provider = build_provider()
            except SiteBuilderError as exc:
                registry.unregister(request_id)
                logger.error("Generation provider unavailable: %s", exc.with_trace())
                emitter.fail(exc)
            else:
                runner = GenerationRunner(
                    provider,
                    emitter,
                    settings=settings,
                    token=token,
                    auto_save=payload.auto_save,
                )
                task = asyncio.create_task(_run_generation(runner, generation_request, provider, request_id))
                task.add_done_callback(_log_stream_task_result)

        async for frame in emitter.frames(
            is_disconnected=request.is_disconnected,
            on_disconnect=lambda: token.cancel(str(emitter.disconnected or "client disconnected")),
        ):
            yield frame

        if task is not None and not task.done():
            # Let the producer observe cancellation and release its resources.
            await asyncio.wait({task}, timeout=5.0)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Request-Id": request_id},
    )


@router.post("")
async def stream_post(
    payload: StreamRequest,
    request: Request,
    build_provider: ProviderBuilder = Depends(get_provider_builder),
):
    return _open_stream(payload, request, build_provider)


@router.get("")
async def stream_get(
    request: Request,
    build_provider: ProviderBuilder = Depends(get_provider_builder),
):
    params = dict(request.query_params)
    if "page_names" in request.query_params and len(request.query_params.getlist("page_names")) > 1:
        params["page_names"] = request.query_params.getlist("page_names")
    try:
        payload = StreamRequest.model_validate(params)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors()) from exc
    return _open_stream(payload, request, build_provider)


@router.post("/{request_id}/cancel", response_model=CancelResponse)
def cancel_stream(request_id: str) -> CancelResponse:
    cancelled = CancellationRegistry.get_instance().cancel(request_id, reason="cancelled by client")
    if not cancelled:
        raise HTTPException(status_code=404, detail="No active generation for request id")
    logger.info("Cancellation requested for %s", request_id)
    return CancelResponse(request_id=request_id, cancelled=True)


__all__ = ["router", "build_generation_request"]
