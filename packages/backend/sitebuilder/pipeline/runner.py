from __future__ import annotations

import asyncio
import logging
from typing import Optional
from uuid import uuid4

from ..config import Settings, get_settings
from ..db.database import Database
from ..db.utils import get_db
from ..events.emitter import StreamEmitter
from ..events.models import CancelledEvent, GenerationCompleteEvent, PageSavedEvent
from ..llm.provider import GenerationProvider
from ..planner.base import GenerationPlan
from ..services.project import ProjectService
from ..utils.rewrite import project_root_url
from .cancellation import CancellationToken
from .controller import ControllerState, GenerationOutcome, GenerationRequest, PageArtifact, StageController

logger = logging.getLogger(__name__)


class GenerationRunner:
    """Runs one streaming generation request end to end.

    Drives the stage controller, persists each finished page when auto-save
    is on, and finalises the emitter exactly once whatever the outcome.
    """

    def __init__(
        self,
        provider: GenerationProvider,
        emitter: StreamEmitter,
        *,
        settings: Optional[Settings] = None,
        token: Optional[CancellationToken] = None,
        database: Optional[Database] = None,
        auto_save: Optional[bool] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.provider = provider
        self.emitter = emitter
        self.settings = settings or get_settings()
        self.token = token or CancellationToken(emitter.request_id)
        self.database = database
        self.auto_save = self.settings.auto_save if auto_save is None else bool(auto_save)
        self._log = log or logger
        self._request: Optional[GenerationRequest] = None

    def _project_id_for(self, request: GenerationRequest) -> Optional[str]:
        if request.project_id:
            return request.project_id
        if request.is_modification:
            return None
        # Allocated up front so navigation links are canonical while generating.
        return str(uuid4())

    async def save_page(self, plan: GenerationPlan, artifact: PageArtifact) -> None:
        request = self._request
        if request is None:
            return
        if request.is_modification and not (artifact.page_id or request.page_id):
            self._log.info("Modification without page id; result not saved")
            return

        # Synchronous SQLAlchemy work runs off the event loop thread.
        await asyncio.to_thread(self._persist, request, plan, artifact)

        self.emitter.emit(
            PageSavedEvent(
                page_id=artifact.page_id,
                page_name=artifact.page_name,
                project_id=artifact.project_id,
                preview_url=artifact.preview_url,
            )
        )

    def _persist(self, request: GenerationRequest, plan: GenerationPlan, artifact: PageArtifact) -> None:
        with get_db(self.database) as db:
            service = ProjectService(db, settings=self.settings, log=self._log)
            result = service.save_generation(
                html=artifact.html,
                prompt=request.prompt,
                project_id=artifact.project_id,
                page_name=artifact.page_name,
                planned_pages=plan.planned_pages,
                generation_type=plan.generation_type,
                project_name=plan.title,
                description=plan.description,
                design_system=plan.design_system,
                page_id=artifact.page_id or request.page_id,
                is_modification=request.is_modification,
                modification_request=request.prompt if request.is_modification else None,
                plan=plan.summary(),
                section_index=artifact.section_index,
                total_sections=artifact.total_sections,
            )
            artifact.page_id = result.page.id
            artifact.project_id = result.project.id if result.project is not None else None
            artifact.preview_url = result.preview_url
            artifact.html = result.page.html

    async def run(self, request: GenerationRequest) -> GenerationOutcome:
        self._request = request
        project_id = self._project_id_for(request)
        controller = StageController(
            self.provider,
            settings=self.settings,
            emitter=self.emitter,
            token=self.token,
            on_page_complete=self.save_page if self.auto_save else None,
            log=self._log,
        )
        outcome = await controller.run(request, project_id=project_id)
        self.finish(outcome, controller)
        return outcome

    def finish(self, outcome: GenerationOutcome, controller: StageController) -> None:
        if outcome.state == ControllerState.CANCELLED:
            stage = controller.current_stage
            self.emitter.emit(CancelledEvent(stage_index=stage.index if stage is not None else None))
            self.emitter.close(reason="cancelled")
            return

        if outcome.state == ControllerState.FAILED:
            stage = controller.current_stage
            self.emitter.fail(outcome.error or RuntimeError("generation failed"), stage=stage.name if stage else None)
            return

        saved_project = next((page.project_id for page in outcome.pages if page.page_id), None)
        plan = outcome.plan
        self.emitter.emit(
            GenerationCompleteEvent(
                strategy=plan.strategy.value if plan is not None else "single",
                project_id=saved_project,
                preview_url=project_root_url(saved_project) if saved_project else None,
                pages=[page.page_name for page in outcome.pages],
                html=outcome.html if len(outcome.pages) == 1 else None,
            )
        )
        self.emitter.close(reason="completed")


__all__ = ["GenerationRunner"]
