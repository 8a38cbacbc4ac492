from __future__ import annotations

import logging
from typing import Dict, List, Optional, Type

from ..exceptions import StageFailedError
from ..planner.base import INDEX_PAGE, GenerationPlan, GenerationStrategy, StageDescriptor, StageKind
from ..planner.extractor import extract_structured
from ..utils.html import extract_html_document, extract_style_reference, tail_excerpt
from . import prompts
from .controller import GenerationRequest, PageArtifact, StageController, StageResult, placeholder_component

logger = logging.getLogger(__name__)

MAX_COMPONENTS = 6


def _start_index(plan: GenerationPlan, request: GenerationRequest) -> int:
    index = int(request.stage_index or 0)
    if index < 0 or index >= len(plan.stages):
        if index:
            logger.warning("Resume stage index %s out of range for %s stages; restarting", index, len(plan.stages))
        return 0
    return index


class GenerationStrategyRunner:
    """Executes the stages of one plan shape and returns the generated pages."""

    strategy: GenerationStrategy

    async def execute(
        self,
        controller: StageController,
        plan: GenerationPlan,
        request: GenerationRequest,
        *,
        project_id: Optional[str] = None,
    ) -> List[PageArtifact]:
        raise NotImplementedError


class SinglePageStrategy(GenerationStrategyRunner):
    strategy = GenerationStrategy.SINGLE

    async def execute(self, controller, plan, request, *, project_id=None):
        stage = plan.stages[0]
        controller.page_started(INDEX_PAGE, 0, 1)
        result = await controller.run_stage(
            stage,
            prompts.document_messages(plan.prompt),
            total_stages=len(plan.stages),
        )
        plan.artifacts[stage.name] = result.output
        plan.current_stage_index = 1
        artifact = PageArtifact(
            page_name=INDEX_PAGE,
            html=result.output,
            title=plan.title,
            is_main_page=True,
            project_id=project_id,
        )
        return [await controller.page_completed(plan, artifact)]


class ModificationStrategy(GenerationStrategyRunner):
    strategy = GenerationStrategy.SINGLE

    async def execute(self, controller, plan, request, *, project_id=None):
        stage = plan.stages[0]
        page_name = request.target_page or INDEX_PAGE
        controller.page_started(page_name, 0, 1)
        result = await controller.run_stage(
            stage,
            prompts.modification_messages(request.prompt, request.current_html or ""),
            total_stages=1,
        )
        plan.artifacts[stage.name] = result.output
        plan.current_stage_index = 1
        artifact = PageArtifact(
            page_name=page_name,
            html=result.output,
            is_main_page=page_name.lower() == INDEX_PAGE,
            project_id=project_id,
            page_id=request.page_id,
        )
        return [await controller.page_completed(plan, artifact)]


class MultiPageStrategy(GenerationStrategyRunner):
    """One call per planned page; later pages copy the first page's style."""

    strategy = GenerationStrategy.MULTI

    async def execute(self, controller, plan, request, *, project_id=None):
        stages = plan.stages
        total = len(stages)
        start = _start_index(plan, request)
        target = (request.target_page or "").strip().lower()

        style_reference = ""
        if plan.artifacts.get(stages[0].name):
            style_reference = extract_style_reference(plan.artifacts[stages[0].name])
        elif request.accumulated_html:
            style_reference = extract_style_reference(request.accumulated_html)

        pages: List[PageArtifact] = []
        for stage in stages[start:]:
            if target and (stage.page_name or "").lower() != target:
                continue
            controller.page_started(stage.page_name or INDEX_PAGE, stage.index, total)
            result = await controller.run_stage(
                stage,
                prompts.page_messages(
                    plan,
                    stage,
                    project_id=project_id or "",
                    style_reference=style_reference,
                ),
                total_stages=total,
            )
            html = extract_html_document(result.output) or result.output
            plan.artifacts[stage.name] = html
            plan.current_stage_index = stage.index + 1
            if stage.is_main_page or not style_reference:
                style_reference = extract_style_reference(html)
            artifact = PageArtifact(
                page_name=stage.page_name or INDEX_PAGE,
                html=html,
                title=stage.title,
                is_main_page=stage.is_main_page,
                page_index=stage.index,
                total_pages=total,
                project_id=project_id,
            )
            pages.append(await controller.page_completed(plan, artifact))
        return pages


class LongFormStrategy(GenerationStrategyRunner):
    """One call per section, each seeded with the tail of the previous one."""

    strategy = GenerationStrategy.LONG

    async def execute(self, controller, plan, request, *, project_id=None):
        stages = plan.stages
        total = len(stages)
        start = _start_index(plan, request)
        accumulated = (request.accumulated_html or "") if start else ""

        controller.page_started(INDEX_PAGE, 0, 1)
        for stage in stages[start:]:
            result = await controller.run_stage(
                stage,
                prompts.section_messages(plan, stage, previous_tail=tail_excerpt(accumulated)),
                total_stages=total,
            )
            plan.artifacts[stage.name] = result.output
            plan.current_stage_index = stage.index + 1
            accumulated = _join_sections(accumulated, result.output)

        artifact = PageArtifact(
            page_name=INDEX_PAGE,
            html=accumulated,
            title=plan.title,
            is_main_page=True,
            section_index=total - 1,
            total_sections=total,
            project_id=project_id,
        )
        return [await controller.page_completed(plan, artifact)]


def _join_sections(accumulated: str, section: str) -> str:
    section = section.strip()
    if section.startswith("```"):
        section = section.strip("`")
        if section.lower().startswith("html"):
            section = section[4:]
        section = section.strip()
    if not accumulated:
        return section
    return f"{accumulated}\n{section}"


class HierarchicalStrategy(GenerationStrategyRunner):
    """One call per layer; every layer rewrites the full document."""

    strategy = GenerationStrategy.HIERARCHICAL

    async def execute(self, controller, plan, request, *, project_id=None):
        stages = plan.stages
        total = len(stages)
        start = _start_index(plan, request)
        document = (request.accumulated_html or "") if start else ""

        controller.page_started(INDEX_PAGE, 0, 1)
        for stage in stages[start:]:
            result = await controller.run_stage(
                stage,
                prompts.layer_messages(plan, stage, total_layers=total, previous_html=document),
                total_stages=total,
            )
            document = extract_html_document(result.output) or result.output
            plan.artifacts[stage.name] = document
            plan.current_stage_index = stage.index + 1

        artifact = PageArtifact(
            page_name=INDEX_PAGE,
            html=document,
            title=plan.title,
            is_main_page=True,
            project_id=project_id,
        )
        return [await controller.page_completed(plan, artifact)]


class TwoStageStrategy(GenerationStrategyRunner):
    """needs_analysis -> architecture -> component_generation -> assembly."""

    strategy = GenerationStrategy.TWO_STAGE

    async def execute(self, controller, plan, request, *, project_id=None):
        stages: Dict[StageKind, StageDescriptor] = {stage.kind: stage for stage in plan.stages}
        total = len(plan.stages)
        start = _start_index(plan, request)
        plan.artifacts.update(request.artifacts or {})

        controller.page_started(INDEX_PAGE, 0, 1)

        needs_stage = stages[StageKind.NEEDS_ANALYSIS]
        needs = plan.artifacts.get(needs_stage.name, "")
        if start <= needs_stage.index or not needs:
            result = await controller.run_stage(
                needs_stage,
                prompts.needs_messages(plan),
                max_tokens=needs_stage.max_tokens,
                total_stages=total,
            )
            needs = plan.artifacts[needs_stage.name] = result.output
            plan.current_stage_index = needs_stage.index + 1

        arch_stage = stages[StageKind.ARCHITECTURE]
        architecture = plan.artifacts.get(arch_stage.name, "")
        if start <= arch_stage.index or not architecture:
            result = await controller.run_stage(
                arch_stage,
                prompts.architecture_messages(plan, needs),
                max_tokens=arch_stage.max_tokens,
                total_stages=total,
            )
            architecture = plan.artifacts[arch_stage.name] = result.output
            plan.current_stage_index = arch_stage.index + 1

        component_stage = stages[StageKind.COMPONENT_GENERATION]
        components = await self._generate_components(controller, plan, component_stage, needs, architecture, total)
        plan.current_stage_index = component_stage.index + 1

        assembly_stage = stages[StageKind.ASSEMBLY]
        result = await controller.run_stage(
            assembly_stage,
            prompts.assembly_messages(plan, architecture, components),
            max_tokens=assembly_stage.max_tokens or controller.settings.max_tokens,
            total_stages=total,
        )
        plan.artifacts[assembly_stage.name] = result.output
        plan.current_stage_index = total

        artifact = PageArtifact(
            page_name=INDEX_PAGE,
            html=result.output,
            title=plan.title,
            is_main_page=True,
            project_id=project_id,
        )
        return [await controller.page_completed(plan, artifact)]

    async def _generate_components(
        self,
        controller: StageController,
        plan: GenerationPlan,
        stage: StageDescriptor,
        needs: str,
        architecture: str,
        total: int,
    ) -> Dict[str, str]:
        specs = component_specs(needs)
        components: Dict[str, str] = {}
        for spec in specs:
            name = spec["name"]
            sub_stage = stage.model_copy(update={"name": f"{stage.name}:{name}", "title": name})
            try:
                result = await controller.run_stage(
                    sub_stage,
                    prompts.component_messages(spec, architecture),
                    max_tokens=stage.max_tokens,
                    total_stages=total,
                )
                components[name] = result.output
            except StageFailedError as exc:
                logger.warning("Component %s failed, using placeholder: %s", name, exc)
                components[name] = placeholder_component(name)
                controller.stage_results.append(
                    StageResult(stage=sub_stage, output=components[name], retries=exc.retries, placeholder=True)
                )
            plan.artifacts[sub_stage.name] = components[name]
        return components


def component_specs(needs: str) -> List[Dict[str, str]]:
    """Component list from the needs analysis; one global component when absent."""
    result = extract_structured(needs)
    raw = []
    if result.ok:
        value = result.value
        if isinstance(value, dict):
            raw = value.get("components") or []
        elif isinstance(value, list):
            raw = value

    specs: List[Dict[str, str]] = []
    seen = set()
    for item in raw if isinstance(raw, list) else []:
        if isinstance(item, dict):
            name = str(item.get("name") or "").strip()
            purpose = str(item.get("purpose") or item.get("description") or "").strip()
        else:
            name, purpose = str(item).strip(), ""
        if not name or name.lower() in seen:
            continue
        seen.add(name.lower())
        specs.append({"name": name, "purpose": purpose})
        if len(specs) >= MAX_COMPONENTS:
            break
    if not specs:
        specs.append({"name": "global", "purpose": "shared layout, navigation and styles"})
    return specs


_STRATEGIES: Dict[GenerationStrategy, Type[GenerationStrategyRunner]] = {
    GenerationStrategy.SINGLE: SinglePageStrategy,
    GenerationStrategy.MULTI: MultiPageStrategy,
    GenerationStrategy.LONG: LongFormStrategy,
    GenerationStrategy.HIERARCHICAL: HierarchicalStrategy,
    GenerationStrategy.TWO_STAGE: TwoStageStrategy,
}


def get_strategy(strategy: GenerationStrategy, *, modification: bool = False) -> GenerationStrategyRunner:
    if modification:
        return ModificationStrategy()
    return _STRATEGIES.get(strategy, SinglePageStrategy)()


__all__ = [
    "GenerationStrategyRunner",
    "SinglePageStrategy",
    "ModificationStrategy",
    "MultiPageStrategy",
    "LongFormStrategy",
    "HierarchicalStrategy",
    "TwoStageStrategy",
    "component_specs",
    "get_strategy",
]
