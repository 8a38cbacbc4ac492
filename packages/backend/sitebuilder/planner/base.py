from __future__ import annotations

import enum
import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

INDEX_PAGE = "index"
MAX_PAGES = 8
MAX_SECTIONS = 8
DEFAULT_SECTION_COUNT = 4
DEFAULT_LAYERS = ("structure", "styling", "interactivity")

_PAGE_NAME_CLEAN_RE = re.compile(r"[^A-Za-z0-9_-]+")
_PAGE_SUFFIX_RE = re.compile(r"\.html?$", re.IGNORECASE)


class GenerationStrategy(str, enum.Enum):
    SINGLE = "single"
    MULTI = "multi"
    LONG = "long"
    HIERARCHICAL = "hierarchical"
    TWO_STAGE = "two_stage"


class StageKind(str, enum.Enum):
    DOCUMENT = "document"
    PAGE = "page"
    SECTION = "section"
    LAYER = "layer"
    NEEDS_ANALYSIS = "needs_analysis"
    ARCHITECTURE = "architecture"
    COMPONENT_GENERATION = "component_generation"
    ASSEMBLY = "assembly"


# Token budgets for the bounded two-stage calls; assembly uses settings.max_tokens.
TWO_STAGE_BUDGETS: Dict[StageKind, int] = {
    StageKind.NEEDS_ANALYSIS: 1500,
    StageKind.ARCHITECTURE: 2500,
    StageKind.COMPONENT_GENERATION: 2000,
}

_STRATEGY_ALIASES = {
    "single": GenerationStrategy.SINGLE,
    "single_page": GenerationStrategy.SINGLE,
    "singleshot": GenerationStrategy.SINGLE,
    "multi": GenerationStrategy.MULTI,
    "multi_page": GenerationStrategy.MULTI,
    "multipage": GenerationStrategy.MULTI,
    "long": GenerationStrategy.LONG,
    "long_form": GenerationStrategy.LONG,
    "longform": GenerationStrategy.LONG,
    "hierarchical": GenerationStrategy.HIERARCHICAL,
    "layered": GenerationStrategy.HIERARCHICAL,
    "two_stage": GenerationStrategy.TWO_STAGE,
    "twostage": GenerationStrategy.TWO_STAGE,
    "pipeline": GenerationStrategy.TWO_STAGE,
}


class PlannedPage(BaseModel):
    page_name: str
    title: str = ""
    purpose: str = ""
    is_main_page: bool = False


class StageDescriptor(BaseModel):
    index: int
    kind: StageKind
    name: str
    page_name: Optional[str] = None
    title: str = ""
    description: str = ""
    is_main_page: bool = False
    section_index: Optional[int] = None
    total_sections: Optional[int] = None
    max_tokens: Optional[int] = None


class GenerationPlan(BaseModel):
    strategy: GenerationStrategy
    prompt: str
    title: str = ""
    description: str = ""
    pages: List[PlannedPage] = Field(default_factory=list)
    stages: List[StageDescriptor] = Field(default_factory=list)
    current_stage_index: int = 0
    artifacts: Dict[str, str] = Field(default_factory=dict)
    design_system: Dict[str, Any] = Field(default_factory=dict)
    fallback: bool = False
    warnings: List[str] = Field(default_factory=list)

    @property
    def planned_pages(self) -> List[str]:
        return [page.page_name for page in self.pages]

    @property
    def generation_type(self) -> str:
        # two_stage produces one document and is stored like a single page
        if self.strategy == GenerationStrategy.TWO_STAGE:
            return GenerationStrategy.SINGLE.value
        return self.strategy.value

    def summary(self) -> dict:
        return {
            "strategy": self.strategy.value,
            "title": self.title,
            "planned_pages": self.planned_pages,
            "stages": [
                {"index": stage.index, "kind": stage.kind.value, "name": stage.name, "page_name": stage.page_name}
                for stage in self.stages
            ],
            "fallback": self.fallback,
            "warnings": list(self.warnings),
        }


def parse_strategy(value: object) -> Optional[GenerationStrategy]:
    if isinstance(value, GenerationStrategy):
        return value
    if not isinstance(value, str):
        return None
    key = value.strip().lower().replace("-", "_").replace(" ", "_")
    return _STRATEGY_ALIASES.get(key)


def normalize_page_name(raw: object) -> str:
    """Turn a proposed page name into an identifier, keeping its casing."""
    if raw is None:
        return ""
    name = str(raw).strip()
    name = name.rsplit("/", 1)[-1]
    name = _PAGE_SUFFIX_RE.sub("", name)
    name = name.replace(" ", "-")
    name = _PAGE_NAME_CLEAN_RE.sub("", name)
    return name.strip("-_")


def normalize_planned_pages(raw_pages: Sequence[object]) -> Tuple[List[PlannedPage], List[str]]:
    """Dedupe pages case-insensitively and pin the first page to ``index``.

    Entries that collide with an earlier name after lower-casing are dropped
    so the lower-case lookup used for link rewriting stays unambiguous.
    """
    warnings: List[str] = []
    pages: List[PlannedPage] = []
    seen: set[str] = set()

    for position, raw in enumerate(raw_pages or []):
        if isinstance(raw, PlannedPage):
            payload = raw.model_dump()
        elif isinstance(raw, dict):
            payload = {
                "page_name": raw.get("page_name") or raw.get("pageName") or raw.get("name") or raw.get("slug"),
                "title": raw.get("title") or "",
                "purpose": raw.get("purpose") or raw.get("description") or "",
            }
        else:
            payload = {"page_name": raw, "title": "", "purpose": ""}

        name = normalize_page_name(payload.get("page_name"))
        if not pages:
            if name and name.lower() != INDEX_PAGE:
                warnings.append(f"first page '{name}' pinned to '{INDEX_PAGE}'")
            name = INDEX_PAGE
        if not name:
            warnings.append(f"page #{position + 1} has no usable name; skipped")
            continue
        key = name.lower()
        if key in seen:
            warnings.append(f"duplicate page name '{name}' dropped")
            continue
        seen.add(key)
        pages.append(
            PlannedPage(
                page_name=name,
                title=str(payload.get("title") or "").strip() or _title_from_name(name),
                purpose=str(payload.get("purpose") or "").strip(),
                is_main_page=not pages,
            )
        )
        if len(pages) >= MAX_PAGES:
            break

    if not pages:
        pages.append(PlannedPage(page_name=INDEX_PAGE, title="Home", is_main_page=True))
    return pages, warnings


def _title_from_name(name: str) -> str:
    if name.lower() == INDEX_PAGE:
        return "Home"
    return name.replace("-", " ").replace("_", " ").title()


def _coerce_list(value: object) -> List[Any]:
    if isinstance(value, list):
        return value
    if isinstance(value, str) and value.strip():
        return [item.strip() for item in value.split(",") if item.strip()]
    return []


def build_stages(
    strategy: GenerationStrategy,
    pages: Sequence[PlannedPage],
    *,
    sections: Sequence[str] = (),
    layers: Sequence[str] = DEFAULT_LAYERS,
) -> List[StageDescriptor]:
    stages: List[StageDescriptor] = []
    if strategy == GenerationStrategy.MULTI:
        for index, page in enumerate(pages):
            stages.append(
                StageDescriptor(
                    index=index,
                    kind=StageKind.PAGE,
                    name=f"page:{page.page_name}",
                    page_name=page.page_name,
                    title=page.title,
                    description=page.purpose,
                    is_main_page=page.is_main_page,
                )
            )
    elif strategy == GenerationStrategy.LONG:
        total = len(sections)
        for index, section in enumerate(sections):
            stages.append(
                StageDescriptor(
                    index=index,
                    kind=StageKind.SECTION,
                    name=f"section:{section}",
                    page_name=INDEX_PAGE,
                    title=str(section),
                    section_index=index,
                    total_sections=total,
                )
            )
    elif strategy == GenerationStrategy.HIERARCHICAL:
        for index, layer in enumerate(layers):
            stages.append(
                StageDescriptor(
                    index=index,
                    kind=StageKind.LAYER,
                    name=f"layer:{layer}",
                    page_name=INDEX_PAGE,
                    title=str(layer),
                )
            )
    elif strategy == GenerationStrategy.TWO_STAGE:
        for index, kind in enumerate(
            (
                StageKind.NEEDS_ANALYSIS,
                StageKind.ARCHITECTURE,
                StageKind.COMPONENT_GENERATION,
                StageKind.ASSEMBLY,
            )
        ):
            stages.append(
                StageDescriptor(
                    index=index,
                    kind=kind,
                    name=kind.value,
                    page_name=INDEX_PAGE,
                    max_tokens=TWO_STAGE_BUDGETS.get(kind),
                )
            )
    else:
        stages.append(
            StageDescriptor(index=0, kind=StageKind.DOCUMENT, name="document", page_name=INDEX_PAGE, is_main_page=True)
        )
    return stages


def build_plan(
    data: Dict[str, Any],
    prompt: str,
    *,
    strategy: Optional[GenerationStrategy] = None,
    page_names: Optional[Sequence[str]] = None,
    total_pages: Optional[int] = None,
) -> GenerationPlan:
    """Normalise a raw planning payload (or caller hints) into a plan."""
    if not isinstance(data, dict):
        data = {}
    resolved_strategy = strategy or parse_strategy(data.get("strategy")) or GenerationStrategy.SINGLE

    raw_pages: List[Any] = list(page_names or []) or _coerce_list(data.get("pages"))
    if resolved_strategy == GenerationStrategy.MULTI and total_pages and total_pages > len(raw_pages):
        for position in range(len(raw_pages), min(total_pages, MAX_PAGES)):
            raw_pages.append(INDEX_PAGE if position == 0 else f"page-{position + 1}")
    if resolved_strategy != GenerationStrategy.MULTI:
        raw_pages = raw_pages[:1]
    pages, warnings = normalize_planned_pages(raw_pages)
    if resolved_strategy == GenerationStrategy.MULTI and len(pages) < 2:
        warnings.append("multi-page plan has a single page")

    sections = [str(item).strip() for item in _coerce_list(data.get("sections")) if str(item).strip()]
    if resolved_strategy == GenerationStrategy.LONG and not sections:
        sections = [f"part {index + 1}" for index in range(DEFAULT_SECTION_COUNT)]
    sections = sections[:MAX_SECTIONS]
    layers = [str(item).strip() for item in _coerce_list(data.get("layers")) if str(item).strip()]
    if not layers:
        layers = list(DEFAULT_LAYERS)

    design_system = data.get("design_system") or data.get("designSystem") or {}
    if not isinstance(design_system, dict):
        design_system = {}

    plan = GenerationPlan(
        strategy=resolved_strategy,
        prompt=prompt,
        title=str(data.get("title") or "").strip() or _default_title(prompt),
        description=str(data.get("description") or "").strip(),
        pages=pages,
        stages=build_stages(resolved_strategy, pages, sections=sections, layers=layers),
        design_system=design_system,
        warnings=warnings,
    )
    for warning in warnings:
        logger.warning("Plan normalisation: %s", warning)
    return plan


def default_plan(prompt: str, reason: str) -> GenerationPlan:
    """Single-unit plan used when planning output cannot be parsed."""
    plan = build_plan({}, prompt, strategy=GenerationStrategy.SINGLE)
    plan.fallback = True
    plan.warnings.append(reason)
    return plan


def _default_title(prompt: str) -> str:
    words = (prompt or "").strip().split()
    if not words:
        return "Untitled site"
    title = " ".join(words[:8])
    return title if len(words) <= 8 else f"{title}..."


__all__ = [
    "GenerationStrategy",
    "StageKind",
    "PlannedPage",
    "StageDescriptor",
    "GenerationPlan",
    "TWO_STAGE_BUDGETS",
    "INDEX_PAGE",
    "parse_strategy",
    "normalize_page_name",
    "normalize_planned_pages",
    "build_stages",
    "build_plan",
    "default_plan",
]
