from .base import (
    GenerationPlan,
    GenerationStrategy,
    PlannedPage,
    StageDescriptor,
    StageKind,
    build_plan,
    default_plan,
    normalize_page_name,
    normalize_planned_pages,
    parse_strategy,
)
from .extractor import ExtractionResult, extract_structured
from .generation_planner import GenerationPlanner

__all__ = [
    "GenerationPlan",
    "GenerationStrategy",
    "PlannedPage",
    "StageDescriptor",
    "StageKind",
    "build_plan",
    "default_plan",
    "normalize_page_name",
    "normalize_planned_pages",
    "parse_strategy",
    "ExtractionResult",
    "extract_structured",
    "GenerationPlanner",
]
