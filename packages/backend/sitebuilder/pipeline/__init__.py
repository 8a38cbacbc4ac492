from .cancellation import CancellationRegistry, CancellationToken
from .controller import (
    ControllerState,
    GenerationOutcome,
    GenerationRequest,
    PageArtifact,
    StageController,
    StageResult,
)
from .runner import GenerationRunner
from .strategies import get_strategy

__all__ = [
    "CancellationRegistry",
    "CancellationToken",
    "ControllerState",
    "GenerationOutcome",
    "GenerationRequest",
    "GenerationRunner",
    "PageArtifact",
    "StageController",
    "StageResult",
    "get_strategy",
]
