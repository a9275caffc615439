"""Central package for visual bible data models."""

from .entity_models import (
    Character,
    ClothingStyle,
    ExtractionPayload,
    Scene,
    Weapon,
)
from .run_models import (
    AnalysisDebugLog,
    EntityBundle,
    ExtractionResponse,
    ExtractionResult,
    RunState,
    RunStatus,
)

__all__ = [
    "Weapon",
    "ClothingStyle",
    "Character",
    "Scene",
    "ExtractionPayload",
    "AnalysisDebugLog",
    "EntityBundle",
    "ExtractionResponse",
    "ExtractionResult",
    "RunState",
    "RunStatus",
]
