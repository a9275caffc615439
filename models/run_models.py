"""Models describing one extraction run and its audit trail."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from core.usage import ServiceUsage
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .entity_models import Character, ExtractionPayload, Scene


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    ENRICHING = "enriching"
    DONE = "done"
    ERRORED = "errored"


class RunStatus(str, Enum):
    """How a run ended, as reported to the caller."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EMPTY = "empty"
    FAILED = "failed"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class AnalysisDebugLog(BaseModel):
    """One record per chunk attempt; written once and never mutated."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    timestamp: str = Field(default_factory=_utc_now)
    chunk_index: int
    raw_response: str = ""
    parsed_data: dict[str, Any] | None = None
    error: str | None = None
    used_prompt: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class EntityBundle(BaseModel):
    """Characters and scenes handed between runs, files and callers."""

    model_config = ConfigDict(populate_by_name=True)

    characters: list[Character] = Field(default_factory=list)
    scenes: list[Scene] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.characters and not self.scenes

    def to_dict(self) -> dict[str, Any]:
        return {
            "characters": [c.to_dict() for c in self.characters],
            "scenes": [s.to_dict() for s in self.scenes],
        }


@dataclass
class ExtractionResponse:
    """A parsed service answer plus the raw text it came from."""

    raw_text: str
    payload: ExtractionPayload
    prompt: str = ""
    usage: dict[str, int] | None = None


@dataclass
class ExtractionResult:
    """Everything :meth:`ExtractionManager.run_extraction` hands back."""

    characters: list[Character] = field(default_factory=list)
    scenes: list[Scene] = field(default_factory=list)
    debug_log: list[AnalysisDebugLog] = field(default_factory=list)
    status: RunStatus = RunStatus.COMPLETED
    enriched: bool = False
    usage: ServiceUsage = field(default_factory=ServiceUsage)

    @property
    def is_empty(self) -> bool:
        return not self.characters and not self.scenes

    def bundle(self) -> EntityBundle:
        return EntityBundle(characters=self.characters, scenes=self.scenes)

    def debug_log_dicts(self) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in self.debug_log]

    def to_dict(self) -> dict[str, Any]:
        return {
            "characters": [c.to_dict() for c in self.characters],
            "scenes": [s.to_dict() for s in self.scenes],
            "debugLog": self.debug_log_dicts(),
            "status": self.status.value,
            "enriched": self.enriched,
            "usage": self.usage.as_dict(),
        }
