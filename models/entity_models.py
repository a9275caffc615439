"""Characters, scenes and their value objects.

These models double as the structured-output contract sent to the
generative-text service, so every field has a default and the ``before``
validators coerce the loosely shaped JSON the service produces.
"""

from __future__ import annotations

from typing import Any

from consolidation.normalization import normalize_age
from consolidation.vocabulary import (
    ROLE_LABEL_ALIASES,
    SCENE_TYPE_LABEL_ALIASES,
    STRUCTURE_LABEL_ALIASES,
    AgeBracket,
    CharacterRole,
    SceneStructure,
    SceneType,
)
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from utils.text_processing import clean_text, entity_key, unique_preserving_order


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        validate_assignment=True,
    )

    def to_dict(self) -> dict[str, Any]:
        """Dump with camelCase keys as plain JSON types."""
        return self.model_dump(by_alias=True, mode="json")


def _coerce_enum(value: Any, enum_cls: type, aliases: dict[str, Any], default: Any) -> Any:
    if isinstance(value, enum_cls):
        return value
    text = clean_text(value).lower()
    if not text:
        return default
    for member in enum_cls:
        if member.value == text:
            return member
    for label, member in aliases.items():
        if label.lower() == text:
            return member
    return default


def _coerce_aliases(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple, set)):
        return []
    return unique_preserving_order(str(v) for v in value if v is not None)


def _coerce_items(value: Any, text_field: str = "name") -> list[Any]:
    # Bare strings become {"name": ...}; anything else non-dict is dropped.
    if value is None:
        return []
    if isinstance(value, (str, dict, BaseModel)):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    items: list[Any] = []
    for item in value:
        if isinstance(item, str):
            if item.strip():
                items.append({text_field: item.strip()})
        elif isinstance(item, (dict, BaseModel)):
            items.append(item)
    return items


class Weapon(_CamelModel):
    """A weapon carried by a character. Identified by content, not key."""

    name: str = ""
    description: str = ""

    @field_validator("name", "description", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return clean_text(v)


class ClothingStyle(_CamelModel):
    """An outfit worn during one story phase."""

    name: str = ""
    phase: str = ""
    description: str = ""

    @field_validator("name", "phase", "description", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return clean_text(v)

    @property
    def phase_label(self) -> str:
        """Phase used for de-duplication; falls back to the outfit name."""
        return self.phase or self.name


class Character(_CamelModel):
    id: str = ""
    group_name: str = ""
    name: str = ""
    aliases: list[str] = Field(default_factory=list)
    role: CharacterRole = CharacterRole.SUPPORTING
    age: AgeBracket = AgeBracket.UNKNOWN
    description: str = ""
    visual_memory_points: str = ""
    clothing_styles: list[ClothingStyle] = Field(default_factory=list)
    weapons: list[Weapon] = Field(default_factory=list)

    @field_validator(
        "id", "group_name", "name", "description", "visual_memory_points", mode="before"
    )
    @classmethod
    def _text(cls, v: Any) -> str:
        return clean_text(v)

    @field_validator("aliases", mode="before")
    @classmethod
    def _aliases(cls, v: Any) -> list[str]:
        return _coerce_aliases(v)

    @field_validator("role", mode="before")
    @classmethod
    def _role(cls, v: Any) -> CharacterRole:
        return _coerce_enum(v, CharacterRole, ROLE_LABEL_ALIASES, CharacterRole.SUPPORTING)

    @field_validator("age", mode="before")
    @classmethod
    def _age(cls, v: Any) -> AgeBracket:
        return normalize_age(v)

    @field_validator("weapons", mode="before")
    @classmethod
    def _weapons(cls, v: Any) -> list[Any]:
        return _coerce_items(v)

    @field_validator("clothing_styles", mode="before")
    @classmethod
    def _clothing(cls, v: Any) -> list[Any]:
        return _coerce_items(v, text_field="phase")

    @property
    def registry_key(self) -> str:
        return entity_key(self.group_name, self.name)


class Scene(_CamelModel):
    id: str = ""
    group_name: str = ""
    name: str = ""
    aliases: list[str] = Field(default_factory=list)
    description: str = ""
    structure: SceneStructure = SceneStructure.INTERIOR
    atmosphere: str = ""
    style: str = ""
    type: SceneType = SceneType.PLOT_NODE
    frequency: int = Field(1, ge=1)

    @field_validator(
        "id", "group_name", "name", "description", "atmosphere", "style", mode="before"
    )
    @classmethod
    def _text(cls, v: Any) -> str:
        return clean_text(v)

    @field_validator("aliases", mode="before")
    @classmethod
    def _aliases(cls, v: Any) -> list[str]:
        return _coerce_aliases(v)

    @field_validator("structure", mode="before")
    @classmethod
    def _structure(cls, v: Any) -> SceneStructure:
        return _coerce_enum(
            v, SceneStructure, STRUCTURE_LABEL_ALIASES, SceneStructure.INTERIOR
        )

    @field_validator("type", mode="before")
    @classmethod
    def _type(cls, v: Any) -> SceneType:
        return _coerce_enum(v, SceneType, SCENE_TYPE_LABEL_ALIASES, SceneType.PLOT_NODE)

    @field_validator("frequency", mode="before")
    @classmethod
    def _frequency(cls, v: Any) -> int:
        try:
            value = int(v)
        except (TypeError, ValueError):
            return 1
        return max(value, 1)

    @property
    def registry_key(self) -> str:
        return entity_key(self.group_name, self.name)


class ExtractionPayload(_CamelModel):
    """Top-level object returned by extraction and enrichment calls."""

    characters: list[Character] = Field(default_factory=list)
    scenes: list[Scene] = Field(default_factory=list)

    @field_validator("characters", "scenes", mode="before")
    @classmethod
    def _entities(cls, v: Any) -> list[Any]:
        if v is None:
            return []
        if isinstance(v, (dict, BaseModel)):
            return [v]
        if not isinstance(v, (list, tuple)):
            return []
        return [item for item in v if isinstance(item, (dict, BaseModel))]

    @classmethod
    def response_schema(cls) -> dict[str, Any]:
        """JSON schema describing the payload, keyed by camelCase aliases."""
        return cls.model_json_schema(by_alias=True)
