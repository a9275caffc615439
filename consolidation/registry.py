# consolidation/registry.py
"""Keyed store of canonical characters and scenes for one extraction run."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from typing import Any

import structlog
from config import settings
from models.entity_models import Character, Scene
from models.run_models import EntityBundle
from prompt_renderer import render_prompt
from utils.text_processing import truncate_text

from consolidation.merge import merge_character, merge_clothing, merge_scene, merge_weapons

logger = structlog.get_logger(__name__)

UNNAMED_CHARACTER = "Unnamed Character"
UNNAMED_LOCATION = "Unnamed Location"


def new_entity_id() -> str:
    return uuid.uuid4().hex[:12]


def _resolve_identity(group_name: str, name: str, placeholder: str) -> tuple[str, str]:
    group = group_name.strip() or name.strip() or placeholder
    return group, name.strip() or group


class EntityRegistry:
    """Characters and scenes keyed by ``normalize(group) + "_" + normalize(name)``.

    A registry belongs to exactly one run. Writing a record under a key
    that is already present is always a merge, never an overwrite.
    """

    def __init__(self) -> None:
        self._characters: dict[str, Character] = {}
        self._scenes: dict[str, Scene] = {}

    @classmethod
    def from_entities(
        cls, characters: Iterable[Character] = (), scenes: Iterable[Scene] = ()
    ) -> EntityRegistry:
        """Seed a registry from a prior result; colliding keys are merged."""
        registry = cls()
        for character in characters:
            registry.add_character(character)
        for scene in scenes:
            registry.add_scene(scene)
        logger.debug(
            "Seeded registry.",
            characters=len(registry._characters),
            scenes=len(registry._scenes),
        )
        return registry

    # -- characters -----------------------------------------------------

    @staticmethod
    def prepare_character(character: Character) -> Character:
        """Return a copy with identity resolved and sub-items de-duplicated."""
        prepared = character.model_copy(deep=True)
        prepared.group_name, prepared.name = _resolve_identity(
            character.group_name, character.name, UNNAMED_CHARACTER
        )
        prepared.weapons = merge_weapons(character.weapons)
        prepared.clothing_styles = merge_clothing(character.clothing_styles)
        return prepared

    def get_character(self, key: str) -> Character | None:
        return self._characters.get(key)

    def put_character(self, character: Character) -> Character:
        """Store a prepared or already-merged character under its key.

        Callers are responsible for merging when the key already exists;
        the stored id is kept in that case.
        """
        key = character.registry_key
        current = self._characters.get(key)
        if current is not None and current.id:
            character.id = current.id
        elif not character.id:
            character.id = new_entity_id()
        self._characters[key] = character
        return character

    def add_character(self, character: Character) -> Character:
        """Insert ``character`` or merge it deterministically into its key."""
        prepared = self.prepare_character(character)
        existing = self._characters.get(prepared.registry_key)
        if existing is None:
            return self.put_character(prepared)
        return self.put_character(merge_character(existing, prepared))

    # -- scenes ---------------------------------------------------------

    @staticmethod
    def prepare_scene(scene: Scene) -> Scene:
        prepared = scene.model_copy(deep=True)
        prepared.group_name, prepared.name = _resolve_identity(
            scene.group_name, scene.name, UNNAMED_LOCATION
        )
        return prepared

    def add_scene(self, scene: Scene) -> Scene:
        """Insert ``scene`` or accumulate its frequency on the existing record."""
        prepared = self.prepare_scene(scene)
        key = prepared.registry_key
        existing = self._scenes.get(key)
        if existing is not None:
            merged = merge_scene(existing, prepared)
        else:
            merged = prepared
            if not merged.id:
                merged.id = new_entity_id()
        self._scenes[key] = merged
        return merged

    # -- views ----------------------------------------------------------

    @property
    def characters(self) -> list[Character]:
        return list(self._characters.values())

    @property
    def scenes(self) -> list[Scene]:
        return list(self._scenes.values())

    def is_empty(self) -> bool:
        return not self._characters and not self._scenes

    def snapshot(self) -> EntityBundle:
        """Deep copy of the current contents, in insertion order."""
        return EntityBundle(
            characters=[c.model_copy(deep=True) for c in self._characters.values()],
            scenes=[s.model_copy(deep=True) for s in self._scenes.values()],
        )

    def context_data(
        self, preview_chars: int = settings.CONTEXT_DESCRIPTION_PREVIEW_CHARS
    ) -> dict[str, Any]:
        characters = [
            {
                "key": f"{c.group_name}_{c.name}",
                "age": c.age.value,
                "weapons": [(w.name, w.description) for w in c.weapons],
                "clothing": [(cl.phase_label, cl.description) for cl in c.clothing_styles],
                "description": truncate_text(c.description, preview_chars),
            }
            for c in self._characters.values()
        ]
        scene_groups: dict[str, list[str]] = {}
        for scene in self._scenes.values():
            scene_groups.setdefault(scene.group_name, []).append(scene.name)
        return {"characters": characters, "scene_groups": scene_groups}

    def describe_for_prompt(
        self, preview_chars: int = settings.CONTEXT_DESCRIPTION_PREVIEW_CHARS
    ) -> str:
        """Summarize known entities for injection into the next chunk's prompt.

        Returns an empty string while the registry is empty.
        """
        if self.is_empty():
            return ""
        return render_prompt(
            "extraction_agent/known_entities.j2", self.context_data(preview_chars)
        )
