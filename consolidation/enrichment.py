# consolidation/enrichment.py
"""Selection and field-merge rules for the enrichment pass.

Per-chunk extraction often leaves thin descriptions. After the chunk loop,
entities whose text is short or lacks concrete visual markers are sent for
a second, holistic pass and the answers are folded back field by field.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import structlog
from config import settings
from models.entity_models import Character, ExtractionPayload, Scene
from models.run_models import EntityBundle
from utils.text_processing import contains_any, unique_preserving_order

from consolidation.merge import merge_clothing, merge_weapons
from consolidation.vocabulary import (
    APPEARANCE_MARKERS,
    ATMOSPHERE_MARKERS,
    CHARACTER_TEXT_MARKERS,
    ENVIRONMENT_MARKERS,
    ITEM_DETAIL_MARKERS,
    SCENE_TEXT_MARKERS,
    VISUAL_DETAIL_MARKERS,
    AgeBracket,
)

logger = structlog.get_logger(__name__)


def _thin_item(description: str, min_len: int) -> bool:
    text = description.strip()
    return len(text) < min_len or not contains_any(text, ITEM_DETAIL_MARKERS)


def character_needs_enrichment(character: Character) -> bool:
    min_text = settings.ENRICH_MIN_CHARACTER_TEXT
    min_item = settings.ENRICH_MIN_ITEM_TEXT
    if len(character.description.strip()) < min_text:
        return True
    visual = character.visual_memory_points.strip()
    if len(visual) < min_text or not contains_any(visual, VISUAL_DETAIL_MARKERS):
        return True
    items = [*character.weapons, *character.clothing_styles]
    return any(_thin_item(item.description, min_item) for item in items)


def scene_needs_enrichment(scene: Scene) -> bool:
    description = scene.description.strip()
    return (
        len(description) < settings.ENRICH_MIN_SCENE_DESCRIPTION
        or len(scene.atmosphere.strip()) < settings.ENRICH_MIN_SCENE_ATMOSPHERE
        or not contains_any(description, ENVIRONMENT_MARKERS)
    )


def select_for_enrichment(
    characters: Iterable[Character], scenes: Iterable[Scene]
) -> EntityBundle:
    """Return only the entities worth a second pass."""
    return EntityBundle(
        characters=[c for c in characters if character_needs_enrichment(c)],
        scenes=[s for s in scenes if scene_needs_enrichment(s)],
    )


def prefer_detailed_text(
    current: str, candidate: str, min_len: int, markers: Sequence[str]
) -> str:
    """Take ``candidate`` only if it is longer and ``current`` is thin or
    ``candidate`` carries a detail marker."""
    current_text = current.strip()
    candidate_text = candidate.strip()
    if len(candidate_text) <= len(current_text):
        return current
    if len(current_text) < min_len or contains_any(candidate_text, markers):
        return candidate_text
    return current


def merge_enriched_character(original: Character, enriched: Character) -> Character:
    min_text = settings.ENRICH_MIN_CHARACTER_TEXT
    merged = original.model_copy(deep=True)
    merged.description = prefer_detailed_text(
        original.description, enriched.description, min_text, CHARACTER_TEXT_MARKERS
    )
    merged.visual_memory_points = prefer_detailed_text(
        original.visual_memory_points,
        enriched.visual_memory_points,
        min_text,
        APPEARANCE_MARKERS,
    )
    merged.aliases = unique_preserving_order([*original.aliases, *enriched.aliases])
    if enriched.age != AgeBracket.UNKNOWN:
        merged.age = enriched.age
    merged.weapons = merge_weapons([*original.weapons, *enriched.weapons])
    merged.clothing_styles = merge_clothing(
        [*original.clothing_styles, *enriched.clothing_styles]
    )
    return merged


def merge_enriched_scene(original: Scene, enriched: Scene) -> Scene:
    merged = original.model_copy(deep=True)
    merged.description = prefer_detailed_text(
        original.description,
        enriched.description,
        settings.ENRICH_MIN_SCENE_DESCRIPTION,
        SCENE_TEXT_MARKERS,
    )
    merged.atmosphere = prefer_detailed_text(
        original.atmosphere,
        enriched.atmosphere,
        settings.ENRICH_MIN_SCENE_ATMOSPHERE,
        ATMOSPHERE_MARKERS,
    )
    if not merged.style.strip() and enriched.style.strip():
        merged.style = enriched.style.strip()
    merged.aliases = unique_preserving_order([*original.aliases, *enriched.aliases])
    return merged


def apply_enrichment(
    characters: Sequence[Character],
    scenes: Sequence[Scene],
    enriched: ExtractionPayload,
) -> EntityBundle:
    """Fold an enrichment answer back into the original entities.

    Matching is by ``id`` with the registry key as a fallback. Originals
    the service left out are returned unchanged, and nothing the service
    invents is added.
    """
    chars_by_id = {c.id: c for c in enriched.characters if c.id}
    chars_by_key = {c.registry_key: c for c in enriched.characters}
    scenes_by_id = {s.id: s for s in enriched.scenes if s.id}
    scenes_by_key = {s.registry_key: s for s in enriched.scenes}

    out_characters: list[Character] = []
    matched = 0
    for character in characters:
        match = chars_by_id.get(character.id) or chars_by_key.get(character.registry_key)
        if match is None:
            out_characters.append(character)
            continue
        matched += 1
        out_characters.append(merge_enriched_character(character, match))

    out_scenes: list[Scene] = []
    for scene in scenes:
        match = scenes_by_id.get(scene.id) or scenes_by_key.get(scene.registry_key)
        if match is None:
            out_scenes.append(scene)
            continue
        matched += 1
        out_scenes.append(merge_enriched_scene(scene, match))

    logger.info(
        "Applied enrichment to %d of %d entities.",
        matched,
        len(characters) + len(scenes),
    )
    return EntityBundle(characters=out_characters, scenes=out_scenes)
