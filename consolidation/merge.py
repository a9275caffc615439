# consolidation/merge.py
"""Deterministic merge engine for characters, scenes and their value objects."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TypeVar

import structlog
from models.entity_models import Character, ClothingStyle, Scene, Weapon
from utils.text_processing import unique_preserving_order

from consolidation.normalization import are_phases_similar, are_weapon_names_similar
from consolidation.vocabulary import (
    ROLE_IMPORTANCE,
    TIE_DESCRIPTION_DELIMITER,
    AgeBracket,
    CharacterRole,
)

logger = structlog.get_logger(__name__)

ItemT = TypeVar("ItemT", Weapon, ClothingStyle)


def _dedupe_items(
    items: Iterable[ItemT],
    label: Callable[[ItemT], str],
    similar: Callable[[str, str], bool],
) -> list[ItemT]:
    result: list[ItemT] = []
    for item in items:
        item_label = label(item)
        if not item_label.strip():
            continue
        match_idx = next(
            (idx for idx, kept in enumerate(result) if similar(label(kept), item_label)),
            None,
        )
        if match_idx is None:
            result.append(item.model_copy())
            continue
        kept = result[match_idx]
        kept_desc = kept.description.strip()
        new_desc = item.description.strip()
        if len(new_desc) > len(kept_desc):
            result[match_idx] = item.model_copy()
        elif len(new_desc) == len(kept_desc) and new_desc != kept_desc:
            result[match_idx] = kept.model_copy(
                update={"description": f"{kept_desc}{TIE_DESCRIPTION_DELIMITER}{new_desc}"}
            )
    return result


def merge_weapons(weapons: Iterable[Weapon]) -> list[Weapon]:
    """Collapse similar weapon names, keeping the most detailed description.

    Scans left to right. An item whose name is similar to an earlier kept
    item replaces it only when its description is longer; equally long but
    different descriptions are joined. Nameless entries are skipped.
    """
    return _dedupe_items(weapons, lambda w: w.name, are_weapon_names_similar)


def merge_clothing(styles: Iterable[ClothingStyle]) -> list[ClothingStyle]:
    """Same as :func:`merge_weapons`, keyed on the clothing phase."""
    return _dedupe_items(styles, lambda c: c.phase_label, are_phases_similar)


def more_important_role(*roles: CharacterRole) -> CharacterRole:
    return min(roles, key=ROLE_IMPORTANCE.index)


def _longer_text(*texts: str) -> str:
    # First argument wins ties.
    best = ""
    for text in texts:
        if len(text.strip()) > len(best.strip()):
            best = text
    return best


def merge_character(existing: Character, incoming: Character) -> Character:
    """Fold ``incoming`` into ``existing`` and return a new record.

    Identity fields come from ``existing``. Ties on text length keep the
    existing text; callers should not rely on which of two equally
    detailed inputs wins.
    """
    merged = existing.model_copy(deep=True)
    merged.aliases = unique_preserving_order([*existing.aliases, *incoming.aliases])
    merged.role = more_important_role(existing.role, incoming.role)
    if incoming.age != AgeBracket.UNKNOWN:
        merged.age = incoming.age
    merged.description = _longer_text(existing.description, incoming.description)
    merged.visual_memory_points = _longer_text(
        existing.visual_memory_points, incoming.visual_memory_points
    )
    merged.weapons = merge_weapons([*existing.weapons, *incoming.weapons])
    merged.clothing_styles = merge_clothing(
        [*existing.clothing_styles, *incoming.clothing_styles]
    )
    return merged


def reconcile_ai_merge(
    ai_result: Character, existing: Character, incoming: Character
) -> Character:
    """Sanitize an AI-produced merge so it cannot drop or corrupt data.

    Identity is pinned to ``existing``. The AI's weapon and clothing lists
    are merged again with both inputs' items, so anything the service
    forgot is restored and anything it duplicated is collapsed.
    """
    merged = existing.model_copy(deep=True)
    merged.aliases = unique_preserving_order(
        [*existing.aliases, *incoming.aliases, *ai_result.aliases]
    )
    merged.role = more_important_role(existing.role, incoming.role)
    for candidate in (ai_result.age, incoming.age, existing.age):
        if candidate != AgeBracket.UNKNOWN:
            merged.age = candidate
            break
    merged.description = _longer_text(
        ai_result.description, existing.description, incoming.description
    )
    merged.visual_memory_points = _longer_text(
        ai_result.visual_memory_points,
        existing.visual_memory_points,
        incoming.visual_memory_points,
    )
    merged.weapons = merge_weapons(
        [*ai_result.weapons, *existing.weapons, *incoming.weapons]
    )
    merged.clothing_styles = merge_clothing(
        [*ai_result.clothing_styles, *existing.clothing_styles, *incoming.clothing_styles]
    )
    return merged


def merge_scene(existing: Scene, incoming: Scene) -> Scene:
    """Accumulate ``frequency`` and fill gaps; never deep-merge attributes."""
    merged = existing.model_copy(deep=True)
    merged.frequency = existing.frequency + incoming.frequency
    merged.aliases = unique_preserving_order([*existing.aliases, *incoming.aliases])
    for field_name in ("description", "atmosphere", "style"):
        if not getattr(merged, field_name) and getattr(incoming, field_name):
            setattr(merged, field_name, getattr(incoming, field_name))
    return merged
