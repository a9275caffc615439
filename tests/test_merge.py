from consolidation.merge import (
    merge_character,
    merge_clothing,
    merge_scene,
    merge_weapons,
    more_important_role,
    reconcile_ai_merge,
)
from consolidation.vocabulary import AgeBracket, CharacterRole, SceneStructure
from models.entity_models import Character, ClothingStyle, Scene, Weapon


def test_merge_weapons_keeps_longer_description():
    merged = merge_weapons(
        [
            Weapon(name="黑蛇匕", description="短"),
            Weapon(name="黑蛇匕首", description="通体漆黑的精钢匕首"),
        ]
    )
    assert len(merged) == 1
    assert merged[0].name == "黑蛇匕首"
    assert merged[0].description == "通体漆黑的精钢匕首"


def test_merge_weapons_shorter_later_entry_is_dropped():
    merged = merge_weapons(
        [
            Weapon(name="dagger", description="black steel, serpent hilt"),
            Weapon(name="knife", description="black"),
        ]
    )
    assert [w.name for w in merged] == ["dagger"]


def test_merge_weapons_joins_equal_length_descriptions():
    merged = merge_weapons(
        [Weapon(name="Blade", description="aaaa"), Weapon(name="blade", description="bbbb")]
    )
    assert merged[0].description == "aaaa; bbbb"


def test_merge_weapons_keeps_distinct_and_skips_nameless():
    merged = merge_weapons(
        [
            Weapon(name="Longbow"),
            Weapon(name="", description="orphan"),
            Weapon(name="Warhammer"),
        ]
    )
    assert [w.name for w in merged] == ["Longbow", "Warhammer"]


def test_merge_weapons_does_not_mutate_inputs():
    first = Weapon(name="Blade", description="aaaa")
    merge_weapons([first, Weapon(name="blade", description="bbbb")])
    assert first.description == "aaaa"


def test_merge_clothing_by_phase_and_name_fallback():
    merged = merge_clothing(
        [
            ClothingStyle(name="Red robe", phase="大婚", description="红"),
            ClothingStyle(name="Wedding gown", phase="婚礼", description="大红色织金喜服"),
            ClothingStyle(name="Night gear", description="black"),
            ClothingStyle(description="nothing to key on"),
        ]
    )
    assert len(merged) == 2
    assert merged[0].description == "大红色织金喜服"
    assert merged[1].name == "Night gear"


def test_more_important_role():
    assert more_important_role(CharacterRole.EXTRA, CharacterRole.PRIMARY) == (
        CharacterRole.PRIMARY
    )
    assert more_important_role(CharacterRole.SUPPORTING) == CharacterRole.SUPPORTING


def _alice(**fields):
    base = {"id": "a1", "group_name": "Alice", "name": "Alice"}
    base.update(fields)
    return Character(**base)


def test_merge_character_unions_and_prefers_detail():
    existing = _alice(
        aliases=["Al"],
        role=CharacterRole.SUPPORTING,
        description="Short.",
        weapons=[Weapon(name="Blade", description="steel")],
    )
    incoming = _alice(
        id="",
        aliases=["Al", "Lady A"],
        role=CharacterRole.PRIMARY,
        age="26-40",
        description="A much longer description.",
        weapons=[Weapon(name="Short Blade", description="blue steel edge")],
    )
    merged = merge_character(existing, incoming)
    assert merged.id == "a1"
    assert merged.aliases == ["Al", "Lady A"]
    assert merged.role == CharacterRole.PRIMARY
    assert merged.age == AgeBracket.PRIME
    assert merged.description == "A much longer description."
    assert [(w.name, w.description) for w in merged.weapons] == [
        ("Short Blade", "blue steel edge")
    ]


def test_merge_character_unknown_age_does_not_downgrade():
    merged = merge_character(_alice(age="15-25"), _alice(age="unknown"))
    assert merged.age == AgeBracket.YOUTH


def test_merge_character_tie_keeps_existing_text():
    merged = merge_character(_alice(description="abc"), _alice(description="xyz"))
    assert merged.description == "abc"


def test_reconcile_ai_merge_restores_dropped_items_and_identity():
    existing = _alice(
        role=CharacterRole.PRIMARY,
        age="15-25",
        weapons=[Weapon(name="Longbow", description="yew")],
        clothing_styles=[ClothingStyle(phase="wedding", description="red silk")],
    )
    incoming = _alice(
        id="",
        aliases=["Archer"],
        weapons=[Weapon(name="Warhammer", description="iron")],
    )
    ai_result = Character(
        id="bogus",
        group_name="Alicia",
        name="Alicia",
        role=CharacterRole.EXTRA,
        age="unknown",
        aliases=["Ali"],
        description="Merged description from both records.",
        weapons=[Weapon(name="Warhammer", description="heavy iron head")],
    )
    merged = reconcile_ai_merge(ai_result, existing, incoming)
    assert (merged.id, merged.group_name, merged.name) == ("a1", "Alice", "Alice")
    assert merged.role == CharacterRole.PRIMARY
    assert merged.age == AgeBracket.YOUTH
    assert merged.aliases == ["Archer", "Ali"]
    assert merged.description == "Merged description from both records."
    assert {w.name: w.description for w in merged.weapons} == {
        "Warhammer": "heavy iron head",
        "Longbow": "yew",
    }
    assert [c.phase for c in merged.clothing_styles] == ["wedding"]


def test_reconcile_ai_merge_takes_ai_age_first():
    merged = reconcile_ai_merge(
        _alice(age="41-60"), _alice(age="26-40"), _alice(age="15-25")
    )
    assert merged.age == AgeBracket.MIDDLE


def test_merge_scene_accumulates_frequency_and_fills_gaps():
    existing = Scene(
        id="s1",
        group_name="Palace",
        name="Throne Room",
        structure=SceneStructure.INTERIOR,
        frequency=2,
    )
    incoming = Scene(
        group_name="Palace",
        name="Throne Room",
        structure=SceneStructure.EXTERIOR,
        description="Gold pillars",
        aliases=["Hall"],
        frequency=0,
    )
    merged = merge_scene(existing, incoming)
    assert merged.frequency == 3
    assert merged.id == "s1"
    assert merged.description == "Gold pillars"
    assert merged.structure == SceneStructure.INTERIOR
    assert merged.aliases == ["Hall"]
    assert existing.frequency == 2
