from rules.npcs import (
    DEFAULT_ABILITIES,
    classification_rank,
    find_template,
    lookup_reference,
    normalize_classification,
    promote_npc,
)


def test_classification_aliases() -> None:
    assert normalize_classification("minor") == "background"
    assert normalize_classification("KeyMinor") == "keyMinor"
    assert normalize_classification("villain") is None
    assert classification_rank("companion") == 3
    assert classification_rank(None) == 0


def test_key_minor_adds_personality_skeleton() -> None:
    npc = promote_npc({"id": "npc-1", "name": "Tam"}, "keyMinor")

    assert npc["classification"] == "keyMinor"
    assert npc["personality"] == {"traits": [], "ideals": [], "bonds": [], "flaws": []}
    assert npc["goals"] == []
    assert "abilities" not in npc


def test_key_minor_to_key_preserves_personality() -> None:
    personality = {"traits": ["gruff"], "ideals": ["credits"], "bonds": [], "flaws": []}
    npc = {
        "id": "npc-2",
        "name": "Dax",
        "role": "Smuggler",
        "classification": "keyMinor",
        "personality": personality,
    }

    promoted = promote_npc(npc, "key")

    assert promoted["classification"] == "key"
    assert promoted["personality"] == personality
    assert promoted["abilities"] == DEFAULT_ABILITIES
    assert promoted["skills"] == []
    assert "abilities" not in npc


def test_key_uses_matching_template() -> None:
    promoted = promote_npc({"id": "npc-3", "name": "Rebel Commander Ossa"}, "key")

    template = lookup_reference("npcs", "rebel-commander")
    assert promoted["abilities"] == template.abilities
    assert promoted["skills"] == template.skills


def test_companion_fills_stat_block_without_overwriting() -> None:
    npc = {
        "id": "npc-4",
        "name": "Vex",
        "stats": {"hitPoints": 33},
        "abilities": {"strength": 16},
    }

    promoted = promote_npc(npc, "companion")

    assert promoted["stats"]["hitPoints"] == 33
    assert promoted["stats"]["armorClass"] == 10
    assert promoted["stats"]["actions"] == []
    assert promoted["abilities"] == {**DEFAULT_ABILITIES, "strength": 16}
    assert "personality" in promoted


def test_promotion_never_demotes() -> None:
    npc = promote_npc({"id": "npc-5", "name": "Ila", "classification": "key"}, "background")
    assert npc["classification"] == "key"


def test_find_template_and_reference_lookup() -> None:
    template = find_template({"name": "Jabba", "role": "Hutt Crime Lord"})

    assert template is not None
    assert template.id == "hutt-crime-lord"
    assert lookup_reference("npcs", "jedi-knight").name.startswith("Jedi Knight")
    assert "rebel-commander" in lookup_reference("npcs")
    assert lookup_reference("starships", "x-wing") is None


def test_empty_placeholders_are_filled_on_promotion() -> None:
    npc = {"id": "npc-6", "name": "Orrin", "personality": {}, "abilities": {}, "skills": []}

    key = promote_npc(npc, "key")
    companion = promote_npc(npc, "companion")

    assert key["personality"] == {"traits": [], "ideals": [], "bonds": [], "flaws": []}
    assert key["abilities"] == DEFAULT_ABILITIES
    assert companion["abilities"] == DEFAULT_ABILITIES
    assert companion["stats"]["hitPoints"] == 10


def test_partial_personality_keeps_existing_entries() -> None:
    npc = promote_npc({"id": "npc-7", "name": "Sela", "personality": {"traits": ["wry"]}}, "key")

    assert npc["personality"] == {"traits": ["wry"], "ideals": [], "bonds": [], "flaws": []}
