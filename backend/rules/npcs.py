from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

CLASSIFICATION_LADDER = ("background", "keyMinor", "key", "companion")
CLASSIFICATION_ALIASES = {
    "background": "background",
    "minor": "background",
    "keyminor": "keyMinor",
    "key_minor": "keyMinor",
    "key-minor": "keyMinor",
    "key": "key",
    "companion": "companion",
}

DEFAULT_ABILITIES = {
    "strength": 10,
    "dexterity": 10,
    "constitution": 10,
    "intelligence": 10,
    "wisdom": 10,
    "charisma": 10,
}
DEFAULT_HIT_POINTS = 10
DEFAULT_ARMOR_CLASS = 10


@dataclass(frozen=True)
class NpcTemplate:
    id: str
    name: str
    category: str
    description: str
    abilities: dict[str, int]
    armor_class: int
    hit_points: int
    skills: list[str]
    actions: list[dict[str, Any]] = field(default_factory=list)
    equipment: list[str] = field(default_factory=list)


NPC_TEMPLATES = (
    NpcTemplate(
        id="imperial-inquisitor",
        name="Imperial Inquisitor",
        category="Imperial Personnel",
        description="A Force-sensitive agent of the Empire who hunts down surviving Jedi.",
        abilities={
            "strength": 14,
            "dexterity": 18,
            "constitution": 18,
            "intelligence": 14,
            "wisdom": 16,
            "charisma": 16,
        },
        armor_class=16,
        hit_points=136,
        skills=["Intimidation +7", "Investigation +6", "Perception +7"],
        actions=[
            {
                "name": "Double-Bladed Lightsaber",
                "attackBonus": 8,
                "damage": "1d8+4",
                "damageType": "energy",
            }
        ],
    ),
    NpcTemplate(
        id="hutt-crime-lord",
        name="Hutt Crime Lord",
        category="Crime Lords",
        description="A powerful Hutt who rules over a criminal enterprise.",
        abilities={
            "strength": 18,
            "dexterity": 8,
            "constitution": 20,
            "intelligence": 16,
            "wisdom": 14,
            "charisma": 20,
        },
        armor_class=15,
        hit_points=157,
        skills=["Deception +9", "Insight +6", "Intimidation +9", "Persuasion +9"],
        actions=[{"name": "Tail", "attackBonus": 7, "damage": "2d8+4", "damageType": "kinetic"}],
        equipment=["Ornate jewelry", "Communication devices", "Personal shield generator"],
    ),
    NpcTemplate(
        id="mandalorian-bounty-hunter",
        name="Mandalorian Bounty Hunter",
        category="Bounty Hunters",
        description="A beskar-clad hunter who never abandons a contract.",
        abilities={
            "strength": 16,
            "dexterity": 18,
            "constitution": 16,
            "intelligence": 13,
            "wisdom": 16,
            "charisma": 12,
        },
        armor_class=18,
        hit_points=112,
        skills=["Athletics +7", "Perception +7", "Stealth +8", "Survival +7"],
        actions=[
            {"name": "Blaster Rifle", "attackBonus": 8, "damage": "1d8+4", "damageType": "energy"}
        ],
        equipment=["Beskar armor", "Blaster rifle", "Wrist rockets", "Jetpack"],
    ),
    NpcTemplate(
        id="jedi-knight",
        name="Jedi Knight (In Exile)",
        category="Force Users",
        description="A surviving Jedi hiding from the Empire.",
        abilities={
            "strength": 14,
            "dexterity": 18,
            "constitution": 14,
            "intelligence": 12,
            "wisdom": 18,
            "charisma": 14,
        },
        armor_class=16,
        hit_points=91,
        skills=["Acrobatics +8", "Athletics +6", "Insight +8", "Perception +8"],
        actions=[{"name": "Lightsaber", "attackBonus": 8, "damage": "1d8+5", "damageType": "energy"}],
        equipment=["Lightsaber", "Concealed robes", "Comlink", "Medpac"],
    ),
    NpcTemplate(
        id="rebel-commander",
        name="Rebel Commander",
        category="Rebel Alliance",
        description="A seasoned officer leading a Rebel cell.",
        abilities={
            "strength": 14,
            "dexterity": 16,
            "constitution": 16,
            "intelligence": 14,
            "wisdom": 16,
            "charisma": 18,
        },
        armor_class=16,
        hit_points=112,
        skills=["Deception +8", "Insight +7", "Persuasion +8", "Survival +7"],
        actions=[
            {"name": "Blaster Pistol", "attackBonus": 7, "damage": "1d6+4", "damageType": "energy"},
            {"name": "Vibroblade", "attackBonus": 6, "damage": "1d6+3", "damageType": "kinetic"},
        ],
        equipment=["Combat suit", "Blaster pistol", "Vibroblade", "Comlink", "Datapad"],
    ),
)


def normalize_classification(value: str | None) -> str | None:
    if value is None:
        return None
    key = str(value).strip().lower()
    return CLASSIFICATION_ALIASES.get(key)


def classification_rank(value: str | None) -> int:
    canonical = normalize_classification(value)
    if canonical is None:
        return 0
    return CLASSIFICATION_LADDER.index(canonical)


def find_template(npc: dict[str, Any]) -> NpcTemplate | None:
    needles = [
        str(npc.get(key)).strip().lower()
        for key in ("templateId", "name", "role", "species")
        if npc.get(key)
    ]
    for template in NPC_TEMPLATES:
        haystacks = (template.id, template.name.lower(), template.category.lower())
        for needle in needles:
            if any(needle in haystack or haystack in needle for haystack in haystacks):
                return template
    return None


def _personality_skeleton() -> dict[str, Any]:
    return {"traits": [], "ideals": [], "bonds": [], "flaws": []}


def _enrich_key_minor(npc: dict[str, Any]) -> None:
    npc["personality"] = {**_personality_skeleton(), **(npc.get("personality") or {})}
    if not npc.get("goals"):
        npc["goals"] = []


def _enrich_key(npc: dict[str, Any], template: NpcTemplate | None) -> None:
    defaults = template.abilities if template else DEFAULT_ABILITIES
    npc["abilities"] = {**defaults, **(npc.get("abilities") or {})}
    if not npc.get("skills"):
        npc["skills"] = list(template.skills) if template else []


def _enrich_companion(npc: dict[str, Any], template: NpcTemplate | None) -> None:
    stats = dict(npc.get("stats") or {})
    stats.setdefault("hitPoints", template.hit_points if template else DEFAULT_HIT_POINTS)
    stats.setdefault("armorClass", template.armor_class if template else DEFAULT_ARMOR_CLASS)
    stats.setdefault("actions", copy.deepcopy(template.actions) if template else [])
    stats.setdefault("equipment", list(template.equipment) if template else [])
    npc["stats"] = stats


def promote_npc(npc: dict[str, Any], classification: str | None) -> dict[str, Any]:
    """Move an NPC up the classification ladder, filling in missing detail.

    Enrichment fills absent or empty fields and missing ability scores.
    Requests to move down the ladder keep the current classification.
    """
    target = normalize_classification(classification)
    promoted = copy.deepcopy(npc)
    if target is None:
        return promoted

    current_rank = classification_rank(promoted.get("classification"))
    target_rank = CLASSIFICATION_LADDER.index(target)
    if promoted.get("classification") is not None and target_rank <= current_rank:
        promoted["classification"] = CLASSIFICATION_LADDER[current_rank]
        return promoted

    template = None
    if target_rank >= CLASSIFICATION_LADDER.index("key"):
        template = find_template(promoted)
    if target_rank >= CLASSIFICATION_LADDER.index("keyMinor"):
        _enrich_key_minor(promoted)
    if target_rank >= CLASSIFICATION_LADDER.index("key"):
        _enrich_key(promoted, template)
    if target_rank >= CLASSIFICATION_LADDER.index("companion"):
        _enrich_companion(promoted, template)

    promoted["classification"] = target
    return promoted


def lookup_reference(category: str, item_id: str | None = None) -> Any:
    if category != "npcs":
        return None
    if item_id is None:
        return [template.id for template in NPC_TEMPLATES]
    for template in NPC_TEMPLATES:
        if template.id == item_id:
            return template
    return None
