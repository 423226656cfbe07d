from __future__ import annotations

import copy

CONDITION_CANONICAL = {
    "blinded": "Blinded",
    "charmed": "Charmed",
    "deafened": "Deafened",
    "frightened": "Frightened",
    "grappled": "Grappled",
    "incapacitated": "Incapacitated",
    "invisible": "Invisible",
    "paralyzed": "Paralyzed",
    "petrified": "Petrified",
    "poisoned": "Poisoned",
    "prone": "Prone",
    "restrained": "Restrained",
    "shocked": "Shocked",
    "slowed": "Slowed",
    "stunned": "Stunned",
    "unconscious": "Unconscious",
    "weakened": "Weakened",
}

DEFAULT_DURATIONS = {
    "Shocked": 1,
    "Slowed": 1,
    "Stunned": 1,
}

ATTACKER_DISADVANTAGE = {"Blinded", "Frightened", "Poisoned", "Prone", "Restrained"}
ATTACKER_ADVANTAGE = {"Invisible"}
DEFENDER_ADVANTAGE = {
    "Blinded",
    "Paralyzed",
    "Petrified",
    "Restrained",
    "Stunned",
    "Unconscious",
}
DEFENDER_DISADVANTAGE = {"Invisible"}
CANNOT_ACT = {"Incapacitated", "Paralyzed", "Petrified", "Stunned", "Unconscious"}


class ConditionError(ValueError):
    pass


def normalize_condition(name: str) -> str:
    key = name.strip().lower()
    if key in CONDITION_CANONICAL:
        return CONDITION_CANONICAL[key]
    raise ConditionError(f"Unknown condition: {name}")


def apply_condition(
    conditions: dict | None,
    name: str,
    *,
    duration: int | None = None,
    source: str | None = None,
) -> dict:
    canonical = normalize_condition(name)
    updated = copy.deepcopy(conditions or {})
    entry = updated.get(canonical, {"duration": None, "source": None})

    if duration is None:
        duration = DEFAULT_DURATIONS.get(canonical)
    if duration is not None:
        existing = entry.get("duration")
        if existing is None:
            entry["duration"] = int(duration)
        else:
            entry["duration"] = max(int(existing), int(duration))
    if source is not None:
        entry["source"] = source

    updated[canonical] = entry
    return updated


def remove_condition(conditions: dict | None, name: str) -> dict:
    canonical = normalize_condition(name)
    updated = copy.deepcopy(conditions or {})
    updated.pop(canonical, None)
    return updated


def tick_conditions(conditions: dict | None) -> tuple[dict, list[str]]:
    updated = copy.deepcopy(conditions or {})
    expired: list[str] = []

    for name, entry in list(updated.items()):
        duration = entry.get("duration")
        if duration is None:
            continue
        duration = int(duration) - 1
        if duration <= 0:
            expired.append(name)
            updated.pop(name, None)
            continue
        updated[name] = {**entry, "duration": duration}

    return updated, expired


def has_condition(conditions: dict | None, name: str) -> bool:
    return normalize_condition(name) in (conditions or {})


def can_act(conditions: dict | None) -> bool:
    return not CANNOT_ACT.intersection(conditions or {})


def attack_modifiers(
    attacker_conditions: dict | None,
    defender_conditions: dict | None,
) -> tuple[bool, bool]:
    attacker = set(attacker_conditions or {})
    defender = set(defender_conditions or {})
    advantage = bool(attacker & ATTACKER_ADVANTAGE or defender & DEFENDER_ADVANTAGE)
    disadvantage = bool(
        attacker & ATTACKER_DISADVANTAGE or defender & DEFENDER_DISADVANTAGE
    )
    return advantage, disadvantage
