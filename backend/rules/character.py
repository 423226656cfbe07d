from __future__ import annotations

from dataclasses import dataclass

from domain import ABILITY_NAMES, Character

HIT_DIE_BY_CLASS = {
    "berserker": 12,
    "guardian": 12,
    "fighter": 10,
    "sentinel": 10,
    "scout": 8,
    "engineer": 8,
    "operative": 8,
    "monk": 8,
    "scholar": 8,
    "consular": 6,
    "scoundrel": 6,
}
DEFAULT_HIT_DIE = 8

FORCE_CLASSES = {"consular", "guardian", "sentinel"}

ARMOR_BASE = {
    "light": (12, None),
    "medium": (14, 2),
    "heavy": (16, 0),
    "powered": (18, 0),
}

EXPERIENCE_THRESHOLDS = (
    0,
    300,
    900,
    2700,
    6500,
    14000,
    23000,
    34000,
    48000,
    64000,
    85000,
    100000,
    120000,
    140000,
    165000,
    195000,
    225000,
    265000,
    305000,
    355000,
)

SKILL_ABILITIES = {
    "acrobatics": "dexterity",
    "animal handling": "wisdom",
    "athletics": "strength",
    "deception": "charisma",
    "insight": "wisdom",
    "intimidation": "charisma",
    "investigation": "intelligence",
    "lore": "intelligence",
    "medicine": "wisdom",
    "nature": "intelligence",
    "perception": "wisdom",
    "performance": "charisma",
    "persuasion": "charisma",
    "piloting": "intelligence",
    "sleight of hand": "dexterity",
    "stealth": "dexterity",
    "survival": "wisdom",
    "technology": "intelligence",
}


@dataclass(frozen=True)
class DerivedStats:
    ability_modifiers: dict[str, int]
    proficiency_bonus: int
    armor_class: int
    initiative: int
    saving_throws: dict[str, int]
    passive_perception: int
    force_save_dc: int
    tech_save_dc: int
    experience_to_next_level: int | None


def ability_modifier(score: int) -> int:
    return (score - 10) // 2


def proficiency_bonus(level: int) -> int:
    return (max(1, level) - 1) // 4 + 2


def armor_class(
    dex_modifier: int,
    armor_type: str | None = None,
    *,
    armor_bonus: int = 0,
    shield_bonus: int = 0,
) -> int:
    key = (armor_type or "").strip().lower()
    if key not in ARMOR_BASE:
        return 10 + dex_modifier + armor_bonus + shield_bonus
    base, dex_cap = ARMOR_BASE[key]
    if dex_cap is None:
        dex_bonus = dex_modifier
    else:
        dex_bonus = min(dex_cap, dex_modifier)
    return base + dex_bonus + armor_bonus + shield_bonus


def hit_die(class_name: str | None) -> int:
    return HIT_DIE_BY_CLASS.get((class_name or "").strip().lower(), DEFAULT_HIT_DIE)


def max_hit_points(class_name: str | None, level: int, con_modifier: int) -> int:
    die = hit_die(class_name)
    level_one = die + con_modifier
    if level <= 1:
        return max(1, level_one)
    average = die // 2 + 1
    return max(1, level_one + (level - 1) * (average + con_modifier))


def max_force_points(class_name: str | None, level: int, wis_modifier: int) -> int:
    if (class_name or "").strip().lower() not in FORCE_CLASSES:
        return 0
    return max(1, level + wis_modifier)


def passive_perception(
    wis_modifier: int,
    *,
    proficient: bool = False,
    expertise: bool = False,
    bonus: int = 0,
) -> int:
    total = 10 + wis_modifier
    if proficient:
        total += bonus
    if expertise:
        total += bonus
    return total


def level_for_experience(experience: int) -> int:
    level = 1
    for index, threshold in enumerate(EXPERIENCE_THRESHOLDS):
        if experience >= threshold:
            level = index + 1
    return level


def experience_to_next_level(level: int, experience: int) -> int | None:
    if level >= len(EXPERIENCE_THRESHOLDS):
        return None
    return max(0, EXPERIENCE_THRESHOLDS[level] - experience)


def skill_modifier(character: Character, skill: str) -> int:
    ability = SKILL_ABILITIES.get(skill.strip().lower())
    if ability is None:
        raise ValueError(f"Unknown skill: {skill}")
    score = getattr(character.ability_scores, ability)
    modifier = ability_modifier(score)
    proficient = {name.strip().lower() for name in character.skill_proficiencies}
    if skill.strip().lower() in proficient:
        modifier += proficiency_bonus(character.level)
    return modifier


def derive_stats(character: Character) -> DerivedStats:
    scores = character.ability_scores
    modifiers = {name: ability_modifier(getattr(scores, name)) for name in ABILITY_NAMES}
    bonus = proficiency_bonus(character.level)

    save_proficiencies = {
        name.strip().lower() for name in character.saving_throw_proficiencies
    }
    saving_throws = {
        name: modifiers[name] + (bonus if name in save_proficiencies else 0)
        for name in ABILITY_NAMES
    }
    skills = {name.strip().lower() for name in character.skill_proficiencies}

    return DerivedStats(
        ability_modifiers=modifiers,
        proficiency_bonus=bonus,
        armor_class=armor_class(modifiers["dexterity"], character.armor_type),
        initiative=modifiers["dexterity"],
        saving_throws=saving_throws,
        passive_perception=passive_perception(
            modifiers["wisdom"], proficient="perception" in skills, bonus=bonus
        ),
        force_save_dc=8 + bonus + modifiers["wisdom"],
        tech_save_dc=8 + bonus + modifiers["intelligence"],
        experience_to_next_level=experience_to_next_level(
            character.level, character.experience
        ),
    )
