import pytest

from domain import Character
from rules.character import (
    ability_modifier,
    armor_class,
    derive_stats,
    experience_to_next_level,
    level_for_experience,
    max_force_points,
    max_hit_points,
    proficiency_bonus,
    skill_modifier,
)


def _character(**overrides) -> Character:
    data = {
        "id": "char-1",
        "name": "Kira Voss",
        "species": "Human",
        "class": "Sentinel",
        "level": 5,
        "abilityScores": {
            "strength": 10,
            "dexterity": 16,
            "constitution": 14,
            "intelligence": 12,
            "wisdom": 15,
            "charisma": 8,
        },
        "skillProficiencies": ["Perception", "Stealth"],
        "savingThrowProficiencies": ["dexterity", "wisdom"],
    }
    data.update(overrides)
    return Character.model_validate(data)


def test_ability_modifier_rounds_down() -> None:
    assert ability_modifier(10) == 0
    assert ability_modifier(11) == 0
    assert ability_modifier(9) == -1
    assert ability_modifier(20) == 5
    assert ability_modifier(1) == -5


def test_proficiency_bonus_by_level() -> None:
    assert proficiency_bonus(1) == 2
    assert proficiency_bonus(4) == 2
    assert proficiency_bonus(5) == 3
    assert proficiency_bonus(17) == 6


def test_armor_class_caps_dexterity_for_armor() -> None:
    assert armor_class(3) == 13
    assert armor_class(3, "light") == 15
    assert armor_class(3, "medium") == 16
    assert armor_class(3, "heavy") == 16
    assert armor_class(3, "heavy", shield_bonus=2) == 18


def test_hit_points_and_force_points() -> None:
    assert max_hit_points("Guardian", 1, 2) == 14
    assert max_hit_points("Guardian", 3, 2) == 14 + 2 * (7 + 2)
    assert max_force_points("Consular", 4, 3) == 7
    assert max_force_points("Scout", 4, 3) == 0


def test_experience_levels() -> None:
    assert level_for_experience(0) == 1
    assert level_for_experience(950) == 3
    assert experience_to_next_level(3, 950) == 1750
    assert experience_to_next_level(20, 400000) is None


def test_derive_stats_for_character() -> None:
    stats = derive_stats(_character())

    assert stats.ability_modifiers["dexterity"] == 3
    assert stats.proficiency_bonus == 3
    assert stats.armor_class == 13
    assert stats.initiative == 3
    assert stats.saving_throws["dexterity"] == 6
    assert stats.saving_throws["strength"] == 0
    assert stats.passive_perception == 15
    assert stats.force_save_dc == 13
    assert stats.tech_save_dc == 12


def test_skill_modifier_adds_proficiency() -> None:
    character = _character()
    assert skill_modifier(character, "stealth") == 6
    assert skill_modifier(character, "Athletics") == 0
    with pytest.raises(ValueError):
        skill_modifier(character, "basket weaving")
