from __future__ import annotations

import json
from typing import Any

from domain import Campaign, Character
from gm_os.narrative import NarrativeAnalysis, NarrativeProcessor
from llm.parsing import SYSTEM_DATA_DELIMITER
from rules.npcs import CLASSIFICATION_LADDER

REFERENCE_CATEGORIES = (
    "species",
    "classes",
    "archetypes",
    "backgrounds",
    "forcePowers",
    "techPowers",
    "feats",
    "equipment",
    "npcs",
    "monsters",
    "vehicles",
    "starships",
)

SKILL_CHECK_DCS = {
    "veryEasy": 5,
    "easy": 10,
    "medium": 15,
    "hard": 20,
    "veryHard": 25,
    "nearlyImpossible": 30,
}

CLASSIFICATION_NOTES = {
    "background": "Background NPCs with minimal details: name, basic description.",
    "keyMinor": "NPCs who become relevant to the story but aren't central: add personality, goals.",
    "key": "Important NPCs central to plots: full details including abilities and motivations.",
    "companion": "NPCs who join the party: full character sheet including combat abilities.",
}


def request_prompt(request_type: str, character: Character) -> str:
    if request_type == "questGeneration":
        return (
            "Based on the character and campaign information provided, generate a new quest "
            f"appropriate for a level {character.level} {character.species} "
            f"{character.class_name}."
        )
    if request_type == "npcInteraction":
        return (
            "The player is interacting with NPCs in the campaign. Generate dialogue and "
            "interaction options based on the character's background and previous "
            "campaign events."
        )
    if request_type == "combatResolution":
        return (
            "The player has engaged in combat. Generate a narrative description of the "
            "combat outcome based on the character's abilities and the campaign context."
        )
    if request_type in {"locationDescription", "sceneDescription"}:
        return (
            "Generate a detailed description of the current location, including points of "
            "interest, inhabitants, and atmosphere."
        )
    return (
        "Based on the character and campaign information provided, generate the next story "
        "developments, NPC interactions, and potential quest opportunities for "
        f"{character.name}'s adventure."
    )


def player_action_prompt(character: Character, action: str) -> str:
    return (
        f"The player ({character.name}) takes the following action: {action}. "
        "Describe the outcome and any changes to the environment or NPCs."
    )


def system_data_instructions() -> str:
    schema = {
        "locations": [
            {
                "id": "location-id (existing id when updating, omit for new)",
                "name": "Location Name",
                "description": "Description",
                "coordinates": {"x": 0, "y": 0, "z": 0},
                "terrain": "urban|forest|desert|...",
                "features": [{"type": "feature-type", "position": {"x": 0, "y": 0, "z": 0}}],
            }
        ],
        "npcs": [
            {
                "id": "npc-id (existing id when updating, omit for new)",
                "name": "NPC Name",
                "description": "Description",
                "locationId": "location-id",
                "classification": "|".join(CLASSIFICATION_LADDER),
            }
        ],
        "objectives": [
            {
                "id": "objective-id (existing id when updating, omit for new)",
                "title": "Objective Title",
                "description": "Description",
                "status": "inactive|active|completed",
                "rewards": [],
            }
        ],
        "character": {"currentHp": 0, "currentForcePoints": 0},
    }
    return (
        "Provide TWO parts. First a NARRATIVE response: an immersive scene in Star Wars "
        "tone that presents interactive opportunities. Then a SYSTEM_DATA JSON object "
        f"matching this schema: {json.dumps(schema)}. "
        "Only include character fields that change. "
        "Promote NPCs along the classification ladder as interactions deepen. "
        "Request reference data with 'SW5E_DATA_REQUEST: category.name'. "
        f'Always separate the two parts with the line "{SYSTEM_DATA_DELIMITER}".'
    )


def build_game_report(
    character: Character,
    campaign: Campaign,
    analysis: NarrativeAnalysis | None = None,
) -> dict[str, Any]:
    if analysis is None:
        analysis = NarrativeProcessor().analyze(character)
    return {
        "character": {
            "name": character.name,
            "class": character.class_name,
            "level": character.level,
            "abilities": character.ability_scores.model_dump(),
            "equipment": [item.dump() for item in character.equipment],
            "status": {
                "hp": character.current_hp,
                "forcePoints": character.current_force_points,
            },
            "narrativeElements": {
                "themes": analysis.main_themes,
                "motivations": analysis.motivations,
                "personality": {
                    "dominantTraits": analysis.traits[:3],
                    "coreValues": analysis.values[:3],
                    "fears": analysis.fears[:2],
                },
                "plotHooks": analysis.plot_hooks,
            },
        },
        "campaign": {
            "currentLocation": campaign.current_location,
            "activeQuests": [quest.dump() for quest in campaign.quests if quest.status == "active"],
            "nearbyNPCs": [
                npc.dump()
                for npc in campaign.npcs
                if campaign.current_location and npc.location_id == campaign.current_location
            ],
        },
        "sw5eReference": {
            "description": (
                "Request specific SW5e data by including 'SW5E_DATA_REQUEST' in the "
                "response with the category."
            ),
            "availableCategories": list(REFERENCE_CATEGORIES),
            "exampleRequest": "SW5E_DATA_REQUEST: npcs.imperial-inquisitor",
        },
        "rulesReference": {
            "abilityScores": "Scores range from 3-20. Modifiers are (score - 10) / 2 rounded down.",
            "combat": {
                "attackRolls": "d20 + ability modifier + proficiency (if proficient)",
                "damage": "Weapon damage + ability modifier",
                "criticalHits": "A natural 20 always hits and doubles the damage dice.",
            },
            "skillChecks": {
                "description": "d20 + ability modifier + proficiency (if proficient)",
                "difficultyClasses": dict(SKILL_CHECK_DCS),
            },
            "npcManagement": {
                "classifications": dict(CLASSIFICATION_NOTES),
                "progression": "NPCs progress through classifications as interactions increase.",
            },
        },
        "instructions": system_data_instructions(),
    }
