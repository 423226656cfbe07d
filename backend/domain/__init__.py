from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

QuestStatus = Literal["inactive", "active", "completed"]
SyncStatus = Literal["synced", "local", "conflict"]

ABILITY_NAMES = (
    "strength",
    "dexterity",
    "constitution",
    "intelligence",
    "wisdom",
    "charisma",
)


class DomainModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class AbilityScores(DomainModel):
    strength: int = Field(default=10, ge=1, le=30)
    dexterity: int = Field(default=10, ge=1, le=30)
    constitution: int = Field(default=10, ge=1, le=30)
    intelligence: int = Field(default=10, ge=1, le=30)
    wisdom: int = Field(default=10, ge=1, le=30)
    charisma: int = Field(default=10, ge=1, le=30)


class EquipmentItem(DomainModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    quantity: int = Field(default=1, ge=0)
    equipped: bool = False
    weight: float | None = None
    cost: int | None = None


class Character(DomainModel):
    id: str
    name: str = Field(min_length=1)
    species: str = ""
    class_name: str = Field(default="", alias="class")
    level: int = Field(default=1, ge=1, le=20)
    background: str | None = None
    alignment: str | None = None
    experience: int = Field(default=0, ge=0)
    ability_scores: AbilityScores = Field(default_factory=AbilityScores)
    max_hp: int = Field(default=1, ge=0)
    current_hp: int = Field(default=1, ge=0)
    temporary_hp: int = Field(default=0, ge=0)
    max_force_points: int = Field(default=0, ge=0)
    current_force_points: int = Field(default=0, ge=0)
    speed: int = 30
    credits: int = Field(default=0, ge=0)
    armor_type: str | None = None
    skill_proficiencies: list[str] = Field(default_factory=list)
    saving_throw_proficiencies: list[str] = Field(default_factory=list)
    equipment: list[EquipmentItem] = Field(default_factory=list)
    force_powers: list[str] = Field(default_factory=list)
    tech_powers: list[str] = Field(default_factory=list)
    feats: list[str] = Field(default_factory=list)
    languages: list[str] = Field(default_factory=list)
    personality_traits: str | None = None
    ideals: str | None = None
    bonds: str | None = None
    flaws: str | None = None
    backstory: str | None = None
    notes: str | None = None
    version: int = Field(default=1, ge=1)
    sync_status: SyncStatus = "local"
    updated_at: int | None = None


class Position(DomainModel):
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


class MapFeature(DomainModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    type: str
    position: Position = Field(default_factory=Position)
    scale: float | None = None
    rotation: Position | None = None
    properties: dict[str, Any] | None = None


class MapEntityReference(DomainModel):
    model_config = ConfigDict(extra="allow")

    id: str
    type: str = "npc"
    name: str | None = None
    position: Position | None = None


class MapData(DomainModel):
    terrain: str | None = None
    atmosphere: str | None = None
    weather: str | None = None
    lighting: str | None = None
    cubemap_refs: list[str] | dict[str, str] | None = None
    features: list[MapFeature] = Field(default_factory=list)
    entities: list[MapEntityReference] = Field(default_factory=list)
    last_updated: int | None = None


class Location(DomainModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    type: str | None = None
    description: str | None = None
    coordinates: Position | None = None
    map_data: MapData | None = None


class NPC(DomainModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    species: str | None = None
    role: str | None = None
    description: str | None = None
    classification: str | None = None
    location_id: str | None = None
    personality: dict[str, Any] | None = None
    goals: list[str] | None = None
    abilities: dict[str, Any] | None = None
    skills: list[str] | None = None
    stats: dict[str, Any] | None = None


class QuestObjective(DomainModel):
    id: str | None = None
    description: str
    completed: bool = False


class QuestReward(DomainModel):
    credits: int = 0
    items: list[str] = Field(default_factory=list)
    experience: int = 0


class Quest(DomainModel):
    model_config = ConfigDict(extra="allow")

    id: str
    title: str
    description: str = ""
    status: QuestStatus = "inactive"
    objectives: list[QuestObjective] = Field(default_factory=list)
    reward: QuestReward | None = None


class Campaign(DomainModel):
    id: str
    name: str = Field(min_length=1)
    description: str = ""
    character_id: str | None = None
    npcs: list[NPC] = Field(default_factory=list)
    locations: list[Location] = Field(default_factory=list)
    quests: list[Quest] = Field(default_factory=list)
    current_location: str | None = None
    updated_at: int | None = None


def field_names(model_cls: type[BaseModel], data: dict[str, Any]) -> dict[str, Any]:
    lookup = {}
    for name, info in model_cls.model_fields.items():
        lookup[name] = name
        if info.alias:
            lookup[info.alias] = name
    return {lookup.get(key, key): value for key, value in data.items()}


def merge_model(instance: DomainModel, changes: dict[str, Any]) -> DomainModel:
    data = instance.model_dump()
    for name, value in field_names(type(instance), changes).items():
        current = data.get(name)
        if isinstance(current, dict) and isinstance(value, dict):
            data[name] = {**current, **value}
        else:
            data[name] = value
    return type(instance).model_validate(data)


def validation_messages(exc: ValidationError) -> dict[str, str]:
    messages: dict[str, str] = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())) or "__root__"
        messages.setdefault(field, error.get("msg", "Invalid value"))
    return messages
