from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, JsonValue, field_validator
from pydantic.alias_generators import to_camel

RequestType = Literal[
    "campaignUpdate",
    "questGeneration",
    "npcInteraction",
    "combatResolution",
    "locationDescription",
    "sceneDescription",
    "playerAction",
    "gmResponse",
]

MAP_DATA_KEYS = (
    "terrain",
    "atmosphere",
    "weather",
    "lighting",
    "cubemapRefs",
    "features",
    "entities",
)


class SystemData(BaseModel):
    model_config = ConfigDict(extra="allow")

    locations: list[Any] = Field(default_factory=list)
    character: dict[str, Any] | None = None
    objectives: list[Any] = Field(default_factory=list)
    npcs: list[Any] = Field(default_factory=list)

    @field_validator("locations", "objectives", "npcs", mode="before")
    @classmethod
    def _wrap_single(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, dict):
            return [value]
        return value


class DebriefEnvelope(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: str
    character: dict[str, JsonValue]
    campaign: dict[str, JsonValue]
    request_type: RequestType = "campaignUpdate"
    prompt: str = ""
    current_location: dict[str, JsonValue] | None = None
    player_action: str | None = None
    response: JsonValue = None


def location_payload(data: dict[str, Any]) -> dict[str, Any]:
    payload = dict(data)
    map_data = dict(payload.pop("mapData", None) or payload.pop("map_data", None) or {})
    for key in MAP_DATA_KEYS:
        if key in payload:
            map_data.setdefault(key, payload.pop(key))
    if map_data:
        payload["mapData"] = map_data
    return payload
