from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, replace
from typing import Any, Callable

from pydantic import JsonValue

from domain import Campaign, Character
from gm_os.events import SHOW_GM_REPORT, EventBus
from gm_os.narrative import NarrativeProcessor, has_narrative
from gm_os.prompts import build_game_report, player_action_prompt, request_prompt
from llm.schemas import DebriefEnvelope, RequestType
from remote.client import ApiClient
from rules.maps import now_ms
from stores.persistence import LocalCache

logger = logging.getLogger(__name__)

CHARACTER_DETAIL_FIELDS = (
    "id",
    "name",
    "species",
    "class",
    "level",
    "background",
    "alignment",
    "abilityScores",
    "currentHp",
    "maxHp",
    "currentForcePoints",
    "maxForcePoints",
    "skillProficiencies",
    "backstory",
)


class DebriefError(RuntimeError):
    def __init__(self, message: str = "Failed to create debrief") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class DebriefOptions:
    include_character_details: bool = True
    include_npc_details: bool = True
    include_location_details: bool = True
    include_quest_details: bool = True
    include_game_state: bool = False
    request_type: RequestType = "campaignUpdate"
    custom_prompt: str | None = None
    player_action: str | None = None


@dataclass(frozen=True)
class DebriefResult:
    id: str
    session_id: str
    content: str
    envelope: dict[str, Any]
    response: JsonValue = None

    @property
    def pending(self) -> bool:
        return self.response is None


def character_projection(
    character: Character,
    *,
    details: bool,
    processor: NarrativeProcessor | None = None,
) -> dict[str, Any]:
    if not details:
        return {"id": character.id, "name": character.name}
    data = character.model_dump(by_alias=True, mode="json")
    projection = {key: data.get(key) for key in CHARACTER_DETAIL_FIELDS}
    if has_narrative(character):
        processor = processor or NarrativeProcessor()
        projection["narrativeProfile"] = processor.analyze(character).to_dict()
    return projection


def campaign_projection(campaign: Campaign, options: DebriefOptions) -> dict[str, Any]:
    data = campaign.model_dump(by_alias=True, mode="json")
    projection = {key: data[key] for key in ("id", "name", "description")}
    if options.include_npc_details:
        projection["npcs"] = data["npcs"]
    if options.include_location_details:
        projection["locations"] = data["locations"]
        projection["currentLocation"] = data["currentLocation"]
    if options.include_quest_details:
        projection["quests"] = data["quests"]
    return projection


class DebriefCompiler:
    def __init__(
        self,
        api: ApiClient | None = None,
        *,
        events: EventBus | None = None,
        cache: LocalCache | None = None,
        processor: NarrativeProcessor | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.api = api
        self.events = events or EventBus()
        self.cache = cache
        self.processor = processor or NarrativeProcessor()
        self.clock = clock
        self.debriefs: dict[str, DebriefResult] = {}

    def build_envelope(
        self,
        character: Character,
        campaign: Campaign,
        options: DebriefOptions | None = None,
    ) -> DebriefEnvelope:
        options = options or DebriefOptions()
        prompt = options.custom_prompt or request_prompt(options.request_type, character)
        current_location = None
        if options.include_game_state and campaign.current_location:
            for location in campaign.locations:
                if location.id == campaign.current_location:
                    current_location = location.model_dump(by_alias=True, mode="json")
                    break
        return DebriefEnvelope(
            session_id=f"session-{self.clock()}",
            character=character_projection(
                character,
                details=options.include_character_details,
                processor=self.processor,
            ),
            campaign=campaign_projection(campaign, options),
            request_type=options.request_type,
            prompt=prompt,
            current_location=current_location,
            player_action=options.player_action,
        )

    def compile(
        self,
        character: Character,
        campaign: Campaign,
        options: DebriefOptions | None = None,
    ) -> DebriefResult:
        envelope = self.build_envelope(character, campaign, options)
        payload = envelope.model_dump(by_alias=True, mode="json", exclude_none=True)
        try:
            debrief_id = self._persist(campaign.id, envelope.session_id, payload)
        except Exception as exc:
            logger.warning("Failed to create debrief for campaign %s: %s", campaign.id, exc)
            raise DebriefError() from exc

        result = DebriefResult(
            id=debrief_id,
            session_id=envelope.session_id,
            content=json.dumps(payload, indent=2),
            envelope=payload,
        )
        self.debriefs[debrief_id] = result
        logger.info("Created debrief %s (%s)", debrief_id, envelope.request_type)
        self.events.emit(SHOW_GM_REPORT, {"id": debrief_id, "content": result.content})
        return result

    def submit_player_action(
        self,
        character: Character,
        campaign: Campaign,
        action: str,
    ) -> DebriefResult:
        options = DebriefOptions(
            include_game_state=True,
            request_type="playerAction",
            custom_prompt=player_action_prompt(character, action),
            player_action=action,
        )
        return self.compile(character, campaign, options)

    def game_report(self, character: Character, campaign: Campaign) -> str:
        analysis = self.processor.analyze(character)
        return json.dumps(build_game_report(character, campaign, analysis), indent=2)

    def record_response(self, debrief_id: str, response: JsonValue) -> DebriefResult | None:
        try:
            if self.api is not None:
                self.api.record_debrief_response(debrief_id, response)
            elif self.cache is not None:
                stored = self.cache.get("debrief", debrief_id) or {"id": debrief_id}
                self.cache.set("debrief", debrief_id, {**stored, "response": response})
        except Exception as exc:
            logger.warning("Failed to record response for debrief %s: %s", debrief_id, exc)
            raise DebriefError("Failed to record debrief response") from exc

        result = self.debriefs.get(debrief_id)
        if result is not None:
            result = replace(result, response=response)
            self.debriefs[debrief_id] = result
        return result

    def _persist(self, campaign_id: str, session_id: str, payload: dict[str, Any]) -> str:
        if self.api is not None:
            created = self.api.create_debrief(campaign_id, session_id, payload)
            if not isinstance(created, dict) or not created.get("id"):
                raise DebriefError("Debrief service returned no id")
            return str(created["id"])
        debrief_id = f"debrief-{uuid.uuid4().hex[:12]}"
        if self.cache is not None:
            self.cache.set(
                "debrief",
                debrief_id,
                {
                    "id": debrief_id,
                    "campaignId": campaign_id,
                    "sessionId": session_id,
                    "content": payload,
                    "response": None,
                },
            )
        return debrief_id
