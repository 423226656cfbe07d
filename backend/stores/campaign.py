from __future__ import annotations

import logging
import uuid
from typing import Any, Callable

from pydantic import ValidationError

from domain import (
    NPC,
    Campaign,
    Location,
    Quest,
    QuestObjective,
    field_names,
    merge_model,
)
from remote.client import ApiClient
from rules.maps import merge_map_data, now_ms
from rules.npcs import promote_npc
from stores.persistence import LocalCache
from stores.transaction import StoreError, Transaction

logger = logging.getLogger(__name__)

QUEST_STATUS_ORDER = {"inactive": 0, "active": 1, "completed": 2}


class QuestError(ValueError):
    pass


def advance_quest_status(current: str, requested: str) -> str:
    if requested not in QUEST_STATUS_ORDER:
        raise QuestError(f"Unknown quest status: {requested}")
    if QUEST_STATUS_ORDER[requested] < QUEST_STATUS_ORDER[current]:
        raise QuestError(f"Quest cannot move from {current} back to {requested}.")
    return requested


def merge_objectives(
    existing: list[QuestObjective],
    incoming: list[dict[str, Any]],
) -> list[QuestObjective]:
    merged = [objective.model_copy() for objective in existing]
    for data in incoming:
        if isinstance(data, str):
            data = {"description": data}
        objective = QuestObjective.model_validate(data)
        match = None
        for index, current in enumerate(merged):
            if objective.id and current.id == objective.id:
                match = index
                break
            if not objective.id and current.description.strip().lower() == (
                objective.description.strip().lower()
            ):
                match = index
                break
        if match is None:
            merged.append(objective)
            continue
        current = merged[match]
        changes = objective.model_dump(exclude_unset=True)
        changes["completed"] = current.completed or objective.completed
        merged[match] = current.model_copy(update=changes)
    return merged


def settle_quest(quest: Quest) -> Quest:
    if quest.objectives and all(objective.completed for objective in quest.objectives):
        return quest.model_copy(update={"status": "completed"})
    return quest


class CampaignStore:
    def __init__(
        self,
        api: ApiClient | None = None,
        *,
        cache: LocalCache | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.api = api
        self.cache = cache
        self.clock = clock
        self.campaign: Campaign | None = None
        self.error: str | None = None

    def require(self) -> Campaign:
        if self.campaign is None:
            raise StoreError("No campaign loaded.")
        return self.campaign

    def snapshot(self) -> dict[str, Any] | None:
        if self.campaign is None:
            return None
        return self.campaign.model_dump(mode="json")

    def set_campaign(self, campaign: Campaign | dict[str, Any]) -> Campaign:
        if not isinstance(campaign, Campaign):
            campaign = Campaign.model_validate(campaign)
        self._store(campaign)
        return campaign

    def load_campaign(self, campaign_id: str) -> Campaign | None:
        if self.api is None:
            return self.campaign
        try:
            campaign = Campaign.model_validate(self.api.get_campaign(campaign_id))
        except Exception as exc:
            self.error = f"Failed to load campaign: {exc}"
            logger.warning("Failed to load campaign %s: %s", campaign_id, exc)
            return self.campaign
        self._store(campaign)
        return campaign

    def find_npc(self, npc_id: str | None = None, name: str | None = None) -> NPC | None:
        campaign = self.require()
        for npc in campaign.npcs:
            if npc_id and npc.id == npc_id:
                return npc
        if name:
            for npc in campaign.npcs:
                if npc.name.strip().lower() == name.strip().lower():
                    return npc
        return None

    def find_location(
        self,
        location_id: str | None = None,
        name: str | None = None,
    ) -> Location | None:
        campaign = self.require()
        for location in campaign.locations:
            if location_id and location.id == location_id:
                return location
        if name:
            for location in campaign.locations:
                if location.name.strip().lower() == name.strip().lower():
                    return location
        return None

    def find_quest(self, quest_id: str) -> Quest | None:
        for quest in self.require().quests:
            if quest.id == quest_id:
                return quest
        return None

    def update_campaign(self, changes: dict[str, Any]) -> Transaction:
        protected = {"id", "npcs", "locations", "quests"}
        changes = {
            key: value
            for key, value in field_names(Campaign, changes).items()
            if key not in protected
        }
        return self._mutate("update campaign", lambda campaign: merge_model(campaign, changes))

    def add_npc(self, data: NPC | dict[str, Any]) -> Transaction:
        try:
            npc = self._new_npc(data)
        except ValidationError as exc:
            return self._fail("add npc", str(exc))
        return self._mutate(
            "add npc",
            lambda campaign: campaign.model_copy(update={"npcs": [*campaign.npcs, npc]}),
        )

    def update_npc(self, npc_id: str, changes: dict[str, Any]) -> Transaction:
        existing = self.find_npc(npc_id)
        if existing is None:
            raise StoreError(f"Unknown npc: {npc_id}")
        try:
            npc = self._merge_npc(existing, changes)
        except ValidationError as exc:
            return self._fail("update npc", str(exc))
        return self._mutate("update npc", lambda campaign: _replace(campaign, "npcs", npc))

    def upsert_npc(self, data: dict[str, Any]) -> tuple[Transaction, bool]:
        existing = self.find_npc(data.get("id"), data.get("name"))
        if existing is None:
            return self.add_npc(data), True
        return self.update_npc(existing.id, data), False

    def remove_npc(self, npc_id: str) -> Transaction:
        if self.find_npc(npc_id) is None:
            raise StoreError(f"Unknown npc: {npc_id}")
        return self._mutate(
            "remove npc",
            lambda campaign: campaign.model_copy(
                update={"npcs": [npc for npc in campaign.npcs if npc.id != npc_id]}
            ),
        )

    def add_location(self, data: Location | dict[str, Any]) -> Transaction:
        try:
            location = self._new_location(data)
        except ValidationError as exc:
            return self._fail("add location", str(exc))
        return self._mutate(
            "add location",
            lambda campaign: campaign.model_copy(
                update={"locations": [*campaign.locations, location]}
            ),
        )

    def update_location(self, location_id: str, changes: dict[str, Any]) -> Transaction:
        existing = self.find_location(location_id)
        if existing is None:
            raise StoreError(f"Unknown location: {location_id}")
        try:
            location = self._merge_location(existing, changes)
        except ValidationError as exc:
            return self._fail("update location", str(exc))
        return self._mutate(
            "update location", lambda campaign: _replace(campaign, "locations", location)
        )

    def upsert_location(self, data: dict[str, Any]) -> tuple[Transaction, bool]:
        existing = self.find_location(data.get("id"), data.get("name"))
        if existing is None:
            return self.add_location(data), True
        return self.update_location(existing.id, data), False

    def set_current_location(self, location_id: str | None) -> Transaction:
        if location_id is not None and self.find_location(location_id) is None:
            raise StoreError(f"Unknown location: {location_id}")
        return self._mutate(
            "set current location",
            lambda campaign: campaign.model_copy(update={"current_location": location_id}),
        )

    def add_quest(self, data: Quest | dict[str, Any]) -> Transaction:
        try:
            quest = data if isinstance(data, Quest) else Quest.model_validate(_quest_defaults(data))
        except ValidationError as exc:
            return self._fail("add quest", str(exc))
        quest = settle_quest(quest)
        return self._mutate(
            "add quest",
            lambda campaign: campaign.model_copy(update={"quests": [*campaign.quests, quest]}),
        )

    def update_quest(self, quest_id: str, changes: dict[str, Any]) -> Transaction:
        existing = self.find_quest(quest_id)
        if existing is None:
            raise StoreError(f"Unknown quest: {quest_id}")
        try:
            quest = self._merge_quest(existing, changes)
        except (QuestError, ValidationError) as exc:
            return self._fail("update quest", str(exc))
        return self._mutate("update quest", lambda campaign: _replace(campaign, "quests", quest))

    def upsert_quest(self, data: dict[str, Any]) -> tuple[Transaction, bool]:
        quest_id = data.get("id")
        if quest_id and self.find_quest(quest_id) is not None:
            return self.update_quest(quest_id, data), False
        return self.add_quest(data), True

    def activate_quest(self, quest_id: str) -> Transaction:
        return self.update_quest(quest_id, {"status": "active"})

    def complete_quest(self, quest_id: str) -> Transaction:
        return self.update_quest(quest_id, {"status": "completed"})

    def complete_quest_objective(self, quest_id: str, objective: int | str) -> Transaction:
        quest = self.find_quest(quest_id)
        if quest is None:
            raise StoreError(f"Unknown quest: {quest_id}")
        objectives = [entry.model_copy() for entry in quest.objectives]
        index = _objective_index(objectives, objective)
        if index is None:
            return self._fail("complete objective", f"Unknown objective: {objective}")
        objectives[index] = objectives[index].model_copy(update={"completed": True})

        status = quest.status
        if all(entry.completed for entry in objectives):
            status = "completed"
        elif status == "inactive":
            status = "active"
        updated = quest.model_copy(update={"objectives": objectives, "status": status})
        return self._mutate(
            "complete objective", lambda campaign: _replace(campaign, "quests", updated)
        )

    def _new_npc(self, data: NPC | dict[str, Any]) -> NPC:
        payload = data.dump() if isinstance(data, NPC) else dict(data)
        payload.setdefault("id", f"npc-{uuid.uuid4().hex[:12]}")
        classification = payload.pop("classification", None)
        payload = promote_npc(payload, classification)
        return NPC.model_validate(payload)

    def _merge_npc(self, existing: NPC, changes: dict[str, Any]) -> NPC:
        changes = {key: value for key, value in changes.items() if key != "id"}
        classification = changes.pop("classification", None)
        merged = merge_model(existing, changes)
        if classification is not None:
            merged = NPC.model_validate(promote_npc(merged.dump(), classification))
        return merged

    def _new_location(self, data: Location | dict[str, Any]) -> Location:
        payload = data.dump() if isinstance(data, Location) else dict(data)
        payload.setdefault("id", f"location-{uuid.uuid4().hex[:12]}")
        map_update = payload.pop("mapData", None) or payload.pop("map_data", None)
        location = Location.model_validate(payload)
        if map_update:
            location = location.model_copy(
                update={"map_data": merge_map_data(None, map_update, timestamp=self.clock())}
            )
        return location

    def _merge_location(self, existing: Location, changes: dict[str, Any]) -> Location:
        changes = dict(changes)
        changes.pop("id", None)
        map_update = changes.pop("mapData", None) or changes.pop("map_data", None)
        merged = merge_model(existing, changes)
        if map_update:
            map_data = merge_map_data(existing.map_data, map_update, timestamp=self.clock())
            merged = merged.model_copy(update={"map_data": map_data})
        return merged

    def _merge_quest(self, existing: Quest, changes: dict[str, Any]) -> Quest:
        changes = field_names(Quest, _quest_changes(changes))
        changes.pop("id", None)
        incoming_objectives = changes.pop("objectives", None)
        requested_status = changes.pop("status", None)

        merged = merge_model(existing, changes)
        if incoming_objectives:
            merged = merged.model_copy(
                update={"objectives": merge_objectives(merged.objectives, incoming_objectives)}
            )
        if requested_status is not None:
            if requested_status == "completed":
                status = "completed"
            else:
                status = advance_quest_status(existing.status, requested_status)
            merged = merged.model_copy(update={"status": status})
        return settle_quest(merged)

    def _mutate(self, label: str, change: Callable[[Campaign], Campaign]) -> Transaction:
        previous = self.require()
        updated = change(previous).model_copy(update={"updated_at": self.clock()})

        def apply() -> None:
            self._store(updated)

        def rollback() -> None:
            self._store(previous)

        commit = None
        if self.api is not None:

            def commit() -> dict:
                return self.api.update_campaign(updated.id, updated.dump())

        transaction = Transaction(label, apply, rollback, commit)
        self.error = None
        transaction.execute()
        if transaction.failed:
            self.error = f"Failed to {label}: {transaction.error}"
        elif self.cache is not None and commit is not None:
            self.cache.mark_synced("campaign", updated.id)
        return transaction

    def _fail(self, label: str, message: str) -> Transaction:
        self.error = f"Failed to {label}: {message}"
        return Transaction.rejected(label, message)

    def _store(self, campaign: Campaign) -> None:
        self.campaign = campaign
        if self.cache is not None:
            self.cache.set("campaign", campaign.id, campaign.dump())


def _replace(campaign: Campaign, collection: str, item: Any) -> Campaign:
    items = [item if entry.id == item.id else entry for entry in getattr(campaign, collection)]
    return campaign.model_copy(update={collection: items})


def _objective_index(objectives: list[QuestObjective], objective: int | str) -> int | None:
    if isinstance(objective, int):
        return objective if 0 <= objective < len(objectives) else None
    for index, entry in enumerate(objectives):
        if entry.id == objective:
            return index
    return None


def _quest_changes(data: dict[str, Any]) -> dict[str, Any]:
    payload = dict(data)
    if payload.pop("completed", None) is True:
        payload["status"] = "completed"
    if "rewards" in payload and "reward" not in payload:
        rewards = payload.pop("rewards")
        if isinstance(rewards, dict):
            payload["reward"] = rewards
        elif isinstance(rewards, list):
            payload["reward"] = {"items": [str(item) for item in rewards]}
    return payload


def _quest_defaults(data: dict[str, Any]) -> dict[str, Any]:
    payload = _quest_changes(data)
    payload.setdefault("id", f"quest-{uuid.uuid4().hex[:12]}")
    if not payload.get("title"):
        payload["title"] = payload.get("name") or payload.get("description") or "Untitled quest"
    return payload
