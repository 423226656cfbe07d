from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Union

from pydantic import ValidationError

from gm_os.debrief import DebriefCompiler
from gm_os.events import RESPONSE_RECONCILED, EventBus
from llm.parsing import (
    DataRequest,
    ResponseParseError,
    extract_json,
    find_data_requests,
    parse_whole_text,
    split_response,
)
from llm.schemas import SystemData, location_payload
from rules.maps import MapMarker, extract_map_markers
from rules.npcs import lookup_reference
from stores.campaign import CampaignStore
from stores.character import CharacterStore
from stores.transaction import Transaction

logger = logging.getLogger(__name__)

PARSE_FAILURE_REASON = "Failed to parse response"
COLLECTIONS = ("locations", "character", "quests", "npcs")


@dataclass
class UpdateCount:
    new: int = 0
    updated: int = 0


@dataclass(frozen=True)
class EntityFailure:
    collection: str
    key: str
    reason: str


@dataclass(frozen=True)
class Reconciled:
    narrative: str
    data: dict[str, Any] = field(default_factory=dict)
    updates: dict[str, UpdateCount] = field(default_factory=dict)
    data_requests: list[DataRequest] = field(default_factory=list)
    map_markers: list[MapMarker] = field(default_factory=list)
    references: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return True

    def summary(self) -> dict[str, dict[str, int]]:
        return {
            name: {"new": count.new, "updated": count.updated}
            for name, count in self.updates.items()
        }


@dataclass(frozen=True)
class PartialFailure(Reconciled):
    failures: list[EntityFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return False


@dataclass(frozen=True)
class ParseFailure:
    narrative: str
    detail: str
    reason: str = PARSE_FAILURE_REASON

    @property
    def ok(self) -> bool:
        return False


ReconcileOutcome = Union[Reconciled, PartialFailure, ParseFailure]


def _entity_key(entry: Any, index: int) -> str:
    if isinstance(entry, dict):
        for key in ("id", "name", "title"):
            if entry.get(key):
                return str(entry[key])
    return f"#{index}"


class ResponseReconciler:
    """Applies a pasted GM response to the character and campaign stores.

    Collections are processed in the order locations, character, objectives,
    npcs. A failing entry is recorded and skipped; its siblings still apply.
    Malformed system data is rejected before any store is touched.
    """

    def __init__(
        self,
        characters: CharacterStore,
        campaigns: CampaignStore,
        *,
        debriefs: DebriefCompiler | None = None,
        events: EventBus | None = None,
    ) -> None:
        self.characters = characters
        self.campaigns = campaigns
        self.debriefs = debriefs
        self.events = events

    def reconcile(self, text: str, *, debrief_id: str | None = None) -> ReconcileOutcome:
        split = split_response(text)
        narrative = split.narrative
        if split.system_text is None:
            data = parse_whole_text(narrative)
            if data is not None:
                narrative = ""
        else:
            try:
                data = extract_json(split.system_text)
            except ResponseParseError as exc:
                logger.warning("Rejected GM response: %s", exc)
                return ParseFailure(narrative=narrative, detail=exc.detail)

        system = SystemData()
        if data is not None:
            try:
                system = SystemData.model_validate(data)
            except ValidationError as exc:
                logger.warning("Rejected GM response data: %s", exc)
                return ParseFailure(narrative=narrative, detail=str(exc))

        updates = {name: UpdateCount() for name in COLLECTIONS}
        failures: list[EntityFailure] = []
        self._apply_each(
            "locations",
            system.locations,
            lambda entry: self.campaigns.upsert_location(location_payload(entry)),
            updates,
            failures,
        )
        if system.character:
            self._apply_character(system.character, updates, failures)
        self._apply_each(
            "quests", system.objectives, self.campaigns.upsert_quest, updates, failures
        )
        self._apply_each("npcs", system.npcs, self.campaigns.upsert_npc, updates, failures)

        data = data or {}
        if debrief_id and self.debriefs is not None:
            try:
                self.debriefs.record_response(debrief_id, {"narrative": narrative, "data": data})
            except Exception as exc:
                failures.append(EntityFailure("debrief", debrief_id, str(exc)))

        requests = find_data_requests(narrative)
        fields = {
            "narrative": narrative,
            "data": data,
            "updates": updates,
            "data_requests": requests,
            "map_markers": extract_map_markers(narrative),
            "references": _resolve_references(requests),
        }
        outcome: Reconciled
        if failures:
            outcome = PartialFailure(failures=failures, **fields)
            logger.warning(
                "Reconciled GM response with %d failure(s): %s",
                len(failures),
                "; ".join(f"{f.collection} {f.key}: {f.reason}" for f in failures),
            )
        else:
            outcome = Reconciled(**fields)
            logger.info("Reconciled GM response: %s", outcome.summary())
        if self.events is not None:
            self.events.emit(
                RESPONSE_RECONCILED,
                {"debriefId": debrief_id, "ok": outcome.ok, "summary": outcome.summary()},
            )
        return outcome

    def _apply_each(
        self,
        collection: str,
        entries: list[Any],
        upsert: Callable[[dict[str, Any]], tuple[Transaction, bool]],
        updates: dict[str, UpdateCount],
        failures: list[EntityFailure],
    ) -> None:
        for index, entry in enumerate(entries):
            key = _entity_key(entry, index)
            if not isinstance(entry, dict):
                failures.append(EntityFailure(collection, key, "Entry is not an object."))
                continue
            try:
                transaction, created = upsert(entry)
            except Exception as exc:
                logger.warning("Failed to apply %s %s: %s", collection, key, exc)
                failures.append(EntityFailure(collection, key, str(exc)))
                continue
            if transaction.failed:
                failures.append(EntityFailure(collection, key, transaction.error or "failed"))
            elif created:
                updates[collection].new += 1
            else:
                updates[collection].updated += 1

    def _apply_character(
        self,
        changes: dict[str, Any],
        updates: dict[str, UpdateCount],
        failures: list[EntityFailure],
    ) -> None:
        key = self.characters.active_id or "active"
        try:
            transaction = self.characters.apply_updates(changes)
        except Exception as exc:
            logger.warning("Failed to apply character update: %s", exc)
            failures.append(EntityFailure("character", key, str(exc)))
            return
        if transaction.failed:
            reason = transaction.error or "failed"
            if self.characters.field_errors:
                reason = "; ".join(
                    f"{name}: {message}" for name, message in self.characters.field_errors.items()
                )
            failures.append(EntityFailure("character", key, reason))
        else:
            updates["character"].updated += 1


def _resolve_references(requests: list[DataRequest]) -> dict[str, Any]:
    references = {}
    for request in requests:
        found = lookup_reference(request.category, request.item_id)
        if found is not None:
            key = request.category
            if request.item_id is not None:
                key = f"{key}.{request.item_id}"
            references[key] = found
    return references
