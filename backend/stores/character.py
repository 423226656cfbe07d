from __future__ import annotations

import logging
from typing import Any, Callable

from pydantic import ValidationError

from domain import ABILITY_NAMES, Character, EquipmentItem, merge_model, validation_messages
from remote.client import ApiClient
from rules.character import DerivedStats, derive_stats
from rules.maps import now_ms
from stores.persistence import (
    ConflictMode,
    ImportResult,
    LocalCache,
    export_characters,
    import_characters,
)
from stores.transaction import StoreError, Transaction

logger = logging.getLogger(__name__)


class CharacterStore:
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
        self.characters: dict[str, Character] = {}
        self.active_id: str | None = None
        self.error: str | None = None
        self.field_errors: dict[str, str] = {}
        self._derived: dict[str, DerivedStats] = {}

    @property
    def active(self) -> Character | None:
        if self.active_id is None:
            return None
        return self.characters.get(self.active_id)

    def get(self, character_id: str) -> Character:
        character = self.characters.get(character_id)
        if character is None:
            raise StoreError(f"Unknown character: {character_id}")
        return character

    def derived(self, character_id: str) -> DerivedStats:
        self.get(character_id)
        return self._derived[character_id]

    def set_active_character(self, character_id: str | None) -> None:
        if character_id is not None:
            self.get(character_id)
        self.active_id = character_id

    def create_character(self, data: Character | dict[str, Any]) -> Transaction:
        try:
            character = (
                data if isinstance(data, Character) else Character.model_validate(data)
            )
        except ValidationError as exc:
            return self._reject("create character", exc)
        if character.id in self.characters:
            return self._fail("create character", f"Character already exists: {character.id}")
        character = character.model_copy(
            update={"updated_at": self.clock(), "sync_status": "local"}
        )

        def apply() -> None:
            self._store(character)

        def rollback() -> None:
            self._discard(character.id)

        commit = None
        if self.api is not None:

            def commit() -> dict:
                result = self.api.create_character(character.dump())
                self._mark_synced(character.id)
                return result

        return self._run(Transaction("create character", apply, rollback, commit))

    def load_character(self, character_id: str) -> Character | None:
        local = self.characters.get(character_id)
        if self.api is None:
            return local
        try:
            fetched = Character.model_validate(self.api.get_character(character_id))
        except Exception as exc:
            self.error = f"Failed to load character: {exc}"
            logger.warning("Failed to load character %s: %s", character_id, exc)
            return local
        if local is not None and local.version >= fetched.version:
            return local
        self._store(fetched.model_copy(update={"sync_status": "synced"}))
        return self.characters[character_id]

    def update_character(self, character_id: str, changes: dict[str, Any]) -> Transaction:
        previous = self.get(character_id)
        changes = {key: value for key, value in changes.items() if key not in {"id", "version"}}
        try:
            updated = merge_model(previous, changes)
        except ValidationError as exc:
            return self._reject("update character", exc)
        updated = updated.model_copy(
            update={
                "version": previous.version + 1,
                "updated_at": self.clock(),
                "sync_status": "local",
            }
        )

        def apply() -> None:
            self._store(updated)

        def rollback() -> None:
            self._store(previous)

        commit = None
        if self.api is not None:

            def commit() -> dict:
                result = self.api.update_character(character_id, updated.dump())
                self._mark_synced(character_id)
                return result

        return self._run(Transaction("update character", apply, rollback, commit))

    def delete_character(self, character_id: str) -> Transaction:
        previous = self.get(character_id)
        was_active = self.active_id == character_id

        def apply() -> None:
            self._discard(character_id)
            if was_active:
                self.active_id = None

        def rollback() -> None:
            self._store(previous)
            if was_active:
                self.active_id = character_id

        commit = None
        if self.api is not None:

            def commit() -> None:
                self.api.delete_character(character_id)

        return self._run(Transaction("delete character", apply, rollback, commit))

    def apply_updates(self, changes: dict[str, Any]) -> Transaction:
        if self.active_id is None:
            raise StoreError("No active character to update.")
        return self.update_character(self.active_id, changes)

    def take_damage(self, character_id: str, amount: int) -> Transaction:
        character = self.get(character_id)
        amount = max(0, amount)
        absorbed = min(character.temporary_hp, amount)
        remaining = amount - absorbed
        return self.update_character(
            character_id,
            {
                "temporary_hp": character.temporary_hp - absorbed,
                "current_hp": max(0, character.current_hp - remaining),
            },
        )

    def heal(self, character_id: str, amount: int) -> Transaction:
        character = self.get(character_id)
        healed = min(character.max_hp, character.current_hp + max(0, amount))
        return self.update_character(character_id, {"current_hp": healed})

    def spend_force_points(self, character_id: str, amount: int) -> Transaction:
        character = self.get(character_id)
        if amount > character.current_force_points:
            return self._fail("spend force points", "Not enough force points.")
        return self.update_character(
            character_id,
            {"current_force_points": character.current_force_points - amount},
        )

    def update_ability_score(self, character_id: str, ability: str, score: int) -> Transaction:
        key = ability.strip().lower()
        if key not in ABILITY_NAMES:
            return self._fail("update ability score", f"Unknown ability: {ability}")
        return self.update_character(character_id, {"ability_scores": {key: score}})

    def add_equipment(
        self,
        character_id: str,
        item: EquipmentItem | dict[str, Any],
    ) -> Transaction:
        character = self.get(character_id)
        try:
            item = item if isinstance(item, EquipmentItem) else EquipmentItem.model_validate(item)
        except ValidationError as exc:
            return self._reject("add equipment", exc)
        equipment = [entry.model_dump() for entry in character.equipment]
        for entry in equipment:
            if entry["id"] == item.id:
                entry["quantity"] += item.quantity
                break
        else:
            equipment.append(item.model_dump())
        return self.update_character(character_id, {"equipment": equipment})

    def remove_equipment(
        self,
        character_id: str,
        item_id: str,
        quantity: int | None = None,
    ) -> Transaction:
        character = self.get(character_id)
        equipment = []
        found = False
        for entry in character.equipment:
            if entry.id != item_id:
                equipment.append(entry.model_dump())
                continue
            found = True
            if quantity is not None and quantity < entry.quantity:
                equipment.append({**entry.model_dump(), "quantity": entry.quantity - quantity})
        if not found:
            return self._fail("remove equipment", f"Unknown item: {item_id}")
        return self.update_character(character_id, {"equipment": equipment})

    def update_credits(self, character_id: str, delta: int) -> Transaction:
        character = self.get(character_id)
        if character.credits + delta < 0:
            return self._fail("update credits", "Not enough credits.")
        return self.update_character(character_id, {"credits": character.credits + delta})

    def export(self) -> str:
        return export_characters(list(self.characters.values()))

    def import_characters(
        self,
        text: str,
        *,
        replace_all: bool = False,
        on_conflict: ConflictMode = "keep",
    ) -> ImportResult:
        result = import_characters(
            text,
            self.characters,
            replace_all=replace_all,
            on_conflict=on_conflict,
            clock=self.clock,
        )
        if replace_all:
            for character_id in list(self.characters):
                self._discard(character_id)
            self.active_id = None
        for character in result.characters:
            self._store(character)
        return result

    def _run(self, transaction: Transaction) -> Transaction:
        self.error = None
        self.field_errors = {}
        transaction.execute()
        if transaction.failed:
            self.error = f"Failed to {transaction.label}: {transaction.error}"
        return transaction

    def _reject(self, label: str, exc: ValidationError) -> Transaction:
        self.field_errors = validation_messages(exc)
        self.error = f"Invalid character data for {label}."
        return Transaction.rejected(label, self.error)

    def _fail(self, label: str, message: str) -> Transaction:
        self.field_errors = {}
        self.error = message
        return Transaction.rejected(label, message)

    def _store(self, character: Character) -> None:
        self.characters[character.id] = character
        self._derived[character.id] = derive_stats(character)
        if self.cache is not None:
            self.cache.set("character", character.id, character.dump(), version=character.version)

    def _discard(self, character_id: str) -> None:
        self.characters.pop(character_id, None)
        self._derived.pop(character_id, None)
        if self.cache is not None:
            self.cache.remove("character", character_id)

    def _mark_synced(self, character_id: str) -> None:
        character = self.characters.get(character_id)
        if character is None:
            return
        self.characters[character_id] = character.model_copy(update={"sync_status": "synced"})
        if self.cache is not None:
            self.cache.mark_synced("character", character_id)
