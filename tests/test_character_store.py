import json

import pytest

from remote.client import ApiError
from stores.character import CharacterStore
from stores.persistence import LocalCache, MemoryBackend
from stores.transaction import StoreError


class FakeApi:
    def __init__(self, *, fail: bool = False, remote: dict | None = None) -> None:
        self.fail = fail
        self.remote = remote or {}
        self.calls: list[tuple[str, str]] = []

    def _maybe_fail(self) -> None:
        if self.fail:
            raise ApiError("PUT /api/characters returned 500: boom", status_code=500)

    def create_character(self, payload: dict) -> dict:
        self.calls.append(("create", payload["id"]))
        self._maybe_fail()
        return payload

    def update_character(self, character_id: str, payload: dict) -> dict:
        self.calls.append(("update", character_id))
        self._maybe_fail()
        return payload

    def delete_character(self, character_id: str) -> None:
        self.calls.append(("delete", character_id))
        self._maybe_fail()

    def get_character(self, character_id: str) -> dict:
        self._maybe_fail()
        return self.remote[character_id]


def _data(**overrides) -> dict:
    data = {
        "id": "char-1",
        "name": "Kira Voss",
        "species": "Twi'lek",
        "class": "Operative",
        "level": 3,
        "abilityScores": {"dexterity": 16, "wisdom": 12},
        "maxHp": 24,
        "currentHp": 24,
        "currentForcePoints": 4,
        "credits": 100,
    }
    data.update(overrides)
    return data


def _clock() -> int:
    return 1_700_000_000_000


def _store(api=None, cache=None) -> CharacterStore:
    store = CharacterStore(api, cache=cache, clock=_clock)
    store.create_character(_data())
    store.set_active_character("char-1")
    return store


def test_create_character_computes_derived_stats() -> None:
    store = _store()

    character = store.get("char-1")
    assert character.sync_status == "local"
    assert character.updated_at == _clock()
    assert store.derived("char-1").armor_class == 13


def test_create_rejects_invalid_data_with_field_errors() -> None:
    store = CharacterStore(clock=_clock)

    transaction = store.create_character({"id": "bad", "name": "", "level": 40})

    assert transaction.status == "rejected"
    assert "name" in store.field_errors
    assert "level" in store.field_errors
    assert "bad" not in store.characters


def test_update_bumps_version_and_marks_synced() -> None:
    cache = LocalCache(MemoryBackend(), clock=_clock)
    api = FakeApi()
    store = _store(api, cache)

    transaction = store.update_character("char-1", {"currentHp": 10, "version": 99})

    assert transaction.committed
    character = store.get("char-1")
    assert character.current_hp == 10
    assert character.version == 2
    assert character.sync_status == "synced"
    assert ("update", "char-1") in api.calls
    assert cache.pending() == []


def test_failed_update_rolls_back() -> None:
    cache = LocalCache(MemoryBackend(), clock=_clock)
    store = _store(FakeApi(), cache)
    before = store.get("char-1")
    store.api = FakeApi(fail=True)

    transaction = store.update_character("char-1", {"currentHp": 1})

    assert transaction.status == "rolled_back"
    assert store.get("char-1") == before
    assert store.error.startswith("Failed to update character:")
    assert cache.get("character", "char-1")["currentHp"] == 24


def test_failed_delete_restores_character() -> None:
    store = _store(FakeApi())
    store.api = FakeApi(fail=True)

    transaction = store.delete_character("char-1")

    assert transaction.failed
    assert store.active_id == "char-1"
    assert "char-1" in store.characters


def test_take_damage_spends_temporary_hp_first() -> None:
    store = _store()
    store.update_character("char-1", {"temporaryHp": 5})

    store.take_damage("char-1", 8)
    assert store.get("char-1").temporary_hp == 0
    assert store.get("char-1").current_hp == 21

    store.take_damage("char-1", 100)
    assert store.get("char-1").current_hp == 0

    store.heal("char-1", 500)
    assert store.get("char-1").current_hp == 24


def test_resource_actions_validate_amounts() -> None:
    store = _store()

    assert store.spend_force_points("char-1", 10).failed
    assert store.spend_force_points("char-1", 3).committed
    assert store.get("char-1").current_force_points == 1
    assert store.update_credits("char-1", -500).failed
    assert store.update_credits("char-1", -40).committed
    assert store.get("char-1").credits == 60


def test_update_ability_score_recomputes_derived() -> None:
    store = _store()

    store.update_ability_score("char-1", "Dexterity", 20)

    assert store.get("char-1").ability_scores.dexterity == 20
    assert store.get("char-1").ability_scores.wisdom == 12
    assert store.derived("char-1").initiative == 5
    assert store.update_ability_score("char-1", "luck", 12).failed


def test_equipment_stacks_and_removes() -> None:
    store = _store()

    store.add_equipment("char-1", {"id": "stim", "name": "Medpac", "quantity": 2})
    store.add_equipment("char-1", {"id": "stim", "name": "Medpac", "quantity": 1})
    assert store.get("char-1").equipment[0].quantity == 3

    store.remove_equipment("char-1", "stim", 2)
    assert store.get("char-1").equipment[0].quantity == 1

    store.remove_equipment("char-1", "stim")
    assert store.get("char-1").equipment == []
    assert store.remove_equipment("char-1", "stim").failed


def test_apply_updates_requires_active_character() -> None:
    store = CharacterStore(clock=_clock)
    with pytest.raises(StoreError):
        store.apply_updates({"currentHp": 3})


def test_load_character_keeps_newer_local_copy() -> None:
    remote = {"char-1": {**_data(), "version": 1, "currentHp": 5}}
    store = _store(FakeApi(remote=remote))
    store.update_character("char-1", {"currentHp": 20})

    loaded = store.load_character("char-1")

    assert loaded.current_hp == 20
    assert loaded.version == 2


def test_load_character_reports_fetch_errors() -> None:
    store = CharacterStore(FakeApi(fail=True), clock=_clock)

    assert store.load_character("missing") is None
    assert store.error.startswith("Failed to load character:")


def test_export_and_import_round_trip_with_rename() -> None:
    store = _store()
    exported = json.loads(store.export())
    assert exported["version"] == 1
    assert [entry["id"] for entry in exported["characters"]] == ["char-1"]

    result = store.import_characters(json.dumps(exported), on_conflict="rename")

    assert result.renamed == 1
    renamed_id = f"char-1-{_clock()}"
    assert store.get(renamed_id).name == "Kira Voss (Imported)"
    assert len(store.characters) == 2
