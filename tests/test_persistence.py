import json

import pytest

from domain import Character
from stores.persistence import (
    JsonFileBackend,
    LocalCache,
    MemoryBackend,
    export_characters,
    has_conflict,
    import_characters,
    resolve_conflict,
)


def test_cache_records_sync_log_and_notifies() -> None:
    cache = LocalCache(MemoryBackend(), clock=lambda: 5)
    seen = []
    unsubscribe = cache.subscribe(lambda key, value: seen.append((key, value)))

    cache.set("character", "c1", {"id": "c1"}, version=2)
    cache.set("campaign", "k1", {"id": "k1"})
    unsubscribe()
    cache.remove("character", "c1")

    assert cache.get("character", "c1") is None
    assert cache.list_entities("campaign") == [{"id": "k1"}]
    assert seen == [("character:c1", {"id": "c1"}), ("campaign:k1", {"id": "k1"})]
    assert [operation.action for operation in cache.pending()] == ["set", "set", "remove"]
    assert cache.mark_synced("character", "c1") == 2
    assert [operation.key for operation in cache.pending()] == ["campaign:k1"]
    assert cache.export_sync_log()[0] == {
        "action": "set",
        "key": "character:c1",
        "version": 2,
        "timestamp": 5,
        "synced": True,
    }


def test_json_file_backend_persists_between_instances(tmp_path) -> None:
    path = tmp_path / "cache" / "holonet.json"
    LocalCache(JsonFileBackend(path)).set("character", "c1", {"id": "c1", "name": "Kira"})

    reloaded = LocalCache(JsonFileBackend(path))

    assert reloaded.get("character", "c1") == {"id": "c1", "name": "Kira"}
    assert json.loads(path.read_text(encoding="utf-8"))["character:c1"]["name"] == "Kira"


def test_conflict_detection_and_resolution() -> None:
    local = {"version": 3, "updatedAt": 10, "name": "local"}
    remote = {"version": 2, "updatedAt": 50, "name": "remote"}

    assert has_conflict(local, remote) is True
    assert has_conflict(local, None) is False
    assert resolve_conflict(local, remote)["name"] == "local"
    assert resolve_conflict(local, remote, "remote")["name"] == "remote"

    tied_remote = {**remote, "version": 3}
    assert has_conflict(local, tied_remote) is False
    assert resolve_conflict(local, tied_remote)["name"] == "remote"


def _existing() -> dict[str, Character]:
    return {"c1": Character(id="c1", name="Kira")}


def test_import_keep_skips_conflicts() -> None:
    text = export_characters(
        [Character(id="c1", name="Other Kira"), Character(id="c2", name="Dax")]
    )

    result = import_characters(text, _existing(), on_conflict="keep")

    assert result.skipped == 1
    assert [character.id for character in result.characters] == ["c2"]
    assert result.characters[0].sync_status == "local"


def test_import_replace_and_rename() -> None:
    text = json.dumps([{"id": "c1", "name": "Kira Prime"}, {"id": "c9", "name": ""}])

    replaced = import_characters(text, _existing(), on_conflict="replace")
    renamed = import_characters(text, _existing(), on_conflict="rename", clock=lambda: 77)

    assert replaced.characters[0].name == "Kira Prime"
    assert len(replaced.errors) == 1
    assert renamed.characters[0].id == "c1-77"
    assert renamed.characters[0].name == "Kira Prime (Imported)"
    assert renamed.renamed == 1


def test_import_replace_all_ignores_existing_ids() -> None:
    text = json.dumps({"characters": [{"id": "c1", "name": "Fresh"}]})

    result = import_characters(text, _existing(), replace_all=True)

    assert result.imported == 1
    assert result.skipped == 0


def test_import_rejects_bad_json() -> None:
    with pytest.raises(ValueError, match="Invalid character export"):
        import_characters("{not json", {})
    with pytest.raises(ValueError, match="missing characters list"):
        import_characters(json.dumps({"heroes": []}), {})


def test_failing_listener_does_not_block_other_listeners(caplog) -> None:
    cache = LocalCache(MemoryBackend())
    seen = []

    def explode(key, value):
        raise RuntimeError("listener exploded")

    cache.subscribe(explode)
    cache.subscribe(lambda key, value: seen.append(key))

    operation = cache.set("character", "c1", {"id": "c1"})

    assert operation.action == "set"
    assert cache.get("character", "c1") == {"id": "c1"}
    assert seen == ["character:c1"]
    assert "Cache listener failed for character:c1" in caplog.text


def test_prune_synced_and_clear() -> None:
    cache = LocalCache(MemoryBackend(), clock=lambda: 1)
    cache.set("character", "c1", {"id": "c1"})
    cache.set("character", "c1", {"id": "c1", "name": "Kira"})
    cache.set("campaign", "k1", {"id": "k1"})
    cache.mark_synced("character", "c1")

    assert cache.prune_synced() == 2
    assert [operation.key for operation in cache.sync_log] == ["campaign:k1"]
    assert cache.prune_synced() == 0

    cache.clear()

    assert cache.sync_log == []
    assert cache.get("campaign", "k1") is None
    assert cache.list_entities("character") == []
