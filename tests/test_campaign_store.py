import pytest

from remote.client import ApiError
from stores.campaign import CampaignStore, QuestError, advance_quest_status
from stores.map import MapStore
from stores.persistence import LocalCache, MemoryBackend


class FakeApi:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.updates: list[dict] = []

    def update_campaign(self, campaign_id: str, payload: dict) -> dict:
        if self.fail:
            raise ApiError("PUT /api/campaigns returned 503: down", status_code=503)
        self.updates.append(payload)
        return payload


def _campaign() -> dict:
    return {
        "id": "camp-1",
        "name": "Outer Rim",
        "npcs": [{"id": "npc-1", "name": "Greedo", "role": "Bounty Hunter"}],
        "locations": [
            {
                "id": "loc-1",
                "name": "Mos Eisley Cantina",
                "mapData": {
                    "terrain": "urban",
                    "features": [
                        {"id": "bar-1", "type": "bar", "position": {"x": 0, "y": 0, "z": 0}}
                    ],
                },
            }
        ],
        "quests": [
            {
                "id": "q1",
                "title": "Find the droid",
                "status": "inactive",
                "objectives": [
                    {"id": "o1", "description": "Search the cantina"},
                    {"id": "o2", "description": "Bribe the Jawas"},
                ],
            }
        ],
    }


def _store(api=None) -> CampaignStore:
    store = CampaignStore(api, clock=lambda: 42)
    store.set_campaign(_campaign())
    return store


def test_completing_one_objective_activates_quest() -> None:
    store = _store()

    transaction = store.complete_quest_objective("q1", "o1")

    quest = store.find_quest("q1")
    assert transaction.committed
    assert quest.status == "active"
    assert quest.objectives[0].completed is True
    assert quest.objectives[1].completed is False


def test_completing_last_objective_completes_quest() -> None:
    store = _store()
    store.complete_quest_objective("q1", 0)
    store.complete_quest_objective("q1", 1)

    assert store.find_quest("q1").status == "completed"
    assert store.complete_quest_objective("q1", 7).failed


def test_quest_updates_keep_existing_objectives() -> None:
    store = _store()

    store.update_quest(
        "q1",
        {
            "status": "active",
            "objectives": [{"id": "o2", "description": "Bribe the Jawas", "completed": True}],
        },
    )

    quest = store.find_quest("q1")
    assert [objective.id for objective in quest.objectives] == ["o1", "o2"]
    assert quest.objectives[1].completed is True
    assert quest.status == "active"


def test_quest_status_never_moves_backwards() -> None:
    store = _store()
    store.activate_quest("q1")

    transaction = store.update_quest("q1", {"status": "inactive"})

    assert transaction.failed
    assert store.find_quest("q1").status == "active"
    assert advance_quest_status("inactive", "completed") == "completed"
    with pytest.raises(QuestError):
        advance_quest_status("active", "abandoned")


def test_upsert_quest_creates_with_defaults() -> None:
    store = _store()

    transaction, created = store.upsert_quest(
        {"name": "Escape Tatooine", "rewards": ["hyperdrive"]}
    )

    assert created is True
    assert transaction.committed
    quest = store.require().quests[-1]
    assert quest.title == "Escape Tatooine"
    assert quest.reward.items == ["hyperdrive"]
    assert quest.id.startswith("quest-")


def test_upsert_npc_matches_by_name_and_promotes() -> None:
    store = _store()
    store.update_npc(
        "npc-1",
        {"classification": "keyMinor", "personality": {"traits": ["twitchy"]}},
    )

    transaction, created = store.upsert_npc({"name": "greedo", "classification": "key"})

    assert created is False
    assert transaction.committed
    npc = store.find_npc("npc-1")
    assert npc.classification == "key"
    assert npc.personality["traits"] == ["twitchy"]
    assert npc.abilities is not None


def test_add_npc_generates_id() -> None:
    store = _store()

    _, created = store.upsert_npc({"name": "Wuher", "role": "Bartender"})

    assert created is True
    wuher = store.find_npc(name="Wuher")
    assert wuher.id.startswith("npc-")
    assert store.remove_npc(wuher.id).committed
    assert store.find_npc(name="Wuher") is None


def test_location_upsert_merges_map_data() -> None:
    store = _store()
    maps = MapStore(store)

    _, created = store.upsert_location(
        {
            "name": "mos eisley cantina",
            "description": "Smoky and loud.",
            "mapData": {
                "lighting": "dim",
                "features": [{"type": "booth", "position": {"x": 4, "y": 0, "z": 1}}],
            },
        }
    )

    assert created is False
    location = store.find_location("loc-1")
    assert location.description == "Smoky and loud."
    assert location.map_data.terrain == "urban"
    assert location.map_data.lighting == "dim"
    assert [feature.type for feature in location.map_data.features] == ["bar", "booth"]
    assert location.map_data.last_updated == 42
    assert maps.map_data("loc-1") == location.map_data


def test_map_store_tracks_current_location() -> None:
    maps = MapStore(_store())

    assert maps.current_location() is None
    maps.set_current_location("loc-1")

    assert maps.current_location().name == "Mos Eisley Cantina"
    nearby = maps.find_nearby_features({"x": 1, "y": 0, "z": 0}, radius=5)
    assert [feature.id for feature in nearby] == ["bar-1"]


def test_failed_remote_update_rolls_back() -> None:
    store = _store(FakeApi(fail=True))
    before = store.snapshot()

    transaction = store.add_npc({"name": "Jabba"})

    assert transaction.status == "rolled_back"
    assert store.snapshot() == before
    assert store.error.startswith("Failed to add npc:")


def test_successful_remote_update_marks_cache_synced() -> None:
    cache = LocalCache(MemoryBackend(), clock=lambda: 1)
    api = FakeApi()
    store = CampaignStore(api, cache=cache, clock=lambda: 42)
    store.set_campaign(_campaign())

    store.update_campaign({"description": "A wretched hive.", "npcs": []})

    assert store.require().description == "A wretched hive."
    assert len(store.require().npcs) == 1
    assert api.updates[-1]["description"] == "A wretched hive."
    assert cache.pending() == []
    assert cache.get("campaign", "camp-1")["description"] == "A wretched hive."


def _explode(key, value):
    raise RuntimeError("listener exploded")


def test_failing_cache_listener_does_not_break_transactions() -> None:
    cache = LocalCache(MemoryBackend(), clock=lambda: 1)
    cache.subscribe(_explode)
    store = CampaignStore(FakeApi(), cache=cache, clock=lambda: 42)
    store.set_campaign(_campaign())

    committed = store.update_campaign({"description": "A wretched hive."})

    assert committed.status == "committed"
    assert store.require().description == "A wretched hive."

    store.api = FakeApi(fail=True)
    before = store.snapshot()
    rolled_back = store.add_npc({"name": "Jabba"})

    assert rolled_back.status == "rolled_back"
    assert store.snapshot() == before
    assert cache.get("campaign", "camp-1")["description"] == "A wretched hive."
