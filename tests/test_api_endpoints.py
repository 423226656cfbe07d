from datetime import datetime, timezone

from fastapi.testclient import TestClient

from app.main import app
from models import Campaign, Character, Debrief


class DummyQuery:
    def __init__(self, data):
        self.data = data

    def order_by(self, *args, **kwargs):
        return self

    def all(self):
        return self.data


class DummySession:
    def __init__(self, data):
        self.data = data

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def query(self, model):
        return DummyQuery(list(self.data.get(model, {}).values()))

    def get(self, model, key):
        return self.data.get(model, {}).get(key)

    def add(self, record):
        table = self.data.setdefault(type(record), {})
        if record.id is None:
            record.id = len(table) + 1
        table[record.id] = record

    def commit(self):
        return None

    def refresh(self, record):
        if getattr(record, "created_at", None) is None:
            record.created_at = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def delete(self, record):
        self.data[type(record)].pop(record.id, None)


def _patch_session(monkeypatch, data):
    def factory():
        return DummySession(data)

    monkeypatch.setattr("app.main.SessionLocal", factory)
    return data


def _character_record(**overrides) -> Character:
    data = {
        "id": "c1",
        "name": "Kira",
        "species": "Twi'lek",
        "class_name": "Operative",
        "level": 3,
        "version": 2,
        "data_json": {"id": "c1", "name": "Kira", "class": "Operative", "level": 3},
    }
    data.update(overrides)
    return Character(**data)


def _campaign_record() -> Campaign:
    return Campaign(
        id="camp-1",
        name="Outer Rim",
        description="",
        data_json={
            "id": "camp-1",
            "name": "Outer Rim",
            "locations": [{"id": "loc-1", "name": "Mos Eisley"}],
        },
    )


def test_missing_records_return_404(monkeypatch):
    _patch_session(monkeypatch, {})
    client = TestClient(app)

    assert client.get("/api/characters/nobody").status_code == 404
    assert client.get("/api/campaigns/nowhere").status_code == 404
    assert client.get("/api/debriefs/7").status_code == 404
    assert client.delete("/api/characters/nobody").status_code == 404


def test_list_characters(monkeypatch):
    _patch_session(monkeypatch, {Character: {"c1": _character_record()}})
    client = TestClient(app)

    response = client.get("/api/characters")

    assert response.status_code == 200
    assert response.json() == [
        {"id": "c1", "name": "Kira", "class": "Operative", "level": 3, "version": 2}
    ]


def test_create_character_validates_and_stores(monkeypatch):
    data = _patch_session(monkeypatch, {})
    client = TestClient(app)

    created = client.post("/api/characters", json={"id": "c2", "name": "Dax", "level": 2})
    duplicate = client.post("/api/characters", json={"id": "c2", "name": "Dax"})
    invalid = client.post("/api/characters", json={"id": "c3", "name": "Vex", "level": 40})

    assert created.status_code == 201
    assert created.json()["name"] == "Dax"
    assert data[Character]["c2"].level == 2
    assert duplicate.status_code == 409
    assert invalid.status_code == 400
    assert "level" in invalid.json()["detail"]["errors"]


def test_update_character_bumps_version(monkeypatch):
    data = _patch_session(monkeypatch, {Character: {"c1": _character_record()}})
    client = TestClient(app)

    response = client.put("/api/characters/c1", json={"currentHp": 7, "version": 1})

    assert response.status_code == 200
    assert response.json()["version"] == 3
    assert response.json()["currentHp"] == 7
    assert data[Character]["c1"].data_json["class"] == "Operative"


def test_delete_character(monkeypatch):
    data = _patch_session(monkeypatch, {Character: {"c1": _character_record()}})
    client = TestClient(app)

    response = client.delete("/api/characters/c1")

    assert response.status_code == 204
    assert data[Character] == {}


def test_campaign_locations(monkeypatch):
    _patch_session(monkeypatch, {Campaign: {"camp-1": _campaign_record()}})
    client = TestClient(app)

    response = client.get("/api/campaigns/camp-1/locations")

    assert response.status_code == 200
    assert response.json() == [{"id": "loc-1", "name": "Mos Eisley"}]


def test_debrief_create_and_record_response(monkeypatch):
    data = _patch_session(monkeypatch, {Campaign: {"camp-1": _campaign_record()}})
    client = TestClient(app)

    created = client.post(
        "/api/debriefs",
        json={"campaignId": "camp-1", "sessionId": "session-1", "content": {"prompt": "Go"}},
    )
    debrief_id = created.json()["id"]
    empty = client.put(f"/api/debriefs/{debrief_id}/response", json={"response": ""})
    recorded = client.put(
        f"/api/debriefs/{debrief_id}/response",
        json={"response": {"narrative": "Blasters fire."}},
    )

    assert created.status_code == 201
    assert created.json()["sessionId"] == "session-1"
    assert created.json()["response"] is None
    assert empty.status_code == 400
    assert recorded.status_code == 200
    assert recorded.json()["response"] == {"narrative": "Blasters fire."}
    assert data[Debrief][debrief_id].response_json == {"narrative": "Blasters fire."}


def test_debrief_requires_existing_campaign(monkeypatch):
    _patch_session(monkeypatch, {})
    client = TestClient(app)

    response = client.post(
        "/api/debriefs",
        json={"campaignId": "missing", "sessionId": "s", "content": {}},
    )

    assert response.status_code == 404
