import logging
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field, JsonValue, ValidationError
from pydantic.alias_generators import to_camel

import domain
from db import SessionLocal, check_db_connection
from models import Campaign, Character, Debrief

logger = logging.getLogger(__name__)

app = FastAPI(
    title="holonet-gm API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


@app.get("/health")
def health() -> dict:
    try:
        check_db_connection()
    except Exception as exc:
        raise HTTPException(status_code=503, detail="Database unavailable") from exc
    return {"status": "ok"}


class DebriefCreate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    campaign_id: str
    session_id: str
    content: dict[str, JsonValue]
    response: JsonValue = None


class DebriefResponseUpdate(BaseModel):
    response: JsonValue = Field(default=None)


def _invalid(label: str, exc: ValidationError) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={"message": f"Invalid {label} data", "errors": domain.validation_messages(exc)},
    )


def _character_payload(record: Character) -> dict:
    return {**record.data_json, "id": record.id, "version": record.version}


def _campaign_payload(record: Campaign) -> dict:
    return {**record.data_json, "id": record.id}


def _debrief_payload(record: Debrief) -> dict:
    return {
        "id": record.id,
        "campaignId": record.campaign_id,
        "sessionId": record.session_id,
        "content": record.content_json,
        "response": record.response_json,
        "createdAt": record.created_at.isoformat() if record.created_at else None,
    }


@app.get("/api/characters")
def list_characters() -> list[dict]:
    with SessionLocal() as db:
        records = db.query(Character).order_by(Character.name.asc()).all()
        return [_character_payload(record) for record in records]


@app.get("/api/characters/{character_id}")
def get_character(character_id: str) -> dict:
    with SessionLocal() as db:
        record = db.get(Character, character_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Character not found")
        return _character_payload(record)


@app.post("/api/characters", status_code=201)
def create_character(payload: dict[str, Any]) -> dict:
    try:
        character = domain.Character.model_validate(payload)
    except ValidationError as exc:
        raise _invalid("character", exc) from exc
    with SessionLocal() as db:
        if db.get(Character, character.id) is not None:
            raise HTTPException(status_code=409, detail="Character already exists")
        record = Character(
            id=character.id,
            name=character.name,
            species=character.species,
            class_name=character.class_name,
            level=character.level,
            version=character.version,
            data_json=character.dump(),
        )
        db.add(record)
        db.commit()
        db.refresh(record)
        return _character_payload(record)


@app.put("/api/characters/{character_id}")
def update_character(character_id: str, payload: dict[str, Any]) -> dict:
    with SessionLocal() as db:
        record = db.get(Character, character_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Character not found")
        merged = {**record.data_json, **payload, "id": character_id}
        try:
            character = domain.Character.model_validate(merged)
        except ValidationError as exc:
            raise _invalid("character", exc) from exc
        version = max(record.version + 1, character.version)
        character = character.model_copy(update={"version": version})

        record.name = character.name
        record.species = character.species
        record.class_name = character.class_name
        record.level = character.level
        record.version = version
        record.data_json = character.dump()
        db.commit()
        db.refresh(record)
        return _character_payload(record)


@app.delete("/api/characters/{character_id}", status_code=204)
def delete_character(character_id: str) -> None:
    with SessionLocal() as db:
        record = db.get(Character, character_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Character not found")
        db.delete(record)
        db.commit()


@app.get("/api/campaigns")
def list_campaigns() -> list[dict]:
    with SessionLocal() as db:
        records = db.query(Campaign).order_by(Campaign.name.asc()).all()
        return [_campaign_payload(record) for record in records]


@app.get("/api/campaigns/{campaign_id}")
def get_campaign(campaign_id: str) -> dict:
    with SessionLocal() as db:
        record = db.get(Campaign, campaign_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Campaign not found")
        return _campaign_payload(record)


@app.get("/api/campaigns/{campaign_id}/locations")
def list_campaign_locations(campaign_id: str) -> list[dict]:
    with SessionLocal() as db:
        record = db.get(Campaign, campaign_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Campaign not found")
        return list(record.data_json.get("locations", []))


@app.post("/api/campaigns", status_code=201)
def create_campaign(payload: dict[str, Any]) -> dict:
    try:
        campaign = domain.Campaign.model_validate(payload)
    except ValidationError as exc:
        raise _invalid("campaign", exc) from exc
    with SessionLocal() as db:
        if db.get(Campaign, campaign.id) is not None:
            raise HTTPException(status_code=409, detail="Campaign already exists")
        record = Campaign(
            id=campaign.id,
            name=campaign.name,
            description=campaign.description,
            character_id=campaign.character_id,
            data_json=campaign.dump(),
        )
        db.add(record)
        db.commit()
        db.refresh(record)
        return _campaign_payload(record)


@app.put("/api/campaigns/{campaign_id}")
def update_campaign(campaign_id: str, payload: dict[str, Any]) -> dict:
    with SessionLocal() as db:
        record = db.get(Campaign, campaign_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Campaign not found")
        try:
            campaign = domain.Campaign.model_validate(
                {**record.data_json, **payload, "id": campaign_id}
            )
        except ValidationError as exc:
            raise _invalid("campaign", exc) from exc
        record.name = campaign.name
        record.description = campaign.description
        record.character_id = campaign.character_id
        record.data_json = campaign.dump()
        db.commit()
        db.refresh(record)
        return _campaign_payload(record)


@app.delete("/api/campaigns/{campaign_id}", status_code=204)
def delete_campaign(campaign_id: str) -> None:
    with SessionLocal() as db:
        record = db.get(Campaign, campaign_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Campaign not found")
        db.delete(record)
        db.commit()


@app.post("/api/debriefs", status_code=201)
def create_debrief(payload: DebriefCreate) -> dict:
    with SessionLocal() as db:
        if db.get(Campaign, payload.campaign_id) is None:
            raise HTTPException(status_code=404, detail="Campaign not found")
        record = Debrief(
            campaign_id=payload.campaign_id,
            session_id=payload.session_id,
            content_json=payload.content,
            response_json=payload.response,
        )
        db.add(record)
        db.commit()
        db.refresh(record)
        logger.info("Stored debrief %s for campaign %s", record.id, record.campaign_id)
        return _debrief_payload(record)


@app.get("/api/debriefs/{debrief_id}")
def get_debrief(debrief_id: int) -> dict:
    with SessionLocal() as db:
        record = db.get(Debrief, debrief_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Debrief not found")
        return _debrief_payload(record)


@app.put("/api/debriefs/{debrief_id}/response")
def record_debrief_response(debrief_id: int, payload: DebriefResponseUpdate) -> dict:
    if not payload.response:
        raise HTTPException(status_code=400, detail="Response data is required")
    with SessionLocal() as db:
        record = db.get(Debrief, debrief_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Debrief not found")
        record.response_json = payload.response
        db.commit()
        db.refresh(record)
        return _debrief_payload(record)
