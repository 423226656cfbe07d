from __future__ import annotations

import math
import re
import string
import time
from dataclasses import dataclass
from typing import Any

from domain import MapData, MapEntityReference, MapFeature, Position

SCALAR_FIELDS = ("terrain", "atmosphere", "weather", "lighting", "cubemap_refs")
DEFAULT_NEARBY_RADIUS = 10.0

MAP_MARKER_PATTERN = re.compile(
    r"\[([A-Z_]+)(?::([^\]]+))?\]\(x:(-?\d+(?:\.\d+)?),y:(-?\d+(?:\.\d+)?),z:(-?\d+(?:\.\d+)?)\)"
)

_BASE36 = string.digits + string.ascii_lowercase


@dataclass(frozen=True)
class MapMarker:
    type: str
    name: str | None
    position: Position


def now_ms() -> int:
    return int(time.time() * 1000)


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return sign + "".join(reversed(digits))


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def position_key(feature: MapFeature) -> str:
    position = feature.position
    return "-".join(
        [
            feature.type,
            str(_round_half_up(position.x)),
            str(_round_half_up(position.y)),
            str(_round_half_up(position.z)),
        ]
    )


def generate_feature_id(feature: MapFeature, timestamp: int, taken: set[str]) -> str:
    position = feature.position
    base = (
        f"{feature.type}-{position.x:.2f}-{position.y:.2f}-{position.z:.2f}"
        f"-{to_base36(timestamp)}"
    )
    candidate = base
    suffix = 2
    while candidate in taken:
        candidate = f"{base}-{suffix}"
        suffix += 1
    taken.add(candidate)
    return candidate


def _coerce(data: MapData | dict | None) -> MapData | None:
    if data is None or isinstance(data, MapData):
        return data
    return MapData.model_validate(data)


def _merge_feature(existing: MapFeature, incoming: MapFeature) -> MapFeature:
    changes = incoming.model_dump(exclude_unset=True)
    changes.pop("id", None)
    return MapFeature.model_validate({**existing.model_dump(), **changes})


def _merge_entity(
    existing: MapEntityReference,
    incoming: MapEntityReference,
) -> MapEntityReference:
    changes = incoming.model_dump(exclude_unset=True)
    return MapEntityReference.model_validate({**existing.model_dump(), **changes})


def _assign_ids(data: MapData, timestamp: int) -> MapData:
    taken = {feature.id for feature in data.features if feature.id}
    features: list[MapFeature] = []
    by_id: dict[str, int] = {}
    for feature in data.features:
        if feature.id and feature.id in by_id:
            index = by_id[feature.id]
            features[index] = _merge_feature(features[index], feature)
            continue
        if not feature.id:
            feature = feature.model_copy(
                update={"id": generate_feature_id(feature, timestamp, taken)}
            )
        by_id[feature.id] = len(features)
        features.append(feature)

    entities: list[MapEntityReference] = []
    entity_index: dict[str, int] = {}
    for entity in data.entities:
        if entity.id in entity_index:
            index = entity_index[entity.id]
            entities[index] = _merge_entity(entities[index], entity)
        else:
            entity_index[entity.id] = len(entities)
            entities.append(entity)

    return data.model_copy(
        update={"features": features, "entities": entities, "last_updated": timestamp}
    )


def merge_map_data(
    existing: MapData | dict | None,
    incoming: MapData | dict,
    *,
    timestamp: int | None = None,
) -> MapData:
    """Merge a partial map update into existing map data.

    Features match by id, then by type plus rounded position; anything
    unmatched is appended with a generated id. Entities match by id only.
    Neither input is mutated.
    """
    timestamp = now_ms() if timestamp is None else timestamp
    existing_data = _coerce(existing)
    incoming_data = _coerce(incoming)

    if existing_data is None:
        return _assign_ids(incoming_data, timestamp)

    updates: dict[str, Any] = {}
    for name in SCALAR_FIELDS:
        value = getattr(incoming_data, name)
        if value is not None:
            updates[name] = value

    features = list(existing_data.features)
    taken = {feature.id for feature in features if feature.id}
    by_id: dict[str, int] = {}
    by_position: dict[str, int] = {}
    for index, feature in enumerate(features):
        if not feature.id:
            feature = feature.model_copy(
                update={"id": generate_feature_id(feature, timestamp, taken)}
            )
            features[index] = feature
        by_id[feature.id] = index
        by_position.setdefault(position_key(feature), index)

    for feature in incoming_data.features:
        index = by_id.get(feature.id) if feature.id else None
        if index is None:
            index = by_position.get(position_key(feature))

        if index is not None:
            merged = _merge_feature(features[index], feature)
            features[index] = merged
            by_position.setdefault(position_key(merged), index)
            continue

        if feature.id and feature.id not in taken:
            taken.add(feature.id)
            added = feature
        else:
            added = feature.model_copy(
                update={"id": generate_feature_id(feature, timestamp, taken)}
            )
        by_id[added.id] = len(features)
        by_position.setdefault(position_key(added), len(features))
        features.append(added)

    entities = list(existing_data.entities)
    entity_index = {entity.id: index for index, entity in enumerate(entities)}
    for entity in incoming_data.entities:
        if entity.id in entity_index:
            index = entity_index[entity.id]
            entities[index] = _merge_entity(entities[index], entity)
        else:
            entity_index[entity.id] = len(entities)
            entities.append(entity)

    updates.update(features=features, entities=entities, last_updated=timestamp)
    return existing_data.model_copy(update=updates)


def distance(a: Position, b: Position) -> float:
    return math.sqrt((a.x - b.x) ** 2 + (a.y - b.y) ** 2 + (a.z - b.z) ** 2)


def find_nearby_features(
    map_data: MapData | dict | None,
    position: Position | dict,
    radius: float = DEFAULT_NEARBY_RADIUS,
) -> list[MapFeature]:
    data = _coerce(map_data)
    if data is None:
        return []
    if not isinstance(position, Position):
        position = Position.model_validate(position)
    nearby = [
        (distance(feature.position, position), index, feature)
        for index, feature in enumerate(data.features)
    ]
    return [feature for dist, _, feature in sorted(nearby) if dist <= radius]


def extract_map_markers(text: str) -> list[MapMarker]:
    markers = []
    for match in MAP_MARKER_PATTERN.finditer(text or ""):
        marker_type, name, x, y, z = match.groups()
        markers.append(
            MapMarker(
                type=marker_type,
                name=name.strip() if name else None,
                position=Position(x=float(x), y=float(y), z=float(z)),
            )
        )
    return markers
