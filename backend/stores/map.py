from __future__ import annotations

from typing import Any

from domain import Location, MapData, MapFeature, Position
from rules.maps import DEFAULT_NEARBY_RADIUS, find_nearby_features
from stores.campaign import CampaignStore
from stores.transaction import StoreError, Transaction


class MapStore:
    def __init__(self, campaigns: CampaignStore) -> None:
        self.campaigns = campaigns

    @property
    def error(self) -> str | None:
        return self.campaigns.error

    def locations(self) -> list[Location]:
        if self.campaigns.campaign is None:
            return []
        return list(self.campaigns.campaign.locations)

    def current_location(self) -> Location | None:
        campaign = self.campaigns.campaign
        if campaign is None or campaign.current_location is None:
            return None
        return self.campaigns.find_location(campaign.current_location)

    def set_current_location(self, location_id: str | None) -> Transaction:
        return self.campaigns.set_current_location(location_id)

    def map_data(self, location_id: str) -> MapData | None:
        location = self.campaigns.find_location(location_id)
        if location is None:
            raise StoreError(f"Unknown location: {location_id}")
        return location.map_data

    def update_location_map_data(
        self,
        location_id: str,
        map_data: MapData | dict[str, Any],
    ) -> Transaction:
        if isinstance(map_data, MapData):
            map_data = map_data.model_dump(exclude_unset=True)
        return self.campaigns.update_location(location_id, {"map_data": map_data})

    def find_nearby_features(
        self,
        position: Position | dict[str, float],
        radius: float = DEFAULT_NEARBY_RADIUS,
        *,
        location_id: str | None = None,
    ) -> list[MapFeature]:
        if location_id is None:
            location = self.current_location()
        else:
            location = self.campaigns.find_location(location_id)
        if location is None:
            return []
        return find_nearby_features(location.map_data, position, radius)
