from __future__ import annotations

from typing import List, Optional

from fastapi.concurrency import run_in_threadpool

from app.core.chat_config import CHAT_RADIUS_METERS
from app.schemas.chat import Coordinates, NearbyUser
from app.services.location_store import LocationStore


class ProximityResolver:
    """
    Who is within range of a point, regardless of whether they are connected.

    The store is synchronous SQLAlchemy; calls are pushed to the threadpool so
    the event loop (and the retention scheduler) keep running meanwhile.
    """

    def __init__(self, store: LocationStore, radius_meters: float = CHAT_RADIUS_METERS):
        self.store = store
        self.radius_meters = radius_meters

    async def find_nearby(
        self,
        origin: Coordinates,
        radius_meters: Optional[float] = None,
    ) -> List[NearbyUser]:
        # The origin user is part of the result when inside the radius.
        radius = self.radius_meters if radius_meters is None else radius_meters
        return await run_in_threadpool(self.store.near, origin, radius)

    async def persist_location(
        self,
        user_id: str,
        coords: Coordinates,
        display_name: Optional[str] = None,
    ) -> None:
        await run_in_threadpool(self.store.upsert_location, user_id, coords, display_name)

    async def location_of(self, user_id: str) -> Optional[Coordinates]:
        return await run_in_threadpool(self.store.get_location, user_id)
