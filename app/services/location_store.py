from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from loguru import logger
from sqlalchemy import select

from app.core.db import SessionFactory, SessionLocal, session_scope
from app.models.user import ChatUser
from app.schemas.chat import Coordinates, NearbyUser
from app.services.geo import bounding_box, haversine_m


class LocationStore:
    """
    Last known coordinates per user, backed by the chat_users table.

    near() narrows candidates with an indexed lat/lng box in SQL, then keeps
    exactly those within the great-circle radius (boundary inclusive).
    """

    def __init__(self, session_factory: SessionFactory = SessionLocal):
        self._session_factory = session_factory

    def upsert_location(
        self,
        user_id: str,
        coords: Coordinates,
        display_name: Optional[str] = None,
    ) -> None:
        with session_scope(self._session_factory, "upsert_location") as db:
            user = db.get(ChatUser, user_id)
            if user is None:
                user = ChatUser(user_id=user_id, display_name=display_name or user_id)
                db.add(user)
            elif display_name:
                user.display_name = display_name

            user.lat = coords.lat
            user.lng = coords.lng
            user.location_updated_at = datetime.now(timezone.utc)
            db.commit()

        logger.debug(f"Location stored for user_id={user_id} lat={coords.lat} lng={coords.lng}")

    def get_location(self, user_id: str) -> Optional[Coordinates]:
        with session_scope(self._session_factory, "get_location") as db:
            user = db.get(ChatUser, user_id)
            if user is None or user.lat is None or user.lng is None:
                return None
            return Coordinates(lat=user.lat, lng=user.lng)

    def near(self, point: Coordinates, radius_meters: float) -> List[NearbyUser]:
        min_lat, max_lat, min_lng, max_lng = bounding_box(point.lat, point.lng, radius_meters)

        q = select(ChatUser).where(
            ChatUser.lat.is_not(None),
            ChatUser.lng.is_not(None),
            ChatUser.lat >= min_lat,
            ChatUser.lat <= max_lat,
        )
        if min_lng is not None and max_lng is not None:
            q = q.where(ChatUser.lng >= min_lng, ChatUser.lng <= max_lng)

        with session_scope(self._session_factory, "near") as db:
            rows = db.execute(q).scalars().all()

            in_radius: list[NearbyUser] = []
            for r in rows:
                distance = haversine_m(point.lat, point.lng, r.lat, r.lng)
                if distance <= radius_meters:
                    in_radius.append(
                        NearbyUser(
                            user_id=r.user_id,
                            display_name=r.display_name,
                            lat=r.lat,
                            lng=r.lng,
                            distance_meters=round(distance, 1),
                        )
                    )

        in_radius.sort(key=lambda u: u.distance_meters)
        return in_radius
