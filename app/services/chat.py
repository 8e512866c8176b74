from __future__ import annotations

from typing import Any, List, Optional
from zoneinfo import ZoneInfo

from fastapi.concurrency import run_in_threadpool
from loguru import logger
from pydantic import ValidationError

from app.core import chat_config
from app.core.auth import Identity
from app.core.errors import InvalidInput
from app.schemas.chat import ChatStateResponse, Coordinates, MessageOut, NearbyEntry
from app.services.fanout import FanoutRouter
from app.services.location_store import LocationStore
from app.services.message_store import MessageStore
from app.services.presence_registry import PresenceRegistry
from app.services.proximity import ProximityResolver
from app.services.retention import RetentionScheduler


class ChatService:
    """Wires presence, proximity, fan-out and retention for the transport and request layers."""

    def __init__(
        self,
        registry: PresenceRegistry,
        resolver: ProximityResolver,
        router: FanoutRouter,
        messages: MessageStore,
        scheduler: RetentionScheduler,
        history_radius_meters: float = chat_config.HISTORY_RADIUS_METERS,
    ):
        self.registry = registry
        self.resolver = resolver
        self.router = router
        self.messages = messages
        self.scheduler = scheduler
        self.history_radius_meters = history_radius_meters

    # ---------- CONNECTION LIFECYCLE ----------

    async def connect(self, connection_id: str, identity: Optional[Identity], channel: Any) -> None:
        """Register the connection and send it pastMessages."""
        self.registry.register(
            connection_id,
            identity.user_id if identity else None,
            identity.display_name if identity else None,
            channel=channel,
        )
        history = await self.get_history(identity.user_id)
        await channel.send_json(
            {"event": "pastMessages", "data": [m.to_wire() for m in history]}
        )

    def disconnect(self, connection_id: str) -> None:
        self.registry.unregister(connection_id)

    async def handle_event(self, connection_id: str, identity: Identity, frame: Any) -> None:
        if not isinstance(frame, dict):
            raise InvalidInput("frame must be a JSON object")

        event = frame.get("event")
        data = frame.get("data")

        if event == "locationUpdate":
            await self.on_location_update(connection_id, identity, data)
        elif event == "message":
            text = data.get("text") if isinstance(data, dict) else data
            if not isinstance(text, str):
                raise InvalidInput("message text must be a string")
            await self.router.route(
                identity.user_id, identity.display_name, text, connection_id=connection_id
            )
        else:
            raise InvalidInput(f"unknown event: {event!r}")

    async def on_location_update(self, connection_id: str, identity: Identity, data: Any) -> None:
        coords = parse_coords(data)

        # the write must land before the neighborhood query that depends on it
        await self.resolver.persist_location(identity.user_id, coords, identity.display_name)
        self.registry.update_coords(connection_id, coords)

        nearby = await self.resolver.find_nearby(coords)
        entry = self.registry.get(connection_id)
        if entry is None or entry.channel is None:
            # disconnected while the query was in flight
            return

        await entry.channel.send_json(
            {
                "event": "nearbyUpdate",
                "data": [
                    NearbyEntry(id=u.user_id, display_name=u.display_name).to_wire()
                    for u in nearby
                ],
            }
        )

    # ---------- REQUEST LAYER ----------

    async def update_location(self, identity: Identity, coords: Coordinates) -> None:
        await self.resolver.persist_location(identity.user_id, coords, identity.display_name)

    def get_chat_state(self) -> ChatStateResponse:
        return self.scheduler.state()

    async def get_history(self, user_id: str) -> List[MessageOut]:
        # Not gated by the open/closed state: history stays readable until the next purge.
        origin = await self.resolver.location_of(user_id)
        if origin is None:
            return []

        nearby = await self.resolver.find_nearby(origin, self.history_radius_meters)
        return await run_in_threadpool(
            self.messages.find_by_sender_in, [u.user_id for u in nearby]
        )


def parse_coords(data: Any) -> Coordinates:
    if not isinstance(data, dict):
        raise InvalidInput("coordinates must be an object with lat and lng")
    try:
        return Coordinates.model_validate(data)
    except ValidationError as e:
        raise InvalidInput(f"malformed coordinates: {e.errors()[0]['msg']}")


def build_chat_service(
    location_store: Optional[LocationStore] = None,
    message_store: Optional[MessageStore] = None,
    **scheduler_kwargs: Any,
) -> ChatService:
    location_store = location_store or LocationStore()
    message_store = message_store or MessageStore()

    registry = PresenceRegistry()
    resolver = ProximityResolver(location_store, radius_meters=chat_config.CHAT_RADIUS_METERS)
    router = FanoutRouter(registry, resolver, message_store)

    scheduler_kwargs.setdefault("purge_interval", chat_config.PURGE_INTERVAL_SECONDS)
    if chat_config.CHAT_TIMEZONE:
        scheduler_kwargs.setdefault("tz", ZoneInfo(chat_config.CHAT_TIMEZONE))

    async def purge() -> int:
        return await run_in_threadpool(message_store.delete_all)

    scheduler = RetentionScheduler(chat_config.CHAT_OPEN_WINDOWS, purge, **scheduler_kwargs)

    logger.info(
        f"Chat service built: radius={resolver.radius_meters}m "
        f"history_radius={chat_config.HISTORY_RADIUS_METERS}m windows={scheduler.windows}"
    )
    return ChatService(registry, resolver, router, message_store, scheduler)
