from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import List, Optional

from fastapi.concurrency import run_in_threadpool
from loguru import logger

from app.core.errors import InvalidInput
from app.schemas.chat import Coordinates, DeliveryEvent, MessageOut
from app.services.message_store import MessageStore
from app.services.presence_registry import PresenceEntry, PresenceRegistry
from app.services.proximity import ProximityResolver


@dataclass
class RouteOutcome:
    message: Optional[MessageOut]
    delivered: int = 0
    failed: int = 0


class FanoutRouter:
    """
    Delivers a message to every live connection of every user near the sender.

    The sender is reached through the same neighborhood query (distance 0),
    so there is no separate local echo. A user with several connections gets
    the message once on each of them.
    """

    def __init__(
        self,
        registry: PresenceRegistry,
        resolver: ProximityResolver,
        messages: MessageStore,
    ):
        self.registry = registry
        self.resolver = resolver
        self.messages = messages

    async def route(
        self,
        sender_user_id: str,
        sender_display_name: str,
        text: str,
        connection_id: Optional[str] = None,
    ) -> RouteOutcome:
        if not text or not text.strip():
            raise InvalidInput("message text is empty")

        coords = await self._sender_coords(sender_user_id, connection_id)
        if coords is None:
            logger.debug(f"Message from user_id={sender_user_id} dropped: no location yet")
            return RouteOutcome(message=None)

        neighborhood = await self.resolver.find_nearby(coords)
        if not neighborhood:
            # nobody could ever read it, so it is not stored either
            logger.debug(f"Message from user_id={sender_user_id} dropped: empty neighborhood")
            return RouteOutcome(message=None)

        message = await run_in_threadpool(
            self.messages.create, sender_user_id, sender_display_name, text
        )
        event = {
            "event": "message",
            "data": DeliveryEvent(
                display_name=message.display_name,
                text=message.text,
                timestamp=message.created_at,
            ).to_wire(),
        }

        targets: List[PresenceEntry] = []
        for user in neighborhood:
            for cid in self.registry.connections_for_user(user.user_id):
                entry = self.registry.get(cid)
                if entry is not None and entry.channel is not None:
                    targets.append(entry)

        results = await asyncio.gather(
            *(self._push(entry, event) for entry in targets)
        )
        delivered = sum(1 for ok in results if ok)
        outcome = RouteOutcome(
            message=message,
            delivered=delivered,
            failed=len(results) - delivered,
        )
        logger.info(
            f"Message id={message.id} from user_id={sender_user_id}: "
            f"{len(neighborhood)} nearby users, delivered={outcome.delivered} failed={outcome.failed}"
        )
        return outcome

    async def _sender_coords(
        self, user_id: str, connection_id: Optional[str]
    ) -> Optional[Coordinates]:
        if connection_id is not None:
            entry = self.registry.get(connection_id)
            if entry is not None and entry.coords is not None:
                return entry.coords

        for cid in self.registry.connections_for_user(user_id):
            entry = self.registry.get(cid)
            if entry is not None and entry.coords is not None:
                return entry.coords

        return await self.resolver.location_of(user_id)

    @staticmethod
    async def _push(entry: PresenceEntry, event: dict) -> bool:
        try:
            await entry.channel.send_json(event)
        except Exception as e:
            # closed or broken socket; the other targets still get theirs
            logger.warning(f"Delivery to connection_id={entry.connection_id} failed: {e!r}")
            return False
        return True
