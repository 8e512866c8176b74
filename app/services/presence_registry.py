from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Set

from loguru import logger

from app.core.errors import Unauthorized
from app.schemas.chat import Coordinates


@dataclass(frozen=True)
class PresenceEntry:
    connection_id: str
    user_id: str
    display_name: str
    coords: Optional[Coordinates] = None
    # anything with an async send_json(dict), usually a WebSocket
    channel: Any = None


class PresenceRegistry:
    """
    Live connections and their last known coordinates.

    Entries are immutable and swapped whole under one lock, so a lookup never
    observes a half-written entry. No I/O happens while the lock is held.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, PresenceEntry] = {}
        self._by_user: Dict[str, Set[str]] = {}

    def register(
        self,
        connection_id: str,
        user_id: Optional[str],
        display_name: Optional[str],
        channel: Any = None,
    ) -> PresenceEntry:
        if not user_id:
            raise Unauthorized("connection has no resolved identity")

        entry = PresenceEntry(
            connection_id=connection_id,
            user_id=user_id,
            display_name=display_name or user_id,
            channel=channel,
        )
        with self._lock:
            previous = self._entries.get(connection_id)
            if previous is not None and previous.user_id != user_id:
                self._discard_user_link(previous.user_id, connection_id)
            self._entries[connection_id] = entry
            self._by_user.setdefault(user_id, set()).add(connection_id)

        logger.info(f"Connection registered connection_id={connection_id} user_id={user_id}")
        return entry

    def update_coords(self, connection_id: str, coords: Coordinates) -> None:
        with self._lock:
            entry = self._entries.get(connection_id)
            if entry is None:
                return
            self._entries[connection_id] = replace(entry, coords=coords)

    def unregister(self, connection_id: str) -> None:
        with self._lock:
            entry = self._entries.pop(connection_id, None)
            if entry is None:
                return
            self._discard_user_link(entry.user_id, connection_id)

        logger.info(f"Connection removed connection_id={connection_id} user_id={entry.user_id}")

    def get(self, connection_id: str) -> Optional[PresenceEntry]:
        with self._lock:
            return self._entries.get(connection_id)

    def connections_for_user(self, user_id: str) -> Set[str]:
        with self._lock:
            return set(self._by_user.get(user_id, ()))

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _discard_user_link(self, user_id: str, connection_id: str) -> None:
        # caller holds the lock
        ids = self._by_user.get(user_id)
        if ids is None:
            return
        ids.discard(connection_id)
        if not ids:
            del self._by_user[user_id]
