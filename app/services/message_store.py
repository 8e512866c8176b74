from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, List

from sqlalchemy import delete, select

from app.core.db import SessionFactory, SessionLocal, session_scope
from app.models.message import ChatMessage
from app.schemas.chat import MessageOut


class MessageStore:
    def __init__(self, session_factory: SessionFactory = SessionLocal):
        self._session_factory = session_factory

    def create(self, sender_id: str, display_name: str, text: str) -> MessageOut:
        msg = ChatMessage(
            sender_id=sender_id,
            display_name=display_name,
            text=text,
            # timestamp is fixed here, not when the message reaches a socket
            created_at=datetime.now(timezone.utc),
        )
        with session_scope(self._session_factory, "create_message") as db:
            db.add(msg)
            db.commit()
            db.refresh(msg)
            return MessageOut.model_validate(msg)

    def delete_all(self) -> int:
        with session_scope(self._session_factory, "delete_messages") as db:
            result = db.execute(delete(ChatMessage))
            db.commit()
            return int(result.rowcount or 0)

    def find_by_sender_in(self, user_ids: Iterable[str]) -> List[MessageOut]:
        ids = list(user_ids)
        if not ids:
            return []

        with session_scope(self._session_factory, "find_messages") as db:
            rows = (
                db.execute(
                    select(ChatMessage)
                    .where(ChatMessage.sender_id.in_(ids))
                    .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
                )
                .scalars()
                .all()
            )
            return [MessageOut.model_validate(r) for r in rows]
