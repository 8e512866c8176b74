from sqlalchemy import Column, Integer, String, DateTime, Index

from app.core.db import Base


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    sender_id = Column(String, nullable=False, index=True)
    display_name = Column(String, nullable=False)
    text = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_chat_messages_created_at", "created_at"),
    )
