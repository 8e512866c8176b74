from sqlalchemy import Column, String, Float, DateTime, Index

from app.core.db import Base


class ChatUser(Base):
    __tablename__ = "chat_users"

    user_id = Column(String, primary_key=True, index=True)
    display_name = Column(String, nullable=False)

    # null until the first location update; such users never match a proximity query
    lat = Column(Float, nullable=True)
    lng = Column(Float, nullable=True)

    location_updated_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_chat_users_location", "lat", "lng"),
    )
