from loguru import logger
from sqlalchemy.engine import Engine

from app.core.db import engine as default_engine, Base

# Import all models so SQLAlchemy registers them
from app.models.user import ChatUser
from app.models.message import ChatMessage

def init_db(bind: Engine | None = None):
    logger.info("Creating database tables")
    Base.metadata.create_all(bind=bind or default_engine)
    logger.info("Database tables created")
