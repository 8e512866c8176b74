from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger
from dotenv import load_dotenv
load_dotenv()

from app.core.logging import setup_logging
from app.core.init_db import init_db
from app.api.router import api_router, ws_router
from app.services.chat import build_chat_service

setup_logging()
logger.info("Starting Nearby Chat backend")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Init DB before the scheduler's first purge
    init_db()

    chat = build_chat_service()
    app.state.chat = chat
    await chat.scheduler.start()
    try:
        yield
    finally:
        await chat.scheduler.stop()


app = FastAPI(
    title="Nearby Chat Backend",
    version="0.1.0",
    lifespan=lifespan,
)

# HTTP request layer under /v1
app.include_router(api_router)
# Socket transport
app.include_router(ws_router)

@app.get("/health")
def health():
    logger.debug("Health check hit")
    return {"status": "ok"}
