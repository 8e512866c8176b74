from fastapi import APIRouter

from app.api.routes import chat
from app.api.routes import ws

api_router = APIRouter(prefix="/v1")

api_router.include_router(chat.router, prefix="/chat", tags=["chat"])

# WebSocket transport lives outside the versioned prefix: /ws/chat
ws_router = ws.router
