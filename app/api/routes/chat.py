from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request

from app.core.auth import Identity, get_current_identity
from app.core.errors import StoreUnavailable
from app.schemas.chat import (
    ChatStateResponse,
    LocationUpdateRequest,
    MessageOut,
    StatusResponse,
)
from app.services.chat import ChatService

router = APIRouter()


def get_chat(request: Request) -> ChatService:
    return request.app.state.chat


# ------------------------------------------------------------------
# LOCATION
# ------------------------------------------------------------------

@router.post("/location", response_model=StatusResponse)
async def update_location(
    payload: LocationUpdateRequest,
    identity: Identity = Depends(get_current_identity),
    chat: ChatService = Depends(get_chat),
):
    try:
        await chat.update_location(identity, payload)
    except StoreUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))

    return {"status": "ok"}


# ------------------------------------------------------------------
# OPEN / CLOSED STATE
# ------------------------------------------------------------------

@router.get("/state", response_model=ChatStateResponse)
def chat_state(chat: ChatService = Depends(get_chat)):
    return chat.get_chat_state()


# ------------------------------------------------------------------
# HISTORY
# ------------------------------------------------------------------

@router.get("/messages", response_model=List[MessageOut])
async def message_history(
    identity: Identity = Depends(get_current_identity),
    chat: ChatService = Depends(get_chat),
):
    try:
        return await chat.get_history(identity.user_id)
    except StoreUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
