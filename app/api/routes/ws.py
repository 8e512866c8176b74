import json
from typing import Any, Optional
from uuid import uuid4

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool
from loguru import logger

from app.core.auth import resolve_identity
from app.core.errors import ChatError, InternalError, InvalidInput, StoreUnavailable
from app.services.chat import ChatService

router = APIRouter()


def _token_from(websocket: WebSocket, token: Optional[str]) -> Optional[str]:
    if token:
        return token
    authorization = websocket.headers.get("authorization")
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1].strip()
    return None


def _decode(raw: str):
    try:
        return json.loads(raw)
    except ValueError:
        raise InvalidInput("frame is not valid JSON")


async def _next_frame(websocket: WebSocket) -> Any:
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE))
    text = message.get("text")
    if text is None:
        raise InvalidInput("binary frames are not supported")
    return _decode(text)


async def _send_error(websocket: WebSocket, error: ChatError) -> None:
    await websocket.send_json(
        {"event": "error", "data": {"code": error.code, "detail": str(error)}}
    )


@router.websocket("/ws/chat")
async def chat_socket(websocket: WebSocket, token: Optional[str] = Query(default=None)):
    chat: ChatService = websocket.app.state.chat

    # JWKS verification may hit the network
    identity = await run_in_threadpool(resolve_identity, _token_from(websocket, token))
    if identity is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    connection_id = uuid4().hex

    try:
        try:
            await chat.connect(connection_id, identity, websocket)
        except StoreUnavailable as e:
            # history is best-effort; the connection stays usable
            await _send_error(websocket, e)

        # frames of one connection are handled strictly in order
        while True:
            try:
                await chat.handle_event(connection_id, identity, await _next_frame(websocket))
            except InvalidInput as e:
                await _send_error(websocket, e)
            except StoreUnavailable as e:
                logger.error(f"Store unavailable for connection_id={connection_id}: {e}")
                await _send_error(websocket, e)
            except WebSocketDisconnect:
                raise
            except Exception:
                logger.exception(f"Frame handling failed for connection_id={connection_id}")
                await _send_error(websocket, InternalError("internal error"))
    except WebSocketDisconnect:
        logger.debug(f"Socket closed connection_id={connection_id}")
    finally:
        chat.disconnect(connection_id)
