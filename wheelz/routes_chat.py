# wheelz/routes_chat.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import message_store
from .addressing import conversation_key
from .auth import get_socket_user_id
from .database import get_db
from .errors import AuthorizationError, WheelzError
from .realtime import RealtimeHub, WebSocketConnection
from .schemas import ChatMessageIn, JoinIn, JoinOwnerIn, WsInbound

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


def get_hub(websocket: WebSocket) -> RealtimeHub:
    return websocket.app.state.hub


async def _send_error(conn: WebSocketConnection, kind: str, detail: str) -> None:
    try:
        await conn.send("error", {"error": kind, "detail": detail})
    except Exception:
        logger.debug("could not report %s to %r", kind, conn)


def _logged_in(user_id: Optional[int]) -> int:
    if user_id is None:
        raise AuthorizationError("not logged in", authenticated=False)
    return user_id


async def _handle(hub: RealtimeHub, conn: WebSocketConnection, frame: WsInbound, user_id: Optional[int]) -> None:
    if frame.event == "join":
        d = JoinIn(**frame.data)
        key = conversation_key(d.vehicleId, d.ownerId, d.userId)
        if _logged_in(user_id) not in (key.owner_id, key.user_id):
            raise AuthorizationError(f"user #{user_id} is not part of conversation {key.room}")
        room = hub.join(conn, key)
        await conn.send("joined", {"room": room})
    elif frame.event == "joinOwner":
        d = JoinOwnerIn(**frame.data)
        if _logged_in(user_id) != d.ownerId:
            raise AuthorizationError("only the owner can watch this inbox")
        room = hub.join_owner(conn, d.vehicleId, d.ownerId)
        await conn.send("joined", {"room": room})
    elif frame.event == "message":
        d = ChatMessageIn(**frame.data)
        sender_id = _logged_in(user_id)
        # the session decides who is speaking; senderId is only cross-checked
        if d.senderId is not None and d.senderId != sender_id:
            raise AuthorizationError(f"senderId {d.senderId} does not match the session user")
        key = conversation_key(d.vehicleId, d.ownerId, d.userId)
        await hub.send(key, sender_id, d.username, d.message)
    elif frame.event == "ping":
        await conn.send("pong", {})
    else:
        await _send_error(conn, "unknown_event", f"unknown event {frame.event!r}")


# ===================================================================
#                           SOCKET
# ===================================================================
@router.websocket("/ws")
async def chat_socket(websocket: WebSocket, user_id: Optional[int] = Depends(get_socket_user_id)):
    hub = get_hub(websocket)
    await websocket.accept()
    conn = WebSocketConnection(websocket)
    hub.connect(conn)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = WsInbound.model_validate_json(raw)
                await _handle(hub, conn, frame, user_id)
            except PydanticValidationError as e:
                await _send_error(conn, "validation_error", str(e.errors()[0].get("msg", "invalid payload")))
            except WheelzError as e:
                # only the sender hears about its own failures
                await _send_error(conn, e.kind, e.message)
            except SQLAlchemyError:
                logger.exception("message persistence failed on %r", conn)
                await _send_error(conn, "persistence_failed", "message was not saved")
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(conn)


# ===================================================================
#                           HISTORY / INBOX
# ===================================================================
@router.get("/api/chat/{vehicle_id}/{owner_id}/{user_id}")
def chat_history(vehicle_id: int, owner_id: int, user_id: int, db: Session = Depends(get_db)):
    rows = message_store.list_by_conversation(db, vehicle_id, owner_id, user_id)
    return [
        {
            "id": m.id,
            "vehicleId": m.vehicle_id,
            "ownerId": m.owner_id,
            "userId": m.user_id,
            **m.to_event(),
        }
        for m in rows
    ]


@router.get("/api/ownerChats/{vehicle_id}/{owner_id}")
def owner_chats(vehicle_id: int, owner_id: int, db: Session = Depends(get_db)):
    pairs = message_store.list_distinct_counterparts(db, vehicle_id, owner_id)
    return {
        "userIds": [uid for uid, _ in pairs],
        "userNames": [name for _, name in pairs],
    }


@router.get("/api/userChats/{user_id}")
def user_chats(user_id: int, db: Session = Depends(get_db)):
    return [
        {"vehicleId": k.vehicle_id, "ownerId": k.owner_id, "userId": k.user_id}
        for k in message_store.list_conversations_for_user(db, user_id)
    ]
