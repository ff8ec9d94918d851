from datetime import datetime
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query
from groupchat.websocket.manager import manager
from groupchat.core import errors
from groupchat.core.security import verify_token
from groupchat.db.database import SessionLocal
from groupchat.models.user import User
from groupchat.services import group_service
from jose import JWTError
import json
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


def set_user_status(db, user_id: int, status: str):
    user = db.get(User, user_id)
    if user:
        user.status = status
        user.last_seen = datetime.now() if status == "offline" else None
        db.commit()
        logger.info(f"User {user_id} is now {status}")


async def relay_group_typing(db, user_id: int, message: dict):
    """Forward a typing indicator to the other members of the group"""
    group_id = message.get("group_id")
    try:
        group_id = group_service.parse_id(group_id, "group_id")
    except errors.ValidationError:
        logger.warning(f"Typing event with invalid group_id from user {user_id}: {group_id!r}")
        return

    member_ids = group_service.get_member_ids(db, group_id)
    # end the read so the next event sees membership changes
    db.rollback()
    if user_id not in member_ids:
        return

    data = {
        "group_id": group_id,
        "user_id": user_id,
        "user_name": message.get("user_name"),
        "is_typing": bool(message.get("is_typing")),
    }
    for member_id in member_ids:
        if member_id != user_id:
            await manager.emit(member_id, "groupUserTyping", data)


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str = Query(...)
):
    """
    WebSocket channel of the current user

    Query:
        - token: JWT access token
    """
    user_id = None
    db = None

    try:
        payload = verify_token(token)
        user_id = payload.get("user_id")

        if not user_id:
            await websocket.close(code=1008, reason="Invalid token")
            return

        # the socket lives longer than a request, so it gets its own session
        db = SessionLocal()

        await manager.connect(user_id, websocket)
        set_user_status(db, user_id, "online")

        await websocket.send_text(json.dumps({
            "type": "connected",
            "data": {"user_id": user_id}
        }, ensure_ascii=False))

        while True:
            try:
                data = await websocket.receive_text()
            except WebSocketDisconnect:
                logger.info(f"User {user_id} closed the connection")
                break

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON from user {user_id}: {data}")
                continue
            if not isinstance(message, dict):
                continue

            msg_type = message.get("type")

            # heartbeat
            if msg_type == "ping":
                await websocket.send_text(json.dumps({
                    "type": "pong",
                    "data": {"timestamp": message.get("timestamp")}
                }))

            # typing indicator inside a group
            elif msg_type == "group_typing":
                await relay_group_typing(db, user_id, message)

    except JWTError:
        await websocket.close(code=1008, reason="Token verification failed")
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
    finally:
        if user_id:
            manager.disconnect(user_id, websocket)
            # a newer connection of the same user keeps it online
            if db and not manager.is_online(user_id):
                try:
                    set_user_status(db, user_id, "offline")
                except Exception as e:
                    logger.error(f"Failed to mark user {user_id} offline: {e}")
            logger.info(f"Released connection of user {user_id}")

        if db:
            db.close()
