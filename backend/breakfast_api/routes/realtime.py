import json
import logging
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool

from breakfast_api.core.database import SessionLocal
from breakfast_api.core.security import user_id_from_token
from breakfast_api.models.user import User
from breakfast_api.services.notifications import manager

router = APIRouter()
logger = logging.getLogger(__name__)


def _authenticate(token: Optional[str]) -> Optional[int]:
    user_id = user_id_from_token(token)
    if user_id is None:
        return None
    with SessionLocal() as db:
        user = db.query(User).filter(User.id == user_id, User.is_active == True).first()
        return user.id if user else None


@router.websocket("/ws")
async def subscribe(websocket: WebSocket, token: Optional[str] = Query(None)):
    """
    Join the room named after the caller's own account id and stay there
    until the client disconnects. Events are pushed as {"event", "data"}.
    """
    user_id = await run_in_threadpool(_authenticate, token)
    if user_id is None:
        logger.info("socket rejected: invalid token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    room = str(user_id)
    await websocket.accept()
    manager.connect(room, websocket)
    try:
        await websocket.send_json({"event": "connected", "data": {"room": room}})
        while True:
            text = await websocket.receive_text()
            try:
                message = json.loads(text)
            except ValueError:
                continue
            if isinstance(message, dict) and message.get("type") == "ping":
                await websocket.send_json({"event": "pong"})
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(room, websocket)
