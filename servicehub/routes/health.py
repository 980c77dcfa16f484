import uuid
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import Notification, User, utcnow
from ..auth.security import decode_token
from ..services.realtime import hub
from ..logging import structlog


router = APIRouter(tags=["health"])
ws_router = APIRouter(tags=["realtime"])


@router.get("/health")
def health():
    return {"status": "OK", "message": "ServiceHub API is running", "timestamp": utcnow().isoformat()}


@ws_router.websocket("/ws/notifications")
async def ws_notifications(websocket: WebSocket, token: Optional[str] = None, db: Session = Depends(get_db)):
    if not token:
        await websocket.close(code=4401)
        return
    try:
        payload = decode_token(token)
        user_id = str(uuid.UUID(str(payload.get("sub"))))
    except Exception:
        await websocket.close(code=4401)
        return
    user = db.query(User).filter(User.id == uuid.UUID(user_id)).first()
    if user is None or not user.is_active:
        await websocket.close(code=4401)
        return

    await websocket.accept()
    await hub.connect(user_id, websocket)
    unread = db.query(Notification).filter(
        Notification.recipient_id == user.id,
        Notification.is_read.is_(False),
    ).count()
    # Release the pooled connection; the socket may stay open for hours
    db.close()
    await hub.send_to_user(user_id, "unread_count", {"unreadCount": unread})

    try:
        while True:
            data = await websocket.receive_text()
            if data and data.strip().lower() in {"ping", "keepalive"}:
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        await hub.disconnect(user_id, websocket)
    except Exception as e:
        structlog.get_logger().warning("ws_notifications_error", user_id=user_id, error=str(e))
        await hub.disconnect(user_id, websocket)
