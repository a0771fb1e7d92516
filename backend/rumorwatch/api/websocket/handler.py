import logging

import socketio
from socketio import exceptions as sio_exceptions
from fastapi import HTTPException

from rumorwatch.config import get_settings
from rumorwatch.api.middleware.auth import decode_token
from rumorwatch.db.postgres import async_session
from rumorwatch.models.admin import Permission
from rumorwatch.services import admin_service

logger = logging.getLogger(__name__)
_settings = get_settings()

# Redis manager so Celery workers can emit through the same bus
_redis_mgr = socketio.AsyncRedisManager(_settings.REDIS_URL)
sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*",
    client_manager=_redis_mgr,
)

ADMINS_ROOM = "admins"


def user_room(user_id: str) -> str:
    return f"user_{user_id}"


def _token_from(environ: dict, auth) -> str | None:
    if isinstance(auth, dict) and auth.get("token"):
        return auth["token"]
    header = (environ or {}).get("HTTP_AUTHORIZATION", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token:
        return token
    return None


@sio.event
async def connect(sid, environ, auth=None):
    """Accept only clients presenting a valid bearer token."""
    token = _token_from(environ, auth)
    if not token:
        raise sio_exceptions.ConnectionRefusedError("authentication required")
    try:
        identity = decode_token(token)
    except HTTPException as e:
        raise sio_exceptions.ConnectionRefusedError(e.detail)

    await sio.save_session(sid, {"user_id": identity.user_id, "email": identity.email, "name": identity.name})
    logger.info("Socket.IO client connected: %s (user %s)", sid, identity.user_id)


@sio.event
async def disconnect(sid):
    logger.info("Socket.IO client disconnected: %s", sid)


@sio.event
async def join_user(sid, data=None):
    """User joins their own room to receive notifications."""
    session = await sio.get_session(sid)
    user_id = session["user_id"]
    requested = (data or {}).get("user_id")
    if requested and requested != user_id:
        logger.warning("Client %s (user %s) refused room of user %s", sid, user_id, requested)
        await sio.emit("error", {"message": "Cannot join another user's room"}, to=sid)
        return
    await sio.enter_room(sid, user_room(user_id))
    await sio.emit("joined", {"room": user_room(user_id)}, to=sid)


@sio.event
async def leave_user(sid, data=None):
    session = await sio.get_session(sid)
    room = user_room(session["user_id"])
    await sio.leave_room(sid, room)
    await sio.emit("left", {"room": room}, to=sid)


@sio.event
async def join_admins(sid, data=None):
    """Join the admin room for report status changes; needs an active admin."""
    session = await sio.get_session(sid)
    async with async_session() as db:
        admin = await admin_service.resolve_admin(
            db, session["user_id"], email=session.get("email"), name=session.get("name"),
        )
        allowed = admin is not None and admin.can(Permission.VIEW_REPORTS)
        await db.commit()

    if not allowed:
        logger.warning("Client %s (user %s) refused admin room", sid, session["user_id"])
        await sio.emit("error", {"message": "Not authorized for admin updates"}, to=sid)
        return
    await sio.enter_room(sid, ADMINS_ROOM)
    await sio.emit("joined", {"room": ADMINS_ROOM}, to=sid)


async def notify_user(user_id: str, notification: dict):
    """Push a committed notification to one user's room."""
    await sio.emit("notification", notification, room=user_room(user_id))


async def broadcast_report_status(report_data: dict):
    """Push a report status change to admin dashboards."""
    await sio.emit("report_status", report_data, room=ADMINS_ROOM)
