from unittest.mock import AsyncMock

import pytest
from socketio import exceptions as sio_exceptions

from conftest import make_admin
from rumorwatch.api.middleware.auth import create_access_token
from rumorwatch.api.websocket import handler
from rumorwatch.models.admin import AdminRole


@pytest.fixture
def server(monkeypatch, session_factory):
    """Socket.IO server with in-memory sessions and recorded room/emit calls."""
    sessions = {}

    async def save_session(sid, session, namespace=None):
        sessions[sid] = dict(session)

    async def get_session(sid, namespace=None):
        return sessions[sid]

    monkeypatch.setattr(handler.sio, "save_session", save_session)
    monkeypatch.setattr(handler.sio, "get_session", get_session)
    monkeypatch.setattr(handler.sio, "enter_room", AsyncMock())
    monkeypatch.setattr(handler.sio, "leave_room", AsyncMock())
    monkeypatch.setattr(handler.sio, "emit", AsyncMock())
    monkeypatch.setattr(handler, "async_session", session_factory)
    return handler.sio


def _token(user_id):
    return create_access_token({"sub": user_id, "email": f"{user_id}@example.com"})


def _rooms(server):
    return [c.args[1] for c in server.enter_room.await_args_list]


class TestConnect:
    async def test_refuses_missing_token(self, server):
        with pytest.raises(sio_exceptions.ConnectionRefusedError):
            await handler.connect("s1", {}, None)

    async def test_refuses_bad_token(self, server):
        with pytest.raises(sio_exceptions.ConnectionRefusedError):
            await handler.connect("s1", {}, {"token": "not-a-jwt"})

    async def test_accepts_auth_payload_or_header(self, server):
        await handler.connect("s1", {}, {"token": _token("alice")})
        await handler.connect("s2", {"HTTP_AUTHORIZATION": f"Bearer {_token('bob')}"})
        assert (await server.get_session("s1"))["user_id"] == "alice"
        assert (await server.get_session("s2"))["user_id"] == "bob"


class TestUserRoom:
    async def test_joins_own_room(self, server):
        await handler.connect("s1", {}, {"token": _token("alice")})
        await handler.join_user("s1", {})
        assert _rooms(server) == ["user_alice"]

    async def test_cannot_join_another_users_room(self, server):
        await handler.connect("s1", {}, {"token": _token("mallory")})
        await handler.join_user("s1", {"user_id": "alice"})
        assert _rooms(server) == []
        assert server.emit.await_args.args[0] == "error"


class TestAdminRoom:
    async def test_admin_joins(self, server, db):
        await make_admin(db, "mod", AdminRole.MODERATOR)
        await db.commit()

        await handler.connect("s1", {}, {"token": _token("mod")})
        await handler.join_admins("s1")
        assert _rooms(server) == [handler.ADMINS_ROOM]

    async def test_non_admin_and_inactive_admin_refused(self, server, db):
        await make_admin(db, "retired", AdminRole.ADMIN, is_active=False)
        await db.commit()

        for sid, user_id in (("s1", "alice"), ("s2", "retired")):
            await handler.connect(sid, {}, {"token": _token(user_id)})
            await handler.join_admins(sid)

        assert _rooms(server) == []
