from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from jose import jwt

from companion.hub.app.core.config import Settings
from companion.hub.app.core.events import EventType
from companion.hub.app.core.session_registry import SessionHandle
from companion.hub.app.core.socket_server import SocketServer

from .conftest import SERVER_VERSION

SECRET = "socket-server-test-secret-0123456789abcdef"


def make_token(uid, secret=SECRET, expires_in=timedelta(minutes=5)):
    now = datetime.now(UTC)
    return jwt.encode(
        {"sub": uid, "iat": int(now.timestamp()),
         "exp": int((now + expires_in).timestamp())},
        secret,
        algorithm="HS256",
    )


@pytest.fixture
def settings():
    return Settings(_env_file=None, JWT_SECRET_KEY=SECRET)


@pytest.fixture
def sio():
    server = MagicMock()
    server.emit = AsyncMock()
    return server


@pytest_asyncio.fixture
async def socket_server(settings, sio, hub):
    server = SocketServer(settings, sio=sio)
    server.bind_hub(hub)
    hub.broadcaster.transport = server
    await hub.repository.create_user(uid="ALICE")
    return server


@pytest.mark.asyncio
async def test_connect_with_valid_token_binds_uid(socket_server, metrics):
    await socket_server._on_connect("sid-1", {}, {"token": make_token("ALICE")})

    assert socket_server.sessions["sid-1"] == SessionHandle("sid-1", "ALICE")
    assert metrics.connections.value == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("auth", [
    None,
    {},
    {"token": "not-a-jwt"},
    {"token": make_token("ALICE", secret="another-secret-0123456789abcdefgh")},
    {"token": make_token("ALICE", expires_in=timedelta(minutes=-5))},
])
async def test_connect_without_valid_token_is_anonymous(socket_server, auth):
    await socket_server._on_connect("sid-1", {}, auth)

    assert socket_server.sessions["sid-1"].uid is None


@pytest.mark.asyncio
async def test_heartbeat_ack_carries_connection(socket_server, sio):
    await socket_server._on_connect("sid-1", {}, {"token": make_token("ALICE")})

    ack = await socket_server._on_heartbeat(
        "sid-1", {"character_identification": "CI_ALICE"}
    )

    assert ack == {
        "server_version": SERVER_VERSION,
        "uid": "ALICE",
        "is_moderator": False,
        "is_admin": False,
    }
    events = [call.args[0] for call in sio.emit.await_args_list]
    assert EventType.SYSTEM_INFO_UPDATE.value in events
    assert EventType.ONLINE_COUNT.value in events


@pytest.mark.asyncio
async def test_heartbeat_failure_returns_minimal_result(socket_server, hub,
                                                        monkeypatch):
    await socket_server._on_connect("sid-1", {}, {"token": make_token("ALICE")})

    async def broken(*args, **kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(hub.gate, "authenticate", broken)

    ack = await socket_server._on_heartbeat("sid-1", "CI_ALICE")

    assert ack == {"server_version": SERVER_VERSION}


@pytest.mark.asyncio
async def test_disconnect_clears_presence(socket_server, repository, metrics):
    await socket_server._on_connect("sid-1", {}, {"token": make_token("ALICE")})
    await socket_server._on_heartbeat("sid-1", "CI_ALICE")

    await socket_server._on_disconnect("sid-1", "client disconnect")

    assert "sid-1" not in socket_server.sessions
    assert (await repository.get_user("ALICE")).character_identification is None
    assert metrics.connections.value == 0


@pytest.mark.asyncio
async def test_disconnect_of_unknown_sid_is_ignored(socket_server, metrics):
    await socket_server._on_disconnect("sid-unknown")

    assert metrics.connections.value == 0


@pytest.mark.asyncio
async def test_emit_to_session_targets_sid(socket_server, sio):
    await socket_server.emit_to_session(
        SessionHandle("sid-9", "BOB"), "pairing:peer:offline", {"x": 1}
    )

    sio.emit.assert_awaited_once_with(
        "pairing:peer:offline", {"x": 1}, to="sid-9"
    )


@pytest.mark.asyncio
async def test_system_info_ack(socket_server, system_info):
    ack = await socket_server._on_get_system_info("sid-1")

    assert ack["online_users"] == system_info.snapshot.online_users
    assert "cpu_usage" in ack
