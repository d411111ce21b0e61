import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-the-presence-hub-0123")

from typing import Any, Dict, List, Set, Tuple  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from companion.hub.app.core.metrics import HubMetrics  # noqa: E402
from companion.hub.app.core.presence_hub import PresenceHub  # noqa: E402
from companion.hub.app.core.session_registry import (  # noqa: E402
    SessionHandle,
    SessionRegistry,
)
from companion.hub.app.core.system_info import SystemInfoService  # noqa: E402
from companion.hub.app.db.repository import PresenceRepository  # noqa: E402
from companion.shared.db.base import Base  # noqa: E402
from companion.shared.db.session import (  # noqa: E402
    create_engine_from_url,
    create_session_factory,
)

SERVER_VERSION = 4


class RecordingTransport:
    """Transport double that records what the hub sends."""

    def __init__(self):
        self.sent: List[Tuple[str, str, Dict[str, Any]]] = []
        self.broadcasts: List[Tuple[str, Dict[str, Any]]] = []
        self.failing_sids: Set[str] = set()

    async def emit_to_session(self, handle: SessionHandle, event: str,
                              data: Dict[str, Any]) -> None:
        if handle.sid in self.failing_sids:
            raise ConnectionError(f"session {handle.sid} is gone")
        self.sent.append((handle.sid, event, data))

    async def broadcast(self, event: str, data: Dict[str, Any]) -> None:
        self.broadcasts.append((event, data))

    def events_for(self, sid: str, event: str) -> List[Dict[str, Any]]:
        return [data for to, name, data in self.sent
                if to == sid and name == event]

    def broadcast_counts(self) -> List[int]:
        return [data["count"] for _, data in self.broadcasts]


@pytest_asyncio.fixture
async def engine():
    engine = create_engine_from_url(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def repository(engine):
    return PresenceRepository(engine, create_session_factory(engine))


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def metrics():
    return HubMetrics()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def system_info(repository):
    return SystemInfoService(repository, refresh_seconds=60.0)


@pytest.fixture
def hub(repository, registry, transport, system_info, metrics):
    return PresenceHub(
        repository=repository,
        registry=registry,
        transport=transport,
        system_info=system_info,
        metrics=metrics,
        server_version=SERVER_VERSION,
    )
