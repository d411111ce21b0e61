"""
Delivers presence changes to mutually paired sessions.
"""
import logging
from typing import Any, Dict, Iterable, Optional, Protocol

from ..db.repository import PresenceRepository
from ..db.schemas import SystemInfoDto
from .events import EventType, create_event
from .pairing_directory import PairingDirectory
from .session_registry import SessionHandle, SessionRegistry

logger = logging.getLogger(__name__)


class EventTransport(Protocol):
    """What the broadcaster needs from the transport layer."""

    async def emit_to_session(self, handle: SessionHandle, event: str,
                              data: Dict[str, Any]) -> None:
        ...

    async def broadcast(self, event: str, data: Dict[str, Any]) -> None:
        ...


class PresenceBroadcaster:
    """
    Sends presence events to the sessions of a user's mutual active peers.

    Delivery is best effort per target: a peer without a registered session
    is skipped, and a failed send is logged without stopping the others.
    """

    def __init__(
        self,
        directory: PairingDirectory,
        registry: SessionRegistry,
        repository: PresenceRepository,
        transport: EventTransport,
    ):
        self.directory = directory
        self.registry = registry
        self.repository = repository
        self.transport = transport

    async def notify_presence_added(
        self,
        uid: str,
        character_identification: str,
        peers: Optional[Iterable[str]] = None,
    ) -> int:
        """Tell every mutual active peer that `uid` is now present."""
        if peers is None:
            peers = await self.directory.mutual_active_peers(uid)
        event = create_event(
            EventType.PEER_PRESENCE_ADDED,
            character_identification=character_identification,
        )
        return await self._deliver(peers, EventType.PEER_PRESENCE_ADDED, event)

    async def notify_presence_removed(
        self,
        uid: str,
        character_identification: str,
        peers: Optional[Iterable[str]] = None,
    ) -> int:
        """
        Tell every mutual active peer that `uid` left.

        Peers must be computed while `uid` still holds its character
        identification, so callers tearing down a session pass them in.
        """
        if peers is None:
            peers = await self.directory.mutual_active_peers(uid)
        event = create_event(
            EventType.PEER_PRESENCE_REMOVED,
            character_identification=character_identification,
        )
        return await self._deliver(peers, EventType.PEER_PRESENCE_REMOVED, event)

    async def broadcast_online_count(self) -> int:
        """Send the number of present users to every connected session."""
        count = await self.repository.count_online()
        event = create_event(EventType.ONLINE_COUNT, count=count)
        try:
            await self.transport.broadcast(EventType.ONLINE_COUNT.value, event)
        except Exception as e:
            logger.error(f"Failed to broadcast online count: {e}")
        return count

    async def send_system_info(self, handle: SessionHandle,
                               snapshot: SystemInfoDto) -> bool:
        event = create_event(
            EventType.SYSTEM_INFO_UPDATE,
            **snapshot.model_dump(mode="json"),
        )
        return await self._send(handle, EventType.SYSTEM_INFO_UPDATE, event)

    async def _deliver(self, peers: Iterable[str], event_type: EventType,
                       event: Dict[str, Any]) -> int:
        delivered = 0
        for peer in peers:
            handle = self.registry.lookup(peer)
            if handle is None:
                logger.debug(f"No session for peer {peer}, skipping")
                continue
            if await self._send(handle, event_type, event):
                delivered += 1
        return delivered

    async def _send(self, handle: SessionHandle, event_type: EventType,
                    event: Dict[str, Any]) -> bool:
        try:
            await self.transport.emit_to_session(handle, event_type.value, event)
            return True
        except Exception as e:
            logger.warning(
                f"Failed to deliver {event_type.value} to {handle.sid}: {e}"
            )
            return False
