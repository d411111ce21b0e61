"""
Presence hub: the connect, heartbeat and disconnect handling for sessions.
"""
import logging
from typing import Any, Optional

from ..db.repository import PresenceRepository
from ..db.schemas import ConnectionDto, SystemInfoDto
from .identity_gate import GateDecision, GateStatus, IdentityGate
from .metrics import HubMetrics
from .orphan_reaper import OrphanReaper
from .pairing_directory import PairingDirectory
from .presence_broadcaster import EventTransport, PresenceBroadcaster
from .session_registry import SessionHandle, SessionRegistry
from .system_info import SystemInfoService

logger = logging.getLogger(__name__)


class PresenceHub:
    """
    Orchestrates a session's presence lifecycle.

    A session starts unidentified, becomes identified on its first
    successful heartbeat and is removed on disconnect. Every method takes
    the session handle explicitly; nothing is kept per connection here
    besides the registry entry.
    """

    def __init__(
        self,
        repository: PresenceRepository,
        registry: SessionRegistry,
        transport: EventTransport,
        system_info: SystemInfoService,
        metrics: HubMetrics,
        server_version: int,
        gate: Optional[IdentityGate] = None,
    ):
        self.repository = repository
        self.registry = registry
        self.system_info = system_info
        self.metrics = metrics
        self.gate = gate or IdentityGate(repository, server_version)
        self.directory = PairingDirectory(repository)
        self.broadcaster = PresenceBroadcaster(
            self.directory, registry, repository, transport
        )
        self.reaper = OrphanReaper()

    def minimal_result(self) -> ConnectionDto:
        return self.gate.minimal_result()

    async def on_connect(self, handle: SessionHandle) -> None:
        """Count the connection; authentication waits for the heartbeat."""
        self.metrics.connections.inc()
        logger.info(f"New client connected: {handle.sid}")

    async def heartbeat(
        self, handle: SessionHandle, character_identification: Optional[str]
    ) -> ConnectionDto:
        """
        Authorize the session's user under `character_identification`.

        Store failures propagate; the transport turns them into the
        minimal result.
        """
        self.metrics.initialized_connections.inc()
        logger.info(
            f"Connection from {handle.uid}, CI: {character_identification}"
        )

        await self.broadcaster.send_system_info(handle, self.system_info.snapshot)

        decision = await self.gate.authenticate(
            handle.uid, character_identification
        )
        if decision.status is GateStatus.DUPLICATE:
            self._take_over(handle, decision, character_identification)
        if not decision.authorized:
            return decision.connection

        uid = decision.connection.uid
        self.metrics.authorized_connections.inc()
        self.registry.register(uid, handle)

        try:
            await self.broadcaster.notify_presence_added(
                uid, character_identification
            )
            await self.broadcaster.broadcast_online_count()
        except Exception as e:
            # the user is present in the store and the registry; only the
            # announcement is lost
            logger.error(f"Failed to announce presence of {uid}: {e}")

        return decision.connection

    def _take_over(self, handle: SessionHandle, decision: GateDecision,
                   character_identification: Optional[str]) -> None:
        identity = decision.identity
        if identity is None or handle.uid is None:
            return
        if identity.character_identification != character_identification:
            return
        previous = self.registry.register(handle.uid, handle)
        if previous is not None:
            logger.info(
                f"Session {handle.sid} took over presence of {handle.uid}"
            )

    async def get_system_info(self) -> SystemInfoDto:
        return self.system_info.snapshot

    async def on_disconnect(self, handle: SessionHandle,
                            reason: Any = None) -> None:
        """
        Tear down the session's presence.

        The reason is only logged. The connections gauge and the registry
        entry are cleaned up even when the store fails; the failure is
        then re-raised.
        """
        logger.info(
            f"Client disconnected: {handle.sid} (user {handle.uid}, "
            f"reason {reason!r})"
        )
        try:
            if handle.uid is not None:
                await self._end_presence(handle)
        finally:
            self.metrics.connections.dec()

    async def _end_presence(self, handle: SessionHandle) -> None:
        uid = handle.uid
        current = self.registry.lookup(uid)
        if current is not None and current != handle:
            logger.debug(f"Session {handle.sid} no longer speaks for {uid}")
            return

        # with no registry entry the stored token may be left over from a
        # failed cleanup or a restart; the compare-and-clear below releases it
        released = False
        character_identification = None
        try:
            identity = await self.repository.get_user(uid)
            if identity is None or not identity.is_present:
                return

            character_identification = identity.character_identification
            logger.info(f"Disconnect from {uid}")

            # peers first: they are computed while uid still looks present
            peers = await self.directory.mutual_active_peers(uid)
            notified = await self.broadcaster.notify_presence_removed(
                uid, character_identification, peers
            )

            async with self.repository.unit_of_work() as unit_of_work:
                reaped = await self.reaper.reap_orphans(unit_of_work, uid)
                released = await unit_of_work.release_character_identification(
                    uid, character_identification
                )
            if released:
                self.metrics.authorized_connections.dec()
            logger.info(
                f"Cleaned up {uid}: notified {notified} peers, "
                f"removed {reaped} unfinished uploads"
            )
        finally:
            evicted = self.registry.unregister(uid, handle)

        if released and not evicted:
            await self._restore_for_successor(uid, character_identification)

        await self.broadcaster.broadcast_online_count()

    async def _restore_for_successor(self, uid: str,
                                     character_identification: str) -> None:
        """A newer session took over while this one was being torn down."""
        if self.registry.lookup(uid) is None:
            return
        identity = await self.repository.claim_character_identification(
            uid, character_identification, self.gate.clock()
        )
        if identity is None:
            return
        self.metrics.authorized_connections.inc()
        logger.info(f"Restored presence of {uid} for its newer session")
        await self.broadcaster.notify_presence_added(uid, character_identification)
