import logging
from typing import Any, Dict, Optional

import socketio

from .config import Settings, get_socket_io_config
from .events import ClientCalls
from .presence_hub import PresenceHub
from .security import get_verified_uid
from .session_registry import SessionHandle

# Configure logging
logger = logging.getLogger(__name__)


class SocketServer:
    """Socket.IO transport for the presence hub."""

    def __init__(self, settings: Settings,
                 sio: Optional[socketio.AsyncServer] = None):
        """Initialize the Socket.IO server."""
        self.settings = settings
        self.sio = sio or socketio.AsyncServer(
            logger=False,
            **get_socket_io_config(settings),
        )
        self.sessions: Dict[str, SessionHandle] = {}  # sid -> session handle
        self.hub: Optional[PresenceHub] = None

    def bind_hub(self, hub: PresenceHub) -> None:
        """Attach the hub and register the event handlers."""
        self.hub = hub

        self.sio.on("connect", self._on_connect)
        self.sio.on("disconnect", self._on_disconnect)
        self.sio.on(ClientCalls.HEARTBEAT.value, self._on_heartbeat)
        self.sio.on(ClientCalls.GET_SYSTEM_INFO.value, self._on_get_system_info)

    def asgi_app(self, other_asgi_app: Any = None) -> socketio.ASGIApp:
        return socketio.ASGIApp(
            self.sio,
            other_asgi_app=other_asgi_app,
            socketio_path=self.settings.SOCKET_IO_PATH,
        )

    async def _on_connect(
        self, sid: str, environ: Dict[str, Any], auth: Any = None
    ) -> None:
        """Handle new socket connection."""
        uid = get_verified_uid(auth, self.settings)
        if uid is None:
            logger.info(f"Client {sid} connected without a valid token")

        handle = SessionHandle(sid=sid, uid=uid)
        self.sessions[sid] = handle
        await self.hub.on_connect(handle)

    async def _on_heartbeat(self, sid: str, data: Any = None) -> Dict[str, Any]:
        """Answer a heartbeat; any failure yields the minimal result."""
        handle = self.sessions.get(sid) or SessionHandle(sid=sid)
        character_identification = self._character_identification(data)

        try:
            result = await self.hub.heartbeat(handle, character_identification)
        except Exception as e:
            logger.error(f"Heartbeat from {sid} failed: {e}")
            result = self.hub.minimal_result()

        return result.model_dump(exclude_none=True)

    @staticmethod
    def _character_identification(data: Any) -> Optional[str]:
        if isinstance(data, str):
            return data
        if isinstance(data, dict):
            value = data.get("character_identification")
            if isinstance(value, str):
                return value
        return None

    async def _on_get_system_info(self, sid: str,
                                  data: Any = None) -> Dict[str, Any]:
        snapshot = await self.hub.get_system_info()
        return snapshot.model_dump(mode="json")

    async def _on_disconnect(self, sid: str, reason: Any = None) -> None:
        """Handle socket disconnection."""
        handle = self.sessions.pop(sid, None)
        if handle is None:
            logger.debug(f"Disconnect for unknown session {sid}")
            return
        try:
            await self.hub.on_disconnect(handle, reason)
        except Exception as e:
            logger.error(f"Failed to clean up after {sid}: {e}")

    async def emit_to_session(self, handle: SessionHandle, event: str,
                              data: Dict[str, Any]) -> None:
        """Emit an event to one session."""
        await self.sio.emit(event, data, to=handle.sid)

    async def broadcast(self, event: str, data: Dict[str, Any]) -> None:
        """Broadcast an event to all connected clients."""
        await self.sio.emit(event, data)
