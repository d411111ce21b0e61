from datetime import datetime
from enum import Enum
from typing import Any, Dict

EVENT_SOURCE = "presence_hub"


class ClientCalls(str, Enum):
    """Calls clients make to the hub; the answer travels in the ack."""
    HEARTBEAT = "hub:heartbeat"
    GET_SYSTEM_INFO = "hub:system_info"


class EventType(str, Enum):
    """Events the hub pushes to clients."""
    SYSTEM_INFO_UPDATE = "system:info"
    PEER_PRESENCE_ADDED = "pairing:peer:online"
    PEER_PRESENCE_REMOVED = "pairing:peer:offline"
    ONLINE_COUNT = "presence:users:online"


def create_event(event_type: EventType, source: str = EVENT_SOURCE,
                 **kwargs: Any) -> Dict[str, Any]:
    """Create a properly formatted event payload."""
    base_event = {
        "type": event_type.value,
        "timestamp": datetime.now().timestamp(),
        "source": source,
    }
    return {**base_event, **kwargs}
