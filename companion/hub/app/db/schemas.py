from datetime import UTC, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ConnectionDto(BaseModel):
    """Answer to a heartbeat.

    The minimal form only carries the server version; the identity and its
    role flags are filled in once the caller has been authorized.
    """
    server_version: int = Field(..., description="Hub protocol version")
    uid: Optional[str] = Field(None, description="Authorized user identifier")
    is_moderator: Optional[bool] = None
    is_admin: Optional[bool] = None

    @classmethod
    def minimal(cls, server_version: int) -> "ConnectionDto":
        return cls(server_version=server_version)

    @property
    def is_authorized(self) -> bool:
        return self.uid is not None


class SystemInfoDto(BaseModel):
    """Read-only snapshot of the hub's load."""
    cpu_usage: float = Field(0.0, description="1-minute load per CPU")
    online_users: int = Field(0, ge=0)
    captured_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    model_config = ConfigDict(frozen=True)


class IdentityRecord(BaseModel):
    uid: str = Field(..., max_length=10)
    character_identification: Optional[str] = None
    last_logged_in: Optional[datetime] = None
    is_moderator: bool = False
    is_admin: bool = False

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_present(self) -> bool:
        return bool(self.character_identification)


class PairingRecord(BaseModel):
    """One direction of a pairing, with the other side's presence token."""
    user_uid: str
    other_user_uid: str
    is_paused: bool = False
    allow_receiving_messages: bool = False
    other_character_identification: Optional[str] = None
