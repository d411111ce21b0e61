"""
Decides whether a heartbeat authorizes its caller.
"""
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Callable, Optional

from ..db.repository import PresenceRepository
from ..db.schemas import ConnectionDto, IdentityRecord

logger = logging.getLogger(__name__)


class GateStatus(str, Enum):
    ANONYMOUS = "anonymous"
    BANNED = "banned"
    DUPLICATE = "duplicate"
    AUTHORIZED = "authorized"


@dataclass
class GateDecision:
    status: GateStatus
    connection: ConnectionDto
    identity: Optional[IdentityRecord] = None

    @property
    def authorized(self) -> bool:
        return self.status is GateStatus.AUTHORIZED


class IdentityGate:
    """
    Resolves the caller's verified identity and applies the ban check.

    A caller is authorized at most once per presence: the first heartbeat
    claims the character identification, later ones are answered with the
    minimal result and change nothing.
    """

    def __init__(
        self,
        repository: PresenceRepository,
        server_version: int,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.repository = repository
        self.server_version = server_version
        self.clock = clock

    def minimal_result(self) -> ConnectionDto:
        return ConnectionDto.minimal(self.server_version)

    async def authenticate(
        self,
        verified_uid: Optional[str],
        character_identification: Optional[str],
    ) -> GateDecision:
        """
        Authorize `verified_uid` under the proposed character identification.

        Raises:
            RecordNotFound: if the verified uid has no user record
        """
        if not verified_uid or not character_identification:
            return GateDecision(GateStatus.ANONYMOUS, self.minimal_result())

        if await self.repository.is_banned(character_identification):
            logger.warning(
                f"Refused banned character identification for {verified_uid}"
            )
            return GateDecision(GateStatus.BANNED, self.minimal_result())

        identity = await self.repository.claim_character_identification(
            verified_uid, character_identification, self.clock()
        )
        if identity is None:
            current = await self.repository.get_user(verified_uid)
            logger.debug(f"Duplicate heartbeat from {verified_uid}")
            return GateDecision(
                GateStatus.DUPLICATE, self.minimal_result(), current
            )

        logger.info(f"Authorized connection from {verified_uid}")
        return GateDecision(
            GateStatus.AUTHORIZED,
            ConnectionDto(
                server_version=self.server_version,
                uid=identity.uid,
                is_moderator=identity.is_moderator,
                is_admin=identity.is_admin,
            ),
            identity,
        )
