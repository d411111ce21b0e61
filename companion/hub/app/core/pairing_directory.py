import logging
from typing import FrozenSet

from ..db.repository import PresenceRepository

logger = logging.getLogger(__name__)


class PairingDirectory:
    """Finds the pairing partners a user is mutually and actively paired with."""

    def __init__(self, repository: PresenceRepository):
        self.repository = repository

    async def mutual_active_peers(self, uid: str) -> FrozenSet[str]:
        """
        Users paired with `uid` in both directions, unpaused both ways,
        and currently present.

        An unpaired user gets an empty set.
        """
        outgoing = await self.repository.get_unpaused_outgoing(uid)

        candidate_peers = {
            pair.other_user_uid
            for pair in outgoing
            if pair.other_character_identification
        }
        if not candidate_peers:
            return frozenset()

        reciprocating = await self.repository.get_reciprocating_owners(
            candidate_peers, uid
        )

        peers = frozenset(candidate_peers & reciprocating)
        logger.debug(f"User {uid} has {len(peers)} mutual active peers")
        return peers
