import logging

from ..db.repository import PresenceUnitOfWork

logger = logging.getLogger(__name__)


class OrphanReaper:
    """Removes upload placeholders a departing user never finished."""

    async def reap_orphans(self, unit_of_work: PresenceUnitOfWork,
                           uid: str) -> int:
        reaped = await unit_of_work.delete_unfinished_uploads(uid)
        if reaped:
            logger.info(f"Removed {reaped} unfinished uploads of {uid}")
        return reaped
