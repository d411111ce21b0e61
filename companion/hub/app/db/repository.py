"""
Durable store for identities, pairings, pending uploads and bans.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Iterable, List, Optional, Set

from sqlalchemy import and_, delete, func, or_, select, text, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from sqlalchemy.orm import aliased, sessionmaker

from companion.shared.db.base import Base
from companion.shared.db.exceptions import RecordNotFound
from companion.shared.utils.random_token import generate_random_string
from companion.shared.utils.retry import CircuitBreaker, with_retry

from .models import BannedUser, ClientPair, FileCache, User
from .schemas import IdentityRecord, PairingRecord

logger = logging.getLogger(__name__)


def _is_present(column):
    return and_(column.is_not(None), column != "")


class PresenceUnitOfWork:
    """Writes that have to commit together when a session goes away."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def delete_unfinished_uploads(self, uid: str) -> int:
        """Delete every file placeholder `uid` announced but never uploaded."""
        result = await self.session.execute(
            delete(FileCache)
            .where(FileCache.uploader_uid == uid)
            .where(FileCache.uploaded.is_(False))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def release_character_identification(
        self, uid: str, character_identification: str
    ) -> bool:
        """Clear the presence token, but only if it is still the given one."""
        result = await self.session.execute(
            update(User)
            .where(User.uid == uid)
            .where(User.character_identification == character_identification)
            .values(character_identification=None)
            .execution_options(synchronize_session=False)
        )
        return (result.rowcount or 0) == 1


class PresenceRepository:
    """Repository backing the presence hub.

    Every method opens its own short-lived session; nothing here holds a
    lock across an await beyond what the database does per statement.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        session_factory: sessionmaker,
        uid_length: int = 10,
    ):
        self.engine = engine
        self.session_factory = session_factory
        self.uid_length = uid_length
        self._initialized = False

        self.db_cb = CircuitBreaker(
            "presence_db",
            failure_threshold=3,
            reset_timeout=30.0
        )

    async def initialize(self, create_tables: bool = False,
                         max_attempts: int = 5,
                         initial_delay: float = 5.0) -> None:
        """Wait for the database to answer and optionally create the tables."""
        if self._initialized:
            logger.warning("Presence repository already initialized")
            return

        await with_retry(
            self._connect_database,
            max_attempts=max_attempts,
            initial_delay=initial_delay,
            max_delay=60.0,
            circuit_breaker=self.db_cb,
            operation_args=(create_tables,),
        )
        self._initialized = True
        logger.info("Presence repository initialized")

    async def _connect_database(self, create_tables: bool) -> None:
        try:
            async with self.engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
                if create_tables:
                    await conn.run_sync(Base.metadata.create_all)
            logger.info("Connected to presence database")
        except Exception as e:
            logger.error(f"Failed to connect to database: {e}")
            raise

    async def shutdown(self) -> None:
        await self.engine.dispose()
        self._initialized = False
        logger.info("Presence repository shut down")

    async def check_connection_health(self) -> bool:
        """Check if the database connection is online."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Presence database health check failed: {e}")
            return False

    async def create_user(
        self,
        uid: Optional[str] = None,
        is_moderator: bool = False,
        is_admin: bool = False,
    ) -> IdentityRecord:
        """Provision a user, generating a fresh UID unless one is given."""
        async with self.session_factory() as session:
            if uid is None:
                uid = await self._unused_uid(session)
            user = User(uid=uid, is_moderator=is_moderator, is_admin=is_admin)
            session.add(user)
            await session.commit()
            return IdentityRecord.model_validate(user)

    async def _unused_uid(self, session: AsyncSession) -> str:
        while True:
            candidate = generate_random_string(self.uid_length)
            taken = await session.scalar(
                select(func.count()).select_from(User)
                .where(User.uid == candidate)
            )
            if not taken:
                return candidate

    async def get_user(self, uid: str) -> Optional[IdentityRecord]:
        async with self.session_factory() as session:
            user = await session.get(User, uid)
            if user is None:
                return None
            return IdentityRecord.model_validate(user)

    async def is_banned(self, character_identification: str) -> bool:
        async with self.session_factory() as session:
            banned = await session.scalar(
                select(func.count()).select_from(BannedUser)
                .where(BannedUser.character_identification
                       == character_identification)
            )
            return bool(banned)

    async def ban_character(self, character_identification: str,
                            reason: Optional[str] = None) -> None:
        async with self.session_factory() as session:
            session.add(BannedUser(
                character_identification=character_identification,
                reason=reason,
            ))
            await session.commit()

    async def claim_character_identification(
        self, uid: str, character_identification: str, now: datetime
    ) -> Optional[IdentityRecord]:
        """
        Set the presence token and last login of `uid` in one statement.

        The update only applies while the stored token is empty, so two
        concurrent heartbeats can never both claim it.

        Returns:
            The updated identity, or None if a token was already set

        Raises:
            RecordNotFound: if there is no user with that uid
        """
        async with self.session_factory() as session:
            result = await session.execute(
                update(User)
                .where(User.uid == uid)
                .where(or_(User.character_identification.is_(None),
                           User.character_identification == ""))
                .values(character_identification=character_identification,
                        last_logged_in=now)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

            user = await session.get(User, uid, populate_existing=True)
            if user is None:
                raise RecordNotFound(f"User {uid} does not exist")
            if (result.rowcount or 0) != 1:
                return None
            return IdentityRecord.model_validate(user)

    async def get_unpaused_outgoing(self, uid: str) -> List[PairingRecord]:
        """Unpaused pairings owned by `uid`, with each partner's presence."""
        other = aliased(User)
        async with self.session_factory() as session:
            rows = await session.execute(
                select(ClientPair, other.character_identification)
                .join(other, other.uid == ClientPair.other_user_uid)
                .where(ClientPair.user_uid == uid)
                .where(ClientPair.is_paused.is_(False))
            )
            return [
                PairingRecord(
                    user_uid=pair.user_uid,
                    other_user_uid=pair.other_user_uid,
                    is_paused=pair.is_paused,
                    allow_receiving_messages=pair.allow_receiving_messages,
                    other_character_identification=other_ci,
                )
                for pair, other_ci in rows
            ]

    async def get_reciprocating_owners(
        self, owners: Iterable[str], uid: str
    ) -> Set[str]:
        """Which of `owners` have an unpaused pairing pointing back at `uid`."""
        owners = list(owners)
        if not owners:
            return set()
        async with self.session_factory() as session:
            rows = await session.scalars(
                select(ClientPair.user_uid)
                .where(ClientPair.user_uid.in_(owners))
                .where(ClientPair.other_user_uid == uid)
                .where(ClientPair.is_paused.is_(False))
            )
            return set(rows)

    async def set_pairing(self, uid: str, other_uid: str,
                          is_paused: bool = False) -> None:
        """Create or update the pairing `uid` -> `other_uid`."""
        async with self.session_factory() as session:
            pair = await session.get(ClientPair, (uid, other_uid))
            if pair is None:
                pair = ClientPair(user_uid=uid, other_user_uid=other_uid)
                session.add(pair)
            pair.is_paused = is_paused
            await session.commit()

    async def add_file(self, file_hash: str, uploader_uid: str,
                       uploaded: bool = False) -> None:
        async with self.session_factory() as session:
            session.add(FileCache(hash=file_hash, uploader_uid=uploader_uid,
                                  uploaded=uploaded))
            await session.commit()

    async def count_files(self, uploader_uid: str,
                          uploaded: Optional[bool] = None) -> int:
        async with self.session_factory() as session:
            query = (select(func.count()).select_from(FileCache)
                     .where(FileCache.uploader_uid == uploader_uid))
            if uploaded is not None:
                query = query.where(FileCache.uploaded.is_(uploaded))
            return await session.scalar(query) or 0

    async def count_online(self) -> int:
        """Number of users that currently hold a presence token."""
        async with self.session_factory() as session:
            count = await session.scalar(
                select(func.count()).select_from(User)
                .where(_is_present(User.character_identification))
            )
            return count or 0

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[PresenceUnitOfWork]:
        """Group writes into one transaction, rolled back on error."""
        async with self.session_factory() as session:
            async with session.begin():
                yield PresenceUnitOfWork(session)
