# companion/hub/app/db/models.py
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
)

from companion.shared.db.base import Base


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_character_identification",
              "character_identification"),
    )

    uid = Column(String(10), primary_key=True)
    character_identification = Column(String(100), nullable=True)
    last_logged_in = Column(DateTime(timezone=True), nullable=True)
    is_moderator = Column(Boolean, nullable=False, default=False)
    is_admin = Column(Boolean, nullable=False, default=False)


class ClientPair(Base):
    __tablename__ = "client_pairs"
    __table_args__ = (
        CheckConstraint(
            "user_uid != other_user_uid",
            name="ck_client_pair_different_users",
        ),
        Index("idx_client_pair_other", "other_user_uid"),
        {
            "comment": (
                "Directional pairing between two users; a mutual pairing "
                "is two rows, each pausable on its own"
            ),
        },
    )

    user_uid = Column(
        String(10),
        ForeignKey("users.uid", ondelete="CASCADE"),
        primary_key=True,
    )
    other_user_uid = Column(
        String(10),
        ForeignKey("users.uid", ondelete="CASCADE"),
        primary_key=True,
    )
    is_paused = Column(Boolean, nullable=False, default=False)
    allow_receiving_messages = Column(Boolean, nullable=False, default=False)


class FileCache(Base):
    __tablename__ = "file_caches"
    __table_args__ = (
        Index("idx_file_cache_uploader", "uploader_uid"),
    )

    hash = Column(String(40), primary_key=True)
    uploader_uid = Column(
        String(10),
        ForeignKey("users.uid", ondelete="CASCADE"),
        nullable=False,
    )
    uploaded = Column(Boolean, nullable=False, default=False)


class BannedUser(Base):
    __tablename__ = "banned_users"

    character_identification = Column(String(100), primary_key=True)
    reason = Column(Text, nullable=True)
