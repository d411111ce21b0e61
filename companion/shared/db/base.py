# shared/db/base.py

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase, declared_attr

# Single metadata for all tables
metadata = MetaData()


class Base(DeclarativeBase):
    metadata = metadata

    @declared_attr
    def __tablename__(cls) -> str:
        # automatic table naming: class name lowercase
        return cls.__name__.lower()
