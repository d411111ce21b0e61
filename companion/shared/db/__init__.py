from .base import Base, metadata
from .exceptions import RecordNotFound

__all__ = ["Base", "metadata", "RecordNotFound"]
