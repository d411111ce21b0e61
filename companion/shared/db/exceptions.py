# Common exceptions so every store raises the same errors.


class RecordNotFound(Exception):
    """Raised when a record is not found in the database."""

    pass
