import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or "INFO").upper(),
        format=LOG_FORMAT,
    )
