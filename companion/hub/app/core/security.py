import logging
from typing import Any, Optional

from jose import JWTError, jwt

from .config import Settings

logger = logging.getLogger(__name__)


def get_verified_uid(auth: Any, settings: Settings) -> Optional[str]:
    """
    Return the uid carried by the access token in a connect payload.

    Tokens are issued elsewhere; this only checks the signature and
    expiry and reads the subject. Anything missing or invalid yields None.
    """
    token = None
    if auth and isinstance(auth, dict):
        token = auth.get("token")
    if not token:
        return None

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY.get_secret_value(),
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError as e:
        logger.warning(f"Token validation failed: {e}")
        return None

    uid = payload.get("sub")
    if not uid or not isinstance(uid, str):
        logger.warning("Token without a subject")
        return None
    return uid
