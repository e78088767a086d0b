"""Bearer token verification.

Tokens are issued by the identity provider (LDAP/AD login service) and
signed with the shared secret. This service only verifies them.
"""

import logging
from typing import Optional

from jose import JWTError, jwt

from ums.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def decode_token(token: str) -> Optional[int]:
    """Decode and validate a JWT access token. Returns the user id if valid."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError as e:
        logger.debug("Rejected access token: %s", e)
        return None

    if payload.get("type", "access") != "access":
        return None

    subject = payload.get("sub")
    if subject is None:
        return None
    try:
        return int(subject)
    except (TypeError, ValueError):
        return None
