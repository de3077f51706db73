"""
Identity checks shared by the create operations
"""

import logging

from ecoreport.backend.base import Identity, IdentityError, IdentityProvider
from ecoreport.core.exceptions import Unauthenticated

logger = logging.getLogger(__name__)


async def require_identity(identity_provider: IdentityProvider) -> Identity:
    """
    Re-read the current identity at call time.

    Raises:
        Unauthenticated: Signed out, session expired, or the provider is unreachable
    """
    try:
        identity = await identity_provider.current_identity()
    except IdentityError as e:
        raise Unauthenticated(f"Could not verify the current session: {e}") from e

    if identity is None:
        logger.info("No authenticated identity")
        raise Unauthenticated("User not authenticated")

    return identity
