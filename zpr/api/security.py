"""API key guard for the review endpoints."""

import hmac
import logging

from fastapi import Header, HTTPException, status

from zpr.config.settings import settings

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


async def require_api_key(
    x_api_key: str | None = Header(None, alias="X-API-Key"),
    authorization: str | None = Header(None),
) -> None:
    """
    Validate the caller's API key.

    The key is read from X-API-Key, falling back to an Authorization
    bearer token.

    Raises:
        HTTPException: 401 if no key was sent, 403 if it does not match
    """
    api_key = x_api_key
    if not api_key and authorization:
        api_key = authorization.removeprefix(BEARER_PREFIX)

    if not api_key:
        logger.warning("Request rejected: missing API key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=(
                "API key is required. Please provide it in the X-API-Key header "
                "or Authorization header."
            ),
        )

    if not settings.api_key or not hmac.compare_digest(api_key, settings.api_key):
        logger.warning("Request rejected: invalid API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Invalid API key"
        )
