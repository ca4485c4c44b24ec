"""
API key check shared by every endpoint except /health.
"""

import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException, Request, status

from spamdetective.config import settings

logger = logging.getLogger(__name__)


def _reject(request: Request, detail: str) -> HTTPException:
    client = request.client.host if request.client else "unknown"
    logger.warning(f"Rejected admin request to {request.url.path} from {client}: {detail}")
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "ApiKey"},
    )


async def verify_api_token(
    request: Request,
    api_key: Optional[str] = Header(None, alias=settings.api_token_header),
):
    """
    Require the configured API key in the key header.

    With no key configured every request is let through, which is only
    expected in development.
    """
    if not settings.api_token:
        if settings.is_production:
            logger.warning("API token not configured in production mode!")
        return None

    if not api_key:
        raise _reject(request, f"Missing API key. Provide {settings.api_token_header} header.")

    if not hmac.compare_digest(api_key.encode("utf-8"), settings.api_token.encode("utf-8")):
        raise _reject(request, "Invalid API key.")

    return api_key
