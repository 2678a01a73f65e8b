"""Shared API key check for service endpoints.

Callers authenticate with the ``X-API-Key`` header, compared in constant
time against the ``API_KEY`` setting. An unset key rejects everything.
"""

import hmac
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from sosrelay.config import settings
from sosrelay.logging_config import get_logger

logger = get_logger(__name__)

API_KEY_HEADER = "X-API-Key"


async def require_api_key(
    request: Request,
    x_api_key: Annotated[str | None, Header(alias=API_KEY_HEADER)] = None,
) -> None:
    """Reject the request with 401 unless it carries the configured key."""
    expected = settings.api_key
    if (
        not expected
        or not x_api_key
        or not hmac.compare_digest(x_api_key.encode(), expected.encode())
    ):
        logger.warning(
            "Rejected request with missing or invalid API key",
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )


ApiKeyRequired = Depends(require_api_key)
