"""Admin auth dependency for the knowledge management routes.

Knowledge is global, so there is no per-user scoping: a single shared admin
token guards ingestion, deletion and search.
"""

import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from cradle.app.config import Settings, get_settings


async def require_admin_token(
    settings: Annotated[Settings, Depends(get_settings)],
    x_admin_token: Annotated[str | None, Header()] = None,
) -> None:
    """Validate the X-Admin-Token header against ADMIN_API_TOKEN.

    Raises:
        HTTPException: 503 if no admin token is configured,
            401 if the header is missing or does not match
    """
    expected = settings.admin_api_token.get_secret_value() if settings.admin_api_token else ""
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API is disabled (ADMIN_API_TOKEN not configured)",
        )

    if not x_admin_token or not secrets.compare_digest(
        x_admin_token.encode("utf-8"), expected.encode("utf-8")
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin token",
        )
