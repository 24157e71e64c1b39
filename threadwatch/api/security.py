"""Bearer-token guard for the admin endpoints."""

import secrets
from typing import Optional

from fastapi import Header, Request

from threadwatch.api.responses import UNAUTHORIZED, raise_api_error
from threadwatch.backend.utils.logging_config import get_logger

logger = get_logger(__name__)


def require_access_token(request: Request, authorization: Optional[str] = Header(None)) -> None:
    """FastAPI dependency requiring ``Authorization: Bearer <ACCESS_TOKEN>``."""
    expected = f"Bearer {request.app.state.settings.access_token}"
    if not authorization or not secrets.compare_digest(authorization, expected):
        logger.warning("unauthorized_request", path=request.url.path)
        raise_api_error(UNAUTHORIZED, "Missing or invalid access token")
