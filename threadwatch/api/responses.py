"""Response utilities and error handling for the API.

This module provides:
- Error code constants for consistent error handling across endpoints
- wrap_response() utility for creating standard response envelopes
- raise_api_error() helper for raising HTTP exceptions with error envelopes
- Error code to HTTP status code mappings

Exception handlers in app.py convert raised errors to ErrorEnvelope format.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import HTTPException

from threadwatch.api.models import MetaModel


# Error Code Constants
VALIDATION_ERROR = "VALIDATION_ERROR"  # Invalid request body (422)
CONFIG_ERROR = "CONFIG_ERROR"  # Rejected engine configuration (422)
UNAUTHORIZED = "UNAUTHORIZED"  # Missing or wrong bearer token (401)
NOT_FOUND = "NOT_FOUND"  # Requested resource not found (404)
CLASSIFIER_ERROR = "CLASSIFIER_ERROR"  # Classifier backend failure (502)
NOTIFICATION_ERROR = "NOTIFICATION_ERROR"  # Notification channel failure (502)
INTERNAL_ERROR = "INTERNAL_ERROR"  # Anything else (500)


ERROR_STATUS_CODES: Dict[str, int] = {
    VALIDATION_ERROR: 422,
    CONFIG_ERROR: 422,
    UNAUTHORIZED: 401,
    NOT_FOUND: 404,
    CLASSIFIER_ERROR: 502,
    NOTIFICATION_ERROR: 502,
    INTERNAL_ERROR: 500,
}

API_VERSION = "1.0"


def wrap_response(data: Any, total: Optional[int] = None) -> Dict[str, Any]:
    """Wrap data in the standard response envelope.

    Returns:
        {"data": <data>, "meta": {"timestamp": ..., "version": "1.0", "total": ...}}
    """
    meta = MetaModel(
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=API_VERSION,
        total=total
    )

    return {
        "data": data,
        "meta": meta.model_dump(exclude_none=True)
    }


def raise_api_error(code: str, message: str, status_code: Optional[int] = None) -> None:
    """Raise an HTTPException carrying an error code and message.

    Example:
        raise_api_error(CONFIG_ERROR, "Incomplete configuration: missing chat_id")
    """
    if status_code is None:
        status_code = ERROR_STATUS_CODES.get(code, 500)

    raise HTTPException(
        status_code=status_code,
        detail={"code": code, "message": message}
    )
