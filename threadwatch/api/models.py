"""Pydantic models for API request/response structures.

Response Structure:
    All successful /api responses use ResponseEnvelope with:
    - data: The actual response payload (any type)
    - meta: Metadata including timestamp and version

Error Structure:
    All error responses use ErrorEnvelope with:
    - error: ErrorDetail containing code and message
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field


class MetaModel(BaseModel):
    """Metadata included in all successful responses.

    Attributes:
        timestamp: ISO 8601 formatted UTC timestamp of the response
        version: API version string
        total: Optional item count
    """
    timestamp: str
    version: str
    total: Optional[int] = None


class ResponseEnvelope(BaseModel):
    data: Any
    meta: MetaModel


class ErrorDetail(BaseModel):
    """Error details included in error responses.

    Attributes:
        code: Machine-readable error code (see responses.py for constants)
        message: Human-readable error message
    """
    code: str
    message: str


class ErrorEnvelope(BaseModel):
    error: ErrorDetail


class ConfigUpdateRequest(BaseModel):
    """Body of POST /api/config, mirroring the config file layout."""
    config: Dict[str, Any]


class TestAIRequest(BaseModel):
    """One-off classifier call with caller-supplied credentials.

    For ``provider="openai"`` set api_url/api_key/model; for
    ``provider="cloudflare"`` set cf_account_id/cf_token/model.
    """
    provider: Literal["openai", "cloudflare"] = "openai"
    api_url: str = ""
    api_key: str = ""
    model: str = Field(..., min_length=1)
    cf_account_id: str = ""
    cf_token: str = ""
    content: str = "Selling a 1GB KVM VPS in Los Angeles for $12/year."
    prompt: str = "Summarize the offer in one sentence, then write END."


class TestTelegramRequest(BaseModel):
    bot_token: str = Field(..., min_length=1)
    chat_id: str = Field(..., min_length=1)
    message: str = "threadwatch test message"
