"""Cloudflare Workers AI classifier backend."""

from typing import Any, Optional

import requests

from threadwatch.backend.utils.errors import ClassifierError
from threadwatch.backend.utils.logging_config import get_logger
from threadwatch.filters.classifier import (
    CLASSIFIER_TIMEOUT_SECONDS,
    ClassifierFilter,
    register_classifier,
)

logger = get_logger(__name__)

CLOUDFLARE_AI_URL = "https://api.cloudflare.com/client/v4/accounts/{account_id}/ai/run/{model}"


@register_classifier("cloudflare")
class CloudflareClassifier(ClassifierFilter):
    """Runs chat-style models hosted on Cloudflare Workers AI.

    Attributes:
        account_id: Cloudflare account id
        token: API token with Workers AI permission
        model: Model name, e.g. "@cf/meta/llama-3.1-8b-instruct"
    """

    def __init__(
        self,
        account_id: str,
        token: str,
        model: str,
        timeout: float = CLASSIFIER_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.account_id = account_id
        self.token = token
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config) -> "CloudflareClassifier":
        return cls(config.cf_account_id, config.cf_token, config.model)

    @property
    def url(self) -> str:
        return CLOUDFLARE_AI_URL.format(account_id=self.account_id, model=self.model)

    def _complete(self, content: str, prompt: str) -> str:
        payload = {
            "messages": [
                {"role": "system", "content": prompt},
                {"role": "user", "content": content},
            ]
        }

        try:
            response = self.session.post(
                self.url,
                json=payload,
                headers={"Authorization": f"Bearer {self.token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("cloudflare_ai_request_failed", model=self.model, error=str(e))
            raise ClassifierError(f"Cloudflare AI request failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise ClassifierError(
                f"Cloudflare AI returned non-JSON body (status {response.status_code})"
            ) from e

        if not isinstance(body, dict):
            raise ClassifierError(f"Cloudflare AI returned unexpected body type {type(body).__name__}")

        if not body.get("success") or body.get("errors"):
            logger.error(
                "cloudflare_ai_error",
                model=self.model,
                status=response.status_code,
                errors=body.get("errors"),
            )
            raise ClassifierError(f"Cloudflare AI returned errors: {body.get('errors')}")

        text = self._extract_text(body.get("result"))
        if text is None:
            logger.error("cloudflare_ai_malformed_result", model=self.model, result=str(body.get("result"))[:200])
            raise ClassifierError("Cloudflare AI returned an empty or malformed result")

        logger.debug("cloudflare_ai_result", model=self.model, content_length=len(content), result=text)
        return text

    @staticmethod
    def _extract_text(result: Any) -> Optional[str]:
        """Model text from ``result``, or None when the shape is not recognised."""
        if not isinstance(result, dict):
            return None

        choices = result.get("choices")
        if choices:
            if not isinstance(choices, list) or not isinstance(choices[0], dict):
                return None
            message = choices[0].get("message")
            if not isinstance(message, dict):
                return None
            text = message.get("content") or ""
            return text if isinstance(text, str) else None

        # Older text-generation models answer with {"response": "..."}
        if "response" in result:
            text = result.get("response") or ""
            return text if isinstance(text, str) else None
        return None
