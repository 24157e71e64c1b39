"""OpenAI-compatible chat completions classifier backend.

Works against api.openai.com or any server exposing the same
``/chat/completions`` API (DeepSeek, OpenRouter, a local vLLM, ...).
The configured URL may be either the API base (``https://host/v1``) or the
full completions endpoint; the SDK wants the base.
"""

from typing import Optional

import openai

from threadwatch.backend.utils.errors import ClassifierError
from threadwatch.backend.utils.logging_config import get_logger
from threadwatch.filters.classifier import (
    CLASSIFIER_TIMEOUT_SECONDS,
    ClassifierFilter,
    register_classifier,
)

logger = get_logger(__name__)

COMPLETIONS_SUFFIX = "/chat/completions"


def base_url_from_api_url(api_url: Optional[str]) -> Optional[str]:
    """Turn a configured endpoint into an SDK base_url (None = SDK default)."""
    url = (api_url or "").strip().rstrip("/")
    if url.endswith(COMPLETIONS_SUFFIX):
        url = url[:-len(COMPLETIONS_SUFFIX)]
    return url or None


@register_classifier("openai")
class OpenAIClassifier(ClassifierFilter):
    """Classifier using the official openai SDK.

    Example:
        >>> clf = OpenAIClassifier("https://api.openai.com/v1/chat/completions", "sk-...", "gpt-4o-mini")
        >>> clf.filter("Selling 2GB VPS for $10/yr", "Summarize offers, answer FALSE otherwise")
        'Cheap 2GB VPS yearly deal'
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        model: str,
        timeout: float = CLASSIFIER_TIMEOUT_SECONDS,
    ):
        self.api_url = api_url
        self.model = model
        # No SDK-level retries: a failed call means the item is not dispatched
        try:
            self.client = openai.OpenAI(
                api_key=api_key,
                base_url=base_url_from_api_url(api_url),
                timeout=timeout,
                max_retries=0,
            )
        except openai.OpenAIError as e:
            raise ClassifierError(f"Cannot create OpenAI client: {e}") from e

    @classmethod
    def from_config(cls, config) -> "OpenAIClassifier":
        return cls(config.openai_api_url, config.openai_api_key, config.openai_model)

    def _complete(self, content: str, prompt: str) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": prompt},
                    {"role": "user", "content": content},
                ],
            )
        except openai.OpenAIError as e:
            logger.error(
                "openai_api_error",
                error_type=type(e).__name__,
                error_message=str(e),
                model=self.model,
                content_length=len(content),
            )
            raise ClassifierError(f"OpenAI-compatible API call failed: {e}") from e

        if not response.choices:
            raise ClassifierError("OpenAI-compatible API returned no choices")

        text = response.choices[0].message.content or ""

        usage = getattr(response, "usage", None)
        logger.debug(
            "openai_chat_completion_success",
            model=self.model,
            prompt_tokens=getattr(usage, "prompt_tokens", None),
            completion_tokens=getattr(usage, "completion_tokens", None),
        )
        return text
