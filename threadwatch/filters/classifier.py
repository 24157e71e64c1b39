"""Remote classifier stage of the filter pipeline.

A classifier sends the item content to a hosted LLM together with a system
prompt and returns the model's text. The prompt asks the model to answer
``FALSE`` for uninteresting items and otherwise to write a short summary
followed by ``END``. Anything after the first ``END`` is discarded.

Backends register themselves by name in CLASSIFIER_BACKENDS and are built
from configuration by ``create_classifier``.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict

from threadwatch.backend.utils.errors import ConfigError

CLASSIFIER_TIMEOUT_SECONDS = 60

RESULT_TERMINATOR = "END"

CLASSIFIER_BACKENDS: Dict[str, Callable[[Any], "ClassifierFilter"]] = {}


def register_classifier(name: str):
    """Class decorator adding a backend to the registry under ``name``."""
    def decorator(cls):
        CLASSIFIER_BACKENDS[name] = cls.from_config
        cls.provider = name
        return cls
    return decorator


def clean_result(text: str) -> str:
    """Truncate at the first literal END and strip whitespace."""
    text = text or ""
    idx = text.find(RESULT_TERMINATOR)
    if idx >= 0:
        text = text[:idx]
    return text.strip()


class ClassifierFilter(ABC):
    """Base class for classifier backends.

    Subclasses implement ``_complete`` to perform the remote call and
    ``from_config`` to build themselves from a MonitorConfig.
    """

    provider = ""

    def filter(self, content: str, prompt: str) -> str:
        """Classify ``content`` under ``prompt`` and return the cleaned text.

        Raises:
            ClassifierError: The remote call failed or returned no usable text
        """
        return clean_result(self._complete(content, prompt))

    @staticmethod
    def is_valid_result(text: str) -> bool:
        """False only when the model answered FALSE."""
        return (text or "").strip().upper() != "FALSE"

    @abstractmethod
    def _complete(self, content: str, prompt: str) -> str:
        """Return the raw model output."""

    @classmethod
    @abstractmethod
    def from_config(cls, config) -> "ClassifierFilter":
        """Build the backend from configuration."""


def create_classifier(config) -> ClassifierFilter:
    """Build the classifier selected by ``config.ai_provider``.

    Raises:
        ConfigError: Unknown provider
    """
    factory = CLASSIFIER_BACKENDS.get(config.ai_provider)
    if factory is None:
        raise ConfigError(
            f"Unsupported AI provider '{config.ai_provider}'. "
            f"Must be one of: {', '.join(sorted(CLASSIFIER_BACKENDS))}"
        )
    return factory(config)
