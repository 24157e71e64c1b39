"""Filter pipeline stages.

Importing the package registers the classifier backends.
"""

from threadwatch.filters import cloudflare, openai_compat  # noqa: F401
from threadwatch.filters.classifier import ClassifierFilter, create_classifier
from threadwatch.filters.keywords import KeywordFilter
from threadwatch.filters.pipeline import FilterPipeline, Verdict, build_pipeline

__all__ = [
    "ClassifierFilter",
    "FilterPipeline",
    "KeywordFilter",
    "Verdict",
    "build_pipeline",
    "create_classifier",
]
