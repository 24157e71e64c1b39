"""Filter pipeline composing the keyword and classifier stages.

Threads only go through the classifier stage. Comments go through the
keyword stage first and then the classifier stage. A classifier failure
rejects the item; it is never fatal to the cycle.
"""

from dataclasses import dataclass
from typing import Optional

from threadwatch.backend.utils.errors import ClassifierError
from threadwatch.backend.utils.logging_config import get_logger
from threadwatch.filters.classifier import ClassifierFilter, create_classifier
from threadwatch.filters.keywords import KeywordFilter
from threadwatch.models.forum_models import Comment, Thread

logger = get_logger(__name__)

REASON_ACCEPTED = "accepted"
REASON_KEYWORDS_MISMATCH = "keywords_mismatch"
REASON_CLASSIFIER_REJECTED = "classifier_rejected"
REASON_CLASSIFIER_ERROR = "classifier_error"


@dataclass(frozen=True)
class Verdict:
    """Outcome of running an item through the pipeline.

    Attributes:
        accepted: Whether the item should be dispatched
        annotation: Classifier summary to include in the message ("" if none)
        reason: One of the REASON_* constants
        error: Failure message when reason is REASON_CLASSIFIER_ERROR
    """
    accepted: bool
    annotation: str = ""
    reason: str = REASON_ACCEPTED
    error: Optional[str] = None


class FilterPipeline:
    def __init__(
        self,
        keyword_filter: Optional[KeywordFilter] = None,
        classifier: Optional[ClassifierFilter] = None,
        thread_prompt: str = "",
        comment_prompt: str = "",
    ):
        self.keyword_filter = keyword_filter
        self.classifier = classifier
        self.thread_prompt = thread_prompt
        self.comment_prompt = comment_prompt

    def evaluate_thread(self, thread: Thread) -> Verdict:
        return self._classify(thread.content, self.thread_prompt, link=thread.link)

    def evaluate_comment(self, comment: Comment) -> Verdict:
        if self.keyword_filter is not None and not self.keyword_filter.match(comment.message):
            return Verdict(accepted=False, reason=REASON_KEYWORDS_MISMATCH)
        return self._classify(comment.message, self.comment_prompt, comment_id=comment.comment_id)

    def _classify(self, content: str, prompt: str, **context) -> Verdict:
        if self.classifier is None:
            return Verdict(accepted=True)

        try:
            result = self.classifier.filter(content, prompt)
        except ClassifierError as e:
            logger.warning("classifier_failed", error=str(e), **context)
            return Verdict(accepted=False, reason=REASON_CLASSIFIER_ERROR, error=str(e))

        if not self.classifier.is_valid_result(result):
            logger.debug("classifier_rejected", **context)
            return Verdict(accepted=False, reason=REASON_CLASSIFIER_REJECTED)

        return Verdict(accepted=True, annotation=result)


def build_pipeline(config) -> FilterPipeline:
    """Assemble the pipeline enabled by a MonitorConfig.

    Raises:
        ConfigError: The selected classifier provider is unknown
    """
    keyword_filter = None
    if config.use_keywords_filter:
        keyword_filter = KeywordFilter(config.keywords_rule)

    classifier = None
    if config.use_ai_filter:
        classifier = create_classifier(config)

    return FilterPipeline(
        keyword_filter=keyword_filter,
        classifier=classifier,
        thread_prompt=config.thread_prompt,
        comment_prompt=config.comment_prompt,
    )
