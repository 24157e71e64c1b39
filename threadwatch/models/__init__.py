"""Forum data models (Thread, Comment)."""

from threadwatch.models.forum_models import Comment, Thread, utc_now

__all__ = ["Comment", "Thread", "utc_now"]
