"""Comment eligibility gate.

Decides, after a new comment has been stored, whether it may go on to the
filter pipeline. Policies:
    all        every comment
    by_author  only comments written by the thread's creator
    by_role    comments whose author role is allowed by ``role_allows``
"""

from threadwatch.backend.utils.errors import ConfigError
from threadwatch.models.forum_models import Comment, Thread

COMMENT_POLICIES = ("all", "by_author", "by_role")


def role_allows(role: str) -> bool:
    """Whether an author with forum role ``role`` is eligible.

    Every role is currently allowed, including an unknown/empty one.
    """
    return True


class CommentPolicy:
    def __init__(self, mode: str = "by_role"):
        if mode not in COMMENT_POLICIES:
            raise ConfigError(
                f"Invalid comment_filter '{mode}'. Must be one of: {', '.join(COMMENT_POLICIES)}"
            )
        self.mode = mode

    def allows(self, thread: Thread, comment: Comment) -> bool:
        if self.mode == "by_author":
            return comment.author == thread.creator
        if self.mode == "by_role":
            return role_allows(comment.role)
        return True
