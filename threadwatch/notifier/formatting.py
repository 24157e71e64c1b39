"""Plain-text message templates for thread and comment notifications."""

from datetime import datetime, timezone

from threadwatch.models.forum_models import Comment, Thread

DISPLAY_LIMIT = 200
TIME_FORMAT = "%Y/%m/%d %H:%M"


def truncate(text: str, limit: int = DISPLAY_LIMIT) -> str:
    """Cut ``text`` to ``limit`` characters, marking the cut with "..."."""
    text = text or ""
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def format_time(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(TIME_FORMAT)


def format_thread_message(thread: Thread, annotation: str = "") -> str:
    """Render the new-thread notification.

    Example:
        LOWENDTALK new thread
        Title: 2GB VPS $10/yr
        Author: hostco
        Time: 2026/10/18 09:30

        Yearly KVM deal in Dallas

        https://lowendtalk.com/discussion/123/2gb-vps
    """
    lines = [
        f"{thread.domain.upper()} new thread",
        f"Title: {thread.title}",
        f"Author: {thread.creator}",
        f"Time: {format_time(thread.publish_time)}",
        "",
    ]
    if annotation:
        lines += [truncate(annotation), ""]
    lines.append(thread.link)
    return "\n".join(lines)


def format_comment_message(thread: Thread, comment: Comment, annotation: str = "") -> str:
    """Render the new-comment notification; the body is truncated here, never in storage."""
    lines = [
        f"{thread.domain.upper()} new comment",
        f"Author: {comment.author}",
        f"Time: {format_time(comment.created_time)}",
        "",
        truncate(comment.message),
        "",
    ]
    if annotation:
        lines += [truncate(annotation), ""]
    lines.append(comment.permalink)
    return "\n".join(lines)
