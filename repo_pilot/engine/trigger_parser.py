"""
Comment classification.

Turns a raw issue comment into a typed event, or discards it. Comments posted
by repo-pilot itself (they carry the signature marker) and comments from
authors outside the allow-list are never actionable.
"""

from collections.abc import Iterable

import structlog

from repo_pilot.config.settings import TriggerConfig
from repo_pilot.models.domain import EventType, RawComment, TypedEvent

log = structlog.get_logger(__name__)


def _keyword_order(triggers: TriggerConfig) -> list[tuple[EventType, str]]:
    # First match wins; a mention in an approve comment is still an approve
    return [
        (EventType.APPROVE, triggers.approve),
        (EventType.REJECT, triggers.reject),
        (EventType.ABORT, triggers.abort),
        (EventType.MENTION, triggers.mention),
    ]


def parse_comment(
    comment: RawComment,
    repo: str,
    triggers: TriggerConfig,
    allowed_authors: Iterable[str],
) -> TypedEvent | None:
    """Classify a comment.

    Args:
        comment: Comment as returned by the issue tracker
        repo: Repository the comment belongs to
        triggers: Keywords and the signature marker
        allowed_authors: Users whose comments are acted on (exact match)

    Returns:
        The typed event, or None when the comment is not actionable
    """
    if triggers.signature in comment.body:
        return None

    if comment.author not in set(allowed_authors):
        log.debug("comment_author_not_allowed", comment_id=comment.id, author=comment.author)
        return None

    body = comment.body.lower()
    for event_type, keyword in _keyword_order(triggers):
        if keyword.lower() in body:
            return TypedEvent(
                type=event_type,
                repo=repo,
                issue_number=comment.issue_number,
                source_comment_id=comment.id,
                author=comment.author,
                body=comment.body,
                created_at=comment.created_at,
            )

    return None
