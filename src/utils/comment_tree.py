"""Threaded comment assembly for public and admin comment listings."""
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol, Sequence

ALL_STATUSES = "all"


class CommentLike(Protocol):
    id: int
    parent_comment_id: int | None
    status: Any
    created_at: datetime


@dataclass
class CommentNode:
    comment: Any
    replies: list["CommentNode"] = field(default_factory=list)


@dataclass
class PageInfo:
    current_page: int
    total_pages: int
    total_comments: int
    has_next_page: bool
    has_prev_page: bool


@dataclass
class CommentTreePage:
    comments: list[CommentNode]
    pagination: PageInfo


def _status_value(status: Any) -> str:
    return getattr(status, "value", status)


def _sort_key(comment: CommentLike) -> datetime:
    # SQLite hands back naive datetimes, freshly built rows carry tzinfo
    created = comment.created_at
    if created.tzinfo is None:
        return created.replace(tzinfo=timezone.utc)
    return created


def paginate(total: int, page: int, limit: int) -> PageInfo:
    total_pages = math.ceil(total / limit) if limit else 0
    return PageInfo(
        current_page=page,
        total_pages=total_pages,
        total_comments=total,
        has_next_page=page < total_pages,
        has_prev_page=page > 1,
    )


def build_comment_tree(
    comments: Sequence[CommentLike],
    status: str = "approved",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 10,
) -> CommentTreePage:
    """
    Filter, sort and paginate a flat comment list, then nest replies.

    Pagination is applied to the flat filtered list *before* nesting, so the
    page window is counted in comments, not in threads. A reply whose parent
    falls outside the window (on another page, or deleted) is returned as a
    root node of this page. Totals always describe the whole filtered set.
    """
    if page < 1 or limit < 1:
        raise ValueError("page and limit must be positive")

    if status == ALL_STATUSES:
        matching = list(comments)
    else:
        matching = [c for c in comments if _status_value(c.status) == status]

    matching.sort(key=_sort_key, reverse=(sort_order == "desc"))

    start = (page - 1) * limit
    window = matching[start:start + limit]

    nodes = {c.id: CommentNode(comment=c) for c in window}
    roots: list[CommentNode] = []
    for c in window:
        node = nodes[c.id]
        parent = nodes.get(c.parent_comment_id) if c.parent_comment_id is not None else None
        if parent is not None and parent is not node:
            parent.replies.append(node)
        else:
            roots.append(node)

    return CommentTreePage(
        comments=roots,
        pagination=paginate(len(matching), page, limit),
    )
