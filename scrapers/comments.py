from __future__ import annotations

from typing import Any

COMMENT_KIND = "t1"


def listing_children(listing: Any) -> list[Any]:
    """``listing["data"]["children"]``, or [] when the shape is off."""
    if not isinstance(listing, dict):
        return []
    data = listing.get("data")
    if not isinstance(data, dict):
        return []
    children = data.get("children")
    return children if isinstance(children, list) else []


def walk_comments(children: list[Any], max_comments: int) -> list[dict[str, Any]]:
    """Flatten a reply tree depth-first (pre-order), stopping at ``max_comments``.

    Non-``t1`` entries such as "more" stubs are skipped without using budget.
    """
    output: list[dict[str, Any]] = []
    if max_comments > 0:
        _collect(children, output, max_comments)
    return output


def _collect(children: list[Any], output: list[dict[str, Any]], max_comments: int) -> bool:
    # Returns True once the budget is spent so every level unwinds.
    for child in children:
        if len(output) >= max_comments:
            return True
        if not isinstance(child, dict) or child.get("kind") != COMMENT_KIND:
            continue
        node = child.get("data")
        if not isinstance(node, dict):
            continue

        output.append(node)
        if len(output) >= max_comments:
            return True

        nested = listing_children(node.get("replies"))
        if nested and _collect(nested, output, max_comments):
            return True
    return False
