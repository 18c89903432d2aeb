"""Predicate search over JSON-like trees.

The TweetDetail response nests media descriptors at varying depth behind
versioned wrapper types, so extraction matches nodes by shape instead of
walking a fixed field path.
"""

from __future__ import annotations

from typing import Any, Callable, List, Optional

Predicate = Callable[[Any], bool]


def find_structure(value: Any, predicate: Predicate) -> Optional[List[Any]]:
    """Return every subtree of ``value`` satisfying ``predicate``.

    Matched nodes are not searched further, but siblings elsewhere in the tree
    are. Strings are leaves and never matched or inspected. Returns ``None``
    (never an empty list) when nothing matches.
    """
    if value is None or isinstance(value, str):
        return None
    if predicate(value):
        return [value]

    if isinstance(value, (list, tuple)):
        children = value
    elif isinstance(value, dict):
        children = value.values()
    else:
        # number, bool or anything else opaque
        return None

    results: List[Any] = []
    for child in children:
        found = find_structure(child, predicate)
        if found is not None:
            results.extend(found)
    return results or None


def is_video_node(node: Any) -> bool:
    return isinstance(node, dict) and node.get("type") == "video"


TWEET_TYPENAMES = ("Tweet", "TweetWithVisibilityResults")


def is_tweet_node(node: Any) -> bool:
    return isinstance(node, dict) and node.get("__typename") in TWEET_TYPENAMES
