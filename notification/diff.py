"""Diff of append-only keyed maps (e.g. a group's chat_log)."""

from typing import List, Mapping, Optional, Tuple, TypeVar

T = TypeVar('T')


def new_entries(
    before: Optional[Mapping[str, T]],
    after: Optional[Mapping[str, T]]
) -> List[Tuple[str, T]]:
    """
    Return the (key, record) pairs whose key is in `after` but not in `before`.

    Order follows iteration order of `after`. A missing or empty `before`
    makes every entry of `after` new. An empty result means nothing changed.
    """
    if not after:
        return []
    previous = before or {}
    return [(key, record) for key, record in after.items() if key not in previous]
