"""
Search-Path Registry and Dependency Set
=========================================

Both collections are ordered, deduplicated sets of strings where the most
recently inserted entry comes first on iteration.  The registry decides
search priority (a directory added later outranks everything added before
it); the dependency set is emitted in the same newest-first order.
"""

from __future__ import annotations

import os
from typing import Iterable, Iterator, Optional


class _OrderedSet:
    """Insertion-ordered string set iterated newest first."""

    def __init__(self, items: Iterable[str] = ()) -> None:
        self._items: dict[str, None] = {}
        for item in items:
            self.add(item)

    def add(self, item: str) -> bool:
        """Insert *item* if absent.

        Returns:
            ``True`` if the item was new.  Re-adding keeps its original
            position.
        """
        if item in self._items:
            return False
        self._items[item] = None
        return True

    def contains(self, item: str) -> bool:
        return item in self._items

    __contains__ = contains

    def __iter__(self) -> Iterator[str]:
        return reversed(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({list(self)!r})"


class SearchPathRegistry(_OrderedSet):
    """Prioritised, deduplicated library search directories."""

    def register_defaults(self, dirs: Iterable[str]) -> None:
        """Seed the registry with platform defaults, lowest priority first."""
        for directory in dirs:
            self.add(directory)

    def search(self, name: str) -> Optional[str]:
        """Return the first readable ``<dir>/<name>`` in priority order.

        A name containing ``/`` is a path in its own right and is checked
        as-is.
        """
        if "/" in name:
            return name if os.access(name, os.R_OK) else None
        for directory in self:
            candidate = os.path.join(directory, name)
            if os.access(candidate, os.R_OK):
                return candidate
        return None


class DependencySet(_OrderedSet):
    """Resolved interpreter and library paths of one run."""
