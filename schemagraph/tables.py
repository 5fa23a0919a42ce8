"""Multi-key associative indexes.

``Table`` maps ``row -> col -> value`` and ``HyperTable`` maps
``x -> y -> z -> value``. Both keep insertion order at every level and treat
a missing key prefix as "not found" instead of raising.
"""

from __future__ import annotations

from typing import Any, Dict, Hashable, Iterator, Optional, Tuple

_MISSING = object()


class _NestedIndex:
    depth = 2

    def __init__(self) -> None:
        self._root: Dict[Hashable, Any] = {}

    def set(self, *args: Any) -> None:
        if len(args) != self.depth + 1:
            raise TypeError(f"{type(self).__name__}.set() takes {self.depth} keys and a value")
        *keys, value = args
        level = self._root
        for key in keys[:-1]:
            level = level.setdefault(key, {})
        level[keys[-1]] = value

    def get(self, *keys: Hashable) -> Optional[Any]:
        """Value or inner mapping at the key path, ``None`` if any key is absent."""
        found = self._walk(keys)
        return None if found is _MISSING else found

    def has(self, *keys: Hashable) -> bool:
        return self._walk(keys) is not _MISSING

    def delete(self, *keys: Hashable) -> bool:
        """Remove the entry or sub-map at the key path.

        Parent maps left empty by the removal are kept.
        """
        if not keys:
            raise TypeError("delete() needs at least one key")
        parent = self._walk(keys[:-1])
        if not isinstance(parent, dict) or keys[-1] not in parent:
            return False
        del parent[keys[-1]]
        return True

    def clear(self) -> None:
        self._root.clear()

    def _walk(self, keys: Tuple[Hashable, ...]) -> Any:
        if len(keys) > self.depth:
            raise TypeError(f"{type(self).__name__} has only {self.depth} key levels")
        level: Any = self._root
        for key in keys:
            if not isinstance(level, dict) or key not in level:
                return _MISSING
            level = level[key]
        return level

    def keys(self):
        return self._root.keys()

    def values(self):
        return self._root.values()

    def items(self):
        return self._root.items()

    def __iter__(self) -> Iterator[Tuple[Hashable, Any]]:
        return iter(self._root.items())

    def __len__(self) -> int:
        return len(self._root)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._root

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._root!r})"


class Table(_NestedIndex):
    """Two-level index ``row -> col -> value``."""

    depth = 2

    def get_map(self, row: Hashable) -> Optional[Dict[Hashable, Any]]:
        return self._root.get(row)


class HyperTable(_NestedIndex):
    """Three-level index ``x -> y -> z -> value``."""

    depth = 3
