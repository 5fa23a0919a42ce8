"""Binary-heap priority queue with decrease-key support.

The heap is a densely packed list: the children of slot ``i`` live at
``2i + 1`` and ``2i + 2`` and its parent at ``(i - 1) // 2``. A side index maps
each queued value to its slot so :meth:`PriorityQueue.upsert` can find and
re-sift an element in O(log n).

=========  ========
operation  cost
=========  ========
insert     O(log n)
extract    O(log n)
upsert     O(log n)
peek       O(1)
size       O(1)
=========  ========
"""

from __future__ import annotations

import itertools
import operator
from typing import Any, Callable, Dict, Hashable, List, Optional

from .errors import EmptyQueueError

Comparator = Callable[[Any, Any], bool]


class _HeapNode:
    __slots__ = ("priority", "seq", "value")

    def __init__(self, priority: Any, seq: int, value: Hashable) -> None:
        self.priority = priority
        self.seq = seq
        self.value = value


class PriorityQueue:
    """Priority queue ordered by ``comparator(a, b)`` meaning "a comes first".

    The default comparator is ``operator.lt``, so smaller priorities rise to
    the top. Pass ``operator.gt`` for a max-queue.
    """

    def __init__(self, comparator: Optional[Comparator] = None) -> None:
        self._before: Comparator = comparator or operator.lt
        self._nodes: List[_HeapNode] = []
        self._slots: Dict[Hashable, int] = {}
        self._counter = itertools.count()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def insert(self, priority: Any, value: Hashable) -> None:
        if value in self._slots:
            raise ValueError(f"{value!r} is already queued; use upsert() to change its priority")
        self._nodes.append(_HeapNode(priority, next(self._counter), value))
        self._slots[value] = len(self._nodes) - 1
        self._move_up(len(self._nodes) - 1)

    def upsert(self, priority: Any, value: Hashable) -> None:
        """Insert *value*, or move it to *priority* if it is already queued."""
        index = self._slots.get(value)
        if index is None:
            self.insert(priority, value)
            return
        self._nodes[index].priority = priority
        index = self._move_up(index)
        self._move_down(index)

    def extract_top(self) -> Any:
        """Remove and return the value at the top of the heap."""
        if not self._nodes:
            raise EmptyQueueError("extract_top() called on an empty priority queue")
        root = self._nodes[0]
        last = self._nodes.pop()
        del self._slots[root.value]
        if self._nodes:
            self._nodes[0] = last
            self._slots[last.value] = 0
            self._move_down(0)
        return root.value

    def clear(self) -> None:
        self._nodes.clear()
        self._slots.clear()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def peek(self) -> Any:
        """Value at the top of the heap, or ``None`` when empty."""
        return self._nodes[0].value if self._nodes else None

    def peek_priority(self) -> Any:
        return self._nodes[0].priority if self._nodes else None

    def contains(self, value: Hashable) -> bool:
        return value in self._slots

    def size(self) -> int:
        return len(self._nodes)

    def is_empty(self) -> bool:
        return not self._nodes

    def values(self) -> List[Any]:
        """Queued values in heap-array order (not priority order)."""
        return [node.value for node in self._nodes]

    def priorities(self) -> List[Any]:
        return [node.priority for node in self._nodes]

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, value: Hashable) -> bool:
        return value in self._slots

    def __bool__(self) -> bool:
        return bool(self._nodes)

    # ------------------------------------------------------------------
    # Heap maintenance
    # ------------------------------------------------------------------

    def _precedes(self, a: _HeapNode, b: _HeapNode) -> bool:
        if self._before(a.priority, b.priority):
            return True
        if self._before(b.priority, a.priority):
            return False
        return a.seq < b.seq

    def _place(self, index: int, node: _HeapNode) -> None:
        self._nodes[index] = node
        self._slots[node.value] = index

    def _move_up(self, index: int) -> int:
        node = self._nodes[index]
        while index > 0:
            parent = (index - 1) >> 1
            if not self._precedes(node, self._nodes[parent]):
                break
            self._place(index, self._nodes[parent])
            index = parent
        self._place(index, node)
        return index

    def _move_down(self, index: int) -> int:
        count = len(self._nodes)
        node = self._nodes[index]
        while index < count >> 1:
            left = 2 * index + 1
            right = left + 1
            child = right if right < count and self._precedes(self._nodes[right], self._nodes[left]) else left
            if not self._precedes(self._nodes[child], node):
                break
            self._place(index, self._nodes[child])
            index = child
        self._place(index, node)
        return index
