from __future__ import annotations

import heapq
import itertools
import random
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

_REMOVED = object()


class PriorityQueue(Generic[T]):
    """
    Min-priority open set. Ties pop in insertion order.
    pop_random marks its entry dead instead of re-heapifying; dead entries are skipped by pop
    and dropped once they outnumber the live ones.
    """

    def __init__(self) -> None:
        self._heap: list[list] = []
        self._counter = itertools.count()
        self._live = 0

    def __len__(self) -> int:
        return self._live

    def __bool__(self) -> bool:
        return self._live > 0

    def push(self, item: T, priority: float) -> None:
        heapq.heappush(self._heap, [priority, next(self._counter), item])
        self._live += 1

    def pop(self) -> T:
        while self._heap:
            _, _, item = heapq.heappop(self._heap)
            if item is not _REMOVED:
                self._live -= 1
                return item
        raise IndexError("pop from an empty priority queue")

    def pop_random(self, rng: Optional[random.Random] = None) -> T:
        if self._live == 0:
            raise IndexError("pop from an empty priority queue")
        pick = rng if rng is not None else random
        while True:
            entry = self._heap[pick.randrange(len(self._heap))]
            if entry[2] is not _REMOVED:
                break
        item = entry[2]
        entry[2] = _REMOVED
        self._live -= 1
        self._compact()
        return item

    def _compact(self) -> None:
        if len(self._heap) <= 2 * self._live + 64:
            return
        self._heap = [entry for entry in self._heap if entry[2] is not _REMOVED]
        heapq.heapify(self._heap)
