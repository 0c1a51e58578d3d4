"""Frame replacement policies for the buffer pool."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Optional


class Replacer(ABC):
    """Tracks which frames may be evicted and picks a victim among them."""

    @abstractmethod
    def victim(self) -> Optional[int]:
        """Remove and return the frame chosen for eviction, or None if there is none."""

    @abstractmethod
    def pin(self, frame_id: int) -> None:
        """Mark a frame as in use so that it is never chosen as a victim."""

    @abstractmethod
    def unpin(self, frame_id: int) -> None:
        """Mark a frame as evictable."""

    @abstractmethod
    def __len__(self) -> int:
        """Number of frames that may currently be evicted."""


class LRUReplacer(Replacer):
    """Evicts the frame that was unpinned least recently."""

    def __init__(self, capacity: int) -> None:
        self.capacity = capacity
        # Ordered from oldest (first) to newest (last).
        self._frames: OrderedDict[int, None] = OrderedDict()

    def victim(self) -> Optional[int]:
        if not self._frames:
            return None
        frame_id, _ = self._frames.popitem(last=False)
        return frame_id

    def pin(self, frame_id: int) -> None:
        self._frames.pop(frame_id, None)

    def unpin(self, frame_id: int) -> None:
        if frame_id not in self._frames:
            self._frames[frame_id] = None
        if len(self._frames) > self.capacity:
            self._frames.popitem(last=False)

    def __len__(self) -> int:
        return len(self._frames)

    def __contains__(self, frame_id: object) -> bool:
        return frame_id in self._frames