"""In-memory frames and the page table that maps file pages onto them."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Optional

from pagestore.lru_replacer import LRUReplacer, Replacer

PAGE_SIZE = 4096
PAGE_NUM_SIZE = 4
PAGE_DATA_SIZE = PAGE_SIZE - PAGE_NUM_SIZE
DEFAULT_BUFFER_SIZE = 50


@dataclass(eq=False)
class Frame:
    """One buffer slot holding a single page of some file."""

    dirty: bool = False
    pin_count: int = 0
    acc_time: int = 0
    file_desc: int = -1
    page_num: int = 0
    data: bytearray = field(default_factory=lambda: bytearray(PAGE_DATA_SIZE))


class BPManager:
    """Owns a fixed set of frames, a free list, an LRU replacer and a page table."""

    def __init__(self, size: int = DEFAULT_BUFFER_SIZE) -> None:
        self.size = size
        self.frames: list[Frame] = [Frame() for _ in range(size)]
        self._index_of = {id(frame): index for index, frame in enumerate(self.frames)}
        self.free_list: deque[int] = deque(range(size))
        self.replacer: Replacer = LRUReplacer(size)
        self.page_table: dict[int, dict[int, int]] = {}

    def alloc(self) -> Optional[Frame]:
        """Hand out a pinned frame, evicting one if needed; None when all are pinned.

        An evicted frame keeps its file descriptor, page number and dirty flag so
        that the caller can write it back before reusing it.
        """
        if self.free_list:
            frame_id = self.free_list.popleft()
        else:
            frame_id = self.replacer.victim()
            if frame_id is None:
                return None
            evicted = self.frames[frame_id]
            self.delete_page_table(evicted.file_desc, evicted.page_num)
        self.replacer.pin(frame_id)
        return self.frames[frame_id]

    def get(self, file_desc: int, page_num: int) -> Optional[Frame]:
        """Return the frame holding the given page, or None if it is not loaded."""
        frame_id = self.page_table.get(file_desc, {}).get(page_num)
        if frame_id is None:
            return None
        return self.frames[frame_id]

    def delete_frame(self, file_desc: int, page_num: int, frame_id: int) -> None:
        """Drop a page from the table and return its frame to the free list."""
        # Pinning keeps the frame out of the replacer while it sits on the free list.
        self.replacer.pin(frame_id)
        self.delete_page_table(file_desc, page_num)
        self.free_list.append(frame_id)

    def frame_id(self, frame: Frame) -> int:
        """Index of a frame owned by this manager."""
        try:
            return self._index_of[id(frame)]
        except KeyError:
            raise ValueError("frame does not belong to this buffer manager") from None

    def add_page_table(self, file_desc: int, page_num: int, frame_id: int) -> None:
        self.page_table.setdefault(file_desc, {})[page_num] = frame_id

    def delete_page_table(self, file_desc: int, page_num: int) -> None:
        pages = self.page_table.get(file_desc)
        if pages is None:
            return
        pages.pop(page_num, None)
        if not pages:
            del self.page_table[file_desc]