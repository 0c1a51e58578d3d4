"""Paged files whose pages are cached in a fixed pool of in-memory frames."""

from __future__ import annotations

import enum
import functools
import os
import struct
import time
from collections import deque
from dataclasses import dataclass
from typing import BinaryIO

from pagestore.bp_manager import (
    DEFAULT_BUFFER_SIZE,
    PAGE_DATA_SIZE,
    PAGE_SIZE,
    BPManager,
    Frame,
)

DEFAULT_MAX_OPEN_FILES = 1024

_PAGE_NUM = struct.Struct("<i")
_SUB_HEADER = struct.Struct("<ii")
FILE_SUB_HEADER_SIZE = _SUB_HEADER.size
MAX_PAGES_PER_FILE = (PAGE_DATA_SIZE - FILE_SUB_HEADER_SIZE) * 8


class BufferPoolErrorCode(enum.Enum):
    FILE_EXISTS = "file already exists"
    FILE_ERROR = "file error"
    IO_ACCESS = "cannot access file"
    IO_ERROR = "i/o error"
    IO_READ = "read error"
    IO_WRITE = "write error"
    IO_CLOSE = "close error"
    TOO_MANY_FILES = "too many open files"
    NO_MEMORY = "no free frame"
    ILLEGAL_FILE_ID = "illegal file id"
    INVALID_PAGE_NUM = "invalid page number"
    PAGE_PINNED = "page is pinned"
    CLOSED = "page handle is closed"
    LOCKED = "frame is pinned"


class BufferPoolError(Exception):
    """A buffer pool operation failed; ``code`` tells why."""

    def __init__(self, code: BufferPoolErrorCode, message: str = "") -> None:
        super().__init__(f"{code.value}: {message}" if message else code.value)
        self.code = code


@dataclass(eq=False)
class PageHandle:
    """A pinned page handed out by the pool."""

    frame: Frame
    open: bool = True

    def _ensure_open(self) -> None:
        if not self.open:
            raise BufferPoolError(BufferPoolErrorCode.CLOSED)

    @property
    def page_num(self) -> int:
        self._ensure_open()
        return self.frame.page_num

    @property
    def data(self) -> bytearray:
        """The page's data area; writes go straight to the cached page."""
        self._ensure_open()
        return self.frame.data


@dataclass(eq=False)
class _FileHandle:
    file_name: str
    file: BinaryIO
    file_desc: int
    hdr_frame: Frame

    @property
    def page_count(self) -> int:
        return _SUB_HEADER.unpack_from(self.hdr_frame.data, 0)[0]

    @property
    def allocated_pages(self) -> int:
        return _SUB_HEADER.unpack_from(self.hdr_frame.data, 0)[1]

    def set_counts(self, page_count: int, allocated_pages: int) -> None:
        _SUB_HEADER.pack_into(self.hdr_frame.data, 0, page_count, allocated_pages)

    def is_allocated(self, page_num: int) -> bool:
        byte, bit = divmod(page_num, 8)
        return bool(self.hdr_frame.data[FILE_SUB_HEADER_SIZE + byte] & (1 << bit))

    def mark_allocated(self, page_num: int, allocated: bool) -> None:
        byte, bit = divmod(page_num, 8)
        index = FILE_SUB_HEADER_SIZE + byte
        if allocated:
            self.hdr_frame.data[index] |= 1 << bit
        else:
            self.hdr_frame.data[index] &= ~(1 << bit) & 0xFF


def _page_bytes(frame: Frame) -> bytes:
    return _PAGE_NUM.pack(frame.page_num) + bytes(frame.data)


class DiskBufferPool:
    """Opens paged files and caches their pages in a shared set of frames."""

    def __init__(
        self,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        max_open_files: int = DEFAULT_MAX_OPEN_FILES,
    ) -> None:
        self.max_open_files = max_open_files
        self._bp = BPManager(buffer_size)
        self._free_file_ids: deque[int] = deque(range(max_open_files))
        self._open_files: dict[int, _FileHandle] = {}
        self._file_name_ids: dict[str, int] = {}
        self._files_by_desc: dict[int, BinaryIO] = {}
        self._next_desc = 0

    def create_file(self, file_name: str) -> None:
        """Create a paged file holding only its header page."""
        header = bytearray(PAGE_DATA_SIZE)
        _SUB_HEADER.pack_into(header, 0, 1, 1)
        header[FILE_SUB_HEADER_SIZE] |= 0x01
        try:
            with open(file_name, "xb") as file:
                file.write(_PAGE_NUM.pack(0) + bytes(header))
        except FileExistsError:
            raise BufferPoolError(BufferPoolErrorCode.FILE_EXISTS, file_name) from None
        except OSError as exc:
            raise BufferPoolError(BufferPoolErrorCode.IO_WRITE, str(exc)) from exc

    def drop_file(self, file_name: str) -> None:
        try:
            os.unlink(file_name)
        except OSError as exc:
            raise BufferPoolError(BufferPoolErrorCode.IO_ERROR, str(exc)) from exc

    def open_file(self, file_name: str) -> int:
        """Open a paged file and return its file id; an open file keeps its id."""
        if file_name is None:
            raise BufferPoolError(BufferPoolErrorCode.FILE_ERROR, "no file name")
        if file_name in self._file_name_ids:
            return self._file_name_ids[file_name]
        if not self._free_file_ids:
            raise BufferPoolError(BufferPoolErrorCode.TOO_MANY_FILES, file_name)
        try:
            file = open(file_name, "r+b")
        except OSError as exc:
            raise BufferPoolError(BufferPoolErrorCode.IO_ACCESS, str(exc)) from exc

        try:
            hdr_frame = self._allocate_block()
        except BufferPoolError:
            file.close()
            raise
        file_desc = self._next_desc
        self._next_desc += 1
        handle = _FileHandle(file_name, file, file_desc, hdr_frame)
        hdr_frame.dirty = False
        hdr_frame.file_desc = file_desc
        hdr_frame.pin_count = 1
        hdr_frame.page_num = 0
        try:
            self._load_page(0, handle, hdr_frame)
        except BufferPoolError:
            hdr_frame.pin_count = 0
            self._dispose_block(hdr_frame)
            file.close()
            raise
        self._files_by_desc[file_desc] = file
        self._bp.add_page_table(file_desc, 0, self._bp.frame_id(hdr_frame))

        file_id = self._free_file_ids.popleft()
        self._open_files[file_id] = handle
        self._file_name_ids[file_name] = file_id
        return file_id

    def close_file(self, file_id: int) -> None:
        """Write back the file's pages, drop them from memory and close it."""
        handle = self._check_file_id(file_id)
        handle.hdr_frame.pin_count -= 1
        try:
            self._force_all_pages(handle)
        except BufferPoolError:
            handle.hdr_frame.pin_count += 1
            raise
        try:
            handle.file.close()
        except OSError as exc:
            raise BufferPoolError(BufferPoolErrorCode.IO_CLOSE, str(exc)) from exc
        self._files_by_desc.pop(handle.file_desc, None)
        self._free_file_ids.append(file_id)
        del self._open_files[file_id]
        del self._file_name_ids[handle.file_name]

    def get_this_page(self, file_id: int, page_num: int) -> PageHandle:
        """Pin an allocated page in memory, loading it if needed."""
        handle = self._check_file_id(file_id)
        self._check_page_num(page_num, handle)

        frame = self._bp.get(handle.file_desc, page_num)
        if frame is not None:
            frame.pin_count += 1
            self._bp.replacer.pin(self._bp.frame_id(frame))
            return PageHandle(frame)

        frame = self._allocate_block()
        frame.dirty = False
        frame.file_desc = handle.file_desc
        frame.pin_count = 1
        frame.page_num = page_num
        try:
            self._load_page(page_num, handle, frame)
        except BufferPoolError:
            frame.pin_count = 0
            self._dispose_block(frame)
            raise
        self._bp.add_page_table(handle.file_desc, page_num, self._bp.frame_id(frame))
        return PageHandle(frame)

    def allocate_page(self, file_id: int) -> PageHandle:
        """Pin a free page of the file, extending the file if it has none."""
        handle = self._check_file_id(file_id)
        page_count = handle.page_count
        allocated = handle.allocated_pages

        if allocated < page_count:
            free_page = next(
                (i for i in range(page_count) if not handle.is_allocated(i)), None
            )
            if free_page is not None:
                handle.set_counts(page_count, allocated + 1)
                handle.mark_allocated(free_page, True)
                handle.hdr_frame.dirty = True
                return self.get_this_page(file_id, free_page)

        if page_count >= MAX_PAGES_PER_FILE:
            raise BufferPoolError(BufferPoolErrorCode.NO_MEMORY, "file is full")

        frame = self._allocate_block()
        page_num = page_count
        handle.set_counts(page_count + 1, allocated + 1)
        handle.mark_allocated(page_num, True)
        handle.hdr_frame.dirty = True

        frame.dirty = False
        frame.file_desc = handle.file_desc
        frame.pin_count = 1
        frame.acc_time = time.monotonic_ns()
        frame.data[:] = bytes(PAGE_DATA_SIZE)
        frame.page_num = page_num
        self._bp.add_page_table(handle.file_desc, page_num, self._bp.frame_id(frame))
        self._flush_block(frame)
        return PageHandle(frame)

    def mark_dirty(self, page_handle: PageHandle) -> None:
        page_handle.frame.dirty = True

    def unpin_page(self, page_handle: PageHandle) -> None:
        """Release a pin; a page with no pins may be evicted."""
        page_handle.open = False
        frame = page_handle.frame
        if frame.pin_count > 0:
            frame.pin_count -= 1
            if frame.pin_count == 0:
                self._bp.replacer.unpin(self._bp.frame_id(frame))

    def dispose_page(self, file_id: int, page_num: int) -> None:
        """Free a loaded, unpinned page so it can be allocated again."""
        handle = self._check_file_id(file_id)
        self._check_page_num(page_num, handle)
        frame = self._bp.get(handle.file_desc, page_num)
        if frame is None or frame.pin_count != 0:
            raise BufferPoolError(BufferPoolErrorCode.PAGE_PINNED, f"page {page_num}")
        self._bp.delete_frame(handle.file_desc, page_num, self._bp.frame_id(frame))
        handle.hdr_frame.dirty = True
        handle.set_counts(handle.page_count, handle.allocated_pages - 1)
        handle.mark_allocated(page_num, False)

    def force_page(self, file_id: int, page_num: int = -1) -> None:
        """Write back a page and drop it from memory; -1 means every page."""
        handle = self._check_file_id(file_id)
        if page_num == -1:
            pages = dict(self._bp.page_table.get(handle.file_desc, {}))
            for num, frame_id in pages.items():
                frame = self._bp.frames[frame_id]
                if frame.pin_count != 0:
                    raise BufferPoolError(BufferPoolErrorCode.PAGE_PINNED, f"page {num}")
                if frame.dirty:
                    self._flush_block(frame)
            for num, frame_id in pages.items():
                self._bp.delete_frame(handle.file_desc, num, frame_id)
            return

        frame = self._bp.get(handle.file_desc, page_num)
        if frame is None:
            return
        if frame.pin_count != 0:
            raise BufferPoolError(BufferPoolErrorCode.PAGE_PINNED, f"page {page_num}")
        if frame.dirty:
            self._flush_block(frame)
        self._bp.delete_frame(handle.file_desc, page_num, self._bp.frame_id(frame))

    def get_page_count(self, file_id: int) -> int:
        return self._check_file_id(file_id).page_count

    def flush_all_pages(self, file_id: int) -> None:
        """Write back every dirty page of the file and drop unpinned ones."""
        self._force_all_pages(self._check_file_id(file_id))

    def _force_all_pages(self, handle: _FileHandle) -> None:
        pages = dict(self._bp.page_table.get(handle.file_desc, {}))
        for page_num, frame_id in pages.items():
            frame = self._bp.frames[frame_id]
            if frame.dirty:
                self._flush_block(frame)
            if frame.pin_count == 0:
                self._bp.delete_frame(handle.file_desc, page_num, frame_id)

    def _flush_block(self, frame: Frame) -> None:
        file = self._files_by_desc.get(frame.file_desc)
        if file is None:
            raise BufferPoolError(BufferPoolErrorCode.IO_WRITE, "file is not open")
        try:
            file.seek(frame.page_num * PAGE_SIZE)
            written = file.write(_page_bytes(frame))
            file.flush()
        except OSError as exc:
            raise BufferPoolError(BufferPoolErrorCode.IO_WRITE, str(exc)) from exc
        if written != PAGE_SIZE:
            raise BufferPoolError(BufferPoolErrorCode.IO_WRITE, "short write")
        frame.dirty = False

    def _allocate_block(self) -> Frame:
        frame = self._bp.alloc()
        if frame is None:
            raise BufferPoolError(
                BufferPoolErrorCode.NO_MEMORY, "all frames are in use and pinned"
            )
        if frame.dirty:
            self._flush_block(frame)
        return frame

    def _dispose_block(self, frame: Frame) -> None:
        if frame.pin_count != 0:
            raise BufferPoolError(BufferPoolErrorCode.LOCKED, f"page {frame.page_num}")
        if frame.dirty:
            self._flush_block(frame)
        frame.dirty = False
        self._bp.delete_frame(frame.file_desc, frame.page_num, self._bp.frame_id(frame))

    def _check_file_id(self, file_id: int) -> _FileHandle:
        if not 0 <= file_id < self.max_open_files or file_id not in self._open_files:
            raise BufferPoolError(BufferPoolErrorCode.ILLEGAL_FILE_ID, str(file_id))
        return self._open_files[file_id]

    def _check_page_num(self, page_num: int, handle: _FileHandle) -> None:
        if (
            page_num < 0
            or page_num >= handle.page_count
            or not handle.is_allocated(page_num)
        ):
            raise BufferPoolError(
                BufferPoolErrorCode.INVALID_PAGE_NUM,
                f"page {page_num} of {handle.file_name}",
            )

    def _load_page(self, page_num: int, handle: _FileHandle, frame: Frame) -> None:
        try:
            handle.file.seek(page_num * PAGE_SIZE)
            raw = handle.file.read(PAGE_SIZE)
        except OSError as exc:
            raise BufferPoolError(BufferPoolErrorCode.IO_READ, str(exc)) from exc
        if len(raw) != PAGE_SIZE:
            raise BufferPoolError(
                BufferPoolErrorCode.IO_READ, f"page {page_num} of {handle.file_name}"
            )
        frame.page_num = _PAGE_NUM.unpack_from(raw, 0)[0]
        frame.data[:] = raw[_PAGE_NUM.size:]


@functools.lru_cache(maxsize=None)
def global_disk_buffer_pool() -> DiskBufferPool:
    """The buffer pool shared by the whole process."""
    return DiskBufferPool()