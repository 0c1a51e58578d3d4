"""Record files: fixed-size records spread over the pages of a paged file.

Besides records, a page of the file can hold the overflow of a text value.
The first ``TEXT_PATCH_SIZE`` bytes of a text value stay inside its record;
the rest, up to ``TEXT_PAGE_CAPACITY`` bytes, lives on a page of its own.
"""

from __future__ import annotations

from typing import Any, Callable, Iterator, Optional, Union

from pagestore.bp_manager import PAGE_NUM_SIZE, PAGE_SIZE
from pagestore.disk_buffer_pool import (
    BufferPoolError,
    BufferPoolErrorCode,
    DiskBufferPool,
)
from pagestore.record_page import (
    RID,
    Record,
    RecordData,
    RecordError,
    RecordErrorCode,
    RecordPageHandler,
)

TEXT_PATCH_SIZE = 28
TEXT_PAGE_OFFSET = TEXT_PATCH_SIZE - PAGE_NUM_SIZE
TEXT_PAGE_CAPACITY = PAGE_SIZE - TEXT_PATCH_SIZE

TextData = Union[str, bytes, bytearray]
RecordFilter = Callable[[Record], bool]


def _c_string(data: TextData) -> bytes:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return bytes(data).split(b"\x00", 1)[0]


def _text_tail(data: TextData) -> bytes:
    """The part of a text value that is stored on its own page."""
    return _c_string(data)[TEXT_PATCH_SIZE:TEXT_PATCH_SIZE + TEXT_PAGE_CAPACITY]


class RecordFileHandler:
    """Inserts, reads, updates and deletes records of one open paged file."""

    def __init__(self, buffer_pool: DiskBufferPool, file_id: int) -> None:
        self._pool: Optional[DiskBufferPool] = buffer_pool
        self._file_id = file_id
        # Keeps the page last used for inserts pinned between calls.
        self._page_handler = RecordPageHandler()

    def __enter__(self) -> "RecordFileHandler":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self._page_handler.deinit()
        self._pool = None

    def _require_pool(self) -> DiskBufferPool:
        if self._pool is None:
            raise RecordError(RecordErrorCode.CLOSED, f"file {self._file_id}")
        return self._pool

    def _open_insert_page(self, page_num: int) -> bool:
        try:
            self._page_handler.init(self._require_pool(), self._file_id, page_num)
        except BufferPoolError as exc:
            if exc.code is BufferPoolErrorCode.INVALID_PAGE_NUM:
                return False
            raise
        return True

    def insert_record(self, data: RecordData, record_size: int) -> RID:
        """Store a record in a page with a free slot, adding a page if none has one."""
        pool = self._require_pool()
        handler = self._page_handler
        page_count = pool.get_page_count(self._file_id)

        current = handler.page_num()
        if current < 0:
            current = 0
            # Page 0 is the file header; data pages start at 1.
            if page_count >= 2 and self._open_insert_page(1):
                current = 1

        found = False
        for step in range(page_count):
            current = (current + step) % page_count
            if current == 0:
                continue
            if current != handler.page_num():
                handler.deinit()
                if not self._open_insert_page(current):
                    continue
            if not handler.is_full():
                found = True
                break

        if not found:
            page_handle = pool.allocate_page(self._file_id)
            try:
                handler.deinit()
                handler.init_empty_page(
                    pool, self._file_id, page_handle.page_num, record_size
                )
            finally:
                pool.unpin_page(page_handle)

        return handler.insert_record(data)

    def update_record(self, rec: Record) -> None:
        with RecordPageHandler() as handler:
            handler.init(self._require_pool(), self._file_id, rec.rid.page_num)
            handler.update_record(rec)

    def delete_record(self, rid: RID) -> None:
        with RecordPageHandler() as handler:
            handler.init(self._require_pool(), self._file_id, rid.page_num)
            handler.delete_record(rid)

    def get_record(self, rid: RID) -> Record:
        with RecordPageHandler() as handler:
            handler.init(self._require_pool(), self._file_id, rid.page_num)
            return handler.get_record(rid)

    def update_record_in_place(
        self, rid: RID, updater: Callable[[Record], Any]
    ) -> Any:
        """Let ``updater`` change the record's bytes; returns what it returns."""
        with RecordPageHandler() as handler:
            handler.init(self._require_pool(), self._file_id, rid.page_num)
            return handler.update_record_in_place(rid, updater)

    def insert_text_data(self, data: TextData) -> int:
        """Store the overflow part of a text value on a new page; return its number."""
        pool = self._require_pool()
        page_handle = pool.allocate_page(self._file_id)
        try:
            page_num = page_handle.page_num
            page = page_handle.data
            page[:] = bytes(len(page))
            tail = _text_tail(data)
            page[TEXT_PAGE_OFFSET:TEXT_PAGE_OFFSET + len(tail)] = tail
            pool.mark_dirty(page_handle)
        finally:
            pool.unpin_page(page_handle)
        return page_num

    def read_text_data(self, page_num: int) -> bytes:
        """The stored overflow area of a text page, ``TEXT_PAGE_CAPACITY`` bytes long."""
        pool = self._require_pool()
        page_handle = pool.get_this_page(self._file_id, page_num)
        try:
            page = page_handle.data
            return bytes(page[TEXT_PAGE_OFFSET:TEXT_PAGE_OFFSET + TEXT_PAGE_CAPACITY])
        finally:
            pool.unpin_page(page_handle)

    def delete_text_data(self, page_num: int, record_size: int) -> None:
        """Turn a text page back into an empty page for records of ``record_size``."""
        with RecordPageHandler() as handler:
            handler.init_empty_page(
                self._require_pool(), self._file_id, page_num, record_size
            )

    def update_text_data(self, data: TextData, page_num: int) -> None:
        """Replace the overflow part stored on a text page."""
        pool = self._require_pool()
        page_handle = pool.get_this_page(self._file_id, page_num)
        try:
            page = page_handle.data
            page[:] = bytes(len(page))
            tail = _text_tail(data)
            page[TEXT_PAGE_OFFSET:TEXT_PAGE_OFFSET + len(tail)] = tail
            pool.mark_dirty(page_handle)
        finally:
            pool.unpin_page(page_handle)


class RecordFileScanner:
    """Iterates over the records of a file, optionally filtered by a predicate."""

    def __init__(
        self,
        buffer_pool: DiskBufferPool,
        file_id: int,
        condition_filter: Optional[RecordFilter] = None,
    ) -> None:
        self._pool: Optional[DiskBufferPool] = buffer_pool
        self._file_id = file_id
        self._filter = condition_filter

    def close(self) -> None:
        self._pool = None
        self._filter = None

    def _require_pool(self) -> DiskBufferPool:
        if self._pool is None:
            raise RecordError(RecordErrorCode.CLOSED, "scanner has been closed")
        return self._pool

    def __iter__(self) -> Iterator[Record]:
        handler = RecordPageHandler()
        try:
            page_num, slot_num = 1, -1
            while True:
                pool = self._require_pool()
                try:
                    page_count = pool.get_page_count(self._file_id)
                except BufferPoolError:
                    return
                if page_num >= page_count:
                    return
                if page_num != handler.page_num():
                    handler.deinit()
                    try:
                        handler.init(pool, self._file_id, page_num)
                    except BufferPoolError as exc:
                        if exc.code is not BufferPoolErrorCode.INVALID_PAGE_NUM:
                            raise
                        page_num, slot_num = page_num + 1, -1
                        continue
                record = handler.next_record(slot_num)
                if record is None:
                    page_num, slot_num = page_num + 1, -1
                    continue
                slot_num = record.rid.slot_num
                if self._filter is None or self._filter(record):
                    yield record
        finally:
            handler.deinit()