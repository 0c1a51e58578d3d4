"""Fixed-size records stored in slots of a single buffer-pool page.

A record page starts with a small header (record count, capacity, record
sizes and the offset of the first slot), followed by a bitmap of used slots
and then the slots themselves, each aligned to 8 bytes.
"""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from pagestore.disk_buffer_pool import BufferPoolError, DiskBufferPool, PageHandle

_HEADER = struct.Struct("<5i")

RecordData = Union[bytes, bytearray]


class RecordErrorCode(enum.Enum):
    OPENED = "record page handler is already open"
    CLOSED = "record page handler is not open"
    NO_MEMORY = "page is full"
    INVALID_ARGUMENT = "invalid argument"
    INVALID_RID = "invalid record id"
    NOT_EXIST = "record does not exist"


class RecordError(Exception):
    """A record operation failed; ``code`` tells why."""

    def __init__(self, code: RecordErrorCode, message: str = "") -> None:
        super().__init__(f"{code.value}: {message}" if message else code.value)
        self.code = code


@dataclass(frozen=True, order=True)
class RID:
    """Location of a record: page number and slot number within the page."""

    page_num: int
    slot_num: int


@dataclass
class Record:
    """A record's identifier and a copy of its bytes."""

    rid: RID
    data: RecordData = field(default=b"")


def align8(size: int) -> int:
    """Round ``size`` up to a multiple of 8."""
    return size // 8 * 8 + (0 if size % 8 == 0 else 8)


def page_fix_size() -> int:
    """Size of the fixed part of the record page header."""
    return _HEADER.size


def page_record_capacity(page_size: int, record_size: int) -> int:
    """How many records of ``record_size`` bytes fit in a page, bitmap included."""
    # capacity * record_size + capacity / 8 + 1 <= page_size - fix_size
    return int((page_size - page_fix_size() - 1) / (record_size + 0.125))


def page_bitmap_size(record_capacity: int) -> int:
    """Bytes needed for a slot bitmap of ``record_capacity`` bits."""
    return record_capacity // 8 + (0 if record_capacity % 8 == 0 else 1)


def page_header_size(record_capacity: int) -> int:
    """Offset of the first slot: fixed header plus bitmap, aligned to 8."""
    return align8(page_fix_size() + page_bitmap_size(record_capacity))


def _get_bit(data: bytearray, index: int) -> bool:
    byte, bit = divmod(index, 8)
    return bool(data[page_fix_size() + byte] & (1 << bit))


def _set_bit(data: bytearray, index: int, value: bool) -> None:
    byte, bit = divmod(index, 8)
    position = page_fix_size() + byte
    if value:
        data[position] |= 1 << bit
    else:
        data[position] &= ~(1 << bit) & 0xFF


def _next_bit(data: bytearray, capacity: int, start: int, value: bool) -> Optional[int]:
    return next(
        (i for i in range(max(start, 0), capacity) if _get_bit(data, i) == value),
        None,
    )


class RecordPageHandler:
    """Reads and writes the records of one pinned page."""

    def __init__(self) -> None:
        self._pool: Optional[DiskBufferPool] = None
        self._file_id = -1
        self._handle: Optional[PageHandle] = None

    def __enter__(self) -> "RecordPageHandler":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.deinit()

    def init(self, buffer_pool: DiskBufferPool, file_id: int, page_num: int) -> None:
        """Pin an existing record page."""
        if self._pool is not None:
            raise RecordError(
                RecordErrorCode.OPENED, f"file {file_id}, page {page_num}"
            )
        self._handle = buffer_pool.get_this_page(file_id, page_num)
        self._pool = buffer_pool
        self._file_id = file_id

    def init_empty_page(
        self, buffer_pool: DiskBufferPool, file_id: int, page_num: int, record_size: int
    ) -> None:
        """Pin a page and format it as an empty page for records of ``record_size`` bytes."""
        if record_size <= 0:
            raise RecordError(
                RecordErrorCode.INVALID_ARGUMENT, f"record size {record_size}"
            )
        self.init(buffer_pool, file_id, page_num)
        data = self._data()
        physical_size = align8(record_size)
        capacity = max(page_record_capacity(len(data), physical_size), 0)
        _HEADER.pack_into(
            data, 0, 0, capacity, record_size, physical_size, page_header_size(capacity)
        )
        start = page_fix_size()
        data[start:start + page_bitmap_size(capacity)] = bytes(page_bitmap_size(capacity))
        buffer_pool.mark_dirty(self._handle)

    def deinit(self) -> None:
        """Release the page; safe to call when nothing is pinned."""
        if self._pool is not None:
            self._pool.unpin_page(self._handle)
            self._pool = None
            self._handle = None

    def insert_record(self, data: RecordData) -> RID:
        """Store a record in the first free slot and return its identifier."""
        page = self._data()
        record_num, capacity, real_size, size, first = _HEADER.unpack_from(page, 0)
        if record_num >= capacity:
            raise RecordError(RecordErrorCode.NO_MEMORY, f"page {self.page_num()}")
        index = _next_bit(page, capacity, 0, False)
        if index is None:
            raise RecordError(RecordErrorCode.NO_MEMORY, f"page {self.page_num()}")
        _set_bit(page, index, True)
        _HEADER.pack_into(page, 0, record_num + 1, capacity, real_size, size, first)
        self._write_slot(index, data)
        self._pool.mark_dirty(self._handle)
        return RID(self.page_num(), index)

    def update_record(self, rec: Record) -> None:
        """Overwrite the stored record at ``rec.rid`` with ``rec.data``."""
        self._check_slot(rec.rid.slot_num, RecordErrorCode.INVALID_ARGUMENT)
        self._write_slot(rec.rid.slot_num, rec.data)
        self._pool.mark_dirty(self._handle)

    def update_record_in_place(self, rid: RID, updater: Callable[[Record], Any]) -> Any:
        """Let ``updater`` change the record's bytes in place; returns its result."""
        record = self.get_record(rid)
        record.data = bytearray(record.data)
        try:
            return updater(record)
        finally:
            self._write_slot(rid.slot_num, record.data)
            self._pool.mark_dirty(self._handle)

    def delete_record(self, rid: RID) -> None:
        """Free a slot; a page left with no records is given back to the file."""
        page = self._data()
        self._check_slot(rid.slot_num, RecordErrorCode.INVALID_ARGUMENT)
        record_num, capacity, real_size, size, first = _HEADER.unpack_from(page, 0)
        _set_bit(page, rid.slot_num, False)
        record_num -= 1
        _HEADER.pack_into(page, 0, record_num, capacity, real_size, size, first)
        self._pool.mark_dirty(self._handle)

        if record_num == 0:
            pool, file_id, page_num = self._pool, self._file_id, self.page_num()
            self.deinit()
            try:
                pool.dispose_page(file_id, page_num)
            except BufferPoolError:
                # The page stays allocated but empty; it is reused by later inserts.
                pass

    def get_record(self, rid: RID) -> Record:
        """Return a copy of the record stored at ``rid``."""
        self._check_slot(rid.slot_num, RecordErrorCode.INVALID_RID)
        return Record(rid, self._read_slot(rid.slot_num))

    def next_record(self, slot_num: int = -1) -> Optional[Record]:
        """The first record in a slot after ``slot_num``, or None at the end of the page."""
        page = self._data()
        capacity = _HEADER.unpack_from(page, 0)[1]
        if slot_num >= capacity - 1:
            return None
        index = _next_bit(page, capacity, slot_num + 1, True)
        if index is None:
            return None
        return Record(RID(self.page_num(), index), self._read_slot(index))

    def page_num(self) -> int:
        """Number of the pinned page, or -1 when no page is pinned."""
        if self._handle is None:
            return -1
        return self._handle.page_num

    def is_full(self) -> bool:
        record_num, capacity = _HEADER.unpack_from(self._data(), 0)[:2]
        return record_num >= capacity

    def _data(self) -> bytearray:
        if self._handle is None:
            raise RecordError(RecordErrorCode.CLOSED)
        return self._handle.data

    def _check_slot(self, slot_num: int, out_of_range: RecordErrorCode) -> None:
        page = self._data()
        capacity = _HEADER.unpack_from(page, 0)[1]
        if slot_num < 0 or slot_num >= capacity:
            raise RecordError(
                out_of_range, f"slot {slot_num} exceeds capacity {capacity}"
            )
        if not _get_bit(page, slot_num):
            raise RecordError(
                RecordErrorCode.NOT_EXIST, f"slot {slot_num} of page {self.page_num()}"
            )

    def _slot_offset(self, slot_num: int) -> int:
        _, _, _, size, first = _HEADER.unpack_from(self._data(), 0)
        return first + slot_num * size

    def _read_slot(self, slot_num: int) -> bytes:
        page = self._data()
        real_size = _HEADER.unpack_from(page, 0)[2]
        offset = self._slot_offset(slot_num)
        return bytes(page[offset:offset + real_size])

    def _write_slot(self, slot_num: int, data: RecordData) -> None:
        page = self._data()
        real_size = _HEADER.unpack_from(page, 0)[2]
        offset = self._slot_offset(slot_num)
        chunk = bytes(data[:real_size]).ljust(real_size, b"\x00")
        page[offset:offset + real_size] = chunk