# pagestore

The lower storage layer of a small database engine. It is plain Python and
needs only the standard library.

## What is in it

- `pagestore.lru_replacer`: `Replacer` is the abstract interface, with
  `victim()`, `pin()`, `unpin()` and `len()`. `LRUReplacer(capacity)`
  implements it. It tracks the unpinned frames and hands out the one that was
  unpinned least recently.
- `pagestore.bp_manager`: `Frame` is one page-sized buffer slot. `BPManager`
  holds a fixed set of frames, a free list, an `LRUReplacer` and a page table
  that maps a file and page to a frame. Pages are 4096 bytes: a 4-byte page
  number followed by the data area.
- `pagestore.disk_buffer_pool`: `DiskBufferPool(buffer_size, max_open_files)`
  manages paged files. Page 0 of each file is a header. It holds the page
  count, the count of allocated pages and a bitmap of the allocated pages.
  The pool's methods are:
  - `create_file`, `open_file` (returns a file id), `close_file` and
    `drop_file`;
  - `get_this_page` and `allocate_page`, which return a pinned `PageHandle`.
    The handle gives `page_num` and a writable `data` area.
  - `mark_dirty` and `unpin_page`;
  - `dispose_page`, which frees a loaded, unpinned page;
  - `force_page(file_id, page_num=-1)`, where `-1` means every page;
  - `flush_all_pages` and `get_page_count`.

  `global_disk_buffer_pool()` returns a pool shared by the whole process.
- `pagestore.record_page`: `RecordPageHandler` stores fixed-size records in
  the slots of one page and tracks the used slots in a bitmap. Records are
  `Record(rid, data)`, and `RID(page_num, slot_num)` locates them. The module
  also has the layout helpers `align8`, `page_fix_size`,
  `page_record_capacity`, `page_bitmap_size` and `page_header_size`.
- `pagestore.record_file`: `RecordFileHandler(buffer_pool, file_id)` works on
  a whole file:
  - `insert_record(data, record_size)` finds a page with a free slot, or adds
    a page, and returns the record's `RID`;
  - `get_record`, `update_record`, `update_record_in_place` and
    `delete_record` act on one record;
  - text overflow pages are handled by `insert_text_data`, `read_text_data`,
    `update_text_data` and `delete_text_data`. The first 28 bytes of a text
    value are left to the caller's record. The rest goes on a page of its
    own.

  `RecordFileScanner(buffer_pool, file_id, condition_filter)` is iterable. It
  yields every stored record, and when a filter is given, only those for which
  `condition_filter(record)` is true.
- `pagestore.trx`: `Trx` is a transaction without concurrency control.
  - It records insert and delete operations per table. `commit()` and
    `rollback()` then call the table's `commit_insert`, `commit_delete`,
    `rollback_insert` or `rollback_delete`.
  - Each record carries a 32-bit system field. It holds the transaction id
    and a top-bit deleted flag.
  - `is_visible` decides visibility from that field.
  - `next_trx_id()` hands out increasing ids.
- `pagestore.meta_util`:
  - `table_meta_file` and `index_data_file` build file paths.
  - `DateUtil` checks `Y-M-D` strings and returns them as `YYYY-MM-DD`. It
    accepts dates from 1970-01-01 up to its upper bound, inclusive.
  - `global_date_util()` is a `DateUtil` with the upper bound 2038-03-01.
- `pagestore.index_meta`: `IndexMeta(name, fields)` is an index name and its
  field names. It converts to and from JSON-ready dictionaries with `to_json`
  and `from_json`.

Failures raise exceptions. `BufferPoolError` and `RecordError` carry a
`code` that says why. The others are `TrxError`, `IndexMetaError` and
`InvalidDateError`.

## Installation

```
pip install .
```

## Example

```python
from pagestore.disk_buffer_pool import DiskBufferPool
from pagestore.record_file import RecordFileHandler, RecordFileScanner

pool = DiskBufferPool(buffer_size=64, max_open_files=8)
pool.create_file("people.data")
file_id = pool.open_file("people.data")

records = RecordFileHandler(pool, file_id)
rid = records.insert_record(b"alice\x00\x00\x00", 8)
print(records.get_record(rid).data)   # b'alice\x00\x00\x00'

for record in RecordFileScanner(pool, file_id, None):
    print(record.rid, record.data)

records.close()
pool.close_file(file_id)
```

Dates are checked and normalised like this:

```python
from pagestore.meta_util import global_date_util, InvalidDateError

print(global_date_util().check_and_format_date("2021-5-8"))  # 2021-05-08
try:
    global_date_util().check_and_format_date("2040-01-01")
except InvalidDateError:
    print("out of range")
```

## What it does not do

This package is a storage library only. It has no command-line program, no
server and no SQL. It has no table layer: `Trx` expects the caller to supply
table objects with a `table_meta.trx_field().offset` and the commit and
rollback methods named above. `IndexMeta` only describes an index. No index
structure is built or searched.

## Running the tests

```
pip install .[test]
pytest
```