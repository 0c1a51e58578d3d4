import struct

import pytest

from pagestore.bp_manager import PAGE_SIZE
from pagestore.disk_buffer_pool import (
    BufferPoolError,
    BufferPoolErrorCode,
    DiskBufferPool,
    global_disk_buffer_pool,
)


@pytest.fixture
def path(tmp_path):
    return str(tmp_path / "t.data")


@pytest.fixture
def pool():
    return DiskBufferPool(buffer_size=8, max_open_files=4)


def test_create_file_writes_header(pool, path):
    pool.create_file(path)
    with open(path, "rb") as f:
        raw = f.read()
    assert len(raw) == PAGE_SIZE
    assert raw[0:4] == struct.pack("<i", 0)
    assert raw[4:12] == struct.pack("<ii", 1, 1)
    assert raw[12] & 0x01 == 1


def test_create_existing_file_fails(pool, path):
    pool.create_file(path)
    with pytest.raises(BufferPoolError) as err:
        pool.create_file(path)
    assert err.value.code is BufferPoolErrorCode.FILE_EXISTS


def test_open_twice_returns_same_id(pool, path):
    pool.create_file(path)
    file_id = pool.open_file(path)
    assert pool.open_file(path) == file_id
    assert pool.get_page_count(file_id) == 1


def test_open_missing_file(pool, tmp_path):
    with pytest.raises(BufferPoolError) as err:
        pool.open_file(str(tmp_path / "missing"))
    assert err.value.code is BufferPoolErrorCode.IO_ACCESS


def test_too_many_files(tmp_path):
    pool = DiskBufferPool(buffer_size=4, max_open_files=1)
    first, second = str(tmp_path / "a"), str(tmp_path / "b")
    pool.create_file(first)
    pool.create_file(second)
    pool.open_file(first)
    with pytest.raises(BufferPoolError) as err:
        pool.open_file(second)
    assert err.value.code is BufferPoolErrorCode.TOO_MANY_FILES


def test_allocate_extends_file(pool, path):
    pool.create_file(path)
    file_id = pool.open_file(path)
    handle = pool.allocate_page(file_id)
    assert handle.page_num == pool.get_page_count(file_id) - 1
    pool.unpin_page(handle)
    second = pool.allocate_page(file_id)
    assert second.page_num == handle.frame.page_num + 1


def test_data_survives_close_and_reopen(pool, path):
    pool.create_file(path)
    file_id = pool.open_file(path)
    handle = pool.allocate_page(file_id)
    page_num = handle.page_num
    handle.data[:5] = b"hello"
    pool.mark_dirty(handle)
    pool.unpin_page(handle)
    pool.close_file(file_id)

    file_id = pool.open_file(path)
    assert pool.get_page_count(file_id) == page_num + 1
    again = pool.get_this_page(file_id, page_num)
    assert bytes(again.data[:5]) == b"hello"
    pool.unpin_page(again)


def test_invalid_page_num(pool, path):
    pool.create_file(path)
    file_id = pool.open_file(path)
    for page_num in (1, -1):
        with pytest.raises(BufferPoolError) as err:
            pool.get_this_page(file_id, page_num)
        assert err.value.code is BufferPoolErrorCode.INVALID_PAGE_NUM


def test_illegal_file_id(pool):
    for file_id in (0, -1, 99):
        with pytest.raises(BufferPoolError) as err:
            pool.get_page_count(file_id)
        assert err.value.code is BufferPoolErrorCode.ILLEGAL_FILE_ID


def test_dispose_and_reuse(pool, path):
    pool.create_file(path)
    file_id = pool.open_file(path)
    handle = pool.allocate_page(file_id)
    page_num = handle.page_num
    with pytest.raises(BufferPoolError) as err:
        pool.dispose_page(file_id, page_num)
    assert err.value.code is BufferPoolErrorCode.PAGE_PINNED

    pool.unpin_page(handle)
    pool.dispose_page(file_id, page_num)
    with pytest.raises(BufferPoolError) as err:
        pool.get_this_page(file_id, page_num)
    assert err.value.code is BufferPoolErrorCode.INVALID_PAGE_NUM

    count = pool.get_page_count(file_id)
    reused = pool.allocate_page(file_id)
    assert reused.page_num == page_num
    assert pool.get_page_count(file_id) == count


def test_eviction_writes_back_dirty_pages(tmp_path):
    pool = DiskBufferPool(buffer_size=3, max_open_files=2)
    path = str(tmp_path / "e.data")
    pool.create_file(path)
    file_id = pool.open_file(path)
    written = {}
    for i in range(6):
        handle = pool.allocate_page(file_id)
        handle.data[:3] = bytes([i + 10] * 3)
        written[handle.page_num] = bytes([i + 10] * 3)
        pool.mark_dirty(handle)
        pool.unpin_page(handle)
    for page_num, content in written.items():
        handle = pool.get_this_page(file_id, page_num)
        assert bytes(handle.data[:3]) == content
        pool.unpin_page(handle)


def test_no_free_frame(tmp_path):
    pool = DiskBufferPool(buffer_size=2, max_open_files=2)
    path = str(tmp_path / "n.data")
    pool.create_file(path)
    file_id = pool.open_file(path)
    pool.allocate_page(file_id)
    count = pool.get_page_count(file_id)
    with pytest.raises(BufferPoolError) as err:
        pool.allocate_page(file_id)
    assert err.value.code is BufferPoolErrorCode.NO_MEMORY
    assert pool.get_page_count(file_id) == count


def test_force_page_writes_to_disk(pool, path):
    pool.create_file(path)
    file_id = pool.open_file(path)
    handle = pool.allocate_page(file_id)
    page_num = handle.page_num
    handle.data[:5] = b"hello"
    pool.mark_dirty(handle)
    pool.unpin_page(handle)
    pool.force_page(file_id, page_num)
    with open(path, "rb") as f:
        f.seek(page_num * PAGE_SIZE)
        raw = f.read(PAGE_SIZE)
    assert raw[:4] == struct.pack("<i", page_num)
    assert raw[4:9] == b"hello"


def test_force_all_with_pinned_header_fails(pool, path):
    pool.create_file(path)
    file_id = pool.open_file(path)
    with pytest.raises(BufferPoolError) as err:
        pool.force_page(file_id, -1)
    assert err.value.code is BufferPoolErrorCode.PAGE_PINNED


def test_flush_all_pages_updates_header(pool, path):
    pool.create_file(path)
    file_id = pool.open_file(path)
    handle = pool.allocate_page(file_id)
    pool.unpin_page(handle)
    pool.flush_all_pages(file_id)
    with open(path, "rb") as f:
        raw = f.read()
    page_count, allocated = struct.unpack("<ii", raw[4:12])
    assert page_count == pool.get_page_count(file_id)
    assert allocated == page_count
    assert len(raw) == page_count * PAGE_SIZE


def test_closed_handle_rejects_access(pool, path):
    pool.create_file(path)
    file_id = pool.open_file(path)
    handle = pool.allocate_page(file_id)
    page_num = handle.page_num
    handle.data[:4] = b"keep"
    pool.mark_dirty(handle)
    pool.unpin_page(handle)
    with pytest.raises(BufferPoolError) as err:
        bytes(handle.data)
    assert err.value.code is BufferPoolErrorCode.CLOSED

    again = pool.get_this_page(file_id, page_num)
    assert again.page_num == page_num
    assert bytes(again.data[:4]) == b"keep"
    pool.unpin_page(again)


def test_close_releases_file_id(pool, path):
    pool.create_file(path)
    file_id = pool.open_file(path)
    pool.close_file(file_id)
    with pytest.raises(BufferPoolError) as err:
        pool.get_page_count(file_id)
    assert err.value.code is BufferPoolErrorCode.ILLEGAL_FILE_ID


def test_drop_file(pool, path, tmp_path):
    pool.create_file(path)
    pool.drop_file(path)
    assert not (tmp_path / "t.data").exists()
    with pytest.raises(BufferPoolError) as err:
        pool.drop_file(path)
    assert err.value.code is BufferPoolErrorCode.IO_ERROR


def test_global_pool_is_shared(tmp_path):
    path = str(tmp_path / "g.data")
    global_disk_buffer_pool().create_file(path)
    file_id = global_disk_buffer_pool().open_file(path)
    try:
        assert global_disk_buffer_pool().open_file(path) == file_id
        assert global_disk_buffer_pool().get_page_count(file_id) == 1
    finally:
        global_disk_buffer_pool().close_file(file_id)