"""Paged file storage: an LRU buffer pool, slotted record pages, record files,
simple transactions, date checks and index descriptions."""

__version__ = "0.1.0"
__all__ = [
    "lru_replacer",
    "bp_manager",
    "meta_util",
    "index_meta",
    "disk_buffer_pool",
    "record_page",
    "record_file",
    "trx",
]