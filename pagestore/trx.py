"""A simple transaction that records inserts and deletes for commit or rollback.

Each record carries a 32-bit transaction field: the low 31 bits hold the id of
the transaction that last touched it (0 once committed) and the top bit marks
a pending delete. There is no concurrency control.
"""

from __future__ import annotations

import enum
import itertools
import struct
import threading
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from pagestore.record_page import RID, Record

TRX_FIELD_NAME = "__trx"
TRX_FIELD_LEN = 4
DEFAULT_TRX_ID = 0

DELETED_FLAG_BIT_MASK = 0x80000000
TRX_ID_BIT_MASK = 0x7FFFFFFF

_TRX_FIELD = struct.Struct("<I")

_trx_ids = itertools.count(1)
_trx_id_lock = threading.Lock()


def next_trx_id() -> int:
    """A new transaction id, larger than every one handed out before."""
    with _trx_id_lock:
        return next(_trx_ids)


class TrxError(Exception):
    """A transaction operation failed."""


class _TrxTable(Protocol):
    table_meta: Any

    def commit_insert(self, trx: "Trx", rid: RID) -> Any: ...

    def commit_delete(self, trx: "Trx", rid: RID) -> Any: ...

    def rollback_insert(self, trx: "Trx", rid: RID) -> Any: ...

    def rollback_delete(self, trx: "Trx", rid: RID) -> Any: ...


class OperationType(enum.Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    UNDEFINED = "undefined"


@dataclass(frozen=True)
class Operation:
    """A pending change to the record at ``rid``."""

    type: OperationType
    rid: RID

    @property
    def page_num(self) -> int:
        return self.rid.page_num

    @property
    def slot_num(self) -> int:
        return self.rid.slot_num


def _trx_offset(table: _TrxTable) -> int:
    return table.table_meta.trx_field().offset


def _set_record_trx_id(
    table: _TrxTable, record: Record, trx_id: int, deleted: bool
) -> None:
    value = trx_id & TRX_ID_BIT_MASK
    if deleted:
        value |= DELETED_FLAG_BIT_MASK
    if not isinstance(record.data, bytearray):
        record.data = bytearray(record.data)
    _TRX_FIELD.pack_into(record.data, _trx_offset(table), value)


def _get_record_trx_id(table: _TrxTable, record: Record) -> tuple[int, bool]:
    value = _TRX_FIELD.unpack_from(record.data, _trx_offset(table))[0]
    return value & TRX_ID_BIT_MASK, bool(value & DELETED_FLAG_BIT_MASK)


class Trx:
    """Tracks the operations of one transaction, per table.

    Methods that stamp a record write into ``record.data``; the caller stores
    the record back where it came from.
    """

    def __init__(self) -> None:
        self.trx_id = DEFAULT_TRX_ID
        self._operations: dict[_TrxTable, dict[RID, Operation]] = {}

    def _start_if_not_started(self) -> None:
        if self.trx_id == 0:
            self.trx_id = next_trx_id()

    def find_operation(self, table: _TrxTable, rid: RID) -> Optional[Operation]:
        return self._operations.get(table, {}).get(rid)

    def _insert_operation(
        self, table: _TrxTable, op_type: OperationType, rid: RID
    ) -> None:
        self._operations.setdefault(table, {}).setdefault(rid, Operation(op_type, rid))

    def _delete_operation(self, table: _TrxTable, rid: RID) -> None:
        self._operations.get(table, {}).pop(rid, None)

    def insert_record(self, table: _TrxTable, record: Record) -> None:
        if self.find_operation(table, record.rid) is not None:
            raise TrxError(f"record {record.rid} already has a pending operation")
        self._start_if_not_started()
        self._insert_operation(table, OperationType.INSERT, record.rid)

    def delete_record(self, table: _TrxTable, record: Record) -> None:
        """Mark a record deleted; deleting an own pending insert just forgets it."""
        self._start_if_not_started()
        old = self.find_operation(table, record.rid)
        if old is not None:
            if old.type is OperationType.INSERT:
                self._delete_operation(table, record.rid)
                return
            raise TrxError(f"record {record.rid} already has a pending {old.type.value}")
        _set_record_trx_id(table, record, self.trx_id, True)
        self._insert_operation(table, OperationType.DELETE, record.rid)

    def _finish(self, actions: dict[OperationType, str]) -> None:
        failures: list[tuple[Operation, Exception]] = []
        for table, operations in self._operations.items():
            for operation in operations.values():
                try:
                    action = actions.get(operation.type)
                    if action is None:
                        raise TrxError(f"unknown operation {operation.type.value}")
                    getattr(table, action)(self, operation.rid)
                except Exception as exc:  # keep going: finish every operation
                    failures.append((operation, exc))
        self._operations.clear()
        self.trx_id = 0
        if failures:
            operation, exc = failures[-1]
            raise TrxError(
                f"{len(failures)} operation(s) failed, last on {operation.rid}: {exc}"
            ) from exc

    def commit(self) -> None:
        self._finish(
            {
                OperationType.INSERT: "commit_insert",
                OperationType.DELETE: "commit_delete",
            }
        )

    def rollback(self) -> None:
        self._finish(
            {
                OperationType.INSERT: "rollback_insert",
                OperationType.DELETE: "rollback_delete",
            }
        )

    def commit_insert(self, table: _TrxTable, record: Record) -> None:
        _set_record_trx_id(table, record, 0, False)

    def rollback_delete(self, table: _TrxTable, record: Record) -> None:
        _set_record_trx_id(table, record, 0, False)

    def is_visible(self, table: _TrxTable, record: Record) -> bool:
        record_trx_id, deleted = _get_record_trx_id(table, record)
        if record_trx_id == 0 or record_trx_id == self.trx_id:
            return not deleted
        # Another transaction's uncommitted change: its delete is not yet seen.
        return deleted

    def init_trx_info(self, table: _TrxTable, record: Record) -> None:
        _set_record_trx_id(table, record, self.trx_id, False)