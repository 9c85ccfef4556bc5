"""
Supabase-backed document store.

Each collection maps to a table with a text "id" primary key. Atomic
batches are applied by the apply_document_batch Postgres function,
called over RPC, which runs all queued operations in one transaction.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Optional, Sequence, TypeVar

from postgrest.exceptions import APIError
from supabase import Client

from .clock import IdFactory, new_id
from .store import (
    VERSION_FIELD,
    BatchOperation,
    DocumentNotFoundError,
    Filter,
    OrderBy,
    StoreError,
    VersionConflictError,
)

logger = logging.getLogger(__name__)

BATCH_RPC_FUNCTION = "apply_document_batch"

R = TypeVar("R")

# PostgREST filter method for each Filter operator
_FILTER_METHODS = {
    "==": "eq",
    "!=": "neq",
    "<": "lt",
    "<=": "lte",
    ">": "gt",
    ">=": "gte",
    "in": "in_",
}


def serialize_value(value: Any) -> Any:
    """Convert Python values into JSON-safe values for PostgREST."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: serialize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_value(v) for v in value]
    return value


class SupabaseWriteBatch:
    """WriteBatch that commits through a single RPC call."""

    def __init__(self, store: "SupabaseDocumentStore"):
        self._store = store
        self._operations: list[BatchOperation] = []
        self._committed = False

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> "SupabaseWriteBatch":
        self._operations.append(BatchOperation("set", collection, doc_id, dict(data)))
        return self

    def update(self, collection: str, doc_id: str, patch: dict[str, Any]) -> "SupabaseWriteBatch":
        self._operations.append(BatchOperation("update", collection, doc_id, dict(patch)))
        return self

    def delete(self, collection: str, doc_id: str) -> "SupabaseWriteBatch":
        self._operations.append(BatchOperation("delete", collection, doc_id))
        return self

    def commit(self) -> None:
        if self._committed:
            raise RuntimeError("Write batch has already been committed")
        if self._operations:
            self._store._commit_batch(self._operations)
        self._committed = True


class SupabaseDocumentStore:
    """
    DocumentStore implementation on top of a Supabase client.

    Failures reported by PostgREST are raised as StoreError.
    """

    def __init__(
        self,
        client: Client,
        table_prefix: str = "",
        id_factory: Optional[IdFactory] = None,
    ):
        """
        Initialize the store.

        Args:
            client: Supabase client (service role for backend writes)
            table_prefix: Optional prefix prepended to collection names
            id_factory: Generator for ids assigned by add()
        """
        self._db = client
        self._prefix = table_prefix
        self._id_factory = id_factory or new_id

    def _table_name(self, collection: str) -> str:
        return f"{self._prefix}{collection}"

    def _table(self, collection: str):
        return self._db.table(self._table_name(collection))

    def _execute(self, operation: str, call: Callable[[], R]) -> R:
        try:
            return call()
        except APIError as e:
            logger.error(f"Document store {operation} failed: {e}")
            raise StoreError(
                f"Document store {operation} failed",
                operation=operation,
                original_error=str(e),
            ) from e

    @staticmethod
    def _apply_filter(query, condition: Filter):
        method = _FILTER_METHODS.get(condition.op)
        if method is None:
            raise ValueError(f"Unsupported filter operator: {condition.op}")
        return getattr(query, method)(condition.field, serialize_value(condition.value))

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        result = self._execute(
            "get",
            lambda: self._table(collection).select("*").eq("id", doc_id).execute(),
        )
        if not result.data:
            return None
        return result.data[0]

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Sequence[OrderBy] = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        query = self._table(collection).select("*")
        for condition in filters:
            query = self._apply_filter(query, condition)
        for key in order_by:
            query = query.order(key.field, desc=key.descending)

        start = offset or 0
        if limit is not None:
            query = query.range(start, start + limit - 1)

        result = self._execute("query", query.execute)
        rows = list(result.data or [])
        if limit is None and start:
            rows = rows[start:]
        return rows

    def count(self, collection: str, filters: Sequence[Filter] = ()) -> int:
        query = self._table(collection).select("id", count="exact")
        for condition in filters:
            query = self._apply_filter(query, condition)
        result = self._execute("count", query.execute)
        return result.count or 0

    def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = self._id_factory()
        self.set(collection, doc_id, data)
        return doc_id

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        row = serialize_value({**data, "id": doc_id})
        self._execute("set", lambda: self._table(collection).upsert(row).execute())

    def update(
        self,
        collection: str,
        doc_id: str,
        patch: dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> None:
        data = serialize_value(dict(patch))
        data.pop("id", None)
        query = self._table(collection)
        if expected_version is not None:
            data[VERSION_FIELD] = expected_version + 1
            query = query.update(data).eq("id", doc_id).eq(VERSION_FIELD, expected_version)
        else:
            query = query.update(data).eq("id", doc_id)

        result = self._execute("update", query.execute)
        if result.data:
            return

        # Nothing matched: either the row is gone or its version moved on
        current = self.get(collection, doc_id)
        if current is None:
            raise DocumentNotFoundError(collection, doc_id)
        if expected_version is not None:
            raise VersionConflictError(
                collection, doc_id, expected_version, current.get(VERSION_FIELD)
            )

    def delete(self, collection: str, doc_id: str) -> None:
        self._execute("delete", lambda: self._table(collection).delete().eq("id", doc_id).execute())

    def batch(self) -> SupabaseWriteBatch:
        return SupabaseWriteBatch(self)

    def _commit_batch(self, operations: list[BatchOperation]) -> None:
        payload = {
            "operations": [
                {
                    "op": op.kind,
                    "table": self._table_name(op.collection),
                    "id": op.doc_id,
                    "data": serialize_value(op.data),
                }
                for op in operations
            ]
        }
        self._execute("batch", lambda: self._db.rpc(BATCH_RPC_FUNCTION, payload).execute())
