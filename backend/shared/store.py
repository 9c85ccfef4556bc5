"""
Document store abstraction.

The billing module talks to persistence only through DocumentStore:
per-collection CRUD, equality/range queries with ordering and paging,
and an all-or-nothing WriteBatch. Two implementations exist:
- InMemoryDocumentStore (this module): for tests and local development
- SupabaseDocumentStore (shared.supabase_store): for production

Every stored document carries its id under the "id" key.
"""

import copy
import threading
from dataclasses import dataclass, field
from typing import Any, NamedTuple, Optional, Protocol, Sequence, runtime_checkable

from .clock import IdFactory, new_id
from .exceptions import ConflictError, ExternalServiceError, NotFoundError


VERSION_FIELD = "version"

FILTER_OPERATORS = ("==", "!=", "<", "<=", ">", ">=", "in")


class Filter(NamedTuple):
    """A single field condition, e.g. Filter("tenant_id", "==", "t-1")."""

    field: str
    op: str
    value: Any


class OrderBy(NamedTuple):
    """Sort key for query results."""

    field: str
    descending: bool = False


class DocumentNotFoundError(NotFoundError):
    """Raised when a write targets a document that does not exist."""

    def __init__(self, collection: str, doc_id: str):
        super().__init__(
            f"Document not found: {collection}/{doc_id}",
            code="DOCUMENT_NOT_FOUND",
            details={"collection": collection, "id": doc_id},
        )


class VersionConflictError(ConflictError):
    """Raised when a compare-and-swap update sees a different version."""

    def __init__(
        self,
        collection: str,
        doc_id: str,
        expected: int,
        actual: Optional[int] = None,
    ):
        details: dict[str, Any] = {
            "collection": collection,
            "id": doc_id,
            "expected_version": expected,
        }
        if actual is not None:
            details["actual_version"] = actual
        super().__init__(
            f"Version conflict on {collection}/{doc_id}: expected {expected}",
            code="VERSION_CONFLICT",
            details=details,
        )


class StoreError(ExternalServiceError):
    """Raised when the backing store fails (network, timeout, server error)."""

    def __init__(self, message: str, operation: str, original_error: Optional[str] = None):
        super().__init__(
            message,
            service="document_store",
            code="STORE_ERROR",
            details={"operation": operation, "original_error": original_error},
        )


@dataclass
class BatchOperation:
    """One queued write inside a WriteBatch."""

    kind: str  # "set" | "update" | "delete"
    collection: str
    doc_id: str
    data: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class WriteBatch(Protocol):
    """
    Queue of writes applied atomically by commit().

    Either every queued operation is applied or none is.
    """

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> "WriteBatch":
        ...

    def update(self, collection: str, doc_id: str, patch: dict[str, Any]) -> "WriteBatch":
        ...

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        ...

    def commit(self) -> None:
        ...


@runtime_checkable
class DocumentStore(Protocol):
    """
    Interface for document persistence.

    Implementations must be safe to share across concurrent requests.
    """

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        """
        Get a document by id.

        Returns:
            The document (including "id"), or None if absent
        """
        ...

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Sequence[OrderBy] = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """
        Find documents matching all filters.

        Args:
            collection: Collection name
            filters: Conditions combined with AND
            order_by: Sort keys, most significant first
            limit: Maximum number of documents to return
            offset: Number of matching documents to skip

        Returns:
            Matching documents in the requested order
        """
        ...

    def count(self, collection: str, filters: Sequence[Filter] = ()) -> int:
        """Count documents matching all filters."""
        ...

    def add(self, collection: str, data: dict[str, Any]) -> str:
        """Insert a document under a store-assigned id and return the id."""
        ...

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Create or replace the document with the given id."""
        ...

    def update(
        self,
        collection: str,
        doc_id: str,
        patch: dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> None:
        """
        Merge fields into an existing document.

        When expected_version is given the update only applies if the
        stored version matches; the stored version is then incremented.

        Raises:
            DocumentNotFoundError: If the document does not exist
            VersionConflictError: If expected_version does not match
        """
        ...

    def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document. Deleting a missing document is a no-op."""
        ...

    def batch(self) -> WriteBatch:
        """Start a new atomic write batch."""
        ...


def matches(document: dict[str, Any], condition: Filter) -> bool:
    """Evaluate one filter against a document."""
    if condition.op not in FILTER_OPERATORS:
        raise ValueError(f"Unsupported filter operator: {condition.op}")

    value = document.get(condition.field)
    if condition.op == "==":
        return value == condition.value
    if condition.op == "!=":
        return value != condition.value
    if condition.op == "in":
        return value in condition.value

    # Range comparisons never match missing values
    if value is None:
        return False
    if condition.op == "<":
        return value < condition.value
    if condition.op == "<=":
        return value <= condition.value
    if condition.op == ">":
        return value > condition.value
    return value >= condition.value


def sort_documents(
    documents: list[dict[str, Any]],
    order_by: Sequence[OrderBy],
) -> list[dict[str, Any]]:
    """Sort documents by several keys; missing values sort last."""
    result = list(documents)
    # Apply least significant key first so stable sorting preserves precedence
    for key in reversed(order_by):
        present = [d for d in result if d.get(key.field) is not None]
        missing = [d for d in result if d.get(key.field) is None]
        present.sort(key=lambda d: d[key.field], reverse=key.descending)
        result = present + missing
    return result


class InMemoryWriteBatch:
    """WriteBatch for InMemoryDocumentStore."""

    def __init__(self, store: "InMemoryDocumentStore"):
        self._store = store
        self._operations: list[BatchOperation] = []
        self._committed = False

    @property
    def operations(self) -> list[BatchOperation]:
        """Queued operations, in order."""
        return list(self._operations)

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> "InMemoryWriteBatch":
        self._operations.append(BatchOperation("set", collection, doc_id, copy.deepcopy(data)))
        return self

    def update(self, collection: str, doc_id: str, patch: dict[str, Any]) -> "InMemoryWriteBatch":
        self._operations.append(BatchOperation("update", collection, doc_id, copy.deepcopy(patch)))
        return self

    def delete(self, collection: str, doc_id: str) -> "InMemoryWriteBatch":
        self._operations.append(BatchOperation("delete", collection, doc_id))
        return self

    def commit(self) -> None:
        if self._committed:
            raise RuntimeError("Write batch has already been committed")
        self._store._apply_batch(self._operations)
        self._committed = True


class InMemoryDocumentStore:
    """
    Document store kept in process memory.

    For tests and development. Documents are deep-copied on the way in
    and out so callers never share state with the store.
    """

    def __init__(self, id_factory: Optional[IdFactory] = None):
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._id_factory = id_factory or new_id

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        with self._lock:
            document = self._collection(collection).get(doc_id)
            return copy.deepcopy(document) if document is not None else None

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Sequence[OrderBy] = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        with self._lock:
            documents = [
                d for d in self._collection(collection).values()
                if all(matches(d, f) for f in filters)
            ]
            documents = sort_documents(documents, order_by)

            start = offset or 0
            end = start + limit if limit is not None else None
            return copy.deepcopy(documents[start:end])

    def count(self, collection: str, filters: Sequence[Filter] = ()) -> int:
        with self._lock:
            return sum(
                1 for d in self._collection(collection).values()
                if all(matches(d, f) for f in filters)
            )

    def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = self._id_factory()
        self.set(collection, doc_id, data)
        return doc_id

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        with self._lock:
            document = copy.deepcopy(data)
            document["id"] = doc_id
            self._collection(collection)[doc_id] = document

    def update(
        self,
        collection: str,
        doc_id: str,
        patch: dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> None:
        with self._lock:
            documents = self._collection(collection)
            current = documents.get(doc_id)
            if current is None:
                raise DocumentNotFoundError(collection, doc_id)

            updated = {**current, **copy.deepcopy(patch), "id": doc_id}
            if expected_version is not None:
                actual = current.get(VERSION_FIELD, 0)
                if actual != expected_version:
                    raise VersionConflictError(collection, doc_id, expected_version, actual)
                updated[VERSION_FIELD] = expected_version + 1

            documents[doc_id] = updated

    def delete(self, collection: str, doc_id: str) -> None:
        with self._lock:
            self._collection(collection).pop(doc_id, None)

    def batch(self) -> InMemoryWriteBatch:
        return InMemoryWriteBatch(self)

    def _apply_batch(self, operations: list[BatchOperation]) -> None:
        """Apply queued operations atomically."""
        with self._lock:
            # Stage against copies so a failing operation leaves nothing behind
            touched = {op.collection for op in operations}
            staged = {name: dict(self._collection(name)) for name in touched}

            for op in operations:
                documents = staged[op.collection]
                if op.kind == "set":
                    documents[op.doc_id] = {**op.data, "id": op.doc_id}
                elif op.kind == "update":
                    current = documents.get(op.doc_id)
                    if current is None:
                        raise DocumentNotFoundError(op.collection, op.doc_id)
                    documents[op.doc_id] = {**current, **op.data, "id": op.doc_id}
                elif op.kind == "delete":
                    documents.pop(op.doc_id, None)
                else:
                    raise ValueError(f"Unknown batch operation: {op.kind}")

            self._collections.update(staged)
