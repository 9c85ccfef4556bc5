"""
Base repository class for document access.

Provides a common abstraction layer for all repositories, encapsulating
DocumentStore access and the dict-to-model mapping every repository needs.
"""

from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel

from .store import DocumentStore


T = TypeVar("T", bound=BaseModel)


class BaseRepository(Generic[T]):
    """
    Base class for all repositories.

    Provides common functionality for document operations:
    - DocumentStore access via self._store
    - Mapping between stored documents and Pydantic models

    Subclasses set ``collection`` and ``model`` and add domain-specific
    queries on top of the helpers here.

    Example:
        class InvoiceRepository(BaseRepository[Invoice]):
            collection = "invoices"
            model = Invoice
    """

    collection: str
    model: type[T]

    def __init__(self, store: DocumentStore) -> None:
        """
        Initialize the repository with a document store.

        Args:
            store: DocumentStore instance for persistence operations.
        """
        self._store = store

    def get_by_id(self, doc_id: str) -> Optional[T]:
        """Load a record by id, or None if it does not exist."""
        document = self._store.get(self.collection, doc_id)
        if document is None:
            return None
        return self._to_model(document)

    def _to_model(self, document: dict[str, Any]) -> T:
        """Map a stored document to the repository's model."""
        return self.model.model_validate(document)

    def _to_document(self, entity: T) -> dict[str, Any]:
        """Map a model to the document shape kept in the store."""
        return entity.model_dump(mode="python")
