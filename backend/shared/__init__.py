"""
Shared infrastructure for the billing ledger.

This package contains cross-cutting concerns that are used by multiple modules:
- config: Centralized settings management
- database: Supabase client and document store factory
- store: Document store interface and in-memory implementation
- clock: Time and id sources
- exceptions: Base exception classes

Note: Business logic should NOT go here. This is for infrastructure only.
"""

from .config import Settings, get_settings, configure_logging
from .clock import Clock, SystemClock, new_id
from .database import get_supabase_client, create_document_store, reset_client_cache
from .exceptions import (
    LedgerError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,
)
from .store import (
    DocumentStore,
    WriteBatch,
    Filter,
    OrderBy,
    InMemoryDocumentStore,
    DocumentNotFoundError,
    VersionConflictError,
    StoreError,
)

__all__ = [
    "Settings",
    "get_settings",
    "configure_logging",
    "Clock",
    "SystemClock",
    "new_id",
    "get_supabase_client",
    "create_document_store",
    "reset_client_cache",
    "LedgerError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",
    "DocumentStore",
    "WriteBatch",
    "Filter",
    "OrderBy",
    "InMemoryDocumentStore",
    "DocumentNotFoundError",
    "VersionConflictError",
    "StoreError",
]
