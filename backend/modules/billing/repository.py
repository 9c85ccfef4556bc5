"""
Billing repositories.

Encapsulate document store access and mapping for the billing collections:
- invoices
- payment_methods

Note: These repositories do NOT perform authorization checks beyond
tenant scoping. The caller has already authenticated the tenant.
"""

from datetime import datetime
from typing import Any, Optional

from shared.repository import BaseRepository
from shared.store import VERSION_FIELD, Filter, OrderBy, WriteBatch

from .invoice import Invoice
from .models import InvoiceStatus
from .payment_method import PaymentMethod


INVOICES_COLLECTION = "invoices"
PAYMENT_METHODS_COLLECTION = "payment_methods"


class InvoiceRepository(BaseRepository[Invoice]):
    """Repository for invoice documents."""

    collection = INVOICES_COLLECTION
    model = Invoice

    def get_for_tenant(self, tenant_id: str, invoice_id: str) -> Optional[Invoice]:
        """
        Get an invoice owned by the tenant.

        Returns:
            The invoice, or None if missing or owned by another tenant.
        """
        invoice = self.get_by_id(invoice_id)
        if invoice is None or invoice.tenant_id != tenant_id:
            return None
        return invoice

    def invoice_number_exists(self, invoice_number: str) -> bool:
        """Check whether any invoice already uses this number."""
        return self._store.count(
            self.collection,
            [Filter("invoice_number", "==", invoice_number)],
        ) > 0

    def insert(self, invoice: Invoice) -> Invoice:
        """Persist a new invoice under its pre-allocated id."""
        self._store.set(self.collection, invoice.id, self._to_document(invoice))
        return invoice

    def save(self, invoice: Invoice, expected_version: int) -> Invoice:
        """
        Write back a mutated invoice with compare-and-swap on its version.

        Raises:
            VersionConflictError: If the stored version is not expected_version
        """
        data = self._to_document(invoice)
        data.pop("id", None)
        data.pop(VERSION_FIELD, None)
        self._store.update(self.collection, invoice.id, data, expected_version=expected_version)
        invoice.version = expected_version + 1
        return invoice

    def list_for_tenant(
        self,
        tenant_id: str,
        status: Optional[InvoiceStatus] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Invoice], int]:
        """
        List a tenant's invoices, newest first.

        Returns:
            Tuple of (invoices on this page, total matching count)
        """
        filters = [Filter("tenant_id", "==", tenant_id)]
        if status:
            filters.append(Filter("status", "==", status.value))

        total = self._store.count(self.collection, filters)
        documents = self._store.query(
            self.collection,
            filters,
            order_by=[OrderBy("created_at", descending=True)],
            limit=limit,
            offset=offset,
        )
        return [self._to_model(d) for d in documents], total

    def list_open_past_due(self, tenant_id: str, now: datetime) -> list[Invoice]:
        """List OPEN invoices with due_date before now, oldest due first."""
        documents = self._store.query(
            self.collection,
            [
                Filter("tenant_id", "==", tenant_id),
                Filter("status", "==", InvoiceStatus.OPEN.value),
                Filter("due_date", "<", now),
            ],
            order_by=[OrderBy("due_date")],
        )
        return [self._to_model(d) for d in documents]


class PaymentMethodRepository(BaseRepository[PaymentMethod]):
    """Repository for payment method documents."""

    collection = PAYMENT_METHODS_COLLECTION
    model = PaymentMethod

    def get_for_tenant(self, tenant_id: str, method_id: str) -> Optional[PaymentMethod]:
        """Get a payment method owned by the tenant, or None."""
        method = self.get_by_id(method_id)
        if method is None or method.tenant_id != tenant_id:
            return None
        return method

    def list_for_tenant(self, tenant_id: str) -> list[PaymentMethod]:
        """List a tenant's payment methods, default first, then newest."""
        documents = self._store.query(
            self.collection,
            [Filter("tenant_id", "==", tenant_id)],
            order_by=[
                OrderBy("is_default", descending=True),
                OrderBy("created_at", descending=True),
            ],
        )
        return [self._to_model(d) for d in documents]

    def count_for_tenant(self, tenant_id: str) -> int:
        return self._store.count(self.collection, [Filter("tenant_id", "==", tenant_id)])

    def list_defaults(self, tenant_id: str) -> list[PaymentMethod]:
        """All methods flagged default for the tenant (normally zero or one)."""
        documents = self._store.query(
            self.collection,
            [
                Filter("tenant_id", "==", tenant_id),
                Filter("is_default", "==", True),
            ],
            order_by=[OrderBy("updated_at", descending=True)],
        )
        return [self._to_model(d) for d in documents]

    def insert(self, method: PaymentMethod) -> PaymentMethod:
        self._store.set(self.collection, method.id, self._to_document(method))
        return method

    def replace(self, method: PaymentMethod) -> PaymentMethod:
        self._store.set(self.collection, method.id, self._to_document(method))
        return method

    def delete(self, method_id: str) -> None:
        self._store.delete(self.collection, method_id)

    def new_batch(self) -> WriteBatch:
        return self._store.batch()

    def queue_write(self, batch: WriteBatch, method: PaymentMethod) -> None:
        """Queue a full write of the method on a batch."""
        batch.set(self.collection, method.id, self._to_document(method))

    def queue_clear_default(self, batch: WriteBatch, method_id: str, now: datetime) -> None:
        """Queue clearing the default flag of a method on a batch."""
        patch: dict[str, Any] = {"is_default": False, "updated_at": now}
        batch.update(self.collection, method_id, patch)
