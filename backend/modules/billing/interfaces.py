"""
Billing module interfaces.

Other modules (and any HTTP layer built on top) should depend on
these protocols, not the concrete services. Every call is already
tenant-scoped and authenticated by the caller.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Protocol, runtime_checkable

from .invoice import Invoice, InvoiceListResponse
from .models import (
    BillingEvent,
    CreateInvoiceRequest,
    CreatePaymentMethodRequest,
    InvoiceStatus,
    OverdueInvoice,
    UpdatePaymentMethodRequest,
)
from .payment_method import PaymentMethod


@runtime_checkable
class INotificationDispatcher(Protocol):
    """
    Interface for delivering billing notifications.

    Delivery is fire-and-forget: a failure here never undoes the
    billing change that triggered it.
    """

    async def dispatch(self, event: BillingEvent) -> None:
        """
        Deliver one billing event.

        Args:
            event: The event to deliver
        """
        ...


@runtime_checkable
class IInvoiceService(Protocol):
    """Interface for invoice lifecycle operations."""

    async def create_invoice(self, tenant_id: str, request: CreateInvoiceRequest) -> Invoice:
        """
        Create an OPEN invoice.

        Args:
            tenant_id: Owning tenant
            request: Line items and already-resolved amounts

        Returns:
            The persisted invoice with its id and invoice number

        Raises:
            ValidationError: If the amounts are inconsistent
        """
        ...

    async def get_invoice(self, tenant_id: str, invoice_id: str) -> Invoice:
        """
        Load one invoice.

        Raises:
            InvoiceNotFoundError: If absent or owned by another tenant
        """
        ...

    async def list_invoices(
        self,
        tenant_id: str,
        status: Optional[InvoiceStatus] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> InvoiceListResponse:
        """List a tenant's invoices, newest first."""
        ...

    async def list_overdue_invoices(self, tenant_id: str) -> list[OverdueInvoice]:
        """List OPEN invoices whose due date has passed."""
        ...

    async def mark_invoice_as_paid(
        self,
        tenant_id: str,
        invoice_id: str,
        paid_at: Optional[datetime] = None,
        expected_version: Optional[int] = None,
    ) -> Invoice:
        """
        Settle an invoice in full.

        Raises:
            InvoiceNotFoundError: If absent or owned by another tenant
            InvoiceVersionConflictError: If the invoice changed since it was read
        """
        ...

    async def record_payment(
        self,
        tenant_id: str,
        invoice_id: str,
        amount: Decimal,
        payment_date: Optional[datetime] = None,
        expected_version: Optional[int] = None,
    ) -> Invoice:
        """
        Apply a partial or full payment.

        Raises:
            InvoiceNotPayableError: If the invoice is not OPEN with an amount due
            InvalidAmountError: If amount is not positive
        """
        ...

    async def record_payment_attempt(self, tenant_id: str, invoice_id: str) -> Invoice:
        """Count a charge attempt against the invoice."""
        ...

    async def void_invoice(
        self,
        tenant_id: str,
        invoice_id: str,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Invoice:
        """
        Void an invoice.

        Raises:
            InvoiceAlreadyPaidError: If the invoice has been paid
        """
        ...

    async def mark_invoice_uncollectible(
        self,
        tenant_id: str,
        invoice_id: str,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Invoice:
        """Write off an OPEN invoice."""
        ...

    async def update_invoice_metadata(
        self,
        tenant_id: str,
        invoice_id: str,
        patch: dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Invoice:
        """Merge keys into the invoice's metadata."""
        ...


@runtime_checkable
class IPaymentMethodService(Protocol):
    """Interface for payment method bookkeeping."""

    async def create_payment_method(
        self,
        tenant_id: str,
        request: CreatePaymentMethodRequest,
        actor_id: Optional[str] = None,
    ) -> PaymentMethod:
        """
        Register a payment method.

        A default method replaces the tenant's previous default atomically.

        Raises:
            PaymentMethodLimitError: If the tenant is at its limit
            ValidationError: If the details are invalid
        """
        ...

    async def update_payment_method(
        self,
        tenant_id: str,
        method_id: str,
        request: UpdatePaymentMethodRequest,
        actor_id: Optional[str] = None,
    ) -> PaymentMethod:
        """Update a payment method owned by the tenant."""
        ...

    async def delete_payment_method(
        self,
        tenant_id: str,
        method_id: str,
        actor_id: Optional[str] = None,
    ) -> None:
        """Remove a payment method; no other method is promoted to default."""
        ...

    async def get_payment_method(self, tenant_id: str, method_id: str) -> PaymentMethod:
        """Load one payment method owned by the tenant."""
        ...

    async def list_payment_methods(self, tenant_id: str) -> list[PaymentMethod]:
        """List the tenant's payment methods, default first."""
        ...

    async def get_default_payment_method(self, tenant_id: str) -> Optional[PaymentMethod]:
        """
        Get the tenant's default payment method.

        Returns:
            The default method, or None when the tenant has none
        """
        ...

    async def set_default_payment_method(self, tenant_id: str, method_id: str) -> PaymentMethod:
        """Make an existing method the tenant's default."""
        ...

    async def reconcile_default_payment_methods(self, tenant_id: str) -> list[str]:
        """
        Repair a tenant left with several defaults.

        Returns:
            Ids of the methods whose default flag was cleared
        """
        ...
