"""
Invoice service.

Use cases over the Invoice entity: load, check, mutate through the
entity, persist with compare-and-swap on the invoice version, then
notify. Services are constructed explicitly with their collaborators;
see modules.billing.service.create_billing_services.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from shared.clock import Clock, IdFactory, SystemClock, new_id
from shared.config import Settings, get_settings
from shared.exceptions import ValidationError
from shared.store import DocumentStore, VersionConflictError

from .exceptions import (
    InvalidInvoiceTransitionError,
    InvoiceAlreadyPaidError,
    InvoiceNotFoundError,
    InvoiceNotPayableError,
    InvoiceNumberConflictError,
    InvoiceVersionConflictError,
)
from .interfaces import INotificationDispatcher
from .invoice import Invoice, InvoiceListResponse, generate_invoice_number
from .models import (
    BillingEvent,
    BillingEventType,
    CreateInvoiceRequest,
    InvoiceStatus,
    OverdueInvoice,
)
from .notifications import notify_safely
from .repository import InvoiceRepository

logger = logging.getLogger(__name__)


class InvoiceService:
    """
    Invoice lifecycle service.

    Implements IInvoiceService on top of any DocumentStore.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        clock: Optional[Clock] = None,
        id_factory: Optional[IdFactory] = None,
        notifier: Optional[INotificationDispatcher] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the invoice service.

        Args:
            store: Document store holding the invoices collection
            clock: Time source; defaults to wall-clock UTC
            id_factory: Id generator for invoices and line items
            notifier: Dispatcher for billing events (optional)
            settings: Billing settings; defaults to the cached settings
        """
        self._invoices = InvoiceRepository(store)
        self._clock = clock or SystemClock()
        self._new_id = id_factory or new_id
        self._notifier = notifier
        self._settings = settings or get_settings()

    # -------------------------------------------------------------------------
    # Creation and reads
    # -------------------------------------------------------------------------

    async def create_invoice(self, tenant_id: str, request: CreateInvoiceRequest) -> Invoice:
        """Build, validate and persist a new OPEN invoice."""
        if request.currency is None:
            request = request.model_copy(update={"currency": self._settings.default_currency})

        now = self._clock.now()
        invoice = Invoice.create(
            request,
            invoice_id=self._new_id(),
            tenant_id=tenant_id,
            invoice_number=self._allocate_invoice_number(now),
            id_factory=self._new_id,
            now=now,
        )
        self._invoices.insert(invoice)

        logger.info(
            f"Created invoice {invoice.invoice_number} ({invoice.id}) for tenant {tenant_id}: "
            f"total {invoice.total_amount} {invoice.currency}"
        )
        await self._notify(BillingEventType.INVOICE_CREATED, invoice, {
            "invoice_number": invoice.invoice_number,
            "total_amount": str(invoice.total_amount),
            "currency": invoice.currency,
        })
        return invoice

    async def get_invoice(self, tenant_id: str, invoice_id: str) -> Invoice:
        """Load an invoice owned by the tenant."""
        return self._load(tenant_id, invoice_id)

    async def list_invoices(
        self,
        tenant_id: str,
        status: Optional[InvoiceStatus] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> InvoiceListResponse:
        """List a tenant's invoices, newest first."""
        if page < 1:
            raise ValidationError("page must be at least 1", field="page")
        if not 1 <= page_size <= self._settings.invoice_page_size_max:
            raise ValidationError(
                f"page_size must be between 1 and {self._settings.invoice_page_size_max}",
                field="page_size",
            )

        offset = (page - 1) * page_size
        invoices, total = self._invoices.list_for_tenant(
            tenant_id,
            status=status,
            offset=offset,
            limit=page_size,
        )
        return InvoiceListResponse(
            invoices=invoices,
            total=total,
            page=page,
            page_size=page_size,
            has_more=(offset + page_size) < total,
        )

    async def list_overdue_invoices(self, tenant_id: str) -> list[OverdueInvoice]:
        """List OPEN invoices past their due date, most overdue first."""
        now = self._clock.now()
        return [
            OverdueInvoice(
                invoice_id=invoice.id,
                invoice_number=invoice.invoice_number,
                amount_due=invoice.amount_due,
                due_date=invoice.due_date,
                days_overdue=invoice.get_days_overdue(now),
            )
            for invoice in self._invoices.list_open_past_due(tenant_id, now)
        ]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def mark_invoice_as_paid(
        self,
        tenant_id: str,
        invoice_id: str,
        paid_at: Optional[datetime] = None,
        expected_version: Optional[int] = None,
    ) -> Invoice:
        """Settle an OPEN invoice in full."""
        invoice = self._load(tenant_id, invoice_id, expected_version)
        self._require_status(invoice, InvoiceStatus.PAID, InvoiceStatus.OPEN)

        now = self._clock.now()
        loaded_version = invoice.version
        invoice.mark_as_paid(paid_at or now, now=now)
        self._save(invoice, loaded_version)

        logger.info(f"Invoice {invoice.id} marked as paid for tenant {tenant_id}")
        await self._notify(BillingEventType.INVOICE_PAID, invoice, {
            "amount_paid": str(invoice.amount_paid),
        })
        return invoice

    async def record_payment(
        self,
        tenant_id: str,
        invoice_id: str,
        amount: Decimal,
        payment_date: Optional[datetime] = None,
        expected_version: Optional[int] = None,
    ) -> Invoice:
        """Apply a payment; the invoice becomes PAID once nothing is due."""
        invoice = self._load(tenant_id, invoice_id, expected_version)
        if not invoice.can_be_paid():
            raise InvoiceNotPayableError(invoice.id, invoice.status.value)

        now = self._clock.now()
        loaded_version = invoice.version
        invoice.add_payment(amount, payment_date or now, now=now)
        self._save(invoice, loaded_version)

        logger.info(
            f"Recorded payment of {amount} on invoice {invoice.id} for tenant {tenant_id}; "
            f"amount due {invoice.amount_due}"
        )
        await self._notify(BillingEventType.INVOICE_PAYMENT_RECORDED, invoice, {
            "amount": str(amount),
            "amount_paid": str(invoice.amount_paid),
            "amount_due": str(invoice.amount_due),
        })
        if invoice.is_paid():
            await self._notify(BillingEventType.INVOICE_PAID, invoice, {
                "amount_paid": str(invoice.amount_paid),
            })
        return invoice

    async def record_payment_attempt(self, tenant_id: str, invoice_id: str) -> Invoice:
        """Count a charge attempt against the invoice."""
        invoice = self._load(tenant_id, invoice_id)

        loaded_version = invoice.version
        invoice.increment_payment_attempt(self._clock.now())
        self._save(invoice, loaded_version)

        logger.info(
            f"Payment attempt {invoice.payment_attempt_count} recorded on invoice {invoice.id} "
            f"for tenant {tenant_id}"
        )
        return invoice

    async def void_invoice(
        self,
        tenant_id: str,
        invoice_id: str,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Invoice:
        """Void an unpaid invoice, keeping the reason in metadata."""
        invoice = self._load(tenant_id, invoice_id, expected_version)
        if invoice.is_paid():
            raise InvoiceAlreadyPaidError(invoice.id)
        self._require_status(invoice, InvoiceStatus.VOID, InvoiceStatus.OPEN, InvoiceStatus.DRAFT)

        now = self._clock.now()
        loaded_version = invoice.version
        invoice.mark_as_void(now, now=now)
        if reason:
            invoice.set_metadata({"void_reason": reason}, now=now)
        self._save(invoice, loaded_version)

        logger.info(f"Invoice {invoice.id} voided for tenant {tenant_id}")
        await self._notify(BillingEventType.INVOICE_VOIDED, invoice, {"reason": reason})
        return invoice

    async def mark_invoice_uncollectible(
        self,
        tenant_id: str,
        invoice_id: str,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Invoice:
        """Write off an OPEN invoice."""
        invoice = self._load(tenant_id, invoice_id, expected_version)
        self._require_status(invoice, InvoiceStatus.UNCOLLECTIBLE, InvoiceStatus.OPEN)

        loaded_version = invoice.version
        invoice.mark_as_uncollectible(reason, now=self._clock.now())
        self._save(invoice, loaded_version)

        logger.info(f"Invoice {invoice.id} written off as uncollectible for tenant {tenant_id}")
        await self._notify(BillingEventType.INVOICE_UNCOLLECTIBLE, invoice, {
            "amount_due": str(invoice.amount_due),
            "reason": reason,
        })
        return invoice

    async def update_invoice_metadata(
        self,
        tenant_id: str,
        invoice_id: str,
        patch: dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Invoice:
        """Merge keys into the invoice's metadata."""
        invoice = self._load(tenant_id, invoice_id, expected_version)

        loaded_version = invoice.version
        invoice.set_metadata(patch, now=self._clock.now())
        self._save(invoice, loaded_version)
        return invoice

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _load(
        self,
        tenant_id: str,
        invoice_id: str,
        expected_version: Optional[int] = None,
    ) -> Invoice:
        invoice = self._invoices.get_for_tenant(tenant_id, invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        if expected_version is not None and expected_version != invoice.version:
            raise InvoiceVersionConflictError(invoice_id, expected_version, invoice.version)
        return invoice

    def _save(self, invoice: Invoice, loaded_version: int) -> Invoice:
        invoice.validate_invariants()
        try:
            return self._invoices.save(invoice, loaded_version)
        except VersionConflictError as e:
            logger.warning(f"Concurrent modification of invoice {invoice.id} detected")
            raise InvoiceVersionConflictError(
                invoice.id,
                loaded_version,
                e.details.get("actual_version"),
            ) from e

    @staticmethod
    def _require_status(invoice: Invoice, target: InvoiceStatus, *allowed: InvoiceStatus) -> None:
        if invoice.status not in allowed:
            raise InvalidInvoiceTransitionError(invoice.id, invoice.status.value, target.value)

    def _allocate_invoice_number(self, now: datetime) -> str:
        """Generate an invoice number not yet used by any invoice."""
        attempts = self._settings.invoice_number_max_attempts
        for _ in range(attempts):
            candidate = generate_invoice_number(now)
            if not self._invoices.invoice_number_exists(candidate):
                return candidate
            logger.warning(f"Invoice number collision on {candidate}, regenerating")
        raise InvoiceNumberConflictError(attempts)

    async def _notify(
        self,
        event_type: BillingEventType,
        invoice: Invoice,
        payload: dict[str, Any],
    ) -> None:
        await notify_safely(
            self._notifier,
            BillingEvent(
                type=event_type,
                tenant_id=invoice.tenant_id,
                entity_id=invoice.id,
                payload={"invoice_number": invoice.invoice_number, **payload},
                occurred_at=self._clock.now(),
            ),
        )
