"""
Invoice entity and lifecycle.

The entity is store-agnostic: it validates and mutates itself in memory
and the service layer persists it. An Invoice instance is owned by a
single unit of work and must not be shared between concurrent operations.

Lifecycle:
    OPEN --mark_as_paid / add_payment (fully paid)--> PAID
    OPEN --add_payment (partial)--> OPEN
    OPEN --mark_as_void--> VOID
    OPEN --mark_as_uncollectible--> UNCOLLECTIBLE

Voiding a paid invoice is refused by the service, not here.
"""

import math
import secrets
import string
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from shared.clock import IdFactory
from shared.exceptions import ValidationError

from .exceptions import InvalidAmountError
from .models import CreateInvoiceRequest, InvoiceStatus
from .money import (
    quantize_amount,
    to_amount,
    validate_non_negative,
    validate_positive,
    validate_sums_to_total,
)


INVOICE_NUMBER_PREFIX = "INV"

DEFAULT_CURRENCY = "USD"

_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits

ZERO = Decimal("0")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def generate_invoice_number(now: Optional[datetime] = None) -> str:
    """
    Generate a human-readable invoice number.

    Format: INV-<YYYYMM>-<last 6 digits of epoch millis>-<3 random chars>.
    Uniqueness is probabilistic; the service checks the store before use.
    """
    now = now or _utcnow()
    millis = int(now.timestamp() * 1000)
    random_part = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(3))
    return f"{INVOICE_NUMBER_PREFIX}-{now.year:04d}{now.month:02d}-{millis % 1_000_000:06d}-{random_part}"


class InvoiceLineItem(BaseModel):
    """One priced component of an invoice."""

    id: str
    description: str
    quantity: Decimal
    unit_amount: Decimal
    total_amount: Decimal

    def validate_amounts(self, path: str) -> None:
        """Check quantity, prices and quantity * unit_amount == total_amount."""
        if not self.description or not self.description.strip():
            raise ValidationError("Line item description is required", field=f"{path}.description")
        validate_positive(self.quantity, f"{path}.quantity")
        validate_non_negative(self.unit_amount, f"{path}.unit_amount")
        validate_non_negative(self.total_amount, f"{path}.total_amount")
        validate_sums_to_total(
            [self.quantity * self.unit_amount],
            self.total_amount,
            field_name=f"{path}.total_amount",
        )


class Invoice(BaseModel):
    """
    A tenant's invoice.

    Monetary invariants (checked by validate_invariants()):
    - total_amount == subtotal + tax_amount - discount_amount
    - amount_due == max(0, total_amount - amount_paid)
    - line item totals add up to subtotal
    """

    model_config = {"extra": "ignore"}

    id: str = Field(..., description="Invoice ID")
    tenant_id: str = Field(..., description="Owning tenant")
    subscription_id: Optional[str] = Field(None, description="Originating subscription")
    invoice_number: str = Field(..., description="Human-readable invoice number")
    status: InvoiceStatus = Field(default=InvoiceStatus.OPEN)
    currency: str = Field(default="USD", description="ISO 4217 currency code")

    subtotal: Decimal
    tax_amount: Decimal = ZERO
    discount_amount: Decimal = ZERO
    total_amount: Decimal
    amount_paid: Decimal = ZERO
    amount_due: Decimal

    line_items: list[InvoiceLineItem] = Field(default_factory=list)

    due_date: datetime
    paid_at: Optional[datetime] = None
    voided_at: Optional[datetime] = None

    payment_attempt_count: int = 0
    last_payment_attempt: Optional[datetime] = None

    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime
    version: int = Field(default=0, description="Optimistic concurrency token")

    @field_validator(
        "due_date",
        "paid_at",
        "voided_at",
        "last_payment_attempt",
        "created_at",
        "updated_at",
    )
    @classmethod
    def _ensure_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value) if value is not None else None

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def create(
        cls,
        request: CreateInvoiceRequest,
        *,
        invoice_id: str,
        tenant_id: str,
        invoice_number: str,
        id_factory: IdFactory,
        now: Optional[datetime] = None,
    ) -> "Invoice":
        """
        Build a new OPEN invoice from a creation request.

        Line totals default to quantity * unit_amount and the subtotal
        defaults to the sum of line totals. Totals are derived, never
        taken from the caller.

        Every stored amount is rounded to cents. A declared subtotal is
        checked against the rounded line totals before it is rounded
        itself.

        Raises:
            ValidationError: If the resulting invoice violates an invariant
        """
        now = now or _utcnow()

        line_items = []
        for index, item in enumerate(request.line_items):
            quantity = to_amount(item.quantity, f"line_items[{index}].quantity")
            unit_amount = to_amount(item.unit_amount, f"line_items[{index}].unit_amount")
            total = (
                to_amount(item.total_amount, f"line_items[{index}].total_amount")
                if item.total_amount is not None
                else quantity * unit_amount
            )
            line_items.append(
                InvoiceLineItem(
                    id=id_factory(),
                    description=item.description,
                    quantity=quantity,
                    unit_amount=unit_amount,
                    total_amount=quantize_amount(total),
                )
            )

        line_sum = sum((li.total_amount for li in line_items), ZERO)
        if request.subtotal is not None:
            subtotal = to_amount(request.subtotal, "subtotal")
            validate_sums_to_total([line_sum], subtotal, field_name="subtotal")
            subtotal = quantize_amount(subtotal)
        else:
            subtotal = line_sum
        tax_amount = quantize_amount(to_amount(request.tax_amount, "tax_amount"))
        discount_amount = quantize_amount(to_amount(request.discount_amount, "discount_amount"))
        total_amount = subtotal + tax_amount - discount_amount

        invoice = cls(
            id=invoice_id,
            tenant_id=tenant_id,
            subscription_id=request.subscription_id,
            invoice_number=invoice_number,
            status=InvoiceStatus.OPEN,
            currency=(request.currency or DEFAULT_CURRENCY).upper(),
            subtotal=subtotal,
            tax_amount=tax_amount,
            discount_amount=discount_amount,
            total_amount=total_amount,
            amount_paid=ZERO,
            amount_due=max(ZERO, total_amount),
            line_items=line_items,
            due_date=request.due_date,
            payment_attempt_count=0,
            metadata=dict(request.metadata),
            created_at=now,
            updated_at=now,
            version=0,
        )
        invoice.validate_invariants()
        return invoice

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate_invariants(self) -> None:
        """
        Check every invoice invariant.

        Raises:
            ValidationError: On the first violation, with its field path
        """
        if len(self.currency) != 3 or not self.currency.isalpha():
            raise ValidationError("currency must be a 3-letter ISO code", field="currency")

        for name in ("subtotal", "tax_amount", "discount_amount", "total_amount", "amount_paid", "amount_due"):
            validate_non_negative(getattr(self, name), name)

        validate_sums_to_total(
            [self.subtotal, self.tax_amount, -self.discount_amount],
            self.total_amount,
            field_name="total_amount",
        )
        validate_sums_to_total(
            [max(ZERO, self.total_amount - self.amount_paid)],
            self.amount_due,
            field_name="amount_due",
        )

        if not self.line_items:
            raise ValidationError("Invoice must have at least one line item", field="line_items")
        for index, item in enumerate(self.line_items):
            item.validate_amounts(f"line_items[{index}]")
        validate_sums_to_total(
            [item.total_amount for item in self.line_items],
            self.subtotal,
            field_name="subtotal",
        )

        if self.payment_attempt_count < 0:
            raise ValidationError("payment_attempt_count cannot be negative", field="payment_attempt_count")

        self._check_not_before_created(self.paid_at, "paid_at")
        self._check_not_before_created(self.voided_at, "voided_at")

    def _check_not_before_created(self, value: Optional[datetime], field_name: str) -> None:
        if value is not None and _as_utc(value) < self.created_at:
            raise ValidationError(
                f"{field_name} cannot be earlier than the invoice creation time",
                field=field_name,
            )

    def _touch(self, now: Optional[datetime]) -> None:
        self.updated_at = _as_utc(now) if now is not None else _utcnow()

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def mark_as_paid(self, paid_at: Optional[datetime] = None, now: Optional[datetime] = None) -> None:
        """Settle the invoice in full."""
        paid_at = _as_utc(paid_at) if paid_at is not None else (now or _utcnow())
        self._check_not_before_created(paid_at, "paid_at")

        self.amount_paid = self.total_amount
        self.amount_due = ZERO
        self.status = InvoiceStatus.PAID
        self.paid_at = paid_at
        self._touch(now or paid_at)

    def add_payment(
        self,
        amount: Any,
        payment_date: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Apply a (possibly partial) payment.

        amount_due is clamped at zero: an overpayment is absorbed, not
        rejected. The invoice becomes PAID the first time amount_due
        reaches zero.
        """
        amount = to_amount(amount)
        if amount <= 0:
            raise InvalidAmountError(amount, "Payment amount must be positive")
        cents = quantize_amount(amount)
        if cents != amount:
            raise InvalidAmountError(amount, "Payment amount cannot include fractions of a cent")
        amount = cents

        payment_date = _as_utc(payment_date) if payment_date is not None else (now or _utcnow())

        amount_paid = self.amount_paid + amount
        amount_due = max(ZERO, self.total_amount - amount_paid)
        settles = amount_due == ZERO and self.status == InvoiceStatus.OPEN
        if settles:
            self._check_not_before_created(payment_date, "paid_at")

        self.amount_paid = amount_paid
        self.amount_due = amount_due
        if settles:
            self.status = InvoiceStatus.PAID
            self.paid_at = payment_date

        self._touch(now or payment_date)

    def mark_as_void(self, voided_at: Optional[datetime] = None, now: Optional[datetime] = None) -> None:
        """Cancel the invoice."""
        voided_at = _as_utc(voided_at) if voided_at is not None else (now or _utcnow())
        self._check_not_before_created(voided_at, "voided_at")

        self.status = InvoiceStatus.VOID
        self.voided_at = voided_at
        self._touch(now or voided_at)

    def mark_as_uncollectible(self, reason: Optional[str] = None, now: Optional[datetime] = None) -> None:
        """Write the invoice off after collection has been abandoned."""
        now = now or _utcnow()
        self.status = InvoiceStatus.UNCOLLECTIBLE
        patch: dict[str, Any] = {"uncollectible_at": now.isoformat()}
        if reason:
            patch["uncollectible_reason"] = reason
        self.metadata = {**self.metadata, **patch}
        self._touch(now)

    def increment_payment_attempt(self, now: Optional[datetime] = None) -> None:
        """Record that a charge was attempted."""
        now = now or _utcnow()
        self.payment_attempt_count += 1
        self.last_payment_attempt = now
        self._touch(now)

    def set_metadata(self, patch: dict[str, Any], now: Optional[datetime] = None) -> None:
        """Shallow-merge patch into metadata."""
        self.metadata = {**self.metadata, **patch}
        self._touch(now)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def is_paid(self) -> bool:
        return self.status == InvoiceStatus.PAID

    def can_be_paid(self) -> bool:
        return self.status == InvoiceStatus.OPEN and self.amount_due > ZERO

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        now = _as_utc(now) if now is not None else _utcnow()
        return self.status == InvoiceStatus.OPEN and self.due_date < now

    def get_days_overdue(self, now: Optional[datetime] = None) -> int:
        """Whole days past due, rounded up; 0 when not overdue."""
        now = _as_utc(now) if now is not None else _utcnow()
        if not self.is_overdue(now):
            return 0
        elapsed = (now - self.due_date).total_seconds()
        return math.ceil(elapsed / 86400)


class InvoiceListResponse(BaseModel):
    """Paginated invoice history for a tenant."""

    invoices: list[Invoice] = Field(..., description="Invoices on this page, newest first")
    total: int = Field(..., description="Total matching invoices")
    page: int = Field(..., description="Page number (1-indexed)")
    page_size: int = Field(..., description="Items per page")
    has_more: bool = Field(..., description="Whether more pages exist")
