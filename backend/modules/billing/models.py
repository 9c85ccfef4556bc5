"""
Billing module data models.

These models define the enums, request payloads, detail blocks and
response shapes used by the billing module. The Invoice and
PaymentMethod entities live in their own modules because they carry
lifecycle behaviour.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""

    DRAFT = "draft"                  # Not yet issued (never produced by the factory)
    OPEN = "open"                    # Issued and awaiting payment
    PAID = "paid"                    # Fully paid
    VOID = "void"                    # Cancelled before payment
    UNCOLLECTIBLE = "uncollectible"  # Written off


class PaymentMethodType(str, Enum):
    """Kinds of payment method."""

    CARD = "card"
    BANK_ACCOUNT = "bank_account"
    WALLET = "wallet"


class PaymentProvider(str, Enum):
    """Provider that holds the underlying instrument."""

    STRIPE = "stripe"
    PAYPAL = "paypal"
    MANUAL = "manual"


# -----------------------------------------------------------------------------
# Invoice payloads
# -----------------------------------------------------------------------------


class LineItemRequest(BaseModel):
    """One line of an invoice creation request."""

    description: str = Field(..., description="What is being billed")
    quantity: Decimal = Field(..., description="Number of units (must be > 0)")
    unit_amount: Decimal = Field(..., description="Price per unit")
    total_amount: Optional[Decimal] = Field(
        None,
        description="Line total; computed as quantity * unit_amount when omitted",
    )


class CreateInvoiceRequest(BaseModel):
    """
    Request to create an invoice.

    Tax and discount arrive already computed; this module only checks
    that the numbers are consistent.
    """

    subscription_id: Optional[str] = Field(None, description="Originating subscription")
    currency: Optional[str] = Field(
        None,
        description="ISO 4217 currency code; defaults to the configured currency",
    )
    line_items: list[LineItemRequest] = Field(default_factory=list)
    subtotal: Optional[Decimal] = Field(
        None,
        description="Declared subtotal; defaults to the sum of line item totals",
    )
    tax_amount: Decimal = Field(default=Decimal("0"))
    discount_amount: Decimal = Field(default=Decimal("0"))
    due_date: datetime = Field(..., description="When payment is due")
    metadata: dict[str, Any] = Field(default_factory=dict)


# -----------------------------------------------------------------------------
# Payment method payloads
# -----------------------------------------------------------------------------


class CardDetails(BaseModel):
    """Card instrument details (never the full PAN)."""

    brand: Optional[str] = None
    last4: Optional[str] = None
    exp_month: Optional[int] = None
    exp_year: Optional[int] = None
    holder_name: Optional[str] = None


class BankAccountDetails(BaseModel):
    """Bank account instrument details."""

    bank_name: Optional[str] = None
    account_type: Optional[str] = None
    last4: Optional[str] = None
    country: Optional[str] = None
    routing_number: Optional[str] = None


class WalletDetails(BaseModel):
    """Digital wallet details (Apple Pay, PayPal, ...)."""

    type: Optional[str] = None
    email: Optional[str] = None


class CreatePaymentMethodRequest(BaseModel):
    """Request to register a payment method for a tenant."""

    payment_provider: PaymentProvider = Field(default=PaymentProvider.STRIPE)
    provider_method_id: Optional[str] = Field(
        None,
        description="Provider-side reference (e.g. Stripe pm_...)",
    )
    type: PaymentMethodType
    card: Optional[CardDetails] = None
    bank_account: Optional[BankAccountDetails] = None
    wallet: Optional[WalletDetails] = None
    is_default: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)


class UpdatePaymentMethodRequest(BaseModel):
    """
    Partial update of a payment method.

    Only fields that are set are applied; metadata is merged.
    """

    card: Optional[CardDetails] = None
    bank_account: Optional[BankAccountDetails] = None
    wallet: Optional[WalletDetails] = None
    is_default: Optional[bool] = None
    metadata: Optional[dict[str, Any]] = None


# -----------------------------------------------------------------------------
# Responses and events
# -----------------------------------------------------------------------------


class BillingEventType(str, Enum):
    """Notifications emitted after billing state changes."""

    INVOICE_CREATED = "invoice.created"
    INVOICE_PAID = "invoice.paid"
    INVOICE_PAYMENT_RECORDED = "invoice.payment_recorded"
    INVOICE_VOIDED = "invoice.voided"
    INVOICE_UNCOLLECTIBLE = "invoice.uncollectible"
    PAYMENT_METHOD_ADDED = "payment_method.added"
    PAYMENT_METHOD_UPDATED = "payment_method.updated"
    PAYMENT_METHOD_REMOVED = "payment_method.removed"
    PAYMENT_METHOD_DEFAULT_CHANGED = "payment_method.default_changed"


class BillingEvent(BaseModel):
    """A fire-and-forget notification about a billing change."""

    type: BillingEventType
    tenant_id: str
    entity_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime


class OverdueInvoice(BaseModel):
    """An open invoice past its due date."""

    invoice_id: str
    invoice_number: str
    amount_due: Decimal
    due_date: datetime
    days_overdue: int
