"""
Billing module exceptions.

These exceptions are raised by the billing module and can be caught
by API error handlers to return appropriate HTTP responses.
"""

from decimal import Decimal
from typing import Optional

from shared.exceptions import LedgerError, NotFoundError, ValidationError, ConflictError


class BillingError(LedgerError):
    """Base exception for billing-related errors."""

    pass


class InvoiceNotFoundError(NotFoundError):
    """
    Raised when an invoice is not found.

    Also raised when the invoice belongs to another tenant, so existence
    never leaks across tenants.
    """

    def __init__(self, invoice_id: str):
        super().__init__(
            f"Invoice not found: {invoice_id}",
            code="INVOICE_NOT_FOUND",
            details={"invoice_id": invoice_id},
        )


class PaymentMethodNotFoundError(NotFoundError):
    """Raised when a payment method is not found for the caller's tenant."""

    def __init__(self, method_id: str):
        super().__init__(
            f"Payment method not found: {method_id}",
            code="PAYMENT_METHOD_NOT_FOUND",
            details={"payment_method_id": method_id},
        )


class InvalidAmountError(ValidationError):
    """Raised when a payment amount is invalid."""

    def __init__(self, amount: Decimal, reason: str, field: str = "amount"):
        super().__init__(
            f"Invalid amount: {amount}. {reason}",
            field=field,
            code="INVALID_AMOUNT",
            details={"amount": str(amount), "reason": reason},
        )


class InvoiceAlreadyPaidError(ValidationError):
    """Raised when trying to void an invoice that has been paid."""

    def __init__(self, invoice_id: str):
        super().__init__(
            "Cannot void a paid invoice",
            field="status",
            code="INVOICE_ALREADY_PAID",
            details={"invoice_id": invoice_id},
        )


class InvoiceNotPayableError(ValidationError):
    """Raised when a payment is applied to an invoice that cannot take one."""

    def __init__(self, invoice_id: str, status: str):
        super().__init__(
            f"Invoice {invoice_id} cannot accept payments in status '{status}'",
            field="status",
            code="INVOICE_NOT_PAYABLE",
            details={"invoice_id": invoice_id, "status": status},
        )


class InvalidInvoiceTransitionError(ValidationError):
    """Raised when a lifecycle change is not allowed from the current status."""

    def __init__(self, invoice_id: str, status: str, target: str):
        super().__init__(
            f"Invoice {invoice_id} cannot move from '{status}' to '{target}'",
            field="status",
            code="INVALID_INVOICE_TRANSITION",
            details={"invoice_id": invoice_id, "status": status, "target": target},
        )


class InvoiceVersionConflictError(ConflictError, BillingError):
    """Raised when an invoice was modified since the caller read it."""

    def __init__(self, invoice_id: str, expected: int, actual: Optional[int] = None):
        details: dict = {"invoice_id": invoice_id, "expected_version": expected}
        if actual is not None:
            details["actual_version"] = actual
        super().__init__(
            f"Invoice {invoice_id} was modified concurrently",
            code="INVOICE_VERSION_CONFLICT",
            details=details,
        )


class InvoiceNumberConflictError(ConflictError, BillingError):
    """Raised when no unused invoice number could be generated."""

    def __init__(self, attempts: int):
        super().__init__(
            f"Could not allocate a unique invoice number after {attempts} attempts",
            code="INVOICE_NUMBER_CONFLICT",
            details={"attempts": attempts},
        )


class PaymentMethodLimitError(ValidationError):
    """Raised when a tenant already has the maximum number of payment methods."""

    def __init__(self, tenant_id: str, limit: int):
        super().__init__(
            f"Payment method limit reached: a tenant may have at most {limit} payment methods",
            field="payment_methods",
            code="PAYMENT_METHOD_LIMIT",
            details={"tenant_id": tenant_id, "limit": limit},
        )


class CardExpiredError(ValidationError):
    """Raised when a card's expiry is in the past."""

    def __init__(self, exp_month: int, exp_year: int):
        super().__init__(
            "Card has expired",
            field="card.exp_year",
            code="CARD_EXPIRED",
            details={"exp_month": exp_month, "exp_year": exp_year},
        )
