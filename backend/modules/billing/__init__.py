"""
Billing module.

Handles the invoice lifecycle, payment method bookkeeping and the
monetary rules that tie payments to invoices.

Public API:
- IInvoiceService / IPaymentMethodService: Interfaces for billing operations
- create_billing_services: Builds both services over a document store
- Invoice, PaymentMethod: Entities with their lifecycle methods
- Billing exceptions: InvoiceNotFoundError, PaymentMethodLimitError, etc.
"""

from .interfaces import IInvoiceService, IPaymentMethodService, INotificationDispatcher
from .invoice import Invoice, InvoiceLineItem, InvoiceListResponse, generate_invoice_number
from .payment_method import PaymentMethod
from .models import (
    InvoiceStatus,
    PaymentMethodType,
    PaymentProvider,
    LineItemRequest,
    CreateInvoiceRequest,
    CardDetails,
    BankAccountDetails,
    WalletDetails,
    CreatePaymentMethodRequest,
    UpdatePaymentMethodRequest,
    BillingEvent,
    BillingEventType,
    OverdueInvoice,
)
from .exceptions import (
    BillingError,
    InvoiceNotFoundError,
    PaymentMethodNotFoundError,
    InvalidAmountError,
    InvoiceAlreadyPaidError,
    InvoiceNotPayableError,
    InvalidInvoiceTransitionError,
    InvoiceVersionConflictError,
    InvoiceNumberConflictError,
    PaymentMethodLimitError,
    CardExpiredError,
)
from .invoice_service import InvoiceService
from .payment_method_service import PaymentMethodService
from .service import BillingServices, create_billing_services

__all__ = [
    # Interfaces
    "IInvoiceService",
    "IPaymentMethodService",
    "INotificationDispatcher",
    # Services
    "InvoiceService",
    "PaymentMethodService",
    "BillingServices",
    "create_billing_services",
    # Entities
    "Invoice",
    "InvoiceLineItem",
    "InvoiceListResponse",
    "PaymentMethod",
    "generate_invoice_number",
    # Models
    "InvoiceStatus",
    "PaymentMethodType",
    "PaymentProvider",
    "LineItemRequest",
    "CreateInvoiceRequest",
    "CardDetails",
    "BankAccountDetails",
    "WalletDetails",
    "CreatePaymentMethodRequest",
    "UpdatePaymentMethodRequest",
    "BillingEvent",
    "BillingEventType",
    "OverdueInvoice",
    # Exceptions
    "BillingError",
    "InvoiceNotFoundError",
    "PaymentMethodNotFoundError",
    "InvalidAmountError",
    "InvoiceAlreadyPaidError",
    "InvoiceNotPayableError",
    "InvalidInvoiceTransitionError",
    "InvoiceVersionConflictError",
    "InvoiceNumberConflictError",
    "PaymentMethodLimitError",
    "CardExpiredError",
]
