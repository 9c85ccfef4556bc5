"""
Billing service wiring.

Builds the billing services once at process start with their shared
collaborators. There is no module-level instance: callers keep the
returned BillingServices and pass it to whatever needs it.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from shared.clock import Clock, IdFactory, SystemClock, new_id
from shared.config import Settings, get_settings
from shared.store import DocumentStore

from .interfaces import INotificationDispatcher
from .invoice_service import InvoiceService
from .notifications import LoggingNotificationDispatcher
from .payment_method_service import PaymentMethodService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BillingServices:
    """The billing use-case services, sharing one store and clock."""

    invoices: InvoiceService
    payment_methods: PaymentMethodService


def create_billing_services(
    store: DocumentStore,
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
    notifier: Optional[INotificationDispatcher] = None,
    id_factory: Optional[IdFactory] = None,
) -> BillingServices:
    """
    Construct the billing services.

    Args:
        store: Document store shared by both services
        settings: Billing settings; defaults to the cached settings
        clock: Time source; defaults to wall-clock UTC
        notifier: Event dispatcher; defaults to logging the events
        id_factory: Id generator; defaults to UUID4 strings

    Returns:
        BillingServices holding the invoice and payment method services
    """
    settings = settings or get_settings()
    clock = clock or SystemClock()
    notifier = notifier or LoggingNotificationDispatcher()
    id_factory = id_factory or new_id

    logger.info(
        f"Billing services ready (max {settings.max_payment_methods_per_tenant} "
        f"payment methods per tenant, currency {settings.default_currency})"
    )
    return BillingServices(
        invoices=InvoiceService(
            store,
            clock=clock,
            id_factory=id_factory,
            notifier=notifier,
            settings=settings,
        ),
        payment_methods=PaymentMethodService(
            store,
            clock=clock,
            id_factory=id_factory,
            notifier=notifier,
            settings=settings,
        ),
    )
