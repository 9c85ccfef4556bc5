"""
Shared test fixtures and utilities.

This module provides common test infrastructure used across all test modules.
"""

import itertools
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from modules.billing.models import (
    BankAccountDetails,
    CardDetails,
    CreateInvoiceRequest,
    CreatePaymentMethodRequest,
    LineItemRequest,
    PaymentMethodType,
    WalletDetails,
)
from modules.billing.notifications import RecordingNotificationDispatcher
from modules.billing.service import create_billing_services
from shared.config import Settings
from shared.store import InMemoryDocumentStore


# Fixed "now" used by every test that goes through the services
TEST_NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)

TEST_TENANT_ID = "tenant-123"
OTHER_TENANT_ID = "tenant-456"


class FixedClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, now: datetime = TEST_NOW):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


def sequential_ids(prefix: str = "id"):
    """Id factory producing id-1, id-2, ..."""
    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter)}"


def make_invoice_request(
    subtotal: str = "100.00",
    tax: str = "20.00",
    discount: str = "10.00",
    due_in_days: int = 30,
    **overrides,
) -> CreateInvoiceRequest:
    """Invoice request with a single line item equal to the subtotal."""
    fields = {
        "subscription_id": "sub-1",
        "line_items": [
            LineItemRequest(
                description="Pro plan",
                quantity=Decimal("1"),
                unit_amount=Decimal(subtotal),
            )
        ],
        "tax_amount": Decimal(tax),
        "discount_amount": Decimal(discount),
        "due_date": TEST_NOW + timedelta(days=due_in_days),
    }
    fields.update(overrides)
    return CreateInvoiceRequest(**fields)


def make_card_request(
    is_default: bool = False,
    exp_year: int = 2030,
    exp_month: int = 12,
    last4: str = "4242",
) -> CreatePaymentMethodRequest:
    return CreatePaymentMethodRequest(
        type=PaymentMethodType.CARD,
        provider_method_id="pm_test",
        card=CardDetails(brand="visa", last4=last4, exp_month=exp_month, exp_year=exp_year),
        is_default=is_default,
    )


def make_bank_request(is_default: bool = False) -> CreatePaymentMethodRequest:
    return CreatePaymentMethodRequest(
        type=PaymentMethodType.BANK_ACCOUNT,
        bank_account=BankAccountDetails(
            bank_name="First Bank",
            account_type="checking",
            last4="6789",
            country="US",
        ),
        is_default=is_default,
    )


def make_wallet_request(
    is_default: bool = False,
    email: str = "billing@example.com",
) -> CreatePaymentMethodRequest:
    return CreatePaymentMethodRequest(
        type=PaymentMethodType.WALLET,
        wallet=WalletDetails(type="paypal", email=email),
        is_default=is_default,
    )


@pytest.fixture
def clock() -> FixedClock:
    """Provide a clock pinned to TEST_NOW."""
    return FixedClock()


@pytest.fixture
def store() -> InMemoryDocumentStore:
    """Provide an empty in-memory document store."""
    return InMemoryDocumentStore()


@pytest.fixture
def notifier() -> RecordingNotificationDispatcher:
    """Provide a notifier that records every event."""
    return RecordingNotificationDispatcher()


@pytest.fixture
def settings() -> Settings:
    """Provide settings that ignore any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def services(store, settings, clock, notifier):
    """Billing services over the in-memory store."""
    return create_billing_services(
        store,
        settings=settings,
        clock=clock,
        notifier=notifier,
        id_factory=sequential_ids(),
    )


@pytest.fixture
def invoice_service(services):
    return services.invoices


@pytest.fixture
def payment_method_service(services):
    return services.payment_methods


@pytest.fixture
def tenant_id() -> str:
    """Provide a consistent test tenant ID."""
    return TEST_TENANT_ID


@pytest.fixture
def other_tenant_id() -> str:
    return OTHER_TENANT_ID


@pytest.fixture
def invoice_request():
    """Factory for invoice creation requests."""
    return make_invoice_request


@pytest.fixture
def card_request():
    """Factory for card payment method requests."""
    return make_card_request


@pytest.fixture
def bank_request():
    """Factory for bank account payment method requests."""
    return make_bank_request


@pytest.fixture
def wallet_request():
    """Factory for wallet payment method requests."""
    return make_wallet_request
