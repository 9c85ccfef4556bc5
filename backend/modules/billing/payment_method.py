"""
Payment method entity.

Holds per-type validation for cards, bank accounts and wallets. The
"one default per tenant" rule spans several records, so it is enforced
by PaymentMethodService, not here.
"""

import re
from datetime import datetime, timezone
from typing import Any, Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, Field

from shared.exceptions import ValidationError

from .exceptions import CardExpiredError
from .models import (
    BankAccountDetails,
    CardDetails,
    CreatePaymentMethodRequest,
    PaymentMethodType,
    PaymentProvider,
    UpdatePaymentMethodRequest,
    WalletDetails,
)


_LAST4_PATTERN = re.compile(r"^\d{4}$")

# Detail block attribute for each payment method type
DETAIL_FIELDS = {
    PaymentMethodType.CARD: "card",
    PaymentMethodType.BANK_ACCOUNT: "bank_account",
    PaymentMethodType.WALLET: "wallet",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require(value: Any, field_path: str) -> None:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field_path} is required", field=field_path)


def _validate_last4(value: Optional[str], field_path: str) -> None:
    _require(value, field_path)
    if not _LAST4_PATTERN.match(value):
        raise ValidationError(f"{field_path} must be exactly 4 digits", field=field_path)


def validate_card(card: CardDetails, now: datetime) -> None:
    """
    Validate card details.

    A card whose expiry year is before the current year has expired,
    whatever its month.
    """
    _require(card.brand, "card.brand")
    _validate_last4(card.last4, "card.last4")
    _require(card.exp_month, "card.exp_month")
    if not 1 <= card.exp_month <= 12:
        raise ValidationError("card.exp_month must be between 1 and 12", field="card.exp_month")
    _require(card.exp_year, "card.exp_year")
    if card.exp_year < now.year:
        raise CardExpiredError(card.exp_month, card.exp_year)


def validate_bank_account(account: BankAccountDetails) -> None:
    """Validate bank account details."""
    _require(account.bank_name, "bank_account.bank_name")
    _require(account.account_type, "bank_account.account_type")
    _validate_last4(account.last4, "bank_account.last4")
    _require(account.country, "bank_account.country")


def validate_wallet(wallet: WalletDetails) -> None:
    """Validate wallet details; the email is optional but must be well formed."""
    _require(wallet.type, "wallet.type")
    if wallet.email is not None:
        try:
            validate_email(wallet.email, check_deliverability=False)
        except EmailNotValidError:
            raise ValidationError("wallet.email is not a valid email address", field="wallet.email")


class PaymentMethod(BaseModel):
    """A tenant's stored payment method."""

    model_config = {"extra": "ignore"}

    id: str = Field(..., description="Payment method ID")
    tenant_id: str = Field(..., description="Owning tenant")
    payment_provider: PaymentProvider = Field(default=PaymentProvider.STRIPE)
    provider_method_id: Optional[str] = Field(None, description="Provider-side reference")
    type: PaymentMethodType

    card: Optional[CardDetails] = None
    bank_account: Optional[BankAccountDetails] = None
    wallet: Optional[WalletDetails] = None

    is_default: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def create(
        cls,
        request: CreatePaymentMethodRequest,
        *,
        method_id: str,
        tenant_id: str,
        now: Optional[datetime] = None,
    ) -> "PaymentMethod":
        """
        Build and validate a payment method from a creation request.

        Raises:
            ValidationError: If the detail block is missing or invalid
        """
        now = now or _utcnow()
        method = cls(
            id=method_id,
            tenant_id=tenant_id,
            payment_provider=request.payment_provider,
            provider_method_id=request.provider_method_id,
            type=request.type,
            card=request.card,
            bank_account=request.bank_account,
            wallet=request.wallet,
            is_default=request.is_default,
            metadata=dict(request.metadata),
            created_at=now,
            updated_at=now,
        )
        method.validate_invariants(now)
        return method

    def validate_invariants(self, now: Optional[datetime] = None) -> None:
        """
        Check that exactly the detail block matching ``type`` is present
        and that its fields are valid.
        """
        now = now or _utcnow()
        expected = DETAIL_FIELDS[self.type]

        for detail_field in DETAIL_FIELDS.values():
            present = getattr(self, detail_field) is not None
            if detail_field == expected and not present:
                raise ValidationError(
                    f"{detail_field} details are required for type '{self.type.value}'",
                    field=detail_field,
                )
            if detail_field != expected and present:
                raise ValidationError(
                    f"{detail_field} details are not allowed for type '{self.type.value}'",
                    field=detail_field,
                )

        if self.type == PaymentMethodType.CARD:
            validate_card(self.card, now)
        elif self.type == PaymentMethodType.BANK_ACCOUNT:
            validate_bank_account(self.bank_account)
        else:
            validate_wallet(self.wallet)

    def apply_update(self, request: UpdatePaymentMethodRequest, now: Optional[datetime] = None) -> None:
        """
        Apply a partial update.

        The update is validated on a copy first, so a rejected update
        leaves this instance untouched.
        """
        now = now or _utcnow()
        candidate = self.model_copy(deep=True)

        if request.card is not None:
            candidate.card = request.card
        if request.bank_account is not None:
            candidate.bank_account = request.bank_account
        if request.wallet is not None:
            candidate.wallet = request.wallet
        if request.is_default is not None:
            candidate.is_default = request.is_default
        if request.metadata:
            candidate.metadata = {**candidate.metadata, **request.metadata}
        candidate.updated_at = now

        candidate.validate_invariants(now)

        for name in type(self).model_fields:
            setattr(self, name, getattr(candidate, name))

    def set_default(self, is_default: bool, now: Optional[datetime] = None) -> None:
        self.is_default = is_default
        self.updated_at = now or _utcnow()

    def display_name(self) -> str:
        """Short label such as 'visa •••• 4242'."""
        if self.type == PaymentMethodType.CARD and self.card:
            return f"{self.card.brand} •••• {self.card.last4}"
        if self.type == PaymentMethodType.BANK_ACCOUNT and self.bank_account:
            return f"{self.bank_account.bank_name} •••• {self.bank_account.last4}"
        if self.wallet:
            return self.wallet.email or str(self.wallet.type)
        return self.type.value
