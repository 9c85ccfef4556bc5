"""
Payment method service.

Owns the "at most one default per tenant" rule. Making a method the
default clears every other default of the tenant and writes the new
default in a single atomic batch, so readers never observe two
defaults from a completed swap.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from shared.clock import Clock, IdFactory, SystemClock, new_id
from shared.config import Settings, get_settings
from shared.store import DocumentStore

from .exceptions import PaymentMethodLimitError, PaymentMethodNotFoundError
from .interfaces import INotificationDispatcher
from .models import (
    BillingEvent,
    BillingEventType,
    CreatePaymentMethodRequest,
    UpdatePaymentMethodRequest,
)
from .notifications import notify_safely
from .payment_method import PaymentMethod
from .repository import PaymentMethodRepository

logger = logging.getLogger(__name__)


class PaymentMethodService:
    """
    Payment method bookkeeping service.

    Implements IPaymentMethodService on top of any DocumentStore.
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
        self._methods = PaymentMethodRepository(store)
        self._clock = clock or SystemClock()
        self._new_id = id_factory or new_id
        self._notifier = notifier
        self._settings = settings or get_settings()

    async def create_payment_method(
        self,
        tenant_id: str,
        request: CreatePaymentMethodRequest,
        actor_id: Optional[str] = None,
    ) -> PaymentMethod:
        """
        Register a payment method for the tenant.

        The method count is checked before validation, so a tenant at
        the limit gets PaymentMethodLimitError whatever it submits.
        """
        limit = self._settings.max_payment_methods_per_tenant
        if self._methods.count_for_tenant(tenant_id) >= limit:
            raise PaymentMethodLimitError(tenant_id, limit)

        now = self._clock.now()
        method = PaymentMethod.create(
            request,
            method_id=self._new_id(),
            tenant_id=tenant_id,
            now=now,
        )

        if method.is_default:
            cleared = self._commit_default_swap(tenant_id, method, now)
        else:
            self._methods.insert(method)
            cleared = []

        logger.info(
            f"Payment method {method.id} ({method.type.value}) added for tenant {tenant_id} "
            f"by {actor_id or 'system'}; default={method.is_default}"
        )
        await self._notify(BillingEventType.PAYMENT_METHOD_ADDED, method, {
            "type": method.type.value,
            "display_name": method.display_name(),
            "actor_id": actor_id,
        })
        if method.is_default:
            await self._notify_default_changed(method, cleared)
        return method

    async def update_payment_method(
        self,
        tenant_id: str,
        method_id: str,
        request: UpdatePaymentMethodRequest,
        actor_id: Optional[str] = None,
    ) -> PaymentMethod:
        """Apply a partial update to a method owned by the tenant."""
        method = self._load(tenant_id, method_id)
        was_default = method.is_default

        now = self._clock.now()
        method.apply_update(request, now)

        became_default = method.is_default and not was_default
        if became_default:
            cleared = self._commit_default_swap(tenant_id, method, now)
        else:
            self._methods.replace(method)
            cleared = []

        logger.info(
            f"Payment method {method.id} updated for tenant {tenant_id} by {actor_id or 'system'}"
        )
        await self._notify(BillingEventType.PAYMENT_METHOD_UPDATED, method, {"actor_id": actor_id})
        if became_default:
            await self._notify_default_changed(method, cleared)
        return method

    async def delete_payment_method(
        self,
        tenant_id: str,
        method_id: str,
        actor_id: Optional[str] = None,
    ) -> None:
        """
        Delete a method owned by the tenant.

        Deleting the default leaves the tenant without one; no other
        method is promoted.
        """
        method = self._load(tenant_id, method_id)
        self._methods.delete(method.id)

        if method.is_default:
            logger.info(f"Tenant {tenant_id} has no default payment method after deleting {method.id}")
        logger.info(
            f"Payment method {method.id} deleted for tenant {tenant_id} by {actor_id or 'system'}"
        )
        await self._notify(BillingEventType.PAYMENT_METHOD_REMOVED, method, {
            "was_default": method.is_default,
            "actor_id": actor_id,
        })

    async def get_payment_method(self, tenant_id: str, method_id: str) -> PaymentMethod:
        return self._load(tenant_id, method_id)

    async def list_payment_methods(self, tenant_id: str) -> list[PaymentMethod]:
        return self._methods.list_for_tenant(tenant_id)

    async def get_default_payment_method(self, tenant_id: str) -> Optional[PaymentMethod]:
        """
        Get the tenant's default method.

        Zero defaults is a valid state and returns None. If a partial
        failure left several, the most recently updated one wins.
        """
        defaults = self._methods.list_defaults(tenant_id)
        return defaults[0] if defaults else None

    async def set_default_payment_method(self, tenant_id: str, method_id: str) -> PaymentMethod:
        """Make an existing method the tenant's only default."""
        method = self._load(tenant_id, method_id)

        now = self._clock.now()
        method.set_default(True, now)
        cleared = self._commit_default_swap(tenant_id, method, now)

        logger.info(f"Payment method {method.id} set as default for tenant {tenant_id}")
        await self._notify_default_changed(method, cleared)
        return method

    async def reconcile_default_payment_methods(self, tenant_id: str) -> list[str]:
        """
        Clear surplus defaults, keeping the most recently updated one.

        Returns:
            Ids of the methods whose default flag was cleared
        """
        defaults = self._methods.list_defaults(tenant_id)
        if len(defaults) <= 1:
            return []

        keep, surplus = defaults[0], defaults[1:]
        now = self._clock.now()
        batch = self._methods.new_batch()
        for method in surplus:
            self._methods.queue_clear_default(batch, method.id, now)
        batch.commit()

        cleared = [m.id for m in surplus]
        logger.warning(
            f"Tenant {tenant_id} had {len(defaults)} default payment methods; "
            f"kept {keep.id}, cleared {cleared}"
        )
        return cleared

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _load(self, tenant_id: str, method_id: str) -> PaymentMethod:
        method = self._methods.get_for_tenant(tenant_id, method_id)
        if method is None:
            raise PaymentMethodNotFoundError(method_id)
        return method

    def _commit_default_swap(
        self,
        tenant_id: str,
        method: PaymentMethod,
        now: datetime,
    ) -> list[str]:
        """
        Clear the tenant's other defaults and write ``method`` atomically.

        The read of current defaults is advisory; the batch is what
        keeps the swap all-or-nothing.

        Returns:
            Ids of the methods whose default flag was cleared
        """
        previous = [m for m in self._methods.list_defaults(tenant_id) if m.id != method.id]

        batch = self._methods.new_batch()
        for other in previous:
            self._methods.queue_clear_default(batch, other.id, now)
        self._methods.queue_write(batch, method)

        try:
            batch.commit()
        except Exception:
            logger.exception(
                f"Default swap failed for tenant {tenant_id} on payment method {method.id}"
            )
            raise

        return [m.id for m in previous]

    async def _notify_default_changed(self, method: PaymentMethod, cleared: list[str]) -> None:
        await self._notify(BillingEventType.PAYMENT_METHOD_DEFAULT_CHANGED, method, {
            "previous_default_ids": cleared,
        })

    async def _notify(
        self,
        event_type: BillingEventType,
        method: PaymentMethod,
        payload: dict[str, Any],
    ) -> None:
        await notify_safely(
            self._notifier,
            BillingEvent(
                type=event_type,
                tenant_id=method.tenant_id,
                entity_id=method.id,
                payload=payload,
                occurred_at=self._clock.now(),
            ),
        )
