"""Tests for the payment method service."""

import logging
import pytest
from datetime import timedelta

from modules.billing.exceptions import (
    CardExpiredError,
    PaymentMethodLimitError,
    PaymentMethodNotFoundError,
)
from modules.billing.models import (
    BillingEventType,
    CardDetails,
    PaymentMethodType,
    UpdatePaymentMethodRequest,
)
from modules.billing.payment_method_service import PaymentMethodService
from modules.billing.repository import PAYMENT_METHODS_COLLECTION
from shared.exceptions import ValidationError
from shared.store import InMemoryDocumentStore, StoreError


class FailingBatchStore(InMemoryDocumentStore):
    """In-memory store whose batches fail on commit."""

    def __init__(self):
        super().__init__()
        self.fail_batches = False

    def _apply_batch(self, operations):
        if self.fail_batches:
            raise StoreError("Document store batch failed", operation="batch")
        super()._apply_batch(operations)


async def default_ids(service, tenant_id):
    return [m.id for m in await service.list_payment_methods(tenant_id) if m.is_default]


class TestCreatePaymentMethod:
    @pytest.mark.asyncio
    async def test_create_card(self, payment_method_service, card_request, tenant_id, store, notifier):
        method = await payment_method_service.create_payment_method(
            tenant_id, card_request(), actor_id="user-1"
        )

        assert method.type == PaymentMethodType.CARD
        assert method.is_default is False
        assert store.get(PAYMENT_METHODS_COLLECTION, method.id)["tenant_id"] == tenant_id

        events = notifier.of_type(BillingEventType.PAYMENT_METHOD_ADDED)
        assert len(events) == 1
        assert events[0].payload["display_name"] == "visa •••• 4242"
        assert events[0].payload["actor_id"] == "user-1"
        assert notifier.of_type(BillingEventType.PAYMENT_METHOD_DEFAULT_CHANGED) == []

    @pytest.mark.asyncio
    async def test_create_each_type(
        self, payment_method_service, card_request, bank_request, wallet_request, tenant_id
    ):
        for request in (card_request(), bank_request(), wallet_request()):
            await payment_method_service.create_payment_method(tenant_id, request)
        methods = await payment_method_service.list_payment_methods(tenant_id)
        assert {m.type for m in methods} == set(PaymentMethodType)

    @pytest.mark.asyncio
    async def test_invalid_method_not_persisted(self, payment_method_service, card_request, tenant_id, store):
        with pytest.raises(CardExpiredError):
            await payment_method_service.create_payment_method(tenant_id, card_request(exp_year=2025))
        assert store.count(PAYMENT_METHODS_COLLECTION) == 0

    @pytest.mark.asyncio
    async def test_first_default(self, payment_method_service, card_request, tenant_id, notifier):
        method = await payment_method_service.create_payment_method(tenant_id, card_request(is_default=True))

        assert await default_ids(payment_method_service, tenant_id) == [method.id]
        events = notifier.of_type(BillingEventType.PAYMENT_METHOD_DEFAULT_CHANGED)
        assert events[0].payload["previous_default_ids"] == []

    @pytest.mark.asyncio
    async def test_new_default_replaces_old(
        self, payment_method_service, card_request, bank_request, tenant_id, notifier
    ):
        """The later default wins and the earlier one is cleared."""
        first = await payment_method_service.create_payment_method(tenant_id, card_request(is_default=True))
        second = await payment_method_service.create_payment_method(tenant_id, bank_request(is_default=True))

        assert await default_ids(payment_method_service, tenant_id) == [second.id]
        refreshed = await payment_method_service.get_payment_method(tenant_id, first.id)
        assert refreshed.is_default is False
        events = notifier.of_type(BillingEventType.PAYMENT_METHOD_DEFAULT_CHANGED)
        assert events[-1].payload["previous_default_ids"] == [first.id]

    @pytest.mark.asyncio
    async def test_default_swap_is_per_tenant(
        self, payment_method_service, card_request, tenant_id, other_tenant_id
    ):
        mine = await payment_method_service.create_payment_method(tenant_id, card_request(is_default=True))
        theirs = await payment_method_service.create_payment_method(other_tenant_id, card_request(is_default=True))

        assert await default_ids(payment_method_service, tenant_id) == [mine.id]
        assert await default_ids(payment_method_service, other_tenant_id) == [theirs.id]


class TestPaymentMethodLimit:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("is_default", [False, True])
    async def test_sixth_method_rejected(self, payment_method_service, card_request, tenant_id, is_default):
        for _ in range(5):
            await payment_method_service.create_payment_method(tenant_id, card_request())

        with pytest.raises(PaymentMethodLimitError) as exc_info:
            await payment_method_service.create_payment_method(tenant_id, card_request(is_default=is_default))

        error = exc_info.value
        assert isinstance(error, ValidationError)
        assert "5" in error.message
        assert error.details["limit"] == 5
        assert len(await payment_method_service.list_payment_methods(tenant_id)) == 5

    @pytest.mark.asyncio
    async def test_limit_checked_before_validation(self, payment_method_service, card_request, tenant_id):
        for _ in range(5):
            await payment_method_service.create_payment_method(tenant_id, card_request())
        with pytest.raises(PaymentMethodLimitError):
            await payment_method_service.create_payment_method(tenant_id, card_request(exp_year=2000))

    @pytest.mark.asyncio
    async def test_limit_is_per_tenant(
        self, payment_method_service, card_request, tenant_id, other_tenant_id
    ):
        for _ in range(5):
            await payment_method_service.create_payment_method(tenant_id, card_request())
        method = await payment_method_service.create_payment_method(other_tenant_id, card_request())
        assert method.tenant_id == other_tenant_id

    @pytest.mark.asyncio
    async def test_configurable_limit(self, store, clock, settings, card_request, tenant_id):
        settings.max_payment_methods_per_tenant = 1
        service = PaymentMethodService(store, clock=clock, settings=settings)
        await service.create_payment_method(tenant_id, card_request())
        with pytest.raises(PaymentMethodLimitError):
            await service.create_payment_method(tenant_id, card_request())

    @pytest.mark.asyncio
    async def test_deleting_frees_a_slot(self, payment_method_service, card_request, tenant_id):
        created = [
            await payment_method_service.create_payment_method(tenant_id, card_request())
            for _ in range(5)
        ]
        await payment_method_service.delete_payment_method(tenant_id, created[0].id)
        await payment_method_service.create_payment_method(tenant_id, card_request())


class TestUpdatePaymentMethod:
    @pytest.mark.asyncio
    async def test_update_card(self, payment_method_service, card_request, tenant_id, clock, notifier):
        method = await payment_method_service.create_payment_method(tenant_id, card_request())
        clock.advance(days=1)

        updated = await payment_method_service.update_payment_method(
            tenant_id,
            method.id,
            UpdatePaymentMethodRequest(
                card=CardDetails(brand="visa", last4="4242", exp_month=6, exp_year=2032),
                metadata={"nickname": "work"},
            ),
        )

        assert updated.card.exp_year == 2032
        assert updated.metadata == {"nickname": "work"}
        assert updated.updated_at == clock.now()
        stored = await payment_method_service.get_payment_method(tenant_id, method.id)
        assert stored.card.exp_year == 2032
        assert len(notifier.of_type(BillingEventType.PAYMENT_METHOD_UPDATED)) == 1

    @pytest.mark.asyncio
    async def test_update_to_default_swaps(
        self, payment_method_service, card_request, bank_request, tenant_id, notifier
    ):
        old_default = await payment_method_service.create_payment_method(tenant_id, card_request(is_default=True))
        other = await payment_method_service.create_payment_method(tenant_id, bank_request())

        await payment_method_service.update_payment_method(
            tenant_id, other.id, UpdatePaymentMethodRequest(is_default=True)
        )

        assert await default_ids(payment_method_service, tenant_id) == [other.id]
        events = notifier.of_type(BillingEventType.PAYMENT_METHOD_DEFAULT_CHANGED)
        assert events[-1].payload["previous_default_ids"] == [old_default.id]

    @pytest.mark.asyncio
    async def test_unset_default(self, payment_method_service, card_request, tenant_id):
        method = await payment_method_service.create_payment_method(tenant_id, card_request(is_default=True))
        await payment_method_service.update_payment_method(
            tenant_id, method.id, UpdatePaymentMethodRequest(is_default=False)
        )
        assert await payment_method_service.get_default_payment_method(tenant_id) is None

    @pytest.mark.asyncio
    async def test_invalid_update_not_persisted(self, payment_method_service, card_request, tenant_id):
        method = await payment_method_service.create_payment_method(tenant_id, card_request())
        with pytest.raises(ValidationError):
            await payment_method_service.update_payment_method(
                tenant_id,
                method.id,
                UpdatePaymentMethodRequest(card=CardDetails(brand="visa", last4="1", exp_month=1, exp_year=2030)),
            )
        stored = await payment_method_service.get_payment_method(tenant_id, method.id)
        assert stored.card.last4 == "4242"

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_update(
        self, payment_method_service, card_request, tenant_id, other_tenant_id
    ):
        method = await payment_method_service.create_payment_method(tenant_id, card_request())
        with pytest.raises(PaymentMethodNotFoundError):
            await payment_method_service.update_payment_method(
                other_tenant_id, method.id, UpdatePaymentMethodRequest(is_default=True)
            )


class TestDeletePaymentMethod:
    @pytest.mark.asyncio
    async def test_delete(self, payment_method_service, card_request, tenant_id, store, notifier):
        method = await payment_method_service.create_payment_method(tenant_id, card_request())
        await payment_method_service.delete_payment_method(tenant_id, method.id, actor_id="user-1")

        assert store.get(PAYMENT_METHODS_COLLECTION, method.id) is None
        events = notifier.of_type(BillingEventType.PAYMENT_METHOD_REMOVED)
        assert events[0].payload == {"was_default": False, "actor_id": "user-1"}

    @pytest.mark.asyncio
    async def test_deleting_default_promotes_nothing(
        self, payment_method_service, card_request, bank_request, tenant_id
    ):
        default = await payment_method_service.create_payment_method(tenant_id, card_request(is_default=True))
        await payment_method_service.create_payment_method(tenant_id, bank_request())

        await payment_method_service.delete_payment_method(tenant_id, default.id)

        assert await payment_method_service.get_default_payment_method(tenant_id) is None
        assert len(await payment_method_service.list_payment_methods(tenant_id)) == 1

    @pytest.mark.asyncio
    async def test_delete_missing(self, payment_method_service, tenant_id):
        with pytest.raises(PaymentMethodNotFoundError) as exc_info:
            await payment_method_service.delete_payment_method(tenant_id, "missing")
        assert exc_info.value.code == "PAYMENT_METHOD_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_delete(
        self, payment_method_service, card_request, tenant_id, other_tenant_id, store
    ):
        method = await payment_method_service.create_payment_method(tenant_id, card_request())
        with pytest.raises(PaymentMethodNotFoundError):
            await payment_method_service.delete_payment_method(other_tenant_id, method.id)
        assert store.get(PAYMENT_METHODS_COLLECTION, method.id) is not None


class TestListAndDefaults:
    @pytest.mark.asyncio
    async def test_list_puts_default_first(
        self, payment_method_service, card_request, bank_request, wallet_request, tenant_id, clock
    ):
        first = await payment_method_service.create_payment_method(tenant_id, card_request())
        clock.advance(minutes=1)
        default = await payment_method_service.create_payment_method(tenant_id, bank_request(is_default=True))
        clock.advance(minutes=1)
        newest = await payment_method_service.create_payment_method(tenant_id, wallet_request())

        methods = await payment_method_service.list_payment_methods(tenant_id)
        assert [m.id for m in methods] == [default.id, newest.id, first.id]

    @pytest.mark.asyncio
    async def test_no_default(self, payment_method_service, card_request, tenant_id):
        await payment_method_service.create_payment_method(tenant_id, card_request())
        assert await payment_method_service.get_default_payment_method(tenant_id) is None

    @pytest.mark.asyncio
    async def test_set_default(
        self, payment_method_service, card_request, bank_request, tenant_id, notifier
    ):
        first = await payment_method_service.create_payment_method(tenant_id, card_request(is_default=True))
        second = await payment_method_service.create_payment_method(tenant_id, bank_request())

        result = await payment_method_service.set_default_payment_method(tenant_id, second.id)

        assert result.is_default is True
        default = await payment_method_service.get_default_payment_method(tenant_id)
        assert default.id == second.id
        events = notifier.of_type(BillingEventType.PAYMENT_METHOD_DEFAULT_CHANGED)
        assert events[-1].payload["previous_default_ids"] == [first.id]

    @pytest.mark.asyncio
    async def test_set_default_on_current_default(self, payment_method_service, card_request, tenant_id):
        method = await payment_method_service.create_payment_method(tenant_id, card_request(is_default=True))
        await payment_method_service.set_default_payment_method(tenant_id, method.id)
        assert await default_ids(payment_method_service, tenant_id) == [method.id]


class TestDefaultSwapFailure:
    @pytest.fixture
    def failing_store(self):
        return FailingBatchStore()

    @pytest.fixture
    def service(self, failing_store, clock, settings, notifier):
        return PaymentMethodService(failing_store, clock=clock, settings=settings, notifier=notifier)

    @pytest.mark.asyncio
    async def test_failed_swap_propagates_and_changes_nothing(
        self, service, failing_store, card_request, bank_request, tenant_id, notifier, caplog
    ):
        """A failed swap leaves the old default in place and reports the failure."""
        original = await service.create_payment_method(tenant_id, card_request(is_default=True))
        notifier.clear()
        failing_store.fail_batches = True

        with caplog.at_level(logging.ERROR):
            with pytest.raises(StoreError):
                await service.create_payment_method(tenant_id, bank_request(is_default=True))

        assert "Default swap failed" in caplog.text
        methods = await service.list_payment_methods(tenant_id)
        assert [m.id for m in methods] == [original.id]
        assert methods[0].is_default is True
        assert notifier.events == []

    @pytest.mark.asyncio
    async def test_failed_set_default_keeps_old_default(
        self, service, failing_store, card_request, bank_request, tenant_id
    ):
        original = await service.create_payment_method(tenant_id, card_request(is_default=True))
        other = await service.create_payment_method(tenant_id, bank_request())
        failing_store.fail_batches = True

        with pytest.raises(StoreError):
            await service.set_default_payment_method(tenant_id, other.id)

        default = await service.get_default_payment_method(tenant_id)
        assert default.id == original.id


class TestReconcileDefaults:
    @pytest.mark.asyncio
    async def test_keeps_most_recently_updated(
        self, payment_method_service, card_request, bank_request, wallet_request, tenant_id, store, clock, caplog
    ):
        """Repairs a tenant left with several defaults by an earlier failure."""
        a = await payment_method_service.create_payment_method(tenant_id, card_request())
        b = await payment_method_service.create_payment_method(tenant_id, bank_request())
        c = await payment_method_service.create_payment_method(tenant_id, wallet_request())
        base = clock.now()
        store.update(PAYMENT_METHODS_COLLECTION, a.id, {"is_default": True, "updated_at": base + timedelta(minutes=1)})
        store.update(PAYMENT_METHODS_COLLECTION, b.id, {"is_default": True, "updated_at": base + timedelta(minutes=3)})
        store.update(PAYMENT_METHODS_COLLECTION, c.id, {"is_default": True, "updated_at": base + timedelta(minutes=2)})

        assert (await payment_method_service.get_default_payment_method(tenant_id)).id == b.id

        with caplog.at_level(logging.WARNING):
            cleared = await payment_method_service.reconcile_default_payment_methods(tenant_id)

        assert cleared == [c.id, a.id]
        assert await default_ids(payment_method_service, tenant_id) == [b.id]
        assert "default payment methods" in caplog.text

    @pytest.mark.asyncio
    async def test_nothing_to_reconcile(self, payment_method_service, card_request, tenant_id):
        await payment_method_service.create_payment_method(tenant_id, card_request(is_default=True))
        assert await payment_method_service.reconcile_default_payment_methods(tenant_id) == []
