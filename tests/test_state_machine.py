"""Tests for the checkout state machine."""

import asyncio
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from orderflow.core.exceptions import CheckoutLocked, InvalidTransition, SubmissionUnavailable
from orderflow.models import OrderStatus, OrderType, PaymentMethod
from orderflow.services.checkout import BlockingCode, Cart, CheckoutStep
from orderflow.services.ordering import OrderingService
from orderflow.services.prefill import ContactPrefillCache
from orderflow.services.zones import DeliveryZone, ZoneResolutionStatus
from tests.helpers import (
    BERLIN,
    LATE,
    NOW,
    FlakyBackend,
    GatedBackend,
    GatedPaymentService,
    SlowZonesBackend,
    make_store,
    run,
)


async def fill_details(machine, postal_code="10961", city="Berlin"):
    machine.update_contact(name="Anna Schmidt", phone="030 1234567")
    if machine.draft.is_delivery:
        await machine.update_address(
            street="Bergmannstr.", house_number="5", postal_code=postal_code, city=city,
        )


def codes(machine) -> list[BlockingCode]:
    return [reason.code for reason in machine.blocking_reasons()]


class TestOpenAndClose:
    """Lifecycle of a draft"""

    def test_starts_closed(self, make_machine, service):
        machine = make_machine(service)
        assert machine.current_state == CheckoutStep.CLOSED
        assert not machine.can_advance()

    def test_open_goes_to_details_without_upsell(self, make_machine, service, cart):
        machine = make_machine(service, cart=cart)
        assert run(machine.open()) == CheckoutStep.DETAILS
        assert machine.draft.timing.preparation_minutes == 15
        assert machine.draft.slots[0].label == "18:20 (earliest possible)"

    def test_open_goes_to_upsell_when_offered(self, make_machine, service, cart):
        machine = make_machine(service, cart=cart, upsell_items=["Tiramisu"])

        async def scenario():
            assert await machine.open() == CheckoutStep.UPSELL
            assert machine.can_advance()
            assert await machine.advance() == CheckoutStep.DETAILS
            assert machine.retreat() == CheckoutStep.UPSELL

        run(scenario())

    def test_close_keeps_cart(self, make_machine, service, cart):
        machine = make_machine(service, cart=cart)
        run(machine.open())
        assert machine.close() == CheckoutStep.CLOSED
        assert machine.draft is None
        assert len(cart) == 2

    def test_reopen_never_resumes_payment(self, make_machine, service, cart):
        machine = make_machine(service, cart=cart)

        async def scenario():
            await machine.open()
            await fill_details(machine)
            machine.set_payment_method(PaymentMethod.CARD)
            assert await machine.advance() == CheckoutStep.PAYMENT
            machine.close()
            assert await machine.open() == CheckoutStep.DETAILS
            assert machine.draft.contact.name == ""

        run(scenario())

    def test_unknown_restaurant(self, make_machine, service, cart):
        machine = make_machine(service, cart=cart, restaurant_id=99)
        run(machine.open())
        assert machine.draft.error == "This restaurant is not available."
        assert BlockingCode.NOT_READY in codes(machine)

    def test_advance_when_closed(self, make_machine, service):
        with pytest.raises(SubmissionUnavailable):
            run(make_machine(service).advance())

    def test_listeners(self, make_machine, service, cart):
        machine = make_machine(service, cart=cart)
        seen = []
        unsubscribe = machine.subscribe(lambda m: seen.append(m.current_state))
        run(machine.open())
        assert CheckoutStep.DETAILS in seen
        unsubscribe()
        count = len(seen)
        machine.close()
        assert len(seen) == count


class TestDetailsGates:
    """Blocking reasons of the details step"""

    def test_empty_delivery_form(self, make_machine, service, cart):
        machine = make_machine(service, cart=cart)
        run(machine.open(OrderType.DELIVERY))
        assert codes(machine) == [
            BlockingCode.CONTACT_MISSING,
            BlockingCode.ADDRESS_MISSING,
            BlockingCode.ZONE_PENDING,
        ]
        assert not machine.can_advance()

    def test_blocked_advance_shows_first_reason(self, make_machine, service, cart):
        machine = make_machine(service, cart=cart)

        async def scenario():
            await machine.open()
            assert await machine.advance() == CheckoutStep.DETAILS
            assert machine.draft.error == "Please enter your name and phone number."

        run(scenario())

    def test_empty_cart(self, make_machine, service):
        machine = make_machine(service)

        async def scenario():
            await machine.open()
            await fill_details(machine)

        run(scenario())
        assert codes(machine) == [BlockingCode.CART_EMPTY]

    def test_postal_code_not_served(self, make_machine, service, cart):
        machine = make_machine(service, cart=cart)

        async def scenario():
            await machine.open(OrderType.DELIVERY)
            await fill_details(machine, postal_code="80331")

        run(scenario())
        reasons = machine.blocking_reasons()
        assert [reason.code for reason in reasons] == [BlockingCode.NO_ZONE]
        assert reasons[0].message == "Sorry, we do not deliver to postal code 80331."

    def test_ambiguous_zone_requires_selection(self, make_machine, service, cart):
        machine = make_machine(service, cart=cart)

        async def scenario():
            await machine.open(OrderType.DELIVERY)
            await fill_details(machine, postal_code="10999", city="Berlin")
            assert codes(machine) == [BlockingCode.ZONE_AMBIGUOUS]
            assert machine.pricing().zone_pending

            with pytest.raises(ValueError):
                await machine.select_zone(1)

            await machine.select_zone(3)
            assert machine.draft.zone.name == "Neukölln"
            assert machine.draft.timing.preparation_minutes == 45
            assert machine.pricing().delivery_fee == Decimal("4.00")
            assert codes(machine) == []

        run(scenario())

    def test_city_resolves_shared_postal_code(self, make_machine, service, cart):
        machine = make_machine(service, cart=cart)

        async def scenario():
            await machine.open(OrderType.DELIVERY)
            await fill_details(machine, postal_code="10999", city="Kreuzberg")

        run(scenario())
        assert machine.draft.zone_resolution.status == ZoneResolutionStatus.RESOLVED
        assert machine.draft.zone.id == 2

    def test_chosen_zone_survives_order_type_switch(self, make_machine, service, cart):
        machine = make_machine(service, cart=cart)

        async def scenario():
            await machine.open(OrderType.DELIVERY)
            await fill_details(machine, postal_code="10999", city="Berlin")
            await machine.select_zone(3)
            await machine.set_order_type(OrderType.PICKUP)
            await machine.set_order_type(OrderType.DELIVERY)

        run(scenario())
        assert machine.draft.zone.id == 3
        assert machine.draft.zone_resolution.manually_selected
        assert machine.draft.timing.preparation_minutes == 45
        assert machine.pricing().delivery_fee == Decimal("4.00")
        assert codes(machine) == []

    def test_address_change_drops_chosen_zone(self, make_machine, service, cart):
        machine = make_machine(service, cart=cart)

        async def scenario():
            await machine.open(OrderType.DELIVERY)
            await fill_details(machine, postal_code="10999", city="Berlin")
            await machine.select_zone(3)
            await machine.set_order_type(OrderType.PICKUP)
            await machine.update_address(city="Kreuzberg")
            await machine.set_order_type(OrderType.DELIVERY)

        run(scenario())
        assert machine.draft.zone.id == 2
        assert not machine.draft.zone_resolution.manually_selected

    def test_manually_closed(self, make_machine, settings, cart):
        service = OrderingService(make_store(manually_closed=True), settings=settings, clock=lambda: NOW)
        machine = make_machine(service, cart=cart)

        async def scenario():
            await machine.open()
            await fill_details(machine)

        run(scenario())
        assert machine.draft.slots == []
        assert codes(machine) == [BlockingCode.MANUALLY_CLOSED, BlockingCode.NO_SLOT]

    def test_closed_without_preorders(self, make_machine, settings, cart):
        service = OrderingService(make_store(accepts_preorders=False), settings=settings, clock=lambda: LATE)
        machine = make_machine(service, cart=cart, clock=lambda: LATE)

        async def scenario():
            await machine.open()
            await fill_details(machine)

        run(scenario())
        assert codes(machine) == [BlockingCode.CLOSED_NO_PREORDERS, BlockingCode.NO_SLOT]

    def test_preorder_slots_when_closed(self, make_machine, service, cart):
        machine = make_machine(service, cart=cart, clock=lambda: LATE)
        run(machine.open())
        assert machine.draft.slots[0].label == "11:15 (earliest possible)"
        assert not machine.is_open()

    def test_order_type_switch_refreshes_slots(self, make_machine, service, cart):
        machine = make_machine(service, cart=cart)

        async def scenario():
            await machine.open()
            await machine.set_order_type(OrderType.DELIVERY)
            await fill_details(machine, postal_code="10115")

        run(scenario())
        assert machine.draft.timing.preparation_minutes == 30
        assert machine.draft.slots[0].label == "18:35 (earliest possible)"

    def test_selected_slot_must_be_offered(self, make_machine, service, cart):
        machine = make_machine(service, cart=cart)
        run(machine.open())
        with pytest.raises(ValueError):
            machine.select_slot(LATE)
        second = machine.draft.slots[1].instant
        machine.select_slot(second)
        assert machine.draft.effective_scheduled_time() == second


class TestClockMovesDuringCheckout:
    """Slots are checked again against the current time before charging or submitting"""

    @pytest.fixture
    def now(self):
        return {"at": NOW}

    @pytest.fixture
    def machine(self, make_machine, settings, store, cart, now):
        service = OrderingService(store, settings=settings, clock=lambda: now["at"])
        return make_machine(service, cart=cart, clock=lambda: now["at"])

    def test_earliest_time_follows_the_clock(self, machine, store, now):
        async def scenario():
            await machine.open()
            await fill_details(machine)
            machine.set_payment_method(PaymentMethod.CASH)
            assert machine.draft.slots[0].instant == datetime(2024, 6, 12, 18, 20, tzinfo=BERLIN)
            now["at"] = NOW + timedelta(hours=2)
            return await machine.advance()

        assert run(scenario()) == CheckoutStep.SUCCESS
        stored = store.orders[0]
        assert stored.scheduled_time == datetime(2024, 6, 12, 20, 20, tzinfo=BERLIN)
        assert stored.scheduled_time >= now["at"] + timedelta(minutes=15)

    def test_expired_slot_blocks_until_chosen_again(self, machine, store, now):
        async def scenario():
            await machine.open()
            await fill_details(machine)
            machine.set_payment_method(PaymentMethod.CASH)
            machine.select_slot(datetime(2024, 6, 12, 18, 35, tzinfo=BERLIN))
            now["at"] = datetime(2024, 6, 12, 18, 30, tzinfo=BERLIN)
            assert await machine.advance() == CheckoutStep.DETAILS
            assert machine.draft.error == (
                "The selected time is no longer available. Please choose another time."
            )
            assert machine.draft.scheduled_time is None
            assert store.orders == []
            return await machine.advance()

        assert run(scenario()) == CheckoutStep.SUCCESS
        assert store.orders[0].scheduled_time == datetime(2024, 6, 12, 18, 45, tzinfo=BERLIN)

    def test_slot_still_ahead_is_kept(self, machine, store, now):
        chosen = datetime(2024, 6, 12, 19, 5, tzinfo=BERLIN)

        async def scenario():
            await machine.open()
            await fill_details(machine)
            machine.set_payment_method(PaymentMethod.CASH)
            machine.select_slot(chosen)
            now["at"] = datetime(2024, 6, 12, 18, 31, tzinfo=BERLIN)
            return await machine.advance()

        assert run(scenario()) == CheckoutStep.SUCCESS
        assert store.orders[0].scheduled_time == chosen

    def test_expired_slot_is_not_charged(self, machine, store, payments, now):
        async def scenario():
            await machine.open()
            await fill_details(machine)
            machine.set_payment_method(PaymentMethod.CARD)
            machine.select_slot(datetime(2024, 6, 12, 18, 35, tzinfo=BERLIN))
            assert await machine.advance() == CheckoutStep.PAYMENT
            now["at"] = datetime(2024, 6, 12, 18, 40, tzinfo=BERLIN)
            return await machine.advance(payment_method_id="pm_card_visa")

        assert run(scenario()) == CheckoutStep.DETAILS
        assert payments.confirmed == []
        assert store.orders == []
        assert machine.draft.scheduled_time is None


class TestScenarios:
    """End-to-end checkouts"""

    def test_delivery_total_and_submission(self, make_machine, service, store, cart):
        """32.00 subtotal + 3.50 fee, minimum 20.00: total 35.50 and allowed"""
        machine = make_machine(service, cart=cart)

        async def scenario():
            await machine.open(OrderType.DELIVERY)
            await fill_details(machine)
            assert machine.pricing().total == Decimal("35.50")
            assert machine.can_advance()
            return await machine.advance()

        assert run(scenario()) == CheckoutStep.SUCCESS
        assert machine.draft.order_number == 1
        assert cart.is_empty
        stored = store.orders[0]
        assert stored.total == Decimal("35.50")
        assert stored.delivery_zone_id == 2
        assert stored.customer_address == "Bergmannstr. 5, 10961 Berlin"
        assert stored.scheduled_time == machine.draft.slots[0].instant

    def test_zone_minimum_blocks_with_shortfall(self, make_machine, settings, cart):
        """Same cart, zone minimum 40.00: blocked, 8.00 missing"""
        zone = DeliveryZone(id=10, name="Altstadt", postal_codes=("80331",),
                            price=Decimal("3.50"), minimum_order_value=Decimal("40.00"))
        store = make_store(zones=[zone])
        service = OrderingService(store, settings=settings, clock=lambda: NOW)
        machine = make_machine(service, cart=cart)

        async def scenario():
            await machine.open(OrderType.DELIVERY)
            await fill_details(machine, postal_code="80331", city="München")
            return await machine.advance()

        assert run(scenario()) == CheckoutStep.DETAILS
        assert codes(machine) == [BlockingCode.BELOW_MINIMUM_ORDER]
        assert machine.draft.error == "The minimum order value for Altstadt is 40.00 €. Please add 8.00 € more."
        assert store.orders == []

    def test_zone_minimum_blocks_despite_discount(self, make_machine, settings, cart):
        zone = DeliveryZone(id=10, name="Altstadt", postal_codes=("80331",),
                            price=Decimal("3.50"), minimum_order_value=Decimal("40.00"))
        service = OrderingService(make_store(zones=[zone]), settings=settings, clock=lambda: NOW)
        machine = make_machine(service, cart=cart)

        async def scenario():
            await machine.open(OrderType.DELIVERY)
            await fill_details(machine, postal_code="80331", city="München")
            assert await machine.apply_discount("SOMMER20")

        run(scenario())
        assert machine.pricing().discount_amount == Decimal("6.40")
        assert codes(machine) == [BlockingCode.BELOW_MINIMUM_ORDER]

    def test_sommer20(self, make_machine, service, store):
        """SOMMER20 on 25.00: 5.00 off"""
        cart = Cart(restaurant_id=1)
        cart.add(menu_item_id=1, name="Pizza Diavolo", unit_price="12.50", quantity=2)
        machine = make_machine(service, cart=cart)

        async def scenario():
            await machine.open()
            await fill_details(machine)
            assert await machine.apply_discount("sommer20")
            breakdown = machine.pricing()
            assert breakdown.discount_amount == Decimal("5.00")
            assert breakdown.total == Decimal("20.00")
            return await machine.advance()

        assert run(scenario()) == CheckoutStep.SUCCESS
        assert store.orders[0].discount_amount == Decimal("5.00")
        assert store.orders[0].discount_code_used == "SOMMER20"

    def test_cash_skips_payment(self, make_machine, service, cart):
        machine = make_machine(service, cart=cart)
        seen = []
        machine.subscribe(lambda m: seen.append(m.current_state))

        async def scenario():
            await machine.open()
            await fill_details(machine)
            machine.set_payment_method(PaymentMethod.CASH)
            return await machine.advance()

        assert run(scenario()) == CheckoutStep.SUCCESS
        assert CheckoutStep.SUBMITTING in seen
        assert CheckoutStep.PAYMENT not in seen

    def test_card_goes_through_payment(self, make_machine, service, store, cart, payments):
        machine = make_machine(service, cart=cart)

        async def scenario():
            await machine.open()
            await fill_details(machine)
            machine.set_payment_method(PaymentMethod.CARD)
            assert await machine.advance() == CheckoutStep.PAYMENT
            return await machine.advance(payment_method_id="pm_card_visa")

        assert run(scenario()) == CheckoutStep.SUCCESS
        assert payments.confirmed[0].amount == Decimal("32.00")
        assert store.orders[0].status == OrderStatus.CONFIRMED
        assert store.orders[0].payment_intent_id == payments.confirmed[0].payment_intent_id

    def test_card_without_payment_service_submits_directly(self, make_machine, settings, cart):
        store = make_store(payment_available=False)
        service = OrderingService(store, settings=settings, clock=lambda: NOW)
        machine = make_machine(service, cart=cart)

        async def scenario():
            await machine.open()
            await fill_details(machine)
            machine.set_payment_method(PaymentMethod.CARD)
            assert not machine.payment_available
            return await machine.advance()

        assert run(scenario()) == CheckoutStep.SUCCESS
        assert store.orders[0].status == OrderStatus.PENDING

    def test_declined_payment_stays_on_payment(self, make_machine, service, store, cart, payments):
        payments.decline_next("Your card has insufficient funds.", "insufficient_funds")
        machine = make_machine(service, cart=cart)

        async def scenario():
            await machine.open()
            await fill_details(machine)
            machine.set_payment_method(PaymentMethod.CARD)
            await machine.advance()
            return await machine.advance(payment_method_id="pm_card_visa")

        assert run(scenario()) == CheckoutStep.PAYMENT
        assert machine.draft.error == "Your card has insufficient funds."
        assert store.orders == []
        assert machine.retreat() == CheckoutStep.DETAILS


class TestSubmissionOutcomes:

    def test_failed_submission_returns_to_details(self, make_machine, settings, store, cart):
        backend = FlakyBackend(store, settings=settings, clock=lambda: NOW)
        machine = make_machine(backend, cart=cart)

        async def scenario():
            await machine.open()
            await fill_details(machine)
            return await machine.advance()

        assert run(scenario()) == CheckoutStep.DETAILS
        assert machine.draft.error == "The kitchen is busy."
        assert machine.draft.contact.name == "Anna Schmidt"
        assert len(cart) == 2

    def test_confirmed_payment_is_not_charged_twice(self, make_machine, settings, store, cart, payments):
        backend = FlakyBackend(store, settings=settings, clock=lambda: NOW)
        machine = make_machine(backend, cart=cart)

        async def scenario():
            await machine.open()
            await fill_details(machine)
            machine.set_payment_method(PaymentMethod.CARD)
            await machine.advance()
            assert await machine.advance(payment_method_id="pm_card_visa") == CheckoutStep.DETAILS
            return await machine.advance()

        assert run(scenario()) == CheckoutStep.SUCCESS
        assert len(payments.confirmed) == 1
        assert backend.calls == 2

    def test_no_second_submission_after_success(self, make_machine, service, store, cart):
        machine = make_machine(service, cart=cart)

        async def scenario():
            await machine.open()
            await fill_details(machine)
            await machine.advance()
            with pytest.raises(SubmissionUnavailable):
                await machine.advance()

        run(scenario())
        with pytest.raises(SubmissionUnavailable):
            machine.update_contact(name="Ben")
        with pytest.raises(InvalidTransition):
            machine.retreat()
        assert len(store.orders) == 1

    def test_inputs_locked_while_submitting(self, make_machine, settings, store, cart):

        async def scenario():
            backend = GatedBackend(store, settings=settings, clock=lambda: NOW)
            machine = make_machine(backend, cart=cart)
            await machine.open()
            await fill_details(machine)

            task = asyncio.create_task(machine.advance())
            await backend.started.wait()
            assert machine.current_state == CheckoutStep.SUBMITTING
            assert not machine.can_advance()
            with pytest.raises(CheckoutLocked):
                machine.update_contact(name="Ben")
            with pytest.raises(CheckoutLocked):
                await machine.advance()
            with pytest.raises(CheckoutLocked):
                await machine.open()
            with pytest.raises(InvalidTransition):
                machine.retreat()

            backend.release.set()
            return await task

        assert run(scenario()) == CheckoutStep.SUCCESS
        assert len(store.orders) == 1

    def test_result_for_closed_draft_is_discarded(self, make_machine, settings, store, cart):

        async def scenario():
            backend = GatedBackend(store, settings=settings, clock=lambda: NOW)
            machine = make_machine(backend, cart=cart)
            await machine.open()
            await fill_details(machine)

            task = asyncio.create_task(machine.advance())
            await backend.started.wait()
            machine.close()
            backend.release.set()
            await task
            return machine

        machine = run(scenario())
        assert machine.current_state == CheckoutStep.CLOSED
        assert machine.draft is None
        # The order exists, so the cart is still cleared
        assert len(store.orders) == 1
        assert cart.is_empty

    def test_reopened_draft_is_editable_while_old_payment_runs(self, make_machine, service, store, cart):

        async def scenario():
            payments = GatedPaymentService()
            machine = make_machine(service, cart=cart, payment_service=payments)
            await machine.open()
            await fill_details(machine)
            machine.set_payment_method(PaymentMethod.CARD)
            assert await machine.advance() == CheckoutStep.PAYMENT

            task = asyncio.create_task(machine.advance(payment_method_id="pm_card_visa"))
            await payments.started.wait()
            with pytest.raises(CheckoutLocked):
                machine.update_contact(name="Ben")

            machine.close()
            assert await machine.open() == CheckoutStep.DETAILS
            machine.update_contact(name="Ben", phone="030 7654321")
            assert machine.can_advance()

            payments.release.set()
            await task
            return machine

        machine = run(scenario())
        assert machine.current_state == CheckoutStep.DETAILS
        assert machine.draft.contact.name == "Ben"
        assert machine.draft.payment is None
        assert store.orders == []


class TestLastWriteWins:

    def test_older_zone_refresh_does_not_overwrite_newer(self, make_machine, settings, store, cart):

        async def scenario():
            backend = SlowZonesBackend(store, settings=settings, clock=lambda: NOW)
            machine = make_machine(backend, cart=cart)
            await machine.open(OrderType.DELIVERY)
            machine.update_contact(name="Anna", phone="030 123")

            backend.hold_next = True
            first = asyncio.create_task(machine.update_address(
                street="Torstr.", house_number="1", postal_code="10115", city="Berlin",
            ))
            while not backend.pending:
                await asyncio.sleep(0)

            await machine.update_address(postal_code="10961")
            backend.pending[0].set()
            await first
            return machine

        machine = run(scenario())
        assert machine.draft.zone.id == 2
        assert machine.draft.timing.preparation_minutes == 40


class TestDiscounts:

    def test_code_below_its_minimum_is_rejected(self, make_machine, service):
        cart = Cart(restaurant_id=1)
        cart.add(menu_item_id=4, name="Pizzabrot", unit_price="8.00")
        machine = make_machine(service, cart=cart)

        async def scenario():
            await machine.open()
            return await machine.apply_discount("SOMMER20")

        assert run(scenario()) is False
        assert machine.draft.discount is None
        assert machine.draft.error == (
            "The discount code SOMMER20 requires a minimum order of 10.00 €. Please add 2.00 € more."
        )

    def test_invalid_code(self, make_machine, service, cart):
        machine = make_machine(service, cart=cart)

        async def scenario():
            await machine.open()
            return await machine.apply_discount("gibtsnicht")

        assert run(scenario()) is False
        assert machine.draft.error == "The discount code GIBTSNICHT is not valid."

    def test_remove_discount(self, make_machine, service, cart):
        machine = make_machine(service, cart=cart)

        async def scenario():
            await machine.open()
            await machine.apply_discount("WILLKOMMEN5")

        run(scenario())
        assert machine.pricing().total == Decimal("27.00")
        machine.remove_discount()
        assert machine.pricing().total == Decimal("32.00")


class TestPrefill:

    def test_successful_order_prefills_next_checkout(self, make_machine, service, cart, tmp_path):
        prefill = ContactPrefillCache(tmp_path / "prefill.json", lock_timeout=1)
        machine = make_machine(service, cart=cart, prefill=prefill)

        async def scenario():
            await machine.open(OrderType.DELIVERY)
            await fill_details(machine)
            await machine.advance()
            machine.close()
            await machine.open(OrderType.DELIVERY)

        run(scenario())
        assert machine.draft.contact.name == "Anna Schmidt"
        assert machine.draft.address.postal_code == "10961"
