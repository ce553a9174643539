"""Tests for the order status state machine and cancellation restocking."""

import asyncio
import re
from datetime import datetime, timezone

import pytest

from storefront.common.errors import InvalidStatus, InvalidTransition, NotFound, StoreError, ValidationError
from storefront.orders import lifecycle
from storefront.orders.lifecycle import (
    CANCELLABLE_STATUSES,
    STATUS_TRANSITIONS,
    TERMINAL_STATUSES,
    append_note,
    can_transition,
    parse_status,
)
from storefront.orders.model import OrderStatus

ISO_NOTE = re.compile(r"\[\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}[^\]]*\] ")


class TestTransitionTable:
    def test_every_status_has_an_entry(self):
        assert set(STATUS_TRANSITIONS) == set(OrderStatus)

    def test_terminal_statuses(self):
        assert TERMINAL_STATUSES == {OrderStatus.DELIVERED, OrderStatus.CANCELLED}

    def test_pending_cannot_skip_to_processing(self):
        assert not can_transition(OrderStatus.PENDING, OrderStatus.PROCESSING)

    def test_processing_may_be_cancelled_by_table(self):
        assert can_transition(OrderStatus.PROCESSING, OrderStatus.CANCELLED)
        assert OrderStatus.PROCESSING not in CANCELLABLE_STATUSES

    def test_self_transition_is_not_allowed(self):
        for status in OrderStatus:
            assert not can_transition(status, status)


class TestParseStatus:
    def test_accepts_enum_and_lowercase(self):
        assert parse_status(OrderStatus.CONFIRMED) is OrderStatus.CONFIRMED
        assert parse_status("confirmed") is OrderStatus.CONFIRMED

    def test_rejects_unknown(self):
        with pytest.raises(ValidationError):
            parse_status("SHIPPED")


class TestAppendNote:
    NOW = datetime(2026, 3, 1, 12, 30, tzinfo=timezone.utc)

    def test_first_note_has_no_leading_newline(self):
        assert append_note(None, "hello", self.NOW) == "[2026-03-01T12:30:00+00:00] hello"

    def test_appends_after_existing(self):
        result = append_note("gift wrap please", "confirmed by phone", self.NOW)
        assert result == "gift wrap please\n[2026-03-01T12:30:00+00:00] confirmed by phone"


class TestTransition:
    def test_confirm_pending_order(self, run, factory):
        async def scenario():
            pid = await factory.product(stock=100)
            oid = await factory.order([(pid, 10, 5.0)])
            result = await lifecycle.transition(oid, OrderStatus.CONFIRMED, "payment verified")
            return pid, oid, result

        pid, oid, result = run(scenario())
        assert result["status"] == "CONFIRMED"
        assert ISO_NOTE.match(result["notes"])
        assert result["notes"].endswith("payment verified")
        assert run(factory.stock(pid)) == 100

    def test_notes_are_appended_not_overwritten(self, run, factory):
        async def scenario():
            pid = await factory.product()
            oid = await factory.order([(pid, 1, 5.0)], notes="leave at door")
            await lifecycle.transition(oid, "CONFIRMED", "first")
            return await lifecycle.transition(oid, "PROCESSING", "second")

        notes = run(scenario())["notes"].split("\n")
        assert notes[0] == "leave at door"
        assert notes[1].endswith("first")
        assert notes[2].endswith("second")

    def test_without_notes_leaves_notes_untouched(self, run, factory):
        async def scenario():
            pid = await factory.product()
            oid = await factory.order([(pid, 1, 5.0)], notes="original")
            return await lifecycle.transition(oid, "CONFIRMED")

        assert run(scenario())["notes"] == "original"

    @pytest.mark.parametrize("terminal", [OrderStatus.DELIVERED, OrderStatus.CANCELLED])
    @pytest.mark.parametrize("target", list(OrderStatus))
    def test_terminal_orders_reject_every_target(self, run, factory, terminal, target):
        async def scenario():
            pid = await factory.product(stock=50)
            oid = await factory.order([(pid, 3, 5.0)], status=terminal.value)
            with pytest.raises(InvalidTransition):
                await lifecycle.transition(oid, target)
            return pid, await factory.order_row(oid)

        pid, order = run(scenario())
        assert order.status == terminal.value
        assert run(factory.stock(pid)) == 50

    def test_pending_to_processing_is_rejected(self, run, factory):
        async def scenario():
            pid = await factory.product()
            oid = await factory.order([(pid, 1, 5.0)])
            with pytest.raises(InvalidTransition) as exc:
                await lifecycle.transition(oid, "PROCESSING")
            return exc.value

        err = run(scenario())
        assert err.message == "Cannot transition from PENDING to PROCESSING"

    def test_missing_order(self, run):
        with pytest.raises(NotFound):
            run(lifecycle.transition(9999, "CONFIRMED"))

    def test_unknown_status_is_a_validation_error(self, run, factory):
        async def scenario():
            pid = await factory.product()
            oid = await factory.order([(pid, 1, 5.0)])
            with pytest.raises(ValidationError):
                await lifecycle.transition(oid, "LOST")

        run(scenario())


class TestCancellationRestock:
    def test_transition_to_cancelled_restores_stock(self, run, factory):
        async def scenario():
            pid = await factory.product(stock=100)
            oid = await factory.order([(pid, 10, 5.0)])
            await lifecycle.transition(oid, "CANCELLED", "customer request")
            return await factory.stock(pid)

        assert run(scenario()) == 110

    def test_cancel_from_processing_through_transition(self, run, factory):
        async def scenario():
            pid = await factory.product(stock=7)
            oid = await factory.order([(pid, 3, 5.0)], status="PROCESSING")
            result = await lifecycle.transition(oid, "CANCELLED")
            return result, await factory.stock(pid)

        result, stock = run(scenario())
        assert result["status"] == "CANCELLED"
        assert stock == 10

    def test_multi_line_cancel_restores_every_line(self, run, factory):
        async def scenario():
            a = await factory.product(stock=100)
            b = await factory.product(stock=5)
            oid = await factory.order([(a, 10, 2.0), (b, 4, 3.0)], status="CONFIRMED")
            await lifecycle.cancel(oid)
            return await factory.stock(a), await factory.stock(b)

        assert run(scenario()) == (110, 9)

    def test_missing_product_rolls_back_everything(self, run, factory):
        async def scenario():
            kept = await factory.product(stock=100)
            gone = await factory.product(stock=20)
            oid = await factory.order([(kept, 10, 2.0), (gone, 5, 3.0)], notes="before")
            await factory.delete_product(gone)
            with pytest.raises(NotFound):
                await lifecycle.transition(oid, "CANCELLED", "should not stick")
            return await factory.stock(kept), await factory.order_row(oid)

        stock, order = run(scenario())
        assert stock == 100
        assert order.status == "PENDING"
        assert order.notes == "before"

    def test_missing_product_rolls_back_cancel(self, run, factory):
        async def scenario():
            kept = await factory.product(stock=100)
            gone = await factory.product(stock=20)
            oid = await factory.order([(kept, 10, 2.0), (gone, 5, 3.0)])
            await factory.delete_product(gone)
            with pytest.raises(NotFound):
                await lifecycle.cancel(oid)
            return await factory.stock(kept), await factory.order_row(oid)

        stock, order = run(scenario())
        assert stock == 100
        assert order.status == "PENDING"


class TestCancel:
    def test_cancel_pending_order(self, run, factory):
        async def scenario():
            a = await factory.product(stock=40)
            b = await factory.product(stock=0)
            oid = await factory.order([(a, 2, 9.5), (b, 6, 1.0)])
            result = await lifecycle.cancel(oid)
            return result, await factory.stock(a), await factory.stock(b)

        result, stock_a, stock_b = run(scenario())
        assert result["status"] == "CANCELLED"
        assert ISO_NOTE.search(result["notes"])
        assert "cancelled" in result["notes"]
        assert (stock_a, stock_b) == (42, 6)

    def test_cancel_rejects_processing_order(self, run, factory):
        async def scenario():
            pid = await factory.product(stock=10)
            oid = await factory.order([(pid, 1, 5.0)], status="PROCESSING")
            with pytest.raises(InvalidStatus) as exc:
                await lifecycle.cancel(oid)
            return exc.value, await factory.stock(pid), await factory.order_row(oid)

        err, stock, order = run(scenario())
        assert err.message == "Cannot cancel order with status PROCESSING"
        assert stock == 10
        assert order.status == "PROCESSING"

    @pytest.mark.parametrize("status", ["DELIVERED", "CANCELLED"])
    def test_cancel_rejects_terminal_orders(self, run, factory, status):
        async def scenario():
            pid = await factory.product(stock=10)
            oid = await factory.order([(pid, 1, 5.0)], status=status)
            with pytest.raises(InvalidStatus):
                await lifecycle.cancel(oid)
            return await factory.stock(pid)

        assert run(scenario()) == 10

    def test_cancel_missing_order(self, run):
        with pytest.raises(NotFound):
            run(lifecycle.cancel(4242))


class TestConcurrentCancellation:
    def test_overlapping_cancels_restock_once(self, run, factory):
        async def scenario():
            pid = await factory.product(stock=100)
            oid = await factory.order([(pid, 10, 5.0)])
            results = await asyncio.gather(
                lifecycle.cancel(oid),
                lifecycle.transition(oid, "CANCELLED"),
                return_exceptions=True,
            )
            return results, await factory.stock(pid), await factory.order_row(oid)

        results, stock, order = run(scenario())
        succeeded = [r for r in results if isinstance(r, dict)]
        rejected = [r for r in results if isinstance(r, StoreError)]
        assert len(succeeded) == 1 and len(rejected) == 1
        assert isinstance(rejected[0], (InvalidStatus, InvalidTransition))
        assert succeeded[0]["status"] == "CANCELLED"
        assert stock == 110
        assert order.status == "CANCELLED"

    def test_two_transitions_to_cancelled_restock_once(self, run, factory):
        async def scenario():
            pid = await factory.product(stock=50)
            oid = await factory.order([(pid, 5, 5.0)], status="CONFIRMED")
            results = await asyncio.gather(
                lifecycle.transition(oid, "CANCELLED"),
                lifecycle.transition(oid, "CANCELLED"),
                return_exceptions=True,
            )
            return results, await factory.stock(pid)

        results, stock = run(scenario())
        assert sum(isinstance(r, dict) for r in results) == 1
        assert sum(isinstance(r, InvalidTransition) for r in results) == 1
        assert stock == 55

    def test_different_orders_sharing_a_product(self, run, factory):
        async def scenario():
            pid = await factory.product(stock=100)
            first = await factory.order([(pid, 10, 5.0)])
            second = await factory.order([(pid, 5, 5.0)], status="CONFIRMED")
            results = await asyncio.gather(lifecycle.cancel(first), lifecycle.cancel(second))
            return results, await factory.stock(pid)

        results, stock = run(scenario())
        assert [r["status"] for r in results] == ["CANCELLED", "CANCELLED"]
        assert stock == 115
