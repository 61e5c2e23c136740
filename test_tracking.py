"""Tracking extraction and dedup tests."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

from conftest import build_invoice
from core.audit import AuditLogger, InMemoryAuditBackend
from core.audit.events import AuditEventType
from reconciliation.tracking import (
    AuditTrackingStore,
    InMemoryTrackingStore,
    TrackingStore,
    deduplicate_tracking_numbers,
    reconcile_tracking,
    save_tracking_numbers,
)


def _failing_store() -> TrackingStore:
    store = MagicMock(spec=TrackingStore)
    store.find_existing = AsyncMock(side_effect=ConnectionError("store offline"))
    store.record = AsyncMock(side_effect=ConnectionError("store offline"))
    return store


class TestReconcileTracking:

    def test_none_when_nothing_present(self):
        assert reconcile_tracking(build_invoice()) is None

    def test_blank_numbers_are_dropped(self):
        update = reconcile_tracking(build_invoice(tracking_numbers=["1Z999", "  ", ""]))
        assert update.tracking_numbers == ["1Z999"]

    def test_ship_date_alone_is_enough(self):
        update = reconcile_tracking(build_invoice(ship_date="2026-03-01", carrier_name="UPS"))
        assert update.tracking_numbers == []
        assert update.ship_date == "2026-03-01"
        assert update.carrier_name == "UPS"

    def test_comma_separated_numbers_are_split(self):
        update = reconcile_tracking(build_invoice(tracking_numbers="1Z111, 1Z222"))
        assert update.tracking_numbers == ["1Z111", "1Z222"]


class TestDeduplicateTrackingNumbers:

    def test_filters_numbers_recorded_on_any_invoice(self):
        async def run():
            store = InMemoryTrackingStore()
            await store.record(["1z111 "], "INV-0999")
            return await deduplicate_tracking_numbers(["1Z111", "1Z222"], store)

        result = asyncio.run(run())
        assert result.value == ["1Z222"]
        assert not result.degraded

    def test_empty_input(self):
        result = asyncio.run(deduplicate_tracking_numbers([], _failing_store()))
        assert result.value == []
        assert not result.degraded

    def test_store_failure_fails_open(self):
        result = asyncio.run(deduplicate_tracking_numbers(["1Z111", "1Z222"], _failing_store()))
        assert result.value == ["1Z111", "1Z222"]
        assert result.degraded
        assert "store offline" in result.error

    def test_store_failure_fail_closed(self):
        result = asyncio.run(deduplicate_tracking_numbers(["1Z111"], _failing_store(), fail_open=False))
        assert result.value == []
        assert result.degraded

    def test_save_failure_is_swallowed(self):
        asyncio.run(save_tracking_numbers(["1Z111"], "INV-1001", _failing_store()))


class TestAuditTrackingStore:

    def test_numbers_round_trip_through_activity_log(self):
        backend = InMemoryAuditBackend()
        store = AuditTrackingStore(AuditLogger([backend]))

        async def run():
            await store.record(["1Z111", "1Z222"], "INV-1001")
            return await store.find_existing(["1z222", "1Z333"])

        assert asyncio.run(run()) == {"1Z222"}
        event = backend.events[0]
        assert event.event_type == AuditEventType.TRACKING_RECORDED.value
        assert event.invoice_number == "INV-1001"

    def test_in_memory_store_remembers_first_invoice(self):
        store = InMemoryTrackingStore()

        async def run():
            await store.record(["1Z111"], "INV-1")
            await store.record(["1Z111"], "INV-2")

        asyncio.run(run())
        assert store.invoice_for("1z111") == "INV-1"
