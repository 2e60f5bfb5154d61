# Overview: Pytest coverage for inventory adjustment, the ledger invariant, and retry handling.

import logging

import pytest
from sqlalchemy import text
from sqlalchemy.orm.exc import StaleDataError

from fabops.extensions import db
from fabops.models import InventoryTransactionLog, LedgerMetadata
from fabops.models.inventory import ledger_lookup_key
from fabops.services import inventory_service
from fabops.services.concurrency import run_with_retry
from fabops.services.inventory_service import InventoryError, InventoryItemNotFoundError
from fabops.services.ledger_service import (
    TX_CONSUMPTION,
    TX_MANUAL_ADJUSTMENT,
    TX_PURCHASE,
    append_transaction_log,
)


def _entries(material_id):
    return (
        db.session.query(InventoryTransactionLog)
        .filter_by(material_id=material_id)
        .order_by(InventoryTransactionLog.id.asc())
        .all()
    )


class TestAdjustQuantity:

    def test_deduct_and_log(self, db_session, make_material):
        item = make_material(quantity=100.0)

        change = inventory_service.adjust_quantity(
            item.id, -30.0,
            transaction_type=TX_CONSUMPTION,
            metadata=LedgerMetadata(material_name="Canvas 600D", unit="meter", component_type="part", component_id=7),
            reference_id=1, reference_type="JobCard", reference_number="JC-1",
        )

        assert (change.previous, change.new, change.applied) == (100.0, 70.0, -30.0)
        assert inventory_service.get_inventory_item(item.id).quantity == 70.0

        entry = _entries(item.id)[-1]
        assert entry.transaction_type == TX_CONSUMPTION
        assert entry.quantity == -30.0
        assert entry.previous_quantity == 100.0
        assert entry.new_quantity == 70.0
        assert entry.ledger_metadata.component_id == 7
        assert entry.to_dict()["metadata"]["component_type"] == "part"

    def test_purchase_rate_updated(self, db_session, make_material):
        item = make_material(quantity=0.0)
        inventory_service.adjust_quantity(item.id, 10.0, transaction_type=TX_PURCHASE, purchase_rate=51.0)
        assert inventory_service.get_inventory_item(item.id).purchase_rate == 51.0

    def test_negative_allowed_by_default(self, db_session, make_material):
        item = make_material(quantity=5.0)
        change = inventory_service.adjust_quantity(item.id, -8.0, transaction_type=TX_CONSUMPTION)
        assert change.new == -3.0

    def test_negative_rejected_when_disabled(self, db_session, app, make_material, monkeypatch):
        monkeypatch.setitem(app.config, "ALLOW_NEGATIVE_INVENTORY", False)
        item = make_material(quantity=5.0)
        with pytest.raises(InventoryError):
            inventory_service.adjust_quantity(item.id, -8.0, transaction_type=TX_CONSUMPTION)
        assert inventory_service.get_inventory_item(item.id).quantity == 5.0
        assert all(e.transaction_type != TX_CONSUMPTION for e in _entries(item.id))

    def test_floor_at_zero_logs_applied_delta(self, db_session, make_material):
        item = make_material(quantity=4.0)
        change = inventory_service.adjust_quantity(
            item.id, -10.0, transaction_type="purchase-reversal", floor_at_zero=True,
        )
        assert change.new == 0.0
        assert change.applied == -4.0
        entry = _entries(item.id)[-1]
        assert entry.quantity == -4.0
        assert entry.previous_quantity + entry.quantity == entry.new_quantity

    def test_missing_material(self, db_session):
        with pytest.raises(InventoryItemNotFoundError):
            inventory_service.adjust_quantity(999, 1.0, transaction_type=TX_PURCHASE)

    def test_unknown_transaction_type_rolls_back(self, db_session, make_material):
        item = make_material(quantity=10.0)
        with pytest.raises(ValueError):
            inventory_service.adjust_quantity(item.id, 1.0, transaction_type="gift")
        assert inventory_service.get_inventory_item(item.id).quantity == 10.0


class TestManualStockCorrection:

    def test_set_quantity_logs_change(self, db_session, make_material):
        item = make_material(quantity=20.0)
        change = inventory_service.set_inventory_quantity(item.id, 12.5, notes="Stock take")
        assert change.applied == -7.5
        entry = _entries(item.id)[-1]
        assert entry.transaction_type == TX_MANUAL_ADJUSTMENT
        assert entry.quantity == -7.5
        assert entry.notes == "Stock take"

    def test_set_quantity_may_go_negative(self, db_session, app, make_material, monkeypatch):
        monkeypatch.setitem(app.config, "ALLOW_NEGATIVE_INVENTORY", False)
        item = make_material(quantity=2.0)
        change = inventory_service.set_inventory_quantity(item.id, -1.0)
        assert change.new == -1.0


class TestInventoryItems:

    def test_opening_stock_is_logged(self, db_session, make_material):
        item = make_material(quantity=42.0)
        entries = _entries(item.id)
        assert len(entries) == 1
        assert entries[0].transaction_type == TX_MANUAL_ADJUSTMENT
        assert entries[0].new_quantity == 42.0

    def test_zero_opening_stock_not_logged(self, db_session, make_material):
        item = make_material(quantity=0.0)
        assert _entries(item.id) == []

    def test_blank_name_rejected(self, db_session):
        with pytest.raises(InventoryError):
            inventory_service.create_inventory_item(material_name="  ")

    def test_list_and_search(self, db_session, make_material):
        make_material("Canvas 600D")
        make_material("Webbing 25mm")
        assert [i.material_name for i in inventory_service.list_inventory_items()] == ["Canvas 600D", "Webbing 25mm"]
        assert [i.material_name for i in inventory_service.list_inventory_items(search="web")] == ["Webbing 25mm"]

    def test_transactions_newest_first(self, db_session, make_material):
        item = make_material(quantity=10.0)
        inventory_service.adjust_quantity(item.id, -1.0, transaction_type=TX_CONSUMPTION)
        entries = inventory_service.list_inventory_transactions(material_id=item.id)
        assert [e.transaction_type for e in entries] == [TX_CONSUMPTION, TX_MANUAL_ADJUSTMENT]


class TestLedger:

    def test_invariant_enforced(self, db_session, make_material):
        item = make_material(quantity=10.0)
        with pytest.raises(ValueError):
            append_transaction_log(
                material_id=item.id,
                transaction_type=TX_CONSUMPTION,
                quantity=-5.0,
                previous_quantity=10.0,
                new_quantity=6.0,
            )
        db_session.rollback()

    def test_metadata_round_trip_keeps_extras(self):
        meta = LedgerMetadata.from_dict({
            "material_name": "Canvas", "unit": "meter", "component_type": "part",
            "component_id": "12", "order_number": "ORD-1",
        })
        assert meta.component_id == 12
        assert meta.extras == {"order_number": "ORD-1"}
        assert meta.to_dict()["order_number"] == "ORD-1"

    def test_lookup_key(self):
        with_id = LedgerMetadata(material_name="Canvas", unit="meter", component_type="part", component_id=3)
        without_id = LedgerMetadata(material_name="Canvas", unit="meter", component_type="part")
        assert with_id.lookup_key(1) == ledger_lookup_key(1, component_id=3)
        assert without_id.lookup_key(1) == ledger_lookup_key(1, component_type="part")
        assert with_id.lookup_key(1) != without_id.lookup_key(1)


class TestRetry:

    def test_retries_stale_data(self, db_session):
        calls = {"n": 0}

        def flaky():
            calls["n"] += 1
            if calls["n"] < 3:
                raise StaleDataError("version mismatch")
            return "ok"

        assert run_with_retry(flaky, attempts=3, backoff_base=0) == "ok"
        assert calls["n"] == 3

    def test_last_failure_propagates(self, db_session):
        def always_stale():
            raise StaleDataError("version mismatch")

        with pytest.raises(StaleDataError):
            run_with_retry(always_stale, attempts=2, backoff_base=0)

    def test_adjust_quantity_retries_version_conflict(self, db_session, make_material, monkeypatch, caplog):
        item = make_material(quantity=100.0)
        material_id = item.id
        original_get_item = inventory_service._get_item
        reads = {"n": 0}

        def read_then_concurrent_write(mid, *, lock=False):
            row = original_get_item(mid, lock=lock)
            reads["n"] += 1
            if reads["n"] == 1:
                # Another writer bumps the row version after our read
                db.session.execute(
                    text("UPDATE inventory SET version_id = version_id + 1 WHERE id = :id"),
                    {"id": mid},
                )
            return row

        monkeypatch.setattr(inventory_service, "_get_item", read_then_concurrent_write)

        with caplog.at_level(logging.WARNING, logger="fabops"):
            change = inventory_service.adjust_quantity(material_id, -30.0, transaction_type=TX_CONSUMPTION)

        assert reads["n"] == 2
        assert "Concurrent inventory update detected" in caplog.text
        assert (change.previous, change.new) == (100.0, 70.0)
        assert inventory_service.get_inventory_item(material_id).quantity == 70.0
        consumption = [e for e in _entries(material_id) if e.transaction_type == TX_CONSUMPTION]
        assert len(consumption) == 1
        assert consumption[0].previous_quantity + consumption[0].quantity == consumption[0].new_quantity
