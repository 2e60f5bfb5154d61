# Overview: Pytest coverage for job card consumption and its reversal.

"""
Job Card Reversal Tests

Reversal must restore the ORIGINAL logged consumption, fall back to the
component's current consumption (flagged degraded) when no entry exists,
and keep going when one material fails.
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from fabops.extensions import db
from fabops.models import InventoryTransactionLog, JobCard, OrderComponent
from fabops.services import inventory_service, job_card_service
from fabops.services.job_card_service import JobCardNotFoundError, JobCardReversalError, JobCardValidationError
from fabops.services.ledger_service import (
    REF_JOB_CARD,
    TX_CONSUMPTION,
    TX_JOB_CARD_REVERSAL,
    append_transaction_log,
)


def _quantity(material_id):
    return inventory_service.get_inventory_item(material_id).quantity


def _entries(material_id, transaction_type):
    return (
        db.session.query(InventoryTransactionLog)
        .filter_by(material_id=material_id, transaction_type=transaction_type)
        .order_by(InventoryTransactionLog.id.asc())
        .all()
    )


def _manual(material_id, value, component_type="part"):
    return {"component_type": component_type, "formula": "manual", "manual_value": value, "material_id": material_id}


@pytest.fixture
def canvas(make_material):
    return make_material("Canvas 600D", quantity=100.0)


@pytest.fixture
def webbing(make_material):
    return make_material("Webbing 25mm", quantity=50.0)


class TestRecordConsumption:

    def test_create_job_card_deducts_and_logs(self, db_session, canvas, make_order):
        order = make_order(components=[_manual(canvas.id, "30")])

        job_card, result = job_card_service.create_job_card(order_id=order.id, job_number="JC-1")

        assert result.success
        assert result.succeeded_count == 1
        assert _quantity(canvas.id) == 70.0
        entry = _entries(canvas.id, TX_CONSUMPTION)[0]
        assert entry.quantity == -30.0
        assert entry.reference_type == REF_JOB_CARD
        assert entry.reference_id == job_card.id
        assert entry.ledger_metadata.component_id == order.components[0].id
        assert entry.ledger_metadata.component_type == "part"

    def test_components_without_material_skipped(self, db_session, canvas, make_order):
        order = make_order(components=[
            _manual(canvas.id, "5"),
            {"component_type": "custom", "formula": "manual", "manual_value": "3"},
        ])
        _, result = job_card_service.create_job_card(order_id=order.id, job_number="JC-1")
        assert result.succeeded_count == 1

    def test_duplicate_job_number(self, db_session, canvas, make_order):
        order = make_order(components=[_manual(canvas.id, "1")])
        job_card_service.create_job_card(order_id=order.id, job_number="JC-1")
        with pytest.raises(JobCardValidationError):
            job_card_service.create_job_card(order_id=order.id, job_number="JC-1")

    def test_unknown_order(self, db_session):
        with pytest.raises(JobCardValidationError):
            job_card_service.create_job_card(order_id=999, job_number="JC-1")


class TestReverseJobCard:

    def test_restores_logged_quantity(self, db_session, canvas, make_order):
        order = make_order(components=[_manual(canvas.id, "30")])
        job_card, _ = job_card_service.create_job_card(order_id=order.id, job_number="JC-1")
        assert _quantity(canvas.id) == 70.0

        result = job_card_service.reverse_job_card_material_consumption(job_card.id)

        assert result.success
        assert result.error is None
        assert _quantity(canvas.id) == 100.0
        entry = _entries(canvas.id, TX_JOB_CARD_REVERSAL)[0]
        assert entry.quantity == 30.0
        assert entry.previous_quantity == 70.0
        assert entry.new_quantity == 100.0
        assert entry.reference_id == job_card.id
        assert entry.meta["reversal"] is True
        assert result.succeeded[0]["degraded"] is False

    def test_edited_component_restores_original(self, db_session, canvas, make_order):
        order = make_order(components=[_manual(canvas.id, "30")])
        job_card, _ = job_card_service.create_job_card(order_id=order.id, job_number="JC-1")

        component = db_session.get(OrderComponent, order.components[0].id)
        component.consumption = 55.0
        db_session.commit()

        result = job_card_service.reverse_job_card_material_consumption(job_card.id)

        assert result.succeeded[0]["restored"] == 30.0
        assert _quantity(canvas.id) == 100.0

    def test_falls_back_to_component_type(self, db_session, canvas, make_order, make_job_card):
        order = make_order(components=[_manual(canvas.id, "30")])
        job_card = make_job_card(order)
        # Entry written before component ids were tracked
        append_transaction_log(
            material_id=canvas.id,
            transaction_type=TX_CONSUMPTION,
            quantity=-12.0,
            previous_quantity=100.0,
            new_quantity=88.0,
            metadata={"material_name": "Canvas 600D", "unit": "meter", "component_type": "part"},
            reference_id=job_card.id,
            reference_type=REF_JOB_CARD,
        )
        db_session.commit()

        result = job_card_service.reverse_job_card_material_consumption(job_card.id)

        assert result.succeeded[0]["restored"] == 12.0
        assert result.succeeded[0]["degraded"] is False
        assert _quantity(canvas.id) == 112.0

    def test_missing_entry_uses_current_consumption(self, db_session, canvas, make_order, make_job_card, caplog):
        order = make_order(components=[_manual(canvas.id, "30")])
        job_card = make_job_card(order)

        with caplog.at_level("WARNING", logger="fabops"):
            result = job_card_service.reverse_job_card_material_consumption(job_card.id)

        assert result.success
        assert result.degraded_count == 1
        assert result.succeeded[0]["degraded"] is True
        assert _quantity(canvas.id) == 130.0
        assert _entries(canvas.id, TX_JOB_CARD_REVERSAL)[0].meta["degraded"] is True
        assert "No consumption entry" in caplog.text
        assert "current consumption as fallback" in result.summary()

    def test_partial_failure(self, db_session, canvas, webbing, make_order, monkeypatch):
        order = make_order(components=[
            _manual(canvas.id, "30"),
            _manual(webbing.id, "10", component_type="handle"),
        ])
        job_card, _ = job_card_service.create_job_card(order_id=order.id, job_number="JC-1")

        original = inventory_service.adjust_quantity

        def failing_for_webbing(material_id, delta, **kwargs):
            if material_id == webbing.id:
                raise SQLAlchemyError("database is locked")
            return original(material_id, delta, **kwargs)

        monkeypatch.setattr(inventory_service, "adjust_quantity", failing_for_webbing)

        result = job_card_service.reverse_job_card_material_consumption(job_card.id)

        assert result.success is True
        assert result.succeeded_count == 1
        assert result.error_count == 1
        assert "Webbing 25mm" in result.error
        assert _quantity(canvas.id) == 100.0
        assert _quantity(webbing.id) == 40.0

    def test_nothing_to_reverse(self, db_session, make_order, make_job_card):
        job_card = make_job_card(make_order())
        result = job_card_service.reverse_job_card_material_consumption(job_card.id)
        assert result.success
        assert result.summary() == "No materials needed to be restored"

    def test_unknown_job_card(self, db_session):
        with pytest.raises(JobCardNotFoundError):
            job_card_service.reverse_job_card_material_consumption(999)


class TestDeleteJobCard:

    def test_delete_reverses_then_deletes(self, db_session, canvas, make_order):
        order = make_order(components=[_manual(canvas.id, "30")])
        job_card, _ = job_card_service.create_job_card(order_id=order.id, job_number="JC-1")
        job_card_id = job_card.id

        result = job_card_service.delete_job_card(job_card_id)

        assert result.success
        assert db_session.get(JobCard, job_card_id) is None
        assert _quantity(canvas.id) == 100.0
        # Ledger outlives the card
        assert len(_entries(canvas.id, TX_CONSUMPTION)) == 1
        assert len(_entries(canvas.id, TX_JOB_CARD_REVERSAL)) == 1

    def test_card_kept_when_nothing_restored(self, db_session, canvas, make_order, monkeypatch):
        order = make_order(components=[_manual(canvas.id, "30")])
        job_card, _ = job_card_service.create_job_card(order_id=order.id, job_number="JC-1")
        job_card_id = job_card.id

        def always_fail(material_id, delta, **kwargs):
            raise SQLAlchemyError("database is locked")

        monkeypatch.setattr(inventory_service, "adjust_quantity", always_fail)

        with pytest.raises(JobCardReversalError) as exc_info:
            job_card_service.delete_job_card(job_card_id)

        assert exc_info.value.result.success is False
        assert db_session.get(JobCard, job_card_id) is not None

    def test_deletion_check_warns_without_entries(self, db_session, canvas, make_order, make_job_card):
        job_card = make_job_card(make_order(components=[_manual(canvas.id, "30")]))
        check = job_card_service.validate_job_card_deletion(job_card.id)
        assert check["can_delete"] is True
        assert check["warnings"]

    def test_deletion_check_clean(self, db_session, canvas, make_order):
        order = make_order(components=[_manual(canvas.id, "30")])
        job_card, _ = job_card_service.create_job_card(order_id=order.id, job_number="JC-1")
        assert job_card_service.validate_job_card_deletion(job_card.id) == {"can_delete": True, "warnings": []}

    def test_deletion_check_warns_when_component_material_changed(self, db_session, canvas, webbing, make_order):
        order = make_order(components=[_manual(canvas.id, "30", component_type="handle")])
        job_card, _ = job_card_service.create_job_card(order_id=order.id, job_number="JC-1")
        component = db_session.query(OrderComponent).filter_by(order_id=order.id).one()
        component.material_id = webbing.id
        db_session.commit()

        check = job_card_service.validate_job_card_deletion(job_card.id)

        assert check["can_delete"] is True
        assert len(check["warnings"]) == 1
        assert "handle" in check["warnings"][0]
        assert "Canvas 600D" in check["warnings"][0]
