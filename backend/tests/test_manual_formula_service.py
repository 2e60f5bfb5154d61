# Overview: Pytest coverage for manual-formula scaling at order level.

import logging
from types import SimpleNamespace

import pytest

from fabops.services import order_service
from fabops.services.manual_formula_service import (
    get_manual_formula_components,
    get_total_manual_formula_consumption,
    is_manual_formula,
    process_manual_formula_consumption,
    process_order_components,
    validate_manual_formula_processing,
)


def _component(formula="manual", consumption=2.5, is_manual=None, component_type="part"):
    return SimpleNamespace(
        component_type=component_type,
        formula=formula,
        is_manual_consumption=formula == "manual" if is_manual is None else is_manual,
        consumption=consumption,
        original_consumption=None,
    )


class TestManualFormulaProcessing:

    def test_scales_by_order_quantity(self):
        component = _component(consumption=2.5)
        process_order_components([component], 5)
        assert component.consumption == 12.5
        assert component.original_consumption == 2.5

    def test_second_invocation_is_idempotent(self):
        component = _component(consumption=2.5)
        process_order_components([component], 5)
        process_order_components([component], 5)
        assert component.consumption == 12.5
        assert component.original_consumption == 2.5

    def test_quantity_change_rescales_from_original(self):
        component = _component(consumption=2.5)
        process_order_components([component], 5)
        process_order_components([component], 8)
        assert component.consumption == 20.0
        assert component.original_consumption == 2.5

    @pytest.mark.parametrize("order_quantity", [0, -3, None])
    def test_non_positive_quantity_is_noop(self, order_quantity, caplog):
        component = _component(consumption=2.5)
        with caplog.at_level(logging.WARNING, logger="fabops"):
            result = process_order_components([component], order_quantity)
        assert result == [component]
        assert component.consumption == 2.5
        assert component.original_consumption is None
        assert "Invalid order quantity" in caplog.text

    def test_non_manual_untouched(self):
        component = _component(formula="standard", consumption=3.3867)
        process_order_components([component], 5)
        assert component.consumption == 3.3867
        assert component.original_consumption is None

    def test_manual_flag_without_formula(self):
        component = _component(formula="standard", consumption=1.5, is_manual=True)
        assert is_manual_formula(component)
        process_manual_formula_consumption(component, 4)
        assert component.consumption == 6.0

    def test_validation_passes_after_processing(self):
        components = [_component(consumption=2.5), _component(formula="linear", consumption=1.0)]
        process_order_components(components, 5)
        assert validate_manual_formula_processing(components, 5) is True

    def test_validation_mismatch_logged_not_raised(self, caplog):
        component = _component(consumption=2.5)
        process_order_components([component], 5)
        component.consumption = 13.0
        with caplog.at_level(logging.ERROR, logger="fabops"):
            assert validate_manual_formula_processing([component], 5) is False
        assert "Internal assertion failed" in caplog.text

    def test_helpers(self):
        components = [
            _component(consumption=2.0),
            _component(formula="standard", consumption=9.0),
            _component(consumption=0.5, component_type="handle"),
        ]
        process_order_components(components, 4)
        assert len(get_manual_formula_components(components)) == 2
        assert get_total_manual_formula_consumption(components) == pytest.approx(10.0)


class TestSubmitOrder:
    """Order submit applies the post-processor to stored components."""

    def test_submit_scales_manual_components(self, db_session, make_material, make_order):
        canvas = make_material("Canvas")
        zipper = make_material("Zipper")
        order = make_order(quantity=5, components=[
            {"component_type": "part", "length": 40, "width": 20, "roll_width": 60,
             "material_id": canvas.id, "material_rate": 100},
            {"component_type": "chain", "formula": "manual", "manual_value": "2.5",
             "material_id": zipper.id, "material_rate": 10},
        ])
        part_before = order.components[0].consumption

        order = order_service.submit_order(order.id)

        part, chain = order.components
        assert order.status == "submitted"
        assert part.consumption == part_before
        assert chain.consumption == 12.5
        assert chain.original_consumption == 2.5
        assert chain.component_cost == pytest.approx(125.0)

    def test_resubmit_with_new_quantity(self, db_session, make_material, make_order):
        zipper = make_material("Zipper")
        order = make_order(quantity=5, components=[
            {"component_type": "chain", "formula": "manual", "manual_value": "2.5", "material_id": zipper.id},
        ])
        order_service.submit_order(order.id)
        order = order_service.submit_order(order.id, quantity=10)

        assert order.quantity == 10
        assert order.components[0].consumption == 25.0
        assert order.components[0].original_consumption == 2.5

    def test_new_quantity_rescales_every_component(self, db_session, make_material, make_order):
        canvas = make_material("Canvas")
        zipper = make_material("Zipper")
        order = make_order(quantity=10, components=[
            {"component_type": "part", "length": 39.37, "width": 10, "roll_width": 10,
             "material_id": canvas.id, "material_rate": 2},
            {"component_type": "piping", "length": 39.37, "quantity": 3, "material_id": canvas.id},
            {"component_type": "chain", "formula": "manual", "manual_value": "1", "material_id": zipper.id},
        ])
        assert order.components[0].consumption == pytest.approx(10.0)

        order = order_service.submit_order(order.id, quantity=60)

        part, piping, chain = order.components
        assert part.quantity == 60
        assert part.consumption == pytest.approx(60.0)
        assert part.component_cost == pytest.approx(120.0)
        # Explicit component quantity is kept
        assert piping.quantity == 3
        assert piping.consumption == pytest.approx(3.0)
        assert chain.consumption == pytest.approx(60.0)
        assert chain.original_consumption == 1.0
        assert validate_manual_formula_processing(order.components, 60)

    def test_submit_unknown_order(self, db_session):
        with pytest.raises(order_service.OrderNotFoundError):
            order_service.submit_order(9999)
