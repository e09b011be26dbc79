from dataclasses import replace
from decimal import Decimal

import pytest

from torkalk.gates.domain.models import WizardStage
from torkalk.gates.engine.errors import (
    CatalogLookupFailed,
    EmptyProductSelection,
    IncompleteConfiguration,
    InvalidDimension,
    InvalidMarkup,
    InvalidPrice,
    InvalidQuantity,
    InvalidRecord,
)
from torkalk.gates.engine.gate_state import GateConfigState
from torkalk.gates.explain.summary import SUMMARY_HEADER

D = Decimal


def test_new_state_is_empty(make_state):
    state = make_state()
    assert state.stage == WizardStage.EMPTY
    assert state.selected_products == ()
    assert state.pricing.gross_total == 0
    assert len(state.id) == 32


def test_happy_path_reaches_pricing_computed(priced_state):
    assert priced_state.stage == WizardStage.PRICING_COMPUTED
    assert priced_state.areas.total_area_m2 == D("5")
    assert priced_state.pricing.subtotal == D("250")
    assert priced_state.pricing.gross_total == D("327.25")
    assert priced_state.pricing_stale is False


def test_dimensions_move_empty_to_dimensions_entered(make_state):
    state = make_state()
    out = state.set_dimensions(200, 250, 50)
    assert out.ok
    assert state.stage == WizardStage.DIMENSIONS_ENTERED
    assert state.areas.gate_area_m2 == D("4")


def test_invalid_dimensions_leave_state_untouched(priced_state):
    before = (priced_state.areas, priced_state.pricing, priced_state.stage)

    out = priced_state.set_dimensions(200, 250, 300)

    assert not out.ok
    assert isinstance(out.error, InvalidDimension)
    assert (priced_state.areas, priced_state.pricing, priced_state.stage) == before


def test_add_product_before_dimensions_is_incomplete(make_state):
    out = make_state().add_product("A")
    assert isinstance(out.error, IncompleteConfiguration)


@pytest.mark.parametrize("qty", [0, -1, 1.5, True, "2"])
def test_invalid_quantity_rejected(make_state, qty):
    state = make_state()
    state.set_dimensions(100, 100)
    out = state.add_product("A", qty)
    assert isinstance(out.error, InvalidQuantity)
    assert state.selected_products == ()


def test_unknown_product_is_rejected_on_add(make_state):
    state = make_state()
    state.set_dimensions(100, 100)
    out = state.add_product("NOPE")
    assert isinstance(out.error, CatalogLookupFailed)
    assert state.stage == WizardStage.DIMENSIONS_ENTERED


def test_adding_same_ref_merges_quantities(priced_state):
    priced_state.add_product("A", 3)
    refs = [p.catalog_ref for p in priced_state.selected_products]
    assert refs == ["A", "B"]
    assert priced_state.selected_products[0].quantity == 5
    assert priced_state.pricing.subtotal == D("550")


def test_dimension_change_reprices_area_products(make_state):
    state = make_state()
    state.set_dimensions(200, 250, 50)
    state.add_product("TB")
    assert state.pricing.subtotal == D("580")

    state.set_dimensions(200, 250, 0)

    assert state.pricing.subtotal == D("725")
    assert state.stage == WizardStage.PRICING_COMPUTED


def test_set_quantity_and_remove(priced_state):
    assert priced_state.set_quantity(1, 4).ok
    assert priced_state.pricing.subtotal == D("400")

    priced_state.remove_product(0)
    assert priced_state.pricing.subtotal == D("200")

    priced_state.remove_product(0)
    assert priced_state.stage == WizardStage.DIMENSIONS_ENTERED
    assert priced_state.pricing.subtotal == 0


def test_index_out_of_range(priced_state):
    with pytest.raises(IndexError):
        priced_state.remove_product(5)
    with pytest.raises(IndexError):
        priced_state.set_quantity(5, 1)


def test_unit_price_override_and_reset(priced_state):
    assert priced_state.set_unit_price_override(0, "75").ok
    assert priced_state.pricing.subtotal == D("200")

    out = priced_state.set_unit_price_override(0, -5)
    assert isinstance(out.error, InvalidPrice)
    assert priced_state.pricing.subtotal == D("200")

    assert priced_state.set_unit_price_override(0, None).ok
    assert priced_state.pricing.subtotal == D("250")


@pytest.mark.parametrize("markup", [-1, "abc", float("inf"), True])
def test_invalid_markup_leaves_pricing(priced_state, markup):
    out = priced_state.set_markup(markup)
    assert isinstance(out.error, InvalidMarkup)
    assert priced_state.markup_percent == D("10")
    assert priced_state.pricing.markup_amount == D("25.00")


def test_markup_max_from_settings(make_state):
    state = make_state(markup_max_percent=D("30"))
    assert isinstance(state.set_markup(31).error, InvalidMarkup)
    assert state.set_markup(30).ok


def test_finalize_without_products_fails(make_state):
    state = make_state()
    state.set_dimensions(200, 250, 50)

    out = state.finalize()

    assert not out.ok
    assert isinstance(out.error, IncompleteConfiguration)
    assert isinstance(out.error, EmptyProductSelection)


def test_finalize_without_dimensions_fails(make_state):
    out = make_state().finalize()
    assert isinstance(out.error, IncompleteConfiguration)
    assert not isinstance(out.error, EmptyProductSelection)


def test_finalize_snapshot(priced_state, fixed_now):
    priced_state.set_details(name="Halle 3", notes="Zufahrt ueber Hof")
    priced_state.set_gate_quantity(2)

    config = priced_state.finalize().unwrap()

    assert config.id == priced_state.id
    assert config.customer_id == "c1"
    assert config.order_id == "o1"
    assert config.name == "Halle 3"
    assert config.quantity == 2
    assert config.gate_type == "sektionaltor"
    assert config.pricing.gross_total == D("327.25")
    assert config.updated_at == fixed_now
    assert config.notes.startswith("Zufahrt ueber Hof\n\n" + SUMMARY_HEADER)
    # Stueckzahl des Tores beeinflusst den Preis nicht
    assert config.pricing.subtotal == D("250")


def test_finalize_twice_keeps_one_summary_block(priced_state):
    first = priced_state.finalize().unwrap()
    priced_state.set_details(notes=first.notes)

    second = priced_state.finalize().unwrap()

    assert second.notes.count(SUMMARY_HEADER) == 1
    assert second.notes == first.notes


def test_catalog_failure_keeps_selection_and_blocks_finalize(make_state, catalog):
    state = make_state()
    state.set_dimensions(100, 100)
    state.add_product("A")
    state.add_product("B")

    # Katalog aendert sich waehrend der Bearbeitung
    del catalog._items["B"]
    out = state.set_markup(5)

    assert isinstance(out.error, CatalogLookupFailed)
    assert state.stage == WizardStage.PRODUCTS_SELECTED
    assert state.pricing_stale is True
    assert [p.catalog_ref for p in state.selected_products] == ["A", "B"]
    assert isinstance(state.finalize().error, CatalogLookupFailed)

    state.remove_product(1)
    assert state.stage == WizardStage.PRICING_COMPUTED
    assert state.finalize().ok


def test_mark_saved_and_failed(priced_state):
    priced_state.mark_save_failed()
    assert priced_state.stage == WizardStage.PRICING_COMPUTED
    assert not priced_state.persisted

    priced_state.mark_saved()
    assert priced_state.stage == WizardStage.SAVED
    assert priced_state.persisted

    priced_state.set_markup(12)
    assert priced_state.stage == WizardStage.PRICING_COMPUTED


def test_gate_type_change_uses_area_override(make_state, catalog):
    class HalfTotal:
        def total_area_m2(self, width_cm, height_cm):
            return width_cm * height_cm / D("20000")

    catalog.register_area_override("rundbogentor", HalfTotal())
    state = make_state()
    state.set_dimensions(200, 200)
    assert state.areas.total_area_m2 == D("4")

    assert state.set_gate_type("rundbogentor").ok
    assert state.areas.total_area_m2 == D("2")
    assert state.gate_type == "rundbogentor"


def test_from_configuration_rebuilds_saved_state(priced_state, catalog, fixed_now):
    config = priced_state.finalize().unwrap()

    state = GateConfigState.from_configuration(
        config, catalog=catalog, vat_rate=D("0.19"), clock=lambda: fixed_now
    )

    assert state.id == config.id
    assert state.stage == WizardStage.SAVED
    assert state.persisted
    assert state.pricing.gross_total == D("327.25")
    assert SUMMARY_HEADER not in state.notes


def test_from_configuration_with_unlisted_product_loads_stale(priced_state, catalog):
    config = priced_state.finalize().unwrap()
    del catalog._items["A"]

    state = GateConfigState.from_configuration(config, catalog=catalog, vat_rate=D("0.19"))

    assert state.stage == WizardStage.PRODUCTS_SELECTED
    assert isinstance(state.pricing_error, CatalogLookupFailed)


def test_from_configuration_rejects_broken_dimensions(priced_state, catalog):
    config = replace(priced_state.finalize().unwrap(), glass_height_cm=D("999"))
    with pytest.raises(InvalidRecord):
        GateConfigState.from_configuration(config, catalog=catalog, vat_rate=D("0.19"))


@pytest.mark.parametrize("operation,args", [
    ("remove_product", (-1,)),
    ("set_quantity", (-1, 2)),
    ("set_unit_price_override", (-2, D("10"))),
])
def test_negative_index_is_out_of_range(priced_state, operation, args):
    with pytest.raises(IndexError):
        getattr(priced_state, operation)(*args)
    assert [p.catalog_ref for p in priced_state.selected_products] == ["A", "B"]
    assert priced_state.pricing.subtotal == D("250")


def test_every_mutation_bumps_revision(priced_state):
    seen = [priced_state.revision]
    priced_state.set_markup(11)
    seen.append(priced_state.revision)
    priced_state.set_details(name="Tor Sued")
    seen.append(priced_state.revision)
    priced_state.set_gate_quantity(3)
    seen.append(priced_state.revision)
    priced_state.set_gate_type("rolltor")
    seen.append(priced_state.revision)

    assert seen == sorted(set(seen))

    before = priced_state.revision
    assert not priced_state.set_markup(-1).ok
    assert priced_state.revision == before


def test_mark_saved_with_outdated_revision_keeps_stage(priced_state):
    revision = priced_state.revision
    priced_state.set_markup(15)

    assert priced_state.mark_saved(revision) is False
    assert priced_state.stage == WizardStage.PRICING_COMPUTED
    assert priced_state.persisted

    assert priced_state.mark_saved(priced_state.revision) is True
    assert priced_state.stage == WizardStage.SAVED
