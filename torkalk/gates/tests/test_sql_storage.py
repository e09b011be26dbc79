from decimal import Decimal

import pytest

from torkalk.gates.state.app_state import AppState
from torkalk.gates.storage.records import from_record, to_record
from torkalk.gates.storage.sql_storage import SqlGateStorage

D = Decimal


@pytest.fixture
def storage(tmp_path):
    s = SqlGateStorage(f"sqlite:///{tmp_path / 'torkalk.db'}")
    s.create_all()
    s.add_customer("u1", "Muster GmbH", id="c1", city="Ulm")
    s.add_customer("u2", "Fremdkunde", id="c9")
    return s


@pytest.mark.anyio
async def test_save_and_load_gate(storage, priced_state):
    record = to_record(priced_state.finalize().unwrap())

    saved = await storage.save_gate("c1", record)

    assert saved is not None
    assert saved.id == record.id
    assert saved.updated_at is not None

    loaded = await storage.load_gate(record.id)
    assert loaded.inkl_mwst == D("327.25")
    assert loaded.gesamtflaeche == D("5.0000")
    assert from_record(loaded).selected_products == priced_state.selected_products


@pytest.mark.anyio
async def test_load_customers_scoped_to_owner(storage, priced_state):
    await storage.save_gate("c1", to_record(priced_state.finalize().unwrap()))

    customers = await storage.load_customers("u1")

    assert [c.id for c in customers] == ["c1"]
    assert customers[0].city == "Ulm"
    assert customers[0].phone == ""
    assert len(customers[0].gates) == 1
    assert await storage.load_customers("nobody") == []


@pytest.mark.anyio
async def test_update_keeps_identity_fields(storage, priced_state):
    config = priced_state.finalize().unwrap()
    await storage.save_gate("c1", to_record(config))

    priced_state.set_markup(20)
    changed = to_record(priced_state.finalize().unwrap()).model_copy(
        update={"customer_id": "c9"}
    )
    assert await storage.update_gate(config.id, changed) is True

    loaded = await storage.load_gate(config.id)
    assert loaded.customer_id == "c1"
    assert loaded.aufschlag == D("20")
    assert loaded.aufschlag_betrag == D("50.00")


@pytest.mark.anyio
async def test_update_and_delete_unknown_gate(storage, priced_state):
    record = to_record(priced_state.finalize().unwrap())
    assert await storage.update_gate("missing", record) is False
    assert await storage.delete_gate("missing") is False
    assert await storage.load_gate("missing") is None


@pytest.mark.anyio
async def test_duplicate_save_reports_none(storage, priced_state):
    record = to_record(priced_state.finalize().unwrap())
    assert await storage.save_gate("c1", record) is not None
    assert await storage.save_gate("c1", record) is None


@pytest.mark.anyio
async def test_delete_gate(storage, priced_state):
    record = to_record(priced_state.finalize().unwrap())
    await storage.save_gate("c1", record)

    assert await storage.delete_gate(record.id) is True
    assert await storage.load_gate(record.id) is None


@pytest.mark.anyio
async def test_reopened_gate_rederives_the_same_totals(storage, catalog):
    app = AppState(storage, catalog, owner_id="u1", vat_rate=D("0.19"))
    await app.init()
    gate = app.start_new_gate("c1", "o1")
    app.edit_gate("set_dimensions", D("237.5"), D("263.25"), D("41.125"))
    app.edit_gate("add_product", "TB")
    app.edit_gate("add_product", "BE", 1, 2)
    app.edit_gate("set_markup", "12.345")
    gross = gate.pricing.gross_total

    saved = (await app.save_current_gate()).unwrap()
    assert saved.inkl_mwst == gross

    reopened = await app.open_gate(gate.id)

    assert reopened is not gate
    assert reopened.markup_percent == D("12.345")
    assert reopened.width_cm == D("237.5")
    assert reopened.glass_height_cm == D("41.125")
    assert reopened.pricing.gross_total == gross
    assert (await storage.load_gate(gate.id)).inkl_mwst == gross
