from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from torkalk.gates.catalog.catalog import CatalogItem, YamlCatalog
from torkalk.gates.engine.gate_state import GateConfigState
from torkalk.gates.storage.records import CustomerRecord

D = Decimal


@pytest.fixture
def anyio_backend():
    # nur asyncio, kein Trio
    return "asyncio"


@pytest.fixture
def fixed_now():
    return datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def catalog():
    return YamlCatalog(
        [
            CatalogItem(ref="A", name="Antrieb", unit_price=D("100")),
            CatalogItem(ref="B", name="Handsender", unit_price=D("50")),
            CatalogItem(ref="TB", name="Torblatt", unit_price=D("145.00"), basis="m2_gate", unit="m2"),
            CatalogItem(ref="VG", name="Verglasung", unit_price=D("210.00"), basis="m2_glass", unit="m2"),
            CatalogItem(ref="BE", name="Beschichtung", unit_price=D("18.50"), basis="m2_total", unit="m2"),
        ],
        version="test",
    )


@pytest.fixture
def make_state(catalog, fixed_now):
    def _make(**kwargs) -> GateConfigState:
        kwargs.setdefault("catalog", catalog)
        kwargs.setdefault("vat_rate", D("0.19"))
        kwargs.setdefault("clock", lambda: fixed_now)
        customer_id = kwargs.pop("customer_id", "c1")
        order_id = kwargs.pop("order_id", "o1")
        return GateConfigState(customer_id, order_id, **kwargs)

    return _make


@pytest.fixture
def priced_state(make_state):
    """200 x 250 cm, 50 cm glass, 2x A + 1x B, 10% markup."""
    state = make_state(gate_type="sektionaltor")
    state.set_dimensions(200, 250, 50)
    state.add_product("A", 2)
    state.add_product("B", 1)
    state.set_markup(10)
    return state


@pytest.fixture
def customers():
    return [
        CustomerRecord(id="c1", name="Muster GmbH", city="Ulm"),
        CustomerRecord(id="c2", name="Beispiel KG"),
    ]
