from __future__ import annotations

import json
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from torkalk.core.money import qmoney
from torkalk.core.units import CM2_PER_M2, to_decimal

from ..domain.models import Areas, GateConfiguration, PricingResult, SelectedProduct
from ..engine.errors import InvalidRecord

D = Decimal
AREA = D("0.0001")

_NUMERIC_FIELDS = (
    "breite",
    "hoehe",
    "glashoehe",
    "glasflaeche",
    "aufschlag",
    "subtotal",
    "aufschlag_betrag",
    "exklusive_mwst",
    "inkl_mwst",
)


def _lenient_decimal(v: Any) -> Optional[D]:
    """parseFloat-like: None/''/garbage -> None."""
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, str) and not v.strip():
        return None
    d = to_decimal(v)
    if d is None or not d.is_finite():
        return None
    return d


def _json_text(v: Any, empty: str) -> str:
    if v is None:
        return empty
    if not isinstance(v, str):
        return json.dumps(v)
    if not v.strip():
        return empty
    try:
        parsed = json.loads(v)
    except json.JSONDecodeError:
        return empty
    return v if parsed is not None else empty


class GateRecord(BaseModel):
    """
    Persisted shape of a gate (table `gates`). Field names are the wire
    contract: dimensions in cm, areas in m², product selection as JSON text.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True, from_attributes=True)

    id: str
    customer_id: str
    order_id: Optional[str] = None
    name: str = ""
    gate_type: str = ""

    breite: D = Field(D("0"), validation_alias=AliasChoices("breite", "width"))
    hoehe: D = Field(D("0"), validation_alias=AliasChoices("hoehe", "height"))
    glashoehe: D = D("0")

    gesamtflaeche: Optional[D] = None
    glasflaeche: D = D("0")
    torflaeche: Optional[D] = None

    selected_products: str = "[]"
    product_quantities: str = "{}"
    custom_prices: str = "{}"

    aufschlag: D = D("0")
    subtotal: D = D("0")
    aufschlag_betrag: D = D("0")
    exklusive_mwst: D = D("0")
    inkl_mwst: D = D("0")

    quantity: int = 1
    notizen: str = ""

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator(*_NUMERIC_FIELDS, mode="before")
    @classmethod
    def _numeric_or_zero(cls, v: Any) -> D:
        d = _lenient_decimal(v)
        return d if d is not None else D("0")

    @field_validator("gesamtflaeche", "torflaeche", mode="before")
    @classmethod
    def _optional_area(cls, v: Any) -> Optional[D]:
        return _lenient_decimal(v)

    @field_validator("selected_products", mode="before")
    @classmethod
    def _products_text(cls, v: Any) -> str:
        return _json_text(v, "[]")

    @field_validator("product_quantities", "custom_prices", mode="before")
    @classmethod
    def _map_text(cls, v: Any) -> str:
        return _json_text(v, "{}")

    @field_validator("quantity", mode="before")
    @classmethod
    def _quantity_default_one(cls, v: Any) -> int:
        d = _lenient_decimal(v)
        if d is None or d < 1:
            return 1
        return int(d)

    @field_validator("name", "gate_type", "notizen", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @model_validator(mode="after")
    def _derive_missing_areas(self) -> "GateRecord":
        if self.gesamtflaeche is None:
            self.gesamtflaeche = self.breite * self.hoehe / CM2_PER_M2
        if self.torflaeche is None:
            self.torflaeche = max(self.gesamtflaeche - self.glasflaeche, D("0"))
        return self

    # never None, even for legacy rows
    def products(self) -> List[Any]:
        parsed = json.loads(self.selected_products)
        return parsed if isinstance(parsed, list) else []

    def quantities(self) -> Dict[str, Any]:
        parsed = json.loads(self.product_quantities)
        return parsed if isinstance(parsed, dict) else {}

    def prices(self) -> Dict[str, Any]:
        parsed = json.loads(self.custom_prices)
        return parsed if isinstance(parsed, dict) else {}


class CustomerRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", from_attributes=True)

    id: str
    name: str
    company: str = ""
    address: str = ""
    city: str = ""
    phone: str = ""
    email: str = ""
    gates: List[GateRecord] = Field(default_factory=list)

    @field_validator("company", "address", "city", "phone", "email", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return "" if v is None else str(v)


# ----------------------------------------------------------------------
# Serialization boundary: GateConfiguration <-> GateRecord
# ----------------------------------------------------------------------


def _qarea(x: D) -> D:
    return x.quantize(AREA, rounding=ROUND_HALF_UP)


def to_record(config: GateConfiguration) -> GateRecord:
    products = config.selected_products
    return GateRecord(
        id=config.id,
        customer_id=config.customer_id,
        order_id=config.order_id,
        name=config.name,
        gate_type=config.gate_type,
        breite=config.width_cm,
        hoehe=config.height_cm,
        glashoehe=config.glass_height_cm,
        gesamtflaeche=_qarea(config.total_area_m2),
        glasflaeche=_qarea(config.glass_area_m2),
        torflaeche=_qarea(config.gate_area_m2),
        selected_products=json.dumps(
            [{"ref": p.catalog_ref, "sides": p.sides} for p in products]
        ),
        product_quantities=json.dumps({p.catalog_ref: p.quantity for p in products}),
        custom_prices=json.dumps(
            {
                p.catalog_ref: str(p.unit_price_override)
                for p in products
                if p.unit_price_override is not None
            }
        ),
        aufschlag=config.markup_percent,
        subtotal=qmoney(config.pricing.subtotal),
        aufschlag_betrag=qmoney(config.pricing.markup_amount),
        exklusive_mwst=qmoney(config.pricing.net_total),
        inkl_mwst=qmoney(config.pricing.gross_total),
        quantity=config.quantity,
        notizen=config.notes,
        created_at=config.created_at,
        updated_at=config.updated_at,
    )


def _selected_from_record(record: GateRecord) -> List[SelectedProduct]:
    quantities = record.quantities()
    prices = record.prices()
    out: List[SelectedProduct] = []
    for entry in record.products():
        if isinstance(entry, str):
            ref, sides = entry, None
        elif isinstance(entry, dict) and (entry.get("ref") or entry.get("id")):
            ref, sides = str(entry.get("ref") or entry.get("id")), entry.get("sides")
        else:
            raise InvalidRecord(
                f"Unbekannter Produkteintrag: {entry!r}", {"gate_id": record.id}
            )

        qty = _lenient_decimal(quantities.get(ref))
        qty = int(qty) if qty is not None and qty >= 1 else 1

        price = _lenient_decimal(prices.get(ref))
        if price is not None and price < 0:
            raise InvalidRecord(
                f"Negativer Sonderpreis fuer {ref}", {"gate_id": record.id, "ref": ref}
            )

        side_count = _lenient_decimal(sides)
        out.append(
            SelectedProduct(
                catalog_ref=ref,
                quantity=qty,
                sides=int(side_count) if side_count is not None and side_count >= 1 else None,
                unit_price_override=price,
            )
        )
    return out


def from_record(record: GateRecord, vat_rate: Optional[D] = None) -> GateConfiguration:
    """Inverse of to_record. Areas and totals are taken as stored."""
    pricing = PricingResult(
        subtotal=record.subtotal,
        markup_percent=record.aufschlag,
        markup_amount=record.aufschlag_betrag,
        net_total=record.exklusive_mwst,
        vat_rate=vat_rate if vat_rate is not None else D("0"),
        gross_total=record.inkl_mwst,
    )
    return GateConfiguration(
        id=record.id,
        customer_id=record.customer_id,
        order_id=record.order_id,
        name=record.name,
        gate_type=record.gate_type,
        width_cm=record.breite,
        height_cm=record.hoehe,
        glass_height_cm=record.glashoehe,
        areas=Areas(
            total_area_m2=record.gesamtflaeche,
            glass_area_m2=record.glasflaeche,
            gate_area_m2=record.torflaeche,
        ),
        selected_products=tuple(_selected_from_record(record)),
        markup_percent=record.aufschlag,
        pricing=pricing,
        notes=record.notizen,
        quantity=record.quantity,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )
