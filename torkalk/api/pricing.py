from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field, PositiveInt, constr

from torkalk.config import get_settings
from torkalk.core.money import qmoney
from torkalk.core.units import cm_to_m, m_to_cm
from torkalk.gates.catalog import YamlCatalog, load_catalog
from torkalk.gates.engine.gate_state import GateConfigState

router = APIRouter(prefix="/api/v1", tags=["pricing"])


# ----------------------------
# Schemas
# ----------------------------
class ProductSelectionV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ref: constr(strip_whitespace=True, min_length=1)  # type: ignore
    quantity: PositiveInt = 1
    sides: Optional[PositiveInt] = None
    unit_price: Optional[Decimal] = Field(None, description="Individueller Stueckpreis")


class PricingPreviewInputV1(BaseModel):
    """Dimensions in meters, as entered in the UI."""

    model_config = ConfigDict(extra="forbid")

    width_m: Decimal
    height_m: Decimal
    glass_height_m: Decimal = Decimal("0")
    gate_type: Optional[str] = None
    products: List[ProductSelectionV1] = Field(default_factory=list)
    markup_percent: Decimal = Decimal("0")


class DimensionsV1(BaseModel):
    width_m: Decimal
    height_m: Decimal
    glass_height_m: Decimal


class AreasV1(BaseModel):
    total_area_m2: Decimal
    glass_area_m2: Decimal
    gate_area_m2: Decimal


class PricingLineV1(BaseModel):
    ref: str
    name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal


class PricingPreviewOutputV1(BaseModel):
    dimensions: DimensionsV1
    areas: AreasV1
    lines: List[PricingLineV1]
    subtotal: Decimal
    markup_amount: Decimal
    net_total: Decimal
    gross_total: Decimal
    summary: List[str]


class CatalogItemV1(BaseModel):
    ref: str
    name: str
    unit_price: Decimal
    basis: str
    unit: str


# ----------------------------
# Dependencies
# ----------------------------
@lru_cache(maxsize=1)
def get_catalog() -> YamlCatalog:
    return load_catalog(get_settings().catalog_path)


# ----------------------------
# Endpoints
# ----------------------------
@router.get("/catalog", response_model=List[CatalogItemV1])
def list_catalog(catalog: YamlCatalog = Depends(get_catalog)):
    return [
        CatalogItemV1(
            ref=i.ref, name=i.name, unit_price=i.unit_price, basis=i.basis, unit=i.unit
        )
        for i in catalog.items()
    ]


@router.post("/pricing/preview", response_model=PricingPreviewOutputV1)
def pricing_preview(
    payload: PricingPreviewInputV1, catalog: YamlCatalog = Depends(get_catalog)
):
    """Interactive recomputation: an empty selection yields zero totals."""
    s = get_settings()
    state = GateConfigState(
        "preview",
        catalog=catalog,
        vat_rate=s.vat_rate,
        markup_max_percent=s.markup_max_percent,
        gate_type=payload.gate_type,
    )

    # GateError aus unwrap() wird in main.py auf 422 abgebildet
    state.set_dimensions(
        m_to_cm(payload.width_m),
        m_to_cm(payload.height_m),
        m_to_cm(payload.glass_height_m),
    ).unwrap()
    state.set_markup(payload.markup_percent).unwrap()
    for p in payload.products:
        state.add_product(
            p.ref, p.quantity, p.sides, unit_price_override=p.unit_price
        ).unwrap()

    pricing = state.pricing
    return PricingPreviewOutputV1(
        dimensions=DimensionsV1(
            width_m=cm_to_m(state.width_cm),
            height_m=cm_to_m(state.height_cm),
            glass_height_m=cm_to_m(state.glass_height_cm),
        ),
        areas=AreasV1(
            total_area_m2=state.areas.total_area_m2,
            glass_area_m2=state.areas.glass_area_m2,
            gate_area_m2=state.areas.gate_area_m2,
        ),
        lines=[
            PricingLineV1(
                ref=l.catalog_ref,
                name=l.name,
                quantity=l.quantity,
                unit_price=qmoney(l.unit_price),
                line_total=qmoney(l.line_total),
            )
            for l in pricing.lines
        ],
        subtotal=qmoney(pricing.subtotal),
        markup_amount=pricing.markup_amount,
        net_total=qmoney(pricing.net_total),
        gross_total=pricing.gross_total,
        summary=list(state.product_summary()) if pricing.lines else [],
    )
