from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

D = Decimal


class GateType(str, Enum):
    """Known gate types from the type-select step. Free text is accepted as well."""

    SEKTIONALTOR = "sektionaltor"
    ROLLTOR = "rolltor"
    SCHIEBETOR = "schiebetor"
    DREHTOR = "drehtor"
    TUER = "tuer"
    SONSTIGES = "sonstiges"


class WizardStage(int, Enum):
    # Reihenfolge ist relevant: finalize() verlangt >= PRODUCTS_SELECTED
    EMPTY = 0
    DIMENSIONS_ENTERED = 1
    PRODUCTS_SELECTED = 2
    PRICING_COMPUTED = 3
    SAVED = 4


@dataclass(frozen=True)
class Areas:
    total_area_m2: D = D("0")
    glass_area_m2: D = D("0")
    gate_area_m2: D = D("0")


@dataclass(frozen=True)
class SelectedProduct:
    catalog_ref: str
    quantity: int = 1
    sides: Optional[int] = None
    unit_price_override: Optional[D] = None


@dataclass(frozen=True)
class PricingLine:
    catalog_ref: str
    name: str
    quantity: int
    unit_price: D
    line_total: D
    custom_price: bool = False


@dataclass(frozen=True)
class PricingResult:
    """
    Unrounded subtotal/net (two-decimal rounding happens at display/persist time);
    markup_amount and gross_total are already rounded.
    """

    subtotal: D = D("0")
    markup_percent: D = D("0")
    markup_amount: D = D("0.00")
    net_total: D = D("0")
    vat_rate: D = D("0")
    gross_total: D = D("0.00")
    lines: Tuple[PricingLine, ...] = ()


@dataclass(frozen=True)
class GateConfiguration:
    """Immutable snapshot of a finished configuration, ready for persistence."""

    id: str
    customer_id: str
    order_id: Optional[str]
    name: str
    gate_type: str
    width_cm: D
    height_cm: D
    glass_height_cm: D
    areas: Areas
    selected_products: Tuple[SelectedProduct, ...]
    markup_percent: D
    pricing: PricingResult
    notes: str = ""
    quantity: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def total_area_m2(self) -> D:
        return self.areas.total_area_m2

    @property
    def glass_area_m2(self) -> D:
        return self.areas.glass_area_m2

    @property
    def gate_area_m2(self) -> D:
        return self.areas.gate_area_m2
