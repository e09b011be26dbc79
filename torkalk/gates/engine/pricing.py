from __future__ import annotations

from decimal import Decimal
from typing import Optional, Sequence

from torkalk.core.money import calc_vat, qmoney
from torkalk.core.units import STORED_PLACES, fits_stored_scale, to_decimal

from ..domain.models import Areas, PricingLine, PricingResult, SelectedProduct
from .errors import CatalogLookupFailed, EmptyProductSelection, InvalidMarkup, InvalidPrice, InvalidQuantity

D = Decimal


def check_markup(markup_percent, max_percent: Optional[D] = None) -> D:
    try:
        pct = to_decimal(markup_percent)
    except TypeError:
        pct = None
    if pct is None or not pct.is_finite() or pct < 0:
        raise InvalidMarkup(
            "Aufschlag muss eine Zahl >= 0 sein",
            {"field": "aufschlag", "value": str(markup_percent)},
        )
    if not fits_stored_scale(pct):
        raise InvalidMarkup(
            f"Aufschlag hat mehr als {STORED_PLACES} Nachkommastellen",
            {"field": "aufschlag", "value": str(pct)},
        )
    if max_percent is not None and pct > max_percent:
        raise InvalidMarkup(
            f"Aufschlag darf {max_percent}% nicht ueberschreiten",
            {"field": "aufschlag", "value": str(pct), "max": str(max_percent)},
        )
    return pct


def check_quantity(quantity) -> int:
    # bool ist ein int, aber keine Menge
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidQuantity(
            "Menge muss eine ganze Zahl >= 1 sein",
            {"field": "quantity", "value": str(quantity)},
        )
    return quantity


def check_unit_price(price) -> Optional[D]:
    if price is None:
        return None
    try:
        p = to_decimal(price)
    except TypeError:
        p = None
    if p is None or not p.is_finite() or p < 0:
        raise InvalidPrice(
            "Preis muss eine Zahl >= 0 sein", {"field": "custom_price", "value": str(price)}
        )
    return p


class PricingEngine:
    """
    Subtotal -> markup -> net -> gross for one gate.

    Line totals are summed unrounded; only markup_amount and gross_total are
    rounded (HALF_UP, 2 decimals) so repeated recomputation cannot drift.
    """

    def __init__(self, catalog, vat_rate: D, markup_max_percent: Optional[D] = None):
        self.catalog = catalog
        self.vat_rate = D(str(vat_rate))
        self.markup_max_percent = markup_max_percent

    def resolve_unit_price(self, product: SelectedProduct, areas: Areas) -> D:
        if product.unit_price_override is not None:
            return product.unit_price_override
        # CatalogLookupFailed propagiert: kein stiller Nullpreis
        item = self.catalog.get(product.catalog_ref)
        price = item.price_at(areas)
        if product.sides:
            price = price * product.sides
        return price

    def compute(
        self,
        areas: Areas,
        selected_products: Sequence[SelectedProduct],
        markup_percent,
        *,
        require_products: bool = False,
    ) -> PricingResult:
        pct = check_markup(markup_percent, self.markup_max_percent)

        if not selected_products:
            if require_products:
                raise EmptyProductSelection("Mindestens ein Produkt auswaehlen")
            # Interaktiv: leere Auswahl ist "in Bearbeitung", kein Fehler
            return PricingResult(markup_percent=pct, vat_rate=self.vat_rate)

        lines = []
        subtotal = D("0")
        for product in selected_products:
            unit_price = self.resolve_unit_price(product, areas)
            line_total = unit_price * product.quantity
            subtotal += line_total
            lines.append(
                PricingLine(
                    catalog_ref=product.catalog_ref,
                    name=self._name_for(product),
                    quantity=product.quantity,
                    unit_price=unit_price,
                    line_total=line_total,
                    custom_price=product.unit_price_override is not None,
                )
            )

        markup_amount = qmoney(subtotal * pct / D("100"))
        net_total = subtotal + markup_amount
        gross_total = calc_vat(net_total, self.vat_rate).gross_total

        return PricingResult(
            subtotal=subtotal,
            markup_percent=pct,
            markup_amount=markup_amount,
            net_total=net_total,
            vat_rate=self.vat_rate,
            gross_total=gross_total,
            lines=tuple(lines),
        )

    def _name_for(self, product: SelectedProduct) -> str:
        try:
            return self.catalog.get(product.catalog_ref).name
        except CatalogLookupFailed:
            # Sonderpreis fuer ein nicht (mehr) gelistetes Produkt
            return product.catalog_ref


def compute_pricing(
    areas: Areas,
    selected_products: Sequence[SelectedProduct],
    markup_percent,
    vat_rate,
    catalog,
) -> PricingResult:
    return PricingEngine(catalog, vat_rate).compute(areas, selected_products, markup_percent)
