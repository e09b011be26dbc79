from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional, Tuple
from uuid import uuid4

from torkalk.core.units import to_decimal

from ..domain.models import (
    Areas,
    GateConfiguration,
    PricingResult,
    SelectedProduct,
    WizardStage,
)
from ..explain.summary import ProductSummary, build_summary, compose_notes, strip_summary
from .areas import compute_areas
from .errors import (
    CatalogLookupFailed,
    EmptyProductSelection,
    GateError,
    IncompleteConfiguration,
    InvalidRecord,
    Outcome,
)
from .pricing import PricingEngine, check_markup, check_quantity, check_unit_price

D = Decimal


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GateConfigState:
    """
    In-progress configuration of one gate across the wizard steps.

    Stages: EMPTY -> DIMENSIONS_ENTERED -> PRODUCTS_SELECTED -> PRICING_COMPUTED -> SAVED.
    Every dimension/product/markup mutation marks pricing stale and recomputes
    synchronously. Operations return an Outcome; a failed validation leaves
    the state untouched.
    """

    def __init__(
        self,
        customer_id: str,
        order_id: Optional[str] = None,
        *,
        catalog,
        vat_rate,
        markup_max_percent: Optional[D] = None,
        gate_id: Optional[str] = None,
        gate_type: Optional[str] = None,
        created_at: Optional[datetime] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.id: str = gate_id or uuid4().hex
        self.customer_id = str(customer_id)
        self.order_id = order_id
        self.catalog = catalog
        self.clock = clock
        self.engine = PricingEngine(catalog, D(str(vat_rate)), markup_max_percent)

        self.name = ""
        self.gate_type = str(gate_type or "")
        self.notes = ""
        self.quantity = 1

        self.width_cm = D("0")
        self.height_cm = D("0")
        self.glass_height_cm = D("0")
        self.areas = Areas()
        self._dimensions_entered = False

        self._products: List[SelectedProduct] = []
        self.markup_percent = D("0")
        self.pricing = PricingResult(vat_rate=self.engine.vat_rate)
        self.pricing_stale = False
        self.pricing_error: Optional[GateError] = None

        self.revision = 0
        self.stage = WizardStage.EMPTY
        self.persisted = False
        self.created_at = created_at or clock()
        self.updated_at: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def selected_products(self) -> Tuple[SelectedProduct, ...]:
        return tuple(self._products)

    @property
    def dimensions_entered(self) -> bool:
        return self._dimensions_entered

    def product_summary(self) -> ProductSummary:
        return build_summary(self.areas, self.pricing)

    def _check_index(self, index: int) -> int:
        # negative Indizes nicht von hinten zaehlen
        if index < 0 or index >= len(self._products):
            raise IndexError(f"product index out of range: {index}")
        return index

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def set_gate_type(self, gate_type: str) -> Outcome[PricingResult]:
        gate_type = str(gate_type or "")
        if self._dimensions_entered:
            # Flaechenregel haengt am Tortyp
            return self.set_dimensions(
                self.width_cm, self.height_cm, self.glass_height_cm, gate_type
            )
        self.gate_type = gate_type
        self.revision += 1
        return Outcome.success(self.pricing)

    def set_dimensions(
        self, width_cm, height_cm, glass_height_cm=0, gate_type: Optional[str] = None
    ) -> Outcome[PricingResult]:
        gate_type = self.gate_type if gate_type is None else str(gate_type)
        try:
            areas = compute_areas(
                width_cm,
                height_cm,
                glass_height_cm,
                gate_type,
                self.catalog.area_override_for(gate_type),
            )
        except GateError as e:
            return Outcome.failure(e)

        self.width_cm = to_decimal(width_cm)
        self.height_cm = to_decimal(height_cm)
        self.glass_height_cm = to_decimal(glass_height_cm)
        self.gate_type = gate_type
        self.areas = areas
        self._dimensions_entered = True
        return self._recompute()

    def add_product(
        self,
        catalog_ref: str,
        quantity: int = 1,
        sides: Optional[int] = None,
        unit_price_override=None,
    ) -> Outcome[PricingResult]:
        ref = str(catalog_ref)
        try:
            if not self._dimensions_entered:
                raise IncompleteConfiguration(
                    "Bitte zuerst die Abmessungen eingeben", {"field": "breite"}
                )
            qty = check_quantity(quantity)
            if sides is not None:
                sides = check_quantity(sides)
            price = check_unit_price(unit_price_override)
            if price is None:
                self.catalog.get(ref)
        except GateError as e:
            return Outcome.failure(e)

        # Ein Produkt je Referenz: erneutes Hinzufuegen erhoeht die Menge
        for i, p in enumerate(self._products):
            if p.catalog_ref == ref:
                self._products[i] = replace(
                    p,
                    quantity=p.quantity + qty,
                    sides=sides if sides is not None else p.sides,
                    unit_price_override=price if price is not None else p.unit_price_override,
                )
                return self._recompute()

        self._products.append(
            SelectedProduct(
                catalog_ref=ref, quantity=qty, sides=sides, unit_price_override=price
            )
        )
        return self._recompute()

    def remove_product(self, index: int) -> Outcome[PricingResult]:
        del self._products[self._check_index(index)]
        return self._recompute()

    def set_quantity(self, index: int, quantity: int) -> Outcome[PricingResult]:
        self._check_index(index)
        try:
            qty = check_quantity(quantity)
        except GateError as e:
            return Outcome.failure(e)
        self._products[index] = replace(self._products[index], quantity=qty)
        return self._recompute()

    def set_unit_price_override(self, index: int, price) -> Outcome[PricingResult]:
        product = self._products[self._check_index(index)]
        try:
            p = check_unit_price(price)
            if p is None:
                # zurueck auf Listenpreis: Produkt muss im Katalog stehen
                self.catalog.get(product.catalog_ref)
        except GateError as e:
            return Outcome.failure(e)
        self._products[index] = replace(product, unit_price_override=p)
        return self._recompute()

    def set_markup(self, percent) -> Outcome[PricingResult]:
        try:
            pct = check_markup(percent, self.engine.markup_max_percent)
        except GateError as e:
            return Outcome.failure(e)
        self.markup_percent = pct
        return self._recompute()

    def set_details(
        self, *, name: Optional[str] = None, notes: Optional[str] = None
    ) -> Outcome[None]:
        if name is not None:
            self.name = str(name).strip()
        if notes is not None:
            self.notes = strip_summary(str(notes))
        self.revision += 1
        return Outcome.success()

    def set_gate_quantity(self, quantity: int) -> Outcome[None]:
        try:
            self.quantity = check_quantity(quantity)
        except GateError as e:
            return Outcome.failure(e)
        self.revision += 1
        return Outcome.success()

    def finalize(self) -> Outcome[GateConfiguration]:
        """Immutable snapshot for persistence; requires >= PRODUCTS_SELECTED."""
        if self.stage < WizardStage.DIMENSIONS_ENTERED:
            return Outcome.failure(
                IncompleteConfiguration("Abmessungen fehlen", {"field": "breite"})
            )
        if self.stage < WizardStage.PRODUCTS_SELECTED or not self._products:
            return Outcome.failure(
                EmptyProductSelection("Mindestens ein Produkt auswaehlen")
            )
        try:
            pricing = self.engine.compute(
                self.areas, self._products, self.markup_percent, require_products=True
            )
        except GateError as e:
            return Outcome.failure(e)

        self.pricing = pricing
        self.pricing_stale = False
        self.pricing_error = None
        if self.stage < WizardStage.PRICING_COMPUTED:
            self.stage = WizardStage.PRICING_COMPUTED

        now = self.clock()
        return Outcome.success(
            GateConfiguration(
                id=self.id,
                customer_id=self.customer_id,
                order_id=self.order_id,
                name=self.name,
                gate_type=self.gate_type,
                width_cm=self.width_cm,
                height_cm=self.height_cm,
                glass_height_cm=self.glass_height_cm,
                areas=self.areas,
                selected_products=tuple(self._products),
                markup_percent=self.markup_percent,
                pricing=pricing,
                notes=compose_notes(self.notes, build_summary(self.areas, pricing)),
                quantity=self.quantity,
                created_at=self.created_at,
                updated_at=now,
            )
        )

    def mark_saved(self, revision: Optional[int] = None) -> bool:
        """
        Only after storage confirmed the write. `revision` is the value of
        `self.revision` when the save started; if the gate was edited since,
        the stored row exists but no longer matches, so the stage stays put.
        """
        self.persisted = True
        self.updated_at = self.clock()
        if revision is not None and revision != self.revision:
            return False
        self.stage = WizardStage.SAVED
        return True

    def mark_save_failed(self) -> None:
        # Nutzer muss erneut speichern; kein automatischer Retry
        if self._products and self.pricing_error is None:
            self.stage = WizardStage.PRICING_COMPUTED

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _recompute(self) -> Outcome[PricingResult]:
        self.revision += 1
        if not self._products:
            self.pricing = PricingResult(
                markup_percent=self.markup_percent, vat_rate=self.engine.vat_rate
            )
            self.pricing_stale = False
            self.pricing_error = None
            self.stage = (
                WizardStage.DIMENSIONS_ENTERED
                if self._dimensions_entered
                else WizardStage.EMPTY
            )
            return Outcome.success(self.pricing)

        self.stage = WizardStage.PRODUCTS_SELECTED
        self.pricing_stale = True
        try:
            self.pricing = self.engine.compute(
                self.areas, self._products, self.markup_percent
            )
        except CatalogLookupFailed as e:
            # Auswahl bleibt erhalten, finalize() ist blockiert
            self.pricing_error = e
            return Outcome.failure(e)

        self.pricing_stale = False
        self.pricing_error = None
        self.stage = WizardStage.PRICING_COMPUTED
        return Outcome.success(self.pricing)

    # ------------------------------------------------------------------
    # Rebuild from storage
    # ------------------------------------------------------------------

    @classmethod
    def from_configuration(
        cls,
        config: GateConfiguration,
        *,
        catalog,
        vat_rate,
        markup_max_percent: Optional[D] = None,
        persisted: bool = True,
        clock: Callable[[], datetime] = _utcnow,
    ) -> "GateConfigState":
        """
        Editable state from a stored configuration. Areas and pricing are
        re-derived from dimensions, products and markup; a product missing
        from the catalog leaves pricing stale instead of failing the load.
        """
        state = cls(
            config.customer_id,
            config.order_id,
            catalog=catalog,
            vat_rate=vat_rate,
            markup_max_percent=markup_max_percent,
            gate_id=config.id,
            gate_type=config.gate_type,
            created_at=config.created_at,
            clock=clock,
        )
        state.name = config.name
        state.notes = strip_summary(config.notes)
        state.quantity = max(int(config.quantity or 1), 1)
        state.updated_at = config.updated_at

        out = state.set_dimensions(
            config.width_cm, config.height_cm, config.glass_height_cm, config.gate_type
        )
        if not out.ok:
            raise InvalidRecord(
                f"Gespeicherte Abmessungen ungueltig: {out.error.message}",
                {"gate_id": config.id},
            )

        # Markup ohne Obergrenze uebernehmen: gespeicherte Daten sind Bestand
        try:
            state.markup_percent = check_markup(config.markup_percent)
        except GateError as e:
            raise InvalidRecord(e.message, {"gate_id": config.id}) from e

        state._products = list(config.selected_products)
        state._recompute()

        if persisted:
            state.persisted = True
            if state.stage == WizardStage.PRICING_COMPUTED:
                state.stage = WizardStage.SAVED
        return state
