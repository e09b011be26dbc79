from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, List, Optional, Set, Tuple

from torkalk.logging_config import LoggingContext, clear_context, get_logger, set_context

from ..domain.models import GateConfiguration
from ..engine.errors import (
    CatalogLookupFailed,
    IncompleteConfiguration,
    Outcome,
    PersistenceFailure,
    SaveInProgress,
    StaleSaveDiscarded,
)
from ..engine.gate_state import GateConfigState
from ..storage.base import GateStorage, Notifier
from ..storage.records import CustomerRecord, GateRecord, from_record, to_record

D = Decimal


class View(str, Enum):
    CUSTOMER_SELECT = "customer-select"
    TYPE_SELECT = "type-select"
    GATE_CONFIG = "gate-config"


# Wizard-Operationen, die ueber edit_gate() erreichbar sind
GATE_OPERATIONS = frozenset(
    {
        "set_gate_type",
        "set_dimensions",
        "add_product",
        "remove_product",
        "set_quantity",
        "set_unit_price_override",
        "set_markup",
        "set_details",
        "set_gate_quantity",
    }
)


@dataclass(frozen=True)
class AppSnapshot:
    view: View
    customers: Tuple[CustomerRecord, ...]
    selected_customer_id: Optional[str]
    current_gate_id: Optional[str]
    is_initialized: bool


Subscriber = Callable[[AppSnapshot], None]


class AppState:
    """
    Single source of truth for the current view, the customer list and the
    gate under edit.

    Subscribers are called synchronously after every transition. Mutation
    goes through the methods below; there are no public setters.
    """

    def __init__(
        self,
        storage: GateStorage,
        catalog,
        *,
        owner_id: str,
        vat_rate,
        markup_max_percent: Optional[D] = None,
        notifier: Optional[Notifier] = None,
    ):
        self._storage = storage
        self._catalog = catalog
        self._owner_id = owner_id
        self._vat_rate = D(str(vat_rate))
        self._markup_max_percent = markup_max_percent
        self._notifier = notifier

        self._view = View.CUSTOMER_SELECT
        self._customers: List[CustomerRecord] = []
        self._selected_customer_id: Optional[str] = None
        self._current_gate: Optional[GateConfigState] = None
        self._subscribers: List[Subscriber] = []
        self._initialized = False
        # Tor-IDs mit laufendem Speichervorgang
        self._saving: Set[str] = set()

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def view(self) -> View:
        return self._view

    @property
    def customers(self) -> Tuple[CustomerRecord, ...]:
        return tuple(self._customers)

    @property
    def current_gate(self) -> Optional[GateConfigState]:
        return self._current_gate

    @property
    def selected_customer(self) -> Optional[CustomerRecord]:
        return self._find_customer(self._selected_customer_id)

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def get_state(self) -> AppSnapshot:
        return AppSnapshot(
            view=self._view,
            customers=tuple(self._customers),
            selected_customer_id=self._selected_customer_id,
            current_gate_id=self._current_gate.id if self._current_gate else None,
            is_initialized=self._initialized,
        )

    # ------------------------------------------------------------------
    # Observer
    # ------------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.get_state()
        for callback in list(self._subscribers):
            callback(snapshot)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def init(self) -> None:
        await self.load_from_storage()
        self._initialized = True
        self._notify()

    async def load_from_storage(self) -> None:
        """Full replace of the in-memory customer list (no merge)."""
        log = get_logger()
        try:
            customers = await self._storage.load_customers(self._owner_id)
        except Exception as exc:
            log.error("Loading customers failed: {}", exc)
            raise PersistenceFailure("Kunden konnten nicht geladen werden") from exc

        self._customers = list(customers or [])
        if self._find_customer(self._selected_customer_id) is None:
            self._selected_customer_id = None
        log.info("{} Kunden geladen", len(self._customers))
        self._notify()

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def select_customer(self, customer_id: str) -> None:
        if self._find_customer(customer_id) is None:
            raise KeyError(f"Unknown customer: {customer_id}")
        self._selected_customer_id = customer_id
        self._notify()

    def go_to_customer_select(self) -> None:
        self._current_gate = None
        clear_context()
        self._view = View.CUSTOMER_SELECT
        self._notify()

    def start_new_gate(
        self, customer_id: str, order_id: Optional[str] = None
    ) -> GateConfigState:
        gate = GateConfigState(
            customer_id,
            order_id,
            catalog=self._catalog,
            vat_rate=self._vat_rate,
            markup_max_percent=self._markup_max_percent,
        )
        self._current_gate = gate
        self._selected_customer_id = customer_id
        self._view = View.TYPE_SELECT
        self._set_gate_context(gate)
        get_logger().info("Neues Tor gestartet")
        self._notify()
        return gate

    def select_gate_type(self, gate_type: str) -> Outcome:
        if self._current_gate is None:
            return Outcome.failure(IncompleteConfiguration("Kein Tor in Bearbeitung"))
        out = self._current_gate.set_gate_type(gate_type)
        if out.ok:
            self._view = View.GATE_CONFIG
            self._notify()
        return out

    def edit_gate(self, operation: str, *args: Any, **kwargs: Any) -> Outcome:
        """Apply one wizard operation to the current gate and re-render."""
        if operation not in GATE_OPERATIONS:
            raise ValueError(f"Unknown gate operation: {operation}")
        if self._current_gate is None:
            return Outcome.failure(IncompleteConfiguration("Kein Tor in Bearbeitung"))

        out = getattr(self._current_gate, operation)(*args, **kwargs)
        # Katalogfehler aendern die Auswahl trotzdem (Preis veraltet)
        if out.ok or isinstance(out.error, CatalogLookupFailed):
            self._notify()
        return out

    def clear_current_gate(self) -> None:
        """Drop the gate under edit without saving."""
        if self._current_gate is not None:
            get_logger().info("Tor verworfen")
        self._current_gate = None
        clear_context()
        self._notify()

    async def open_gate(self, gate_id: str) -> Optional[GateConfigState]:
        try:
            record = await self._storage.load_gate(gate_id)
        except Exception as exc:
            raise PersistenceFailure("Tor konnte nicht geladen werden") from exc
        if record is None:
            return None

        gate = GateConfigState.from_configuration(
            from_record(record, self._vat_rate),
            catalog=self._catalog,
            vat_rate=self._vat_rate,
            markup_max_percent=self._markup_max_percent,
        )
        self._current_gate = gate
        self._selected_customer_id = record.customer_id
        self._view = View.GATE_CONFIG
        self._set_gate_context(gate)
        self._notify()
        return gate

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def save_current_gate(self) -> Outcome[GateRecord]:
        """
        Finalize and persist the current gate.

        The save is tagged with the gate id and its revision. If the current
        gate changed while the storage call was pending, the result is
        discarded (logged only). If the same gate was edited meanwhile, the
        stored row is kept but the gate stays unsaved. A second save of a gate
        whose save is still pending fails with SaveInProgress. Storage
        failures raise PersistenceFailure and leave the gate in
        PRICING_COMPUTED for an explicit retry.
        """
        gate = self._current_gate
        if gate is None:
            return Outcome.failure(IncompleteConfiguration("Kein Tor in Bearbeitung"))
        if gate.id in self._saving:
            return Outcome.failure(
                SaveInProgress("Tor wird bereits gespeichert", {"gate_id": gate.id})
            )

        finalized = gate.finalize()
        if not finalized.ok:
            return Outcome.failure(finalized.error)

        config = finalized.value
        record = to_record(config)
        token = gate.id
        revision = gate.revision

        self._saving.add(token)
        try:
            with LoggingContext(
                customer_id=config.customer_id, order_id=config.order_id, gate_id=token
            ):
                return await self._persist(gate, config, record, token, revision)
        finally:
            self._saving.discard(token)

    async def _persist(
        self,
        gate: GateConfigState,
        config: GateConfiguration,
        record: GateRecord,
        token: str,
        revision: int,
    ) -> Outcome[GateRecord]:
        log = get_logger()
        log.info("Speichere Tor ({})", "update" if gate.persisted else "neu")

        saved: Optional[GateRecord] = None
        error: Optional[BaseException] = None
        try:
            if gate.persisted:
                if await self._storage.update_gate(token, record):
                    saved = record
            else:
                saved = await self._storage.save_gate(config.customer_id, record)
        except Exception as exc:
            error = exc

        if self._current_gate is None or self._current_gate.id != token:
            log.warning("StaleSaveDiscarded: Tor wurde waehrend des Speicherns verlassen")
            return Outcome.failure(
                StaleSaveDiscarded("Speicherergebnis verworfen", {"gate_id": token})
            )

        if saved is None:
            gate.mark_save_failed()
            self._notify()
            log.error("Speichern fehlgeschlagen: {}", error or "storage returned no result")
            failure = PersistenceFailure(
                "Tor konnte nicht gespeichert werden. Bitte erneut versuchen.",
                {"gate_id": token},
            )
            if error is not None:
                raise failure from error
            raise failure

        if gate.mark_saved(revision):
            log.info("Tor gespeichert")
        else:
            log.warning("Tor gespeichert, Aenderungen waehrend des Speicherns noch offen")
        self._upsert_gate(saved)
        self._notify()
        self._post_saved(config.order_id, config.customer_id)
        return Outcome.success(saved)

    async def delete_gate(self, gate_id: str) -> bool:
        try:
            ok = await self._storage.delete_gate(gate_id)
        except Exception as exc:
            raise PersistenceFailure("Tor konnte nicht geloescht werden") from exc
        if not ok:
            return False

        self._customers = [
            c.model_copy(update={"gates": [g for g in c.gates if g.id != gate_id]})
            for c in self._customers
        ]
        if self._current_gate is not None and self._current_gate.id == gate_id:
            self._current_gate = None
            clear_context()
        self._notify()
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _set_gate_context(gate: GateConfigState) -> None:
        # Log-Kontext folgt dem Tor in Bearbeitung
        clear_context()
        set_context(customer_id=gate.customer_id, order_id=gate.order_id, gate_id=gate.id)

    def _find_customer(self, customer_id: Optional[str]) -> Optional[CustomerRecord]:
        if customer_id is None:
            return None
        for c in self._customers:
            if c.id == customer_id:
                return c
        return None

    def _upsert_gate(self, record: GateRecord) -> None:
        updated: List[CustomerRecord] = []
        for c in self._customers:
            if c.id != record.customer_id:
                updated.append(c)
                continue
            gates = list(c.gates)
            for i, g in enumerate(gates):
                if g.id == record.id:
                    gates[i] = record
                    break
            else:
                gates.insert(0, record)
            updated.append(c.model_copy(update={"gates": gates}))
        self._customers = updated

    def _post_saved(self, order_id: Optional[str], customer_id: str) -> None:
        if self._notifier is None:
            return
        message = {"type": "gate-saved", "orderId": order_id, "customerId": customer_id}
        try:
            self._notifier.post_message(message)
        except Exception:
            # fire-and-forget: der Speichervorgang ist bereits bestaetigt
            get_logger().exception("Benachrichtigung fehlgeschlagen")
