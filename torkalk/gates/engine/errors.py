from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class GateError(Exception):
    """
    Base for all gate configuration errors.

    - code: stable UPPER_SNAKE identifier (tests, UI mapping)
    - message: user-facing text (German)
    - meta: field names / offending values for inline validation
    """

    code: str = "GATE_ERROR"

    def __init__(self, message: str, meta: Optional[Dict[str, Any]] = None):
        self.message = str(message)
        self.meta = meta or {}
        super().__init__(f"{self.code}: {self.message}")


class InvalidDimension(GateError):
    code = "INVALID_DIMENSION"


class InvalidQuantity(GateError):
    code = "INVALID_QUANTITY"


class InvalidPrice(GateError):
    code = "INVALID_PRICE"


class InvalidMarkup(GateError):
    code = "INVALID_MARKUP"


class CatalogLookupFailed(GateError):
    code = "CATALOG_LOOKUP_FAILED"

    def __init__(self, ref: str, message: Optional[str] = None):
        self.ref = str(ref)
        super().__init__(
            message or f"Produkt nicht im Katalog: {ref}", {"ref": self.ref}
        )


class IncompleteConfiguration(GateError):
    code = "INCOMPLETE_CONFIGURATION"


class EmptyProductSelection(IncompleteConfiguration):
    code = "EMPTY_PRODUCT_SELECTION"


class InvalidRecord(GateError):
    code = "INVALID_RECORD"


class PersistenceFailure(GateError):
    code = "PERSISTENCE_FAILURE"


class StaleSaveDiscarded(GateError):
    code = "STALE_SAVE_DISCARDED"


class SaveInProgress(GateError):
    code = "SAVE_IN_PROGRESS"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """
    Typed result of a wizard operation.
    Validation failures travel as values; callers drive inline feedback from `error`.
    """

    ok: bool
    value: Optional[T] = None
    error: Optional[GateError] = None

    @staticmethod
    def success(value: Optional[T] = None) -> "Outcome[T]":
        return Outcome(ok=True, value=value)

    @staticmethod
    def failure(error: GateError) -> "Outcome[T]":
        return Outcome(ok=False, error=error)

    def unwrap(self) -> T:
        if not self.ok:
            assert self.error is not None
            raise self.error
        return self.value  # type: ignore[return-value]

    def __bool__(self) -> bool:
        return self.ok
