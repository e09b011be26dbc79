from __future__ import annotations

from decimal import Decimal
from typing import Optional, Protocol

from torkalk.core.units import (
    STORED_PLACES,
    cm2_to_m2,
    fits_stored_scale,
    is_finite_non_negative,
    to_decimal,
)

from ..domain.models import Areas
from .errors import InvalidDimension

D = Decimal


class AreaOverride(Protocol):
    """
    Per-gate-type replacement for the total area (width * height).
    Supplied by the catalog for a gate type; the result is validated here.
    """

    def total_area_m2(self, width_cm: D, height_cm: D) -> D: ...


def _dimension(name: str, value) -> D:
    try:
        d = to_decimal(value)
    except TypeError:
        d = None
    if not is_finite_non_negative(d):
        raise InvalidDimension(
            f"{name} muss eine Zahl >= 0 sein", {"field": name, "value": str(value)}
        )
    if not fits_stored_scale(d):
        raise InvalidDimension(
            f"{name} hat mehr als {STORED_PLACES} Nachkommastellen",
            {"field": name, "value": str(value)},
        )
    return d


def compute_areas(
    width_cm,
    height_cm,
    glass_height_cm,
    gate_type: Optional[str] = None,
    override: Optional[AreaOverride] = None,
) -> Areas:
    """
    Derive areas (m²) from dimensions (cm).

    total = width * height / 10000 (or the override for this gate type)
    glass = width * glass_height / 10000, 0 without glass
    gate  = total - glass, floored at 0

    Pure and O(1); raises InvalidDimension instead of clamping.
    """
    width = _dimension("breite", width_cm)
    height = _dimension("hoehe", height_cm)
    glass_height = _dimension("glashoehe", glass_height_cm)

    if glass_height > height:
        raise InvalidDimension(
            "Glashoehe darf die Hoehe nicht ueberschreiten",
            {"field": "glashoehe", "value": str(glass_height), "max": str(height)},
        )

    glass = cm2_to_m2(width * glass_height) if glass_height > 0 else D("0")

    if override is not None:
        total = to_decimal(override.total_area_m2(width, height))
        if total is None or not total.is_finite() or total < 0 or total < glass:
            raise InvalidDimension(
                f"Flaechenregel fuer Tortyp '{gate_type}' liefert ungueltige Gesamtflaeche",
                {"field": "gesamtflaeche", "value": str(total), "gate_type": gate_type},
            )
    else:
        total = cm2_to_m2(width * height)

    gate = max(total - glass, D("0"))
    return Areas(total_area_m2=total, glass_area_m2=glass, gate_area_m2=gate)
