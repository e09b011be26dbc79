from decimal import Decimal, InvalidOperation

# Persistiert wird in Zentimetern, die Oberflaeche arbeitet in Metern.
CM_PER_M = Decimal("100")
CM2_PER_M2 = Decimal("10000")
# Nachkommastellen der Mass- und Aufschlagspalten
STORED_PLACES = 4


def to_decimal(v) -> Decimal | None:
    if v is None:
        return None
    if isinstance(v, Decimal):
        return v
    if isinstance(v, bool):
        raise TypeError("bool is not a numeric input")
    try:
        return Decimal(str(v).strip())
    except InvalidOperation:
        return Decimal("NaN")


def is_finite_non_negative(v: Decimal | None) -> bool:
    return v is not None and v.is_finite() and v >= 0


def fits_stored_scale(v: Decimal) -> bool:
    """True if `v` survives a round trip through a 4-decimal column unchanged."""
    return -v.normalize().as_tuple().exponent <= STORED_PLACES


def m_to_cm(meters) -> Decimal:
    """UI (m) -> storage (cm). The only place meters enter the core."""
    return to_decimal(meters) * CM_PER_M


def cm_to_m(centimeters) -> Decimal:
    """Storage (cm) -> UI (m)."""
    return to_decimal(centimeters) / CM_PER_M


def cm2_to_m2(square_cm: Decimal) -> Decimal:
    return square_cm / CM2_PER_M2
