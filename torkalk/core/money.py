from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

MONEY = Decimal("0.01")
ZERO = Decimal("0.00")


def qmoney(x: Decimal) -> Decimal:
    return x.quantize(MONEY, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class VatBreakdown:
    net_total: Decimal
    vat_rate: Decimal
    vat_amount: Decimal
    gross_total: Decimal


def calc_vat(net_total: Decimal, vat_rate: Decimal) -> VatBreakdown:
    # Brutto = Netto * (1 + MwSt), erst am Ende gerundet
    net = Decimal(net_total)
    rate = Decimal(vat_rate)
    gross = qmoney(net * (Decimal("1") + rate))
    return VatBreakdown(net, rate, gross - qmoney(net), gross)


def format_eur(x: Decimal) -> str:
    """German display format, e.g. 1.234,50 EUR."""
    s = f"{qmoney(x):,.2f}"
    return s.replace(",", "X").replace(".", ",").replace("X", ".") + " EUR"
