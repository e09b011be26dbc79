from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import re
from typing import Iterator, List, Optional

from torkalk.core.money import format_eur

from ..domain.models import Areas, PricingResult


# Marker fuer den automatisch erzeugten Block in den Notizen
SUMMARY_HEADER = "--- Produktauswahl ---"


class SummaryKind(str, Enum):
    STEP = "STEP"
    WARNING = "WARNING"
    META = "META"


_CODE_RE = re.compile(r"^[A-Z][A-Z0-9_]{2,63}$")  # e.g. LINE, SUBTOTAL, CUSTOM_PRICE


def _validate_code(code: str) -> str:
    if not isinstance(code, str):
        raise TypeError("summary code must be str")
    code = code.strip()
    if not _CODE_RE.match(code):
        raise ValueError(
            f"invalid summary code '{code}'. Expected UPPER_SNAKE (3-64 chars), e.g. LINE, SUBTOTAL"
        )
    return code


def _validate_message(message: str) -> str:
    if not isinstance(message, str):
        raise TypeError("summary message must be str")
    msg = message.strip()
    if not msg:
        raise ValueError("summary message must be non-empty")
    # eine Zeile pro Eintrag
    if "\n" in msg or "\r" in msg:
        raise ValueError("summary message may not contain newlines")
    return msg


@dataclass(frozen=True)
class SummaryEntry:
    seq: int
    kind: SummaryKind
    code: str
    message: str


@dataclass
class ProductSummary:
    """
    Human-readable log of a product selection and its price.
    Iterating yields the rendered lines.
    """

    _entries: List[SummaryEntry] = field(default_factory=list)
    _seq: int = 0

    @property
    def entries(self) -> List[SummaryEntry]:
        return list(self._entries)

    def codes(self) -> List[str]:
        return [e.code for e in self._entries]

    def __iter__(self) -> Iterator[str]:
        return iter(render_lines(self))

    def __len__(self) -> int:
        return len(self._entries)

    def add_step(self, code: str, message: str) -> None:
        self._append(SummaryKind.STEP, code, message)

    def add_warning(self, code: str, message: str) -> None:
        self._append(SummaryKind.WARNING, code, message)

    def add_meta(self, code: str, message: str) -> None:
        self._append(SummaryKind.META, code, message)

    def _append(self, kind: SummaryKind, code: str, message: str) -> None:
        self._seq += 1
        self._entries.append(
            SummaryEntry(
                seq=self._seq,
                kind=kind,
                code=_validate_code(code),
                message=_validate_message(message),
            )
        )


def render_lines(summary: ProductSummary) -> List[str]:
    out: List[str] = []
    for e in sorted(summary.entries, key=lambda e: e.seq):
        if e.kind == SummaryKind.WARNING:
            out.append(f"Hinweis: {e.message}")
        elif e.kind == SummaryKind.META:
            out.append(f"({e.message})")
        else:
            out.append(e.message)
    return out


def _pct(value) -> str:
    s = f"{value:.2f}".rstrip("0").rstrip(".")
    return s.replace(".", ",")


def build_summary(areas: Areas, pricing: PricingResult) -> ProductSummary:
    s = ProductSummary()
    s.add_meta(
        "AREAS",
        f"Gesamtflaeche {areas.total_area_m2:.2f} m², "
        f"Glasflaeche {areas.glass_area_m2:.2f} m², Torflaeche {areas.gate_area_m2:.2f} m²",
    )
    for line in pricing.lines:
        s.add_step(
            "LINE",
            f"{line.quantity} x {line.name} ({line.catalog_ref}) a {format_eur(line.unit_price)}"
            f" = {format_eur(line.line_total)}",
        )
        if line.custom_price:
            s.add_warning("CUSTOM_PRICE", f"Individueller Preis fuer {line.catalog_ref}")
    s.add_step("SUBTOTAL", f"Zwischensumme {format_eur(pricing.subtotal)}")
    s.add_step(
        "MARKUP",
        f"Aufschlag {_pct(pricing.markup_percent)}% = {format_eur(pricing.markup_amount)}",
    )
    s.add_step("NET_TOTAL", f"Exkl. MwSt {format_eur(pricing.net_total)}")
    s.add_step(
        "GROSS_TOTAL",
        f"Inkl. MwSt ({_pct(pricing.vat_rate * 100)}%) {format_eur(pricing.gross_total)}",
    )
    return s


def compose_notes(user_notes: str, summary: Optional[ProductSummary]) -> str:
    """User notes followed by the summary block; an earlier block is replaced."""
    base = strip_summary(user_notes)
    if summary is None or len(summary) == 0:
        return base
    block = "\n".join([SUMMARY_HEADER, *summary])
    return f"{base}\n\n{block}" if base else block


def strip_summary(notes: str) -> str:
    text = notes or ""
    idx = text.find(SUMMARY_HEADER)
    if idx >= 0:
        text = text[:idx]
    return text.rstrip()
