from decimal import Decimal

import pytest

from torkalk.core.money import format_eur
from torkalk.gates.explain.summary import (
    SUMMARY_HEADER,
    ProductSummary,
    compose_notes,
    strip_summary,
)

D = Decimal


def test_summary_lines_for_priced_gate(priced_state):
    lines = list(priced_state.product_summary())

    assert lines[0].startswith("(Gesamtflaeche 5.00 m²")
    assert "2 x Antrieb (A) a 100,00 EUR = 200,00 EUR" in lines
    assert "Zwischensumme 250,00 EUR" in lines
    assert "Aufschlag 10% = 25,00 EUR" in lines
    assert lines[-1] == "Inkl. MwSt (19%) 327,25 EUR"


def test_summary_codes_in_order(priced_state):
    assert priced_state.product_summary().codes() == [
        "AREAS",
        "LINE",
        "LINE",
        "SUBTOTAL",
        "MARKUP",
        "NET_TOTAL",
        "GROSS_TOTAL",
    ]


def test_custom_price_is_flagged(priced_state):
    priced_state.set_unit_price_override(1, D("45"))
    summary = priced_state.product_summary()
    assert "CUSTOM_PRICE" in summary.codes()
    assert "Hinweis: Individueller Preis fuer B" in list(summary)


def test_compose_notes_replaces_previous_block():
    s = ProductSummary()
    s.add_step("SUBTOTAL", "Zwischensumme 1,00 EUR")
    notes = compose_notes("Kunde ruft an", s)
    again = compose_notes(notes, s)

    assert again == notes
    assert again.count(SUMMARY_HEADER) == 1
    assert strip_summary(again) == "Kunde ruft an"


def test_compose_notes_without_user_text():
    s = ProductSummary()
    s.add_step("SUBTOTAL", "Zwischensumme 1,00 EUR")
    assert compose_notes("", s) == f"{SUMMARY_HEADER}\nZwischensumme 1,00 EUR"
    assert compose_notes("nur Text", ProductSummary()) == "nur Text"


@pytest.mark.parametrize("code", ["x", "lower_case", "A", ""])
def test_invalid_codes_rejected(code):
    with pytest.raises(ValueError):
        ProductSummary().add_step(code, "msg")


def test_multiline_message_rejected():
    with pytest.raises(ValueError):
        ProductSummary().add_step("LINE", "a\nb")


def test_format_eur_german_style():
    assert format_eur(D("1234.5")) == "1.234,50 EUR"
    assert format_eur(D("0.005")) == "0,01 EUR"
