"""Tor-Kalkulator: gate configuration, area and price calculation."""

__version__ = "0.1.0"
