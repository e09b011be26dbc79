from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol

import yaml
from jsonschema import validate
from loguru import logger

from ..domain.models import Areas
from ..engine.areas import AreaOverride
from ..engine.errors import CatalogLookupFailed

D = Decimal

CATALOG_DIR = Path(__file__).parent
DEFAULT_CATALOG_PATH = CATALOG_DIR / "default_catalog.yaml"
SCHEMA_PATH = CATALOG_DIR / "catalog.schema.json"

# Preisbasis: Stueckpreis oder Preis pro m² der jeweiligen Flaeche
BASIS_PIECE = "piece"
BASIS_M2_TOTAL = "m2_total"
BASIS_M2_GATE = "m2_gate"
BASIS_M2_GLASS = "m2_glass"


@dataclass(frozen=True)
class CatalogItem:
    ref: str
    name: str
    unit_price: D
    basis: str = BASIS_PIECE
    unit: str = "Stk"
    category: Optional[str] = None

    def price_at(self, areas: Areas) -> D:
        """Listed price resolved against the current areas."""
        if self.basis == BASIS_M2_TOTAL:
            return self.unit_price * areas.total_area_m2
        if self.basis == BASIS_M2_GATE:
            return self.unit_price * areas.gate_area_m2
        if self.basis == BASIS_M2_GLASS:
            return self.unit_price * areas.glass_area_m2
        return self.unit_price


class Catalog(Protocol):
    """Read-only product catalog."""

    def get(self, ref: str) -> CatalogItem: ...

    def items(self) -> List[CatalogItem]: ...

    def area_override_for(self, gate_type: Optional[str]) -> Optional[AreaOverride]: ...


class YamlCatalog:
    def __init__(
        self,
        items: Iterable[CatalogItem],
        version: str = "0",
        currency: str = "EUR",
        area_overrides: Optional[Dict[str, AreaOverride]] = None,
    ):
        self.version = version
        self.currency = currency
        self._items: Dict[str, CatalogItem] = {}
        for item in items:
            if item.ref in self._items:
                raise ValueError(f"Duplicate catalog ref: {item.ref}")
            self._items[item.ref] = item
        self._area_overrides: Dict[str, AreaOverride] = {}
        for gate_type, override in (area_overrides or {}).items():
            self.register_area_override(gate_type, override)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "YamlCatalog":
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        validate(instance=d, schema=schema)

        items = [
            CatalogItem(
                ref=str(row["ref"]),
                name=str(row["name"]),
                unit_price=D(str(row["unitPrice"])),
                basis=str(row.get("basis") or BASIS_PIECE),
                unit=str(row.get("unit") or "Stk"),
                category=row.get("category"),
            )
            for row in d["items"]
        ]
        return cls(
            items,
            version=str(d["catalogVersion"]),
            currency=str(d.get("currency") or "EUR"),
        )

    @classmethod
    def from_yaml_file(cls, path: str | Path) -> "YamlCatalog":
        catalog_path = Path(path)
        with catalog_path.open("r", encoding="utf-8") as f:
            d = yaml.safe_load(f)
        catalog = cls.from_dict(d)
        logger.info(
            "catalog loaded: {} items, version {} ({})",
            len(catalog._items),
            catalog.version,
            catalog_path.name,
        )
        return catalog

    @classmethod
    def default(cls) -> "YamlCatalog":
        return cls.from_yaml_file(DEFAULT_CATALOG_PATH)

    def get(self, ref: str) -> CatalogItem:
        item = self._items.get(ref)
        if item is None:
            raise CatalogLookupFailed(ref)
        return item

    def items(self) -> List[CatalogItem]:
        return list(self._items.values())

    def register_area_override(self, gate_type: str, override: AreaOverride) -> None:
        """Fails fast on a second rule for the same gate type."""
        key = str(gate_type)
        existing = self._area_overrides.get(key)
        if existing is not None and existing is not override:
            raise ValueError(f"Duplicate area override for gate type '{key}'")
        self._area_overrides[key] = override

    def area_override_for(self, gate_type: Optional[str]) -> Optional[AreaOverride]:
        if not gate_type:
            return None
        return self._area_overrides.get(str(gate_type))


def load_catalog(path: Optional[str] = None) -> YamlCatalog:
    if path:
        return YamlCatalog.from_yaml_file(path)
    return YamlCatalog.default()
