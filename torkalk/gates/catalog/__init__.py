"""
Product catalog for gate configurations.

Items are loaded from YAML (validated against catalog.schema.json) and
referenced from a configuration by their `ref`.
"""

from .catalog import Catalog, CatalogItem, YamlCatalog, load_catalog
