"""
Read-only lookups over the program's option tables.

Categories, evaluation sections and organizations are identified by stable
keys (``value``) and carry a display ``text``. Callers depend on the
:class:`SchemaLookup` protocol so a database-backed or in-memory table can
stand in for the YAML-backed default.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from omegaconf import DictConfig, OmegaConf

from .configuration import load_program_config
from .errors import SchemaUnavailable
from .models import SchemaOptions

OPTION_TABLES = ("categories", "evaluation_sections", "organizations", "status")


class SchemaLookup(Protocol):
    def options(self, key: str) -> List[Dict[str, Any]]:
        ...

    def lookup(self, key: str, value: str) -> Optional[str]:
        ...

    def sections_for(self, category: str) -> List[str]:
        ...

    def has_category(self, category: str) -> bool:
        ...


class ConfigSchemaLookup:
    """SchemaLookup backed by the ``config.yaml`` option tables."""

    def __init__(self, config: DictConfig | None = None) -> None:
        self._config = config if config is not None else load_program_config()

    def options(self, key: str) -> List[Dict[str, Any]]:
        if key not in self._config or self._config[key] is None:
            raise SchemaUnavailable(f"Option table '{key}' is not configured.")
        return OmegaConf.to_container(self._config[key], resolve=True)  # type: ignore[return-value]

    def lookup(self, key: str, value: str) -> Optional[str]:
        for item in self.options(key):
            if item.get("value") == value:
                return item.get("text")
        return None

    def sections_for(self, category: str) -> List[str]:
        for item in self.options("categories"):
            if item.get("value") == category:
                return list(item.get("sections") or [])
        return []

    def has_category(self, category: str) -> bool:
        return any(item.get("value") == category for item in self.options("categories"))


def has_section(schema: SchemaLookup, section: str, category: str) -> bool:
    return section in schema.sections_for(category)


def require_text(schema: SchemaLookup, key: str, value: str) -> str:
    """Display text for ``value``; a missing entry is a data-integrity failure."""
    text = schema.lookup(key, value)
    if text is None:
        raise SchemaUnavailable(f"No '{key}' entry for '{value}'.")
    return text


def build_schema_options(schema: SchemaLookup) -> SchemaOptions:
    return SchemaOptions(**{key: schema.options(key) for key in OPTION_TABLES})
