"""Provider schema registry."""

from .registry import ProviderRegistry, ProviderSchema, get_registry, list_providers, schema_for

__all__ = ["ProviderRegistry", "ProviderSchema", "get_registry", "list_providers", "schema_for"]
