"""Catalog of supported external providers and their expected proof fields."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from functools import lru_cache
from typing import Any, Dict, Iterable, Mapping, Optional, Pattern, Tuple

from proofbridge.errors import UnknownProviderError


@dataclass(frozen=True)
class ProviderSchema:
    """Definition of one external account type the attestation can cover.

    List-shaped providers (orders, titles, rides, activity entries) set
    ``list_field`` and describe what one item looks like; profile-shaped
    providers leave it unset and describe their scalar fields instead.
    """

    provider_id: str
    name: str
    data_type: str
    expected_fields: Tuple[str, ...]
    reward_weight: int
    template_id: str = ""
    list_field: Optional[str] = None
    container_keys: Tuple[str, ...] = ()
    item_keys: Tuple[str, ...] = ()
    min_item_keys: int = 1
    item_signature: Tuple[str, ...] = ()
    fragment_pattern: Optional[Pattern[str]] = None
    field_aliases: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    scalar_patterns: Mapping[str, Pattern[str]] = field(default_factory=dict)

    @property
    def is_list_shaped(self) -> bool:
        return self.list_field is not None

    @property
    def scalar_fields(self) -> Tuple[str, ...]:
        return tuple(name for name in self.expected_fields if name != self.list_field)

    def matches_item(self, candidate: Any) -> bool:
        """Return True when ``candidate`` looks like one list item for this provider."""

        if not isinstance(candidate, dict) or not self.item_keys:
            return False
        present = sum(1 for key in self.item_keys if key in candidate)
        return present >= self.min_item_keys

    def is_single_item(self, candidate: Any) -> bool:
        """Return True when ``candidate`` carries the full item signature."""

        if not isinstance(candidate, dict) or not self.item_signature:
            return False
        return all(candidate.get(key) not in (None, "") for key in self.item_signature)


def _flat_object_with(*key_groups: str) -> Pattern[str]:
    """Regex for a brace-free JSON object containing one key from every group."""

    lookaheads = "".join(f'(?=[^{{}}]*"(?:{group})"\\s*:)' for group in key_groups)
    return re.compile(r"\{" + lookaheads + r"[^{}]*\}")


_PROVIDERS: Dict[str, ProviderSchema] = {
    "zomato": ProviderSchema(
        provider_id="zomato",
        name="Zomato",
        data_type="zomato_order_history",
        expected_fields=("orders",),
        reward_weight=10,
        list_field="orders",
        container_keys=("orders",),
        item_keys=("items", "restaurant", "price", "timestamp"),
        min_item_keys=2,
        item_signature=("items", "restaurant"),
        fragment_pattern=_flat_object_with("items", "price", "timestamp", "restaurant"),
    ),
    "github": ProviderSchema(
        provider_id="github",
        name="GitHub",
        data_type="github_profile",
        expected_fields=("username", "followers", "contributions"),
        reward_weight=15,
        field_aliases={
            "username": ("username", "login"),
            "followers": ("followers",),
            "contributions": ("contributions", "contributionsLastYear"),
        },
        scalar_patterns={
            "username": re.compile(r'"(?:username|login)"\s*:\s*"([^"\\]+)"'),
            "followers": re.compile(r'"followers"\s*:\s*"?(\d+)"?'),
            "contributions": re.compile(r'"contributions(?:LastYear)?"\s*:\s*"?(\d+)"?'),
        },
    ),
    "netflix": ProviderSchema(
        provider_id="netflix",
        name="Netflix",
        data_type="netflix_watch_history",
        expected_fields=("titles",),
        reward_weight=20,
        list_field="titles",
        container_keys=("titles", "watchHistory"),
        item_keys=("title", "showTitle"),
        item_signature=("title", "date"),
        fragment_pattern=_flat_object_with("title|showTitle"),
    ),
    "ubereats": ProviderSchema(
        provider_id="ubereats",
        name="Uber Eats",
        data_type="ubereats_order_history",
        expected_fields=("orders",),
        reward_weight=10,
        list_field="orders",
        container_keys=("orders", "order_history"),
        item_keys=("restaurant", "restaurant_name", "items", "price", "total", "timestamp", "date"),
        min_item_keys=2,
        item_signature=("restaurant", "items"),
        fragment_pattern=_flat_object_with("restaurant|restaurant_name", "price|total"),
    ),
    "strava": ProviderSchema(
        provider_id="strava",
        name="Strava",
        data_type="strava_fitness",
        expected_fields=("allTimeActivity",),
        reward_weight=15,
        list_field="allTimeActivity",
        container_keys=("allTimeActivity", "all_time_activity"),
        item_keys=("title", "details"),
        min_item_keys=2,
        item_signature=("title", "details"),
        fragment_pattern=re.compile(r'\{"title"\s*:\s*"[^"\\]*"\s*,\s*"details"\s*:\s*\{[^{}]*\}\s*\}'),
    ),
    "blinkit": ProviderSchema(
        provider_id="blinkit",
        name="Blinkit",
        data_type="blinkit_order_history",
        expected_fields=("orders",),
        reward_weight=10,
        list_field="orders",
        container_keys=("orders", "order_history"),
        item_keys=("items", "price", "total", "timestamp", "date"),
        min_item_keys=2,
        item_signature=("items", "price"),
        fragment_pattern=_flat_object_with("items", "price|total"),
    ),
    "uber_rides": ProviderSchema(
        provider_id="uber_rides",
        name="Uber",
        data_type="uber_ride_history",
        expected_fields=("rides",),
        reward_weight=12,
        list_field="rides",
        container_keys=("rides", "ride_history", "trips"),
        item_keys=("fare", "ride_type", "pickup_time", "distance", "duration", "timestamp"),
        min_item_keys=2,
        item_signature=("fare", "timestamp"),
        fragment_pattern=_flat_object_with("fare", "timestamp|date|pickup_time"),
    ),
    "zepto": ProviderSchema(
        provider_id="zepto",
        name="Zepto",
        data_type="zepto_order_history",
        expected_fields=("grandTotalAmount", "itemQuantityCount", "productsNamesAndCounts"),
        reward_weight=10,
        field_aliases={
            "grandTotalAmount": ("grandTotalAmount",),
            "itemQuantityCount": ("itemQuantityCount",),
            "productsNamesAndCounts": ("productsNamesAndCounts",),
        },
        scalar_patterns={
            "grandTotalAmount": re.compile(r'"grandTotalAmount"\s*:\s*"?([^",}\\]+)"?'),
            "itemQuantityCount": re.compile(r'"itemQuantityCount"\s*:\s*"?(\d+)"?'),
            "productsNamesAndCounts": re.compile(r'"productsNamesAndCounts"\s*:\s*"((?:[^"\\]|\\.)*)"'),
        },
    ),
}


class ProviderRegistry:
    """Immutable lookup table of provider schemas.

    ``template_ids`` overrides the verification template handed to the
    Attestation Service for each provider (they differ per deployment).
    """

    def __init__(self, template_ids: Mapping[str, str] | None = None) -> None:
        overrides = {key.lower(): value for key, value in (template_ids or {}).items()}
        self._schemas: Dict[str, ProviderSchema] = {
            provider_id: replace(schema, template_id=overrides.get(provider_id, schema.template_id))
            for provider_id, schema in _PROVIDERS.items()
        }

    def schema_for(self, provider_id: str) -> ProviderSchema:
        """Fetch a schema by provider id.

        Raises:
            UnknownProviderError: If the id is not registered.
        """

        key = (provider_id or "").lower().strip()
        if key not in self._schemas:
            raise UnknownProviderError(f"Unknown provider: {provider_id}")
        return self._schemas[key]

    def list_providers(self) -> Iterable[ProviderSchema]:
        return list(self._schemas.values())

    def detect_provider(self, proof: Any) -> ProviderSchema | None:
        """Guess which provider a recovered proof belongs to from its own hints.

        Checks the provider-name hint first, then the verification template id.
        """

        if not isinstance(proof, dict):
            return None
        claim = proof.get("claimData") if isinstance(proof.get("claimData"), dict) else {}
        hint = claim.get("provider") or proof.get("provider") or ""
        template_id = claim.get("templateId") or claim.get("providerId") or proof.get("providerId")
        lowered = str(hint).lower()
        if lowered:
            for schema in self._schemas.values():
                if schema.provider_id in lowered or schema.name.lower() in lowered:
                    return schema
        if template_id:
            for schema in self._schemas.values():
                if schema.template_id and schema.template_id == template_id:
                    return schema
        return None


@lru_cache(maxsize=1)
def get_registry() -> ProviderRegistry:
    """Return the registry configured from application settings."""

    from proofbridge.settings import get_settings

    return ProviderRegistry(template_ids=get_settings().attestation.template_ids)


def schema_for(provider_id: str) -> ProviderSchema:
    """Shortcut for ``get_registry().schema_for``."""

    return get_registry().schema_for(provider_id)


def list_providers() -> Iterable[ProviderSchema]:
    """Return every supported provider."""

    return get_registry().list_providers()


__all__ = ["ProviderRegistry", "ProviderSchema", "get_registry", "list_providers", "schema_for"]
