"""Provider-aware extraction of normalized records from untrusted proof envelopes.

Extraction first reads the documented claim shape
(``claimData.context.extractedParameters``, then ``extractedParameterValues``
and ``publicData``). When that yields nothing, the whole envelope is searched
depth-first for anything that looks like the provider's data: arrays of item
objects, container keys, single items, JSON text, JSON-encoded object keys and
item-shaped fragments inside partially escaped text.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from typing import Any, Dict, List, Optional, Set

from proofbridge.errors import ProofMalformedError
from proofbridge.normalization.envelope import (
    ProofShape,
    RelayNotice,
    parse_envelope,
    primary_proof,
)
from proofbridge.normalization.models import NormalizedRecord, is_populated
from proofbridge.providers.registry import ProviderRegistry, ProviderSchema, get_registry

LOGGER = logging.getLogger(__name__)

MAX_DEPTH = 15
# Object keys this long that start like JSON are treated as serialized payloads.
_ENCODED_KEY_MIN_LENGTH = 50

_IDENTIFIER_PATTERN = re.compile(r'"identifier"\s*:\s*"(0x[a-fA-F0-9]+)"')
_ESCAPED_QUOTE = re.compile(r'\\+"')
_MISSING = object()


def _unescape_quotes(text: str) -> str:
    """Collapse any level of backslash-escaped quotes to a bare quote."""

    return _ESCAPED_QUOTE.sub('"', text)


def _load_json(text: str) -> Any:
    stripped = text.strip()
    if stripped[:1] not in ("{", "["):
        return _MISSING
    try:
        return json.loads(stripped)
    except ValueError:
        return _MISSING


def _coerce_list(value: Any) -> Optional[List[Any]]:
    if isinstance(value, str):
        value = _load_json(value)
    if isinstance(value, list) and value:
        return value
    return None


def _canonical(value: Any) -> str:
    try:
        return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
    except (TypeError, ValueError):
        # Circular structures cannot be serialized; compare them by identity.
        return f"<object {id(value)}>"


def _primary_fields(proof: Dict[str, Any]) -> Dict[str, Any]:
    """Merge the documented parameter locations, later sources winning."""

    merged: Dict[str, Any] = {}
    claim = proof.get("claimData")
    if isinstance(claim, dict):
        context = claim.get("context")
        if isinstance(context, str):
            context = _load_json(context)
        if isinstance(context, dict) and isinstance(context.get("extractedParameters"), dict):
            merged.update(context["extractedParameters"])
    for key in ("extractedParameterValues", "publicData"):
        value = proof.get(key)
        if isinstance(value, str):
            value = _load_json(value)
        if isinstance(value, dict):
            merged.update(value)
    return merged


def _select_expected(source: Dict[str, Any], schema: ProviderSchema) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    if schema.list_field:
        for key in (schema.list_field,) + schema.container_keys:
            items = _coerce_list(source.get(key))
            if items:
                fields[schema.list_field] = items
                break
    for name in schema.scalar_fields:
        for alias in schema.field_aliases.get(name, (name,)):
            value = source.get(alias)
            if is_populated(value):
                fields[name] = value
                break
    return fields


class _DeepSearch:
    """Single depth-limited, pre-order walk over one envelope."""

    def __init__(self, schema: ProviderSchema) -> None:
        self.schema = schema
        self._visited: Set[int] = set()
        self._structured: List[List[Any]] = []
        self._fragments: List[List[Any]] = []
        self._seen_lists: Set[str] = set()
        self._scalars: List[Dict[str, Any]] = []

    def run(self, root: Any) -> Dict[str, Any]:
        self._visit(root, 0)
        found: Dict[str, Any] = {}
        if self.schema.list_field:
            items = self._collect_items()
            if items:
                found[self.schema.list_field] = items
        for match in self._scalars:
            found.update(match)
        return found

    def _collect_items(self) -> List[Any]:
        items: List[Any] = []
        for block in self._structured:
            items.extend(block)
        covered = {_canonical(item) for item in items}
        for block in self._fragments:
            items.extend(item for item in block if _canonical(item) not in covered)
        return items

    def _record_list(self, items: List[Any], target: List[List[Any]]) -> None:
        key = _canonical(items)
        if key in self._seen_lists:
            return
        self._seen_lists.add(key)
        target.append(items)

    def _visit(self, node: Any, depth: int) -> None:
        if depth > MAX_DEPTH:
            return
        if isinstance(node, (dict, list)):
            if id(node) in self._visited:
                return
            self._visited.add(id(node))
        if isinstance(node, list):
            self._visit_list(node, depth)
        elif isinstance(node, dict):
            self._visit_dict(node, depth)
        elif isinstance(node, str):
            self._visit_text(node, depth)

    def _visit_list(self, node: List[Any], depth: int) -> None:
        if node and self.schema.matches_item(node[0]) and all(isinstance(item, dict) for item in node):
            self._record_list(node, self._structured)
            return
        for item in node:
            self._visit(item, depth + 1)

    def _visit_dict(self, node: Dict[str, Any], depth: int) -> None:
        schema = self.schema
        if schema.is_list_shaped:
            for key in schema.container_keys:
                items = _coerce_list(node.get(key))
                if items and all(isinstance(item, dict) for item in items):
                    self._record_list(items, self._structured)
                    return
            if schema.is_single_item(node):
                self._record_list([node], self._structured)
                return
        else:
            match = self._profile_match(node)
            if match:
                self._scalars.append(match)
                return
        for key, value in node.items():
            if (
                isinstance(key, str)
                and len(key) > _ENCODED_KEY_MIN_LENGTH
                and key.lstrip()[:1] in ("{", "[")
            ):
                self._visit_text(key, depth + 1)
            self._visit(value, depth + 1)

    def _visit_text(self, text: str, depth: int) -> None:
        parsed = _load_json(text)
        if parsed is not _MISSING:
            self._visit(parsed, depth + 1)
            return
        if self.schema.is_list_shaped:
            self._match_fragments(text)
        else:
            self._match_scalars(text)

    def _match_fragments(self, text: str) -> None:
        pattern = self.schema.fragment_pattern
        if pattern is None or "{" not in text:
            return
        candidates = [text]
        if '\\"' in text:
            candidates.append(_unescape_quotes(text))
        for candidate in candidates:
            items: List[Any] = []
            for fragment in pattern.findall(candidate):
                try:
                    item = json.loads(fragment)
                except ValueError:
                    continue
                if isinstance(item, dict):
                    items.append(item)
            if items:
                self._record_list(items, self._fragments)
                return

    def _profile_match(self, node: Dict[str, Any]) -> Dict[str, Any]:
        param_values = node.get("paramValues")
        if isinstance(param_values, str):
            param_values = _load_json(param_values)
        if isinstance(param_values, dict):
            match = _select_expected(param_values, self.schema)
            if match:
                return match
        return _select_expected(node, self.schema)

    def _match_scalars(self, text: str) -> None:
        match: Dict[str, Any] = {}
        unescaped = _unescape_quotes(text)
        for name, pattern in self.schema.scalar_patterns.items():
            found = pattern.search(unescaped)
            if found:
                match[name] = found.group(1)
        if match:
            self._scalars.append(match)


def _needs_deep_search(fields: Dict[str, Any], schema: ProviderSchema) -> bool:
    if schema.list_field:
        return not is_populated(fields.get(schema.list_field))
    return not any(is_populated(fields.get(name)) for name in schema.expected_fields)


def normalize(
    envelope: Any,
    provider_id: str,
    *,
    registry: Optional[ProviderRegistry] = None,
) -> NormalizedRecord:
    """Extract the provider's expected fields from ``envelope``.

    Raises:
        UnknownProviderError: If ``provider_id`` is not registered.
        ProofMalformedError: If no expected field could be populated.
    """

    schema = (registry or get_registry()).schema_for(provider_id)
    shape = parse_envelope(envelope)
    if isinstance(shape, RelayNotice):
        raise ProofMalformedError(
            "Envelope is a relay notice, not a proof",
            details={"provider_id": schema.provider_id},
        )

    proof = primary_proof(shape)
    fields = _select_expected(_primary_fields(proof), schema) if proof is not None else {}
    extraction_path = "primary"
    if _needs_deep_search(fields, schema):
        found = _DeepSearch(schema).run(shape.raw)
        if found:
            extraction_path = "deep_search"
            fields.update(found)

    populated = {
        name: fields[name] for name in schema.expected_fields if is_populated(fields.get(name))
    }
    if not populated:
        raise ProofMalformedError(
            f"No {schema.name} data found in proof",
            details={"provider_id": schema.provider_id},
        )
    LOGGER.debug(
        "Normalized %s proof via %s: %s",
        schema.provider_id,
        extraction_path,
        {name: len(value) if isinstance(value, list) else 1 for name, value in populated.items()},
    )
    return NormalizedRecord(
        provider_id=schema.provider_id,
        fields=populated,
        extraction_path=extraction_path,
    )


def _raw_text(envelope: Any) -> str:
    if isinstance(envelope, (bytes, bytearray)):
        return bytes(envelope).decode("utf-8", errors="replace")
    if isinstance(envelope, str):
        return envelope
    return _canonical(envelope)


def proof_identifier(envelope: Any, shape: Optional[ProofShape] = None) -> str:
    """Return the identifier submitted alongside a normalized record.

    Uses the proof's own ``identifier`` (or ``id``), then an identifier found
    in the raw text, then a deterministic digest of the envelope.
    """

    proof = primary_proof(shape or parse_envelope(envelope))
    if proof is not None:
        for key in ("identifier", "id"):
            value = proof.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    text = _raw_text(envelope)
    found = _IDENTIFIER_PATTERN.search(_unescape_quotes(text))
    if found:
        return found.group(1)
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:32]
    return f"proof-{digest}"


def infer_provider(envelope: Any, *, registry: Optional[ProviderRegistry] = None) -> Optional[str]:
    """Work out which provider a proof of unknown origin belongs to.

    The proof's own provider hint and template id are tried first; failing
    that, the first registered provider whose normalization succeeds wins.
    """

    registry = registry or get_registry()
    schema = registry.detect_provider(primary_proof(parse_envelope(envelope)))
    if schema is not None:
        return schema.provider_id
    for candidate in registry.list_providers():
        try:
            normalize(envelope, candidate.provider_id, registry=registry)
        except ProofMalformedError:
            continue
        return candidate.provider_id
    return None


__all__ = ["MAX_DEPTH", "infer_provider", "normalize", "proof_identifier"]
