#!/usr/bin/env python
"""Normalize a saved proof envelope and print the record that would be submitted."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from proofbridge.delivery.fragment import RedirectError, parse_redirect_fragment
from proofbridge.errors import ProofBridgeError
from proofbridge.normalization import infer_provider, normalize, proof_identifier
from proofbridge.settings import get_settings


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Return CLI arguments describing the envelope to normalize.

    Args:
        argv: Optional list of CLI arguments. When ``None``, defaults to ``sys.argv``.

    Returns:
        Parsed :class:`argparse.Namespace` containing CLI options.
    """

    parser = argparse.ArgumentParser(description="Extract a provider's fields from a proof envelope")
    parser.add_argument("envelope", help="Path to the envelope file, or '-' to read stdin")
    parser.add_argument("--provider", help="Provider id (e.g. zomato, github)", default=None)
    parser.add_argument(
        "--fragment",
        action="store_true",
        help="Treat the input as a redirect fragment (#reclaim_proof=<base64>)",
    )
    parser.add_argument(
        "--detect",
        action="store_true",
        help="Infer the provider from the proof when --provider is omitted",
    )
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    return parser.parse_args(argv)


def _read_input(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


def _resolve_provider(envelope: Any, requested: str | None, detect: bool) -> str | None:
    if requested:
        return requested
    if not detect:
        return None
    return infer_provider(envelope)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    level_name = (args.log_level or get_settings().runtime.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    text = _read_input(args.envelope)
    envelope: Any = text
    if args.fragment:
        result = parse_redirect_fragment(text.strip())
        if result is None:
            print("Input is not a proof redirect fragment", file=sys.stderr)
            return 2
        if isinstance(result, RedirectError):
            print(f"Redirect reported an error: {result.reason}", file=sys.stderr)
            return 1
        envelope = result.proof

    provider_id = _resolve_provider(envelope, args.provider, args.detect)
    if provider_id is None:
        print("Pass --provider, or --detect to infer it from the proof", file=sys.stderr)
        return 2

    try:
        record = normalize(envelope, provider_id)
    except ProofBridgeError as exc:
        print(f"❌ {exc}", file=sys.stderr)
        return 1

    summary = {
        "provider_id": record.provider_id,
        "extraction_path": record.extraction_path,
        "proof_identifier": proof_identifier(envelope),
        "fields": record.fields,
    }
    print(json.dumps(summary, indent=2, sort_keys=True, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
