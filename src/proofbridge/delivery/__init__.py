"""Delivery channel selection and redirect fragment handling."""

from proofbridge.delivery.channel import (
    DeliveryChannel,
    DeliveryPlan,
    build_callback_url,
    is_publicly_reachable,
    negotiate_delivery,
    new_session_id,
    select_delivery,
)
from proofbridge.delivery.fragment import (
    RedirectError,
    RedirectProof,
    encode_proof_fragment,
    parse_redirect_fragment,
    strip_fragment,
)

__all__ = [
    "DeliveryChannel",
    "DeliveryPlan",
    "RedirectError",
    "RedirectProof",
    "build_callback_url",
    "encode_proof_fragment",
    "is_publicly_reachable",
    "negotiate_delivery",
    "new_session_id",
    "parse_redirect_fragment",
    "select_delivery",
    "strip_fragment",
]
