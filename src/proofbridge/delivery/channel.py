"""Choose how a proof will reach the client and build the session id that ties them."""

from __future__ import annotations

import ipaddress
import logging
import secrets
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional
from urllib.parse import quote, urlsplit

from proofbridge.errors import CallbackUrlRejectedError

LOGGER = logging.getLogger(__name__)

_LOOPBACK_NAMES = {"localhost", "localhost.localdomain", "ip6-localhost", "ip6-loopback"}
_LOCAL_SUFFIXES = (".localhost", ".local", ".internal")


class DeliveryChannel(str, Enum):
    DIRECT = "direct"
    RELAY_POLLING = "relay-polling"
    REDIRECT_RECOVERY = "redirect-recovery"


@dataclass(frozen=True)
class DeliveryPlan:
    """Outcome of channel selection for one verification."""

    channel: DeliveryChannel
    session_id: Optional[str] = None
    callback_url: Optional[str] = None

    @property
    def uses_relay(self) -> bool:
        return self.channel is DeliveryChannel.RELAY_POLLING and self.session_id is not None


def _hostname(origin: str) -> str:
    candidate = origin.strip()
    if "://" not in candidate:
        candidate = f"//{candidate}"
    try:
        return (urlsplit(candidate).hostname or "").lower()
    except ValueError:
        return ""


def is_publicly_reachable(origin: str) -> bool:
    """Return True when the Attestation Service could call back to ``origin``.

    Loopback, private, link-local and unspecified addresses, ``localhost``
    and mDNS-style local names are treated as unreachable.
    """

    host = _hostname(origin or "")
    if not host or host in _LOOPBACK_NAMES or host.endswith(_LOCAL_SUFFIXES):
        return False
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return "." in host
    return not (
        address.is_loopback
        or address.is_private
        or address.is_link_local
        or address.is_unspecified
        or address.is_reserved
    )


def new_session_id(user_id: Optional[str], provider_id: str) -> str:
    """Build ``<user>_<provider>_<epoch millis>_<random suffix>``."""

    millis = int(time.time() * 1000)
    return f"{user_id or 'anon'}_{provider_id}_{millis}_{secrets.token_hex(6)}"


def build_callback_url(relay_base_url: str, session_id: str, callback_path: str = "/callback") -> str:
    path = callback_path if callback_path.startswith("/") else f"/{callback_path}"
    return f"{relay_base_url.rstrip('/')}{path}?sessionId={quote(session_id, safe='')}"


def select_delivery(
    origin: str,
    provider_id: str,
    user_id: Optional[str],
    relay_base_url: str,
    *,
    callback_path: str = "/callback",
) -> DeliveryPlan:
    """Pick ``relay-polling`` for publicly reachable origins, ``direct`` otherwise."""

    if not is_publicly_reachable(origin):
        LOGGER.debug("Origin %s is not publicly reachable; using direct delivery", origin)
        return DeliveryPlan(channel=DeliveryChannel.DIRECT)
    session_id = new_session_id(user_id, provider_id)
    return DeliveryPlan(
        channel=DeliveryChannel.RELAY_POLLING,
        session_id=session_id,
        callback_url=build_callback_url(relay_base_url, session_id, callback_path),
    )


async def negotiate_delivery(
    new_request: Callable[[], Any],
    plan: DeliveryPlan,
) -> tuple[DeliveryPlan, Any, str]:
    """Create an attestation request for ``plan`` and obtain its request URL.

    ``new_request`` builds a fresh SDK request. The SDK may refuse the
    callback URL either when it is set or when the request URL is generated;
    in both cases the plan degrades to ``direct``, the session id is dropped
    so nothing waits on a relay no proof will reach, and the URL is requested
    again without a callback.

    Returns:
        The effective plan, the request to wait on, and its request URL.
    """

    request = new_request()
    if plan.callback_url:
        try:
            request.set_callback_url(plan.callback_url)
        except (CallbackUrlRejectedError, ValueError) as exc:
            LOGGER.warning("Callback URL rejected, falling back to direct delivery: %s", exc)
            plan = DeliveryPlan(channel=DeliveryChannel.DIRECT)
    try:
        return plan, request, await request.get_request_url()
    except (CallbackUrlRejectedError, ValueError) as exc:
        if not plan.callback_url:
            raise
        LOGGER.warning("Request URL refused the callback, retrying without it: %s", exc)
    plan = DeliveryPlan(channel=DeliveryChannel.DIRECT)
    request = new_request()
    return plan, request, await request.get_request_url()


__all__ = [
    "DeliveryChannel",
    "DeliveryPlan",
    "build_callback_url",
    "is_publicly_reachable",
    "negotiate_delivery",
    "new_session_id",
    "select_delivery",
]
