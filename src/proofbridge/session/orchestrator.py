"""Verification session state machine.

One session runs at a time. While a session is ``awaiting_proof`` three
sources can produce a proof: the SDK's own result, the relay poller (for the
``relay-polling`` channel) and the diagnostics side-channel. They all feed a
single event queue; the first usable proof wins and everything else is
cancelled or ignored.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

import httpx

from proofbridge.clients.attestation import AttestationRequest, AttestationService
from proofbridge.clients.relay import RelayClient
from proofbridge.delivery.channel import (
    DeliveryChannel,
    DeliveryPlan,
    is_publicly_reachable,
    negotiate_delivery,
    select_delivery,
)
from proofbridge.delivery.fragment import RedirectError, parse_redirect_fragment
from proofbridge.errors import (
    AttestationSdkError,
    ProofBridgeError,
    ProofMalformedError,
    ProofPendingNotice,
    ProofTimeoutError,
    TransientNetworkError,
    UserCancelledError,
    VerificationInProgressError,
)
from proofbridge.identity import UserIdentity
from proofbridge.normalization import RelayNotice, infer_provider, normalize, parse_envelope, proof_identifier
from proofbridge.observability import Observability, get_observability
from proofbridge.providers.registry import ProviderRegistry, get_registry
from proofbridge.recovery.side_channel import ProofCaptureHandler, capture_sdk_proofs, find_proof
from proofbridge.session.models import VerificationOutcome, VerificationSession, VerificationStatus
from proofbridge.session.policy import DeferredFailurePolicy, FailureGate, as_sdk_error, classify_sdk_error
from proofbridge.settings import Settings, get_settings
from proofbridge.submission.submitter import ContributionSubmitter

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class _ProofArrived:
    proof: Any
    source: str


@dataclass(frozen=True)
class _SdkFailed:
    error: ProofBridgeError


@dataclass(frozen=True)
class _RelayExhausted:
    attempts: int


@dataclass(frozen=True)
class _VisibilityChanged:
    visible: bool


@dataclass(frozen=True)
class _Cancelled:
    pass


_Event = Union[_ProofArrived, _SdkFailed, _RelayExhausted, _VisibilityChanged, _Cancelled]


class _SessionFailed(Exception):
    def __init__(self, error: ProofBridgeError, reason: str) -> None:
        super().__init__(error.message)
        self.error = error
        self.reason = reason


def _as_request_error(error: BaseException) -> ProofBridgeError:
    if isinstance(error, ProofBridgeError):
        return error
    if isinstance(error, (httpx.HTTPError, OSError)):
        return TransientNetworkError(str(error) or error.__class__.__name__)
    return as_sdk_error(error)


def proof_from_error(error: BaseException) -> Optional[Any]:
    """Return a proof the SDK attached to its error object, if any."""

    payload = getattr(error, "payload", None)
    if isinstance(payload, dict):
        for key in ("proof", "proofs", "data"):
            found = find_proof(payload.get(key))
            if found is not None:
                return found
    return find_proof(payload) if payload is not None else None


class VerificationOrchestrator:
    """Drive a verification from request to ledger submission."""

    def __init__(
        self,
        attestation: AttestationService,
        submitter: ContributionSubmitter,
        *,
        relay: RelayClient | None = None,
        registry: ProviderRegistry | None = None,
        settings: Settings | None = None,
        observability: Observability | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.settings = settings or get_settings()
        self.attestation = attestation
        self.submitter = submitter
        self.relay = relay
        self.registry = registry or get_registry()
        self.observability = observability or get_observability(component="session", settings=self.settings)
        self.policy = DeferredFailurePolicy(grace_seconds=self.settings.delivery.failure_grace_seconds)
        self._clock = clock
        self._sleep = sleep
        self._session: Optional[VerificationSession] = None
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Future] = None
        self._page_visible = True

    @property
    def active_session(self) -> Optional[VerificationSession]:
        return self._session

    async def start(self, provider_id: str, identity: UserIdentity, *, origin: str) -> VerificationSession:
        """Request a proof and begin waiting for it in the background.

        Raises:
            VerificationInProgressError: If another session has not finished.
            UnknownProviderError: If ``provider_id`` is not registered.
        """

        if self._session is not None and not self._session.is_terminal:
            raise VerificationInProgressError(
                f"Verification for {self._session.provider_id} is still running",
                details={"provider_id": self._session.provider_id},
            )
        schema = self.registry.schema_for(provider_id)
        relay_settings = self.settings.relay
        plan = select_delivery(
            origin,
            schema.provider_id,
            identity.user_id,
            relay_settings.base_url,
            callback_path=relay_settings.callback_path,
        )
        if plan.uses_relay and self.relay is None:
            plan = DeliveryPlan(channel=DeliveryChannel.DIRECT)
        session = VerificationSession(
            provider_id=schema.provider_id,
            delivery_channel=plan.channel,
            started_at=self._clock(),
            session_id=plan.session_id,
            callback_url=plan.callback_url,
            is_loopback=not is_publicly_reachable(origin),
            status=VerificationStatus.REQUESTING,
        )
        queue: asyncio.Queue = asyncio.Queue()
        self._session, self._queue = session, queue

        try:
            plan, request, session.request_url = await negotiate_delivery(
                lambda: self.attestation.init_request(schema.template_id),
                plan,
            )
        except Exception as exc:
            LOGGER.warning("Could not create the attestation request for %s: %s", schema.provider_id, exc)
            outcome = self._fail_request(session, _as_request_error(exc))
            self._task = asyncio.get_running_loop().create_future()
            self._task.set_result(outcome)
            return session
        session.delivery_channel = plan.channel
        session.session_id = plan.session_id
        session.callback_url = plan.callback_url
        session.status = VerificationStatus.AWAITING_PROOF
        self.observability.emit_event(
            "verification.started",
            provider_id=session.provider_id,
            delivery_channel=session.delivery_channel.value,
            session_id=session.session_id,
        )
        self._task = asyncio.create_task(self._run(session, queue, request, identity))
        return session

    async def wait(self) -> VerificationOutcome:
        if self._task is None:
            raise RuntimeError("No verification has been started")
        return await self._task

    async def verify(self, provider_id: str, identity: UserIdentity, *, origin: str) -> VerificationOutcome:
        await self.start(provider_id, identity, origin=origin)
        return await self.wait()

    def set_page_visible(self, visible: bool) -> None:
        """Record a page visibility change for the active session."""

        self._page_visible = visible
        if self._queue is not None and self._session is not None and not self._session.is_terminal:
            self._queue.put_nowait(_VisibilityChanged(visible))

    def cancel(self) -> None:
        """Abandon the active session; late results are ignored."""

        session = self._session
        if session is None or session.is_terminal:
            return
        session.status = VerificationStatus.FAILED
        session.failure_reason = "cancelled"
        if self._queue is not None:
            self._queue.put_nowait(_Cancelled())

    async def recover_from_redirect(
        self,
        fragment: Optional[str],
        identity: UserIdentity,
    ) -> Optional[VerificationOutcome]:
        """Process a proof delivered through a ``#reclaim_proof=`` redirect.

        Independent of any live session. The provider is reconstructed from the
        proof itself; ``None`` means the fragment carried nothing to process.
        """

        result = parse_redirect_fragment(fragment)
        if result is None:
            return None
        channel = DeliveryChannel.REDIRECT_RECOVERY
        if isinstance(result, RedirectError):
            error = AttestationSdkError(f"Redirect reported an error: {result.reason}")
            return self._failure(None, channel, error, "redirect_error")
        try:
            provider_id = self._provider_for(result.proof)
            return await self._extract_and_submit(result.proof, provider_id, identity, channel, source="redirect")
        except _SessionFailed as failure:
            return self._failure(None, channel, failure.error, failure.reason)

    def _provider_for(self, proof: Any) -> str:
        provider_id = infer_provider(proof, registry=self.registry)
        if provider_id is not None:
            return provider_id
        raise _SessionFailed(
            ProofMalformedError("Could not determine the provider of the redirected proof"),
            "extraction_failed",
        )

    def _fail_request(self, session: VerificationSession, error: ProofBridgeError) -> VerificationOutcome:
        reason = "network" if isinstance(error, TransientNetworkError) else "request_failed"
        return self._finish_failed(session, error, reason)

    async def _run(
        self,
        session: VerificationSession,
        queue: asyncio.Queue,
        request: AttestationRequest,
        identity: UserIdentity,
    ) -> VerificationOutcome:
        workers = []
        try:
            with capture_sdk_proofs(self.settings.attestation.sdk_logger) as capture:
                workers.append(asyncio.create_task(self._await_sdk(request, queue)))
                if session.delivery_channel is DeliveryChannel.RELAY_POLLING and session.session_id:
                    workers.append(asyncio.create_task(self._poll_relay(session, queue)))
                proof, source = await self._await_proof(session, queue, capture)
            for worker in workers:
                worker.cancel()
            return await self._extract_and_submit(
                proof,
                session.provider_id,
                identity,
                session.delivery_channel,
                source=source,
                session=session,
            )
        except _SessionFailed as failure:
            return self._finish_failed(session, failure.error, failure.reason)
        except Exception as exc:
            LOGGER.exception("Verification for %s crashed", session.provider_id)
            return self._finish_failed(session, as_sdk_error(exc), "internal_error")
        finally:
            for worker in workers:
                worker.cancel()
            if not session.is_terminal:
                session.status = VerificationStatus.FAILED
                session.failure_reason = session.failure_reason or "interrupted"

    async def _await_sdk(self, request: AttestationRequest, queue: asyncio.Queue) -> None:
        try:
            result = await request.wait_for_proof()
        except Exception as exc:
            # Any exception from the SDK counts as an SDK failure.
            queue.put_nowait(_SdkFailed(as_sdk_error(exc)))
            return
        queue.put_nowait(_ProofArrived(result, source="sdk"))

    async def _poll_relay(self, session: VerificationSession, queue: asyncio.Queue) -> None:
        delivery = self.settings.delivery
        await self._sleep(delivery.poll_initial_delay_seconds)
        for attempt in range(1, delivery.poll_max_attempts + 1):
            if session.is_terminal:
                return
            proof = await self.relay.fetch_proof(session.session_id)
            if proof is not None:
                LOGGER.info("Relay delivered proof for %s on attempt %d", session.session_id, attempt)
                queue.put_nowait(_ProofArrived(proof, source="relay"))
                return
            if attempt < delivery.poll_max_attempts:
                await self._sleep(delivery.poll_interval_seconds)
        queue.put_nowait(_RelayExhausted(delivery.poll_max_attempts))

    async def _await_proof(
        self,
        session: VerificationSession,
        queue: asyncio.Queue,
        capture: ProofCaptureHandler,
    ) -> tuple[Any, str]:
        gate = FailureGate(self.policy, session.started_at, clock=self._clock, page_visible=self._page_visible)
        while True:
            if session.is_terminal:
                raise _SessionFailed(UserCancelledError("Verification cancelled"), session.failure_reason or "cancelled")
            timeout = gate.seconds_until_release()
            try:
                event: _Event = await asyncio.wait_for(queue.get(), timeout)
            except asyncio.TimeoutError:
                released = gate.on_tick()
            else:
                if isinstance(event, _Cancelled):
                    raise _SessionFailed(UserCancelledError("Verification cancelled"), "cancelled")
                if isinstance(event, _ProofArrived):
                    if not isinstance(parse_envelope(event.proof), RelayNotice):
                        gate.on_proof()
                        session.pending_error = None
                        return event.proof, event.source
                    LOGGER.info("SDK reported the proof was delivered elsewhere: %s", event.proof)
                    if session.delivery_channel is DeliveryChannel.RELAY_POLLING:
                        continue
                    released = gate.offer(ProofPendingNotice("Proof was sent to a callback this session does not poll"))
                elif isinstance(event, _RelayExhausted):
                    session.captured_proof = capture.captured_proof
                    if session.captured_proof is not None:
                        return session.captured_proof, "side_channel"
                    raise _SessionFailed(
                        ProofTimeoutError(
                            f"No proof on the relay after {event.attempts} attempts",
                            details={"session_id": session.session_id},
                        ),
                        "proof_timeout",
                    )
                elif isinstance(event, _VisibilityChanged):
                    released = gate.on_visibility_change(event.visible)
                else:
                    released = gate.offer(event.error)
                    if released is None:
                        LOGGER.info("Deferring SDK error while the page is hidden: %s", event.error.message)
            recovered = self._resolve(session, released, capture, gate)
            session.pending_error = gate.parked
            if recovered is not None:
                return recovered

    def _resolve(
        self,
        session: VerificationSession,
        released: Optional[ProofBridgeError],
        capture: ProofCaptureHandler,
        gate: FailureGate,
    ) -> Optional[tuple[Any, str]]:
        """Surface a released error; ``None`` means keep waiting."""

        if released is None:
            return None
        try:
            return self._surface(session, released, capture)
        except _SessionFailed as failure:
            # Cancellation is only acted on while the user can see the page.
            if failure.reason == "cancelled" and not gate.page_visible:
                LOGGER.info("Holding cancellation until the page is visible: %s", failure.error.message)
                gate.hold_until_visible(failure.error)
                return None
            # In the relay channel the proof can still land after the SDK gives up.
            if failure.reason == "proof_pending" and session.delivery_channel is DeliveryChannel.RELAY_POLLING:
                self.observability.emit_event(
                    "verification.pending",
                    provider_id=session.provider_id,
                    session_id=session.session_id,
                )
                return None
            raise

    def _surface(
        self,
        session: VerificationSession,
        error: ProofBridgeError,
        capture: ProofCaptureHandler,
    ) -> tuple[Any, str]:
        """Classify an SDK error; return a recovered proof or raise the terminal failure."""

        classified = classify_sdk_error(error)
        if isinstance(classified, TransientNetworkError):
            raise _SessionFailed(classified, "network")
        if isinstance(classified, UserCancelledError):
            raise _SessionFailed(classified, "cancelled")

        session.captured_proof = capture.captured_proof
        if session.captured_proof is not None:
            LOGGER.info("Recovered proof from SDK diagnostics after error: %s", error.message)
            return session.captured_proof, "side_channel"
        if isinstance(classified, ProofPendingNotice):
            raise _SessionFailed(classified, "proof_pending")
        recovered = proof_from_error(error)
        if recovered is not None:
            LOGGER.info("Recovered proof attached to SDK error: %s", error.message)
            return recovered, "sdk_error"
        raise _SessionFailed(error, "sdk_error")

    async def _extract_and_submit(
        self,
        proof: Any,
        provider_id: str,
        identity: UserIdentity,
        channel: DeliveryChannel,
        *,
        source: str,
        session: VerificationSession | None = None,
    ) -> VerificationOutcome:
        if session is not None:
            if session.is_terminal:
                raise _SessionFailed(UserCancelledError("Verification cancelled"), session.failure_reason or "cancelled")
            session.status = VerificationStatus.EXTRACTING
        self.observability.emit_event(
            "verification.proof_received",
            provider_id=provider_id,
            delivery_channel=channel.value,
            source=source,
        )
        try:
            record = normalize(proof, provider_id, registry=self.registry)
        except ProofMalformedError as exc:
            raise _SessionFailed(exc, "extraction_failed") from exc
        identifier = proof_identifier(proof)

        if session is not None:
            if session.is_terminal:
                raise _SessionFailed(UserCancelledError("Verification cancelled"), session.failure_reason or "cancelled")
            session.status = VerificationStatus.SUBMITTING
        try:
            receipt = await self.submitter.submit(
                record,
                provider_id,
                identifier,
                identity=identity,
                delivery_channel=channel,
            )
        except ProofBridgeError as exc:
            reason = "ledger_rejected" if exc.code == "LEDGER_REJECTED" else "network"
            raise _SessionFailed(exc, reason) from exc

        if session is not None:
            if session.is_terminal:
                # Cancelled while the submission was in flight; the late result is ignored.
                LOGGER.info("Ignoring accepted contribution for cancelled session %s", session.session_id)
                raise _SessionFailed(UserCancelledError("Verification cancelled"), session.failure_reason or "cancelled")
            session.status = VerificationStatus.SUCCEEDED
            self._record_timing(session, "succeeded")
        self.observability.emit_event(
            "verification.succeeded",
            provider_id=provider_id,
            delivery_channel=channel.value,
            proof_identifier=identifier,
            points_awarded=receipt.points_awarded,
        )
        return VerificationOutcome(
            status=VerificationStatus.SUCCEEDED,
            provider_id=provider_id,
            delivery_channel=channel,
            record=record,
            proof_identifier=identifier,
            receipt=receipt,
            proof_source=source,
        )

    def _finish_failed(self, session: VerificationSession, error: ProofBridgeError, reason: str) -> VerificationOutcome:
        if session.failure_reason == "cancelled":
            reason = "cancelled"
            if not isinstance(error, UserCancelledError):
                error = UserCancelledError("Verification cancelled")
        session.status = VerificationStatus.FAILED
        session.failure_reason = reason
        self._record_timing(session, "failed")
        return self._failure(session.provider_id, session.delivery_channel, error, reason)

    def _failure(
        self,
        provider_id: Optional[str],
        channel: DeliveryChannel,
        error: ProofBridgeError,
        reason: str,
    ) -> VerificationOutcome:
        LOGGER.warning("Verification failed (%s): %s", reason, error)
        self.observability.emit_event(
            "verification.failed",
            provider_id=provider_id,
            delivery_channel=channel.value,
            reason=reason,
            code=error.code,
        )
        return VerificationOutcome(
            status=VerificationStatus.FAILED,
            provider_id=provider_id,
            delivery_channel=channel,
            error=error,
            failure_reason=reason,
        )

    def _record_timing(self, session: VerificationSession, result: str) -> None:
        elapsed_ms = (self._clock() - session.started_at) * 1000
        self.observability.record_timing(
            "verification.duration",
            elapsed_ms,
            tags={"provider": session.provider_id, "result": result},
        )


__all__ = ["VerificationOrchestrator", "proof_from_error"]
