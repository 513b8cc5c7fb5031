"""Pairing session controller.

Drives one pairing attempt from scanned text to hand-off:

    IDLE -> VALIDATING -> LAUNCHING_ENDPOINT -> HANDSHAKING -> CONNECTED

Any failure records a single error message and returns to IDLE so the next
scan is accepted. Scans arriving while an attempt is in flight are dropped;
QR scanners report the same code several times in quick succession.

Each attempt carries an id. Every continuation compares its id with the
current attempt before touching state, so a cancelled or superseded attempt
can never hand off or overwrite the error of a newer one.
"""

import asyncio
import contextlib
import itertools
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Optional

from webpair.errors import LaunchError, RelayError, TransportError, WebpairError
from webpair.pairing.messages import PhoneReady
from webpair.pairing.payload import (
    PAYLOAD_KIND,
    PROTOCOL_VERSION,
    PairingRequest,
    PayloadError,
    parse_payload,
)
from webpair.pairing.relay_client import (
    TRANSPORT_FAILURE_MESSAGE,
    RelayClosed,
    RelayConnection,
    RelayHandshakeClient,
    RelayMessageIgnored,
    RelayOpened,
    RelayReportedError,
    RelayTransportFailed,
)
from webpair.pairing.types import EndpointLauncher, LocalEndpointInfo, SessionHandoff

logger = logging.getLogger(__name__)


class PairingPhase(Enum):
    """Controller phases."""

    IDLE = auto()
    VALIDATING = auto()
    LAUNCHING_ENDPOINT = auto()
    HANDSHAKING = auto()
    CONNECTED = auto()


@dataclass
class PairingAttempt:
    """Working state of the current attempt.

    Attributes:
        attempt_id: Monotonic attempt identity.
        phase: Current phase.
        request: Validated request, once known.
        endpoint: Local endpoint address, once launched.
        error: Last error message, if any.
    """

    attempt_id: int
    phase: PairingPhase = PairingPhase.IDLE
    request: Optional[PairingRequest] = None
    endpoint: Optional[LocalEndpointInfo] = None
    error: Optional[str] = None


PhaseListener = Callable[[PairingPhase], None]


class PairingController:
    """Sequences validation, endpoint launch, relay handshake and hand-off."""

    def __init__(
        self,
        launcher: EndpointLauncher,
        relay_client: RelayHandshakeClient,
        handoff: SessionHandoff,
        *,
        kind: str = PAYLOAD_KIND,
        version: int = PROTOCOL_VERSION,
    ):
        """Initialize controller.

        Args:
            launcher: Starts the token-protected local endpoint.
            relay_client: Creates relay connections.
            handoff: Receives the endpoint address after pairing.
            kind: Accepted payload discriminator.
            version: Accepted payload version.
        """
        self._launcher = launcher
        self._relay_client = relay_client
        self._handoff = handoff
        self._kind = kind
        self._version = version

        self._ids = itertools.count(1)
        self._attempt = PairingAttempt(attempt_id=0)
        self._connection: Optional[RelayConnection] = None
        self._endpoint_owner: Optional[int] = None
        self._task: Optional[asyncio.Task] = None
        self._listeners: list[PhaseListener] = []
        self._closed = False

    @property
    def phase(self) -> PairingPhase:
        return self._attempt.phase

    @property
    def error(self) -> Optional[str]:
        return self._attempt.error

    @property
    def is_busy(self) -> bool:
        """True while an attempt is in flight."""
        return self._attempt.phase not in (PairingPhase.IDLE, PairingPhase.CONNECTED)

    @property
    def attempt(self) -> PairingAttempt:
        return self._attempt

    def add_listener(self, listener: PhaseListener) -> None:
        """Register a callback invoked with the new phase on every change."""
        self._listeners.append(listener)

    def dismiss_error(self) -> None:
        self._attempt.error = None

    def _accepts_scan(self) -> bool:
        return not self._closed and self._attempt.phase == PairingPhase.IDLE

    def on_barcode_scanned(self, raw: str) -> Optional[asyncio.Task]:
        """Scanner callback entry point.

        Returns:
            Task running the attempt, or None if the scan was dropped.
        """
        if not self._accepts_scan():
            logger.debug("Scan dropped, attempt already in flight")
            return None
        attempt_id = self._begin_attempt()
        self._task = asyncio.create_task(self._run_attempt(attempt_id, raw))
        return self._task

    async def handle_scan(self, raw: str) -> bool:
        """Run one pairing attempt for scanned text.

        Returns:
            False if the scan was dropped because an attempt is in flight
            (or the controller is closed or already connected), True once
            the attempt has finished, successfully or not, or was abandoned
            by ``close``.
        """
        task = self.on_barcode_scanned(raw)
        if task is None:
            return False
        try:
            await task
        except asyncio.CancelledError:
            if self._closed and task.cancelled():
                return True
            raise
        return True

    def _begin_attempt(self) -> int:
        # Synchronous: the guard and this phase change happen before any await.
        self._attempt = PairingAttempt(
            attempt_id=next(self._ids), phase=PairingPhase.VALIDATING
        )
        self._notify()
        return self._attempt.attempt_id

    def _is_current(self, attempt_id: int) -> bool:
        return not self._closed and self._attempt.attempt_id == attempt_id

    def _set_phase(self, attempt_id: int, phase: PairingPhase) -> None:
        if not self._is_current(attempt_id):
            return
        self._attempt.phase = phase
        self._notify()

    def _notify(self) -> None:
        phase = self._attempt.phase
        for listener in list(self._listeners):
            try:
                listener(phase)
            except Exception:
                logger.exception("Phase listener failed")

    async def _run_attempt(self, attempt_id: int, raw: str) -> None:
        try:
            await self._run_steps(attempt_id, raw)
        except asyncio.CancelledError:
            # Cancelled by the caller rather than by close()
            if self._is_current(attempt_id):
                await self._abandon(attempt_id)
            raise

    async def _run_steps(self, attempt_id: int, raw: str) -> None:
        result = parse_payload(raw, kind=self._kind, version=self._version)
        if isinstance(result, PayloadError):
            logger.info(f"Rejected QR payload ({result.code.name})")
            await self._fail(attempt_id, result.message)
            return

        request = result
        self._attempt.request = request
        self._set_phase(attempt_id, PairingPhase.LAUNCHING_ENDPOINT)

        try:
            endpoint = await self._launcher.start(request.token)
        except LaunchError as e:
            logger.warning(f"Local endpoint failed to start: {e}")
            await self._fail(attempt_id, f"Failed to start local server: {e}")
            return
        except Exception as e:
            logger.exception("Unexpected local endpoint failure")
            await self._fail(attempt_id, f"Failed to start local server: {e}")
            return

        if not self._is_current(attempt_id):
            # Torn down while launching; the endpoint belongs to nobody now.
            await self._stop_endpoint()
            return

        self._endpoint_owner = attempt_id
        self._attempt.endpoint = endpoint
        self._set_phase(attempt_id, PairingPhase.HANDSHAKING)
        logger.info(
            f"Local endpoint at {endpoint.host}:{endpoint.port}, "
            f"handshaking for session {request.session_id[:8]}..."
        )

        error = await self._handshake(attempt_id, request, endpoint)

        if not self._is_current(attempt_id):
            return

        if error is not None:
            await self._fail(attempt_id, str(error))
            return

        await self._complete(attempt_id, endpoint)

    async def _handshake(
        self,
        attempt_id: int,
        request: PairingRequest,
        endpoint: LocalEndpointInfo,
    ) -> Optional[WebpairError]:
        """Run the relay exchange.

        Returns:
            None on a clean relay close, otherwise the handshake error.
            Also None if the attempt stopped being current.
        """
        ready = PhoneReady(ip=endpoint.host, port=endpoint.port, token=request.token)
        connection: Optional[RelayConnection] = None

        try:
            connection = self._relay_client.connect(request.relay_address, request.session_id)
            self._connection = connection
            async with contextlib.aclosing(connection.run(ready)) as events:
                async for event in events:
                    if not self._is_current(attempt_id):
                        return None
                    if isinstance(event, RelayOpened):
                        logger.debug("Relay open, waiting for relay to close")
                    elif isinstance(event, RelayMessageIgnored):
                        logger.debug(f"Ignored relay message {event.message.type!r}")
                    elif isinstance(event, RelayReportedError):
                        logger.warning(f"Relay reported error: {event.message}")
                        return RelayError(event.message)
                    elif isinstance(event, RelayTransportFailed):
                        logger.warning(f"Relay transport failure: {event.detail}")
                        return TransportError(event.message)
                    elif isinstance(event, RelayClosed):
                        logger.info(f"Relay closed (code {event.code}), pairing complete")
                        return None
        except Exception:
            logger.exception("Unexpected relay failure")
            return TransportError(TRANSPORT_FAILURE_MESSAGE)
        finally:
            if connection is not None:
                if self._connection is connection:
                    self._connection = None
                await connection.close()

        # Stream ended without a terminal event: abandoned from our side.
        if self._is_current(attempt_id):
            return TransportError(TRANSPORT_FAILURE_MESSAGE)
        return None

    async def _complete(self, attempt_id: int, endpoint: LocalEndpointInfo) -> None:
        self._set_phase(attempt_id, PairingPhase.CONNECTED)
        # The endpoint now belongs to the next stage.
        self._endpoint_owner = None
        self._attempt.request = None
        try:
            await self._handoff.on_paired(endpoint)
        except Exception:
            logger.exception("Session hand-off failed")

    async def _fail(self, attempt_id: int, message: str) -> None:
        if not self._is_current(attempt_id):
            return
        if self._endpoint_owner == attempt_id:
            await self._stop_endpoint()
        if not self._is_current(attempt_id):
            return
        self._attempt.error = message
        self._attempt.request = None
        self._attempt.endpoint = None
        self._set_phase(attempt_id, PairingPhase.IDLE)

    async def _abandon(self, attempt_id: int) -> None:
        """Return to IDLE after the attempt task was cancelled from outside."""
        phase = self._attempt.phase
        if phase == PairingPhase.CONNECTED:
            return
        if self._endpoint_owner == attempt_id or phase == PairingPhase.LAUNCHING_ENDPOINT:
            await self._stop_endpoint()
        if not self._is_current(attempt_id):
            return
        logger.info("Pairing attempt cancelled")
        self._attempt.request = None
        self._attempt.endpoint = None
        self._set_phase(attempt_id, PairingPhase.IDLE)

    async def _stop_endpoint(self) -> None:
        self._endpoint_owner = None
        try:
            await self._launcher.stop()
        except Exception:
            logger.exception("Failed to stop local endpoint")

    async def close(self) -> None:
        """Tear down the controller.

        Abandons any in-flight attempt: the relay connection is closed, an
        endpoint launched by the attempt is stopped, and no hand-off happens.
        An endpoint already handed off is left running, and a hand-off that
        has started is awaited rather than cancelled.
        """
        if self._closed:
            return
        self._closed = True
        phase = self._attempt.phase
        launching = phase == PairingPhase.LAUNCHING_ENDPOINT

        connection, self._connection = self._connection, None
        if connection is not None:
            await connection.close()

        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            if phase == PairingPhase.CONNECTED:
                await task
            else:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        # A launch cut short by cancellation may still have bound a port.
        if self._endpoint_owner is not None or launching:
            await self._stop_endpoint()

        logger.info("Pairing controller closed")
