"""Relay handshake client.

Opens a short-lived WebSocket to the rendezvous relay in the "phone" role,
announces the local endpoint once the socket is open, and reports what the
relay does next as a stream of events:

    connection = client.connect(relay_address, session_id)
    async with contextlib.aclosing(connection.run(ready)) as events:
        async for event in events:
            ...

The stream ends after its first terminal event (RelayReportedError,
RelayClosed, RelayTransportFailed). A clean close is the normal outcome:
the relay forwards ``phone-ready`` to the browser and hangs up.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import AsyncIterator, Optional, Union

import aiohttp
from yarl import URL

from webpair.pairing.messages import (
    PhoneReady,
    RelayErrorMessage,
    UnknownRelayMessage,
    decode_inbound,
)

logger = logging.getLogger(__name__)

PHONE_ROLE = "phone"
TRANSPORT_FAILURE_MESSAGE = "Failed to connect to signaling server"


class RelayState(Enum):
    """Relay connection states."""

    CONNECTING = auto()
    OPEN = auto()
    CLOSED = auto()
    ERRORED = auto()


@dataclass(frozen=True)
class RelayOpened:
    """Socket is open and ``phone-ready`` has been sent."""


@dataclass(frozen=True)
class RelayMessageIgnored:
    """Relay sent something this client does not act on."""

    message: UnknownRelayMessage


@dataclass(frozen=True)
class RelayReportedError:
    """Relay reported an error. Terminal."""

    message: str


@dataclass(frozen=True)
class RelayClosed:
    """Relay closed the socket without reporting an error. Terminal."""

    code: Optional[int] = None


@dataclass(frozen=True)
class RelayTransportFailed:
    """Relay unreachable or socket failure. Terminal."""

    message: str = TRANSPORT_FAILURE_MESSAGE
    detail: str = ""


RelayEvent = Union[
    RelayOpened,
    RelayMessageIgnored,
    RelayReportedError,
    RelayClosed,
    RelayTransportFailed,
]
TERMINAL_EVENTS = (RelayReportedError, RelayClosed, RelayTransportFailed)


def build_relay_url(relay_address: str, session_id: str, role: str = PHONE_ROLE) -> URL:
    """Relay address with ``sessionId`` and ``role`` query parameters merged in."""
    return URL(relay_address).update_query({"sessionId": session_id, "role": role})


class RelayConnection:
    """A single rendezvous exchange with the relay.

    ``run`` may be iterated once. ``close`` abandons the exchange from the
    caller's side; after it, ``run`` yields nothing further.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        url: URL,
        connect_timeout: float,
    ):
        self.url = url
        self.state = RelayState.CONNECTING
        self._session = session
        self._connect_timeout = connect_timeout
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._started = False
        self._abandoned = False

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def run(self, ready: PhoneReady) -> AsyncIterator[RelayEvent]:
        """Connect, send ``ready`` once, and yield relay events.

        Args:
            ready: The single outbound announcement.

        Yields:
            RelayEvent values; the last one is terminal unless the caller
            closed the connection first.
        """
        if self._started:
            raise RuntimeError("RelayConnection.run() can only be called once")
        self._started = True

        if self._abandoned:
            return

        try:
            self._ws = await asyncio.wait_for(
                self._session.ws_connect(self.url, autoclose=True),
                timeout=self._connect_timeout,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            self.state = RelayState.ERRORED
            logger.warning(f"Relay connect failed ({self.url.host}): {type(e).__name__}")
            yield RelayTransportFailed(detail=str(e) or type(e).__name__)
            return
        except Exception as e:
            self.state = RelayState.ERRORED
            logger.exception(f"Unexpected relay connect failure ({self.url.raw_host})")
            yield RelayTransportFailed(detail=str(e) or type(e).__name__)
            return

        try:
            if self._abandoned:
                return

            try:
                await self._ws.send_str(ready.encode())
            except (aiohttp.ClientError, ConnectionError) as e:
                self.state = RelayState.ERRORED
                yield RelayTransportFailed(detail=str(e) or type(e).__name__)
                return

            self.state = RelayState.OPEN
            logger.debug("Relay open, phone-ready sent")
            yield RelayOpened()

            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    inbound = decode_inbound(msg.data)
                    if isinstance(inbound, RelayErrorMessage):
                        self.state = RelayState.ERRORED
                        await self._ws.close()
                        yield RelayReportedError(message=inbound.error)
                        return
                    logger.debug(f"Ignoring relay message type {inbound.type!r}")
                    yield RelayMessageIgnored(message=inbound)
                elif msg.type == aiohttp.WSMsgType.BINARY:
                    yield RelayMessageIgnored(
                        message=UnknownRelayMessage(type=None, data=msg.data)
                    )
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    self.state = RelayState.ERRORED
                    yield RelayTransportFailed(detail=str(self._ws.exception() or ""))
                    return

            if self._abandoned:
                return

            if self._ws.exception() is not None:
                self.state = RelayState.ERRORED
                yield RelayTransportFailed(detail=str(self._ws.exception()))
                return

            self.state = RelayState.CLOSED
            logger.debug(f"Relay closed with code {self._ws.close_code}")
            yield RelayClosed(code=self._ws.close_code)
        finally:
            if self._ws is not None and not self._ws.closed:
                await self._ws.close()

    async def close(self) -> None:
        """Abandon the exchange and close the socket if open. Idempotent."""
        self._abandoned = True
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()


class RelayHandshakeClient:
    """Creates relay connections.

    Owns its aiohttp session only when it created it. There is no retry
    policy: a failed exchange needs a fresh QR scan.
    """

    def __init__(
        self,
        http_session: Optional[aiohttp.ClientSession] = None,
        connect_timeout: float = 10.0,
    ):
        """Initialize client.

        Args:
            http_session: Optional aiohttp session (for testing).
            connect_timeout: Seconds allowed for the WebSocket handshake.
        """
        self._session = http_session
        self._owns_session = http_session is None
        self.connect_timeout = connect_timeout

    def connect(
        self,
        relay_address: str,
        session_id: str,
        role: str = PHONE_ROLE,
    ) -> RelayConnection:
        """Prepare a connection; the socket opens when ``run`` is iterated.

        Must be called from within a running event loop.
        """
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

        url = build_relay_url(relay_address, session_id, role)
        logger.info(f"Connecting to relay {url.host} for session {session_id[:8]}...")
        return RelayConnection(self._session, url, self.connect_timeout)

    async def close(self) -> None:
        """Close the HTTP session if owned."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            # Allow event loop to clean up connector
            await asyncio.sleep(0)
        self._session = None
