"""Development rendezvous relay.

The browser asks the relay for a session (``POST /create``), shows the
returned session id, token and relay URL as a QR code, and opens
``/ws/signaling?sessionId=...&role=browser``. The phone scans the code and
opens the same URL with ``role=phone``. When the phone sends
``phone-ready`` with the right token, the relay forwards its address (never
the token) to the browser and closes both sockets. Sessions expire after
``ttl_seconds``.
"""

import asyncio
import hmac
import json
import logging
import secrets
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, Optional, Set

from aiohttp import WSCloseCode, WSMsgType, web

from webpair.pairing.messages import ERROR, PHONE_READY

logger = logging.getLogger(__name__)

SIGNALING_PATH = "/ws/signaling"
ROLES = ("browser", "phone")


@dataclass
class RelaySession:
    """One rendezvous between a browser and a phone."""

    session_id: str
    token: str
    created_at: float = field(default_factory=time.time)
    browser_ws: Optional[web.WebSocketResponse] = None
    phone_ws: Optional[web.WebSocketResponse] = None
    expiry: Optional[asyncio.TimerHandle] = None


class RelayServer:
    """aiohttp application forwarding ``phone-ready`` to the browser."""

    def __init__(self, ttl_seconds: float = 300.0):
        """Initialize relay.

        Args:
            ttl_seconds: Lifetime of a session that never completes.
        """
        self.ttl_seconds = ttl_seconds
        self.sessions: Dict[str, RelaySession] = {}
        self._expiry_tasks: Set[asyncio.Task] = set()
        self.app = web.Application()
        self.app.on_shutdown.append(self._on_shutdown)
        self._setup_routes()

    def _setup_routes(self) -> None:
        self.app.router.add_get("/health", self._handle_health)
        self.app.router.add_post("/create", self._handle_create)
        self.app.router.add_get(SIGNALING_PATH, self._handle_signaling)

    def create_session(self) -> RelaySession:
        """Create a session and schedule its expiry."""
        session = RelaySession(
            session_id=str(uuid.uuid4()),
            token=secrets.token_hex(32),
        )
        loop = asyncio.get_running_loop()
        session.expiry = loop.call_later(
            self.ttl_seconds, self._start_expiry, session.session_id
        )
        self.sessions[session.session_id] = session
        logger.info(f"Relay session created: {session.session_id[:8]}...")
        return session

    def _start_expiry(self, session_id: str) -> None:
        task = asyncio.get_running_loop().create_task(self._expire(session_id))
        self._expiry_tasks.add(task)
        task.add_done_callback(self._expiry_done)

    def _expiry_done(self, task: asyncio.Task) -> None:
        self._expiry_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Relay session expiry failed", exc_info=task.exception())

    async def _expire(self, session_id: str) -> None:
        if session_id in self.sessions:
            logger.info(f"Relay session expired: {session_id[:8]}...")
            await self._cleanup_session(session_id, b"Session expired")

    async def _cleanup_session(self, session_id: str, reason: bytes) -> None:
        session = self.sessions.pop(session_id, None)
        if session is None:
            return
        if session.expiry is not None:
            session.expiry.cancel()
        for ws in (session.browser_ws, session.phone_ws):
            if ws is not None and not ws.closed:
                await ws.close(code=WSCloseCode.OK, message=reason)

    async def _on_shutdown(self, app: web.Application) -> None:
        for task in list(self._expiry_tasks):
            task.cancel()
        for session_id in list(self.sessions):
            await self._cleanup_session(session_id, b"Relay shutting down")

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.Response(text="OK")

    async def _handle_create(self, request: web.Request) -> web.Response:
        session = self.create_session()
        scheme = "wss" if request.secure else "ws"
        relay = f"{scheme}://{request.host}{SIGNALING_PATH}"
        return web.json_response(
            {"sessionId": session.session_id, "token": session.token, "relay": relay}
        )

    async def _handle_signaling(self, request: web.Request) -> web.StreamResponse:
        session_id = request.query.get("sessionId")
        role = request.query.get("role")

        session = self.sessions.get(session_id) if session_id else None
        if session is None or role not in ROLES:
            raise web.HTTPBadRequest()

        if (role == "browser" and session.browser_ws is not None) or (
            role == "phone" and session.phone_ws is not None
        ):
            raise web.HTTPConflict()

        ws = web.WebSocketResponse()
        await ws.prepare(request)
        logger.info(f"Relay {role} connected for session {session_id[:8]}...")

        if role == "browser":
            session.browser_ws = ws
        else:
            session.phone_ws = ws

        try:
            async for msg in ws:
                if role == "phone" and msg.type == WSMsgType.TEXT:
                    if await self._handle_phone_message(session, ws, msg.data):
                        break
        finally:
            if session.browser_ws is ws:
                session.browser_ws = None
            if session.phone_ws is ws:
                session.phone_ws = None

        return ws

    async def _handle_phone_message(
        self, session: RelaySession, ws: web.WebSocketResponse, data: str
    ) -> bool:
        """Handle a phone frame.

        Returns:
            True once the phone socket is finished.
        """
        try:
            msg = json.loads(data)
        except ValueError:
            await ws.send_json({"type": ERROR, "error": "Invalid JSON"})
            return False

        if not isinstance(msg, dict) or msg.get("type") != PHONE_READY:
            return False

        token = msg.get("token")
        if not isinstance(token, str) or not hmac.compare_digest(
            token.encode(), session.token.encode()
        ):
            logger.warning(f"Token mismatch for session {session.session_id[:8]}...")
            await ws.send_json({"type": ERROR, "error": "Invalid token"})
            await ws.close(code=WSCloseCode.POLICY_VIOLATION, message=b"Invalid token")
            return True

        browser = session.browser_ws
        if browser is not None and not browser.closed:
            await browser.send_json(
                {"type": PHONE_READY, "ip": msg.get("ip"), "port": msg.get("port")}
            )
            logger.info(f"Forwarded phone-ready for session {session.session_id[:8]}...")
        else:
            logger.warning(
                f"Browser not connected for session {session.session_id[:8]}..., "
                "cannot forward"
            )

        await self._cleanup_session(session.session_id, b"Signaling complete")
        return True

    async def start(self, host: str, port: int) -> web.AppRunner:
        """Start the relay.

        Returns:
            App runner (for cleanup).
        """
        runner = web.AppRunner(self.app)
        await runner.setup()
        site = web.TCPSite(runner, host, port)
        await site.start()
        logger.info(f"Relay started on {host}:{port}")
        return runner
