"""Local endpoint HTTP server.

Serves the browser over the LAN once pairing succeeds. Only the pieces the
pairing flow depends on live here: token-protected API routes, the
handshake probe the browser calls first, and a health check.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from aiohttp import web

from webpair.endpoint.auth import SessionAuth

logger = logging.getLogger(__name__)

API_PREFIX = "/api/"
# Authenticated by query parameter instead of header
HANDSHAKE_PATH = "/api/handshake"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class LocalEndpointServer:
    """aiohttp application for one pairing session.

    Handles:
    - GET /health (no auth)
    - GET /api/handshake?token=... (token in query)
    - GET /api/session (bearer auth)
    """

    def __init__(self, token: str, auth: Optional[SessionAuth] = None):
        """Initialize server.

        Args:
            token: Session token from the pairing payload.
            auth: Optional authenticator (for testing).
        """
        self.auth = auth or SessionAuth(token)
        self.started_at = _utc_now()
        self.app = web.Application(middlewares=[self._auth_middleware])
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._setup_routes()

    def _setup_routes(self) -> None:
        self.app.router.add_get("/health", self._handle_health)
        self.app.router.add_get(HANDSHAKE_PATH, self._handle_handshake)
        self.app.router.add_get("/api/session", self._handle_session)

    @web.middleware
    async def _auth_middleware(self, request: web.Request, handler):
        if not request.path.startswith(API_PREFIX) or request.path == HANDSHAKE_PATH:
            return await handler(request)

        result = self.auth.validate(request.headers.get("Authorization"), request.remote)
        if not result.authorized:
            return web.json_response({"error": result.error}, status=result.status)
        return await handler(request)

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.Response(text="OK")

    async def _handle_handshake(self, request: web.Request) -> web.Response:
        """Browser's first call after receiving the address from the relay."""
        client_ip = request.remote
        if self.auth.is_blocked(client_ip):
            return web.json_response(
                {"error": "Too many failed attempts. Try again later."}, status=429
            )

        if not self.auth.check_token(request.query.get("token")):
            self.auth.record_failure(client_ip)
            return web.json_response({"error": "Invalid token"}, status=401)

        logger.info(f"Browser handshake from {client_ip}")
        return web.json_response({"status": "connected", "timestamp": _utc_now()})

    async def _handle_session(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "active", "startedAt": self.started_at})

    async def start(self, host: str, port: int) -> int:
        """Start serving.

        Args:
            host: Address to bind to.
            port: Port to bind to (0 lets the OS choose).

        Returns:
            The bound port.

        Raises:
            OSError: If the address cannot be bound.
        """
        runner = web.AppRunner(self.app, access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, host, port)
        try:
            await site.start()
        except OSError:
            await runner.cleanup()
            raise

        self._runner = runner
        self._site = site
        addresses = runner.addresses
        bound_port = addresses[0][1] if addresses else port
        logger.info(f"Local endpoint listening on {host}:{bound_port}")
        return bound_port

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            logger.info("Local endpoint stopped")
