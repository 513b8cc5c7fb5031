"""Local endpoint launcher.

Starts a LocalEndpointServer for a pairing token and reports the address
the browser should use to reach it.
"""

import errno
import logging
import random
from typing import Optional

from webpair.config import EndpointConfig
from webpair.endpoint.ip_provider import (
    IpDiscoveryError,
    IpProvider,
    LocalNetworkIpProvider,
    StaticIpProvider,
)
from webpair.endpoint.server import LocalEndpointServer
from webpair.errors import LaunchError
from webpair.pairing.types import LocalEndpointInfo

logger = logging.getLogger(__name__)

PORT_RANGE = (49152, 65535)
MAX_BIND_ATTEMPTS = 5


class LocalEndpointLauncher:
    """Starts one local endpoint at a time.

    Starting a new endpoint stops the previous one.
    """

    def __init__(
        self,
        config: Optional[EndpointConfig] = None,
        ip_provider: Optional[IpProvider] = None,
    ):
        """Initialize launcher.

        Args:
            config: Endpoint settings (bind address, port, advertised host).
            ip_provider: Address discovery; defaults to the advertised host
                from config, else LAN discovery.
        """
        self.config = config or EndpointConfig()
        if ip_provider is None:
            if self.config.advertise_host:
                ip_provider = StaticIpProvider(self.config.advertise_host)
            else:
                ip_provider = LocalNetworkIpProvider()
        self._ip_provider = ip_provider
        self.server: Optional[LocalEndpointServer] = None

    def _candidate_ports(self) -> list[int]:
        if self.config.port:
            return [self.config.port]
        return [random.randint(*PORT_RANGE) for _ in range(MAX_BIND_ATTEMPTS)]

    async def start(self, token: str) -> LocalEndpointInfo:
        """Start an endpoint protected by ``token``.

        Raises:
            LaunchError: If no address can be discovered or bound.
        """
        await self.stop()

        try:
            host = await self._ip_provider.get_ip()
        except IpDiscoveryError as e:
            raise LaunchError(str(e)) from e

        server = LocalEndpointServer(token)
        last_error: Optional[OSError] = None
        for port in self._candidate_ports():
            try:
                bound_port = await server.start(self.config.bind_address, port)
            except OSError as e:
                last_error = e
                if e.errno == errno.EADDRINUSE and not self.config.port:
                    logger.debug(f"Port {port} in use, trying another")
                    continue
                break
            self.server = server
            return LocalEndpointInfo(host=host, port=bound_port)

        raise LaunchError(f"Cannot bind {self.config.bind_address}: {last_error}")

    async def stop(self) -> None:
        server, self.server = self.server, None
        if server is not None:
            await server.stop()
