"""Tests for the local endpoint launcher."""

import socket

import aiohttp
import pytest

from webpair.config import EndpointConfig
from webpair.endpoint.ip_provider import IpDiscoveryError, StaticIpProvider
from webpair.endpoint.launcher import LocalEndpointLauncher
from webpair.errors import LaunchError


class FailingIpProvider:
    """IP provider that always fails."""

    async def get_ip(self) -> str:
        raise IpDiscoveryError("Simulated failure")


def _local_config(**overrides):
    return EndpointConfig(bind_address="127.0.0.1", **overrides)


class TestLocalEndpointLauncher:
    """Tests for launching the endpoint."""

    @pytest.mark.asyncio
    async def test_start_serves_handshake(self):
        """The launched endpoint accepts the pairing token."""
        launcher = LocalEndpointLauncher(_local_config(), StaticIpProvider("127.0.0.1"))
        try:
            info = await launcher.start("t1")

            assert info.host == "127.0.0.1"
            assert 49152 <= info.port <= 65535
            async with aiohttp.ClientSession() as session:
                url = f"http://127.0.0.1:{info.port}/api/handshake"
                async with session.get(url, params={"token": "t1"}) as resp:
                    assert resp.status == 200
                async with session.get(url, params={"token": "t2"}) as resp:
                    assert resp.status == 401
        finally:
            await launcher.stop()

    @pytest.mark.asyncio
    async def test_advertise_host_from_config(self):
        """A configured advertise_host is announced as-is."""
        launcher = LocalEndpointLauncher(_local_config(advertise_host="192.168.1.5"))
        try:
            info = await launcher.start("t1")
            assert info.host == "192.168.1.5"
        finally:
            await launcher.stop()

    @pytest.mark.asyncio
    async def test_fixed_port(self, aiohttp_unused_port):
        """A configured port is used exactly."""
        port = aiohttp_unused_port()
        launcher = LocalEndpointLauncher(_local_config(port=port), StaticIpProvider("127.0.0.1"))
        try:
            info = await launcher.start("t1")
            assert info.port == port
        finally:
            await launcher.stop()

    @pytest.mark.asyncio
    async def test_fixed_port_in_use(self):
        """An occupied configured port is a launch error."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", 0))
            sock.listen(1)
            port = sock.getsockname()[1]

            launcher = LocalEndpointLauncher(
                _local_config(port=port), StaticIpProvider("127.0.0.1")
            )
            with pytest.raises(LaunchError, match="Cannot bind"):
                await launcher.start("t1")

        assert launcher.server is None

    @pytest.mark.asyncio
    async def test_ip_discovery_failure(self):
        """No usable address is a launch error."""
        launcher = LocalEndpointLauncher(_local_config(), FailingIpProvider())

        with pytest.raises(LaunchError, match="Simulated failure"):
            await launcher.start("t1")

    @pytest.mark.asyncio
    async def test_restart_replaces_previous_endpoint(self):
        """Starting again stops the earlier endpoint."""
        launcher = LocalEndpointLauncher(_local_config(), StaticIpProvider("127.0.0.1"))
        try:
            await launcher.start("t1")
            first = launcher.server
            await launcher.start("t2")

            assert launcher.server is not first
            assert first._runner is None
        finally:
            await launcher.stop()

    def test_invalid_advertise_host(self):
        """A bad advertise_host fails at construction."""
        with pytest.raises(ValueError):
            LocalEndpointLauncher(_local_config(advertise_host="0.0.0.0"))
