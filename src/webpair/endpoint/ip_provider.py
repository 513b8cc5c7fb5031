"""LAN address discovery for the local endpoint.

The address announced to the browser must be reachable from the same Wi-Fi
network, so physical interfaces win over VPN tunnels.
"""

import ipaddress
import logging
import socket
from typing import Protocol

import netifaces

from webpair.errors import WebpairError

logger = logging.getLogger(__name__)


class IpDiscoveryError(WebpairError):
    """Failed to discover a reachable IP address."""

    pass


class IpProvider(Protocol):
    """Protocol for IP address discovery."""

    async def get_ip(self) -> str:
        """Get the address to announce.

        Raises:
            IpDiscoveryError: If no usable address is found.
        """
        ...


class LocalNetworkIpProvider:
    """Discovers the LAN IP address, preferring physical interfaces.

    Example:
        provider = LocalNetworkIpProvider()
        ip = await provider.get_ip()  # "192.168.1.5"
    """

    PHYSICAL_PREFIXES = ("en", "eth", "wlan", "wl", "bridge")
    VPN_PREFIXES = ("utun", "tun", "tap", "wg", "tailscale", "ppp", "ipsec")

    async def get_ip(self) -> str:
        ip = self._physical_interface_ip()
        if ip:
            return ip

        # Default-route trick; no packet is sent for a UDP connect.
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
                s.connect(("8.8.8.8", 80))
                ip = s.getsockname()[0]
        except OSError as e:
            raise IpDiscoveryError(f"No network to discover a local IP: {e}")

        if ip == "0.0.0.0" or ip.startswith("127."):
            raise IpDiscoveryError(f"Got unusable local address {ip}")
        return ip

    def _physical_interface_ip(self) -> str | None:
        for iface in netifaces.interfaces():
            if iface.startswith("lo"):
                continue
            if iface.startswith(self.VPN_PREFIXES):
                continue
            if not iface.startswith(self.PHYSICAL_PREFIXES):
                continue

            try:
                addrs = netifaces.ifaddresses(iface).get(netifaces.AF_INET, [])
            except ValueError:
                # Interface vanished between listing and lookup
                continue

            for addr in addrs:
                ip = addr.get("addr")
                if ip and not ip.startswith("127.") and not ip.startswith("169.254."):
                    logger.debug(f"Using {ip} on {iface}")
                    return ip
        return None


class StaticIpProvider:
    """Announces a configured address.

    Example:
        provider = StaticIpProvider("192.168.1.100")
    """

    def __init__(self, ip: str):
        """Initialize with static IP.

        Raises:
            ValueError: If the address is not a routable unicast IP.
        """
        address = ipaddress.ip_address(ip)
        if address.is_unspecified or address.is_multicast or str(address) == "255.255.255.255":
            raise ValueError(f"IP '{ip}' is not routable")
        self._ip = ip

    async def get_ip(self) -> str:
        return self._ip
