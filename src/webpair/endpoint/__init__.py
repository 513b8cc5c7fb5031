"""Local endpoint for webpair.

The token-protected server the browser reaches after pairing, and the
launcher the pairing controller uses to start it.
"""

from .auth import AuthResult, SessionAuth
from .ip_provider import IpDiscoveryError, LocalNetworkIpProvider, StaticIpProvider
from .launcher import LocalEndpointLauncher
from .server import LocalEndpointServer

__all__ = [
    "AuthResult",
    "IpDiscoveryError",
    "LocalEndpointLauncher",
    "LocalEndpointServer",
    "LocalNetworkIpProvider",
    "SessionAuth",
    "StaticIpProvider",
]
