"""Development rendezvous relay."""

from .server import RelayServer, RelaySession

__all__ = ["RelayServer", "RelaySession"]
