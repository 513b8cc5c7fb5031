"""Shared pairing types and collaborator protocols."""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol


@dataclass(frozen=True)
class LocalEndpointInfo:
    """Reachable address of the local endpoint."""

    host: str
    port: int

    def to_dict(self) -> dict[str, Any]:
        """Hand-off boundary shape."""
        return {"host": self.host, "port": self.port}


class EndpointLauncher(Protocol):
    """Protocol for the local endpoint launcher."""

    async def start(self, token: str) -> LocalEndpointInfo:
        """Start an endpoint that authenticates peers with ``token``.

        Raises:
            LaunchError: If the endpoint could not be started.
        """
        ...

    async def stop(self) -> None:
        """Stop the endpoint started by the last ``start`` call, if any."""
        ...


class SessionHandoff(Protocol):
    """Protocol for the stage that takes over after pairing."""

    async def on_paired(self, endpoint: LocalEndpointInfo) -> None:
        """Receive the negotiated endpoint address."""
        ...


class CallbackHandoff:
    """Adapts an async callable to the SessionHandoff protocol."""

    def __init__(self, callback: Callable[[LocalEndpointInfo], Awaitable[None]]):
        self._callback = callback

    async def on_paired(self, endpoint: LocalEndpointInfo) -> None:
        await self._callback(endpoint)
