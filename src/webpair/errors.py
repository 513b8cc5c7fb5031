"""Base exceptions for webpair."""


class WebpairError(Exception):
    """Base exception for all webpair errors."""

    pass


class ConfigError(WebpairError):
    """Configuration could not be applied."""

    pass


class LaunchError(WebpairError):
    """Local endpoint could not be started (permission, no network, port)."""

    pass


class HandshakeError(WebpairError):
    """Relay handshake failed."""

    pass


class TransportError(HandshakeError):
    """Relay unreachable or the connection failed below the protocol level."""

    pass


class RelayError(HandshakeError):
    """Relay explicitly reported an error.

    The relay's message is kept verbatim for display.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
