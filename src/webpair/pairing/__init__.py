"""Pairing module for webpair.

Provides the phone side of QR pairing:
- Payload decoding and validation
- Relay handshake client
- Pairing session controller (state machine)
"""

from .controller import PairingAttempt, PairingController, PairingPhase
from .messages import PhoneReady, RelayErrorMessage, UnknownRelayMessage
from .payload import (
    PairingRequest,
    PayloadError,
    PayloadErrorCode,
    encode_payload,
    parse_payload,
)
from .relay_client import RelayConnection, RelayHandshakeClient, RelayState
from .types import CallbackHandoff, EndpointLauncher, LocalEndpointInfo, SessionHandoff

__all__ = [
    "CallbackHandoff",
    "EndpointLauncher",
    "LocalEndpointInfo",
    "PairingAttempt",
    "PairingController",
    "PairingPhase",
    "PairingRequest",
    "PayloadError",
    "PayloadErrorCode",
    "PhoneReady",
    "RelayConnection",
    "RelayErrorMessage",
    "RelayHandshakeClient",
    "RelayState",
    "SessionHandoff",
    "UnknownRelayMessage",
    "encode_payload",
    "parse_payload",
]
