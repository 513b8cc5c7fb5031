"""Pairing payload codec and validation.

The browser companion shows a QR code whose text is a JSON object:

    {"kind": "pair", "version": 1, "sessionId": "...", "token": "...",
     "relayAddress": "wss://..."}

``parse_payload`` never raises. It returns either a ``PairingRequest`` or a
``PayloadError`` whose code separates text that is not JSON at all
(MALFORMED, a damaged or foreign code) from JSON that is not a pairing
payload this app understands (INCOMPATIBLE, wrong app or version).
"""

import json
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Union

from yarl import URL

PAYLOAD_KIND = "pair"
PROTOCOL_VERSION = 1

REQUIRED_FIELDS = ("sessionId", "token", "relayAddress")
PAYLOAD_FIELDS = frozenset(("kind", "version") + REQUIRED_FIELDS)
RELAY_SCHEMES = frozenset(("ws", "wss", "http", "https"))

MALFORMED_MESSAGE = "Invalid QR code format"


class PayloadErrorCode(Enum):
    """Payload validation error codes."""

    MALFORMED = auto()
    INCOMPATIBLE = auto()


@dataclass(frozen=True)
class PayloadError:
    """Result of a payload that failed validation."""

    code: PayloadErrorCode
    message: str


@dataclass(frozen=True)
class PairingRequest:
    """A validated pairing request, scoped to a single pairing attempt.

    Attributes:
        kind: Payload discriminator.
        version: Pairing protocol version.
        session_id: Relay-scoped correlation key.
        token: Single-use bearer credential for the local endpoint.
        relay_address: URI of the rendezvous relay.
    """

    kind: str
    version: int
    session_id: str
    token: str
    relay_address: str

    def __repr__(self) -> str:
        return (
            f"PairingRequest(kind={self.kind!r}, version={self.version}, "
            f"session_id={self.session_id[:8]!r}..., relay_address={self.relay_address!r})"
        )


ParseResult = Union[PairingRequest, PayloadError]


def _incompatible(message: str) -> PayloadError:
    return PayloadError(code=PayloadErrorCode.INCOMPATIBLE, message=message)


def _is_relay_url(value: str) -> bool:
    try:
        url = URL(value)
    except (TypeError, ValueError):
        return False
    if not (url.is_absolute() and url.scheme in RELAY_SCHEMES and url.raw_host):
        return False
    # Empty or overlong labels ("a..b") only fail once the host is resolved
    try:
        url.raw_host.encode("idna")
    except UnicodeError:
        return False
    return True


def parse_payload(
    raw: Any,
    *,
    kind: str = PAYLOAD_KIND,
    version: int = PROTOCOL_VERSION,
) -> ParseResult:
    """Decode and validate scanned QR text.

    Args:
        raw: Scanned text (str, or UTF-8 bytes).
        kind: Accepted discriminator.
        version: Accepted protocol version.

    Returns:
        PairingRequest with every field taken verbatim from the payload,
        or PayloadError describing why it was rejected.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return PayloadError(PayloadErrorCode.MALFORMED, MALFORMED_MESSAGE)

    if not isinstance(raw, str):
        return PayloadError(PayloadErrorCode.MALFORMED, MALFORMED_MESSAGE)

    try:
        data = json.loads(raw)
    except (ValueError, RecursionError):
        return PayloadError(PayloadErrorCode.MALFORMED, MALFORMED_MESSAGE)

    expected = f"Invalid QR code. Expected a '{kind}' code, version {version}"

    if not isinstance(data, dict):
        return _incompatible(expected)

    if data.get("kind") != kind:
        return _incompatible(expected)

    # bool is an int subclass; True must not pass for version 1
    payload_version = data.get("version")
    if (
        isinstance(payload_version, bool)
        or not isinstance(payload_version, int)
        or payload_version != version
    ):
        return _incompatible(expected)

    missing = [
        name
        for name in REQUIRED_FIELDS
        if not isinstance(data.get(name), str) or not data[name]
    ]
    if missing:
        return _incompatible(f"Incomplete QR code data: missing {', '.join(missing)}")

    unknown = sorted(set(data) - PAYLOAD_FIELDS)
    if unknown:
        return _incompatible(f"{expected} (unexpected fields: {', '.join(unknown)})")

    if not _is_relay_url(data["relayAddress"]):
        return _incompatible("Incomplete QR code data: relayAddress is not a relay URL")

    return PairingRequest(
        kind=data["kind"],
        version=payload_version,
        session_id=data["sessionId"],
        token=data["token"],
        relay_address=data["relayAddress"],
    )


def encode_payload(request: PairingRequest) -> str:
    """Encode a pairing request as QR text."""
    return json.dumps(
        {
            "kind": request.kind,
            "version": request.version,
            "sessionId": request.session_id,
            "token": request.token,
            "relayAddress": request.relay_address,
        },
        separators=(",", ":"),
    )
