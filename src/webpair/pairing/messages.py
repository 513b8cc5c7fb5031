"""Relay wire messages.

The phone sends a single ``phone-ready`` message. The relay may answer with
``error``; any other inbound type is ignored so newer relays can add
messages without breaking older phones.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Union

PHONE_READY = "phone-ready"
ERROR = "error"

DEFAULT_RELAY_ERROR = "Connection failed"


@dataclass(frozen=True)
class PhoneReady:
    """Outbound announcement of the local endpoint."""

    ip: str
    port: int
    token: str

    def encode(self) -> str:
        return json.dumps(
            {"type": PHONE_READY, "ip": self.ip, "port": self.port, "token": self.token}
        )


@dataclass(frozen=True)
class RelayErrorMessage:
    """Inbound error reported by the relay."""

    error: str


@dataclass(frozen=True)
class UnknownRelayMessage:
    """Inbound message this client does not act on."""

    type: str | None
    data: Any = field(default=None, compare=False)


InboundMessage = Union[RelayErrorMessage, UnknownRelayMessage]


def decode_inbound(text: str) -> InboundMessage:
    """Decode an inbound relay frame.

    Frames that are not JSON objects decode to UnknownRelayMessage.
    An error message with an empty ``error`` field falls back to ``message``
    (the key the relay itself uses), then to a generic text.
    """
    try:
        data = json.loads(text)
    except (ValueError, RecursionError):
        return UnknownRelayMessage(type=None, data=text)

    if not isinstance(data, dict):
        return UnknownRelayMessage(type=None, data=data)

    msg_type = data.get("type")
    if msg_type != ERROR:
        return UnknownRelayMessage(
            type=msg_type if isinstance(msg_type, str) else None, data=data
        )

    for key in ("error", "message"):
        value = data.get(key)
        if isinstance(value, str) and value:
            return RelayErrorMessage(error=value)
    return RelayErrorMessage(error=DEFAULT_RELAY_ERROR)
