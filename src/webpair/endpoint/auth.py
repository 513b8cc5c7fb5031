"""Bearer-token authentication for the local endpoint.

Every API request must carry ``Authorization: Bearer <token>`` with the token
from the pairing payload. Clients that fail repeatedly are blocked for a
while, keyed by IP.
"""

import hmac
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

MAX_FAILURES = 5
BLOCK_DURATION_SECONDS = 5 * 60


@dataclass
class AuthResult:
    """Outcome of a credential check."""

    authorized: bool
    error: Optional[str] = None
    status: int = 200


@dataclass
class _FailureRecord:
    count: int = 0
    blocked_until: float = 0.0


class SessionAuth:
    """Validates bearer credentials against the session token."""

    def __init__(
        self,
        token: str,
        max_failures: int = MAX_FAILURES,
        block_duration: float = BLOCK_DURATION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize authenticator.

        Args:
            token: Session token every request must present.
            max_failures: Failures allowed before a client is blocked.
            block_duration: Seconds a client stays blocked.
            clock: Injectable time source for testing.
        """
        self._token = token
        self._max_failures = max_failures
        self._block_duration = block_duration
        self._clock = clock
        self._failures: Dict[str, _FailureRecord] = {}

    def check_token(self, token: Optional[str]) -> bool:
        """Constant-time comparison with the session token."""
        if not token:
            return False
        return hmac.compare_digest(token.encode(), self._token.encode())

    def is_blocked(self, client_ip: Optional[str]) -> bool:
        if not client_ip:
            return False
        record = self._failures.get(client_ip)
        return record is not None and record.blocked_until > self._clock()

    def validate(self, auth_header: Optional[str], client_ip: Optional[str]) -> AuthResult:
        """Validate an Authorization header.

        Args:
            auth_header: Raw Authorization header value.
            client_ip: Remote address used for failure tracking.

        Returns:
            AuthResult with status 401 (bad credentials), 429 (blocked)
            or 200.
        """
        if self.is_blocked(client_ip):
            return AuthResult(
                authorized=False,
                error="Too many failed attempts. Try again later.",
                status=429,
            )

        if not auth_header or not auth_header.startswith("Bearer "):
            self.record_failure(client_ip)
            return AuthResult(
                authorized=False,
                error="Missing or invalid authorization header",
                status=401,
            )

        if not self.check_token(auth_header[len("Bearer "):]):
            self.record_failure(client_ip)
            return AuthResult(authorized=False, error="Invalid token", status=401)

        if client_ip:
            self._failures.pop(client_ip, None)
        return AuthResult(authorized=True)

    def record_failure(self, client_ip: Optional[str]) -> None:
        if not client_ip:
            return
        record = self._failures.setdefault(client_ip, _FailureRecord())
        record.count += 1
        if record.count >= self._max_failures:
            record.blocked_until = self._clock() + self._block_duration
            record.count = 0
            logger.warning(f"Blocking {client_ip} after {self._max_failures} failed attempts")
