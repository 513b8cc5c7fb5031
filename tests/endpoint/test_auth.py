"""Tests for bearer-token session auth."""

import pytest

from webpair.endpoint.auth import SessionAuth


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def auth(clock):
    return SessionAuth("t1", max_failures=3, block_duration=60, clock=clock)


class TestSessionAuth:
    """Tests for credential validation."""

    def test_valid_bearer(self, auth):
        """The session token is accepted."""
        result = auth.validate("Bearer t1", "10.0.0.2")

        assert result.authorized
        assert result.error is None

    @pytest.mark.parametrize("header", [None, "", "t1", "Basic t1", "Bearer"])
    def test_missing_or_malformed_header(self, auth, header):
        """Anything but a bearer header is 401."""
        result = auth.validate(header, "10.0.0.2")

        assert not result.authorized
        assert result.status == 401
        assert "authorization header" in result.error

    def test_wrong_token(self, auth):
        """A different token is 401."""
        result = auth.validate("Bearer nope", "10.0.0.2")

        assert result.status == 401
        assert result.error == "Invalid token"

    def test_check_token(self, auth):
        """Empty or wrong tokens never match."""
        assert auth.check_token("t1")
        assert not auth.check_token("")
        assert not auth.check_token(None)
        assert not auth.check_token("t1 ")


class TestBlocking:
    """Tests for repeated-failure blocking."""

    def test_blocks_after_max_failures(self, auth):
        """The client is blocked even with a valid token afterwards."""
        for _ in range(3):
            auth.validate("Bearer nope", "10.0.0.2")

        result = auth.validate("Bearer t1", "10.0.0.2")

        assert result.status == 429
        assert auth.is_blocked("10.0.0.2")

    def test_block_is_per_ip(self, auth):
        """Other clients are unaffected."""
        for _ in range(3):
            auth.validate("Bearer nope", "10.0.0.2")

        assert auth.validate("Bearer t1", "10.0.0.3").authorized

    def test_block_expires(self, auth, clock):
        """The block lifts after the block duration."""
        for _ in range(3):
            auth.validate("Bearer nope", "10.0.0.2")

        clock.now += 61

        assert not auth.is_blocked("10.0.0.2")
        assert auth.validate("Bearer t1", "10.0.0.2").authorized

    def test_success_resets_failures(self, auth):
        """A successful request clears the failure count."""
        auth.validate("Bearer nope", "10.0.0.2")
        auth.validate("Bearer nope", "10.0.0.2")
        auth.validate("Bearer t1", "10.0.0.2")
        auth.validate("Bearer nope", "10.0.0.2")

        assert not auth.is_blocked("10.0.0.2")

    def test_unknown_client_is_never_blocked(self, auth):
        """Failures without a client address are not tracked."""
        for _ in range(10):
            auth.validate("Bearer nope", None)

        assert not auth.is_blocked(None)
