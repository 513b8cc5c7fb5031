"""Pytest configuration and shared fixtures."""

import asyncio

import pytest
import pytest_asyncio

from webpair.pairing import LocalEndpointInfo, PairingRequest, encode_payload


@pytest.fixture(autouse=True)
def reset_logging_state():
    """Reset logging state before each test."""
    from webpair.logging import reset_logging

    reset_logging()
    yield
    reset_logging()


@pytest_asyncio.fixture(autouse=True, loop_scope="function")
async def cleanup_aiohttp_sessions():
    """Give aiohttp sessions time to clean up their connectors."""
    yield
    await asyncio.sleep(0)


@pytest.fixture
def pairing_request():
    """The scanned request used throughout the pairing scenarios."""
    return PairingRequest(
        kind="pair",
        version=1,
        session_id="s1",
        token="t1",
        relay_address="wss://relay.example",
    )


@pytest.fixture
def payload(pairing_request):
    """QR text for ``pairing_request``."""
    return encode_payload(pairing_request)


@pytest.fixture
def endpoint():
    """Address the fake launcher reports."""
    return LocalEndpointInfo(host="192.168.1.5", port=8080)
