"""Shared fixtures for cashlink_generator tests."""

from __future__ import annotations

import base64

import pytest
from pytest_metadata.plugin import metadata_key

from cashlink_generator.models.config import BroadcasterConfig, CashlinkConfig, Network
from cashlink_generator.nimiq.broadcaster import TransactionBroadcaster
from cashlink_generator.nimiq.keys import KeyPair

from tests.mocks import MockNode

TEST_SALT = base64.b64encode(bytes(range(64))).decode("ascii")
FUNDING_PRIVATE_KEY = bytes.fromhex(
    "9d61b19deffd5a60ba844af492ec2cc44449c5697b326919703bac031cae7f60"
)
TEST_BASE_URL = "https://hub.nimiq-testnet.com/cashlink/"
EXPLORER_BASE = "https://test.nimiq.watch/#"


def explorer_link(address: str) -> str:
    """Build an HTML anchor to the testnet explorer for the report."""
    return f'<a href="{EXPLORER_BASE}{address}" target="_blank">{address}</a>'


# ── Report metadata ──────────────────────────────────────────────


def pytest_configure(config):
    """Add network info to the HTML report Environment table."""
    meta = config.stash.setdefault(metadata_key, {})
    meta["Network"] = "Nimiq Testnet (mocked node)"
    meta["Cashlink Base URL"] = TEST_BASE_URL
    meta["Funding Account"] = KeyPair(FUNDING_PRIVATE_KEY).address.to_user_friendly()


def pytest_html_results_summary(prefix, summary, postfix):
    """Inject the funding account explorer link into the report summary."""
    address = KeyPair(FUNDING_PRIVATE_KEY).address.to_user_friendly()
    prefix.append(
        '<div style="margin:8px 0;padding:10px;background:#f8f9fa;border:1px solid #dee2e6;'
        'border-radius:4px;font-family:monospace;font-size:13px;">'
        "<strong>Nimiq Testnet Explorer Links</strong><br/>"
        f"Funding Account: {explorer_link(address)}"
        "</div>"
    )


def make_test_config(**overrides) -> CashlinkConfig:
    """Build a CashlinkConfig suitable for testing."""
    defaults = dict(
        node_host="127.0.0.1",
        node_port="8648",
        network=Network.TEST,
        token_length=6,
        salt=TEST_SALT,
        broadcaster=BroadcasterConfig(retry_delay=0.01, poll_interval=0.005),
    )
    defaults.update(overrides)
    return CashlinkConfig(**defaults)


@pytest.fixture
def test_config():
    """Default CashlinkConfig for tests."""
    return make_test_config()


@pytest.fixture
def funding_key():
    return KeyPair(FUNDING_PRIVATE_KEY)


@pytest.fixture
def node():
    return MockNode()


@pytest.fixture
async def broadcaster(node):
    """Broadcaster with short delays against the mock node."""
    b = TransactionBroadcaster(node, retry_delay=0.01, poll_interval=0.005)
    yield b
    await b.close()
