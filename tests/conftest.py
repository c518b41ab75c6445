"""
Shared fixtures for merchant-agent tests.

Nothing here touches the network: the wallet, LLM client, SecretVault client
and Telegram objects are all mocks.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.networks import NETWORKS, Network

WALLET_ADDRESS = "0x1234567890abcdef1234567890abcdef12345678"
TX_HASH = "0x" + "ab" * 32

ENV_VARS = [
    "OPENAI_API_KEY", "OPENAI_MODEL", "OPENAI_BASE_URL", "NETWORK_ID", "RPC_URL",
    "WALLET_PRIVATE_KEY", "WALLET_DATA_FILE", "WALLET_PASSPHRASE",
    "AUTONOMOUS_INTERVAL", "AGENT_RECURSION_LIMIT", "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_ADMIN_CHAT_ID", "TELEGRAM_ALLOWED_USERS", "DEV_MODE", "NODE_ENV",
    "SV_ORG_DID", "SV_PRIVATE_KEY", "SV_TOKEN_EXPIRY_SECONDS",
    "SV_NODE1_URL", "SV_NODE1_DID", "SV_NODE2_URL", "SV_NODE2_DID", "SV_NODE3_URL", "SV_NODE3_DID",
    "SCHEMA_ID_MERCHANT", "SCHEMA_ID_PRODUCT", "SCHEMA_ID_SALES",
    "NILLION_ORG_DID", "NILLION_ORG_SECRET_KEY",
]


def run(coro):
    """Drive a coroutine to completion from a sync test."""
    return asyncio.run(coro)


@pytest.fixture
def clean_env(monkeypatch):
    """Environment with every variable the app reads removed."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def network():
    return Network(protocol_family="evm", network_id="base-sepolia", chain_id=84532)


@pytest.fixture
def mock_wallet(network):
    """
    Stand-in for EvmWalletProvider.

    Sends succeed with TX_HASH and receipts report status 1 unless a test
    overrides the AsyncMock.
    """
    wallet = MagicMock()
    wallet.get_address.return_value = WALLET_ADDRESS
    wallet.get_network.return_value = network
    wallet.get_network_config.return_value = NETWORKS["base-sepolia"]
    wallet.get_name.return_value = "evm_wallet_provider"
    wallet.get_balance = AsyncMock(return_value=10**18)
    wallet.read_contract = AsyncMock()
    wallet.encode_function_data.return_value = "0xdeadbeef"
    wallet.send_transaction = AsyncMock(return_value=TX_HASH)
    wallet.wait_for_transaction_receipt = AsyncMock(return_value={"status": 1, "gasUsed": 21000})
    wallet.native_transfer = AsyncMock(return_value=TX_HASH)
    return wallet
