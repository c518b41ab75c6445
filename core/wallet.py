"""
Wallet Provider - EVM signing and transaction layer

Holds the agent's key and gives actions a small async surface over web3:
read a contract, encode calldata, send a transaction, wait for a receipt.

Design:
- Sync Web3 calls wrapped in asyncio.run_in_executor() (web3.py async is fragile)
- Key resolution: wallet data file (encrypted keystore) -> WALLET_PRIVATE_KEY -> new key
- Gas estimation + 20% buffer, nonce auto from chain (pending)
- EIP-1559 fees when the node reports a base fee, legacy gasPrice otherwise
- Reverted receipts raise WalletError; callers decide how to report it
"""

import json
import asyncio
import logging
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from core.config import AppConfig
from core.formatting import hex_to_decimal
from core.networks import Network, NetworkConfig, NETWORKS

logger = logging.getLogger("merchant.wallet")

DEFAULT_GAS_LIMIT = 200_000
GAS_BUFFER = 1.2
RECEIPT_TIMEOUT = 120


class WalletError(Exception):
    """Raised when the wallet cannot load, sign, send, or a transaction reverts."""


class EvmWalletProvider:
    """
    Signs and submits transactions for the agent's account.

    Usage:
        wallet = EvmWalletProvider.from_config(config)
        tx_hash = await wallet.send_transaction(to, data)
        receipt = await wallet.wait_for_transaction_receipt(tx_hash)
    """

    def __init__(self, account: LocalAccount, w3: Web3, network: NetworkConfig):
        self._account = account
        self._w3 = w3
        self._network = network

    # ============================================================
    # CONSTRUCTION
    # ============================================================

    @classmethod
    def from_config(cls, config: AppConfig) -> "EvmWalletProvider":
        network = NETWORKS[config.network_id]
        rpc_url = config.rpc_url or network.rpc

        account = load_account(
            config.wallet_data_file,
            config.wallet_private_key,
            config.wallet_passphrase,
        )

        w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": 30}))
        if not w3.is_connected():
            logger.warning(f"Cannot reach {config.network_id} RPC ({rpc_url}); calls will fail until it is up")

        logger.info(f"Wallet ready: {account.address[:10]}... on {network.network_id} (chain {network.chain_id})")
        return cls(account, w3, network)

    # ============================================================
    # IDENTITY
    # ============================================================

    def get_address(self) -> str:
        return self._account.address

    def get_network(self) -> Network:
        return Network(
            protocol_family="evm",
            network_id=self._network.network_id,
            chain_id=self._network.chain_id,
        )

    def get_network_config(self) -> NetworkConfig:
        return self._network

    def get_name(self) -> str:
        return "evm_wallet_provider"

    # ============================================================
    # READS
    # ============================================================

    async def _run(self, fn, *args):
        return await asyncio.get_running_loop().run_in_executor(None, fn, *args)

    async def get_balance(self) -> int:
        """Native balance in wei."""
        return await self._run(self._w3.eth.get_balance, self._account.address)

    def _contract(self, address: str, abi: list):
        return self._w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    async def read_contract(self, address: str, abi: list, function_name: str, args: Optional[list] = None) -> Any:
        contract = self._contract(address, abi)
        call = getattr(contract.functions, function_name)(*(args or []))
        return await self._run(call.call)

    def encode_function_data(self, address: str, abi: list, function_name: str, args: Optional[list] = None) -> str:
        """ABI-encode a call; returns 0x-prefixed calldata."""
        contract = self._contract(address, abi)
        return contract.encode_abi(function_name, args=list(args or []))

    # ============================================================
    # WRITES
    # ============================================================

    def _build_fees(self) -> dict:
        latest = self._w3.eth.get_block("latest")
        base_fee = latest.get("baseFeePerGas")
        if base_fee is not None:
            priority = self._w3.eth.max_priority_fee
            return {
                "maxFeePerGas": int(base_fee) * 2 + int(priority),
                "maxPriorityFeePerGas": int(priority),
            }
        return {"gasPrice": self._w3.eth.gas_price}

    def _send_sync(self, to: str, data: str, value: int) -> str:
        w3 = self._w3
        tx = {
            "from": self._account.address,
            "to": Web3.to_checksum_address(to),
            "data": data or "0x",
            "value": int(value),
            "nonce": w3.eth.get_transaction_count(self._account.address, "pending"),
            "chainId": self._network.chain_id,
        }
        tx.update(self._build_fees())

        # Gas estimation + 20% buffer
        try:
            gas_estimate = w3.eth.estimate_gas(tx)
            tx["gas"] = int(gas_estimate * GAS_BUFFER)
        except Exception as gas_err:
            logger.warning(f"Gas estimation failed, using default {DEFAULT_GAS_LIMIT}: {gas_err}")
            tx["gas"] = DEFAULT_GAS_LIMIT

        signed = self._account.sign_transaction(tx)
        tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(tx_hash)

    async def send_transaction(self, to: str, data: str = "0x", value: int = 0) -> str:
        """Sign and broadcast. Returns the 0x transaction hash without waiting."""
        try:
            tx_hash = await self._run(self._send_sync, to, data, value)
        except Exception as e:
            logger.warning(f"TX ERROR [{self._network.network_id}]: {type(e).__name__}: {e}")
            raise WalletError(f"Failed to send transaction to {to}: {e}") from e

        logger.info(f"TX SENT [{self._network.network_id}]: {tx_hash[:16]}... -> {to[:10]}...")
        return tx_hash

    async def wait_for_transaction_receipt(self, tx_hash: str, timeout: int = RECEIPT_TIMEOUT) -> dict:
        receipt = await self._run(
            lambda: self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        )
        receipt = {k: hex_to_decimal(v) if k in ("status", "gasUsed", "blockNumber", "effectiveGasPrice") else v
                   for k, v in dict(receipt).items()}
        if receipt.get("status") != 1:
            logger.warning(f"TX FAILED [{self._network.network_id}]: {tx_hash}")
            raise WalletError(f"Transaction reverted: {tx_hash}")

        gas_used = receipt.get("gasUsed", 0)
        logger.info(f"TX SUCCESS [{self._network.network_id}]: {tx_hash[:16]}... | gas={gas_used}")
        return receipt

    async def native_transfer(self, to: str, value_wei: int) -> str:
        if value_wei <= 0:
            raise WalletError("Transfer amount must be greater than 0")
        tx_hash = await self.send_transaction(to, "0x", value_wei)
        await self.wait_for_transaction_receipt(tx_hash)
        return tx_hash

    # ============================================================
    # PERSISTENCE
    # ============================================================

    def export_wallet(self, passphrase: str = "") -> dict:
        return {
            "address": self._account.address,
            "network_id": self._network.network_id,
            "keystore": Account.encrypt(self._account.key, passphrase),
        }

    def save_wallet_data(self, path: str, passphrase: str = "") -> None:
        data = self.export_wallet(passphrase)
        Path(path).write_text(json.dumps(data, default=str), encoding="utf-8")
        logger.info(f"Wallet data saved to {path}")


def wei_to_eth(value_wei: int) -> str:
    return format(Decimal(value_wei).scaleb(-18).normalize(), "f")


def load_account(wallet_data_file: str, private_key: Optional[str], passphrase: str = "") -> LocalAccount:
    """
    Resolve the signing account.

    Order: existing wallet data file, then WALLET_PRIVATE_KEY, then a fresh key.
    An unreadable data file is logged and skipped.
    """
    path = Path(wallet_data_file)
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            key = Account.decrypt(data["keystore"], passphrase)
            account = Account.from_key(key)
            logger.info(f"Loaded wallet {account.address[:10]}... from {wallet_data_file}")
            return account
        except Exception as e:
            logger.error(f"Error reading wallet data from {wallet_data_file}: {e}")

    if private_key:
        try:
            return Account.from_key(private_key)
        except Exception as e:
            raise WalletError(f"Invalid WALLET_PRIVATE_KEY: {e}") from e

    account = Account.create()
    logger.info(f"No wallet found; created new wallet {account.address[:10]}...")
    return account
