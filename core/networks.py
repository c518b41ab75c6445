"""
Network table - supported EVM networks and their defaults.

The wallet provider resolves NETWORK_ID against this table to pick an RPC
endpoint and chain id. Action providers use `chain_id` to decide whether
they apply to the active network.
"""

from dataclasses import dataclass


DEFAULT_NETWORK_ID = "base-sepolia"


@dataclass(frozen=True)
class NetworkConfig:
    network_id: str
    chain_id: int
    rpc: str
    explorer: str
    native_symbol: str = "ETH"
    weth_address: str = ""


NETWORKS: dict[str, NetworkConfig] = {
    "base-sepolia": NetworkConfig(
        network_id="base-sepolia",
        chain_id=84532,
        rpc="https://sepolia.base.org",
        explorer="https://sepolia.basescan.org",
        weth_address="0x4200000000000000000000000000000000000006",
    ),
    "base-mainnet": NetworkConfig(
        network_id="base-mainnet",
        chain_id=8453,
        rpc="https://mainnet.base.org",
        explorer="https://basescan.org",
        weth_address="0x4200000000000000000000000000000000000006",
    ),
}


@dataclass(frozen=True)
class Network:
    """What action providers see of the wallet's network."""
    protocol_family: str
    network_id: str
    chain_id: int


def explorer_tx_url(network_id: str, tx_hash: str) -> str:
    """Block explorer URL for a transaction."""
    cfg = NETWORKS.get(network_id)
    explorer = cfg.explorer if cfg else "https://basescan.org"
    return f"{explorer}/tx/{tx_hash}"
