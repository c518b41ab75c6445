"""
Wallet, ERC-20 and WETH actions - basic on-chain moves for the agent.
"""

import logging

from pydantic import BaseModel, Field
from web3 import Web3

from core.abis import ERC20_ABI, WETH_ABI
from core.actions.base import ActionProvider, create_action
from core.formatting import from_base_units, to_base_units
from core.networks import Network, explorer_tx_url
from core.wallet import wei_to_eth

logger = logging.getLogger("merchant.actions.wallet")


class EmptyArgs(BaseModel):
    pass


class NativeTransferArgs(BaseModel):
    to: str = Field(..., description="Destination address")
    value: str = Field(..., description="Amount of ETH to send, e.g. '0.01'")


class Erc20BalanceArgs(BaseModel):
    contract_address: str = Field(..., description="ERC-20 token contract address")


class Erc20TransferArgs(BaseModel):
    amount: str = Field(..., description="Amount in whole token units, e.g. '12.5'")
    contract_address: str = Field(..., description="ERC-20 token contract address")
    destination: str = Field(..., description="Recipient address")


class WrapEthArgs(BaseModel):
    amount_to_wrap: str = Field(..., description="Amount of ETH to wrap, in wei")


def _require_address(value: str, label: str) -> str:
    if not Web3.is_address(value):
        raise ValueError(f"{label} is not a valid address: {value}")
    return Web3.to_checksum_address(value)


class WalletActionProvider(ActionProvider):
    def __init__(self):
        super().__init__("wallet")

    @create_action(
        name="get_wallet_details",
        description="""
        Get details about the agent's wallet: address, network, chain id and native ETH balance.
        """,
        schema=EmptyArgs,
    )
    async def get_wallet_details(self, wallet, args: EmptyArgs) -> str:
        network = wallet.get_network()
        balance = await wallet.get_balance()
        return (
            "Wallet Details:\n"
            f"- Provider: {wallet.get_name()}\n"
            f"- Address: {wallet.get_address()}\n"
            f"- Network:\n"
            f"  * Protocol Family: {network.protocol_family}\n"
            f"  * Network ID: {network.network_id}\n"
            f"  * Chain ID: {network.chain_id}\n"
            f"- Native Balance: {wei_to_eth(balance)} ETH ({balance} wei)"
        )

    @create_action(
        name="native_transfer",
        description="""
        Transfer native ETH from the wallet to another address.
        The value is a decimal ETH amount such as '0.01'.
        """,
        schema=NativeTransferArgs,
    )
    async def native_transfer(self, wallet, args: NativeTransferArgs) -> str:
        to = _require_address(args.to, "Destination")
        value_wei = to_base_units(args.value, 18)
        if value_wei <= 0:
            raise ValueError("Amount must be greater than 0")
        tx_hash = await wallet.native_transfer(to, value_wei)
        network_id = wallet.get_network().network_id
        return (
            f"Transferred {args.value} ETH to {to}.\n"
            f"Transaction hash: {tx_hash}\n"
            f"Explorer: {explorer_tx_url(network_id, tx_hash)}"
        )


class Erc20ActionProvider(ActionProvider):
    def __init__(self):
        super().__init__("erc20")

    @create_action(
        name="get_balance",
        description="Get the wallet's balance of an ERC-20 token, in whole token units.",
        schema=Erc20BalanceArgs,
    )
    async def get_balance(self, wallet, args: Erc20BalanceArgs) -> str:
        token = _require_address(args.contract_address, "Contract address")
        raw = await wallet.read_contract(token, ERC20_ABI, "balanceOf", [wallet.get_address()])
        decimals = await wallet.read_contract(token, ERC20_ABI, "decimals")
        return f"Balance of {token} is {from_base_units(int(raw), int(decimals))}"

    @create_action(
        name="transfer",
        description="""
        Transfer an ERC-20 token to another address.
        The amount is in whole token units; it is scaled by the token's decimals.
        """,
        schema=Erc20TransferArgs,
    )
    async def transfer(self, wallet, args: Erc20TransferArgs) -> str:
        token = _require_address(args.contract_address, "Contract address")
        destination = _require_address(args.destination, "Destination")
        decimals = await wallet.read_contract(token, ERC20_ABI, "decimals")
        amount_raw = to_base_units(args.amount, int(decimals))
        if amount_raw <= 0:
            raise ValueError("Amount must be greater than 0")

        data = wallet.encode_function_data(token, ERC20_ABI, "transfer", [destination, amount_raw])
        tx_hash = await wallet.send_transaction(token, data)
        await wallet.wait_for_transaction_receipt(tx_hash)
        return f"Transferred {args.amount} of {token} to {destination}.\nTransaction hash: {tx_hash}"


class WethActionProvider(ActionProvider):
    """Wrap ETH into WETH. Only on networks that define a WETH address."""

    BASE_CHAIN_IDS = {8453, 84532}

    def __init__(self):
        super().__init__("weth")

    def supports_network(self, network: Network) -> bool:
        return network.chain_id in self.BASE_CHAIN_IDS

    @create_action(
        name="wrap_eth",
        description="""
        Wrap ETH into WETH. The amount is in wei, e.g. '1000000000000000' for 0.001 ETH.
        """,
        schema=WrapEthArgs,
    )
    async def wrap_eth(self, wallet, args: WrapEthArgs) -> str:
        try:
            amount_wei = int(args.amount_to_wrap)
        except ValueError:
            raise ValueError(f"amount_to_wrap must be an integer number of wei: {args.amount_to_wrap}")
        if amount_wei <= 0:
            raise ValueError("Amount must be greater than 0")

        weth = wallet.get_network_config().weth_address
        data = wallet.encode_function_data(weth, WETH_ABI, "deposit")
        tx_hash = await wallet.send_transaction(weth, data, amount_wei)
        await wallet.wait_for_transaction_receipt(tx_hash)
        return f"Wrapped {wei_to_eth(amount_wei)} ETH into WETH.\nTransaction hash: {tx_hash}"
