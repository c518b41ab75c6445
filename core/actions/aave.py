"""
Aave V3 Lending Actions - supply / withdraw / borrow / repay on Base Sepolia

Each action is one linear sequence of wallet calls:
    parse amount -> (balance check) -> (allowance check -> approve) -> encode -> send -> wait

Design:
- Amounts are human-readable decimal strings ("100" USDC, "0.1" WETH),
  scaled to base units with the asset's decimals
- Every failure surfaces as an AaveError with a code; anything unexpected
  is wrapped as TRANSACTION_FAILED
- No retries: a failed step ends the action and the agent reports it
"""

import logging
from decimal import Decimal, InvalidOperation
from enum import Enum
from dataclasses import dataclass

from pydantic import BaseModel, Field

from core.abis import AAVE_POOL_ABI, ERC20_ABI
from core.actions.aave_errors import AaveError, AaveErrorCode, create_aave_error, wrap_error
from core.actions.base import ActionProvider, create_action
from core.formatting import from_base_units, to_base_units
from core.networks import Network

logger = logging.getLogger("merchant.actions.aave")


# ============================================================
# BASE SEPOLIA DEPLOYMENT
# ============================================================

BASE_SEPOLIA_CHAIN_ID = 84532

AAVE_POOL_ADDRESS = "0xbE781D7Bdf469f3d94a62Cdcc407aCe106AEcA74"

USDC_ADDRESS = "0x036CbD53842c5426634e7929541eC2318f3dCF7e"
WETH_ADDRESS = "0x4200000000000000000000000000000000000006"

MINIMUM_AMOUNT = "0.0001"
REFERRAL_CODE = 0


@dataclass(frozen=True)
class AaveAsset:
    symbol: str
    address: str
    decimals: int


ASSETS: dict[str, AaveAsset] = {
    "USDC": AaveAsset("USDC", USDC_ADDRESS, 6),
    "WETH": AaveAsset("WETH", WETH_ADDRESS, 18),
}


class InterestRateMode(Enum):
    STABLE = 1
    VARIABLE = 2


# ============================================================
# SCHEMAS
# ============================================================

class AssetSymbol(str, Enum):
    USDC = "USDC"
    WETH = "WETH"


class SupplyArgs(BaseModel):
    asset: AssetSymbol = Field(..., description="Asset to supply (USDC or WETH)")
    amount: str = Field(..., description="Amount to supply, e.g. '0.1' for 0.1 WETH or '100' for 100 USDC")


class WithdrawArgs(BaseModel):
    asset: AssetSymbol = Field(..., description="Asset to withdraw (USDC or WETH)")
    amount: str = Field(..., description="Amount to withdraw, e.g. '0.1' or '100'")


class BorrowArgs(BaseModel):
    asset: AssetSymbol = Field(..., description="Asset to borrow (USDC or WETH)")
    amount: str = Field(..., description="Amount to borrow, e.g. '0.1' or '100'")
    interest_rate_mode: str = Field("VARIABLE", pattern="^(VARIABLE|STABLE)$", description="VARIABLE or STABLE")


class RepayArgs(BaseModel):
    asset: AssetSymbol = Field(..., description="Asset to repay (USDC or WETH)")
    amount: str = Field(..., description="Amount to repay, e.g. '0.1' or '100'")
    interest_rate_mode: str = Field("VARIABLE", pattern="^(VARIABLE|STABLE)$", description="VARIABLE or STABLE")


class AccountDataArgs(BaseModel):
    pass


# ============================================================
# HELPERS
# ============================================================

def get_asset(symbol: str) -> AaveAsset:
    asset = ASSETS.get(str(getattr(symbol, "value", symbol)).upper())
    if asset is None:
        raise create_aave_error(AaveErrorCode.UNSUPPORTED_ASSET, {"asset": str(symbol)})
    return asset


def parse_decimal(amount: str) -> Decimal:
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        raise create_aave_error(AaveErrorCode.INVALID_AMOUNT, {"amount": amount})
    if not value.is_finite():
        raise create_aave_error(AaveErrorCode.INVALID_AMOUNT, {"amount": amount})
    return value


def parse_amount(amount: str, asset: AaveAsset) -> int:
    try:
        return to_base_units(amount, asset.decimals)
    except ValueError:
        raise create_aave_error(AaveErrorCode.INVALID_AMOUNT, {"amount": amount})


def display_balance(raw: int, asset: AaveAsset) -> str:
    return from_base_units(raw, asset.decimals)


# ============================================================
# PROVIDER
# ============================================================

class AaveActionProvider(ActionProvider):
    """Aave V3 pool interactions. Base Sepolia only."""

    def __init__(self, pool_address: str = AAVE_POOL_ADDRESS):
        super().__init__("aave")
        self.pool_address = pool_address

    def supports_network(self, network: Network) -> bool:
        return network.chain_id == BASE_SEPOLIA_CHAIN_ID

    # ── shared steps ─────────────────────────────────────────

    def _parse_positive(self, amount: str, asset: AaveAsset, allow_dust: bool = False) -> tuple[Decimal, int]:
        """
        Returns (amount, base units). The sign is checked on the decimal value,
        so a positive amount below one base unit is not reported as zero.
        """
        value = parse_decimal(amount)
        if value <= 0:
            raise create_aave_error(AaveErrorCode.INVALID_AMOUNT, "Amount must be greater than 0")
        raw = parse_amount(amount, asset)
        if raw == 0 and not allow_dust:
            raise create_aave_error(
                AaveErrorCode.INVALID_AMOUNT, f"Amount is smaller than one base unit of {asset.symbol}"
            )
        return value, raw

    async def _check_balance(self, wallet, asset: AaveAsset, raw: int, user: str) -> None:
        balance = int(await wallet.read_contract(asset.address, ERC20_ABI, "balanceOf", [user]))
        if raw > balance:
            raise create_aave_error(AaveErrorCode.INSUFFICIENT_BALANCE, {
                "asset": asset.symbol,
                "requested": display_balance(raw, asset),
                "available": display_balance(balance, asset),
                "rawBalance": str(balance),
                "rawRequested": str(raw),
            })

    async def _ensure_allowance(self, wallet, asset: AaveAsset, raw: int, user: str) -> None:
        allowance = int(await wallet.read_contract(
            asset.address, ERC20_ABI, "allowance", [user, self.pool_address]
        ))
        if raw <= allowance:
            return

        logger.info(f"Approving {display_balance(raw, asset)} {asset.symbol} for Aave pool")
        try:
            data = wallet.encode_function_data(asset.address, ERC20_ABI, "approve", [self.pool_address, raw])
            approval_tx = await wallet.send_transaction(asset.address, data)
            await wallet.wait_for_transaction_receipt(approval_tx)
        except Exception as e:
            raise create_aave_error(AaveErrorCode.APPROVAL_FAILED, f"Failed to approve {asset.symbol}: {e}")

    async def _submit(self, wallet, function_name: str, args: list, fail_code: AaveErrorCode, asset: AaveAsset) -> str:
        try:
            data = wallet.encode_function_data(self.pool_address, AAVE_POOL_ABI, function_name, args)
            tx_hash = await wallet.send_transaction(self.pool_address, data)
            await wallet.wait_for_transaction_receipt(tx_hash)
        except Exception as e:
            raise create_aave_error(fail_code, f"Failed to {function_name} {asset.symbol}: {e}")
        logger.info(f"Aave {function_name} {asset.symbol} confirmed: {tx_hash}")
        return tx_hash

    # ── actions ──────────────────────────────────────────────

    @create_action(
        name="supply",
        description="""
        Supply assets to the Aave protocol.
        This action will supply the specified amount of an asset (USDC or WETH) to Aave.
        The user will receive aTokens in return, representing their supplied position.
        """,
        schema=SupplyArgs,
    )
    async def supply(self, wallet, args: SupplyArgs) -> str:
        try:
            asset = get_asset(args.asset)
            value, raw = self._parse_positive(args.amount, asset, allow_dust=True)
            user = wallet.get_address()

            await self._check_balance(wallet, asset, raw, user)

            if value < Decimal(MINIMUM_AMOUNT):
                raise create_aave_error(AaveErrorCode.AMOUNT_BELOW_MINIMUM, {
                    "message": "Amount is below minimum required",
                    "minimum": MINIMUM_AMOUNT,
                    "provided": format(value.normalize(), "f"),
                })

            await self._ensure_allowance(wallet, asset, raw, user)
            tx_hash = await self._submit(
                wallet, "supply", [asset.address, raw, user, REFERRAL_CODE],
                AaveErrorCode.SUPPLY_FAILED, asset,
            )
            return (
                f"Successfully supplied {display_balance(raw, asset)} {asset.symbol} to Aave. "
                f"Transaction hash: {tx_hash}"
            )
        except AaveError:
            raise
        except Exception as e:
            raise wrap_error(e) from e

    @create_action(
        name="withdraw",
        description="""
        Withdraw supplied assets from the Aave protocol.
        This action will withdraw the specified amount of an asset (USDC or WETH) from Aave.
        """,
        schema=WithdrawArgs,
    )
    async def withdraw(self, wallet, args: WithdrawArgs) -> str:
        try:
            asset = get_asset(args.asset)
            _, raw = self._parse_positive(args.amount, asset)
            user = wallet.get_address()

            tx_hash = await self._submit(
                wallet, "withdraw", [asset.address, raw, user],
                AaveErrorCode.WITHDRAW_FAILED, asset,
            )
            return (
                f"Successfully withdrew {display_balance(raw, asset)} {asset.symbol} from Aave. "
                f"Transaction hash: {tx_hash}"
            )
        except AaveError:
            raise
        except Exception as e:
            raise wrap_error(e) from e

    @create_action(
        name="borrow",
        description="""
        Borrow assets from the Aave protocol.
        This action will borrow the specified amount of an asset (USDC or WETH) from Aave.
        The user must have sufficient collateral supplied.
        """,
        schema=BorrowArgs,
    )
    async def borrow(self, wallet, args: BorrowArgs) -> str:
        try:
            asset = get_asset(args.asset)
            _, raw = self._parse_positive(args.amount, asset)
            user = wallet.get_address()
            mode = InterestRateMode[args.interest_rate_mode].value

            tx_hash = await self._submit(
                wallet, "borrow", [asset.address, raw, mode, REFERRAL_CODE, user],
                AaveErrorCode.BORROW_FAILED, asset,
            )
            return (
                f"Successfully borrowed {display_balance(raw, asset)} {asset.symbol} from Aave. "
                f"Transaction hash: {tx_hash}"
            )
        except AaveError:
            raise
        except Exception as e:
            raise wrap_error(e) from e

    @create_action(
        name="repay",
        description="""
        Repay borrowed assets to the Aave protocol.
        This action will repay the specified amount of an asset (USDC or WETH).
        """,
        schema=RepayArgs,
    )
    async def repay(self, wallet, args: RepayArgs) -> str:
        try:
            asset = get_asset(args.asset)
            _, raw = self._parse_positive(args.amount, asset)
            user = wallet.get_address()
            mode = InterestRateMode[args.interest_rate_mode].value

            await self._check_balance(wallet, asset, raw, user)
            await self._ensure_allowance(wallet, asset, raw, user)
            tx_hash = await self._submit(
                wallet, "repay", [asset.address, raw, mode, user],
                AaveErrorCode.REPAY_FAILED, asset,
            )
            return (
                f"Successfully repaid {display_balance(raw, asset)} {asset.symbol} to Aave. "
                f"Transaction hash: {tx_hash}"
            )
        except AaveError:
            raise
        except Exception as e:
            raise wrap_error(e) from e

    @create_action(
        name="get_user_account_data",
        description="""
        Read the wallet's Aave position: total collateral, total debt, available borrows
        (in the pool's base currency, USD with 8 decimals), LTV, liquidation threshold and health factor.
        """,
        schema=AccountDataArgs,
    )
    async def get_user_account_data(self, wallet, args: AccountDataArgs) -> str:
        try:
            data = await wallet.read_contract(
                self.pool_address, AAVE_POOL_ABI, "getUserAccountData", [wallet.get_address()]
            )
        except Exception as e:
            raise create_aave_error(AaveErrorCode.NETWORK_ERROR, e) from e

        collateral, debt, available, liq_threshold, ltv, health = (int(v) for v in data)
        health_text = "∞" if debt == 0 else format(Decimal(health).scaleb(-18).quantize(Decimal("0.0001")), "f")
        return (
            "Aave position:\n"
            f"- Total collateral: {from_base_units(collateral, 8)} USD\n"
            f"- Total debt: {from_base_units(debt, 8)} USD\n"
            f"- Available to borrow: {from_base_units(available, 8)} USD\n"
            f"- LTV: {ltv / 100:.2f}%\n"
            f"- Liquidation threshold: {liq_threshold / 100:.2f}%\n"
            f"- Health factor: {health_text}"
        )
