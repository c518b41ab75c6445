"""
Tests for the Aave lending provider: step ordering and error codes
"""
from unittest.mock import AsyncMock

import pytest

from conftest import TX_HASH, WALLET_ADDRESS, run
from core.abis import AAVE_POOL_ABI, ERC20_ABI
from core.actions.aave import (
    AAVE_POOL_ADDRESS,
    USDC_ADDRESS,
    WETH_ADDRESS,
    AaveActionProvider,
    AccountDataArgs,
    BorrowArgs,
    RepayArgs,
    SupplyArgs,
    WithdrawArgs,
    get_asset,
)
from core.actions.aave_errors import AaveError, AaveErrorCode, create_aave_error, wrap_error
from core.actions.base import Toolkit
from core.networks import Network
from core.wallet import WalletError

USDC = 10**6


def erc20_reads(balance: int, allowance: int) -> AsyncMock:
    async def read(address, abi, function_name, args=None):
        return {"balanceOf": balance, "allowance": allowance}[function_name]
    return AsyncMock(side_effect=read)


def error_code(exc_info) -> AaveErrorCode:
    return exc_info.value.code


@pytest.fixture
def aave():
    return AaveActionProvider()


class TestAaveErrors:
    def test_str_without_details(self):
        err = create_aave_error(AaveErrorCode.INVALID_AMOUNT)
        assert str(err) == "[INVALID_AMOUNT] Invalid amount specified"

    def test_str_with_details(self):
        err = create_aave_error(AaveErrorCode.INSUFFICIENT_BALANCE, {"asset": "USDC"})
        assert str(err).startswith("[INSUFFICIENT_BALANCE] ")
        assert '\nDetails: {\n  "asset": "USDC"\n}' in str(err)

    def test_wrap_passes_aave_errors_through(self):
        err = create_aave_error(AaveErrorCode.MARKET_FROZEN)
        assert wrap_error(err) is err

    def test_wrap_other_errors_as_transaction_failed(self):
        err = wrap_error(RuntimeError("nonce too low"))
        assert err.code is AaveErrorCode.TRANSACTION_FAILED
        assert err.details == "nonce too low"

    def test_all_codes_have_messages(self):
        for code in AaveErrorCode:
            assert create_aave_error(code).message


class TestAaveSetup:
    def test_only_base_sepolia(self, aave):
        assert aave.supports_network(Network("evm", "base-sepolia", 84532))
        assert not aave.supports_network(Network("evm", "base-mainnet", 8453))

    def test_unsupported_asset(self):
        with pytest.raises(AaveError) as exc:
            get_asset("DAI")
        assert error_code(exc) is AaveErrorCode.UNSUPPORTED_ASSET

    def test_tools_registered(self, mock_wallet, aave):
        toolkit = Toolkit(mock_wallet, [aave])
        assert sorted(toolkit.tool_names) == [
            "aave_borrow", "aave_get_user_account_data", "aave_repay", "aave_supply", "aave_withdraw",
        ]


class TestSupply:
    def test_skips_approve_when_allowance_covers(self, mock_wallet, aave):
        mock_wallet.read_contract = erc20_reads(balance=500 * USDC, allowance=1000 * USDC)

        result = run(aave.supply(mock_wallet, SupplyArgs(asset="USDC", amount="100")))

        assert result == f"Successfully supplied 100 USDC to Aave. Transaction hash: {TX_HASH}"
        mock_wallet.send_transaction.assert_awaited_once_with(AAVE_POOL_ADDRESS, "0xdeadbeef")
        mock_wallet.encode_function_data.assert_called_once_with(
            AAVE_POOL_ADDRESS, AAVE_POOL_ABI, "supply", [USDC_ADDRESS, 100 * USDC, WALLET_ADDRESS, 0]
        )

    def test_approves_then_supplies(self, mock_wallet, aave):
        mock_wallet.read_contract = erc20_reads(balance=500 * USDC, allowance=0)

        run(aave.supply(mock_wallet, SupplyArgs(asset="USDC", amount="100")))

        calls = mock_wallet.encode_function_data.call_args_list
        assert calls[0].args == (USDC_ADDRESS, ERC20_ABI, "approve", [AAVE_POOL_ADDRESS, 100 * USDC])
        assert calls[1].args[2] == "supply"
        sent_to = [c.args[0] for c in mock_wallet.send_transaction.await_args_list]
        assert sent_to == [USDC_ADDRESS, AAVE_POOL_ADDRESS]
        assert mock_wallet.wait_for_transaction_receipt.await_count == 2

    def test_weth_uses_18_decimals(self, mock_wallet, aave):
        mock_wallet.read_contract = erc20_reads(balance=10**18, allowance=10**18)

        result = run(aave.supply(mock_wallet, SupplyArgs(asset="WETH", amount="0.1")))

        args = mock_wallet.encode_function_data.call_args.args[3]
        assert args[:2] == [WETH_ADDRESS, 10**17]
        assert "0.1 WETH" in result

    def test_insufficient_balance(self, mock_wallet, aave):
        mock_wallet.read_contract = erc20_reads(balance=5 * USDC, allowance=0)

        with pytest.raises(AaveError) as exc:
            run(aave.supply(mock_wallet, SupplyArgs(asset="USDC", amount="100")))

        assert error_code(exc) is AaveErrorCode.INSUFFICIENT_BALANCE
        assert exc.value.details["available"] == "5"
        assert exc.value.details["requested"] == "100"
        mock_wallet.send_transaction.assert_not_awaited()
        assert exc.value.__cause__ is None

    def test_below_minimum(self, mock_wallet, aave):
        mock_wallet.read_contract = erc20_reads(balance=500 * USDC, allowance=0)

        with pytest.raises(AaveError) as exc:
            run(aave.supply(mock_wallet, SupplyArgs(asset="USDC", amount="0.00001")))

        assert error_code(exc) is AaveErrorCode.AMOUNT_BELOW_MINIMUM
        mock_wallet.send_transaction.assert_not_awaited()

    def test_amount_below_one_base_unit_is_below_minimum(self, mock_wallet, aave):
        mock_wallet.read_contract = erc20_reads(balance=500 * USDC, allowance=0)

        with pytest.raises(AaveError) as exc:
            run(aave.supply(mock_wallet, SupplyArgs(asset="USDC", amount="0.0000001")))

        assert error_code(exc) is AaveErrorCode.AMOUNT_BELOW_MINIMUM
        assert exc.value.details["minimum"] == "0.0001"
        assert exc.value.details["provided"] == "0.0000001"
        mock_wallet.send_transaction.assert_not_awaited()

    @pytest.mark.parametrize("amount", ["abc", "0", "-1"])
    def test_invalid_amount(self, mock_wallet, aave, amount):
        with pytest.raises(AaveError) as exc:
            run(aave.supply(mock_wallet, SupplyArgs(asset="USDC", amount=amount)))
        assert error_code(exc) is AaveErrorCode.INVALID_AMOUNT

    def test_approval_failure(self, mock_wallet, aave):
        mock_wallet.read_contract = erc20_reads(balance=500 * USDC, allowance=0)
        mock_wallet.send_transaction = AsyncMock(side_effect=WalletError("nonce too low"))

        with pytest.raises(AaveError) as exc:
            run(aave.supply(mock_wallet, SupplyArgs(asset="USDC", amount="100")))

        assert error_code(exc) is AaveErrorCode.APPROVAL_FAILED
        assert exc.value.details == "Failed to approve USDC: nonce too low"

    def test_reverted_supply(self, mock_wallet, aave):
        mock_wallet.read_contract = erc20_reads(balance=500 * USDC, allowance=500 * USDC)
        mock_wallet.wait_for_transaction_receipt = AsyncMock(side_effect=WalletError("Transaction reverted"))

        with pytest.raises(AaveError) as exc:
            run(aave.supply(mock_wallet, SupplyArgs(asset="USDC", amount="100")))

        assert error_code(exc) is AaveErrorCode.SUPPLY_FAILED

    def test_unexpected_error_wrapped(self, mock_wallet, aave):
        mock_wallet.read_contract = AsyncMock(side_effect=ConnectionError("rpc down"))

        with pytest.raises(AaveError) as exc:
            run(aave.supply(mock_wallet, SupplyArgs(asset="USDC", amount="100")))

        assert error_code(exc) is AaveErrorCode.TRANSACTION_FAILED
        assert isinstance(exc.value.__cause__, ConnectionError)

    def test_error_reaches_model_as_text(self, mock_wallet, aave):
        mock_wallet.read_contract = erc20_reads(balance=0, allowance=0)
        toolkit = Toolkit(mock_wallet, [aave])

        result = run(toolkit.invoke("aave_supply", {"asset": "USDC", "amount": "1"}))

        assert result.startswith("Error executing aave_supply: [INSUFFICIENT_BALANCE]")


class TestWithdrawBorrowRepay:
    def test_withdraw(self, mock_wallet, aave):
        result = run(aave.withdraw(mock_wallet, WithdrawArgs(asset="USDC", amount="50")))

        mock_wallet.encode_function_data.assert_called_once_with(
            AAVE_POOL_ADDRESS, AAVE_POOL_ABI, "withdraw", [USDC_ADDRESS, 50 * USDC, WALLET_ADDRESS]
        )
        assert result.startswith("Successfully withdrew 50 USDC from Aave.")

    def test_withdraw_failure(self, mock_wallet, aave):
        mock_wallet.send_transaction = AsyncMock(side_effect=WalletError("execution reverted"))
        with pytest.raises(AaveError) as exc:
            run(aave.withdraw(mock_wallet, WithdrawArgs(asset="USDC", amount="50")))
        assert error_code(exc) is AaveErrorCode.WITHDRAW_FAILED

    def test_withdraw_below_one_base_unit(self, mock_wallet, aave):
        with pytest.raises(AaveError) as exc:
            run(aave.withdraw(mock_wallet, WithdrawArgs(asset="USDC", amount="0.0000001")))
        assert error_code(exc) is AaveErrorCode.INVALID_AMOUNT
        assert "one base unit of USDC" in exc.value.details
        mock_wallet.send_transaction.assert_not_awaited()

    def test_borrow_variable_by_default(self, mock_wallet, aave):
        run(aave.borrow(mock_wallet, BorrowArgs(asset="USDC", amount="10")))

        args = mock_wallet.encode_function_data.call_args.args
        assert args[2] == "borrow"
        assert args[3] == [USDC_ADDRESS, 10 * USDC, 2, 0, WALLET_ADDRESS]

    def test_borrow_stable(self, mock_wallet, aave):
        run(aave.borrow(mock_wallet, BorrowArgs(asset="USDC", amount="10", interest_rate_mode="STABLE")))
        assert mock_wallet.encode_function_data.call_args.args[3][2] == 1

    def test_borrow_failure(self, mock_wallet, aave):
        mock_wallet.wait_for_transaction_receipt = AsyncMock(side_effect=WalletError("reverted"))
        with pytest.raises(AaveError) as exc:
            run(aave.borrow(mock_wallet, BorrowArgs(asset="WETH", amount="0.01")))
        assert error_code(exc) is AaveErrorCode.BORROW_FAILED

    def test_repay_checks_balance_and_allowance(self, mock_wallet, aave):
        mock_wallet.read_contract = erc20_reads(balance=100 * USDC, allowance=0)

        result = run(aave.repay(mock_wallet, RepayArgs(asset="USDC", amount="10")))

        names = [c.args[2] for c in mock_wallet.encode_function_data.call_args_list]
        assert names == ["approve", "repay"]
        repay_args = mock_wallet.encode_function_data.call_args.args[3]
        assert repay_args == [USDC_ADDRESS, 10 * USDC, 2, WALLET_ADDRESS]
        assert result.startswith("Successfully repaid 10 USDC to Aave.")

    def test_repay_insufficient_balance(self, mock_wallet, aave):
        mock_wallet.read_contract = erc20_reads(balance=1 * USDC, allowance=0)
        with pytest.raises(AaveError) as exc:
            run(aave.repay(mock_wallet, RepayArgs(asset="USDC", amount="10")))
        assert error_code(exc) is AaveErrorCode.INSUFFICIENT_BALANCE

    def test_repay_failure(self, mock_wallet, aave):
        mock_wallet.read_contract = erc20_reads(balance=100 * USDC, allowance=100 * USDC)
        mock_wallet.send_transaction = AsyncMock(side_effect=WalletError("reverted"))
        with pytest.raises(AaveError) as exc:
            run(aave.repay(mock_wallet, RepayArgs(asset="USDC", amount="10")))
        assert error_code(exc) is AaveErrorCode.REPAY_FAILED


class TestAccountData:
    def test_formats_position(self, mock_wallet, aave):
        mock_wallet.read_contract = AsyncMock(return_value=(
            250 * 10**8, 100 * 10**8, 50 * 10**8, 8300, 7500, 15 * 10**17,
        ))

        result = run(aave.get_user_account_data(mock_wallet, AccountDataArgs()))

        assert "- Total collateral: 250 USD" in result
        assert "- Total debt: 100 USD" in result
        assert "- LTV: 75.00%" in result
        assert "- Health factor: 1.5000" in result

    def test_read_failure_is_network_error(self, mock_wallet, aave):
        mock_wallet.read_contract = AsyncMock(side_effect=ConnectionError("rpc down"))
        with pytest.raises(AaveError) as exc:
            run(aave.get_user_account_data(mock_wallet, AccountDataArgs()))
        assert error_code(exc) is AaveErrorCode.NETWORK_ERROR
