"""
Aave errors - coded failures for the lending actions.
"""

import json
from enum import Enum
from typing import Any, Optional


class AaveErrorCode(Enum):
    # Connection / network
    NETWORK_ERROR = "NETWORK_ERROR"
    UNSUPPORTED_NETWORK = "UNSUPPORTED_NETWORK"

    # Transaction
    TRANSACTION_FAILED = "TRANSACTION_FAILED"
    INSUFFICIENT_ALLOWANCE = "INSUFFICIENT_ALLOWANCE"

    # Asset
    UNSUPPORTED_ASSET = "UNSUPPORTED_ASSET"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"

    # Protocol
    INSUFFICIENT_COLLATERAL = "INSUFFICIENT_COLLATERAL"
    HEALTH_FACTOR_TOO_LOW = "HEALTH_FACTOR_TOO_LOW"
    BORROW_CAP_REACHED = "BORROW_CAP_REACHED"
    SUPPLY_CAP_REACHED = "SUPPLY_CAP_REACHED"

    # Market
    MARKET_FROZEN = "MARKET_FROZEN"
    RESERVE_INACTIVE = "RESERVE_INACTIVE"

    # User position
    NO_DEBT_TO_REPAY = "NO_DEBT_TO_REPAY"
    NO_COLLATERAL_TO_WITHDRAW = "NO_COLLATERAL_TO_WITHDRAW"

    # Operation
    INVALID_AMOUNT = "INVALID_AMOUNT"
    APPROVAL_FAILED = "APPROVAL_FAILED"
    SUPPLY_FAILED = "SUPPLY_FAILED"
    WITHDRAW_FAILED = "WITHDRAW_FAILED"
    BORROW_FAILED = "BORROW_FAILED"
    REPAY_FAILED = "REPAY_FAILED"
    AMOUNT_BELOW_MINIMUM = "AMOUNT_BELOW_MINIMUM"


ERROR_MESSAGES: dict[AaveErrorCode, str] = {
    AaveErrorCode.NETWORK_ERROR: "Failed to connect to the network",
    AaveErrorCode.UNSUPPORTED_NETWORK: "This network is not supported by the Aave protocol",
    AaveErrorCode.TRANSACTION_FAILED: "Transaction failed to execute",
    AaveErrorCode.INSUFFICIENT_ALLOWANCE: "Insufficient token allowance",
    AaveErrorCode.UNSUPPORTED_ASSET: "This asset is not supported on this network",
    AaveErrorCode.INSUFFICIENT_BALANCE: "Insufficient balance for the operation",
    AaveErrorCode.INSUFFICIENT_COLLATERAL: "Insufficient collateral for the operation",
    AaveErrorCode.HEALTH_FACTOR_TOO_LOW: "Operation would put health factor below minimum",
    AaveErrorCode.BORROW_CAP_REACHED: "Borrow cap has been reached for this asset",
    AaveErrorCode.SUPPLY_CAP_REACHED: "Supply cap has been reached for this asset",
    AaveErrorCode.MARKET_FROZEN: "Market is currently frozen",
    AaveErrorCode.RESERVE_INACTIVE: "Reserve is not active",
    AaveErrorCode.NO_DEBT_TO_REPAY: "No debt to repay for this asset",
    AaveErrorCode.NO_COLLATERAL_TO_WITHDRAW: "No collateral available to withdraw",
    AaveErrorCode.INVALID_AMOUNT: "Invalid amount specified",
    AaveErrorCode.APPROVAL_FAILED: "Failed to approve token transfer",
    AaveErrorCode.SUPPLY_FAILED: "Failed to supply assets to Aave",
    AaveErrorCode.WITHDRAW_FAILED: "Failed to withdraw assets from Aave",
    AaveErrorCode.BORROW_FAILED: "Failed to borrow assets from Aave",
    AaveErrorCode.REPAY_FAILED: "Failed to repay borrowed assets",
    AaveErrorCode.AMOUNT_BELOW_MINIMUM: "Amount is below the minimum required for this operation",
}


class AaveError(Exception):
    def __init__(self, code: AaveErrorCode, message: str, details: Any = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details

    def __str__(self) -> str:
        text = f"[{self.code.value}] {self.message}"
        if self.details is not None:
            text += f"\nDetails: {json.dumps(self.details, indent=2, default=str)}"
        return text


def create_aave_error(code: AaveErrorCode, details: Optional[Any] = None) -> AaveError:
    """Build an AaveError with the canonical message for `code`."""
    if isinstance(details, BaseException):
        details = str(details)
    return AaveError(code, ERROR_MESSAGES[code], details)


def wrap_error(error: BaseException, code: AaveErrorCode = AaveErrorCode.TRANSACTION_FAILED) -> AaveError:
    """Pass AaveErrors through; wrap anything else under `code`."""
    if isinstance(error, AaveError):
        return error
    return create_aave_error(code, error)
