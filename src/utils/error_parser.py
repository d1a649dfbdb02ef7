"""
Error parsing utilities for Solana transaction errors.

Maps custom program error codes found in transaction error strings to the
program's error names, and flags slippage failures.
"""

import re
from dataclasses import dataclass

from interfaces.core import Platform

# Custom error codes of the bonding curve program
PUMP_FUN_ERRORS: dict[int, tuple[str, str]] = {
    6000: ("NotAuthorized", "The given account is not authorized to execute this instruction."),
    6001: ("AlreadyInitialized", "The program is already initialized."),
    6002: ("TooMuchSolRequired", "slippage: Too much SOL required to buy the given amount of tokens."),
    6003: ("TooLittleSolReceived", "slippage: Too little SOL received to sell the given amount of tokens."),
    6004: ("MintDoesNotMatchBondingCurve", "The mint does not match the bonding curve."),
    6005: ("BondingCurveComplete", "The bonding curve has completed and liquidity migrated to raydium."),
    6006: ("BondingCurveNotComplete", "The bonding curve has not completed."),
    6007: ("NotInitialized", "The program is not initialized."),
    6020: ("BuyZeroAmount", "Buy zero amount."),
    6021: ("NotEnoughTokensToBuy", "Not enough tokens to buy."),
    6022: ("SellZeroAmount", "Sell zero amount."),
    6023: ("NotEnoughTokensToSell", "Not enough tokens to sell."),
}

# Custom error codes of the AMM program
PUMP_SWAP_ERRORS: dict[int, tuple[str, str]] = {
    6001: ("ZeroBaseAmount", "Base amount must be positive."),
    6002: ("ZeroQuoteAmount", "Quote amount must be positive."),
    6003: ("TooLittlePoolTokenLiquidity", "Pool token liquidity too low."),
    6004: ("ExceededSlippage", "Exceeded slippage."),
}

_ERROR_TABLES = {
    Platform.PUMP_FUN: PUMP_FUN_ERRORS,
    Platform.PUMP_SWAP: PUMP_SWAP_ERRORS,
}

_SLIPPAGE_CODES = {
    Platform.PUMP_FUN: {6002, 6003},
    Platform.PUMP_SWAP: {6004},
}


@dataclass
class ParsedError:
    """Parsed error information from a transaction error string."""

    code: int | None = None  # Error code (e.g., 6002)
    name: str | None = None  # Error name (e.g., "TooMuchSolRequired")
    message: str | None = None  # Error message
    is_slippage: bool = False  # Whether this is a slippage error
    platform: Platform | None = None  # Platform this error is associated with


def extract_error_code(error_string: str | None) -> int | None:
    """Extract error code from error string.

    Examples:
        "InstructionError((3, Tagged(Custom(InstructionErrorCustom(6002)))))"
        -> 6002
        "Custom(6002)"
        -> 6002
    """
    if not error_string:
        return None

    patterns = [
        r"InstructionErrorCustom\((\d+)\)",
        r"Custom\((\d+)\)",
        r"\"Custom\":\s*(\d+)",
    ]
    for pattern in patterns:
        match = re.search(pattern, error_string)
        if match:
            return int(match.group(1))
    return None


def parse_transaction_error(
    error_string: str | None, platform: Platform | None = None
) -> ParsedError:
    """Parse a transaction error string and classify it.

    Args:
        error_string: Error string from a transaction status
        platform: Platform to check errors for (if None, checks all platforms)

    Returns:
        ParsedError with error information and classification
    """
    if not error_string:
        return ParsedError()

    error_code = extract_error_code(error_string)
    if error_code is None:
        return ParsedError(message=error_string)

    for check_platform in [platform] if platform else list(Platform):
        table = _ERROR_TABLES.get(check_platform, {})
        if error_code in table:
            name, message = table[error_code]
            return ParsedError(
                code=error_code,
                name=name,
                message=message,
                is_slippage=error_code in _SLIPPAGE_CODES[check_platform],
                platform=check_platform,
            )

    return ParsedError(code=error_code, message=error_string)
