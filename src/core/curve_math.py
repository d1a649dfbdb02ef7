"""
Integer swap math for the two supported pool types.

Bonding curve (pump.fun program) and AMM pool (PumpSwap program) are both
constant-product curves; they differ in where the fee is taken. Every
division floors to match on-chain integer semantics, and every value that is
narrowed back to an on-chain u64 is range-checked instead of clamped.
"""

from dataclasses import dataclass
from enum import Enum

from core.errors import CurveMathError, InvalidAmountError
from core.pubkeys import U64_MAX

FEE_DENOMINATOR = 10_000


class FeeScheme(Enum):
    """Fee model applied by a pool."""

    BONDING_CURVE = "bonding_curve"  # fee on input (buy) or on SOL proceeds (sell)
    AMM_POOL = "amm_pool"  # combined lp/protocol/creator basis points


@dataclass(frozen=True)
class FeeParameters:
    """Fee rates used by the quote functions."""

    service_fee_bps: int = 100
    service_fee_floor: int = 1_000
    lp_fee_bps: int = 30
    protocol_fee_bps: int = 10
    creator_fee_bps: int = 10

    @property
    def amm_total_bps(self) -> int:
        return self.lp_fee_bps + self.protocol_fee_bps + self.creator_fee_bps


DEFAULT_FEES = FeeParameters()


@dataclass(frozen=True)
class ReserveState:
    """Snapshot of pool reserves at read time.

    input_reserve is always the SOL (quote) side and output_reserve the token
    (base) side, whichever direction a quote is taken in.
    """

    input_reserve: int
    output_reserve: int
    scheme: FeeScheme = FeeScheme.BONDING_CURVE

    def after(self, quote: "SwapQuote") -> "ReserveState":
        """Reserves after a quoted swap has been applied."""
        return ReserveState(
            input_reserve=quote.new_input_reserve,
            output_reserve=quote.new_output_reserve,
            scheme=self.scheme,
        )


@dataclass(frozen=True)
class SwapQuote:
    """Result of a curve computation.

    amount_out is what the trader receives: tokens on a buy, SOL net of the
    service fee on a sell. gross_amount_out is the curve output before any
    output-side fee.
    """

    amount_out: int
    fee_amount: int
    new_input_reserve: int
    new_output_reserve: int
    gross_amount_out: int


def _check_u64(name: str, value: int) -> int:
    if value < 0 or value > U64_MAX:
        raise CurveMathError(f"{name} out of u64 range: {value}")
    return value


def _check_amount(amount: int) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise InvalidAmountError(f"Amount must be an integer, got {amount!r}")
    if amount <= 0:
        raise InvalidAmountError(f"Amount must be positive, got {amount}")
    if amount > U64_MAX:
        raise InvalidAmountError(f"Amount exceeds u64 range: {amount}")


def _check_reserves(reserves: ReserveState) -> None:
    _check_u64("input_reserve", reserves.input_reserve)
    _check_u64("output_reserve", reserves.output_reserve)
    if reserves.input_reserve == 0 or reserves.output_reserve == 0:
        raise CurveMathError(
            f"Empty reserve: input={reserves.input_reserve}, "
            f"output={reserves.output_reserve}"
        )


def compute_service_fee(amount: int, fees: FeeParameters = DEFAULT_FEES) -> int:
    """Percentage fee with a fixed floor: max(floor, amount * bps / 10000)."""
    if amount < 0:
        raise InvalidAmountError(f"Amount must not be negative, got {amount}")
    return max(fees.service_fee_floor, amount * fees.service_fee_bps // FEE_DENOMINATOR)


def apply_slippage(amount: int, tolerance_bps: int) -> int:
    """Discount an expected amount to the minimum the caller will accept.

    Args:
        amount: Expected (un-tolerated) amount
        tolerance_bps: Share of the amount to keep, e.g. 8500 keeps 85%

    Returns:
        Floored discounted amount
    """
    if not 0 < tolerance_bps <= FEE_DENOMINATOR:
        raise InvalidAmountError(f"Slippage tolerance out of range: {tolerance_bps}")
    return amount * tolerance_bps // FEE_DENOMINATOR


def quote_buy(
    reserves: ReserveState,
    amount_in: int,
    scheme: FeeScheme | None = None,
    fees: FeeParameters = DEFAULT_FEES,
) -> SwapQuote:
    """Quote spending amount_in lamports for tokens.

    Args:
        reserves: Pool snapshot
        amount_in: Lamports to spend
        scheme: Fee scheme, defaults to the snapshot's scheme
        fees: Fee rates

    Returns:
        SwapQuote with tokens out and the reserves after the swap

    Raises:
        InvalidAmountError: Amount not positive or consumed by the fee
        CurveMathError: Empty reserves or a result outside u64
    """
    _check_amount(amount_in)
    _check_reserves(reserves)
    scheme = scheme or reserves.scheme

    if scheme is FeeScheme.BONDING_CURVE:
        fee = compute_service_fee(amount_in, fees)
        if fee >= amount_in:
            raise InvalidAmountError(
                f"Fee {fee} consumes the whole input amount {amount_in}"
            )
        amount_after_fee = amount_in - fee
        amount_out = (amount_after_fee * reserves.output_reserve) // (
            reserves.input_reserve + amount_after_fee
        )
        new_input = reserves.input_reserve + amount_after_fee
        new_output = reserves.output_reserve - amount_out
    else:
        actual = amount_in * FEE_DENOMINATOR // (FEE_DENOMINATOR + fees.amm_total_bps)
        if actual == 0:
            raise InvalidAmountError(f"Input amount {amount_in} is smaller than the pool fee")
        fee = amount_in - actual
        k = reserves.output_reserve * reserves.input_reserve
        new_quote = reserves.input_reserve + actual - 1
        new_base = k // new_quote
        amount_out = reserves.output_reserve - new_base
        new_input = reserves.input_reserve + actual
        new_output = reserves.output_reserve - amount_out

    return SwapQuote(
        amount_out=_check_u64("amount_out", amount_out),
        fee_amount=_check_u64("fee_amount", fee),
        new_input_reserve=_check_u64("new_input_reserve", new_input),
        new_output_reserve=_check_u64("new_output_reserve", new_output),
        gross_amount_out=amount_out,
    )


def quote_sell(
    reserves: ReserveState,
    amount_in: int,
    scheme: FeeScheme | None = None,
    fees: FeeParameters = DEFAULT_FEES,
) -> SwapQuote:
    """Quote selling amount_in raw tokens for SOL.

    The curve runs with the reserves swapped; the fee comes out of the SOL
    proceeds, not the token input.

    Args:
        reserves: Pool snapshot (input side is SOL)
        amount_in: Raw token amount to sell
        scheme: Fee scheme, defaults to the snapshot's scheme
        fees: Fee rates

    Returns:
        SwapQuote with net lamports out and the reserves after the swap
    """
    _check_amount(amount_in)
    _check_reserves(reserves)
    scheme = scheme or reserves.scheme

    sol_out = (amount_in * reserves.input_reserve) // (
        reserves.output_reserve + amount_in
    )
    if scheme is FeeScheme.BONDING_CURVE:
        fee = compute_service_fee(sol_out, fees)
    else:
        fee = sol_out * fees.amm_total_bps // FEE_DENOMINATOR

    if sol_out == 0 or fee >= sol_out:
        raise InvalidAmountError(
            f"Fee {fee} consumes the whole sale proceeds {sol_out}"
        )

    return SwapQuote(
        amount_out=_check_u64("amount_out", sol_out - fee),
        fee_amount=_check_u64("fee_amount", fee),
        new_input_reserve=_check_u64(
            "new_input_reserve", reserves.input_reserve - sol_out
        ),
        new_output_reserve=_check_u64(
            "new_output_reserve", reserves.output_reserve + amount_in
        ),
        gross_amount_out=sol_out,
    )
