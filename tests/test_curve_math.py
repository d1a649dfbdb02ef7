import random
from fractions import Fraction

import pytest

from core.curve_math import (
    DEFAULT_FEES,
    FeeParameters,
    FeeScheme,
    ReserveState,
    apply_slippage,
    compute_service_fee,
    quote_buy,
    quote_sell,
)
from core.errors import CurveMathError, InvalidAmountError
from core.pubkeys import LAMPORTS_PER_SOL, U64_MAX

LAUNCH = ReserveState(30 * LAMPORTS_PER_SOL, 1_073_000_000 * 10**6)


def oracle_buy(reserves: ReserveState, amount: int, fees: FeeParameters = DEFAULT_FEES) -> int:
    """Exact rational constant-product output, floored."""
    fee = max(fees.service_fee_floor, amount * fees.service_fee_bps // 10_000)
    net = Fraction(amount - fee)
    out = net * reserves.output_reserve / (reserves.input_reserve + net)
    return int(out)


def test_one_sol_buy_on_launch_curve():
    quote = quote_buy(LAUNCH, LAMPORTS_PER_SOL)

    assert quote.fee_amount == 10_000_000
    assert quote.new_input_reserve == 30 * LAMPORTS_PER_SOL + 990_000_000
    assert quote.amount_out == oracle_buy(LAUNCH, LAMPORTS_PER_SOL)
    assert quote.new_output_reserve == LAUNCH.output_reserve - quote.amount_out


def test_service_fee_floor():
    assert compute_service_fee(50_000) == 1_000
    assert compute_service_fee(100_000) == 1_000
    assert compute_service_fee(1_000_000) == 10_000


def test_fee_consuming_input_is_rejected():
    with pytest.raises(InvalidAmountError):
        quote_buy(LAUNCH, 1_000)


@pytest.mark.parametrize("amount", [0, -5])
def test_non_positive_amount_is_rejected(amount):
    with pytest.raises(InvalidAmountError):
        quote_buy(LAUNCH, amount)


def test_empty_reserves_raise_curve_error():
    with pytest.raises(CurveMathError):
        quote_buy(ReserveState(0, 1_000), LAMPORTS_PER_SOL)


def test_out_of_range_reserves_raise_curve_error():
    with pytest.raises(CurveMathError):
        quote_buy(ReserveState(U64_MAX + 1, 1_000), LAMPORTS_PER_SOL)


def test_buy_output_is_monotonic():
    amounts = [10**6, 10**7, 10**8, 10**9, 5 * 10**9, 50 * 10**9]
    outputs = [quote_buy(LAUNCH, a).amount_out for a in amounts]
    assert outputs == sorted(outputs)
    assert all(out < LAUNCH.output_reserve for out in outputs)


def test_buy_matches_exact_oracle_on_random_inputs():
    rng = random.Random(1234)
    half = U64_MAX // 2
    for _ in range(200):
        reserves = ReserveState(rng.randint(1, half), rng.randint(1, half))
        amount = rng.randint(2_000, half)
        quote = quote_buy(reserves, amount)
        assert quote.amount_out == oracle_buy(reserves, amount)
        assert quote.new_output_reserve >= 0


def test_sell_fee_comes_out_of_proceeds():
    tokens = 10_000_000 * 10**6
    quote = quote_sell(LAUNCH, tokens)

    gross = tokens * LAUNCH.input_reserve // (LAUNCH.output_reserve + tokens)
    assert quote.gross_amount_out == gross
    assert quote.fee_amount == compute_service_fee(gross)
    assert quote.amount_out == gross - quote.fee_amount
    assert quote.new_output_reserve == LAUNCH.output_reserve + tokens


def test_buy_then_sell_does_not_create_value():
    buy = quote_buy(LAUNCH, LAMPORTS_PER_SOL)
    sell = quote_sell(LAUNCH.after(buy), buy.amount_out)
    assert sell.amount_out < LAMPORTS_PER_SOL


def test_chained_quotes_see_previous_reserves():
    first = quote_buy(LAUNCH, LAMPORTS_PER_SOL)
    second = quote_buy(LAUNCH.after(first), LAMPORTS_PER_SOL)
    assert second.amount_out < first.amount_out


def test_amm_pool_buy_charges_fee_on_top():
    pool = ReserveState(100 * LAMPORTS_PER_SOL, 200_000_000 * 10**6, FeeScheme.AMM_POOL)
    amount = LAMPORTS_PER_SOL
    quote = quote_buy(pool, amount)

    actual = amount * 10_000 // (10_000 + DEFAULT_FEES.amm_total_bps)
    assert quote.fee_amount == amount - actual
    assert quote.new_input_reserve == pool.input_reserve + actual
    k = pool.input_reserve * pool.output_reserve
    assert quote.amount_out == pool.output_reserve - k // (pool.input_reserve + actual - 1)


def test_amm_pool_sell_fee_in_basis_points():
    pool = ReserveState(100 * LAMPORTS_PER_SOL, 200_000_000 * 10**6, FeeScheme.AMM_POOL)
    quote = quote_sell(pool, 1_000_000 * 10**6)
    assert quote.fee_amount == quote.gross_amount_out * DEFAULT_FEES.amm_total_bps // 10_000


def test_scheme_argument_overrides_snapshot():
    as_curve = quote_buy(LAUNCH, LAMPORTS_PER_SOL)
    as_pool = quote_buy(LAUNCH, LAMPORTS_PER_SOL, scheme=FeeScheme.AMM_POOL)
    assert as_curve.fee_amount != as_pool.fee_amount


def test_apply_slippage():
    assert apply_slippage(10_000, 8_500) == 8_500
    assert apply_slippage(3, 7_000) == 2
    with pytest.raises(InvalidAmountError):
        apply_slippage(10_000, 0)


def oracle_sell(reserves: ReserveState, amount: int, scheme: FeeScheme) -> tuple[int, int]:
    """Exact rational gross proceeds, floored, and the fee taken from them."""
    gross = int(Fraction(amount * reserves.input_reserve, reserves.output_reserve + amount))
    if scheme is FeeScheme.BONDING_CURVE:
        fee = compute_service_fee(gross)
    else:
        fee = gross * DEFAULT_FEES.amm_total_bps // 10_000
    return gross, fee


@pytest.mark.parametrize("scheme", [FeeScheme.BONDING_CURVE, FeeScheme.AMM_POOL])
@pytest.mark.parametrize(
    "input_reserve, output_reserve, amount",
    [
        (U64_MAX // 2, U64_MAX // 2, U64_MAX // 2),
        (U64_MAX, 1, 1),
        (U64_MAX, U64_MAX // 2, U64_MAX // 2),
        (U64_MAX // 3, 10**6, U64_MAX // 2),
        (10**18, U64_MAX // 2, 10**12),
    ],
)
def test_sell_matches_exact_oracle_near_u64_limits(scheme, input_reserve, output_reserve, amount):
    reserves = ReserveState(input_reserve, output_reserve, scheme)
    gross, fee = oracle_sell(reserves, amount, scheme)

    quote = quote_sell(reserves, amount)

    assert quote.gross_amount_out == gross
    assert quote.fee_amount == fee
    assert quote.amount_out == gross - fee
    assert quote.new_input_reserve == input_reserve - gross
    assert quote.new_output_reserve == output_reserve + amount
    assert quote.new_output_reserve <= U64_MAX


@pytest.mark.parametrize("scheme", [FeeScheme.BONDING_CURVE, FeeScheme.AMM_POOL])
def test_sell_matches_exact_oracle_on_random_inputs(scheme):
    rng = random.Random(4321)
    half = U64_MAX // 2
    for _ in range(200):
        reserves = ReserveState(rng.randint(10**9, half), rng.randint(1, half), scheme)
        amount = rng.randint(1, half)
        gross, fee = oracle_sell(reserves, amount, scheme)
        if gross == 0 or fee >= gross:
            with pytest.raises(InvalidAmountError):
                quote_sell(reserves, amount)
            continue
        quote = quote_sell(reserves, amount)
        assert (quote.gross_amount_out, quote.fee_amount) == (gross, fee)


@pytest.mark.parametrize("scheme", [FeeScheme.BONDING_CURVE, FeeScheme.AMM_POOL])
def test_sell_past_u64_output_reserve_raises_curve_error(scheme):
    half = U64_MAX // 2
    reserves = ReserveState(U64_MAX, half + 1, scheme)
    with pytest.raises(CurveMathError, match="new_output_reserve"):
        quote_sell(reserves, half + 1)
