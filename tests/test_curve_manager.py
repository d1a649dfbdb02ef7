import asyncio

import pytest

from core.curve_math import FeeScheme
from core.errors import StateReadError
from core.pubkeys import SystemAddresses
from platforms import get_platform_implementations
from interfaces.core import Platform

from conftest import (
    INITIAL_VIRTUAL_SOL,
    INITIAL_VIRTUAL_TOKENS,
    POOL_SOL,
    POOL_TOKENS,
    FakeAccount,
    bonding_curve_data,
)


def test_pumpfun_resolves_curve(client, live_curve, creator, provider):
    manager = get_platform_implementations(Platform.PUMP_FUN, client).curve_manager

    token_info = asyncio.run(manager.resolve_token_info(live_curve))
    reserves = asyncio.run(manager.get_reserves(token_info))

    assert token_info.creator == creator
    assert token_info.bonding_curve == provider.derive_pool_address(live_curve)
    assert token_info.creator_vault == provider.derive_creator_vault(creator)
    assert reserves.input_reserve == INITIAL_VIRTUAL_SOL
    assert reserves.output_reserve == INITIAL_VIRTUAL_TOKENS
    assert reserves.scheme is FeeScheme.BONDING_CURVE


def test_completed_curve_is_not_tradeable(client, mint, creator, provider):
    client.accounts[provider.derive_pool_address(mint)] = FakeAccount(
        bonding_curve_data(1, 1, creator, complete=True), owner=SystemAddresses.SYSTEM_PROGRAM
    )
    client.accounts[mint] = FakeAccount(bytes(82), owner=SystemAddresses.TOKEN_PROGRAM)
    manager = get_platform_implementations(Platform.PUMP_FUN, client).curve_manager

    token_info = asyncio.run(manager.resolve_token_info(mint))
    with pytest.raises(StateReadError, match="complete"):
        asyncio.run(manager.get_reserves(token_info))


def test_initial_reserves_fall_back_without_global_account(client):
    manager = get_platform_implementations(Platform.PUMP_FUN, client).curve_manager
    reserves = asyncio.run(manager.get_initial_reserves())
    assert (reserves.input_reserve, reserves.output_reserve) == (
        INITIAL_VIRTUAL_SOL,
        INITIAL_VIRTUAL_TOKENS,
    )


def test_pumpswap_reserves_come_from_vault_balances(client, live_pool):
    manager = get_platform_implementations(Platform.PUMP_SWAP, client).curve_manager
    token_info = asyncio.run(manager.resolve_token_info(live_pool.mint))
    reserves = asyncio.run(manager.get_reserves(token_info))

    assert token_info.pool == live_pool.pool
    assert token_info.creator == live_pool.creator
    assert token_info.pool_base_token_account == live_pool.base_vault
    assert token_info.token_program_id == SystemAddresses.TOKEN_2022_PROGRAM
    assert not token_info.is_mayhem_mode
    assert reserves.input_reserve == POOL_SOL
    assert reserves.output_reserve == POOL_TOKENS
    assert reserves.scheme is FeeScheme.AMM_POOL
