import struct

import pytest
from solders.keypair import Keypair

from core.account_layout import TOKEN_ACCOUNT_LAYOUT, AccountLayout
from core.errors import AccountLayoutError
from platforms.pumpfun.account_layouts import BONDING_CURVE_LAYOUT, is_mayhem_curve
from platforms.pumpswap.account_layouts import POOL_LAYOUT, is_mayhem_pool

from conftest import bonding_curve_data, token_account_data


def test_token_account_amount_at_offset_64():
    mint, owner = Keypair().pubkey(), Keypair().pubkey()
    decoded = TOKEN_ACCOUNT_LAYOUT.decode(token_account_data(mint, owner, 123_456))
    assert decoded == {"mint": mint, "owner": owner, "amount": 123_456}


def test_short_buffer_raises_instead_of_zero_filling():
    with pytest.raises(AccountLayoutError, match="too short"):
        TOKEN_ACCOUNT_LAYOUT.decode(bytes(70))


def test_missing_data_raises():
    with pytest.raises(AccountLayoutError):
        TOKEN_ACCOUNT_LAYOUT.decode(None)


def test_bonding_curve_decode():
    creator = Keypair().pubkey()
    data = bonding_curve_data(31 * 10**9, 1_000 * 10**12, creator, complete=True)
    decoded = BONDING_CURVE_LAYOUT.decode(data)

    assert decoded["virtual_sol_reserves"] == 31 * 10**9
    assert decoded["virtual_token_reserves"] == 1_000 * 10**12
    assert decoded["complete"] is True
    assert decoded["creator"] == creator
    assert not is_mayhem_curve(data)
    assert is_mayhem_curve(data + bytes([1]))


def test_discriminator_mismatch_raises():
    data = bytearray(bonding_curve_data(1, 1, Keypair().pubkey()))
    data[0] ^= 0xFF
    with pytest.raises(AccountLayoutError, match="discriminator"):
        BONDING_CURVE_LAYOUT.decode(bytes(data))


def test_pool_decode_and_mayhem_flag():
    base_mint = Keypair().pubkey()
    data = bytearray(244)
    data[43:75] = bytes(base_mint)
    data[203:211] = struct.pack("<Q", 42)
    decoded = POOL_LAYOUT.decode(bytes(data))

    assert decoded["base_mint"] == base_mint
    assert decoded["lp_supply"] == 42
    assert not is_mayhem_pool(bytes(data))
    data[243] = 1
    assert is_mayhem_pool(bytes(data))


def test_layout_size_is_furthest_field_end():
    layout = AccountLayout("Tiny", [("a", 0, "u8"), ("b", 4, "u32")])
    assert layout.size == 8
    assert layout.decode(bytes([7, 0, 0, 0, 1, 0, 0, 0])) == {"a": 7, "b": 1}
