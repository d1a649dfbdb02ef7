"""
Binary layouts of PumpSwap AMM accounts.
"""

from core.account_layout import AccountLayout

POOL_LAYOUT = AccountLayout(
    "Pool",
    [
        ("pool_bump", 8, "u8"),
        ("index", 9, "u16"),
        ("creator", 11, "pubkey"),
        ("base_mint", 43, "pubkey"),
        ("quote_mint", 75, "pubkey"),
        ("lp_mint", 107, "pubkey"),
        ("pool_base_token_account", 139, "pubkey"),
        ("pool_quote_token_account", 171, "pubkey"),
        ("lp_supply", 203, "u64"),
        ("coin_creator", 211, "pubkey"),
    ],
)

POOL_BASE_MINT_OFFSET = 43
POOL_MAYHEM_MODE_OFFSET = 243

# GlobalConfig: discriminator(8) admin(32) default fee recipient(32) then the
# mayhem fee recipient
GLOBAL_CONFIG_LAYOUT = AccountLayout(
    "GlobalConfig",
    [
        ("admin", 8, "pubkey"),
        ("reserved_fee_recipient", 72, "pubkey"),
    ],
)


def is_mayhem_pool(data: bytes) -> bool:
    """Whether a pool has the mayhem flag set."""
    return len(data) > POOL_MAYHEM_MODE_OFFSET and data[POOL_MAYHEM_MODE_OFFSET] != 0
