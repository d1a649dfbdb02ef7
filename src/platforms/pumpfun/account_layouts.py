"""
Binary layouts of pump.fun program accounts.
"""

import struct

from core.account_layout import AccountLayout

GLOBAL_DISCRIMINATOR = bytes([167, 232, 232, 177, 200, 108, 114, 127])
BONDING_CURVE_DISCRIMINATOR = struct.pack("<Q", 6966180631402821399)

BONDING_CURVE_LAYOUT = AccountLayout(
    "BondingCurve",
    [
        ("virtual_token_reserves", 8, "u64"),
        ("virtual_sol_reserves", 16, "u64"),
        ("real_token_reserves", 24, "u64"),
        ("real_sol_reserves", 32, "u64"),
        ("token_total_supply", 40, "u64"),
        ("complete", 48, "bool"),
        ("creator", 49, "pubkey"),
    ],
    discriminator=BONDING_CURVE_DISCRIMINATOR,
)

# Byte 81 onward is only present on extended curves
BONDING_CURVE_MAYHEM_OFFSET = 81

GLOBAL_LAYOUT = AccountLayout(
    "Global",
    [
        ("initialized", 8, "bool"),
        ("authority", 9, "pubkey"),
        ("fee_recipient", 41, "pubkey"),
        ("initial_virtual_token_reserves", 73, "u64"),
        ("initial_virtual_sol_reserves", 81, "u64"),
        ("initial_real_token_reserves", 89, "u64"),
        ("token_total_supply", 97, "u64"),
        ("fee_basis_points", 105, "u64"),
        ("withdraw_authority", 113, "pubkey"),
        ("enable_migrate", 145, "bool"),
    ],
    discriminator=GLOBAL_DISCRIMINATOR,
)


def is_mayhem_curve(data: bytes) -> bool:
    """Whether an extended bonding curve has the mayhem flag set."""
    return len(data) > BONDING_CURVE_MAYHEM_OFFSET and data[BONDING_CURVE_MAYHEM_OFFSET] != 0
