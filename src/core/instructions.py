"""
Program-independent instruction builders.

Compute budget, SOL transfers, associated token accounts and SPL token
movements. Every builder is pure: the same arguments always produce a
byte-identical instruction.
"""

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from spl.token.instructions import (
    CloseAccountParams,
    SyncNativeParams,
    TransferCheckedParams,
    close_account,
    create_idempotent_associated_token_account,
    sync_native,
    transfer_checked,
)

from core.errors import InvalidAmountError
from core.pubkeys import TOKEN_DECIMALS, SystemAddresses


def compute_budget_instructions(
    unit_limit: int | None, unit_price: int | None
) -> list[Instruction]:
    """Compute-budget prologue for a transaction.

    Args:
        unit_limit: Compute unit limit, omitted when None
        unit_price: Priority fee in micro-lamports per unit, omitted when None

    Returns:
        Zero, one or two compute budget instructions
    """
    instructions = []
    if unit_limit is not None:
        instructions.append(set_compute_unit_limit(unit_limit))
    if unit_price is not None:
        instructions.append(set_compute_unit_price(unit_price))
    return instructions


def create_ata_idempotent(
    payer: Pubkey,
    owner: Pubkey,
    mint: Pubkey,
    token_program_id: Pubkey = SystemAddresses.TOKEN_PROGRAM,
) -> Instruction:
    """Create owner's associated token account, no-op if it already exists."""
    return create_idempotent_associated_token_account(
        payer, owner, mint, token_program_id
    )


def transfer_sol(from_pubkey: Pubkey, to_pubkey: Pubkey, lamports: int) -> Instruction:
    """Plain system transfer."""
    if lamports <= 0:
        raise InvalidAmountError(f"Transfer amount must be positive, got {lamports}")
    return transfer(
        TransferParams(from_pubkey=from_pubkey, to_pubkey=to_pubkey, lamports=lamports)
    )


def transfer_tokens(
    source: Pubkey,
    dest: Pubkey,
    owner: Pubkey,
    mint: Pubkey,
    amount: int,
    token_program_id: Pubkey = SystemAddresses.TOKEN_PROGRAM,
    decimals: int = TOKEN_DECIMALS,
) -> Instruction:
    """SPL transfer_checked between two token accounts of the same mint."""
    if amount <= 0:
        raise InvalidAmountError(f"Token transfer amount must be positive, got {amount}")
    return transfer_checked(
        TransferCheckedParams(
            program_id=token_program_id,
            source=source,
            mint=mint,
            dest=dest,
            owner=owner,
            amount=amount,
            decimals=decimals,
        )
    )


def wrap_sol_instructions(owner: Pubkey, wsol_account: Pubkey, lamports: int) -> list[Instruction]:
    """Create the WSOL account, fund it and sync its token balance."""
    return [
        create_ata_idempotent(owner, owner, SystemAddresses.SOL_MINT),
        transfer_sol(owner, wsol_account, lamports),
        sync_native(SyncNativeParams(SystemAddresses.TOKEN_PROGRAM, wsol_account)),
    ]


def close_token_account(account: Pubkey, owner: Pubkey) -> Instruction:
    """Close a token account and return its lamports to the owner."""
    return close_account(
        CloseAccountParams(
            program_id=SystemAddresses.TOKEN_PROGRAM,
            account=account,
            dest=owner,
            owner=owner,
        )
    )
