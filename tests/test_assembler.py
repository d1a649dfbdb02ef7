import asyncio

import pytest
from solders.hash import Hash
from solders.keypair import Keypair

from bundling.assembler import (
    TransactionAssembler,
    TransactionPlan,
    assemble_and_sign,
    chunk,
    expected_chunks,
    pack,
    serialized_size,
)
from bundling.jito import TIP_ACCOUNTS, build_tip_instruction
from core.errors import SigningError, TransactionSizeError
from core.instructions import transfer_sol
from core.pubkeys import MAX_TRANSACTION_SIZE, SystemAddresses


@pytest.mark.parametrize("count", [0, 1, 2, 3, 4, 7, 12, 13])
@pytest.mark.parametrize("size", [1, 3, 4])
def test_chunk_count_and_order(count, size):
    items = list(range(count))
    groups = chunk(items, size)

    assert len(groups) == expected_chunks(count, size)
    assert all(1 <= len(group) <= size for group in groups)
    assert [item for group in groups for item in group] == items


def test_chunk_rejects_zero_size():
    with pytest.raises(ValueError):
        chunk([1, 2], 0)


def test_sign_with_exact_signers():
    payer, other = Keypair(), Keypair()
    instructions = [
        transfer_sol(payer.pubkey(), other.pubkey(), 1_000),
        transfer_sol(other.pubkey(), payer.pubkey(), 1_000),
    ]
    tx = assemble_and_sign(instructions, [other, payer], payer.pubkey(), Hash.default())

    assert tx.message.account_keys[0] == payer.pubkey()
    assert len(tx.signatures) == 2
    tx.verify()


def test_missing_signer_raises():
    payer, other = Keypair(), Keypair()
    instructions = [transfer_sol(other.pubkey(), payer.pubkey(), 1_000)]
    with pytest.raises(SigningError, match="Missing"):
        assemble_and_sign(instructions, [payer], payer.pubkey(), Hash.default())


def test_unexpected_signer_raises():
    payer, stranger = Keypair(), Keypair()
    instructions = [transfer_sol(payer.pubkey(), Keypair().pubkey(), 1_000)]
    with pytest.raises(SigningError, match="without a signer slot"):
        assemble_and_sign(instructions, [payer, stranger], payer.pubkey(), Hash.default())


def test_oversized_transaction_raises():
    payer = Keypair()
    instructions = [transfer_sol(payer.pubkey(), Keypair().pubkey(), 1_000) for _ in range(40)]
    with pytest.raises(TransactionSizeError):
        assemble_and_sign(instructions, [payer], payer.pubkey(), Hash.default())


def test_assemble_fetches_blockhash_per_transaction(client):
    payers = [Keypair() for _ in range(3)]
    plans = [
        TransactionPlan(
            instructions=[transfer_sol(p.pubkey(), SystemAddresses.SYSTEM_PROGRAM, 5_000)],
            fee_payer=p.pubkey(),
            signers=[p],
        )
        for p in payers
    ]
    plans[0].instructions.insert(0, build_tip_instruction(payers[0].pubkey(), 1_000_000))

    assembler = TransactionAssembler(client)

    async def run():
        return [await assembler.assemble(plan) for plan in plans]

    transactions = asyncio.run(run())

    assert client.blockhash_requests == 3
    assert all(plan.recent_blockhash is not None for plan in plans)
    tip_holders = [
        index
        for index, tx in enumerate(transactions)
        if any(key in TIP_ACCOUNTS for key in tx.message.account_keys)
    ]
    assert tip_holders == [0]


@pytest.mark.parametrize("signers", [1, 2, 5])
def test_serialized_size_matches_signed_transaction(signers):
    keypairs = [Keypair() for _ in range(signers)]
    payer = keypairs[0].pubkey()
    instructions = [
        transfer_sol(kp.pubkey(), Keypair().pubkey(), 1_000 + i) for i, kp in enumerate(keypairs)
    ]
    tx = assemble_and_sign(instructions, keypairs, payer, Hash.default())
    assert serialized_size(instructions, payer) == len(bytes(tx))


def test_fits_counts_the_prologue(client):
    payer = Keypair().pubkey()
    instructions = [transfer_sol(payer, Keypair().pubkey(), 1_000) for _ in range(20)]
    bare = serialized_size(instructions, payer)
    assert bare <= MAX_TRANSACTION_SIZE

    assert TransactionAssembler(client).fits(instructions, payer)
    with_prologue = TransactionAssembler(client, 200_000, 1_000)
    assert with_prologue.fits(instructions, payer) == (
        serialized_size(with_prologue._with_prologue(instructions), payer)
        <= MAX_TRANSACTION_SIZE
    )
    assert not with_prologue.fits(instructions * 2, payer)


def test_pack_closes_groups_that_would_not_fit():
    # Weights stand in for byte sizes, with a budget of 10 per group
    weights = [4, 4, 4, 9, 2, 2, 2, 2]
    groups, oversized = pack(weights, 3, lambda group, index: sum(group) <= 10)

    assert groups == [[4, 4], [4], [9], [2, 2, 2], [2]]
    assert oversized == []


def test_pack_leaves_out_items_that_never_fit():
    groups, oversized = pack([3, 12, 3, 3], 3, lambda group, index: sum(group) <= 10)

    assert groups == [[3], [3, 3]]
    assert oversized == [12]


def test_pack_passes_the_group_index():
    # The first group has less room, as the first transaction carries extra instructions
    groups, _ = pack([1] * 7, 4, lambda group, index: sum(group) <= (2 if index == 0 else 4))

    assert groups == [[1, 1], [1, 1, 1, 1], [1]]


def test_pack_without_limit_matches_chunk():
    items = list(range(10))
    groups, oversized = pack(items, 3, lambda group, index: True)
    assert groups == chunk(items, 3)
    assert oversized == []


def test_pack_rejects_zero_size():
    with pytest.raises(ValueError):
        pack([1], 0, lambda group, index: True)

def test_compute_budget_prologue(client):
    payer = Keypair()
    plan = TransactionPlan(
        instructions=[transfer_sol(payer.pubkey(), Keypair().pubkey(), 1_000)],
        fee_payer=payer.pubkey(),
        signers=[payer],
    )
    tx = asyncio.run(TransactionAssembler(client, 200_000, 1_000).assemble(plan))
    assert len(tx.message.instructions) == 3
