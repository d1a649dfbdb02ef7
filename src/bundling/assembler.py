"""
Transaction assembly: chunking, blockhash attachment and signing.

A plan is compiled into a legacy message, the required signer slots are read
from the message header, and the plan's keys are checked against those slots
before anything is signed.
"""

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TypeVar

from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from core.client import SolanaClient
from core.errors import SigningError, TransactionSizeError
from core.instructions import compute_budget_instructions
from core.pubkeys import MAX_TRANSACTION_SIZE
from utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

SIGNATURE_SIZE = 64


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    """Split items into consecutive groups of at most size.

    Returns ceil(len(items) / size) groups; an empty input gives none.
    """
    if size < 1:
        raise ValueError(f"Chunk size must be at least 1, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def expected_chunks(count: int, size: int) -> int:
    return math.ceil(count / size) if count else 0


def pack(
    items: Sequence[T],
    size: int,
    fits: Callable[[list[T], int], bool],
) -> tuple[list[list[T]], list[T]]:
    """Split items into consecutive groups of at most size that also fit.

    fits(group, index) tells whether a candidate group can become the
    index-th transaction. A group is closed as soon as the next item would
    not fit in it. An item that does not fit even on its own is returned in
    the second list and left out of every group.
    """
    if size < 1:
        raise ValueError(f"Chunk size must be at least 1, got {size}")
    groups: list[list[T]] = []
    oversized: list[T] = []
    current: list[T] = []
    for item in items:
        if current and len(current) < size and fits([*current, item], len(groups)):
            current.append(item)
            continue
        if current:
            groups.append(current)
            current = []
        if fits([item], len(groups)):
            current = [item]
        else:
            oversized.append(item)
    if current:
        groups.append(current)
    return groups, oversized


@dataclass
class TransactionPlan:
    """Instructions for one transaction plus the keys allowed to sign it."""

    instructions: list[Instruction]
    fee_payer: Pubkey
    signers: list[Keypair]
    participants: list[Pubkey] = field(default_factory=list)
    recent_blockhash: Hash | None = None


def serialized_size(instructions: list[Instruction], fee_payer: Pubkey) -> int:
    """Wire size of the signed legacy transaction, computed without signing.

    Signature count, one 64-byte signature per signer slot, then the message.
    The count is a single compact-u16 byte below 128 signers.
    """
    message = Message(instructions, fee_payer)
    signatures = message.header.num_required_signatures
    return 1 + SIGNATURE_SIZE * signatures + len(bytes(message))


def assemble_and_sign(
    instructions: list[Instruction],
    signers: Sequence[Keypair],
    fee_payer: Pubkey,
    blockhash: Hash,
) -> Transaction:
    """Compile, check signers and sign.

    Only the keys occupying a signer slot sign; each slot must be covered and
    every provided key must own a slot.

    Raises:
        SigningError: A slot has no key or a key has no slot
        TransactionSizeError: The signed transaction is over the packet limit
    """
    message = Message(instructions, fee_payer)
    required = list(message.account_keys[: message.header.num_required_signatures])
    by_pubkey = {kp.pubkey(): kp for kp in signers}

    missing = [str(pk) for pk in required if pk not in by_pubkey]
    if missing:
        raise SigningError(f"Missing signatures for {', '.join(missing)}")
    unexpected = [str(pk) for pk in by_pubkey if pk not in required]
    if unexpected:
        raise SigningError(f"Keys without a signer slot: {', '.join(unexpected)}")

    transaction = Transaction([by_pubkey[pk] for pk in required], message, blockhash)
    size = len(bytes(transaction))
    if size > MAX_TRANSACTION_SIZE:
        raise TransactionSizeError(
            f"Transaction is {size} bytes, limit is {MAX_TRANSACTION_SIZE}"
        )
    return transaction


class TransactionAssembler:
    """Turns plans into signed transactions, each with a fresh blockhash."""

    def __init__(
        self,
        client: SolanaClient,
        compute_unit_limit: int | None = None,
        compute_unit_price: int | None = None,
    ):
        self.client = client
        self.compute_unit_limit = compute_unit_limit
        self.compute_unit_price = compute_unit_price

    def _with_prologue(self, instructions: list[Instruction]) -> list[Instruction]:
        return [
            *compute_budget_instructions(self.compute_unit_limit, self.compute_unit_price),
            *instructions,
        ]

    async def assemble(self, plan: TransactionPlan) -> Transaction:
        """Fetch a blockhash and sign one plan."""
        plan.recent_blockhash = await self.client.get_latest_blockhash()
        transaction = assemble_and_sign(
            self._with_prologue(plan.instructions),
            plan.signers,
            plan.fee_payer,
            plan.recent_blockhash,
        )
        logger.debug(
            f"Assembled tx for {plan.fee_payer}: {len(plan.instructions)} instructions, "
            f"{len(bytes(transaction))} bytes"
        )
        return transaction

    def fits(self, instructions: list[Instruction], fee_payer: Pubkey) -> bool:
        """Whether the instructions, behind the prologue, stay under the size limit."""
        size = serialized_size(self._with_prologue(instructions), fee_payer)
        return size <= MAX_TRANSACTION_SIZE
