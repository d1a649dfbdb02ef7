"""
Orchestration of bundled trading operations.

Every operation follows the same path: read pool state, check participant
balances, quote and build each participant's instructions, pack them into
transactions that fit the packet limit, sign with a fresh blockhash per
transaction, submit, and collect a BatchReport. Quotes inside one operation
are chained: each one is taken against the reserves left by the previous one.

Failure scope:
    - pool state cannot be read: the operation aborts before planning
    - a participant cannot be funded, quoted, built or fitted: it is skipped
    - a later transaction of a bundle cannot be signed: it is dropped
    - the leading transaction cannot be signed or a bundle is rejected
      everywhere: that chunk fails, later chunks still go out
"""

import asyncio
import random
from dataclasses import dataclass, replace
from enum import Enum

from solana.exceptions import SolanaRpcException
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature

from bundling.assembler import (
    TransactionAssembler,
    TransactionPlan,
    chunk,
    expected_chunks,
    pack,
)
from bundling.jito import (
    MAX_BUNDLE_TRANSACTIONS,
    TIP_ACCOUNTS,
    BundleSubmitter,
    build_tip_instruction,
    random_tip_account,
)
from bundling.report import BatchReport, ChunkResult, ParticipantResult, ParticipantStatus
from core.client import ConfirmationStatus, SolanaClient
from core.curve_math import (
    DEFAULT_FEES,
    FeeParameters,
    ReserveState,
    apply_slippage,
    compute_service_fee,
    quote_buy,
    quote_sell,
)
from core.errors import (
    AccountLayoutError,
    BundleSubmissionError,
    ConfigError,
    CurveMathError,
    InvalidAmountError,
    SigningError,
    StateReadError,
    TransactionSizeError,
)
from core.instructions import create_ata_idempotent, transfer_sol, transfer_tokens
from core.pubkeys import TOKEN_ACCOUNT_RENT_LAMPORTS
from core.wallet import Wallet
from interfaces.core import Platform, TokenInfo
from platforms import PlatformImplementations, get_platform_implementations
from utils.error_parser import parse_transaction_error
from utils.logger import get_logger

logger = get_logger(__name__)

# 100% of a balance is never sold; the last 1% stays to keep the account
MAX_DUMP_SHARE_BPS = 9_900


class Batching(Enum):
    """How planned transactions reach the network."""

    BATCHED = "batched"  # Atomic bundles through the block engine
    SEQUENTIAL = "sequential"  # One transaction at a time, each confirmed


class SignerPolicy(Enum):
    """Who pays for and co-signs each transaction."""

    CHUNK_LEADER = "chunk_leader"  # First participant of the transaction
    FUNDER = "funder"  # A dedicated funding wallet signs every transaction


@dataclass
class BundlePolicy:
    """Business policy shared by every flow."""

    batching: Batching = Batching.BATCHED
    aggregate_sells: bool = True
    chunk_size: int = 3
    signer_policy: SignerPolicy = SignerPolicy.CHUNK_LEADER
    max_txs_per_bundle: int = MAX_BUNDLE_TRANSACTIONS
    transfers_per_tx: int = 3
    confirm: bool = False
    buy_slippage_bps: int = 8_500
    sell_slippage_bps: int = 7_000

    def __post_init__(self):
        if self.chunk_size < 1:
            raise ConfigError(f"chunk_size must be at least 1, got {self.chunk_size}")
        if self.transfers_per_tx < 1:
            raise ConfigError(
                f"transfers_per_tx must be at least 1, got {self.transfers_per_tx}"
            )
        if not 1 <= self.max_txs_per_bundle <= MAX_BUNDLE_TRANSACTIONS:
            raise ConfigError(
                f"max_txs_per_bundle must be 1 to {MAX_BUNDLE_TRANSACTIONS}, "
                f"got {self.max_txs_per_bundle}"
            )
        for name in ("buy_slippage_bps", "sell_slippage_bps"):
            value = getattr(self, name)
            if not 0 < value <= 10_000:
                raise ConfigError(f"{name} must be 1 to 10000, got {value}")

    @property
    def participants_per_bundle(self) -> int:
        return self.chunk_size * self.max_txs_per_bundle


@dataclass
class TokenMetadata:
    """Name, symbol and metadata URI of a token to create."""

    name: str
    symbol: str
    uri: str


@dataclass
class _Entry:
    """One participant's instructions, built but not yet packed."""

    wallet: Wallet
    amount: int
    instructions: list[Instruction]
    balance: int | None = None
    fee: int = 0  # Service fee owed on a sale


@dataclass
class _Planned:
    """A transaction plan and the participant results riding on it."""

    plan: TransactionPlan
    results: list[ParticipantResult]


def dump_share_bps(percentage: float) -> int:
    """Share of a balance to sell, in basis points. 100% sells 99%."""
    if not 0 < percentage <= 100:
        raise InvalidAmountError(f"Percentage must be in (0, 100], got {percentage}")
    return min(round(percentage * 100), MAX_DUMP_SHARE_BPS)


class Orchestrator:
    """Runs bundle flows under a BundlePolicy."""

    def __init__(
        self,
        client: SolanaClient,
        submitter: BundleSubmitter,
        policy: BundlePolicy | None = None,
        platform: Platform = Platform.PUMP_FUN,
        fees: FeeParameters = DEFAULT_FEES,
        tip_lamports: int = 1_000_000,
        fee_recipient: Pubkey | None = None,
        flat_fee_lamports: int = 100_000,
        network_margin_lamports: int = 10_000,
        compute_unit_limit: int | None = None,
        compute_unit_price: int | None = None,
        confirmation_attempts: int = 25,
        confirmation_interval: float = 0.4,
        implementations: PlatformImplementations | None = None,
        rng: random.Random | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            client: RPC client for reads, blockhashes and sequential sends
            submitter: Block engine submitter for batched flows
            policy: Batching, chunking, signing and slippage policy
            platform: Program the token trades on
            fees: Service and pool fee rates used for quoting
            tip_lamports: Block engine tip per bundle
            fee_recipient: Receives the aggregated service fee; none is sent when None
            flat_fee_lamports: Per-buy service fee of staggered buys
            network_margin_lamports: Headroom for signature and priority fees
            compute_unit_limit: Compute unit limit per transaction
            compute_unit_price: Priority fee in micro-lamports per unit
            confirmation_attempts: Status polls per signature
            confirmation_interval: Seconds between polls
            implementations: Platform components, built from the factory when omitted
            rng: Random source for tip accounts and stagger delays
        """
        self.client = client
        self.submitter = submitter
        self.policy = policy or BundlePolicy()
        self.platform = platform
        self.fees = fees
        self.tip_lamports = tip_lamports
        self.fee_recipient = fee_recipient
        self.flat_fee_lamports = flat_fee_lamports
        self.network_margin_lamports = network_margin_lamports
        self.confirmation_attempts = confirmation_attempts
        self.confirmation_interval = confirmation_interval
        self.rng = rng or random.Random()

        implementations = implementations or get_platform_implementations(platform, client)
        self.address_provider = implementations.address_provider
        self.builder = implementations.instruction_builder
        self.curve_manager = implementations.curve_manager
        self.assembler = TransactionAssembler(client, compute_unit_limit, compute_unit_price)

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    def required_balance(self, amount: int, fee: int, carrier_extra: int = 0) -> int:
        """Lamports a buyer must hold: amount, fee, token account rent and margin."""
        return (
            amount
            + fee
            + TOKEN_ACCOUNT_RENT_LAMPORTS
            + self.network_margin_lamports
            + carrier_extra
        )

    def _service_fee_total(self, total_amount: int) -> int:
        if self.fee_recipient is None or total_amount <= 0:
            return 0
        return compute_service_fee(total_amount, self.fees)

    def _service_fee_instructions(self, payer: Pubkey, lamports: int) -> list:
        if self.fee_recipient is None or lamports <= 0:
            return []
        return [transfer_sol(payer, self.fee_recipient, lamports)]

    async def _read_state(
        self, mint: Pubkey, report: BatchReport
    ) -> tuple[TokenInfo, ReserveState] | None:
        try:
            token_info = await self.curve_manager.resolve_token_info(mint)
            reserves = await self.curve_manager.get_reserves(token_info)
        except (StateReadError, AccountLayoutError) as e:
            logger.exception(f"Cannot read pool state for {mint}")
            report.aborted = f"state read failed: {e}"
            return None
        logger.info(
            f"Pool state for {mint}: {reserves.input_reserve} lamports / "
            f"{reserves.output_reserve} tokens"
        )
        return token_info, reserves

    async def _sol_balances(self, wallets: list[Wallet]) -> list:
        return await asyncio.gather(
            *(self.client.get_sol_balance(w.pubkey) for w in wallets),
            return_exceptions=True,
        )

    def _select_buyers(
        self,
        report: BatchReport,
        wallets: list[Wallet],
        amounts: list[int],
        balances: list,
    ) -> list[tuple[Wallet, int, int]]:
        """Drop wallets that cannot cover their own buy.

        Which wallets also carry a tip or the service fee is only known once
        the buys are packed; _plan_buys checks those on top of this.
        """
        selected: list[tuple[Wallet, int, int]] = []
        for wallet, amount, balance in zip(wallets, amounts, balances):
            if isinstance(balance, BaseException):
                logger.warning(f"Skipping {wallet.pubkey}: balance unavailable ({balance})")
                report.skip(wallet.pubkey, f"balance unavailable: {balance}", amount)
                continue

            required = self.required_balance(amount, compute_service_fee(amount, self.fees))
            if balance < required:
                logger.warning(
                    f"Skipping {wallet.pubkey}: {balance} lamports available, {required} required"
                )
                report.skip(
                    wallet.pubkey, f"insufficient balance: {balance} < {required}", amount
                )
                continue
            selected.append((wallet, amount, balance))
        return selected

    def _payer(self, members: list[Wallet], funder: Wallet | None) -> Wallet:
        if self.policy.signer_policy is SignerPolicy.FUNDER:
            if funder is None:
                raise ConfigError("Signer policy 'funder' requires a funder wallet")
            return funder
        return members[0]

    def _plan(
        self,
        instructions: list,
        members: list[Wallet],
        funder: Wallet | None = None,
    ) -> TransactionPlan:
        payer = self._payer(members, funder)
        signers = [payer.keypair, *(m.keypair for m in members)]
        return TransactionPlan(
            instructions=instructions,
            fee_payer=payer.pubkey,
            signers=signers,
            participants=[m.pubkey for m in members],
        )

    def _leads_bundle(self, position: int) -> bool:
        """Whether the transaction at position opens a bundle and pays its tip."""
        return (
            self.policy.batching is Batching.BATCHED
            and self.tip_lamports > 0
            and position % self.policy.max_txs_per_bundle == 0
        )

    def _carried_instructions(
        self, payer: Pubkey, position: int, service_fee: bool
    ) -> list[Instruction]:
        """Stand-ins for the tip and service fee a transaction will carry.

        Only their size matters here; the lamports are settled after packing.
        """
        carried = []
        if self._leads_bundle(position):
            carried.append(build_tip_instruction(payer, self.tip_lamports, TIP_ACCOUNTS[0]))
        if service_fee:
            carried.extend(self._service_fee_instructions(payer, 1))
        return carried

    def _pack_entries(
        self,
        entries: list[_Entry],
        funder: Wallet | None,
        first_position: int = 0,
        carries_fee: bool = False,
    ) -> tuple[list[list[_Entry]], list[_Entry]]:
        """Pack participants into transactions that stay under the size limit.

        A transaction takes up to chunk_size participants, fewer when their
        instructions plus the prologue, tip and service fee it carries would
        not fit. first_position is the bundle position of the first
        transaction; carries_fee puts the service fee in that transaction.
        """

        def fits(group: list[_Entry], index: int) -> bool:
            payer = self._payer([e.wallet for e in group], funder).pubkey
            instructions = [
                *self._carried_instructions(
                    payer, first_position + index, carries_fee and index == 0
                ),
                *(ix for e in group for ix in e.instructions),
            ]
            return self.assembler.fits(instructions, payer)

        return pack(entries, self.policy.chunk_size, fits)

    def _skip_oversized(self, report: BatchReport, oversized: list[_Entry]) -> None:
        for entry in oversized:
            logger.warning(
                f"Skipping {entry.wallet.pubkey}: instructions exceed the transaction size limit"
            )
            report.skip(entry.wallet.pubkey, "transaction too large", entry.amount)

    def _plan_groups(
        self, report: BatchReport, groups: list[list[_Entry]], funder: Wallet | None
    ) -> list[_Planned]:
        planned = []
        for group in groups:
            results = [
                ParticipantResult(e.wallet.pubkey, ParticipantStatus.PLANNED, e.amount)
                for e in group
            ]
            report.participants.extend(results)
            instructions = [ix for e in group for ix in e.instructions]
            plan = self._plan(instructions, [e.wallet for e in group], funder)
            planned.append(_Planned(plan, results))
        return planned

    def _unfunded_carrier(
        self, groups: list[list[_Entry]], first_position: int, service_fee: int
    ) -> tuple[_Entry, int] | None:
        """First transaction payer that cannot also cover the tip or fee it carries."""
        if self.policy.signer_policy is not SignerPolicy.CHUNK_LEADER:
            return None
        for offset, group in enumerate(groups):
            extra = self.tip_lamports if self._leads_bundle(first_position + offset) else 0
            if offset == 0:
                extra += service_fee
            leader = group[0]
            if not extra or leader.balance is None:
                continue
            required = self.required_balance(
                leader.amount, compute_service_fee(leader.amount, self.fees), extra
            )
            if leader.balance < required:
                return leader, required
        return None

    def _quote_buys(
        self,
        token_info: TokenInfo,
        reserves: ReserveState,
        candidates: list[tuple[Wallet, int, int]],
    ) -> tuple[list[_Entry], list[tuple[Wallet, int, str]], ReserveState]:
        entries = []
        rejected = []
        for wallet, amount, balance in candidates:
            try:
                quote = quote_buy(reserves, amount, fees=self.fees)
                instructions = self.builder.build_buy_instructions(
                    wallet.pubkey, token_info, quote, self.policy.buy_slippage_bps, amount
                )
            except InvalidAmountError as e:
                rejected.append((wallet, amount, str(e)))
                continue
            logger.debug(
                f"Buy {wallet.pubkey}: {amount} lamports -> {quote.amount_out} tokens "
                f"(fee {quote.fee_amount})"
            )
            reserves = reserves.after(quote)
            entries.append(_Entry(wallet, amount, instructions, balance))
        return entries, rejected, reserves

    def _plan_buys(
        self,
        report: BatchReport,
        token_info: TokenInfo,
        reserves: ReserveState,
        selected: list[tuple[Wallet, int, int]],
        funder: Wallet | None = None,
        first_position: int = 0,
        carries_fee: bool = True,
    ) -> tuple[list[_Planned], ReserveState]:
        """Quote and build each buy, then pack the buys into transactions.

        The payer of a bundle's first transaction also pays its tip, and the
        payer of the first transaction pays the aggregated service fee. A
        buy too large for any transaction, or a payer that cannot afford what
        it carries, is skipped and the rest are planned again, since each
        quote depends on the buys before it.
        """
        candidates = list(selected)
        while True:
            entries, rejected, after = self._quote_buys(token_info, reserves, candidates)
            groups, oversized = self._pack_entries(entries, funder, first_position, carries_fee)
            if oversized:
                self._skip_oversized(report, oversized)
                candidates = [
                    c for c in candidates if all(c[0] is not e.wallet for e in oversized)
                ]
                continue
            fee = 0
            if carries_fee:
                fee = self._service_fee_total(sum(e.amount for group in groups for e in group))
            short = self._unfunded_carrier(groups, first_position, fee)
            if short is None:
                break
            leader, required = short
            logger.warning(
                f"Skipping {leader.wallet.pubkey}: cannot also carry the tip or service fee "
                f"({leader.balance} < {required})"
            )
            report.skip(
                leader.wallet.pubkey,
                f"insufficient balance: {leader.balance} < {required}",
                leader.amount,
            )
            candidates = [c for c in candidates if c[0] is not leader.wallet]

        for wallet, amount, reason in rejected:
            logger.warning(f"Skipping {wallet.pubkey}: {reason}")
            report.skip(wallet.pubkey, reason, amount)

        planned = self._plan_groups(report, groups, funder)
        if planned and fee:
            first = planned[0].plan
            first.instructions = [
                *self._service_fee_instructions(first.fee_payer, fee),
                *first.instructions,
            ]
        return planned, after

    async def _confirm(self, signature: Signature) -> tuple[ParticipantStatus, str | None]:
        result = await self.client.confirm_signature(
            signature, self.confirmation_attempts, self.confirmation_interval
        )
        if result.status is ConfirmationStatus.CONFIRMED:
            return ParticipantStatus.CONFIRMED, None
        if result.status is ConfirmationStatus.FAILED:
            parsed = parse_transaction_error(result.error_message, self.platform)
            reason = parsed.name or parsed.message
            if parsed.is_slippage:
                reason = f"slippage exceeded ({reason})"
            return ParticipantStatus.FAILED, reason
        return (
            ParticipantStatus.UNCONFIRMED,
            f"not confirmed after {self.confirmation_attempts} polls",
        )

    def _fail_chunk(
        self, report: BatchReport, index: int, reason: str, bundle=None
    ) -> ChunkResult:
        result = ChunkResult(index, ParticipantStatus.FAILED, bundle=bundle, reason=reason)
        report.chunks.append(result)
        report.mark_chunk(index, ParticipantStatus.FAILED, reason)
        return result

    async def _send_bundle(self, report: BatchReport, planned: list[_Planned]) -> ChunkResult:
        """Sign, tip and submit up to max_txs_per_bundle transactions atomically.

        The first transaction carries the tip and whatever setup the rest
        rely on, so failing to sign it fails the bundle. A later transaction
        that cannot be signed is dropped and its participants skipped.
        """
        index = len(report.chunks)
        for item in planned:
            for result in item.results:
                result.chunk_index = index

        plans = [item.plan for item in planned]
        if self.tip_lamports > 0:
            first = plans[0]
            tip = build_tip_instruction(
                first.fee_payer, self.tip_lamports, random_tip_account(self.rng)
            )
            plans[0] = replace(first, instructions=[tip, *first.instructions])

        logger.info(f"Chunk {index}: signing {len(plans)} transactions")
        transactions = []
        kept: list[_Planned] = []
        for position, (item, plan) in enumerate(zip(planned, plans)):
            try:
                transaction = await self.assembler.assemble(plan)
            except StateReadError as e:
                logger.exception(f"Chunk {index}: cannot fetch a blockhash")
                return self._fail_chunk(report, index, str(e))
            except (SigningError, TransactionSizeError) as e:
                if position == 0:
                    logger.exception(f"Chunk {index}: cannot assemble the leading transaction")
                    return self._fail_chunk(report, index, str(e))
                logger.warning(f"Chunk {index}: dropping transaction {position}: {e}")
                for result in item.results:
                    result.status = ParticipantStatus.SKIPPED
                    result.reason = str(e)
                    result.chunk_index = None
                continue
            transactions.append(transaction)
            kept.append(item)

        signatures = [tx.signatures[0] for tx in transactions]
        for item, signature in zip(kept, signatures):
            for result in item.results:
                result.signature = str(signature)

        try:
            bundle = await self.submitter.submit_bundle(transactions)
        except BundleSubmissionError as e:
            logger.error(f"Chunk {index}: {e}")
            return self._fail_chunk(report, index, str(e), bundle=e.result)

        chunk_result = ChunkResult(
            index,
            ParticipantStatus.SUBMITTED,
            signatures=[str(s) for s in signatures],
            bundle=bundle,
        )
        report.chunks.append(chunk_result)
        report.mark_chunk(index, ParticipantStatus.SUBMITTED)

        if self.policy.confirm:
            status, reason = await self._confirm(signatures[0])
            logger.info(f"Chunk {index}: bundle {bundle.bundle_id} {status.value}")
            chunk_result.status = status
            chunk_result.reason = reason
            report.mark_chunk(index, status, reason)
        return chunk_result

    async def _send_one(self, report: BatchReport, planned: _Planned) -> ChunkResult:
        """Sign, send and confirm one transaction outside any bundle."""
        index = len(report.chunks)
        for result in planned.results:
            result.chunk_index = index

        try:
            transaction = await self.assembler.assemble(planned.plan)
            signature = await self.client.send_transaction(transaction)
        except (SigningError, TransactionSizeError, StateReadError) as e:
            logger.exception(f"Transaction {index}: cannot send")
            return self._fail_chunk(report, index, str(e))
        except SolanaRpcException as e:
            logger.exception(f"Transaction {index}: send failed")
            return self._fail_chunk(report, index, f"send failed: {e}")

        for result in planned.results:
            result.signature = str(signature)
        logger.info(f"Transaction {index} sent: {signature}")

        status, reason = await self._confirm(signature)
        chunk_result = ChunkResult(index, status, signatures=[str(signature)], reason=reason)
        report.chunks.append(chunk_result)
        report.mark_chunk(index, status, reason)
        return chunk_result

    async def _dispatch(self, report: BatchReport, planned: list[_Planned]) -> None:
        if not planned:
            return
        if self.policy.batching is Batching.SEQUENTIAL:
            for item in planned:
                await self._send_one(report, item)
            return
        for group in chunk(planned, self.policy.max_txs_per_bundle):
            await self._send_bundle(report, group)

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    async def bundle_buy(
        self,
        wallets: list[Wallet],
        mint: Pubkey,
        amounts: int | list[int],
        funder: Wallet | None = None,
    ) -> BatchReport:
        """Buy a token from many wallets in as few bundles as possible.

        Args:
            wallets: Buyers, in bundle order
            mint: Token to buy
            amounts: Lamports per wallet, or one amount for all
            funder: Payer of every transaction under the funder signer policy

        Returns:
            BatchReport with one entry per wallet
        """
        report = BatchReport("bundle_buy", mint)
        if isinstance(amounts, int):
            amounts = [amounts] * len(wallets)
        if len(amounts) != len(wallets):
            raise ConfigError(f"{len(wallets)} wallets but {len(amounts)} amounts")

        state = await self._read_state(mint, report)
        if state is None:
            return report
        token_info, reserves = state

        balances = await self._sol_balances(wallets)
        selected = self._select_buyers(report, wallets, amounts, balances)
        if not selected:
            report.aborted = "no participant can be funded"
            return report

        try:
            planned, _ = self._plan_buys(report, token_info, reserves, selected, funder)
        except CurveMathError as e:
            logger.exception("Curve computation failed")
            report.aborted = f"curve math: {e}"
            return report

        await self._dispatch(report, planned)
        return report

    async def dump(
        self,
        holders: list[Wallet],
        mint: Pubkey,
        percentage: float,
        aggregator: Wallet | None = None,
        funder: Wallet | None = None,
    ) -> BatchReport:
        """Sell a percentage of every holder's tokens.

        With aggregate_sells, holder tokens are transferred into the
        aggregator's token account and sold in one sell per transaction;
        the aggregator's own share is sold in the first transaction.
        Otherwise every holder sells its own share.
        """
        report = BatchReport("dump", mint)
        share_bps = dump_share_bps(percentage)
        if self.policy.aggregate_sells and aggregator is None:
            raise ConfigError("Aggregated sells require an aggregator wallet")

        state = await self._read_state(mint, report)
        if state is None:
            return report
        token_info, reserves = state

        if aggregator is not None:
            holders = [h for h in holders if h.pubkey != aggregator.pubkey]
        owners = holders + ([aggregator] if aggregator is not None else [])
        balances = await asyncio.gather(
            *(
                self.client.get_token_account_balance(
                    self.address_provider.derive_user_token_account(
                        w.pubkey, mint, token_info.token_program_id
                    )
                )
                for w in owners
            ),
            return_exceptions=True,
        )

        entries: list[tuple[Wallet, int]] = []
        aggregator_amount = 0
        for wallet, balance in zip(owners, balances):
            if isinstance(balance, BaseException):
                logger.warning(f"Skipping {wallet.pubkey}: token balance unavailable")
                report.skip(wallet.pubkey, f"token balance unavailable: {balance}")
                continue
            amount = balance * share_bps // 10_000
            if amount <= 0:
                if aggregator is None or wallet.pubkey != aggregator.pubkey:
                    report.skip(wallet.pubkey, "no tokens to sell")
                continue
            if aggregator is not None and wallet.pubkey == aggregator.pubkey:
                aggregator_amount = amount
            else:
                entries.append((wallet, amount))

        try:
            if self.policy.aggregate_sells:
                planned = self._plan_aggregated_sells(
                    report, token_info, reserves, entries, aggregator, aggregator_amount
                )
            else:
                if aggregator is not None and aggregator_amount > 0:
                    entries.insert(0, (aggregator, aggregator_amount))
                planned = self._plan_sells(report, token_info, reserves, entries, funder)
        except CurveMathError as e:
            logger.exception("Curve computation failed")
            report.aborted = f"curve math: {e}"
            return report

        if not planned:
            report.aborted = report.aborted or "nothing to sell"
            return report
        await self._dispatch(report, planned)
        return report

    def _plan_aggregated_sells(
        self,
        report: BatchReport,
        token_info: TokenInfo,
        reserves: ReserveState,
        entries: list[tuple[Wallet, int]],
        aggregator: Wallet,
        aggregator_amount: int,
    ) -> list[_Planned]:
        mint = token_info.mint
        program = token_info.token_program_id
        provider = self.address_provider
        aggregator_ata = provider.derive_user_token_account(aggregator.pubkey, mint, program)
        create_ata = create_ata_idempotent(aggregator.pubkey, aggregator.pubkey, mint, program)

        transfers = [
            _Entry(
                holder,
                amount,
                [
                    transfer_tokens(
                        provider.derive_user_token_account(holder.pubkey, mint, program),
                        aggregator_ata,
                        holder.pubkey,
                        mint,
                        amount,
                        program,
                    )
                ],
            )
            for holder, amount in entries
        ]

        # The sell's accounts and data size do not depend on the amount
        total = aggregator_amount + sum(amount for _, amount in entries)
        try:
            sell_template = self.builder.build_sell_instructions(
                aggregator.pubkey,
                token_info,
                quote_sell(reserves, total, fees=self.fees),
                self.policy.sell_slippage_bps,
                total,
            )
        except InvalidAmountError:
            sell_template = []

        def fits(group: list[_Entry], index: int) -> bool:
            instructions = [
                *self._carried_instructions(aggregator.pubkey, index, index == 0),
                *([create_ata] if index == 0 else []),
                *(ix for e in group for ix in e.instructions),
                *sell_template,
            ]
            return self.assembler.fits(instructions, aggregator.pubkey)

        groups, oversized = pack(transfers, self.policy.transfers_per_tx, fits)
        self._skip_oversized(report, oversized)
        if not groups and aggregator_amount > 0:
            groups = [[]]

        planned: list[_Planned] = []
        total_fee = 0
        for group_index, group in enumerate(groups):
            own = aggregator_amount if group_index == 0 else 0
            sell_amount = own + sum(e.amount for e in group)

            instructions = [create_ata] if group_index == 0 else []
            instructions.extend(ix for e in group for ix in e.instructions)
            try:
                quote = quote_sell(reserves, sell_amount, fees=self.fees)
                instructions.extend(
                    self.builder.build_sell_instructions(
                        aggregator.pubkey,
                        token_info,
                        quote,
                        self.policy.sell_slippage_bps,
                        sell_amount,
                    )
                )
            except InvalidAmountError as e:
                logger.warning(f"Skipping transfer group {group_index}: {e}")
                for entry in group:
                    report.skip(entry.wallet.pubkey, str(e), entry.amount)
                if own:
                    report.skip(aggregator.pubkey, str(e), own)
                continue

            logger.debug(
                f"Aggregated sell {group_index}: {sell_amount} tokens -> "
                f"{quote.amount_out} lamports"
            )
            reserves = reserves.after(quote)
            total_fee += compute_service_fee(quote.gross_amount_out, self.fees)

            results = [
                ParticipantResult(e.wallet.pubkey, ParticipantStatus.PLANNED, e.amount)
                for e in group
            ]
            if own:
                results.insert(
                    0, ParticipantResult(aggregator.pubkey, ParticipantStatus.PLANNED, own)
                )
            report.participants.extend(results)
            plan = TransactionPlan(
                instructions=instructions,
                fee_payer=aggregator.pubkey,
                signers=[aggregator.keypair, *(e.wallet.keypair for e in group)],
                participants=[aggregator.pubkey, *(e.wallet.pubkey for e in group)],
            )
            planned.append(_Planned(plan, results))

        if planned:
            planned[0].plan.instructions.extend(
                self._service_fee_instructions(aggregator.pubkey, total_fee)
            )
        return planned

    def _plan_sells(
        self,
        report: BatchReport,
        token_info: TokenInfo,
        reserves: ReserveState,
        entries: list[tuple[Wallet, int]],
        funder: Wallet | None,
    ) -> list[_Planned]:
        built = []
        for wallet, amount in entries:
            try:
                quote = quote_sell(reserves, amount, fees=self.fees)
                instructions = self.builder.build_sell_instructions(
                    wallet.pubkey, token_info, quote, self.policy.sell_slippage_bps, amount
                )
            except InvalidAmountError as e:
                logger.warning(f"Skipping {wallet.pubkey}: {e}")
                report.skip(wallet.pubkey, str(e), amount)
                continue
            reserves = reserves.after(quote)
            # On gross proceeds; the pool fee stays with the pool
            fee = compute_service_fee(quote.gross_amount_out, self.fees)
            built.append(_Entry(wallet, amount, instructions, fee=fee))

        groups, oversized = self._pack_entries(built, funder, carries_fee=True)
        self._skip_oversized(report, oversized)
        planned = self._plan_groups(report, groups, funder)

        if planned:
            total_fee = sum(e.fee for group in groups for e in group)
            first = planned[0].plan
            first.instructions.extend(self._service_fee_instructions(first.fee_payer, total_fee))
        return planned

    async def create_and_bundle(
        self,
        dev: Wallet,
        metadata: TokenMetadata,
        buyers: list[Wallet],
        buy_amount: int | list[int],
        dev_buy_amount: int = 0,
        mint_keypair: Keypair | None = None,
    ) -> BatchReport:
        """Create a token and buy it from many wallets in the same bundle.

        The creation transaction goes first, signed by the dev and the new
        mint. Buyer quotes start from the reserves left by the dev buy.
        """
        if self.platform is not Platform.PUMP_FUN:
            raise ConfigError("Token creation is only supported on pump.fun")

        mint_keypair = mint_keypair or Keypair()
        mint = mint_keypair.pubkey()
        report = BatchReport("create_and_bundle", mint)
        amounts = [buy_amount] * len(buyers) if isinstance(buy_amount, int) else buy_amount
        if len(amounts) != len(buyers):
            raise ConfigError(f"{len(buyers)} buyers but {len(amounts)} amounts")

        reserves = await self.curve_manager.get_initial_reserves()
        token_info = self.address_provider.token_info_for(mint, dev.pubkey)

        balances = await self._sol_balances([dev, *buyers])
        dev_balance, buyer_balances = balances[0], balances[1:]
        total_fee = self._service_fee_total(dev_buy_amount + sum(amounts))
        dev_fee = compute_service_fee(dev_buy_amount, self.fees) if dev_buy_amount else 0
        dev_required = self.required_balance(
            dev_buy_amount, dev_fee, self.tip_lamports + total_fee
        )
        if isinstance(dev_balance, BaseException) or dev_balance < dev_required:
            report.aborted = f"insufficient balance for dev {dev.pubkey}: needs {dev_required}"
            logger.error(report.aborted)
            return report

        try:
            create_plan, reserves = self._plan_create(
                report, dev, mint_keypair, metadata, token_info, reserves, dev_buy_amount
            )
            # Buyers sit behind the creation transaction, which pays the tip and the fee
            selected = self._select_buyers(report, buyers, amounts, buyer_balances)
            buy_plans, _ = self._plan_buys(
                report, token_info, reserves, selected, dev, first_position=1, carries_fee=False
            )
        except (CurveMathError, InvalidAmountError) as e:
            logger.exception("Cannot plan token creation")
            report.aborted = f"planning failed: {e}"
            return report

        fee = self._service_fee_total(
            dev_buy_amount + sum(r.amount for item in buy_plans for r in item.results)
        )
        create_plan.plan.instructions.extend(self._service_fee_instructions(dev.pubkey, fee))

        if len(buy_plans) + 1 > self.policy.max_txs_per_bundle:
            logger.warning(
                f"{len(buy_plans)} buy transactions do not fit in the creation bundle; "
                "the rest go out in follow-up bundles"
            )
        await self._dispatch(report, [create_plan, *buy_plans])
        return report

    def _plan_create(
        self,
        report: BatchReport,
        dev: Wallet,
        mint_keypair: Keypair,
        metadata: TokenMetadata,
        token_info: TokenInfo,
        reserves: ReserveState,
        dev_buy_amount: int,
    ) -> tuple[_Planned, ReserveState]:
        mint = mint_keypair.pubkey()
        instructions = [
            self.builder.build_create_instruction(
                mint, dev.pubkey, metadata.name, metadata.symbol, metadata.uri
            ),
            self.builder.build_extend_account_instruction(
                token_info.bonding_curve, dev.pubkey
            ),
        ]
        if dev_buy_amount > 0:
            quote = quote_buy(reserves, dev_buy_amount, fees=self.fees)
            instructions.extend(
                self.builder.build_buy_instructions(
                    dev.pubkey,
                    token_info,
                    quote,
                    self.policy.buy_slippage_bps,
                    dev_buy_amount,
                )
            )
            reserves = reserves.after(quote)
        else:
            instructions.append(
                create_ata_idempotent(
                    dev.pubkey, dev.pubkey, mint, token_info.token_program_id
                )
            )

        results = [ParticipantResult(dev.pubkey, ParticipantStatus.PLANNED, dev_buy_amount)]
        report.participants.extend(results)
        plan = TransactionPlan(
            instructions=instructions,
            fee_payer=dev.pubkey,
            signers=[dev.keypair, mint_keypair],
            participants=[dev.pubkey],
        )
        return _Planned(plan, results), reserves

    async def maker(
        self,
        funder: Wallet,
        makers: list[Wallet],
        mint: Pubkey,
        amount_per_maker: int,
    ) -> BatchReport:
        """Fund fresh maker wallets and have each buy, one bundle per group.

        The funding transaction leads each bundle; every maker buys in its own
        transaction after it.
        """
        report = BatchReport("maker", mint)
        state = await self._read_state(mint, report)
        if state is None:
            return report
        token_info, reserves = state

        per_bundle = self.policy.max_txs_per_bundle - 1
        if per_bundle < 1:
            raise ConfigError("Maker bundles need room for a funding and a buy transaction")

        fee = compute_service_fee(amount_per_maker, self.fees)
        funding = self.required_balance(amount_per_maker, fee)
        total_fee = self._service_fee_total(amount_per_maker * len(makers))
        needed = (
            funding * len(makers)
            + self.tip_lamports * expected_chunks(len(makers), per_bundle)
            + total_fee
            + self.network_margin_lamports
        )
        try:
            balance = await self.client.get_sol_balance(funder.pubkey)
        except StateReadError as e:
            report.aborted = f"funder balance unavailable: {e}"
            return report
        if balance < needed:
            report.aborted = f"insufficient balance for funder: {balance} < {needed}"
            logger.error(report.aborted)
            return report

        # Only makers whose buy could be built get funded
        entries: list[_Entry] = []
        for maker_wallet in makers:
            try:
                quote = quote_buy(reserves, amount_per_maker, fees=self.fees)
                instructions = self.builder.build_buy_instructions(
                    maker_wallet.pubkey,
                    token_info,
                    quote,
                    self.policy.buy_slippage_bps,
                    amount_per_maker,
                )
            except (InvalidAmountError, CurveMathError) as e:
                logger.warning(f"Skipping maker {maker_wallet.pubkey}: {e}")
                report.skip(maker_wallet.pubkey, str(e), amount_per_maker)
                continue
            reserves = reserves.after(quote)
            entries.append(_Entry(maker_wallet, amount_per_maker, instructions))

        if not entries:
            report.aborted = "no maker could be planned"
            return report
        total_fee = self._service_fee_total(amount_per_maker * len(entries))

        for group_index, group in enumerate(chunk(entries, per_bundle)):
            fund_instructions = [
                transfer_sol(funder.pubkey, e.wallet.pubkey, funding) for e in group
            ]
            if group_index == 0:
                fund_instructions.extend(
                    self._service_fee_instructions(funder.pubkey, total_fee)
                )
            planned = [
                _Planned(
                    TransactionPlan(
                        fund_instructions, funder.pubkey, [funder.keypair], [funder.pubkey]
                    ),
                    [],
                )
            ]
            for entry in group:
                result = ParticipantResult(
                    entry.wallet.pubkey, ParticipantStatus.PLANNED, entry.amount
                )
                report.participants.append(result)
                planned.append(
                    _Planned(
                        TransactionPlan(
                            entry.instructions,
                            entry.wallet.pubkey,
                            [entry.wallet.keypair],
                            [entry.wallet.pubkey],
                        ),
                        [result],
                    )
                )
            await self._send_bundle(report, planned)
        return report

    async def staggered_buy(
        self,
        wallets: list[Wallet],
        amount: int,
        mint: Pubkey | None = None,
        dev: Wallet | None = None,
        metadata: TokenMetadata | None = None,
        dev_buy_amount: int = 0,
        min_delay: float = 1.0,
        max_delay: float = 3.0,
    ) -> BatchReport:
        """Buy from each wallet in turn, confirming each before the next.

        With metadata, the token is created (and optionally dev-bought) first
        and the buys only start once creation is confirmed. Reserves are
        re-read before each buy.
        """
        if min_delay < 0 or max_delay < min_delay:
            raise ConfigError(f"Invalid delay range [{min_delay}, {max_delay}]")

        if metadata is not None:
            if dev is None:
                raise ConfigError("Token creation requires a dev wallet")
            if self.platform is not Platform.PUMP_FUN:
                raise ConfigError("Token creation is only supported on pump.fun")
            mint_keypair = Keypair()
            mint = mint_keypair.pubkey()
            report = BatchReport("staggered_buy", mint)
            token_info = self.address_provider.token_info_for(mint, dev.pubkey)
            reserves = await self.curve_manager.get_initial_reserves()
            try:
                create_plan, _ = self._plan_create(
                    report, dev, mint_keypair, metadata, token_info, reserves, dev_buy_amount
                )
            except (CurveMathError, InvalidAmountError) as e:
                report.aborted = f"planning failed: {e}"
                return report
            created = await self._send_one(report, create_plan)
            if created.status is not ParticipantStatus.CONFIRMED:
                report.aborted = f"token creation {created.status.value}: {created.reason}"
                logger.error(report.aborted)
                return report
        else:
            if mint is None:
                raise ConfigError("Either a mint or token metadata is required")
            report = BatchReport("staggered_buy", mint)

        state = await self._read_state(mint, report)
        if state is None:
            return report
        token_info, _ = state

        flat_fee = self.flat_fee_lamports if self.fee_recipient is not None else 0
        balances = await self._sol_balances(wallets)
        for position, (wallet, balance) in enumerate(zip(wallets, balances)):
            if position > 0:
                delay = self.rng.uniform(min_delay, max_delay)
                logger.info(f"Waiting {delay:.2f}s before next buy")
                await asyncio.sleep(delay)

            if isinstance(balance, BaseException):
                report.skip(wallet.pubkey, f"balance unavailable: {balance}", amount)
                continue
            required = self.required_balance(
                amount, compute_service_fee(amount, self.fees), flat_fee
            )
            if balance < required:
                logger.warning(f"Skipping {wallet.pubkey}: {balance} < {required}")
                report.skip(
                    wallet.pubkey, f"insufficient balance: {balance} < {required}", amount
                )
                continue

            try:
                reserves = await self.curve_manager.get_reserves(token_info)
                quote = quote_buy(reserves, amount, fees=self.fees)
                instructions = self.builder.build_buy_instructions(
                    wallet.pubkey, token_info, quote, self.policy.buy_slippage_bps, amount
                )
            except (StateReadError, AccountLayoutError, InvalidAmountError) as e:
                logger.warning(f"Skipping {wallet.pubkey}: {e}")
                report.skip(wallet.pubkey, str(e), amount)
                continue
            instructions.extend(self._service_fee_instructions(wallet.pubkey, flat_fee))

            result = ParticipantResult(wallet.pubkey, ParticipantStatus.PLANNED, amount)
            report.participants.append(result)
            plan = TransactionPlan(instructions, wallet.pubkey, [wallet.keypair], [wallet.pubkey])
            await self._send_one(report, _Planned(plan, [result]))
        return report

    async def bump_loop(
        self,
        wallet: Wallet,
        mint: Pubkey,
        amount: int,
        stop_event: asyncio.Event,
        max_rounds: int | None = None,
        interval: float = 1.0,
    ) -> BatchReport:
        """Repeat buy-then-sell bundles until stop_event is set.

        Each round buys amount lamports of tokens and sells the minimum
        token amount the buy guarantees, in one transaction. The stop signal
        is checked between rounds; a submission in flight always finishes.
        """
        report = BatchReport("bump", mint)
        state = await self._read_state(mint, report)
        if state is None:
            return report
        token_info, _ = state

        rounds = 0
        while not stop_event.is_set() and (max_rounds is None or rounds < max_rounds):
            rounds += 1
            try:
                reserves = await self.curve_manager.get_reserves(token_info)
                balance = await self.client.get_sol_balance(wallet.pubkey)
            except (StateReadError, AccountLayoutError) as e:
                logger.exception(f"Bump round {rounds}: state read failed")
                report.aborted = f"state read failed: {e}"
                break

            fee = compute_service_fee(amount, self.fees)
            tip = self.tip_lamports if self._leads_bundle(0) else 0
            required = self.required_balance(amount, fee, tip)
            if balance < required:
                report.skip(wallet.pubkey, f"insufficient balance: {balance} < {required}", amount)
                logger.warning(f"Bump stopped after {rounds - 1} rounds: insufficient balance")
                break

            try:
                buy_quote = quote_buy(reserves, amount, fees=self.fees)
                tokens = apply_slippage(buy_quote.amount_out, self.policy.buy_slippage_bps)
                sell_quote = quote_sell(reserves.after(buy_quote), tokens, fees=self.fees)
                instructions = [
                    *self.builder.build_buy_instructions(
                        wallet.pubkey, token_info, buy_quote, self.policy.buy_slippage_bps, amount
                    ),
                    *self.builder.build_sell_instructions(
                        wallet.pubkey,
                        token_info,
                        sell_quote,
                        self.policy.sell_slippage_bps,
                        tokens,
                    ),
                ]
            except (InvalidAmountError, CurveMathError) as e:
                logger.exception(f"Bump round {rounds}: cannot build")
                report.aborted = f"planning failed: {e}"
                break

            result = ParticipantResult(wallet.pubkey, ParticipantStatus.PLANNED, amount)
            report.participants.append(result)
            plan = TransactionPlan(instructions, wallet.pubkey, [wallet.keypair], [wallet.pubkey])
            await self._dispatch(report, [_Planned(plan, [result])])
            logger.info(f"Bump round {rounds}: {result.status.value}")

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

        logger.info(f"Bump loop finished after {rounds} rounds")
        return report
