"""
Outcome model for bundling operations.

Partial success is reported per participant and per bundle; nothing is
collapsed into a single boolean.
"""

from dataclasses import dataclass, field
from enum import Enum

from solders.pubkey import Pubkey

from bundling.jito import BundleResult


class ParticipantStatus(Enum):
    """What happened to one wallet's part of an operation."""

    PLANNED = "planned"  # Built into a transaction, not sent yet
    SUBMITTED = "submitted"  # Accepted by a relay or RPC node, landing unknown
    CONFIRMED = "confirmed"
    UNCONFIRMED = "unconfirmed"  # Polling ran out; may still land
    FAILED = "failed"
    SKIPPED = "skipped"  # Never built into a transaction


INCLUDED_STATUSES = (
    ParticipantStatus.SUBMITTED,
    ParticipantStatus.CONFIRMED,
    ParticipantStatus.UNCONFIRMED,
)


@dataclass
class ParticipantResult:
    """One wallet's outcome."""

    wallet: Pubkey
    status: ParticipantStatus
    amount: int = 0  # Lamports in for buys, raw tokens for sells and transfers
    chunk_index: int | None = None
    signature: str | None = None
    reason: str | None = None

    @property
    def included(self) -> bool:
        return self.status in INCLUDED_STATUSES

    def __str__(self) -> str:
        text = f"{self.wallet}: {self.status.value}"
        if self.signature:
            text += f" ({self.signature})"
        if self.reason:
            text += f" - {self.reason}"
        return text


@dataclass
class ChunkResult:
    """One bundle (or one sequential transaction) and how it fared."""

    index: int
    status: ParticipantStatus
    signatures: list[str] = field(default_factory=list)
    bundle: BundleResult | None = None
    reason: str | None = None

    def __str__(self) -> str:
        text = f"chunk {self.index}: {self.status.value}"
        if self.bundle is not None:
            accepted = ", ".join(
                f"[{r.endpoint}] {r.bundle_id}" for r in self.bundle.accepted
            )
            if accepted:
                text += f" {accepted}"
        if self.reason:
            text += f" - {self.reason}"
        return text


@dataclass
class BatchReport:
    """Consolidated result of one orchestrated operation."""

    operation: str
    mint: Pubkey | None = None
    participants: list[ParticipantResult] = field(default_factory=list)
    chunks: list[ChunkResult] = field(default_factory=list)
    aborted: str | None = None

    @property
    def included(self) -> list[ParticipantResult]:
        return [p for p in self.participants if p.included]

    @property
    def skipped(self) -> list[ParticipantResult]:
        return [p for p in self.participants if p.status is ParticipantStatus.SKIPPED]

    @property
    def failed(self) -> list[ParticipantResult]:
        return [p for p in self.participants if p.status is ParticipantStatus.FAILED]

    @property
    def any_submitted(self) -> bool:
        return any(c.status in INCLUDED_STATUSES for c in self.chunks)

    def skip(self, wallet: Pubkey, reason: str, amount: int = 0) -> None:
        self.participants.append(
            ParticipantResult(wallet, ParticipantStatus.SKIPPED, amount, reason=reason)
        )

    def mark_chunk(
        self,
        chunk_index: int,
        status: ParticipantStatus,
        reason: str | None = None,
    ) -> None:
        """Propagate a chunk outcome to the participants planned into it."""
        for participant in self.participants:
            if participant.chunk_index == chunk_index:
                participant.status = status
                if reason and participant.reason is None:
                    participant.reason = reason

    def summary(self) -> str:
        lines = [f"{self.operation}" + (f" {self.mint}" if self.mint else "")]
        if self.aborted:
            lines.append(f"  aborted: {self.aborted}")
        lines.extend(f"  {chunk}" for chunk in self.chunks)
        lines.extend(f"  {participant}" for participant in self.participants)
        lines.append(
            f"  included={len(self.included)} skipped={len(self.skipped)} "
            f"failed={len(self.failed)}"
        )
        return "\n".join(lines)
