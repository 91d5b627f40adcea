"""
Error taxonomy shared by all protocols.

Attributed failures carry one BlameRecord per accused party; unattributed
failures never name a culprit so callers do not exclude an honest party.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence


class Reason(str, Enum):
    INVALID_SHARE = "invalid_share"
    COMMITMENT_MISMATCH = "commitment_mismatch"
    PROOF_VERIFICATION_FAILED = "proof_verification_failed"
    SHARE_INCONSISTENT = "share_inconsistent"
    ROUND_TIMEOUT = "round_timeout"
    SIGNATURE_VERIFICATION_FAILED = "signature_verification_failed"
    INVALID_MESSAGE = "invalid_message"
    BROADCAST_INCONSISTENT = "broadcast_inconsistent"
    PRESIGNATURE_INCONSISTENT = "presignature_inconsistent"
    LIVENESS = "liveness"


@dataclass(frozen=True)
class BlameRecord:
    accused_party_index: int
    reason: Reason
    detail: str = ""


class ProtocolError(Exception):
    """Base class for every failure a protocol run can end with."""

    def __init__(self, reason: Reason, message: str):
        super().__init__(message)
        self.reason = reason


class InvalidShare(ProtocolError):
    """A key share failed local validation. Never caused by the network."""

    def __init__(self, message: str):
        super().__init__(Reason.INVALID_SHARE, message)


class ProtocolAborted(ProtocolError):
    """The run was halted because one or more parties misbehaved."""

    def __init__(self, blame: Sequence[BlameRecord]):
        if not blame:
            raise ValueError("ProtocolAborted requires at least one blame record")
        self.blame: List[BlameRecord] = list(blame)
        reason = self.blame[0].reason
        accused = ", ".join(str(b.accused_party_index) for b in self.blame)
        super().__init__(reason, f"{reason.value}: blamed parties [{accused}]")

    @property
    def accused(self) -> List[int]:
        return sorted({b.accused_party_index for b in self.blame})


class UnattributedFailure(ProtocolError):
    """The run failed but no single party can be identified as the cause."""

    def __init__(self, reason: Reason, message: str, suspects: Optional[Sequence[int]] = None):
        super().__init__(reason, message)
        self.suspects = sorted(set(suspects or ()))


class ProtocolStateError(RuntimeError):
    """A state machine was driven out of order or after it terminated."""


class InvalidArguments(ValueError):
    """Protocol parameters were rejected before any message was produced."""


class PresignatureConsumed(RuntimeError):
    """A presignature was used after it had already issued a partial signature."""
