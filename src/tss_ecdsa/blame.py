"""
Blame resolver shared by every round of every protocol.

Checks are run over the whole inbox of a round so that all culprits of that
round are reported together rather than only the first one found.
"""

import logging
from typing import Callable, Iterable, List, Mapping, TypeVar

from tss_crypto.common.paillier import PaillierError
from tss_ecdsa.errors import BlameRecord, ProtocolAborted, Reason

logger = logging.getLogger(__name__)

T = TypeVar("T")


def collect_blame(
    inbox: Mapping[int, T],
    is_faulty: Callable[[int, T], bool],
    reason: Reason,
    detail: str,
) -> List[BlameRecord]:
    """
    Applies `is_faulty` to every (sender, payload) pair and returns one
    record per faulty sender.

    A check that raises ValueError or PaillierError on the sender's data counts
    as a failed check: it means the payload was malformed.
    """
    records = []
    for sender in sorted(inbox):
        try:
            faulty = is_faulty(sender, inbox[sender])
        except (ValueError, PaillierError) as exc:
            logger.debug("check on party %d raised %r", sender, exc)
            faulty = True
        if faulty:
            records.append(BlameRecord(sender, reason, detail))
    return records


def blame_missing(expected: Iterable[int], received: Iterable[int], detail: str) -> List[BlameRecord]:
    received = set(received)
    return [
        BlameRecord(j, Reason.ROUND_TIMEOUT, detail)
        for j in sorted(set(expected) - received)
    ]


def raise_blame(records: List[BlameRecord]) -> None:
    """Raises ProtocolAborted if any party has been blamed."""
    if not records:
        return
    for record in records:
        logger.warning(
            "blaming party %d: %s (%s)",
            record.accused_party_index,
            record.reason.value,
            record.detail,
        )
    raise ProtocolAborted(records)
