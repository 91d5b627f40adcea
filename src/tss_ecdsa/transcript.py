"""
Running Fiat-Shamir transcript.

Every party keeps its own instance and appends only data it has validated.
Honest parties append the same values in the same order, so they derive the
same proof session ids and the same digest for reliability checks.
"""

from typing import Iterable

from tss_crypto.common.ec import ECOperations, Point
from tss_crypto.common.utils import point_to_int
from tss_crypto.zkp.hash import sha512_256, sha512_256i


def _encode(value) -> bytes:
    if isinstance(value, bytes):
        return value
    if isinstance(value, str):
        return value.encode()
    if isinstance(value, Point):
        return value.to_bytes()
    value = int(value)
    if value < 0:
        raise ValueError("Transcript values must be non-negative")
    return value.to_bytes((value.bit_length() + 7) // 8, "big") if value else b""


class Transcript:
    def __init__(self, label: str, execution_id: bytes, ec: ECOperations, *params):
        self.label = label
        self._state = sha512_256(
            b"tss-cggmp21",
            label.encode(),
            execution_id,
            ec.name.encode(),
            *[_encode(p) for p in params],
        )

    def append(self, tag: str, *values) -> None:
        self._state = sha512_256(self._state, tag.encode(), *[_encode(v) for v in values])

    def append_points(self, tag: str, points: Iterable[Point]) -> None:
        self.append(tag, *[point_to_int(P) for P in points])

    def challenge(self, prover_index: int) -> int:
        """Session id for proofs produced by `prover_index` at this point."""
        return sha512_256i(int.from_bytes(self._state, "big"), prover_index)

    def digest(self) -> bytes:
        return self._state
