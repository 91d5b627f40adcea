"""
Security parameters and protocol-wide defaults.

All parties of one execution must use the same SecurityLevel; its values are
bound into the transcript, so a mismatch makes every proof fail.
"""

from dataclasses import dataclass

DEFAULT_CURVE = "secp256k1"

# q^5 must stay below the Paillier modulus for MtA to be exact.
MIN_PAILLIER_BITS = 1536


@dataclass(frozen=True)
class SecurityLevel:
    name: str
    paillier_bits: int
    rid_bytes: int

    def __post_init__(self):
        if self.paillier_bits < MIN_PAILLIER_BITS or self.paillier_bits % 2:
            raise ValueError(
                f"paillier_bits must be even and at least {MIN_PAILLIER_BITS}"
            )
        if self.rid_bytes < 16:
            raise ValueError("rid_bytes must be at least 16")

    def accepts_modulus(self, N: int) -> bool:
        """Size and parity gate applied before any proof about N is checked."""
        return N > 0 and N % 2 == 1 and N.bit_length() >= self.paillier_bits - 1


REASONABLY_SECURE = SecurityLevel("reasonably_secure", paillier_bits=2048, rid_bytes=32)

# Smaller moduli for test suites. Not for production keys.
DEVELOPMENT = SecurityLevel("development", paillier_bits=1536, rid_bytes=32)
