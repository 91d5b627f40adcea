"""
Key-Share Model.

A KeyShare is created by keygen, replaced by refresh and only read by signing.
It is immutable; every protocol that changes it returns a new instance.
"""

from dataclasses import dataclass, field
from functools import lru_cache
import json
from typing import Optional, Tuple

import gmpy2

from tss_crypto.common.ec import ECOperations, Point, SUPPORTED_CURVES
from tss_crypto.common.paillier import PrivateKey
from tss_crypto.common.utils import (
    deserialize_point,
    deserialize_point_list,
    serialize_point,
    serialize_point_list,
)
from tss_ecdsa.config import DEFAULT_CURVE, MIN_PAILLIER_BITS, SecurityLevel
from tss_ecdsa.errors import InvalidShare
from tss_ecdsa.polynomial import interpolate_points_at_zero, party_point

RECORD_VERSION = 1
CHAIN_CODE_LENGTH = 32


@lru_cache(maxsize=None)
def curve_operations(name: str) -> ECOperations:
    return ECOperations(name)


@dataclass(frozen=True)
class PartyAux:
    """Public auxiliary data of one party: Paillier modulus and ring-Pedersen parameters."""

    N: int
    s: int
    t: int


@dataclass(frozen=True)
class AuxInfo:
    p: int = field(repr=False)
    q: int = field(repr=False)
    parties: Tuple[PartyAux, ...] = ()


@dataclass(frozen=True)
class KeyShare:
    party_index: int
    threshold: int
    secret_share: int = field(repr=False)
    public_key: Point
    public_shares: Tuple[Point, ...]
    aux: Optional[AuxInfo] = None
    chain_code: Optional[bytes] = None
    curve: str = DEFAULT_CURVE

    @property
    def n(self) -> int:
        return len(self.public_shares)

    @property
    def ec(self) -> ECOperations:
        return curve_operations(self.curve)

    def paillier_key(self) -> PrivateKey:
        if self.aux is None:
            raise InvalidShare("Key share carries no auxiliary info")
        return PrivateKey.from_primes(self.aux.p, self.aux.q)

    def to_dict(self) -> dict:
        aux = None
        if self.aux is not None:
            aux = {
                "p": int(self.aux.p),
                "q": int(self.aux.q),
                "parties": [
                    {"N": int(a.N), "s": int(a.s), "t": int(a.t)}
                    for a in self.aux.parties
                ],
            }
        return {
            "version": RECORD_VERSION,
            "curve": self.curve,
            "party_index": self.party_index,
            "threshold": self.threshold,
            "secret_share": int(self.secret_share),
            "public_key": serialize_point(self.public_key),
            "public_shares": serialize_point_list(list(self.public_shares)),
            "aux": aux,
            "chain_code": None if self.chain_code is None else self.chain_code.hex(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @staticmethod
    def from_dict(data: dict) -> "KeyShare":
        """
        Parses a versioned key share record and validates it.

        Raises:
            InvalidShare: on an unknown version, missing or malformed fields,
                or a share that fails validation.
        """
        if not isinstance(data, dict):
            raise InvalidShare("Key share record must be an object")
        version = data.get("version")
        if version != RECORD_VERSION:
            raise InvalidShare(f"Unsupported key share record version: {version!r}")

        try:
            curve = data["curve"]
            if curve not in SUPPORTED_CURVES:
                raise ValueError(f"unsupported curve {curve!r}")
            ec = curve_operations(curve)

            aux = None
            if data["aux"] is not None:
                raw = data["aux"]
                aux = AuxInfo(
                    p=_int(raw["p"]),
                    q=_int(raw["q"]),
                    parties=tuple(
                        PartyAux(N=_int(a["N"]), s=_int(a["s"]), t=_int(a["t"]))
                        for a in raw["parties"]
                    ),
                )

            chain_code = data["chain_code"]
            if chain_code is not None:
                chain_code = bytes.fromhex(chain_code)

            share = KeyShare(
                party_index=_int(data["party_index"]),
                threshold=_int(data["threshold"]),
                secret_share=_int(data["secret_share"]),
                public_key=deserialize_point(ec, data["public_key"]),
                public_shares=tuple(deserialize_point_list(ec, data["public_shares"])),
                aux=aux,
                chain_code=chain_code,
                curve=curve,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidShare(f"Malformed key share record: {e}") from e

        return validate(share)

    @staticmethod
    def from_json(json_str: str) -> "KeyShare":
        try:
            data = json.loads(json_str)
        except ValueError as e:
            raise InvalidShare(f"Key share record is not valid JSON: {e}") from e
        return KeyShare.from_dict(data)


def _int(value) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"expected an integer, got {type(value).__name__}")
    return value


def validate(share: KeyShare, security_level: Optional[SecurityLevel] = None) -> KeyShare:
    """
    Checks every invariant of a key share and returns it unchanged.

    All public shares must lie on one polynomial of degree `threshold` whose
    value at zero is the public key. Checking that each window of
    `threshold + 1` consecutive shares interpolates to the public key is
    enough: two overlapping windows differing in a single share can only both
    hit the public key if that share lies on the same polynomial.

    Raises:
        InvalidShare: naming the first violated invariant.
    """
    if share.curve not in SUPPORTED_CURVES:
        raise InvalidShare(f"Unsupported curve: {share.curve!r}")
    ec = share.ec
    n = share.n

    if n < 1:
        raise InvalidShare("Key share has no public shares")
    if not 0 <= share.party_index < n:
        raise InvalidShare(f"Party index {share.party_index} is out of range for n = {n}")
    if not 0 < share.threshold + 1 <= n:
        raise InvalidShare(f"Threshold {share.threshold} is out of range for n = {n}")
    if not 0 <= share.secret_share < ec.n:
        raise InvalidShare("Secret share is not a reduced scalar")

    points = (share.public_key,) + tuple(share.public_shares)
    if any(not isinstance(P, Point) or P.curve != ec.curve for P in points):
        raise InvalidShare("Public key material is not on the share's curve")
    if share.public_key.is_infinity:
        raise InvalidShare("Public key is the identity")
    if any(P.is_infinity for P in share.public_shares):
        raise InvalidShare("A public share is the identity")

    if ec.scalar_mult(share.secret_share) != share.public_shares[share.party_index]:
        raise InvalidShare("Secret share does not match its public share")

    window = share.threshold + 1
    for start in range(n - window + 1):
        subset = {
            party_point(j): share.public_shares[j] for j in range(start, start + window)
        }
        if interpolate_points_at_zero(ec, subset) != share.public_key:
            raise InvalidShare("Public shares do not interpolate to the public key")

    if share.chain_code is not None and (
        not isinstance(share.chain_code, bytes) or len(share.chain_code) != CHAIN_CODE_LENGTH
    ):
        raise InvalidShare(f"Chain code must be {CHAIN_CODE_LENGTH} bytes")

    if share.aux is not None:
        _validate_aux(share, security_level)
    return share


def _validate_aux(share: KeyShare, security_level: Optional[SecurityLevel]):
    aux = share.aux
    min_bits = (security_level.paillier_bits if security_level else MIN_PAILLIER_BITS) - 1

    if len(aux.parties) != share.n:
        raise InvalidShare("Auxiliary info must hold one entry per party")

    p, q = gmpy2.mpz(aux.p), gmpy2.mpz(aux.q)
    if p == q or not gmpy2.is_prime(p) or not gmpy2.is_prime(q):
        raise InvalidShare("Paillier factors must be two distinct primes")
    if p % 4 != 3 or q % 4 != 3:
        raise InvalidShare("Paillier factors must be congruent to 3 mod 4")
    if p * q != aux.parties[share.party_index].N:
        raise InvalidShare("Paillier factors do not match the party's own modulus")

    moduli = set()
    for j, a in enumerate(aux.parties):
        N = gmpy2.mpz(a.N)
        if N % 2 == 0 or gmpy2.is_square(N) or N.bit_length() < min_bits:
            raise InvalidShare(f"Paillier modulus of party {j} is malformed")
        if N in moduli:
            raise InvalidShare(f"Paillier modulus of party {j} is reused")
        moduli.add(N)
        if not (1 < a.s < N and 1 < a.t < N) or a.s == a.t:
            raise InvalidShare(f"Ring-Pedersen parameters of party {j} are out of range")
        if gmpy2.gcd(a.s, N) != 1 or gmpy2.gcd(a.t, N) != 1:
            raise InvalidShare(f"Ring-Pedersen parameters of party {j} are not units")
