from dataclasses import dataclass, fields, is_dataclass
from typing import List, Optional, Union, get_type_hints, get_origin, get_args
import json
import gmpy2

from tss_crypto.common.utils import serialize_point, deserialize_point
from tss_crypto.common.ec import ECOperations, Point


def _encode(value):
    if isinstance(value, Point):
        return serialize_point(value)
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    if isinstance(value, gmpy2.mpz):
        # Convert gmpy2 integers to standard Python ints for JSON.
        return int(value)
    return value


def _unwrap_optional(tp):
    if get_origin(tp) is Union:
        args = [a for a in get_args(tp) if a is not type(None)]
        if len(args) == 1:
            return args[0], True
    return tp, False


def _decode(tp, value, ec: ECOperations):
    tp, optional = _unwrap_optional(tp)
    if value is None:
        if optional:
            return None
        raise ValueError("Missing value for a required field")
    if tp is Point:
        if not isinstance(value, str):
            raise ValueError("Point must be encoded as a hex string")
        return deserialize_point(ec, value)
    if tp is bytes:
        if not isinstance(value, str):
            raise ValueError("Bytes must be encoded as a hex string")
        return bytes.fromhex(value)
    if get_origin(tp) is list:
        if not isinstance(value, list):
            raise ValueError("Expected a list")
        (item_type,) = get_args(tp)
        return [_decode(item_type, v, ec) for v in value]
    if tp is int and (not isinstance(value, int) or isinstance(value, bool)):
        raise ValueError("Expected an integer")
    return value


def _well_typed(tp, value) -> bool:
    tp, optional = _unwrap_optional(tp)
    if value is None:
        return optional
    if get_origin(tp) is list:
        (item_type,) = get_args(tp)
        return isinstance(value, list) and all(_well_typed(item_type, v) for v in value)
    if tp is int:
        return isinstance(value, (int, gmpy2.mpz)) and not isinstance(value, bool)
    return isinstance(value, tp)


class ProtocolMessage:
    """
    Base class for protocol messages, providing JSON serialization and deserialization.
    It automatically handles the conversion of custom types like `Point`, `bytes`
    and lists of them.
    """

    def to_dict(self) -> dict:
        """Serializes the dataclass instance to a dictionary for JSON conversion."""
        return {f.name: _encode(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict, ec: ECOperations):
        """Deserializes a dictionary into a dataclass instance.

        Raises:
            ValueError: on missing fields or values of the wrong shape.
        """
        if not is_dataclass(cls):
            raise TypeError("from_dict can only be called on a dataclass")
        if not isinstance(data, dict):
            raise ValueError("Message body must be a JSON object")

        kwargs = {}
        for field_name, field_type in get_type_hints(cls).items():
            kwargs[field_name] = _decode(field_type, data.get(field_name), ec)
        return cls(**kwargs)

    def to_json(self) -> str:
        """Serializes the message object to a JSON string."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, json_str: str, ec: ECOperations):
        """Deserializes a JSON string into a message object."""
        return cls.from_dict(json.loads(json_str), ec)

    def is_well_formed(self) -> bool:
        """Checks every field against its annotated type."""
        hints = get_type_hints(type(self))
        return all(_well_typed(hints[f.name], getattr(self, f.name)) for f in fields(self))


# --- Reliable broadcast ---


@dataclass
class ReliabilityCheckMessage(ProtocolMessage):
    """Hash of every broadcast a party received in the previous round."""

    digest: bytes


# --- Keygen Messages ---


@dataclass
class KeygenRound1Message(ProtocolMessage):
    """Hash commitment `V` to everything revealed in round 2."""

    V: int


@dataclass
class KeygenRound2Message(ProtocolMessage):
    """Decommitment: rid share, Feldman commitments, Schnorr commitment `A`."""

    rid: bytes
    F: List[Point]
    A: Point
    chain_code: Optional[bytes]
    u: bytes


@dataclass
class KeygenRound3Message(ProtocolMessage):
    """The recipient's share f_i(j + 1) and a Schnorr proof for f_i(0)."""

    share: int
    sch: List[bytes]


# --- Aux Info / Refresh Messages ---


@dataclass
class AuxRound1Message(ProtocolMessage):
    """Hash commitment `V` to the Paillier, ring-Pedersen and zero-sharing data."""

    V: int


@dataclass
class AuxRound2Message(ProtocolMessage):
    """Reveals `N`, ring-Pedersen `s`, `t`, their proof and the zero-sharing commitments."""

    N: int
    s: int
    t: int
    prm: List[bytes]
    G: List[Point]
    rho: bytes
    u: bytes


@dataclass
class AuxRound3Message(ProtocolMessage):
    """Modulus proofs (`mod`, `fac`) and the recipient's zero-share."""

    mod: List[bytes]
    fac: List[bytes]
    share: int


# --- Presigning Messages ---


@dataclass
class PresigningRound1aMessage(ProtocolMessage):
    """Encrypted ephemeral shares `K = Enc(k_i)`, `G = Enc(gamma_i)`."""

    K: int
    G: int


@dataclass
class PresigningRound1bMessage(ProtocolMessage):
    """Proof that `K` encrypts a small value, under the recipient's ring-Pedersen parameters."""

    proofenc: List[bytes]


@dataclass
class PresigningRound2Message(ProtocolMessage):
    """Both MtA results towards the recipient and a log* proof for `Gamma`."""

    Gamma: Point
    D: int
    F: int
    hat_D: int
    hat_F: int
    psi_affg_gamma: List[bytes]  # MtA(k_j, gamma_i)
    psi_affg_xi: List[bytes]  # MtA(k_j, x_i)
    psi_logstar_gamma: List[bytes]  # Enc(gamma_i) vs Gamma_i


@dataclass
class PresigningRound3Message(ProtocolMessage):
    """This party's `delta_i`, `Delta_i = k_i * Gamma` and a proof for `Delta_i`."""

    delta: int
    Delta: Point
    psi: List[bytes]


# --- Signing Messages ---


@dataclass
class SigningRound4Message(ProtocolMessage):
    """A party's signature share `sigma_i`.

    The share carries no proof. A bad share is caught when the combined
    signature fails to verify, which the signers cannot attribute.
    """

    sigma: int


MESSAGE_TYPES = {
    cls.__name__: cls
    for cls in (
        ReliabilityCheckMessage,
        KeygenRound1Message,
        KeygenRound2Message,
        KeygenRound3Message,
        AuxRound1Message,
        AuxRound2Message,
        AuxRound3Message,
        PresigningRound1aMessage,
        PresigningRound1bMessage,
        PresigningRound2Message,
        PresigningRound3Message,
        SigningRound4Message,
    )
}


@dataclass(frozen=True)
class Msg:
    """
    Envelope keyed by (round, sender, recipient).

    `recipient` is None for broadcast messages.
    """

    round: int
    sender: int
    recipient: Optional[int]
    payload: ProtocolMessage

    @property
    def is_broadcast(self) -> bool:
        return self.recipient is None

    def to_dict(self) -> dict:
        return {
            "round": self.round,
            "sender": self.sender,
            "recipient": self.recipient,
            "type": type(self.payload).__name__,
            "payload": self.payload.to_dict(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @staticmethod
    def from_dict(data: dict, ec: ECOperations) -> "Msg":
        try:
            payload_cls = MESSAGE_TYPES[data["type"]]
        except KeyError:
            raise ValueError(f"Unknown message type: {data.get('type')!r}")
        return Msg(
            round=int(data["round"]),
            sender=int(data["sender"]),
            recipient=None if data["recipient"] is None else int(data["recipient"]),
            payload=payload_cls.from_dict(data["payload"], ec),
        )

    @staticmethod
    def from_json(json_str: str, ec: ECOperations) -> "Msg":
        return Msg.from_dict(json.loads(json_str), ec)
