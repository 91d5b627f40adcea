from typing import List, Optional

from tss_crypto.common.ec import Point, ECOperations


def serialize_point(point: Optional[Point]) -> Optional[str]:
    """Converts a Point into the hex string of its compressed SEC1 encoding.

    The point at infinity has its own fixed-width all-zero encoding, so it
    needs no special marker.
    """
    if point is None:
        return None
    return point.to_bytes().hex()


def deserialize_point(ec: ECOperations, data: Optional[str]) -> Optional[Point]:
    """Reconstructs a Point from the output of serialize_point.

    Raises:
        ValueError: if the string is not a valid encoding of a curve point.
    """
    if data is None:
        return None
    return ec.point_from_bytes(bytes.fromhex(data))


def serialize_point_list(points: Optional[List[Point]]) -> Optional[List[str]]:
    if points is None:
        return None
    return [serialize_point(p) for p in points]


def deserialize_point_list(ec: ECOperations, data) -> Optional[List[Point]]:
    if data is None:
        return None
    return [deserialize_point(ec, d) for d in data]


def int_to_bytes(i: int) -> bytes:
    """Minimal big-endian encoding; zero encodes as the empty string."""
    i = int(i)
    return i.to_bytes((i.bit_length() + 7) // 8, "big") if i != 0 else b""


def bytes_to_int(b: bytes) -> int:
    return int.from_bytes(b, "big") if b else 0


def point_to_int(P: Point) -> int:
    """Hash input for a point: its fixed-width compressed encoding as an integer."""
    return int.from_bytes(P.to_bytes(), "big")
