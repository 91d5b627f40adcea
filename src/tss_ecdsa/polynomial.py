"""
Secret polynomials over the scalar field, Feldman commitments and Lagrange
interpolation. Party `j` is always evaluated at x = j + 1.
"""

from typing import List, Mapping, Optional, Sequence

import gmpy2

from tss_crypto.common.ec import ECOperations, Point


def party_point(party_index: int) -> int:
    return party_index + 1


class Polynomial:
    def __init__(self, coefficients: Sequence[int], q: int):
        if not coefficients:
            raise ValueError("Polynomial needs at least one coefficient")
        self.coefficients = [int(c) % q for c in coefficients]
        self.q = q

    @staticmethod
    def random(ec: ECOperations, degree: int, constant: Optional[int] = None) -> "Polynomial":
        """Samples a random polynomial; `constant` fixes f(0) when given."""
        coefficients = [ec.random_scalar() for _ in range(degree + 1)]
        if constant is not None:
            coefficients[0] = constant % ec.n
        return Polynomial(coefficients, ec.n)

    @property
    def degree(self) -> int:
        return len(self.coefficients) - 1

    def evaluate(self, x: int) -> int:
        acc = gmpy2.mpz(0)
        for c in reversed(self.coefficients):
            acc = (acc * x + c) % self.q
        return int(acc)

    def commitments(self, ec: ECOperations) -> List[Point]:
        """Feldman commitments: one group element per coefficient."""
        return [ec.scalar_mult(c) for c in self.coefficients]


def evaluate_commitments(ec: ECOperations, commitments: Sequence[Point], x: int) -> Point:
    """Computes sum_k C_k * x^k, the commitment to f(x)."""
    acc = ec.infinity()
    for C in reversed(commitments):
        acc = ec.point_add(ec.scalar_mult(x, acc), C)
    return acc


def lagrange_coefficient(q: int, xs: Sequence[int], x_i: int) -> int:
    """Lagrange basis polynomial for x_i over the points xs, evaluated at zero."""
    num, den = gmpy2.mpz(1), gmpy2.mpz(1)
    for x_j in xs:
        if x_j == x_i:
            continue
        num = (num * x_j) % q
        den = (den * (x_j - x_i)) % q
    if den == 0:
        raise ValueError("Interpolation points must be distinct")
    return int((num * gmpy2.invert(den, q)) % q)


def interpolate_points_at_zero(ec: ECOperations, points: Mapping[int, Point]) -> Point:
    """Reconstructs F(0) from {x: F(x)}."""
    xs = list(points)
    return ec.point_sum(
        ec.scalar_mult(lagrange_coefficient(ec.n, xs, x), P) for x, P in points.items()
    )


def interpolate_at_zero(q: int, values: Mapping[int, int]) -> int:
    xs = list(values)
    return sum(lagrange_coefficient(q, xs, x) * v for x, v in values.items()) % q
