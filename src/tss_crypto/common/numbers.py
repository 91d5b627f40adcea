import hashlib
import secrets
import gmpy2


def jacobi_symbol(a: int, n: int) -> int:
    """Computes the Jacobi symbol (a/n)."""
    return gmpy2.jacobi(a, n)


def sample_below(bound: int) -> int:
    """Samples uniformly from [0, bound)."""
    return secrets.randbelow(int(bound))


def sample_range(lo: int, hi: int) -> int:
    """Samples uniformly from [lo, hi)."""
    return int(lo) + secrets.randbelow(int(hi) - int(lo))


def sample_unit(n: int) -> int:
    """Samples a random element of Z_n^*."""
    while True:
        x = sample_range(1, n)
        if gmpy2.gcd(x, n) == 1:
            return x


def sample_invertible_with_neg_jacobi(n: int) -> int:
    """
    Samples a random integer 'w' in [1, n-1] such that its Jacobi
    symbol (w/n) is -1.
    """
    while True:
        w = sample_range(1, n)
        if jacobi_symbol(w, n) == -1:
            return w


def is_quadratic_residue(x: int, n: int) -> bool:
    """
    Checks if x is a quadratic residue modulo a prime n.
    """
    return jacobi_symbol(x, n) == 1


def is_in_interval(x: int, bound: int) -> bool:
    """Checks if x is in the interval [0, bound)."""
    return 0 <= x < bound


def check_invertible_and_valid_mod(modulus: int, *vals: int) -> bool:
    """
    Checks if all provided values are in the range (0, modulus) and are
    relatively prime to the modulus.
    """
    for v in vals:
        if not (0 < v < modulus):
            return False
        if gmpy2.gcd(v, modulus) != 1:
            return False
    return True


def rejection_sample(modulus: int, h: int) -> int:
    """
    Deterministically expands the seed 'h' into an integer in [0, modulus-1].

    Used only for Fiat-Shamir challenges; secret randomness comes from the
    sample_* helpers.
    """
    r = 0
    i = 0
    while r < modulus:
        inb = str(h + i).encode()
        r = (r << 256) | int.from_bytes(hashlib.sha256(inb).digest(), "big")
        i += 1
    return r % modulus
