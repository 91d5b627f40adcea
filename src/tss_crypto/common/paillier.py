"""
Paillier homomorphic cryptosystem over Blum moduli.

All large-integer arithmetic goes through gmpy2; primes come from
pycryptodome's generator.
"""

from typing import Optional, Tuple, Union
from Crypto.Util.number import getPrime
import gmpy2

from tss_crypto.common.numbers import sample_unit


# --- Custom Exceptions ---


class PaillierError(Exception):
    """Base exception for Paillier-related errors."""

    pass


class MessageTooLongError(PaillierError):
    """Raised when a message or ciphertext is out of its valid range."""

    pass


class MessageMalFormedError(PaillierError):
    """Raised when a message is malformed (e.g., not in [0, N-1])."""

    pass


class WrongRandomnessError(PaillierError):
    """Raised when provided randomness is cryptographically invalid."""

    pass


# --- Helper Functions ---


def get_random_positive_relatively_prime_int(n: gmpy2.mpz) -> gmpy2.mpz:
    """Returns a random integer x where 0 < x < n and gcd(x, n) == 1."""
    return gmpy2.mpz(sample_unit(int(n)))


def generate_blum_prime(bits: int) -> int:
    """Generates a prime p = 3 mod 4 of exactly `bits` bits."""
    while True:
        p = getPrime(bits)
        if p.bit_length() == bits and p % 4 == 3:
            return p


# --- Core Classes ---


class PublicKey:
    """
    Represents the public part of a Paillier key pair, using gmpy2 for all
    large number arithmetic.
    """

    def __init__(self, n: Union[int, gmpy2.mpz]):
        self.n: gmpy2.mpz = gmpy2.mpz(n)
        self._ns: Optional[gmpy2.mpz] = None
        self._ga: Optional[gmpy2.mpz] = None

    @property
    def n_square(self) -> gmpy2.mpz:
        """Returns N*N, cached."""
        if self._ns is None:
            self._ns = self.n * self.n
        return self._ns

    @property
    def gamma(self) -> gmpy2.mpz:
        """Returns N+1, cached."""
        if self._ga is None:
            self._ga = self.n + 1
        return self._ga

    def encrypt_and_return_randomness(self, m: int) -> Tuple[int, int]:
        """Encrypts a message and returns the ciphertext and randomness used."""
        x = get_random_positive_relatively_prime_int(self.n)
        return self.encrypt_with_randomness(m, int(x)), int(x)

    def encrypt(self, m: int) -> int:
        """Encrypts a message, discarding the randomness."""
        c, _ = self.encrypt_and_return_randomness(m)
        return c

    def encrypt_with_randomness(self, m: int, x: int) -> int:
        """Encrypts a message using a specified random value `x`."""
        if not (0 <= m < self.n):
            raise MessageMalFormedError("Message must be in the range [0, N-1]")
        x_mpz = gmpy2.mpz(x)
        if not (0 < x_mpz < self.n and gmpy2.gcd(x_mpz, self.n) == 1):
            raise WrongRandomnessError(
                "Randomness must be a positive integer relatively prime to N"
            )

        gm = gmpy2.powmod(self.gamma, m, self.n_square)
        xn = gmpy2.powmod(x_mpz, self.n, self.n_square)
        return int((gm * xn) % self.n_square)

    def homo_mult(self, m: int, c1: int) -> int:
        """Homomorphically multiplies a ciphertext by a plaintext scalar."""
        if not (0 <= m < self.n):
            raise MessageMalFormedError("Scalar must be in the range [0, N-1]")
        if not (0 <= c1 < self.n_square):
            raise MessageTooLongError("Ciphertext must be in the range [0, N^2-1]")
        return int(gmpy2.powmod(c1, m, self.n_square))

    def homo_add(self, c1: int, c2: int) -> int:
        """Homomorphically adds two ciphertexts."""
        if not (0 <= c1 < self.n_square) or not (0 <= c2 < self.n_square):
            raise MessageMalFormedError("Ciphertexts must be in the range [0, N^2-1]")
        return int((gmpy2.mpz(c1) * gmpy2.mpz(c2)) % self.n_square)

    def is_valid_ciphertext(self, c: int) -> bool:
        return 0 < c < self.n_square and gmpy2.gcd(c, self.n) == 1


class PrivateKey(PublicKey):
    """
    Represents a Paillier private key, which includes all public key
    components through inheritance.
    """

    def __init__(
        self,
        n: Union[int, gmpy2.mpz],
        lambda_n: Union[int, gmpy2.mpz],
        phi_n: Union[int, gmpy2.mpz],
    ):
        super().__init__(n)
        self.lambda_n: gmpy2.mpz = gmpy2.mpz(lambda_n)
        self.phi_n: gmpy2.mpz = gmpy2.mpz(phi_n)
        self._lg_inv: Optional[gmpy2.mpz] = None

    @staticmethod
    def from_primes(p: int, q: int) -> "PrivateKey":
        """Rebuilds the key from its secret factorization."""
        p, q = gmpy2.mpz(p), gmpy2.mpz(q)
        return PrivateKey(p * q, gmpy2.lcm(p - 1, q - 1), (p - 1) * (q - 1))

    def public_key(self) -> PublicKey:
        return PublicKey(self.n)

    def _L(self, u: gmpy2.mpz) -> gmpy2.mpz:
        """Implements the Paillier L function: L(u) = (u - 1) // N."""
        return (u - 1) // self.n

    def decrypt(self, c: int) -> int:
        """Decrypts a ciphertext, returning a standard Python int."""
        return int(self._decrypt_mpz(gmpy2.mpz(c)))

    def _decrypt_mpz(self, c: gmpy2.mpz) -> gmpy2.mpz:
        if not (0 <= c < self.n_square and gmpy2.gcd(c, self.n_square) == 1):
            raise MessageMalFormedError(
                "Ciphertext is mal-formed or not relatively prime to N^2"
            )

        c_pow_lambda = gmpy2.powmod(c, self.lambda_n, self.n_square)
        lc = self._L(c_pow_lambda)

        if self._lg_inv is None:
            self.cache_lg_inv()

        return (lc * self._lg_inv) % self.n

    def cache_lg_inv(self) -> bool:
        """Pre-computes and caches the modular inverse used in decryption."""
        if self._lg_inv is not None:
            return False

        g_pow_lambda = gmpy2.powmod(self.gamma, self.lambda_n, self.n_square)
        lg = self._L(g_pow_lambda)
        try:
            self._lg_inv = gmpy2.invert(lg, self.n)
        except ZeroDivisionError:
            raise PaillierError("Could not compute modular inverse of L(g^lambda)")
        return True


# --- Key Generation ---


def generate_key_pair(modulus_bit_len: int) -> Tuple[PrivateKey, PublicKey, int, int]:
    """
    Generates a Paillier key pair whose modulus is a Blum integer.

    Returns:
        A tuple of (private_key, public_key, p, q), where p and q are the
        secret prime factors returned as standard Python integers.
    """
    prime_bits = modulus_bit_len // 2

    p_int = generate_blum_prime(prime_bits)
    q_int = generate_blum_prime(prime_bits)
    while p_int == q_int:
        q_int = generate_blum_prime(prime_bits)

    private_key = PrivateKey.from_primes(p_int, q_int)
    return private_key, private_key.public_key(), p_int, q_int
