import pytest

from tss_crypto.common.commitment import NONCE_LENGTH, commit, verify_commitment
from tss_crypto.common.ec import ECOperations
from tss_crypto.common.paillier import MessageMalFormedError, PrivateKey
from tss_crypto.common.utils import deserialize_point, serialize_point
from tss_crypto.zkp.enc import ProofEnc
from tss_crypto.zkp.fac import ProofFac
from tss_crypto.zkp.mod import ProofMod
from tss_crypto.zkp.prm import ProofPrm
from tss_crypto.zkp.sch import ProofSch
from tss_ecdsa.key_refresh import ring_pedersen_parameters
from tss_ecdsa.polynomial import (
    Polynomial,
    evaluate_commitments,
    interpolate_at_zero,
    interpolate_points_at_zero,
    party_point,
)
from tss_ecdsa.transcript import Transcript

ec = ECOperations()


@pytest.fixture(scope="module")
def paillier(blum_primes):
    p, q = blum_primes[0]
    return PrivateKey.from_primes(p, q), p, q


@pytest.fixture(scope="module")
def verifier_params(blum_primes):
    p, q = blum_primes[1]
    N = p * q
    s, t, _ = ring_pedersen_parameters(N, (p - 1) * (q - 1))
    return N, s, t


def test_paillier_homomorphism(paillier):
    sk, _, _ = paillier
    c1 = sk.encrypt(1234)
    c2 = sk.encrypt(5678)
    assert sk.decrypt(sk.homo_add(c1, c2)) == 1234 + 5678
    assert sk.decrypt(sk.homo_mult(3, c1)) == 3 * 1234


def test_paillier_ciphertext_validity(paillier):
    sk, _, _ = paillier
    c = sk.encrypt(42)
    assert sk.decrypt(c) == 42
    assert sk.is_valid_ciphertext(c)
    assert not sk.is_valid_ciphertext(0)


def test_paillier_rejects_out_of_range_message(paillier):
    sk, _, _ = paillier
    with pytest.raises(MessageMalFormedError):
        sk.encrypt(int(sk.n))


def test_commitment_binds_values():
    tag = b"test"
    V, nonce = commit(tag, 1, 2, 3)
    assert len(nonce) == NONCE_LENGTH
    assert verify_commitment(tag, V, nonce, 1, 2, 3)
    assert not verify_commitment(tag, V, nonce, 1, 2, 4)
    assert not verify_commitment(b"other", V, nonce, 1, 2, 3)
    assert not verify_commitment(tag, V, nonce[:-1], 1, 2, 3)


def test_schnorr_proof():
    x = ec.random_scalar()
    X = ec.scalar_mult(x)
    proof = ProofSch.new_proof(7, ec, X, x)
    assert proof.verify(7, ec, X)
    assert not proof.verify(8, ec, X)
    assert not proof.verify(7, ec, ec.G)
    restored = ProofSch.from_bytes(ec, proof.to_bytes_parts())
    assert restored.verify(7, ec, X)


def test_modulus_proof(paillier):
    sk, p, q = paillier
    proof = ProofMod.new_proof(11, sk.n, p, q)
    assert proof.verify(11, sk.n)
    assert not proof.verify(12, sk.n)
    assert ProofMod.from_bytes(proof.to_bytes_parts()).verify(11, sk.n)


def test_ring_pedersen_proof(paillier):
    sk, p, q = paillier
    phi = (p - 1) * (q - 1)
    s, t, lam = ring_pedersen_parameters(sk.n, phi)
    proof = ProofPrm.new_proof(5, s, t, sk.n, phi, lam)
    assert proof.verify(5, s, t, sk.n)
    assert not proof.verify(5, t, s, sk.n)
    assert len(proof.to_bytes_parts()) == 160


def test_no_small_factor_proof(paillier, verifier_params):
    sk, p, q = paillier
    NCap, s, t = verifier_params
    proof = ProofFac.new_proof(9, ec, sk.n, NCap, s, t, p, q)
    assert proof.verify(9, ec, sk.n, NCap, s, t)
    assert not proof.verify(10, ec, sk.n, NCap, s, t)


def test_encryption_range_proof(paillier, verifier_params):
    sk, _, _ = paillier
    NCap, s, t = verifier_params
    k = ec.random_scalar()
    K, rho = sk.encrypt_and_return_randomness(k)
    proof = ProofEnc.new_proof(3, ec, sk, K, NCap, s, t, k, rho)
    assert proof.verify(3, ec, sk, NCap, s, t, K)
    assert not proof.verify(3, ec, sk, NCap, s, t, sk.encrypt(k))

    restored = ProofEnc.from_bytes(proof.to_bytes_parts())
    assert restored.verify(3, ec, sk, NCap, s, t, K)


def test_feldman_commitments_and_interpolation():
    f = Polynomial.random(ec, 2)
    commitments = f.commitments(ec)
    for j in range(4):
        x = party_point(j)
        assert evaluate_commitments(ec, commitments, x) == ec.scalar_mult(f.evaluate(x))

    values = {party_point(j): f.evaluate(party_point(j)) for j in (0, 2, 3)}
    assert interpolate_at_zero(ec.n, values) == f.coefficients[0]
    points = {x: ec.scalar_mult(v) for x, v in values.items()}
    assert interpolate_points_at_zero(ec, points) == commitments[0]


def test_polynomial_with_fixed_constant():
    f = Polynomial.random(ec, 1, constant=0)
    assert f.evaluate(0) == 0
    assert f.degree == 1
    with pytest.raises(ValueError):
        Polynomial([], ec.n)


def test_point_encoding():
    P = ec.scalar_mult(12345)
    assert deserialize_point(ec, serialize_point(P)) == P
    assert deserialize_point(ec, serialize_point(ec.infinity())).is_infinity
    with pytest.raises(ValueError):
        deserialize_point(ec, "05" + "00" * 32)


def test_transcript_is_order_sensitive():
    a = Transcript("label", b"eid", ec, 3, 1)
    b = Transcript("label", b"eid", ec, 3, 1)
    assert a.challenge(0) == b.challenge(0)
    assert a.challenge(0) != a.challenge(1)

    a.append("x", 1)
    a.append("y", 2)
    b.append("y", 2)
    b.append("x", 1)
    assert a.digest() != b.digest()
    assert Transcript("label", b"other", ec, 3, 1).challenge(0) != Transcript(
        "label", b"eid", ec, 3, 1
    ).challenge(0)
