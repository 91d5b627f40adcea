"""
Sender side of the multiplicative-to-additive (MtA) share conversion.
"""

from dataclasses import dataclass
import gmpy2

from tss_crypto.zkp.affg import ProofAffg
from tss_crypto.common.ec import ECOperations, Point
from tss_crypto.common.paillier import PublicKey
from tss_crypto.common.numbers import sample_below


@dataclass
class MtAOut:
    """
    One party's half of an MtA exchange with party j.

    `Dji` and `Fji` plus the proof are sent to j; `beta` stays local.
    """

    # Enc_j(secret_i * k_j + beta_neg)
    Dji: int
    # Enc_i(beta_neg)
    Fji: int
    sij: int
    rij: int
    beta: int
    Proofji: ProofAffg


def new_mta(
    ssid: int,
    ec: ECOperations,
    Kj: int,
    gamma_i: int,
    BigGamma_i: Point,
    pkj: PublicKey,
    pki: PublicKey,
    NCap: int,
    s: int,
    t: int,
) -> MtAOut:
    """
    Executes Party i's computations for the MtA protocol.

    Converts the product gamma_i * k_j, with k_j known to j only through its
    ciphertext Kj, into additive shares alpha + beta (mod q).

    Args:
        ssid: Session identifier for the Aff-g proof.
        ec: Elliptic curve operations.
        Kj: Paillier ciphertext of party j's secret, Enc_j(k_j).
        gamma_i: Party i's secret scalar.
        BigGamma_i: gamma_i * G.
        pkj: Party j's Paillier public key.
        pki: Party i's Paillier public key.
        NCap, s, t: Party j's ring-Pedersen parameters.
    """
    q = gmpy2.mpz(ec.n)
    q5 = q**5
    if q5 >= pkj.n:
        raise ValueError("Paillier modulus is too small for MtA")

    gamma_i_mpz = gmpy2.mpz(gamma_i) % q

    beta_neg = gmpy2.mpz(sample_below(q5))
    beta = q5 - beta_neg

    gammaK = pkj.homo_mult(int(gamma_i_mpz), int(Kj))
    Dji, sij = pkj.encrypt_and_return_randomness(int(beta_neg))
    Dji = pkj.homo_add(gammaK, Dji)

    Fji, rij = pki.encrypt_and_return_randomness(int(beta_neg))

    proof = ProofAffg.new_proof(
        ssid, ec, pkj, pki, NCap, s, t,
        int(Kj), Dji, Fji,
        BigGamma_i, int(gamma_i_mpz), int(beta_neg),
        sij, rij,
    )

    return MtAOut(
        Dji=Dji,
        Fji=Fji,
        sij=sij,
        rij=rij,
        beta=int(beta % q),
        Proofji=proof,
    )
