import logging
from typing import Dict, Iterable, List, Optional

import gmpy2

from tss_crypto.common.ec import ECOperations, Point
from tss_crypto.common.paillier import PublicKey
from tss_crypto.zkp.affg import ProofAffg
from tss_crypto.zkp.enc import ProofEnc
from tss_crypto.zkp.logstar import ProofLogstar
from tss_crypto.zkp.mta import new_mta
from tss_ecdsa.blame import collect_blame, raise_blame
from tss_ecdsa.errors import (
    InvalidArguments,
    InvalidShare,
    PresignatureConsumed,
    Reason,
    UnattributedFailure,
)
from tss_ecdsa.key_share import KeyShare, validate
from tss_ecdsa.messages import (
    PresigningRound1aMessage,
    PresigningRound1bMessage,
    PresigningRound2Message,
    PresigningRound3Message,
)
from tss_ecdsa.polynomial import lagrange_coefficient, party_point
from tss_ecdsa.progress import Tracer
from tss_ecdsa.rounds import Inbox, Round, StateMachine, Step
from tss_ecdsa.signature import DataToSign, PartialSignature
from tss_ecdsa.transcript import Transcript

logger = logging.getLogger(__name__)


class Presignature:
    """
    Message-independent output of presigning: the nonce point R and this
    party's shares k_i and chi_i = k_i * x_i (additively over the signers).

    A presignature signs exactly once. Issuing a partial signature erases
    the secret shares.
    """

    def __init__(
        self,
        ec: ECOperations,
        party_index: int,
        signers: List[int],
        public_key: Point,
        R: Point,
        k: int,
        chi: int,
    ):
        self.ec = ec
        self.party_index = party_index
        self.signers = list(signers)
        self.public_key = public_key
        self.R = R
        self._k: Optional[int] = k
        self._chi: Optional[int] = chi

    @property
    def r(self) -> int:
        return self.R.x % self.ec.n

    @property
    def is_consumed(self) -> bool:
        return self._k is None

    def issue_partial_signature(self, data: DataToSign) -> PartialSignature:
        """
        Computes sigma_i = k_i * m + r * chi_i (mod q) and consumes the presignature.

        Raises:
            PresignatureConsumed: if this presignature has already signed.
        """
        if self._k is None:
            raise PresignatureConsumed("Presignature has already been used")
        q = self.ec.n
        m = data.to_scalar(self.ec)
        sigma = (gmpy2.mpz(self._k) * m + gmpy2.mpz(self.r) * self._chi) % q
        self._k = None
        self._chi = None
        return PartialSignature(self.party_index, self.r, int(sigma))

    def __repr__(self) -> str:
        state = "consumed" if self.is_consumed else "fresh"
        return f"Presignature(party={self.party_index}, r={hex(self.r)}, {state})"


class Presigning(StateMachine):
    """
    Presigning with `threshold + 1` signers (CGGMP21 figure 7).

    Signers are named by their keygen indices. Each signer turns its share
    into an additive one with its Lagrange coefficient over the signer set,
    then the signers run two MtA conversions per pair to share k * gamma and
    k * x without revealing either factor.

    The output is a Presignature, or an abort naming the first party whose
    message failed a check.
    """

    protocol = "presigning"

    ENCRYPT = Round(
        "Encrypt nonces",
        broadcast=PresigningRound1aMessage,
        p2p=PresigningRound1bMessage,
        echo=True,
    )
    MTA = Round("Multiplicative-to-additive", p2p=PresigningRound2Message)
    DELTA = Round("Reveal delta", p2p=PresigningRound3Message)

    def __init__(
        self,
        key_share: KeyShare,
        signers: Iterable[int],
        execution_id: bytes,
        enforce_reliable_broadcast: bool = True,
        tracer: Optional[Tracer] = None,
    ):
        signers = list(signers)
        validate(key_share)
        if key_share.aux is None:
            raise InvalidShare("Key share has no auxiliary info; run a key refresh first")
        if len(set(signers)) != len(signers):
            raise InvalidArguments("signers must be distinct")
        if len(signers) != key_share.threshold + 1:
            raise InvalidArguments(
                f"exactly {key_share.threshold + 1} signers are required, got {len(signers)}"
            )
        if any(not isinstance(j, int) or not 0 <= j < key_share.n for j in signers):
            raise InvalidArguments("signer index out of range")
        if key_share.party_index not in signers:
            raise InvalidArguments("the local party is not among the signers")

        super().__init__(
            key_share.party_index,
            sorted(signers),
            key_share.ec,
            execution_id,
            enforce_reliable_broadcast,
            tracer,
        )
        self.key_share = key_share
        ec = self.ec
        aux = key_share.aux

        xs = [party_point(j) for j in self.parties]
        lambdas = {j: lagrange_coefficient(ec.n, xs, party_point(j)) for j in self.parties}
        self._x = (lambdas[self.party_index] * key_share.secret_share) % ec.n
        self._X = {
            j: ec.scalar_mult(lambdas[j], key_share.public_shares[j]) for j in self.parties
        }

        self._paillier = key_share.paillier_key()
        self._pk = {j: PublicKey(aux.parties[j].N) for j in self.parties}
        self._rp = {j: aux.parties[j] for j in self.parties}

        self.transcript = Transcript(
            self.protocol,
            self.execution_id,
            ec,
            key_share.n,
            key_share.threshold,
            key_share.public_key,
            *self.parties,
            *[self._rp[j].N for j in self.parties],
        )

        self._k: Optional[int] = None
        self._gamma: Optional[int] = None
        self._rho: Optional[int] = None
        self._nu: Optional[int] = None
        self._K: Dict[int, int] = {}
        self._G: Dict[int, int] = {}
        self._beta: Dict[int, int] = {}
        self._hat_beta: Dict[int, int] = {}
        self._Gamma: Optional[Point] = None
        self._Delta: Optional[Point] = None
        self._delta: Optional[int] = None
        self._chi: Optional[int] = None

    @property
    def _own(self):
        return self._rp[self.party_index]

    def _start(self):
        ec = self.ec
        pk = self._pk[self.party_index]

        self.tracer.stage("Sample nonces")
        self._k = ec.random_scalar()
        self._gamma = ec.random_scalar()
        K, self._rho = pk.encrypt_and_return_randomness(self._k)
        G, self._nu = pk.encrypt_and_return_randomness(self._gamma)
        self._K[self.party_index] = K
        self._G[self.party_index] = G

        self.tracer.stage("Prove encryption in range")
        ssid = self.transcript.challenge(self.party_index)
        proofs = {}
        for j in self.peers:
            rp = self._rp[j]
            proof = ProofEnc.new_proof(ssid, ec, pk, K, rp.N, rp.s, rp.t, self._k, self._rho)
            proofs[j] = PresigningRound1bMessage(proofenc=proof.to_bytes_parts())

        return self._emit(
            self.ENCRYPT,
            self._handle_round1,
            broadcast=PresigningRound1aMessage(K=K, G=G),
            p2p=proofs,
        )

    def _handle_round1(self, inbox: Inbox) -> Step:
        ec = self.ec
        me, own = self.party_index, self._own

        raise_blame(
            collect_blame(
                inbox.broadcast,
                lambda j, m: not (
                    self._pk[j].is_valid_ciphertext(m.K) and self._pk[j].is_valid_ciphertext(m.G)
                ),
                Reason.INVALID_MESSAGE,
                "ciphertext out of range",
            )
        )

        self.tracer.stage("Verify encryption proofs")
        # The encryption proofs were bound to the transcript before round 1.
        ssid0 = {j: self.transcript.challenge(j) for j in self.peers}
        raise_blame(
            collect_blame(
                inbox.p2p,
                lambda j, m: not ProofEnc.from_bytes(m.proofenc).verify(
                    ssid0[j], ec, self._pk[j], own.N, own.s, own.t, inbox.broadcast[j].K
                ),
                Reason.PROOF_VERIFICATION_FAILED,
                "encryption-in-range proof for K",
            )
        )

        for j, m in inbox.broadcast.items():
            self._K[j] = m.K
            self._G[j] = m.G
        for j in self.parties:
            self.transcript.append(f"KG{j}", self._K[j], self._G[j])

        self.tracer.stage("MtA")
        ssid = self.transcript.challenge(me)
        pk_i = self._pk[me]
        Gamma_i = ec.scalar_mult(self._gamma)
        messages = {}
        for j in self.peers:
            rp = self._rp[j]
            pk_j = self._pk[j]
            mta_gamma = new_mta(
                ssid, ec, self._K[j], self._gamma, Gamma_i, pk_j, pk_i, rp.N, rp.s, rp.t
            )
            mta_x = new_mta(
                ssid, ec, self._K[j], self._x, self._X[me], pk_j, pk_i, rp.N, rp.s, rp.t
            )
            psi = ProofLogstar.new_proof(
                ssid, ec, pk_i, self._G[me], Gamma_i, ec.G, self._nu, self._gamma,
                rp.N, rp.s, rp.t,
            )
            self._beta[j] = mta_gamma.beta
            self._hat_beta[j] = mta_x.beta
            messages[j] = PresigningRound2Message(
                Gamma=Gamma_i,
                D=mta_gamma.Dji,
                F=mta_gamma.Fji,
                hat_D=mta_x.Dji,
                hat_F=mta_x.Fji,
                psi_affg_gamma=mta_gamma.Proofji.to_bytes_parts(),
                psi_affg_xi=mta_x.Proofji.to_bytes_parts(),
                psi_logstar_gamma=psi.to_bytes_parts(),
            )
        return Step(self._emit(self.MTA, self._handle_round2, p2p=messages))

    def _round2_malformed(self, j: int, m: PresigningRound2Message) -> bool:
        pk_i, pk_j = self._pk[self.party_index], self._pk[j]
        if m.Gamma.is_infinity or m.Gamma.curve != self.ec.curve:
            return True
        return not (
            pk_i.is_valid_ciphertext(m.D)
            and pk_i.is_valid_ciphertext(m.hat_D)
            and pk_j.is_valid_ciphertext(m.F)
            and pk_j.is_valid_ciphertext(m.hat_F)
        )

    def _round2_bad_proof(self, j: int, m: PresigningRound2Message) -> bool:
        ec = self.ec
        me, own = self.party_index, self._own
        ssid = self.transcript.challenge(j)
        pk_i, pk_j = self._pk[me], self._pk[j]
        K_i = self._K[me]

        affg_gamma = ProofAffg.from_bytes(ec, m.psi_affg_gamma)
        if not affg_gamma.verify(ssid, ec, pk_i, pk_j, own.N, own.s, own.t, K_i, m.D, m.F, m.Gamma):
            return True
        affg_x = ProofAffg.from_bytes(ec, m.psi_affg_xi)
        if not affg_x.verify(
            ssid, ec, pk_i, pk_j, own.N, own.s, own.t, K_i, m.hat_D, m.hat_F, self._X[j]
        ):
            return True
        logstar = ProofLogstar.from_bytes(ec, m.psi_logstar_gamma)
        return not logstar.verify(
            ssid, ec, pk_j, self._G[j], m.Gamma, ec.G, own.N, own.s, own.t
        )

    def _handle_round2(self, inbox: Inbox) -> Step:
        ec = self.ec
        q = ec.n
        me = self.party_index

        raise_blame(
            collect_blame(
                inbox.p2p, self._round2_malformed, Reason.INVALID_MESSAGE, "malformed MtA message"
            )
        )
        self.tracer.stage("Verify MtA proofs")
        raise_blame(
            collect_blame(
                inbox.p2p,
                self._round2_bad_proof,
                Reason.PROOF_VERIFICATION_FAILED,
                "affine-operation or log* proof",
            )
        )

        self.tracer.stage("Compute delta and chi")
        Gamma = ec.point_sum([ec.scalar_mult(self._gamma)] + [m.Gamma for m in inbox.p2p.values()])
        Delta = ec.scalar_mult(self._k, Gamma)

        delta = gmpy2.mpz(self._k) * self._gamma
        chi = gmpy2.mpz(self._k) * self._x
        for j, m in inbox.p2p.items():
            alpha = self._paillier.decrypt(m.D)
            hat_alpha = self._paillier.decrypt(m.hat_D)
            delta += alpha + self._beta[j]
            chi += hat_alpha + self._hat_beta[j]
        self._Gamma = Gamma
        self._Delta = Delta
        self._delta = int(delta % q)
        self._chi = int(chi % q)

        self.tracer.stage("Prove Delta")
        ssid = self.transcript.challenge(me)
        pk_i = self._pk[me]
        messages = {}
        for j in self.peers:
            rp = self._rp[j]
            psi = ProofLogstar.new_proof(
                ssid, ec, pk_i, self._K[me], Delta, Gamma, self._rho, self._k, rp.N, rp.s, rp.t
            )
            messages[j] = PresigningRound3Message(
                delta=self._delta, Delta=Delta, psi=psi.to_bytes_parts()
            )
        return Step(self._emit(self.DELTA, self._handle_round3, p2p=messages))

    def _handle_round3(self, inbox: Inbox) -> Step:
        ec = self.ec
        own = self._own

        raise_blame(
            collect_blame(
                inbox.p2p,
                lambda j, m: not 0 <= m.delta < ec.n or m.Delta.curve != ec.curve,
                Reason.INVALID_MESSAGE,
                "malformed delta",
            )
        )
        self.tracer.stage("Verify Delta proofs")
        raise_blame(
            collect_blame(
                inbox.p2p,
                lambda j, m: not ProofLogstar.from_bytes(ec, m.psi).verify(
                    self.transcript.challenge(j),
                    ec,
                    self._pk[j],
                    self._K[j],
                    m.Delta,
                    self._Gamma,
                    own.N,
                    own.s,
                    own.t,
                ),
                Reason.PROOF_VERIFICATION_FAILED,
                "log* proof for Delta",
            )
        )

        self.tracer.stage("Compute R")
        delta = (self._delta + sum(m.delta for m in inbox.p2p.values())) % ec.n
        Delta = ec.point_sum([self._Delta] + [m.Delta for m in inbox.p2p.values()])
        if delta == 0 or ec.scalar_mult(delta) != Delta:
            raise UnattributedFailure(
                Reason.PRESIGNATURE_INCONSISTENT,
                "delta * G does not match the sum of the Delta shares",
            )

        R = ec.scalar_mult(ec.scalar_inv(delta), self._Gamma)
        presignature = Presignature(
            ec, self.party_index, self.parties, self.key_share.public_key, R, self._k, self._chi
        )
        logger.debug("%s: party %d holds a presignature", self.protocol, self.party_index)
        return self._presignature_ready(presignature)

    def _presignature_ready(self, presignature: Presignature) -> Step:
        return self._finish(presignature)

    def _erase(self):
        self._k = None
        self._gamma = None
        self._x = None
        self._chi = None
        self._rho = None
        self._nu = None
        self._paillier = None
        self._beta = {}
        self._hat_beta = {}
