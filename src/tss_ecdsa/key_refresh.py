import logging
import secrets
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

import gmpy2

from tss_crypto.common.commitment import commit, verify_commitment
from tss_crypto.common.numbers import sample_below, sample_unit
from tss_crypto.common.paillier import PrivateKey, generate_key_pair
from tss_crypto.common.utils import bytes_to_int, point_to_int
from tss_crypto.zkp.fac import ProofFac
from tss_crypto.zkp.mod import ProofMod
from tss_crypto.zkp.prm import ProofPrm, ProofPrmBytesParts
from tss_ecdsa.blame import collect_blame, raise_blame
from tss_ecdsa.config import REASONABLY_SECURE, SecurityLevel
from tss_ecdsa.errors import InvalidArguments, InvalidShare, Reason, UnattributedFailure
from tss_ecdsa.key_share import AuxInfo, KeyShare, PartyAux, validate
from tss_ecdsa.messages import AuxRound1Message, AuxRound2Message, AuxRound3Message
from tss_ecdsa.polynomial import Polynomial, evaluate_commitments, party_point
from tss_ecdsa.progress import Tracer
from tss_ecdsa.rounds import Inbox, Round, StateMachine, Step
from tss_ecdsa.transcript import Transcript

logger = logging.getLogger(__name__)


def ring_pedersen_parameters(N: int, phi: int) -> Tuple[int, int, int]:
    """Samples t = r^2 and s = t^lambda mod N. Returns (s, t, lambda)."""
    while True:
        r = gmpy2.mpz(sample_unit(N))
        lam = gmpy2.mpz(sample_below(phi))
        t = (r * r) % N
        s = gmpy2.powmod(t, lam, N)
        if s != t and s > 1 and t > 1:
            return int(s), int(t), int(lam)


class KeyRefresh(StateMachine):
    """
    Auxiliary info generation and proactive key refresh.

    Each party publishes a fresh Paillier-Blum modulus with ring-Pedersen
    parameters, proves both well-formed, and deals a sharing of zero. Adding
    the zero shares re-randomizes every secret share while the public key
    stays the same. With threshold 0 the zero polynomial is constant, so only
    the auxiliary info rotates.

    `primes` may supply a pregenerated pair of Blum primes; generating them is
    by far the most expensive step.
    """

    protocol = "aux_info"

    COMMIT = Round("Generate aux keys", broadcast=AuxRound1Message, echo=True)
    REVEAL = Round("Reveal aux keys", broadcast=AuxRound2Message)
    PROVE = Round("Prove well-formed and refresh", p2p=AuxRound3Message)

    def __init__(
        self,
        key_share: KeyShare,
        execution_id: bytes,
        security_level: SecurityLevel = REASONABLY_SECURE,
        enforce_reliable_broadcast: bool = True,
        tracer: Optional[Tracer] = None,
        primes: Optional[Tuple[int, int]] = None,
    ):
        validate(key_share)
        if primes is not None:
            p, q = map(gmpy2.mpz, primes)
            if p == q or not (gmpy2.is_prime(p) and gmpy2.is_prime(q)):
                raise InvalidArguments("primes must be two distinct primes")
            if p % 4 != 3 or q % 4 != 3:
                raise InvalidArguments("primes must be congruent to 3 mod 4")
            if not security_level.accepts_modulus(int(p * q)):
                raise InvalidArguments("primes are too small for the security level")

        super().__init__(
            key_share.party_index,
            range(key_share.n),
            key_share.ec,
            execution_id,
            enforce_reliable_broadcast,
            tracer,
        )
        self.key_share = key_share
        self.security_level = security_level

        self.transcript = Transcript(
            self.protocol,
            self.execution_id,
            self.ec,
            key_share.n,
            key_share.threshold,
            key_share.public_key,
            security_level.paillier_bits,
        )
        self._tag = b"tss-cggmp21/aux-info/" + self.execution_id

        self._primes = primes
        self._paillier: Optional[PrivateKey] = None
        self._zero: Optional[Polynomial] = None
        self._reveal: Optional[AuxRound2Message] = None
        self._commitments: Dict[int, int] = {}
        self._prm_ssid: Dict[int, int] = {}
        self._reveals: Dict[int, AuxRound2Message] = {}

    def _commit_values(self, j: int, m: AuxRound2Message) -> List[int]:
        values = [j, m.N, m.s, m.t]
        values += [bytes_to_int(b) for b in m.prm]
        values.append(len(m.G))
        values += [point_to_int(P) for P in m.G]
        values.append(bytes_to_int(m.rho))
        return values

    def _start(self):
        self.tracer.stage("Generate Paillier key")
        if self._primes is not None:
            self._paillier = PrivateKey.from_primes(*self._primes)
        else:
            self._paillier, _, p, q = generate_key_pair(self.security_level.paillier_bits)
            self._primes = (p, q)
        N = int(self._paillier.n)
        phi = int(self._paillier.phi_n)

        self.tracer.stage("Ring-Pedersen parameters")
        s, t, lam = ring_pedersen_parameters(N, phi)
        prm = ProofPrm.new_proof(
            self.transcript.challenge(self.party_index), s, t, N, phi, lam
        )

        self.tracer.stage("Sample zero sharing")
        self._zero = Polynomial.random(self.ec, self.key_share.threshold, constant=0)
        rho = secrets.token_bytes(self.security_level.rid_bytes)

        self._reveal = AuxRound2Message(
            N=N,
            s=s,
            t=t,
            prm=prm.to_bytes_parts(),
            G=self._zero.commitments(self.ec),
            rho=rho,
            u=b"",
        )
        V, u = commit(self._tag, *self._commit_values(self.party_index, self._reveal))
        self._reveal.u = u

        return self._emit(
            self.COMMIT, self._handle_commitments, broadcast=AuxRound1Message(V=V)
        )

    def _handle_commitments(self, inbox: Inbox) -> Step:
        self._commitments = {j: m.V for j, m in inbox.broadcast.items()}
        return Step(
            self._emit(self.REVEAL, self._handle_reveals, broadcast=self._reveal)
        )

    def _is_malformed(self, j: int, m: AuxRound2Message) -> bool:
        return (
            len(m.G) != self.key_share.threshold + 1
            or len(m.rho) != self.security_level.rid_bytes
            or len(m.prm) != ProofPrmBytesParts
            or any(P.curve != self.ec.curve for P in m.G)
        )

    def _bad_modulus(self, j: int, m: AuxRound2Message) -> bool:
        if not self.security_level.accepts_modulus(m.N) or m.N == self._reveal.N:
            return True
        if not (1 < m.s < m.N and 1 < m.t < m.N) or m.s == m.t:
            return True
        proof = ProofPrm.from_bytes(m.prm)
        return not proof.verify(self._prm_ssid[j], m.s, m.t, m.N)

    def _handle_reveals(self, inbox: Inbox) -> Step:
        self.tracer.stage("Check decommitments")
        raise_blame(
            collect_blame(
                inbox.broadcast,
                self._is_malformed,
                Reason.INVALID_MESSAGE,
                "malformed aux info",
            )
        )
        raise_blame(
            collect_blame(
                inbox.broadcast,
                lambda j, m: not verify_commitment(
                    self._tag, self._commitments[j], m.u, *self._commit_values(j, m)
                ),
                Reason.COMMITMENT_MISMATCH,
                "decommitment does not open the round 1 commitment",
            )
        )

        self.tracer.stage("Verify ring-Pedersen proofs")
        # Ring-Pedersen proofs were made before any party data entered the transcript.
        self._prm_ssid = {j: self.transcript.challenge(j) for j in inbox.broadcast}
        raise_blame(
            collect_blame(
                inbox.broadcast,
                self._bad_modulus,
                Reason.PROOF_VERIFICATION_FAILED,
                "Paillier modulus size or ring-Pedersen proof",
            )
        )
        raise_blame(
            collect_blame(
                inbox.broadcast,
                lambda j, m: not m.G[0].is_infinity,
                Reason.SHARE_INCONSISTENT,
                "zero sharing has a non-zero constant term",
            )
        )

        self._reveals = dict(inbox.broadcast)
        self._reveals[self.party_index] = self._reveal

        rho = 0
        for j in sorted(self._reveals):
            m = self._reveals[j]
            rho ^= bytes_to_int(m.rho)
            self.transcript.append(f"aux{j}", m.N, m.s, m.t)
            self.transcript.append_points(f"G{j}", m.G)
        self.transcript.append("rho", rho)

        self.tracer.stage("Prove modulus")
        ssid = self.transcript.challenge(self.party_index)
        p, q = self._primes
        N = self._reveal.N
        mod = ProofMod.new_proof(ssid, N, p, q).to_bytes_parts()

        self.tracer.stage("Prove no small factors")
        messages = {}
        for j in self.peers:
            peer = self._reveals[j]
            fac = ProofFac.new_proof(ssid, self.ec, N, peer.N, peer.s, peer.t, p, q)
            messages[j] = AuxRound3Message(
                mod=mod,
                fac=fac.to_bytes_parts(),
                share=self._zero.evaluate(party_point(j)),
            )
        return Step(self._emit(self.PROVE, self._handle_proofs, p2p=messages))

    def _bad_proofs(self, j: int, m: AuxRound3Message) -> bool:
        ssid = self.transcript.challenge(j)
        N = self._reveals[j].N
        if not ProofMod.from_bytes(m.mod).verify(ssid, N):
            return True
        own = self._reveal
        fac = ProofFac.from_bytes(m.fac)
        return not fac.verify(ssid, self.ec, N, own.N, own.s, own.t)

    def _bad_share(self, j: int, m: AuxRound3Message) -> bool:
        if not 0 <= m.share < self.ec.n:
            return True
        expected = evaluate_commitments(
            self.ec, self._reveals[j].G, party_point(self.party_index)
        )
        return self.ec.scalar_mult(m.share) != expected

    def _handle_proofs(self, inbox: Inbox) -> Step:
        self.tracer.stage("Verify modulus proofs")
        raise_blame(
            collect_blame(
                inbox.p2p,
                self._bad_proofs,
                Reason.PROOF_VERIFICATION_FAILED,
                "Paillier-Blum modulus or no-small-factor proof",
            )
        )
        raise_blame(
            collect_blame(
                inbox.p2p,
                self._bad_share,
                Reason.SHARE_INCONSISTENT,
                "zero share does not match the Feldman commitments",
            )
        )

        self.tracer.stage("Finalize")
        ec = self.ec
        old = self.key_share
        secret = old.secret_share + self._zero.evaluate(party_point(self.party_index))
        for m in inbox.p2p.values():
            secret += m.share
        secret %= ec.n

        reveals = [self._reveals[j] for j in sorted(self._reveals)]
        public_shares = tuple(
            ec.point_sum(
                [old.public_shares[k]]
                + [evaluate_commitments(ec, r.G, party_point(k)) for r in reveals]
            )
            for k in range(old.n)
        )

        p, q = self._primes
        aux = AuxInfo(
            p=int(p),
            q=int(q),
            parties=tuple(PartyAux(N=r.N, s=r.s, t=r.t) for r in reveals),
        )
        share = replace(old, secret_share=secret, public_shares=public_shares, aux=aux)

        # validate() re-derives the public key from the new public shares.
        try:
            validate(share, self.security_level)
        except InvalidShare as e:
            raise UnattributedFailure(Reason.INVALID_SHARE, f"refresh produced an invalid share: {e}")

        logger.debug("aux_info: party %d refreshed its share", self.party_index)
        return self._finish(share)

    def _erase(self):
        self._paillier = None
        self._zero = None
