import logging
import secrets
from typing import Dict, List, Optional

from tss_crypto.common.commitment import commit, verify_commitment
from tss_crypto.common.ec import SUPPORTED_CURVES, ECOperations, Point
from tss_crypto.common.utils import bytes_to_int, point_to_int
from tss_crypto.zkp.sch import ProofSch
from tss_ecdsa.blame import collect_blame, raise_blame
from tss_ecdsa.config import DEFAULT_CURVE, REASONABLY_SECURE, SecurityLevel
from tss_ecdsa.errors import InvalidArguments, InvalidShare, Reason, UnattributedFailure
from tss_ecdsa.key_share import CHAIN_CODE_LENGTH, KeyShare, validate
from tss_ecdsa.messages import (
    KeygenRound1Message,
    KeygenRound2Message,
    KeygenRound3Message,
)
from tss_ecdsa.polynomial import Polynomial, evaluate_commitments, party_point
from tss_ecdsa.progress import Tracer
from tss_ecdsa.rounds import Inbox, Round, StateMachine, Step
from tss_ecdsa.transcript import Transcript

logger = logging.getLogger(__name__)


class Keygen(StateMachine):
    """
    Distributed key generation for `n` parties with the given threshold.

    Every party deals a random polynomial of degree `threshold` through a
    Feldman VSS. Commitments to all dealt material are exchanged before
    anything is revealed, so no party can bias the joint key or the shared
    randomness `rid` after seeing the others' contributions.

    The output is a KeyShare without auxiliary info.
    """

    protocol = "keygen"

    COMMIT = Round("Commit shares", broadcast=KeygenRound1Message, echo=True)
    REVEAL = Round("Reveal shares", broadcast=KeygenRound2Message)
    DISTRIBUTE = Round("Distribute splits", p2p=KeygenRound3Message)

    def __init__(
        self,
        party_index: int,
        n: int,
        threshold: int,
        execution_id: bytes,
        security_level: SecurityLevel = REASONABLY_SECURE,
        hd_wallet: bool = False,
        enforce_reliable_broadcast: bool = True,
        tracer: Optional[Tracer] = None,
        curve: str = DEFAULT_CURVE,
    ):
        if not 0 < threshold + 1 <= n:
            raise InvalidArguments(f"threshold must satisfy 0 <= threshold < n, got {threshold} for n = {n}")
        if not 0 <= party_index < n:
            raise InvalidArguments(f"party index {party_index} is out of range for n = {n}")
        if curve not in SUPPORTED_CURVES:
            raise InvalidArguments(f"unsupported curve {curve!r}")

        super().__init__(
            party_index,
            range(n),
            ECOperations(curve),
            execution_id,
            enforce_reliable_broadcast,
            tracer,
        )
        self.n = n
        self.threshold = threshold
        self.security_level = security_level
        self.hd_wallet = hd_wallet

        self.transcript = Transcript(
            self.protocol, self.execution_id, self.ec, n, threshold, int(hd_wallet)
        )
        self._tag = b"tss-cggmp21/keygen/" + self.execution_id

        self._f: Optional[Polynomial] = None
        self._alpha: Optional[int] = None
        self._reveal: Optional[KeygenRound2Message] = None
        self._commitments: Dict[int, int] = {}
        self._reveals: Dict[int, KeygenRound2Message] = {}

    def _commit_values(
        self,
        j: int,
        rid: bytes,
        F: List[Point],
        A: Point,
        chain_code: Optional[bytes],
    ) -> List[int]:
        values = [self.n, self.threshold, j, bytes_to_int(rid), len(F)]
        values += [point_to_int(P) for P in F]
        values.append(point_to_int(A))
        if chain_code is None:
            values.append(0)
        else:
            values += [1, bytes_to_int(chain_code)]
        return values

    def _start(self):
        self.tracer.stage("Sample polynomial")
        self._f = Polynomial.random(self.ec, self.threshold)
        F = self._f.commitments(self.ec)
        rid = secrets.token_bytes(self.security_level.rid_bytes)
        chain_code = secrets.token_bytes(CHAIN_CODE_LENGTH) if self.hd_wallet else None
        self._alpha, A = ProofSch.new_alpha(self.ec)

        self.tracer.stage("Commit")
        V, u = commit(
            self._tag, *self._commit_values(self.party_index, rid, F, A, chain_code)
        )
        self._reveal = KeygenRound2Message(rid=rid, F=F, A=A, chain_code=chain_code, u=u)

        return self._emit(
            self.COMMIT, self._handle_commitments, broadcast=KeygenRound1Message(V=V)
        )

    def _handle_commitments(self, inbox: Inbox) -> Step:
        self._commitments = {j: m.V for j, m in inbox.broadcast.items()}
        return Step(
            self._emit(self.REVEAL, self._handle_reveals, broadcast=self._reveal)
        )

    def _is_malformed(self, j: int, m: KeygenRound2Message) -> bool:
        if len(m.rid) != self.security_level.rid_bytes:
            return True
        if len(m.F) != self.threshold + 1:
            return True
        if (m.chain_code is not None) != self.hd_wallet:
            return True
        if m.chain_code is not None and len(m.chain_code) != CHAIN_CODE_LENGTH:
            return True
        if any(P.curve != self.ec.curve for P in m.F + [m.A]):
            return True
        return m.A.is_infinity or m.F[0].is_infinity

    def _handle_reveals(self, inbox: Inbox) -> Step:
        self.tracer.stage("Check decommitments")
        raise_blame(
            collect_blame(
                inbox.broadcast,
                self._is_malformed,
                Reason.INVALID_MESSAGE,
                "malformed decommitment",
            )
        )
        raise_blame(
            collect_blame(
                inbox.broadcast,
                lambda j, m: not verify_commitment(
                    self._tag,
                    self._commitments[j],
                    m.u,
                    *self._commit_values(j, m.rid, m.F, m.A, m.chain_code),
                ),
                Reason.COMMITMENT_MISMATCH,
                "decommitment does not open the round 1 commitment",
            )
        )

        self._reveals = dict(inbox.broadcast)
        self._reveals[self.party_index] = self._reveal

        rid = 0
        for j in sorted(self._reveals):
            m = self._reveals[j]
            rid ^= bytes_to_int(m.rid)
            self.transcript.append_points(f"F{j}", m.F)
            self.transcript.append(f"A{j}", m.A)
        self.transcript.append("rid", rid)

        self.tracer.stage("Prove constant term")
        F = self._reveal.F
        proof = ProofSch.new_proof_with_alpha(
            self.transcript.challenge(self.party_index),
            self.ec,
            F[0],
            self._reveal.A,
            self._alpha,
            self._f.coefficients[0],
        )
        sch = proof.to_bytes_parts()

        self.tracer.stage("Evaluate splits")
        splits = {
            j: KeygenRound3Message(share=self._f.evaluate(party_point(j)), sch=sch)
            for j in self.peers
        }
        return Step(self._emit(self.DISTRIBUTE, self._handle_splits, p2p=splits))

    def _bad_proof(self, j: int, m: KeygenRound3Message) -> bool:
        proof = ProofSch.from_bytes(self.ec, m.sch)
        reveal = self._reveals[j]
        if proof.A != reveal.A:
            return True
        return not proof.verify(self.transcript.challenge(j), self.ec, reveal.F[0])

    def _bad_share(self, j: int, m: KeygenRound3Message) -> bool:
        if not 0 <= m.share < self.ec.n:
            return True
        expected = evaluate_commitments(
            self.ec, self._reveals[j].F, party_point(self.party_index)
        )
        return self.ec.scalar_mult(m.share) != expected

    def _handle_splits(self, inbox: Inbox) -> Step:
        self.tracer.stage("Verify proofs")
        raise_blame(
            collect_blame(
                inbox.p2p,
                self._bad_proof,
                Reason.PROOF_VERIFICATION_FAILED,
                "Schnorr proof for the constant term",
            )
        )
        self.tracer.stage("Verify splits")
        raise_blame(
            collect_blame(
                inbox.p2p,
                self._bad_share,
                Reason.SHARE_INCONSISTENT,
                "split does not match the Feldman commitments",
            )
        )

        self.tracer.stage("Finalize")
        ec = self.ec
        secret = self._f.evaluate(party_point(self.party_index))
        for m in inbox.p2p.values():
            secret += m.share
        secret %= ec.n

        reveals = [self._reveals[j] for j in sorted(self._reveals)]
        combined = [
            ec.point_sum(r.F[k] for r in reveals) for k in range(self.threshold + 1)
        ]
        public_shares = tuple(
            evaluate_commitments(ec, combined, party_point(m)) for m in range(self.n)
        )

        chain_code = None
        if self.hd_wallet:
            acc = 0
            for r in reveals:
                acc ^= bytes_to_int(r.chain_code)
            chain_code = acc.to_bytes(CHAIN_CODE_LENGTH, "big")

        share = KeyShare(
            party_index=self.party_index,
            threshold=self.threshold,
            secret_share=secret,
            public_key=combined[0],
            public_shares=public_shares,
            chain_code=chain_code,
            curve=ec.name,
        )
        try:
            validate(share)
        except InvalidShare as e:
            raise UnattributedFailure(Reason.INVALID_SHARE, f"keygen produced an invalid share: {e}")

        logger.debug("keygen: party %d derived public key %s", self.party_index, share.public_key)
        return self._finish(share)

    def _erase(self):
        self._f = None
        self._alpha = None
