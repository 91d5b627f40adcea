from typing import Iterable, Optional

from tss_ecdsa.blame import collect_blame, raise_blame
from tss_ecdsa.errors import InvalidArguments, Reason
from tss_ecdsa.key_share import KeyShare
from tss_ecdsa.messages import SigningRound4Message
from tss_ecdsa.presigning import Presignature, Presigning
from tss_ecdsa.progress import Tracer
from tss_ecdsa.rounds import Inbox, Round, Step
from tss_ecdsa.signature import DataToSign, PartialSignature, Signature


class Signing(Presigning):
    """
    Threshold signing of a known message.

    Runs presigning, then spends the fresh presignature on `data` right away
    and exchanges the partial signatures. The combined signature is checked
    against the public key before it is returned; partial signatures carry
    no proof, so a bad one is detected but not attributed.
    """

    protocol = "signing"

    PARTIAL_SIGN = Round("Partial signature", broadcast=SigningRound4Message)

    def __init__(
        self,
        key_share: KeyShare,
        signers: Iterable[int],
        data: DataToSign,
        execution_id: bytes,
        enforce_reliable_broadcast: bool = True,
        tracer: Optional[Tracer] = None,
    ):
        if not isinstance(data, DataToSign):
            raise InvalidArguments("data must be a DataToSign")
        super().__init__(key_share, signers, execution_id, enforce_reliable_broadcast, tracer)
        self.data = data
        self._partial: Optional[PartialSignature] = None

    def _presignature_ready(self, presignature: Presignature) -> Step:
        self.tracer.stage("Partial signature")
        self._partial = presignature.issue_partial_signature(self.data)
        return Step(
            self._emit(
                self.PARTIAL_SIGN,
                self._handle_partials,
                broadcast=SigningRound4Message(sigma=self._partial.sigma),
            )
        )

    def _handle_partials(self, inbox: Inbox) -> Step:
        ec = self.ec
        raise_blame(
            collect_blame(
                inbox.broadcast,
                lambda j, m: not 0 <= m.sigma < ec.n,
                Reason.INVALID_MESSAGE,
                "partial signature out of range",
            )
        )

        self.tracer.stage("Combine")
        partials = [self._partial] + [
            PartialSignature(j, self._partial.r, m.sigma)
            for j, m in sorted(inbox.broadcast.items())
        ]
        signature: Signature = PartialSignature.combine(
            partials, self.key_share.public_key, self.data, ec
        )
        return self._finish(signature)
