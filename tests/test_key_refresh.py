from dataclasses import replace
from itertools import combinations

import pytest

from tss_crypto.common.commitment import commit
from tss_ecdsa.config import DEVELOPMENT, REASONABLY_SECURE
from tss_ecdsa.errors import InvalidArguments, InvalidShare, ProtocolAborted, Reason
from tss_ecdsa.key_refresh import KeyRefresh, ring_pedersen_parameters
from tss_ecdsa.key_share import validate
from tss_ecdsa.messages import AuxRound1Message, AuxRound3Message
from tss_ecdsa.polynomial import interpolate_at_zero, party_point

from helpers import (
    THRESHOLD,
    bump_part,
    keygen_machines,
    outputs,
    refresh_machines,
    run_protocol,
    tampering,
)


def test_public_key_is_preserved(keygen_shares, refreshed_shares):
    for old, new in zip(keygen_shares, refreshed_shares):
        assert new.public_key == old.public_key
        assert new.party_index == old.party_index
        assert new.threshold == old.threshold


def test_shares_are_rerandomized(keygen_shares, refreshed_shares):
    for old, new in zip(keygen_shares, refreshed_shares):
        assert new.secret_share != old.secret_share
        assert new.public_shares != old.public_shares


def test_refreshed_shares_still_reconstruct(refreshed_shares):
    ec = refreshed_shares[0].ec
    for subset in combinations(refreshed_shares, THRESHOLD + 1):
        secret = interpolate_at_zero(
            ec.n, {party_point(s.party_index): s.secret_share for s in subset}
        )
        assert ec.scalar_mult(secret) == refreshed_shares[0].public_key


def test_aux_info_is_consistent(refreshed_shares, blum_primes):
    parties = refreshed_shares[0].aux.parties
    for i, s in enumerate(refreshed_shares):
        assert s.aux.parties == parties
        p, q = blum_primes[i]
        assert s.aux.parties[i].N == p * q
        validate(s, DEVELOPMENT)


def test_aux_info_below_security_level_is_rejected(refreshed_shares):
    with pytest.raises(InvalidShare):
        validate(refreshed_shares[0], REASONABLY_SECURE)


def test_threshold_zero_only_rotates_aux(blum_primes):
    shares = outputs(run_protocol(keygen_machines(n=2, t=0, execution_id=b"t0")))
    refreshed = outputs(run_protocol(refresh_machines(shares, blum_primes, b"t0-refresh")))
    for old, new in zip(shares, refreshed):
        assert new.secret_share == old.secret_share
        assert new.public_key == old.public_key
        assert new.aux is not None


def test_forged_modulus_proof_is_blamed(keygen_shares, blum_primes):
    def forge(m):
        mod = list(m.mod)
        # Swap two fourth roots.
        mod[1], mod[2] = mod[2], mod[1]
        return AuxRound3Message(mod=mod, fac=m.fac, share=m.share)

    outcomes = run_protocol(
        refresh_machines(keygen_shares, blum_primes, b"bad-mod"),
        tamper=tampering(1, AuxRound3Message, forge),
    )
    for i in (0, 2):
        error = outcomes[i].error
        assert isinstance(error, ProtocolAborted)
        assert error.reason is Reason.PROOF_VERIFICATION_FAILED
        assert error.accused == [1]


class CommitsToBadRingPedersenProof(KeyRefresh):
    def _start(self):
        msgs = super()._start()
        # Corrupt the first response and commit to the corrupted proof.
        self._reveal.prm = bump_part(self._reveal.prm, len(self._reveal.prm) // 2)
        V, self._reveal.u = commit(self._tag, *self._commit_values(self.party_index, self._reveal))
        self._own_broadcast = AuxRound1Message(V=V)
        return [replace(m, payload=self._own_broadcast) for m in msgs]


def test_forged_ring_pedersen_proof_is_blamed(keygen_shares, blum_primes):
    machines = refresh_machines(keygen_shares, blum_primes, b"bad-prm")
    machines[1] = CommitsToBadRingPedersenProof(
        keygen_shares[1], b"bad-prm", DEVELOPMENT, primes=blum_primes[1]
    )
    outcomes = run_protocol(machines)
    for i in (0, 2):
        error = outcomes[i].error
        assert isinstance(error, ProtocolAborted)
        assert error.reason is Reason.PROOF_VERIFICATION_FAILED
        assert error.accused == [1]


def test_forged_no_small_factor_proof_is_blamed(keygen_shares, blum_primes):
    outcomes = run_protocol(
        refresh_machines(keygen_shares, blum_primes, b"bad-fac"),
        tamper=tampering(
            1,
            AuxRound3Message,
            lambda m: AuxRound3Message(mod=m.mod, fac=bump_part(m.fac, 0), share=m.share),
        ),
    )
    for i in (0, 2):
        error = outcomes[i].error
        assert isinstance(error, ProtocolAborted)
        assert error.reason is Reason.PROOF_VERIFICATION_FAILED
        assert error.accused == [1]


def test_inconsistent_zero_share_is_blamed(keygen_shares, blum_primes):
    n = keygen_shares[0].ec.n
    outcomes = run_protocol(
        refresh_machines(keygen_shares, blum_primes, b"bad-zero"),
        tamper=tampering(
            2,
            AuxRound3Message,
            lambda m: AuxRound3Message(mod=m.mod, fac=m.fac, share=(m.share + 1) % n),
            recipient=0,
        ),
    )
    error = outcomes[0].error
    assert isinstance(error, ProtocolAborted)
    assert error.reason is Reason.SHARE_INCONSISTENT
    assert error.accused == [2]


def test_rejects_small_primes(keygen_shares):
    with pytest.raises(InvalidArguments):
        KeyRefresh(keygen_shares[0], b"small-primes", DEVELOPMENT, primes=(1019, 1031))


def test_rejects_invalid_share(keygen_shares):
    broken = replace(keygen_shares[0], secret_share=keygen_shares[0].secret_share ^ 1)
    with pytest.raises(InvalidShare):
        KeyRefresh(broken, b"broken", DEVELOPMENT)


def test_ring_pedersen_parameters(blum_primes):
    p, q = blum_primes[0]
    N, phi = p * q, (p - 1) * (q - 1)
    s, t, lam = ring_pedersen_parameters(N, phi)
    assert pow(t, lam, N) == s
    assert 1 < s < N and 1 < t < N and s != t
