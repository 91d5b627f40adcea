from itertools import combinations

import pytest

from tss_crypto.common.utils import int_to_bytes
from tss_ecdsa.errors import InvalidArguments, ProtocolAborted, Reason, UnattributedFailure
from tss_ecdsa.messages import (
    KeygenRound1Message,
    KeygenRound2Message,
    KeygenRound3Message,
    ReliabilityCheckMessage,
)
from tss_ecdsa.config import DEVELOPMENT
from tss_ecdsa.keygen import Keygen
from tss_ecdsa.polynomial import interpolate_at_zero, party_point

from helpers import THRESHOLD, keygen_machines, outputs, run_protocol, tampering


def test_parties_agree_on_public_key(keygen_shares):
    public_key = keygen_shares[0].public_key
    assert all(s.public_key == public_key for s in keygen_shares)
    assert all(s.public_shares == keygen_shares[0].public_shares for s in keygen_shares)
    assert all(s.aux is None and s.chain_code is None for s in keygen_shares)


def test_any_threshold_plus_one_shares_reconstruct_the_key(keygen_shares):
    ec = keygen_shares[0].ec
    for subset in combinations(keygen_shares, THRESHOLD + 1):
        secret = interpolate_at_zero(
            ec.n, {party_point(s.party_index): s.secret_share for s in subset}
        )
        assert ec.scalar_mult(secret) == keygen_shares[0].public_key


@pytest.mark.parametrize("n, threshold", [(1, 0), (4, 2), (5, 1), (5, 4)])
def test_keygen_for_other_parameters(n, threshold):
    shares = outputs(
        run_protocol(keygen_machines(n=n, t=threshold, execution_id=b"keygen-%d-%d" % (n, threshold)))
    )
    ec = shares[0].ec
    public_key = shares[0].public_key
    assert all(s.public_key == public_key for s in shares)
    assert all(s.public_shares == shares[0].public_shares for s in shares)
    for subset in combinations(shares, threshold + 1):
        secret = interpolate_at_zero(
            ec.n, {party_point(s.party_index): s.secret_share for s in subset}
        )
        assert ec.scalar_mult(secret) == public_key


def test_own_public_share_matches_secret_share(keygen_shares):
    for s in keygen_shares:
        assert s.ec.scalar_mult(s.secret_share) == s.public_shares[s.party_index]


def test_hd_wallet_chain_code_is_shared():
    shares = outputs(run_protocol(keygen_machines(execution_id=b"hd", hd_wallet=True)))
    assert len(shares[0].chain_code) == 32
    assert all(s.chain_code == shares[0].chain_code for s in shares)


def test_keygen_on_p256():
    shares = outputs(
        run_protocol(keygen_machines(n=2, t=1, execution_id=b"p256", curve="secp256r1"))
    )
    assert shares[0].curve == "secp256r1"
    assert shares[0].public_key == shares[1].public_key


def test_threshold_zero():
    shares = outputs(run_protocol(keygen_machines(n=2, t=0, execution_id=b"t0")))
    for s in shares:
        assert s.ec.scalar_mult(s.secret_share) == s.public_key


def test_without_reliable_broadcast():
    shares = outputs(
        run_protocol(keygen_machines(execution_id=b"no-echo", enforce_reliable_broadcast=False))
    )
    assert shares[0].public_key == shares[2].public_key


def test_messages_survive_json():
    shares = outputs(run_protocol(keygen_machines(execution_id=b"json"), json_roundtrip=True))
    assert shares[0].public_key == shares[1].public_key


@pytest.mark.parametrize(
    "party_index, n, threshold",
    [(0, 3, 3), (0, 3, -1), (3, 3, 1), (-1, 3, 1)],
)
def test_rejects_bad_parameters(party_index, n, threshold):
    with pytest.raises(InvalidArguments):
        Keygen(party_index, n, threshold, b"params", DEVELOPMENT)


@pytest.mark.parametrize("execution_id", [b"", bytearray(), "keygen", None])
def test_rejects_missing_execution_id(execution_id):
    with pytest.raises(InvalidArguments):
        Keygen(0, 3, 1, execution_id, DEVELOPMENT)


def test_execution_id_is_required():
    with pytest.raises(TypeError):
        Keygen(0, 3, 1)


def test_rejects_unknown_curve():
    with pytest.raises(InvalidArguments):
        Keygen(0, 3, 1, b"curve", DEVELOPMENT, curve="curve25519")


def test_commitment_mismatch_is_blamed():
    tamper = tampering(
        1, KeygenRound2Message, lambda m: KeygenRound2Message(
            rid=bytes(b ^ 1 for b in m.rid), F=m.F, A=m.A, chain_code=m.chain_code, u=m.u
        )
    )
    outcomes = run_protocol(keygen_machines(execution_id=b"bad-commit"), tamper=tamper)
    for i in (0, 2):
        error = outcomes[i].error
        assert isinstance(error, ProtocolAborted)
        assert error.reason is Reason.COMMITMENT_MISMATCH
        assert error.accused == [1]


def test_corrupted_commitment_is_blamed():
    tamper = tampering(1, KeygenRound1Message, lambda m: KeygenRound1Message(V=m.V ^ 1))
    outcomes = run_protocol(
        keygen_machines(execution_id=b"bad-V", enforce_reliable_broadcast=False), tamper=tamper
    )
    for i in (0, 2):
        error = outcomes[i].error
        assert isinstance(error, ProtocolAborted)
        assert error.reason is Reason.COMMITMENT_MISMATCH
        assert error.accused == [1]


def test_commitment_seen_differently_by_peers_is_unattributed():
    tamper = tampering(
        1, KeygenRound1Message, lambda m: KeygenRound1Message(V=m.V ^ 1), recipient=0
    )
    outcomes = run_protocol(keygen_machines(execution_id=b"split-V"), tamper=tamper)
    for i in (0, 2):
        error = outcomes[i].error
        assert isinstance(error, UnattributedFailure)
        assert error.reason is Reason.BROADCAST_INCONSISTENT


def test_malformed_decommitment_is_blamed():
    tamper = tampering(
        2, KeygenRound2Message, lambda m: KeygenRound2Message(
            rid=m.rid, F=m.F[:-1], A=m.A, chain_code=m.chain_code, u=m.u
        )
    )
    outcomes = run_protocol(keygen_machines(execution_id=b"short-F"), tamper=tamper)
    for i in (0, 1):
        assert outcomes[i].error.reason is Reason.INVALID_MESSAGE
        assert outcomes[i].error.accused == [2]


def test_forged_schnorr_proof_is_blamed():
    n = keygen_machines(execution_id=b"x")[0].ec.n

    def forge(m):
        A, z = m.sch
        z = (int.from_bytes(z, "big") + 1) % n
        return KeygenRound3Message(share=m.share, sch=[A, int_to_bytes(z)])

    tamper = tampering(2, KeygenRound3Message, forge)
    outcomes = run_protocol(keygen_machines(execution_id=b"bad-sch"), tamper=tamper)
    for i in (0, 1):
        error = outcomes[i].error
        assert isinstance(error, ProtocolAborted)
        assert error.reason is Reason.PROOF_VERIFICATION_FAILED
        assert error.accused == [2]


def test_inconsistent_share_is_blamed():
    n = keygen_machines(execution_id=b"x")[0].ec.n
    tamper = tampering(
        0,
        KeygenRound3Message,
        lambda m: KeygenRound3Message(share=(m.share + 1) % n, sch=m.sch),
        recipient=1,
    )
    outcomes = run_protocol(keygen_machines(execution_id=b"bad-share"), tamper=tamper)
    error = outcomes[1].error
    assert isinstance(error, ProtocolAborted)
    assert error.reason is Reason.SHARE_INCONSISTENT
    assert error.accused == [0]
    # The other recipient got an honest share.
    assert outcomes[2].ok


def test_missing_party_is_blamed_for_timeout():
    outcomes = run_protocol(
        keygen_machines(execution_id=b"timeout"),
        drop=lambda msg: msg.sender == 2 and msg.round == 1,
    )
    for i in (0, 1):
        error = outcomes[i].error
        assert isinstance(error, ProtocolAborted)
        assert error.reason is Reason.ROUND_TIMEOUT
        assert error.accused == [2]


def test_echo_mismatch_is_unattributed():
    tamper = tampering(
        1, ReliabilityCheckMessage, lambda m: ReliabilityCheckMessage(digest=bytes(32))
    )
    outcomes = run_protocol(keygen_machines(execution_id=b"echo"), tamper=tamper)
    for i in (0, 2):
        error = outcomes[i].error
        assert isinstance(error, UnattributedFailure)
        assert error.reason is Reason.BROADCAST_INCONSISTENT
        assert error.suspects == [1]


def test_commitments_differ_per_execution():
    a = keygen_machines(execution_id=b"a")[0].start()
    b = keygen_machines(execution_id=b"b")[0].start()
    assert isinstance(a[0].payload, KeygenRound1Message)
    assert a[0].payload.V != b[0].payload.V
    assert len(a) == 1 and a[0].is_broadcast
