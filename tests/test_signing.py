from dataclasses import replace
import hashlib

import pytest
from ecdsa import SECP256k1, VerifyingKey

from tss_crypto.common.paillier import generate_key_pair
from tss_crypto.common.utils import bytes_to_int, int_to_bytes
from tss_ecdsa.config import DEVELOPMENT
from tss_ecdsa.errors import (
    InvalidArguments,
    InvalidShare,
    PresignatureConsumed,
    ProtocolAborted,
    Reason,
    UnattributedFailure,
)
from tss_ecdsa.messages import (
    PresigningRound1bMessage,
    PresigningRound2Message,
    PresigningRound3Message,
    SigningRound4Message,
)
from tss_ecdsa.presigning import Presigning
from tss_ecdsa.signature import DataToSign, PartialSignature, Signature
from tss_ecdsa.simulation import report_signature
from tss_ecdsa.signing import Signing

from helpers import (
    bump_part,
    keygen_machines,
    outputs,
    refresh_machines,
    run_protocol,
    tampering,
)

MESSAGE = b"Never gonna give you up, never gonna let you down"


def sign(shares, signers, data, execution_id, **kwargs):
    machines = {i: Signing(shares[i], signers, data, execution_id) for i in signers}
    return run_protocol(machines, **kwargs)


def assert_valid_ecdsa(public_key, signature, data):
    vk = VerifyingKey.from_string(public_key.to_bytes(), curve=SECP256k1)
    assert vk.verify_digest(signature.to_bytes(), data.value)


@pytest.mark.parametrize("signers", [[0, 1], [1, 2], [0, 2]])
def test_signers_produce_valid_signature(refreshed_shares, signers):
    data = DataToSign.digest(MESSAGE)
    signatures = outputs(sign(refreshed_shares, signers, data, b"sign-%d%d" % tuple(signers)))
    assert all(sig == signatures[0] for sig in signatures)
    public_key = refreshed_shares[0].public_key
    assert signatures[0].verify(public_key, data)
    assert_valid_ecdsa(public_key, signatures[0], data)


@pytest.fixture(scope="module")
def four_party_shares(blum_primes):
    _, _, p, q = generate_key_pair(DEVELOPMENT.paillier_bits)
    primes = list(blum_primes) + [(p, q)]
    shares = outputs(run_protocol(keygen_machines(n=4, t=2, execution_id=b"keygen-4of2")))
    return outputs(run_protocol(refresh_machines(shares, primes, b"refresh-4of2")))


@pytest.mark.parametrize("signers", [[0, 1, 3], [1, 2, 3]])
def test_three_of_four_signers(four_party_shares, signers):
    data = DataToSign.digest(MESSAGE)
    execution_id = b"sign-4of2-" + bytes(signers)
    signatures = outputs(sign(four_party_shares, signers, data, execution_id))
    assert all(sig == signatures[0] for sig in signatures)
    assert_valid_ecdsa(four_party_shares[0].public_key, signatures[0], data)


def test_signature_is_low_s(refreshed_shares):
    data = DataToSign.digest(MESSAGE)
    signature = outputs(sign(refreshed_shares, [0, 1], data, b"low-s"))[0]
    assert signature.s <= refreshed_shares[0].ec.n // 2


def test_signatures_use_fresh_nonces(refreshed_shares):
    data = DataToSign.digest(MESSAGE)
    first = outputs(sign(refreshed_shares, [0, 1], data, b"nonce-a"))[0]
    second = outputs(sign(refreshed_shares, [1, 2], data, b"nonce-b"))[0]
    assert first.r != second.r
    assert first != second


def test_signature_does_not_verify_other_message(refreshed_shares):
    data = DataToSign.digest(MESSAGE)
    signature = outputs(sign(refreshed_shares, [0, 2], data, b"other"))[0]
    assert not signature.verify(refreshed_shares[0].public_key, DataToSign.digest(b"other"))


def test_signing_through_json(refreshed_shares):
    data = DataToSign.digest(MESSAGE)
    signature = outputs(sign(refreshed_shares, [0, 1], data, b"json", json_roundtrip=True))[0]
    assert_valid_ecdsa(refreshed_shares[0].public_key, signature, data)


def test_presignature_offline_flow(refreshed_shares):
    signers = [0, 2]
    presignatures = outputs(
        run_protocol(
            {i: Presigning(refreshed_shares[i], signers, b"presign") for i in signers}
        )
    )
    assert presignatures[0].R == presignatures[1].R

    data = DataToSign.from_digest(hashlib.sha256(MESSAGE).digest())
    partials = [p.issue_partial_signature(data) for p in presignatures]
    public_key = refreshed_shares[0].public_key
    signature = PartialSignature.combine(partials, public_key, data)
    assert_valid_ecdsa(public_key, signature, data)

    for p in presignatures:
        assert p.is_consumed
        with pytest.raises(PresignatureConsumed):
            p.issue_partial_signature(data)


def test_combine_rejects_bad_partial(refreshed_shares):
    signers = [1, 2]
    presignatures = outputs(
        run_protocol(
            {i: Presigning(refreshed_shares[i], signers, b"presign-bad") for i in signers}
        )
    )
    data = DataToSign.digest(MESSAGE)
    good, bad = [p.issue_partial_signature(data) for p in presignatures]
    bad = PartialSignature(bad.party_index, bad.r, (bad.sigma + 1) % refreshed_shares[0].ec.n)
    with pytest.raises(UnattributedFailure) as excinfo:
        PartialSignature.combine([good, bad], refreshed_shares[0].public_key, data)
    assert excinfo.value.reason is Reason.SIGNATURE_VERIFICATION_FAILED


def test_tampered_partial_signature_is_unattributed(refreshed_shares):
    n = refreshed_shares[0].ec.n
    data = DataToSign.digest(MESSAGE)
    outcomes = sign(
        refreshed_shares,
        [0, 1],
        data,
        b"bad-sigma",
        tamper=tampering(
            1, SigningRound4Message, lambda m: SigningRound4Message(sigma=(m.sigma + 1) % n)
        ),
    )
    error = outcomes[0].error
    assert isinstance(error, UnattributedFailure)
    assert error.reason is Reason.SIGNATURE_VERIFICATION_FAILED


def test_forged_encryption_proof_is_blamed(refreshed_shares):
    def forge(m):
        parts = list(m.proofenc)
        parts[-1] = int_to_bytes(bytes_to_int(parts[-1]) + 1)
        return PresigningRound1bMessage(proofenc=parts)

    outcomes = sign(
        refreshed_shares,
        [0, 1],
        DataToSign.digest(MESSAGE),
        b"bad-enc",
        tamper=tampering(1, PresigningRound1bMessage, forge),
    )
    error = outcomes[0].error
    assert isinstance(error, ProtocolAborted)
    assert error.reason is Reason.PROOF_VERIFICATION_FAILED
    assert error.accused == [1]


@pytest.mark.parametrize(
    "field", ["psi_affg_gamma", "psi_affg_xi", "psi_logstar_gamma"]
)
def test_forged_mta_proof_is_blamed(refreshed_shares, field):
    tamper = tampering(
        1,
        PresigningRound2Message,
        lambda m: replace(m, **{field: bump_part(getattr(m, field), 0)}),
        recipient=0,
    )
    outcomes = run_protocol(
        {i: Presigning(refreshed_shares[i], [0, 1], b"bad-" + field.encode()) for i in (0, 1)},
        tamper=tamper,
    )
    error = outcomes[0].error
    assert isinstance(error, ProtocolAborted)
    assert error.reason is Reason.PROOF_VERIFICATION_FAILED
    assert error.accused == [1]


def test_wrong_delta_is_presignature_inconsistent(refreshed_shares):
    n = refreshed_shares[0].ec.n
    tamper = tampering(
        2,
        PresigningRound3Message,
        lambda m: PresigningRound3Message(delta=(m.delta + 1) % n, Delta=m.Delta, psi=m.psi),
    )
    outcomes = run_protocol(
        {i: Presigning(refreshed_shares[i], [0, 2], b"bad-delta") for i in (0, 2)},
        tamper=tamper,
    )
    error = outcomes[0].error
    assert isinstance(error, UnattributedFailure)
    assert error.reason is Reason.PRESIGNATURE_INCONSISTENT


def test_forged_delta_proof_is_blamed(refreshed_shares):
    ec = refreshed_shares[0].ec
    tamper = tampering(
        2,
        PresigningRound3Message,
        lambda m: PresigningRound3Message(
            delta=m.delta, Delta=ec.point_add(m.Delta, ec.G), psi=m.psi
        ),
    )
    outcomes = run_protocol(
        {i: Presigning(refreshed_shares[i], [0, 2], b"bad-Delta") for i in (0, 2)},
        tamper=tamper,
    )
    error = outcomes[0].error
    assert isinstance(error, ProtocolAborted)
    assert error.reason is Reason.PROOF_VERIFICATION_FAILED
    assert error.accused == [2]


@pytest.mark.parametrize("signers", [[0], [0, 0], [0, 1, 2], [1, 2], [0, 5]])
def test_rejects_bad_signer_sets(refreshed_shares, signers):
    with pytest.raises(InvalidArguments):
        Signing(refreshed_shares[0], signers, DataToSign.digest(MESSAGE), b"signers")


def test_requires_aux_info(keygen_shares):
    with pytest.raises(InvalidShare):
        Signing(keygen_shares[0], [0, 1], DataToSign.digest(MESSAGE), b"no-aux")


def test_requires_data_to_sign(refreshed_shares):
    with pytest.raises(InvalidArguments):
        Signing(refreshed_shares[0], [0, 1], MESSAGE, b"raw")


def test_data_to_sign_truncates_long_digests(refreshed_shares):
    ec = refreshed_shares[0].ec
    digest = hashlib.sha512(MESSAGE).digest()
    data = DataToSign.from_digest(digest)
    assert data.to_scalar(ec) == int.from_bytes(digest[:32], "big") % ec.n


def test_signature_encoding():
    signature = Signature(r=5, s=7)
    encoded = signature.to_bytes()
    assert len(encoded) == 64
    assert Signature.from_bytes(encoded) == signature
    with pytest.raises(ValueError):
        Signature.from_bytes(b"\x01\x02\x03")


@pytest.mark.parametrize("execution_id", [b"", "presign", None])
def test_rejects_missing_execution_id(refreshed_shares, execution_id):
    with pytest.raises(InvalidArguments):
        Presigning(refreshed_shares[0], [0, 1], execution_id)
    with pytest.raises(InvalidArguments):
        Signing(refreshed_shares[0], [0, 1], DataToSign.digest(MESSAGE), execution_id)


def test_demo_reports_signature_status(refreshed_shares, capsys):
    data = DataToSign.digest(MESSAGE)
    public_key = refreshed_shares[0].public_key
    assert report_signature(Signature(r=1, s=1), public_key, data) == 1
    assert report_signature(None, public_key, data) == 1
    assert capsys.readouterr().out.count("verification failed") == 2

    signature = outputs(sign(refreshed_shares, [0, 1], data, b"demo-status"))[0]
    assert report_signature(signature, public_key, data) == 0
    assert signature.to_bytes().hex() in capsys.readouterr().out
