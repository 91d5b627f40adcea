from dataclasses import replace
import json

import pytest

from tss_ecdsa.errors import InvalidShare
from tss_ecdsa.key_share import AuxInfo, KeyShare, validate


def variants(keygen_share, refreshed_share):
    chain_code = bytes(range(32))
    return [
        keygen_share,
        replace(keygen_share, chain_code=chain_code),
        refreshed_share,
        replace(refreshed_share, chain_code=chain_code),
    ]


def test_record_round_trip(keygen_shares, refreshed_shares):
    for share in variants(keygen_shares[1], refreshed_shares[1]):
        restored = KeyShare.from_json(share.to_json())
        assert restored == share
        assert restored.to_dict() == share.to_dict()


def test_record_carries_version(keygen_shares):
    assert keygen_shares[0].to_dict()["version"] == 1


@pytest.mark.parametrize("version", [0, 2, None, "1"])
def test_rejects_other_versions(keygen_shares, version):
    record = keygen_shares[0].to_dict()
    record["version"] = version
    with pytest.raises(InvalidShare):
        KeyShare.from_dict(record)


@pytest.mark.parametrize("field", ["public_key", "secret_share", "aux", "curve"])
def test_rejects_missing_fields(keygen_shares, field):
    record = keygen_shares[0].to_dict()
    del record[field]
    with pytest.raises(InvalidShare):
        KeyShare.from_dict(record)


def test_rejects_malformed_encodings(keygen_shares):
    record = keygen_shares[0].to_dict()
    record["public_key"] = "02" + "ff" * 32
    with pytest.raises(InvalidShare):
        KeyShare.from_dict(record)

    record = keygen_shares[0].to_dict()
    record["secret_share"] = str(record["secret_share"])
    with pytest.raises(InvalidShare):
        KeyShare.from_dict(record)

    with pytest.raises(InvalidShare):
        KeyShare.from_json("not json")


def test_deserialization_revalidates(keygen_shares):
    record = keygen_shares[0].to_dict()
    record["secret_share"] = (record["secret_share"] + 1) % keygen_shares[0].ec.n
    with pytest.raises(InvalidShare):
        KeyShare.from_json(json.dumps(record))


def test_validate_accepts_protocol_output(keygen_shares, refreshed_shares):
    for share in keygen_shares + refreshed_shares:
        assert validate(share) is share


def test_validate_rejects_broken_invariants(keygen_shares):
    share = keygen_shares[0]
    ec = share.ec
    broken = [
        replace(share, party_index=3),
        replace(share, threshold=3),
        replace(share, threshold=-1),
        replace(share, secret_share=ec.n),
        replace(share, public_key=ec.infinity()),
        replace(share, public_key=ec.G),
        replace(share, public_shares=share.public_shares[:2] + (ec.G,)),
        replace(share, public_shares=tuple(reversed(share.public_shares))),
        replace(share, chain_code=b"short"),
        replace(share, curve="secp256r1"),
    ]
    for b in broken:
        with pytest.raises(InvalidShare):
            validate(b)


def test_validate_rejects_bad_aux(refreshed_shares):
    share = refreshed_shares[0]
    aux = share.aux
    broken = [
        AuxInfo(p=aux.q, q=aux.q, parties=aux.parties),
        AuxInfo(p=aux.p, q=aux.q, parties=aux.parties[:2]),
        AuxInfo(p=aux.p, q=aux.q, parties=tuple(reversed(aux.parties))),
        AuxInfo(
            p=aux.p,
            q=aux.q,
            parties=(aux.parties[0], aux.parties[1], replace(aux.parties[2], s=aux.parties[2].t)),
        ),
    ]
    for b in broken:
        with pytest.raises(InvalidShare):
            validate(replace(share, aux=b))


def test_secret_share_is_not_in_repr(keygen_shares):
    share = keygen_shares[0]
    assert str(share.secret_share) not in repr(share)
