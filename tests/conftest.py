import pytest

from tss_crypto.common.paillier import generate_key_pair
from tss_ecdsa.config import DEVELOPMENT

from helpers import N_PARTIES, outputs, refresh_machines, keygen_machines, run_protocol


@pytest.fixture(scope="session")
def blum_primes():
    """One pair of Paillier-Blum primes per party, shared by every refresh in the run."""
    pairs = []
    for _ in range(N_PARTIES):
        _, _, p, q = generate_key_pair(DEVELOPMENT.paillier_bits)
        pairs.append((p, q))
    return pairs


@pytest.fixture(scope="session")
def keygen_shares():
    return outputs(run_protocol(keygen_machines()))


@pytest.fixture(scope="session")
def refreshed_shares(keygen_shares, blum_primes):
    return outputs(run_protocol(refresh_machines(keygen_shares, blum_primes)))
