from dataclasses import replace

from tss_crypto.common.utils import bytes_to_int, int_to_bytes
from tss_ecdsa.config import DEVELOPMENT
from tss_ecdsa.key_refresh import KeyRefresh
from tss_ecdsa.keygen import Keygen
from tss_ecdsa.simulation import Simulation

N_PARTIES = 3
THRESHOLD = 1


def run_protocol(machines, **kwargs):
    return Simulation(machines, **kwargs).run()


def outputs(outcomes):
    for i, outcome in outcomes.items():
        assert outcome.ok, f"party {i} failed: {outcome.error!r}"
    return [outcomes[i].output for i in sorted(outcomes)]


def keygen_machines(n=N_PARTIES, t=THRESHOLD, execution_id=b"keygen", **kwargs):
    return {
        i: Keygen(i, n, t, execution_id, DEVELOPMENT, **kwargs) for i in range(n)
    }


def refresh_machines(shares, primes, execution_id=b"refresh", **kwargs):
    return {
        s.party_index: KeyRefresh(
            s, execution_id, DEVELOPMENT, primes=primes[s.party_index], **kwargs
        )
        for s in shares
    }


def tampering(sender, payload_type, mutate, recipient=None):
    """Builds a tamper hook that rewrites one kind of payload from one sender."""

    def tamper(msg):
        if (
            msg.sender == sender
            and isinstance(msg.payload, payload_type)
            and (recipient is None or msg.recipient == recipient)
        ):
            return replace(msg, payload=mutate(msg.payload))
        return msg

    return tamper


def bump_part(parts, index):
    """Adds one to the integer encoded in `parts[index]`."""
    parts = list(parts)
    parts[index] = int_to_bytes(bytes_to_int(parts[index]) + 1)
    return parts
