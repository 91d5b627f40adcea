"""
In-process message scheduler.

Runs one state machine per party in lockstep: every message produced in a
step is delivered in the next one. Messages can be dropped, tampered with or
pushed through their JSON encoding on the way.
"""

from dataclasses import dataclass
import logging
import sys
from typing import Any, Callable, Dict, List, Optional

from tss_ecdsa.errors import ProtocolError
from tss_ecdsa.messages import Msg
from tss_ecdsa.rounds import StateMachine

logger = logging.getLogger(__name__)


@dataclass
class PartyOutcome:
    output: Any = None
    error: Optional[ProtocolError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Simulation:
    def __init__(
        self,
        machines: Dict[int, StateMachine],
        tamper: Optional[Callable[[Msg], Msg]] = None,
        drop: Optional[Callable[[Msg], bool]] = None,
        json_roundtrip: bool = False,
    ):
        if not machines:
            raise ValueError("Simulation needs at least one party")
        self.machines = machines
        self.tamper = tamper
        self.drop = drop
        self.json_roundtrip = json_roundtrip
        self.steps = 0

    def _transmit(self, msgs: List[Msg]) -> List[Msg]:
        delivered = []
        for msg in msgs:
            if self.drop is not None and self.drop(msg):
                logger.debug("dropping round %d message from %d", msg.round, msg.sender)
                continue
            if self.tamper is not None:
                msg = self.tamper(msg)
            if self.json_roundtrip:
                ec = self.machines[msg.sender].ec
                msg = Msg.from_json(msg.to_json(), ec)
            delivered.append(msg)
        return delivered

    def run(self) -> Dict[int, PartyOutcome]:
        """
        Drives every machine to completion.

        A party that misses a message from any peer is told so through
        `round_incomplete`. Protocol errors are captured per party; any other
        exception propagates.
        """
        outcomes: Dict[int, PartyOutcome] = {}
        in_flight: List[Msg] = []

        for i, machine in self.machines.items():
            try:
                in_flight += machine.start()
            except ProtocolError as e:
                outcomes[i] = PartyOutcome(error=e)

        while len(outcomes) < len(self.machines):
            self.steps += 1
            batch = self._transmit(in_flight)
            in_flight = []

            for i, machine in self.machines.items():
                if i in outcomes:
                    continue
                inbox = [
                    m
                    for m in batch
                    if m.sender != i and (m.recipient is None or m.recipient == i)
                ]
                heard_from = {m.sender for m in inbox if m.round == machine.current_round}
                try:
                    if not set(machine.peers) <= heard_from:
                        machine.round_incomplete(heard_from)
                    step = machine.proceed(inbox)
                except ProtocolError as e:
                    outcomes[i] = PartyOutcome(error=e)
                    continue
                in_flight += step.messages
                if machine.is_finished:
                    outcomes[i] = PartyOutcome(output=step.output)

        return outcomes


def report_signature(signature, public_key, data) -> int:
    """Prints `signature` if it verifies and returns the process exit status."""
    if signature is None or not signature.verify(public_key, data):
        print("Signature verification failed.")
        return 1
    print(f"Signature: {signature.to_bytes().hex()}")
    return 0


def main():
    """Runs keygen, refresh and signing for three parties with threshold one."""
    from tss_ecdsa.config import DEVELOPMENT
    from tss_ecdsa.key_refresh import KeyRefresh
    from tss_ecdsa.keygen import Keygen
    from tss_ecdsa.progress import PerfProfiler
    from tss_ecdsa.signature import DataToSign
    from tss_ecdsa.signing import Signing

    logging.basicConfig(level=logging.INFO)
    n, t = 3, 1

    print("--- Keygen ---")
    outcomes = Simulation(
        {i: Keygen(i, n, t, b"demo-keygen", DEVELOPMENT) for i in range(n)}
    ).run()
    shares = {i: o.output for i, o in outcomes.items()}
    print(f"Public key: {shares[0].public_key}")

    print("--- Key refresh ---")
    outcomes = Simulation(
        {i: KeyRefresh(shares[i], b"demo-refresh", DEVELOPMENT) for i in range(n)}
    ).run()
    shares = {i: o.output for i, o in outcomes.items()}
    print("Auxiliary info generated and shares refreshed.")

    print("--- Signing ---")
    message = b"Never gonna give you up, never gonna let you down"
    data = DataToSign.digest(message)
    signers = [0, 2]
    profiler = PerfProfiler()
    machines = {
        i: Signing(shares[i], signers, data, b"demo-sign", tracer=profiler if i == 0 else None)
        for i in signers
    }
    outcomes = Simulation(machines, json_roundtrip=True).run()
    status = report_signature(outcomes[0].output, shares[0].public_key, data)
    if status == 0:
        print(profiler.get_report())
    return status


if __name__ == "__main__":
    sys.exit(main())
