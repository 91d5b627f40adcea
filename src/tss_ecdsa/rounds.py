"""
Round-based state machine shared by keygen, refresh and signing.

A machine never performs I/O. The scheduler calls `start()` once, then feeds
each complete round batch to `proceed()`, and reports timeouts through
`round_incomplete()`. Every ProtocolError moves the machine into a terminal
aborted state.
"""

from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Type

from tss_crypto.common.ec import ECOperations
from tss_crypto.zkp.hash import sha512_256
from tss_ecdsa.blame import blame_missing, raise_blame
from tss_ecdsa.errors import (
    BlameRecord,
    InvalidArguments,
    ProtocolError,
    ProtocolStateError,
    Reason,
    UnattributedFailure,
)
from tss_ecdsa.messages import Msg, ProtocolMessage, ReliabilityCheckMessage
from tss_ecdsa.progress import Tracer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Round:
    """
    Shape of one message round.

    A round may carry a broadcast part, a point-to-point part, or both. When
    `echo` is set and reliable broadcast is enforced, the broadcast part is
    confirmed by an extra reliability round before it is processed.
    """

    name: str
    broadcast: Optional[Type[ProtocolMessage]] = None
    p2p: Optional[Type[ProtocolMessage]] = None
    echo: bool = False


RELIABILITY_CHECK = Round("Reliability check", broadcast=ReliabilityCheckMessage)


@dataclass
class Inbox:
    broadcast: Dict[int, ProtocolMessage] = field(default_factory=dict)
    p2p: Dict[int, ProtocolMessage] = field(default_factory=dict)


@dataclass
class Step:
    messages: List[Msg]
    output: Any = None


class State(Enum):
    INIT = "init"
    RUNNING = "running"
    FINISHED = "finished"
    ABORTED = "aborted"


Handler = Callable[[Inbox], Step]


class StateMachine:
    protocol = "protocol"

    def __init__(
        self,
        party_index: int,
        parties: Sequence[int],
        ec: ECOperations,
        execution_id: bytes,
        enforce_reliable_broadcast: bool = True,
        tracer: Optional[Tracer] = None,
    ):
        if not isinstance(execution_id, (bytes, bytearray)) or not execution_id:
            raise InvalidArguments(
                "execution_id must be a non-empty byte string unique to this run"
            )
        self.party_index = party_index
        self.parties = list(parties)
        self.peers = [j for j in self.parties if j != party_index]
        self.ec = ec
        self.execution_id = bytes(execution_id)
        self.enforce_reliable_broadcast = enforce_reliable_broadcast
        self.tracer = tracer or Tracer()

        self.state = State.INIT
        self.error: Optional[ProtocolError] = None

        self._wire_round = 0
        self._round: Optional[Round] = None
        self._handler: Optional[Handler] = None
        self._own_broadcast: Optional[ProtocolMessage] = None
        self._awaiting_echo = None

    # --- Scheduler interface ---

    def start(self) -> List[Msg]:
        """Returns the messages of the first round."""
        if self.state is not State.INIT:
            raise ProtocolStateError(f"{self.protocol} has already been started")
        self.state = State.RUNNING
        logger.debug("%s: party %d starts", self.protocol, self.party_index)
        self.tracer.protocol_begins()
        return self._guarded(self._start)

    def proceed(self, messages: Iterable[Msg]) -> Step:
        """Consumes one complete round batch."""
        self._require_running()
        self.tracer.receive_msgs()
        messages = list(messages)
        self.tracer.msgs_received()
        return self._guarded(lambda: self._proceed(messages))

    def round_incomplete(self, received_from: Optional[Iterable[int]] = None) -> None:
        """
        Timeout signal from the scheduler. Always aborts the machine.

        Raises:
            ProtocolAborted: naming the peers absent from `received_from`.
            UnattributedFailure: when the missing senders are unknown.
        """
        self._require_running()
        name = self._round.name

        def fail():
            if received_from is not None:
                raise_blame(
                    blame_missing(self.peers, received_from, f"no message in round '{name}'")
                )
            raise UnattributedFailure(Reason.LIVENESS, f"round '{name}' did not complete")

        self._guarded(fail)

    @property
    def current_round(self) -> int:
        return self._wire_round

    @property
    def is_finished(self) -> bool:
        return self.state is State.FINISHED

    @property
    def is_aborted(self) -> bool:
        return self.state is State.ABORTED

    # --- Hooks for concrete protocols ---

    def _start(self) -> List[Msg]:
        raise NotImplementedError

    def _erase(self) -> None:
        """Drops secret state once the machine has terminated."""

    # --- Helpers for concrete protocols ---

    def _emit(
        self,
        round: Round,
        handler: Optional[Handler],
        broadcast: Optional[ProtocolMessage] = None,
        p2p: Optional[Dict[int, ProtocolMessage]] = None,
    ) -> List[Msg]:
        """Sends this party's messages for `round` and waits for the peers'."""
        self._wire_round += 1
        self._round = round
        self._handler = handler
        self._own_broadcast = broadcast

        self.tracer.round_begins(round.name)
        logger.debug(
            "%s: party %d enters round %d (%s)",
            self.protocol,
            self.party_index,
            self._wire_round,
            round.name,
        )

        self.tracer.send_msg()
        out = []
        if broadcast is not None:
            out.append(Msg(self._wire_round, self.party_index, None, broadcast))
        for j in self.peers if p2p is not None else ():
            out.append(Msg(self._wire_round, self.party_index, j, p2p[j]))
        self.tracer.msg_sent()
        return out

    def _finish(self, output) -> Step:
        self.state = State.FINISHED
        self._erase()
        self.tracer.protocol_ends()
        logger.debug("%s: party %d finished", self.protocol, self.party_index)
        return Step([], output)

    # --- Internals ---

    def _require_running(self):
        if self.state is not State.RUNNING:
            raise ProtocolStateError(
                f"{self.protocol} state machine is {self.state.value}, not running"
            )

    def _guarded(self, fn):
        try:
            return fn()
        except ProtocolError as e:
            self.state = State.ABORTED
            self.error = e
            self._erase()
            logger.warning(
                "%s: party %d aborted in round %d: %s",
                self.protocol,
                self.party_index,
                self._wire_round,
                e,
            )
            raise
        except Exception:
            self.state = State.ABORTED
            self._erase()
            raise

    def _proceed(self, messages: List[Msg]) -> Step:
        inbox = self._route(messages)

        if self._awaiting_echo is not None:
            expected_digest, handler, original = self._awaiting_echo
            self._awaiting_echo = None
            self._check_echo(inbox, expected_digest)
            return handler(original)

        if self._round.echo and self.enforce_reliable_broadcast:
            digest = self._broadcast_digest(inbox)
            self._awaiting_echo = (digest, self._handler, inbox)
            msgs = self._emit(
                RELIABILITY_CHECK, None, broadcast=ReliabilityCheckMessage(digest=digest)
            )
            return Step(msgs)

        return self._handler(inbox)

    def _route(self, messages: List[Msg]) -> Inbox:
        """
        Sorts a batch into broadcast and p2p payloads per sender.

        Messages for another round are dropped. A payload of the wrong type,
        a p2p payload sent as broadcast, or two differing payloads from one
        sender are blamed on that sender.
        """
        round = self._round
        inbox = Inbox()
        blame: List[BlameRecord] = []

        for msg in messages:
            if msg.round != self._wire_round:
                logger.warning(
                    "%s: party %d drops message from %d for round %d (current round %d)",
                    self.protocol,
                    self.party_index,
                    msg.sender,
                    msg.round,
                    self._wire_round,
                )
                continue
            if msg.sender == self.party_index:
                continue
            if msg.sender not in self.peers:
                logger.warning(
                    "%s: party %d drops message from unknown sender %r",
                    self.protocol,
                    self.party_index,
                    msg.sender,
                )
                continue
            if msg.recipient is not None and msg.recipient != self.party_index:
                logger.warning(
                    "%s: party %d drops message addressed to %d",
                    self.protocol,
                    self.party_index,
                    msg.recipient,
                )
                continue

            expected = round.broadcast if msg.is_broadcast else round.p2p
            if (
                expected is None
                or type(msg.payload) is not expected
                or not msg.payload.is_well_formed()
            ):
                kind = "broadcast" if msg.is_broadcast else "p2p"
                blame.append(
                    BlameRecord(
                        msg.sender,
                        Reason.INVALID_MESSAGE,
                        f"unexpected {kind} {type(msg.payload).__name__} in round '{round.name}'",
                    )
                )
                continue

            box = inbox.broadcast if msg.is_broadcast else inbox.p2p
            if msg.sender in box:
                if box[msg.sender] == msg.payload:
                    continue
                blame.append(
                    BlameRecord(
                        msg.sender,
                        Reason.INVALID_MESSAGE,
                        f"conflicting messages in round '{round.name}'",
                    )
                )
                continue
            box[msg.sender] = msg.payload

        raise_blame(blame)

        complete = [
            j
            for j in self.peers
            if (round.broadcast is None or j in inbox.broadcast)
            and (round.p2p is None or j in inbox.p2p)
        ]
        raise_blame(blame_missing(self.peers, complete, f"no message in round '{round.name}'"))
        return inbox

    def _broadcast_digest(self, inbox: Inbox) -> bytes:
        received = dict(inbox.broadcast)
        received[self.party_index] = self._own_broadcast
        return sha512_256(
            self.protocol.encode(),
            str(self._wire_round).encode(),
            *[
                f"{j}:{received[j].to_json()}".encode()
                for j in sorted(received)
            ],
        )

    def _check_echo(self, inbox: Inbox, expected: bytes) -> None:
        suspects = [
            j for j, m in sorted(inbox.broadcast.items()) if m.digest != expected
        ]
        if suspects:
            raise UnattributedFailure(
                Reason.BROADCAST_INCONSISTENT,
                f"parties {suspects} saw different broadcasts",
                suspects=suspects,
            )
