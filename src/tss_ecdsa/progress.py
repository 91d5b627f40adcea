"""
Progress tracing for protocol execution.

State machines report events to a Tracer. The base Tracer ignores them;
PerfProfiler turns them into a per-round timing report.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional
import time


class Event(Enum):
    PROTOCOL_BEGINS = "protocol_begins"
    ROUND_BEGINS = "round_begins"
    STAGE = "stage"
    RECEIVE_MSGS = "receive_msgs"
    MSGS_RECEIVED = "msgs_received"
    SEND_MSG = "send_msg"
    MSG_SENT = "msg_sent"
    PROTOCOL_ENDS = "protocol_ends"


class Tracer:
    """No-op tracer. Subclasses override `trace_event`."""

    def trace_event(self, event: Event, name: Optional[str] = None) -> None:
        pass

    def protocol_begins(self):
        self.trace_event(Event.PROTOCOL_BEGINS)

    def round_begins(self, name: Optional[str] = None):
        self.trace_event(Event.ROUND_BEGINS, name)

    def stage(self, name: str):
        self.trace_event(Event.STAGE, name)

    def receive_msgs(self):
        self.trace_event(Event.RECEIVE_MSGS)

    def msgs_received(self):
        self.trace_event(Event.MSGS_RECEIVED)

    def send_msg(self):
        self.trace_event(Event.SEND_MSG)

    def msg_sent(self):
        self.trace_event(Event.MSG_SENT)

    def protocol_ends(self):
        self.trace_event(Event.PROTOCOL_ENDS)


class ProfileError(Exception):
    """The traced protocol emitted events in an unexpected order."""


@dataclass
class StageDuration:
    name: str
    duration: float = 0.0


@dataclass
class RoundDuration:
    round_name: Optional[str]
    stages: List[StageDuration] = field(default_factory=list)
    computation: float = 0.0
    sending: float = 0.0
    receiving: float = 0.0

    @property
    def total(self) -> float:
        return self.computation + self.sending + self.receiving


@dataclass
class PerfReport:
    """Durations in seconds."""

    setup: float = 0.0
    setup_stages: List[StageDuration] = field(default_factory=list)
    rounds: List[RoundDuration] = field(default_factory=list)

    @property
    def total(self) -> float:
        return self.setup + sum(r.total for r in self.rounds)

    def __str__(self) -> str:
        lines = [
            "Protocol Performance:",
            f"  - Protocol took {self.total * 1000:.2f}ms to complete",
            "In particular:",
            f"  - Setup: {self.setup * 1000:.2f}ms",
        ]
        lines += _format_stages(self.setup, self.setup_stages)
        for i, r in enumerate(self.rounds, start=1):
            label = r.round_name or f"Round {i}"
            lines.append(f"  - {label}: {r.total * 1000:.2f}ms")
            lines.append(f"    - Computation: {r.computation * 1000:.2f}ms")
            lines.append(f"    - I/O: {(r.sending + r.receiving) * 1000:.2f}ms")
            lines += _format_stages(r.computation, r.stages)
        return "\n".join(lines)


def _format_stages(total: float, stages: List[StageDuration]) -> List[str]:
    out = []
    for s in stages:
        share = 100 * s.duration / total if total else 0.0
        out.append(f"    - {s.name}: {s.duration * 1000:.2f}ms ({share:.1f}%)")
    return out


_FINISHES_STAGE = {
    Event.ROUND_BEGINS,
    Event.STAGE,
    Event.RECEIVE_MSGS,
    Event.SEND_MSG,
    Event.PROTOCOL_ENDS,
}


class PerfProfiler(Tracer):
    """
    Measures the time spent between protocol events.

    The first misordered event is remembered and reported by `get_report`;
    later events are ignored.
    """

    def __init__(self):
        self._last: Optional[float] = None
        self._ongoing_stage: Optional[StageDuration] = None
        self._report = PerfReport()
        self._error: Optional[ProfileError] = None

    def get_report(self) -> PerfReport:
        if self._error is not None:
            raise self._error
        return self._report

    def trace_event(self, event: Event, name: Optional[str] = None) -> None:
        if self._error is not None:
            return
        try:
            self._trace(event, name)
        except ProfileError as e:
            self._error = e

    def _elapsed(self, now: float) -> float:
        if self._last is None:
            raise ProfileError("protocol has never began")
        return now - self._last

    def _last_round(self) -> RoundDuration:
        if not self._report.rounds:
            raise ProfileError("round never began")
        return self._report.rounds[-1]

    def _trace(self, event: Event, name: Optional[str]):
        now = time.perf_counter()

        if event in _FINISHES_STAGE:
            if self._ongoing_stage is not None:
                self._ongoing_stage.duration += self._elapsed(now)
                self._ongoing_stage = None
        elif self._ongoing_stage is not None:
            raise ProfileError(f"stage is ongoing, but it can't be finished with {event}")

        if event is Event.PROTOCOL_BEGINS:
            pass
        elif event is Event.ROUND_BEGINS:
            elapsed = self._elapsed(now)
            if self._report.rounds:
                self._report.rounds[-1].computation += elapsed
            else:
                self._report.setup += elapsed
            self._report.rounds.append(RoundDuration(round_name=name))
        elif event is Event.STAGE:
            elapsed = self._elapsed(now)
            if self._report.rounds:
                last = self._report.rounds[-1]
                last.computation += elapsed
                stages = last.stages
            else:
                self._report.setup += elapsed
                stages = self._report.setup_stages
            stage = next((s for s in stages if s.name == name), None)
            if stage is None:
                stage = StageDuration(name)
                stages.append(stage)
            self._ongoing_stage = stage
        elif event in (Event.RECEIVE_MSGS, Event.SEND_MSG, Event.PROTOCOL_ENDS):
            elapsed = self._elapsed(now)
            self._last_round().computation += elapsed
        elif event is Event.MSGS_RECEIVED:
            elapsed = self._elapsed(now)
            self._last_round().receiving += elapsed
        elif event is Event.MSG_SENT:
            elapsed = self._elapsed(now)
            self._last_round().sending += elapsed

        self._last = now
