from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from threading import Thread
from typing import Dict, List, Optional
import logging
import random

from doubleping.common.clock import elapsed_ms, now_us
from doubleping.common.error import InterestTimeout, MetricIOError
from doubleping.common.metrics import MetricSink
from doubleping.common.ndn.name import append_sequence
from doubleping.common.ndn.ndn_packets import NDNPacket, make_interest
from doubleping.common.types import DRAIN_INTERVAL, INTERVAL, OUTER_LIFETIME, Micros, Name, SeqNum
from doubleping.stats.correlator import Report, StatisticsCorrelator
from doubleping.transport.base import RequestChannel


class DriverState(Enum):
    IDLE = 'idle'
    SENDING = 'sending'
    AWAITING_RESPONSE = 'awaiting response'
    DRAINING = 'draining'
    STOPPED = 'stopped'


class CycleStatus(Enum):
    PENDING = 'pending'
    COMPLETED = 'completed'
    TIMED_OUT = 'timed out'


@dataclass
class Cycle:
    """
    One Interest 1 -> Data 1 round.
    """
    sequence: SeqNum
    name: Name
    send_outer_request: Micros
    receive_outer_response: Micros = field(default=0)
    status: CycleStatus = field(default=CycleStatus.PENDING)
    error: Optional[InterestTimeout] = field(default=None)
    """Why the cycle failed, if it did."""


@dataclass
class PingDriver(Thread):
    """
    Client: sends one Interest 1 per cycle and records its round trip.

    Sends are spaced by interval seconds measured from the previous send, so
    slow cycles overlap. Once every cycle is answered or timed out, the driver
    waits for the servers' records, prints the report and shuts the face down.
    """
    face: RequestChannel
    """The channel Interests are sent through."""

    sink: MetricSink
    """Where the timestamps are recorded."""

    correlator: StatisticsCorrelator
    """Computes the report once the run is over."""

    base_name: Name = field(default='/serverB/interest1')
    """The sequence number is appended to this name."""

    cycles: int = field(default=1)
    """The number of cycles to run."""

    interval: float = field(default=INTERVAL)
    """Seconds between two sends."""

    lifetime: int = field(default=OUTER_LIFETIME)
    """The Interest lifetime in milliseconds."""

    seq_base: Optional[SeqNum] = field(default=None)
    """First sequence number, random when not given."""

    drain_interval: float = field(default=DRAIN_INTERVAL)
    """Longest wait, in seconds, for the servers' records."""

    level: int = field(default=logging.INFO)
    """The logging level."""

    state: DriverState = field(init=False, default=DriverState.IDLE)
    history: Dict[SeqNum, Cycle] = field(init=False, default_factory=dict)
    """Every cycle sent, in send order."""
    next_seq: SeqNum = field(init=False, default=0)
    scheduled: int = field(init=False, default=0)
    outstanding: int = field(init=False, default=0)
    report: Optional[Report] = field(init=False, default=None)
    """The run's report, once drained."""

    def __hash__(self) -> int:
        return super().__hash__()

    def __post_init__(self):
        super(PingDriver, self).__init__()
        logging.basicConfig(
            level=self.level, format='%(levelname)s: %(message)s')

        if self.seq_base is None:
            self.seq_base = random.getrandbits(32)
        self.next_seq = self.seq_base

    @property
    def completed(self) -> List[SeqNum]:
        return [s for s, c in self.history.items() if c.status == CycleStatus.COMPLETED]

    @property
    def timed_out(self) -> List[SeqNum]:
        return [s for s, c in self.history.items() if c.status == CycleStatus.TIMED_OUT]

    def start_cycles(self):
        """
        Schedules the first cycle right away.
        """
        if self.cycles <= 0:
            logging.warning('Nothing to do, %d cycles requested.', self.cycles)
            self.face.schedule(0, self._drain)
            return
        self.face.schedule(0, self.send_next)

    def send_next(self):
        """
        Sends the Interest 1 of the next cycle and schedules the one after.
        """
        self.state = DriverState.SENDING
        sequence = self.next_seq
        interest = make_interest(append_sequence(self.base_name, sequence),
                                 self.lifetime, must_be_fresh=True)

        cycle = Cycle(sequence, interest.name, now_us())
        self.history[sequence] = cycle
        self.face.request(interest, self.on_response, self.on_timeout)

        self.next_seq += 1
        self.scheduled += 1
        self.outstanding += 1
        self.state = DriverState.AWAITING_RESPONSE

        logging.info('>> Sending Interest 1: %s at %d', interest.name, cycle.send_outer_request)

        if self.scheduled < self.cycles:
            self.face.schedule(self.interval, self.send_next)

    def _cycle_of(self, interest: NDNPacket) -> Optional[Cycle]:
        try:
            return self.history.get(interest.sequence)
        except ValueError:
            return None

    def on_response(self, interest: NDNPacket, data: NDNPacket):
        """
        Data 1 arrived: the cycle is complete.
        """
        receive_d1 = now_us()
        cycle = self._cycle_of(interest)
        if cycle is None or cycle.status != CycleStatus.PENDING:
            logging.warning('Unexpected Data 1: %s', data.name)
            return

        cycle.receive_outer_response = receive_d1
        cycle.status = CycleStatus.COMPLETED
        self.outstanding -= 1

        logging.info('<< Received Data 1: %s at %d', data.name, receive_d1)
        logging.info('I1 -> D1 RTT: %.3f ms',
                     elapsed_ms(cycle.send_outer_request, receive_d1))

        try:
            self.sink.append(cycle.sequence, cycle.send_outer_request, receive_d1)
        except MetricIOError as e:
            logging.error('Could not record cycle %d: %s', cycle.sequence, e)

        self._check_done()

    def on_timeout(self, interest: NDNPacket):
        """
        Interest 1 went unanswered; nothing is recorded for the cycle.
        """
        cycle = self._cycle_of(interest)
        if cycle is None or cycle.status != CycleStatus.PENDING:
            return

        cycle.status = CycleStatus.TIMED_OUT
        cycle.error = InterestTimeout(
            'no Data 1 for %s within %d ms' % (interest.name, interest.lifetime))
        self.outstanding -= 1
        logging.warning('Timeout of Interest 1: %s', cycle.error)

        self._check_done()

    def _check_done(self):
        if self.scheduled >= self.cycles and self.outstanding == 0:
            self.state = DriverState.DRAINING
            self.face.schedule(0, self._drain)

    def _drain(self):
        """
        Waits for the servers' records, computes the report and stops.
        """
        completed = self.completed
        logging.info('Run over: %d completed, %d timed out.',
                     len(completed), len(self.timed_out))

        self.correlator.await_records(completed, self.drain_interval)
        self.report = self.correlator.compute_report(self.cycles, list(self.history))
        print(self.report.format())

        self.state = DriverState.STOPPED
        self.face.shutdown()

    def run(self):
        """
        Main loop of the driver.
        """
        self.start_cycles()
        self.face.process_events()

    def terminate(self):
        """
        Called when another entity terminates this driver.
        """
        logging.info('Terminating driver.')
        self.state = DriverState.STOPPED
        self.face.shutdown()
