from dataclasses import dataclass, field
from functools import partial
from threading import Event, Thread
from typing import Dict, Optional
import logging
import random

from doubleping.common.clock import elapsed_ms, now_us
from doubleping.common.error import MetricIOError, SignError, TransportRegistrationError
from doubleping.common.metrics import MetricSink
from doubleping.common.ndn.name import append_sequence
from doubleping.common.ndn.ndn_packets import NDNPacket, make_interest, make_response
from doubleping.common.signer import Signer
from doubleping.common.types import (CONTENT, FRESHNESS, INNER_LIFETIME, Micros, Name, Prefix,
                                     SeqNum)
from doubleping.transport.base import RequestChannel


@dataclass
class RelayCycle:
    """
    Everything the relay remembers about one cycle in flight.
    """
    sequence: SeqNum
    """The driver's sequence, trailing component of the outer name."""
    outer_name: Name
    """The name of Interest 1, Data 1 is built from it."""
    inner_sequence: SeqNum
    """The relay's own sequence, trailing component of the inner name."""
    receive_outer_request: Micros
    send_inner_request: Micros = field(default=0)
    receive_inner_response: Micros = field(default=0)
    send_outer_response: Micros = field(default=0)


@dataclass
class RelayResponder(Thread):
    """
    Server B: answers Interest 1 by first fetching Interest 2 from Server A.

    Cycles are kept per outer sequence, so overlapping cycles don't clobber
    each other. The inner sequence comes from a counter of the relay.
    """
    face: RequestChannel
    """The channel both hops go through."""

    signer: Signer
    """Signs every outer response."""

    sink: MetricSink
    """Where the timestamps are recorded."""

    prefix: Prefix = field(default='/serverB')
    """The prefix served."""

    inner_prefix: Prefix = field(default='/serverA/interest2')
    """The name the inner Interests are derived from."""

    inner_lifetime: int = field(default=INNER_LIFETIME)
    """The inner Interest lifetime in milliseconds."""

    seq_base: Optional[SeqNum] = field(default=None)
    """First inner sequence number, random when not given."""

    level: int = field(default=logging.INFO)
    """The logging level."""

    content: bytes = field(default=CONTENT)
    freshness: int = field(default=FRESHNESS)

    cycles: Dict[SeqNum, RelayCycle] = field(init=False, default_factory=dict)
    """The cycles in flight, keyed by outer sequence."""

    inner_seq: SeqNum = field(init=False, default=0)
    """The next inner sequence number."""

    ready: Event = field(init=False, default_factory=Event)
    """Set once the prefix is registered."""

    error: Optional[Exception] = field(init=False, default=None)
    """The error that stopped the responder, if any."""

    def __hash__(self) -> int:
        return super().__hash__()

    def __post_init__(self):
        super(RelayResponder, self).__init__()
        logging.basicConfig(
            level=self.level, format='%(levelname)s: %(message)s')

        if self.seq_base is None:
            self.seq_base = random.getrandbits(32)
        self.inner_seq = self.seq_base

    def on_outer_request(self, interest: NDNPacket):
        """
        On receipt of Interest 1, send Interest 2.
        """
        receive_i1 = now_us()
        logging.info('<< Received Interest 1: %s at %d', interest.name, receive_i1)

        try:
            sequence = interest.sequence
        except ValueError:
            logging.warning('Ignoring %s, no sequence number', interest.name)
            return

        if sequence in self.cycles:
            logging.warning('Cycle %d already in flight, ignoring %s',
                            sequence, interest.name)
            return

        cycle = RelayCycle(sequence, interest.name, self.inner_seq, receive_i1)
        interest2 = make_interest(append_sequence(self.inner_prefix, cycle.inner_sequence),
                                  self.inner_lifetime, must_be_fresh=True)

        cycle.send_inner_request = now_us()
        self.cycles[sequence] = cycle

        self.face.request(interest2,
                          partial(self.on_inner_response, cycle),
                          partial(self.on_inner_timeout, cycle))
        self.inner_seq += 1

        logging.info('>> Sending Interest 2: %s at %d', interest2.name, cycle.send_inner_request)
        logging.info('Make Interest 2 Time: %.3f ms',
                     elapsed_ms(receive_i1, cycle.send_inner_request))

    def on_inner_response(self, cycle: RelayCycle, interest: NDNPacket, data: NDNPacket):
        """
        On receipt of Data 2, send Data 1 back.
        """
        cycle.receive_inner_response = now_us()
        self.cycles.pop(cycle.sequence, None)

        logging.info('<< Received Data 2: %s at %d', data.name, cycle.receive_inner_response)
        logging.info('Interest 2 -> Data 2 RTT: %.3f ms',
                     elapsed_ms(cycle.send_inner_request, cycle.receive_inner_response))

        data1 = make_response(cycle.outer_name, self.content, self.freshness)

        try:
            self.signer.sign(data1)
        except SignError as e:
            logging.error('Dropping cycle %d, signing failed: %s', cycle.sequence, e)
            return

        cycle.send_outer_response = now_us()
        logging.info('>> Sending Data 1: %s at %d', data1.name, cycle.send_outer_response)
        logging.info('Make Data 1 Time: %.3f ms',
                     elapsed_ms(cycle.receive_inner_response, cycle.send_outer_response))

        self.face.respond(data1)

        try:
            self.sink.append(cycle.sequence, cycle.inner_sequence,
                             cycle.receive_outer_request, cycle.send_inner_request,
                             cycle.receive_inner_response, cycle.send_outer_response)
        except MetricIOError as e:
            logging.error('Could not record cycle %d: %s', cycle.sequence, e)

    def on_inner_timeout(self, cycle: RelayCycle, interest: NDNPacket):
        """
        Interest 2 went unanswered; the cycle is dropped without answering Interest 1.
        """
        self.cycles.pop(cycle.sequence, None)
        logging.warning('Timeout of Interest 2: %s (cycle %d)', interest.name, cycle.sequence)

    def on_register_failed(self, prefix: Prefix, reason: str):
        logging.error('Failed to register prefix "%s" (%s)', prefix, reason)
        self.error = TransportRegistrationError(
            'failed to register prefix "%s" (%s)' % (prefix, reason))
        self.face.shutdown()

    def on_register_success(self, prefix: Prefix):
        self.ready.set()

    def run(self):
        """
        Main loop of the responder.
        """
        logging.info('--- Server %s ---', self.prefix)
        self.face.advertise(self.prefix, self.on_outer_request,
                            self.on_register_failed, self.on_register_success)
        self.face.process_events()

    def serve(self):
        """
        Runs the responder on the calling thread.

        :raises TransportRegistrationError: If the prefix can't be registered.
        """
        self.run()
        if self.error is not None:
            raise self.error

    def terminate(self):
        """
        Called when another entity terminates this responder.
        """
        logging.info('Terminating server %s.', self.prefix)
        self.face.shutdown()
