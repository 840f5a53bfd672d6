from dataclasses import dataclass, field
from threading import Event, Thread
from typing import Optional
import logging

from doubleping.common.clock import elapsed_ms, now_us
from doubleping.common.error import MetricIOError, SignError, TransportRegistrationError
from doubleping.common.metrics import MetricSink
from doubleping.common.ndn.ndn_packets import NDNPacket, make_response
from doubleping.common.signer import Signer
from doubleping.common.types import CONTENT, FRESHNESS, Prefix
from doubleping.transport.base import RequestChannel


@dataclass
class TerminalResponder(Thread):
    """
    Server A: answers every inner Interest with a signed Data.

    Records (inner sequence, receive_inner_request, send_inner_response)
    for each answered Interest.
    """
    face: RequestChannel
    """The channel Interests are received from."""

    signer: Signer
    """Signs every response."""

    sink: MetricSink
    """Where the timestamps are recorded."""

    prefix: Prefix = field(default='/serverA')
    """The prefix served."""

    level: int = field(default=logging.INFO)
    """The logging level."""

    content: bytes = field(default=CONTENT)
    freshness: int = field(default=FRESHNESS)

    ready: Event = field(init=False, default_factory=Event)
    """Set once the prefix is registered."""

    error: Optional[Exception] = field(init=False, default=None)
    """The error that stopped the responder, if any."""

    answered: int = field(init=False, default=0)
    """The number of Interests answered."""

    def __hash__(self) -> int:
        return super().__hash__()

    def __post_init__(self):
        super(TerminalResponder, self).__init__()
        logging.basicConfig(
            level=self.level, format='%(levelname)s: %(message)s')

    def on_inner_request(self, interest: NDNPacket):
        """
        On receipt of Interest 2, send Data 2 back.
        """
        receive_i2 = now_us()
        logging.info('<< Received Interest 2: %s at %d', interest.name, receive_i2)

        data = make_response(interest.name, self.content, self.freshness)

        try:
            self.signer.sign(data)
        except SignError as e:
            logging.error('Dropping %s, signing failed: %s', interest.name, e)
            return

        send_d2 = now_us()
        logging.info('>> Sending Data 2: %s at %d', data.name, send_d2)
        logging.info('Make Data 2 Time: %.3f ms', elapsed_ms(receive_i2, send_d2))

        self.face.respond(data)
        self.answered += 1

        try:
            sequence = interest.sequence
        except ValueError:
            logging.warning('Not recording %s, no sequence number', interest.name)
            return

        try:
            self.sink.append(sequence, receive_i2, send_d2)
        except MetricIOError as e:
            logging.error('Could not record cycle %d: %s', sequence, e)

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
        self.face.advertise(self.prefix, self.on_inner_request,
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
