"""
UDP face attached to a local forwarder.

The face owns one socket and one event loop. Incoming packets, Interest
timeouts, registration timeouts and scheduled callbacks are all handled on
the thread that calls process_events().
"""
from dataclasses import dataclass, field
from itertools import count
from socket import socket, SOCK_DGRAM, timeout
from typing import Dict, List, Optional, Tuple
import heapq
import logging
import time

from doubleping.common.ndn.name import longest_prefix_match, normalize
from doubleping.common.ndn.ndn_packets import (PACKET_TYPE_REGISTER, PACKET_TYPE_UNREGISTER,
                                               NDNPacket, make_control)
from doubleping.common.ndn.pit import PendingInterestTable
from doubleping.common.types import (DEFAULT_ADDRESS, DEFAULT_PORT, MTU, REFRESH_INTERVAL,
                                     REGISTER_TIMEOUT, Address, Callback, Prefix)
from .base import (OnRegisterFailed, OnRegisterSuccess, OnRequest, OnResponse, OnTimeout,
                   RequestChannel, resolve)

MAX_WAIT = 0.1
"""Longest blocking read, so that a shutdown from another thread is noticed."""


@dataclass
class Registration:
    """
    A prefix registration, awaiting the forwarder's answer or granted.
    """
    on_request: OnRequest
    on_failed: OnRegisterFailed
    on_success: Optional[OnRegisterSuccess]
    deadline: float


@dataclass
class Face(RequestChannel):
    """
    RequestChannel speaking to a forwarder over UDP.
    """
    forwarder: Address = field(default=(DEFAULT_ADDRESS, DEFAULT_PORT))
    """The forwarder's address."""

    register_timeout: float = field(default=REGISTER_TIMEOUT)
    """Seconds to wait for the forwarder to answer a registration."""

    refresh_interval: float = field(default=REFRESH_INTERVAL)
    """Seconds between two registrations of the prefixes already granted."""

    running: bool = field(default=False, init=False)
    """Whether the event loop is running."""

    sock: socket = field(init=False)
    """The socket used to talk to the forwarder."""

    pit: PendingInterestTable = field(init=False, default_factory=PendingInterestTable)
    """The Interests expressed by this face and still unanswered."""

    handlers: Dict[Prefix, Registration] = field(init=False, default_factory=dict)
    """The prefixes granted by the forwarder and their Interest handlers."""

    registrations: Dict[Prefix, Registration] = field(init=False, default_factory=dict)
    """Registrations the forwarder hasn't answered yet."""

    timers: List[Tuple[float, int, Callback]] = field(init=False, default_factory=list)
    """Heap of (deadline, order, callback)."""

    def __hash__(self) -> int:
        return super().__hash__()

    def __post_init__(self):
        family, self.forwarder_address = resolve(self.forwarder)
        self.sock = socket(family, SOCK_DGRAM)
        self.sock.bind(('', 0))
        self._order = count()
        self._closed = False
        self._stopping = False
        self._next_refresh = 0.0

        logging.debug('Face bound to %s, forwarder at %s',
                      self.sock.getsockname()[:2], self.forwarder_address)

    def _send(self, packet: NDNPacket):
        logging.debug('Sending %s', packet)
        self.sock.sendto(packet.to_bytes(), self.forwarder_address)

    def advertise(self, prefix: Prefix, on_request: OnRequest,
                  on_register_failed: OnRegisterFailed,
                  on_register_success: Optional[OnRegisterSuccess] = None):
        prefix = normalize(prefix)
        self.registrations[prefix] = Registration(
            on_request, on_register_failed, on_register_success,
            time.monotonic() + self.register_timeout)
        self._send(make_control(PACKET_TYPE_REGISTER, prefix))

    def request(self, interest: NDNPacket, on_response: OnResponse,
                on_timeout: OnTimeout):
        self.pit.insert(interest, on_data=on_response, on_timeout=on_timeout)
        self._send(interest)

    def respond(self, data: NDNPacket):
        self._send(data)

    def schedule(self, delay: float, callback: Callback):
        heapq.heappush(self.timers,
                       (time.monotonic() + delay, next(self._order), callback))

    def _call(self, what: str, callback, *args):
        """
        Runs a handler; an exception is logged and the loop goes on.
        """
        try:
            callback(*args)
        except Exception as e:
            logging.exception('Handler for %s failed: %s', what, e)

    def _handle_control(self, packet: NDNPacket):
        reg = self.registrations.pop(packet.name, None)
        if reg is None:
            self._handle_renewal(packet)
            return

        if packet.is_accept:
            self.handlers[packet.name] = reg
            self._next_refresh = time.monotonic() + self.refresh_interval
            logging.info('Registered prefix "%s"', packet.name)
            if reg.on_success is not None:
                self._call(packet.name, reg.on_success, packet.name)
        else:
            reason = packet.content.decode('utf-8', 'replace')
            self._call(packet.name, reg.on_failed, packet.name, reason)

    def _handle_renewal(self, packet: NDNPacket):
        """
        Answer to a prefix registered again. A rejection means the forwarder
        gave the prefix away, so it is no longer served.
        """
        reg = self.handlers.get(packet.name)
        if reg is None:
            logging.debug('Unexpected %s', packet)
        elif packet.is_reject:
            del self.handlers[packet.name]
            reason = packet.content.decode('utf-8', 'replace')
            logging.error('Lost prefix "%s": %s', packet.name, reason)
            self._call(packet.name, reg.on_failed, packet.name, reason)

    def _refresh(self, now: float):
        for prefix in self.handlers:
            self._send(make_control(PACKET_TYPE_REGISTER, prefix))
        self._next_refresh = now + self.refresh_interval

    def _handle_packet(self, packet: NDNPacket):
        if packet.is_interest:
            prefix = longest_prefix_match(packet.name, self.handlers)
            if prefix is None:
                logging.debug('No handler for %s', packet)
                return
            self._call(packet.name, self.handlers[prefix].on_request, packet)

        elif packet.is_data:
            entries = self.pit.satisfy(packet.name)
            if not entries:
                logging.debug('Unsolicited %s', packet)
            for entry in entries:
                self._call(packet.name, entry.on_data, entry.interest, packet)

        elif packet.is_accept or packet.is_reject:
            self._handle_control(packet)

        else:
            logging.debug('Ignoring %s', packet)

    def _expire(self):
        now = time.monotonic()

        for entry in self.pit.clear_expired(now):
            if entry.on_timeout is not None:
                self._call(entry.interest.name, entry.on_timeout, entry.interest)

        for prefix in [p for p, r in self.registrations.items() if r.deadline <= now]:
            reg = self.registrations.pop(prefix)
            reason = 'no answer from forwarder at %s' % (self.forwarder_address,)
            self._call(prefix, reg.on_failed, prefix, reason)

        if self.handlers and self._next_refresh <= now:
            self._refresh(now)

        while self.timers and self.timers[0][0] <= now and not self._stopping:
            _, _, callback = heapq.heappop(self.timers)
            self._call('timer', callback)

    def _next_wait(self) -> float:
        deadlines = [r.deadline for r in self.registrations.values()]
        if self.timers:
            deadlines.append(self.timers[0][0])
        if self.handlers:
            deadlines.append(self._next_refresh)
        expiry = self.pit.next_expiry()
        if expiry is not None:
            deadlines.append(expiry)

        if not deadlines:
            return MAX_WAIT
        return min(max(min(deadlines) - time.monotonic(), 0.001), MAX_WAIT)

    def process_events(self):
        """
        Main loop of the face, returns once shutdown() was called.
        """
        self.running = True
        try:
            self._loop()
        finally:
            self._terminate()

    def _loop(self):
        while self.running and not self._stopping:
            self._expire()
            if self._stopping:
                break

            try:
                self.sock.settimeout(self._next_wait())
                data, _ = self.sock.recvfrom(MTU)
            except timeout:
                continue
            except OSError as e:
                if self._stopping:
                    break
                logging.error('reading from socket: %s', e)
                continue

            try:
                packet = NDNPacket.from_bytes(data)
            except ValueError as e:
                logging.warning('Invalid packet received: %s', e)
                continue

            self._handle_packet(packet)

    def shutdown(self):
        """
        Stops the event loop. Registered prefixes are withdrawn.
        """
        if self._stopping:
            return
        self._stopping = True

        if not self.running:
            self._terminate()

    def _withdraw(self):
        for prefix in list(self.handlers):
            try:
                self._send(make_control(PACKET_TYPE_UNREGISTER, prefix))
            except OSError as e:
                logging.warning('Could not unregister "%s": %s', prefix, e)
        self.handlers.clear()

    def _terminate(self):
        """
        Closes the socket whenever the event loop exits.
        """
        self.running = False
        if not self._closed:
            self._withdraw()
            self._closed = True
            self.sock.close()
            logging.debug('Face closed.')
