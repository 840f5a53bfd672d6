"""
Local forwarder for the named request/response overlay.

Servers register the prefixes they serve; Interests are forwarded to the
face owning the longest matching prefix and Data is returned along the
Pending Interest Table. One face per host:port is learned on first contact.
"""
import logging
import time

from dataclasses import dataclass, field
from socket import socket, SOCK_DGRAM, SOL_SOCKET, SO_REUSEADDR, timeout
from threading import Thread, Lock
from typing import Dict

from doubleping.common.ndn.fib import ForwardingInformationBase
from doubleping.common.ndn.ndn_packets import (PACKET_TYPE_ACCEPT, PACKET_TYPE_REJECT,
                                               NDNPacket, make_control)
from doubleping.common.ndn.pit import PendingInterestTable
from doubleping.common.types import (DEFAULT_ADDRESS, DEFAULT_PORT, MTU, PURGE_INTERVAL,
                                     REGISTRATION_LIFETIME, Address, Interface)
from doubleping.common.uuid import face_id
from doubleping.transport.base import resolve


@dataclass
class Forwarder(Thread):
    """
    Forwarder daemon, every face of the host talks to it.
    """
    address: Address = field(default=(DEFAULT_ADDRESS, DEFAULT_PORT))
    """The address the forwarder listens on."""

    level: int = field(default=logging.INFO)
    """The logging level."""

    purge_interval: float = field(default=PURGE_INTERVAL)
    """Seconds between two purges of expired PIT entries."""

    registration_lifetime: float = field(default=REGISTRATION_LIFETIME)
    """Seconds a prefix stays registered without its face registering it again."""

    running: bool = field(default=False, init=False)
    """Whether the forwarder is running."""

    fib: ForwardingInformationBase = field(init=False, default_factory=ForwardingInformationBase)
    """Which face serves which prefix."""

    pit: PendingInterestTable = field(init=False, default_factory=PendingInterestTable)
    """Interests forwarded and still waiting for Data."""

    faces: Dict[Interface, str] = field(init=False, default_factory=dict)
    """The faces learned so far and their ids."""

    lock: Lock = field(init=False, default_factory=Lock)
    """Lock protecting the PIT and the FIB from the purge thread."""

    def __hash__(self) -> int:
        return super().__hash__()

    def __post_init__(self):
        super(Forwarder, self).__init__()
        logging.basicConfig(
            level=self.level, format='%(levelname)s: %(message)s')

        family, bind_addr = resolve(self.address)
        self.sock = socket(family, SOCK_DGRAM)
        self.sock.setsockopt(SOL_SOCKET, SO_REUSEADDR, 1)
        self.sock.bind(bind_addr)
        self.sock.settimeout(self.purge_interval)

        # the real port when bound to port 0
        self.address = self.sock.getsockname()[:2]
        logging.info('Forwarder listening on "%s" "%d"', *self.address)

    def face_of(self, addr: Interface) -> str:
        """
        Returns the id of a face, learning it on first contact.
        """
        if addr not in self.faces:
            self.faces[addr] = face_id(self.faces.values())
            logging.info('New face %s at %s', self.faces[addr], addr)
        return self.faces[addr]

    def _reply(self, packet: NDNPacket, addr: Interface):
        self.sock.sendto(packet.to_bytes(), addr)

    def handle_register(self, packet: NDNPacket, addr: Interface):
        """
        Grants a prefix to a face unless another face holds it.

        A face registers its prefixes again every so often; a holder that went
        quiet for longer than registration_lifetime loses its prefix.
        """
        fid = self.face_of(addr)

        with self.lock:
            self._expire_registrations()
            renewal = self.fib.owner(packet.name) == addr
            granted = self.fib.add(packet.name, addr)
            owner = self.fib.owner(packet.name)

        if granted:
            if renewal:
                logging.debug('Face %s registered "%s" again', fid, packet.name)
            else:
                logging.info('Face %s registered "%s"', fid, packet.name)
            self._reply(make_control(PACKET_TYPE_ACCEPT, packet.name), addr)
            return

        reason = 'prefix already registered by face %s' % self.faces.get(owner, '?')
        logging.warning('Face %s denied "%s": %s', fid, packet.name, reason)
        self._reply(make_control(PACKET_TYPE_REJECT, packet.name, reason), addr)

    def handle_unregister(self, packet: NDNPacket, addr: Interface):
        with self.lock:
            self.fib.remove(packet.name, addr)
        logging.info('Face %s withdrew "%s"', self.face_of(addr), packet.name)

    def handle_interest(self, packet: NDNPacket, addr: Interface):
        """
        Forwards an Interest towards the face owning its longest matching prefix.
        """
        with self.lock:
            nexthop = self.fib.lookup(packet.name)
        if nexthop is None:
            logging.info('No route for %s', packet)
            return
        if nexthop == addr:
            logging.debug('Not sending %s back to its origin', packet)
            return

        with self.lock:
            new = self.pit.insert(packet, addr)

        if not new:
            logging.debug('Aggregated %s', packet)
            return

        logging.debug('Forwarding %s to face %s', packet, self.face_of(nexthop))
        self.sock.sendto(packet.to_bytes(), nexthop)

    def handle_data(self, packet: NDNPacket, addr: Interface):
        """
        Returns Data to every face that asked for it.
        """
        with self.lock:
            entries = self.pit.satisfy(packet.name)

        if not entries:
            logging.debug('Unsolicited %s from %s', packet, addr)
            return

        raw = packet.to_bytes()
        for entry in entries:
            for face in entry.faces:
                logging.debug('Returning %s to face %s', packet, self.face_of(face))
                self.sock.sendto(raw, face)

    def _handle_incoming(self, data: bytes, addr: Interface):
        packet = NDNPacket.from_bytes(data)

        if packet.is_interest:
            self.handle_interest(packet, addr)
        elif packet.is_data:
            self.handle_data(packet, addr)
        elif packet.is_register:
            self.handle_register(packet, addr)
        elif packet.is_unregister:
            self.handle_unregister(packet, addr)
        else:
            logging.warning('Unexpected %s from %s', packet, addr)

    def _expire_registrations(self):
        for prefix, face in self.fib.expire(self.registration_lifetime).items():
            logging.warning('Face %s stopped registering "%s", dropping it',
                            self.faces.get(face, '?'), prefix)

    def _handle_pit_timeout(self):
        """
        Every purge_interval seconds expired Interests are dropped from the PIT
        and prefixes no longer registered from the FIB.
        """
        while self.running:
            with self.lock:
                expired = self.pit.clear_expired()
                self._expire_registrations()
            for entry in expired:
                logging.debug('Interest %s expired', entry.interest.name)
            time.sleep(self.purge_interval)

    def run(self):
        """
        Main loop of the forwarder.
        """
        self.running = True
        Thread(target=self._handle_pit_timeout, daemon=True).start()
        logging.info('PIT purge thread started')

        while self.running:
            try:
                data, addr = self.sock.recvfrom(MTU)
                self._handle_incoming(data, (addr[0], addr[1]))

            except timeout:
                continue
            except ValueError as e:
                logging.warning('Invalid packet received: %s', e)
            except OSError as e:
                if self.running:
                    logging.error('reading from socket: %s', e)

        self._terminate()

    def _terminate(self):
        """
        Closes the socket whenever the thread exits the main loop.
        """
        self.running = False
        logging.info('Closing socket.')
        self.sock.close()

    def terminate(self, reason: str = 'Unknown'):
        """
        Called when another entity terminates this forwarder.

        :param reason: The reason for closing the forwarder.
        """
        logging.info('Terminating forwarder: %s', reason)
        self.running = False
