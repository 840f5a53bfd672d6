from abc import ABC, abstractmethod
from socket import SOCK_DGRAM, getaddrinfo
from typing import Any, Callable, Optional, Tuple

from doubleping.common.types import Address, Callback, Prefix
from doubleping.common.ndn.ndn_packets import NDNPacket

OnRequest = Callable[[NDNPacket], Any]
"""Called with every Interest reaching an advertised prefix."""

OnRegisterFailed = Callable[[Prefix, str], Any]
"""Called with the prefix and the reason when it can't be advertised."""

OnRegisterSuccess = Callable[[Prefix], Any]

OnResponse = Callable[[NDNPacket, NDNPacket], Any]
"""Called with (interest, data) when a request is answered."""

OnTimeout = Callable[[NDNPacket], Any]
"""Called with the interest when its lifetime expires unanswered."""


def resolve(address: Address) -> Tuple[int, Address]:
    """
    Resolves a (host, port) pair into an address family and a socket address.
    """
    info = getaddrinfo(address[0], address[1], 0, SOCK_DGRAM)[0]
    family, sockaddr = info[0], info[4]
    return family, (sockaddr[0], sockaddr[1])


def parse_address(text: str, default_port: int) -> Address:
    """
    Parses 'host', 'host:port' or '[v6-host]:port'.
    """
    if text.startswith('['):
        host, _, rest = text[1:].partition(']')
        port = int(rest[1:]) if rest.startswith(':') else default_port
        return (host, port)
    if text.count(':') == 1:
        host, port = text.split(':')
        return (host, int(port))
    return (text, default_port)


class RequestChannel(ABC):
    """
    Named request/response transport used by every role.

    Handlers and timers all run on the thread calling process_events(),
    one at a time.
    """

    @abstractmethod
    def advertise(self, prefix: Prefix, on_request: OnRequest,
                  on_register_failed: OnRegisterFailed,
                  on_register_success: Optional[OnRegisterSuccess] = None):
        """
        Registers a prefix; on_request receives every matching Interest.
        """

    @abstractmethod
    def request(self, interest: NDNPacket, on_response: OnResponse,
                on_timeout: OnTimeout):
        """
        Sends an Interest; exactly one of the callbacks eventually runs.
        """

    @abstractmethod
    def respond(self, data: NDNPacket):
        """
        Sends a Data packet answering a previously received Interest.
        """

    @abstractmethod
    def schedule(self, delay: float, callback: Callback):
        """
        Runs callback on the event loop after delay seconds.
        """

    @abstractmethod
    def process_events(self):
        """
        Runs the event loop until shutdown() is called.
        """

    @abstractmethod
    def shutdown(self):
        """
        Stops the event loop and releases the transport.
        """
