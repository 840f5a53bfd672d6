from __future__ import annotations
import random
import struct
from dataclasses import dataclass, field
from functools import cached_property
from typing_extensions import Self

from ..types import APP_MARKER, CONTENT, FRESHNESS, Name, SeqNum
from . import name as names


# NDN Packet types
PACKET_TYPE_DATA = 0x00
PACKET_TYPE_INTEREST = 0x01
# Forwarder control types
PACKET_TYPE_REGISTER = 0x10
PACKET_TYPE_UNREGISTER = 0x11
PACKET_TYPE_ACCEPT = 0x12
PACKET_TYPE_REJECT = 0x13

ptypes = {
    PACKET_TYPE_DATA: 'DATA',
    PACKET_TYPE_INTEREST: 'INTEREST',
    PACKET_TYPE_REGISTER: 'REGISTER',
    PACKET_TYPE_UNREGISTER: 'UNREGISTER',
    PACKET_TYPE_ACCEPT: 'ACCEPT',
    PACKET_TYPE_REJECT: 'REJECT',
}

FLAG_MUST_BE_FRESH = 0x01

pattern = '!BBHIIH'
"""
    The pattern used to (un)pack the packet.

    The format is:
    - !: Network Byte order(Big endian)
    - B: The packet type.                          (1 byte)
    - B: The flags (bit 0: must be fresh).         (1 byte)
    - H: The name's length.                        (2 bytes)
    - I: The lifetime/freshness in milliseconds.   (4 bytes)
    - I: The nonce.                                (4 bytes)
    - H: The signature's length.                   (2 bytes)
    ----------------------------------------------
    Total:                                          14 bytes

    The header is followed by the name, the signature and the content.
"""

OFFSET = 14  # 1 + 1 + 2 + 4 + 4 + 2 = 14
"""The header's offset in bytes."""


def new_nonce() -> int:
    """
    Returns a random 32 bit nonce.
    """
    return random.getrandbits(32)


@dataclass
class NDNPacket:
    """
    The NDN Packet is used for both Interests and Data, as well as for the
    control messages exchanged with the forwarder.
        - type: The type of the packet.
        - name: The name of the packet.
        - content: The payload of the packet (reason text on REJECT).
        - period: Interest lifetime or Data freshness, in milliseconds.
        - must_be_fresh: Whether cached data may satisfy the Interest.
        - nonce: Random number identifying an Interest.
        - signature: The Data's signature value.
    """
    type: int
    name: Name
    content: bytes = field(default=b'')
    period: int = field(default=0)
    must_be_fresh: bool = field(default=False)
    nonce: int = field(default_factory=new_nonce)
    signature: bytes = field(default=b'')

    def __post_init__(self):
        self.name = names.normalize(self.name)

    @property
    def type_str(self) -> str:
        """
        Retrieves the packet type str representation.
        """
        return ptypes.get(self.type, 'UNKNOWN')

    @cached_property
    def is_interest(self) -> bool:
        return self.type == PACKET_TYPE_INTEREST

    @cached_property
    def is_data(self) -> bool:
        return self.type == PACKET_TYPE_DATA

    @cached_property
    def is_register(self) -> bool:
        return self.type == PACKET_TYPE_REGISTER

    @cached_property
    def is_unregister(self) -> bool:
        return self.type == PACKET_TYPE_UNREGISTER

    @cached_property
    def is_accept(self) -> bool:
        return self.type == PACKET_TYPE_ACCEPT

    @cached_property
    def is_reject(self) -> bool:
        return self.type == PACKET_TYPE_REJECT

    @property
    def lifetime(self) -> int:
        """
        The Interest lifetime in milliseconds.
        """
        return self.period

    @property
    def freshness(self) -> int:
        """
        The Data freshness period in milliseconds.
        """
        return self.period

    @property
    def sequence(self) -> SeqNum:
        """
        The trailing sequence number of the packet's name.
        """
        return names.sequence_of(self.name)

    def signed_portion(self) -> bytes:
        """
        The bytes covered by the signature: name, freshness and content.
        """
        return bytes(self.name, 'utf-8') + struct.pack('!I', self.period) + self.content

    def to_bytes(self) -> bytes:
        """
        Converts the packet to a byte array.
        """
        name_bytes = bytes(self.name, 'utf-8')
        flags = FLAG_MUST_BE_FRESH if self.must_be_fresh else 0

        return struct.pack(
            pattern,
            self.type,
            flags,
            len(name_bytes),
            self.period,
            self.nonce,
            len(self.signature)) + name_bytes + self.signature + self.content

    @classmethod
    def from_bytes(cls, data: bytes) -> Self:
        """
        Creates a NDN Packet from a byte array.

        :param data: The byte array to create the NDN Packet from.
        :return: The NDN Packet created from the byte array.
        """
        header = data[:OFFSET]

        try:
            type, flags, name_len, period, nonce, sig_len = struct.unpack(
                pattern, header)

            if len(data) < OFFSET + name_len + sig_len:
                raise ValueError('truncated packet')

            name = data[OFFSET: OFFSET+name_len].decode('utf-8')
            sig_start = OFFSET + name_len
            signature = data[sig_start: sig_start+sig_len]
            content = data[sig_start+sig_len:]

            return cls(type, name, content, period,
                       bool(flags & FLAG_MUST_BE_FRESH), nonce, signature)

        except Exception as e:
            raise ValueError(e.__repr__())

    def __str__(self) -> str:
        return f'{self.type_str} {self.name}'


def make_interest(name: Name, lifetime: int, must_be_fresh: bool = True) -> NDNPacket:
    """
    Creates an Interest with a fresh nonce.

    :param name: The name of the requested data.
    :param lifetime: The Interest lifetime in milliseconds.
    :param must_be_fresh: Whether stale cached data may answer it.
    """
    return NDNPacket(PACKET_TYPE_INTEREST, name, period=lifetime,
                     must_be_fresh=must_be_fresh)


def make_response(request_name: Name, content: bytes = CONTENT,
                  freshness: int = FRESHNESS) -> NDNPacket:
    """
    Creates an unsigned Data answering request_name.

    The Data's name is the request's name followed by the application
    marker and a version component.
    """
    data_name = names.append_version(names.append(request_name, APP_MARKER))
    return NDNPacket(PACKET_TYPE_DATA, data_name, content, freshness, nonce=0)


def make_control(type: int, prefix: Name, reason: str = '') -> NDNPacket:
    """
    Creates a forwarder control packet.
    """
    return NDNPacket(type, prefix, bytes(reason, 'utf-8'), nonce=0)
