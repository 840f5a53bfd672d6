"""
Signers applied to every outgoing Data packet.

DigestSha256Signer mirrors the signature a key chain falls back to when no
identity is configured; HmacSha256Signer uses a key shared by the servers.
"""
from abc import ABC, abstractmethod
import hashlib
import hmac
from typing import Optional

from .error import SignError
from .ndn.ndn_packets import NDNPacket


class Signer(ABC):
    """
    Signs and verifies Data packets in place.
    """

    @abstractmethod
    def _digest(self, portion: bytes) -> bytes:
        """
        The signature of the signed portion of a packet.
        """

    def sign(self, data: NDNPacket):
        """
        Sets the signature of a Data packet.

        :raises SignError: If the packet can't be signed.
        """
        if not data.is_data:
            raise SignError('cannot sign a %s packet' % data.type_str)
        try:
            data.signature = self._digest(data.signed_portion())
        except SignError:
            raise
        except Exception as e:
            raise SignError(e)

    def verify(self, data: NDNPacket) -> bool:
        """
        Checks the signature of a Data packet.
        """
        try:
            expected = self._digest(data.signed_portion())
        except Exception:
            return False
        return hmac.compare_digest(expected, data.signature)


class DigestSha256Signer(Signer):
    """
    Plain SHA-256 digest of the signed portion.
    """

    def _digest(self, portion: bytes) -> bytes:
        return hashlib.sha256(portion).digest()


class HmacSha256Signer(Signer):
    """
    HMAC-SHA256 of the signed portion under a shared key.
    """

    def __init__(self, key: bytes):
        if not key:
            raise SignError('empty signing key')
        self.key = key

    def _digest(self, portion: bytes) -> bytes:
        return hmac.new(self.key, portion, hashlib.sha256).digest()


def make_signer(key: Optional[str] = None) -> Signer:
    """
    Returns an HMAC signer when a key is given, a digest signer otherwise.
    """
    if key:
        return HmacSha256Signer(bytes(key, 'utf-8'))
    return DigestSha256Signer()
