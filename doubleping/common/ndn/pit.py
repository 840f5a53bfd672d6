from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
import time

from ..types import Interface, Name
from .name import is_prefix_of
from .ndn_packets import NDNPacket


@dataclass
class PitEntry:
    """
    A pending Interest and whoever is waiting for its Data.
    """
    interest: NDNPacket
    """The pending Interest."""
    expiry: float
    """Monotonic time at which the Interest times out."""
    faces: List[Interface] = field(default_factory=list)
    """The downstream faces that sent this Interest (forwarder side)."""
    on_data: Optional[Callable[[NDNPacket, NDNPacket], Any]] = field(default=None)
    """Called with (interest, data) when the Data arrives (face side)."""
    on_timeout: Optional[Callable[[NDNPacket], Any]] = field(default=None)
    """Called with the interest when it expires (face side)."""


@dataclass
class PendingInterestTable:
    """
    The Pending Interest Table (PIT) is a table of all the names
    and the ifaces which have demonstrated interest.

    Will be used to direct the packets of data to the correct Ifaces,
    and to expire Interests whose lifetime ran out.
    """
    table: Dict[Name, PitEntry] = field(
        default_factory=dict, init=False)
    """A database of names and the entries that requested them."""

    def __hash__(self) -> int:
        return super().__hash__()

    def __len__(self) -> int:
        return len(self.table)

    def __contains__(self, name: Name) -> bool:
        return name in self.table

    def insert(self, interest: NDNPacket, faceid: Optional[Interface] = None,
               on_data=None, on_timeout=None) -> bool:
        """
        Records an Interest as pending.

        :return: True if the name was new, False if it was aggregated into
                 an existing entry.
        """
        expiry = time.monotonic() + interest.lifetime / 1000
        entry = self.table.get(interest.name)

        if entry is None:
            entry = PitEntry(interest, expiry, on_data=on_data,
                             on_timeout=on_timeout)
            self.table[interest.name] = entry
            new = True
        else:
            entry.expiry = max(entry.expiry, expiry)
            new = False

        if faceid is not None and faceid not in entry.faces:
            entry.faces.append(faceid)
        return new

    def lookup(self, name: Name) -> Optional[PitEntry]:
        return self.table.get(name)

    def satisfy(self, data_name: Name) -> List[PitEntry]:
        """
        Removes and returns every entry whose name is a prefix of the data's name.
        """
        matched = [n for n in self.table if is_prefix_of(n, data_name)]
        return [self.table.pop(n) for n in matched]

    def remove(self, name: Name, faceid: Optional[Interface] = None):
        """
        Removes a face from an entry, or the whole entry when no face is given.
        """
        if name not in self.table:
            return
        if faceid is None:
            del self.table[name]
            return
        entry = self.table[name]
        if faceid in entry.faces:
            entry.faces.remove(faceid)
        if len(entry.faces) == 0:
            del self.table[name]

    def next_expiry(self) -> Optional[float]:
        """
        The earliest expiry among the pending entries.
        """
        if not self.table:
            return None
        return min(e.expiry for e in self.table.values())

    def clear_expired(self, now: Optional[float] = None) -> List[PitEntry]:
        """
        Removes and returns all expired entries from the table.
        """
        if now is None:
            now = time.monotonic()
        expired = [n for n, e in self.table.items() if e.expiry <= now]
        return [self.table.pop(n) for n in expired]
