from dataclasses import dataclass, field
from typing import Dict, List, Optional
import time
from ..types import Interface, Name, Prefix
from .name import longest_prefix_match, normalize


@dataclass
class ForwardingInformationBase:
    """
    Forwarding Information Base (FIB)

    The Forwarding Information Base (FIB) is a table of all the names
    and the iface that registered them.

    Will be used to determine which iface an Interest is forwarded to.
    A prefix belongs to a single iface at a time, for as long as that iface
    keeps registering it again.
    """
    base: Dict[Prefix, Interface] = field(
        default_factory=dict, init=False)
    """A database of names and the address through which they are reachable."""

    refreshed: Dict[Prefix, float] = field(
        default_factory=dict, init=False)
    """When each prefix was last registered by its owner."""

    def __hash__(self) -> int:
        return super().__hash__()

    def add(self, name: Prefix, face: Interface, now: Optional[float] = None) -> bool:
        """
        Add a new entry to the FIB, or refresh the entry of its owner

        :return: False if the prefix is already owned by another face.
        """
        name = normalize(name)
        owner = self.base.get(name)
        if owner is not None and owner != face:
            return False
        self.base[name] = face
        self.refreshed[name] = time.monotonic() if now is None else now
        return True

    def owner(self, name: Prefix) -> Optional[Interface]:
        """
        The face that registered exactly this prefix.
        """
        return self.base.get(normalize(name))

    def remove(self, name: Prefix, face: Interface):
        """
        Remove an entry from the FIB
        """
        name = normalize(name)
        if self.base.get(name) == face:
            del self.base[name]
            self.refreshed.pop(name, None)

    def remove_face(self, face: Interface) -> List[Prefix]:
        """
        Remove every entry owned by a face.
        """
        owned = [p for p, f in self.base.items() if f == face]
        for prefix in owned:
            del self.base[prefix]
            self.refreshed.pop(prefix, None)
        return owned

    def expire(self, lifetime: float, now: Optional[float] = None) -> Dict[Prefix, Interface]:
        """
        Remove the entries not registered again within lifetime seconds.

        :return: The removed prefixes and the faces that owned them.
        """
        if now is None:
            now = time.monotonic()
        stale = {p: self.base[p] for p, t in self.refreshed.items() if now - t > lifetime}
        for prefix in stale:
            del self.base[prefix]
            del self.refreshed[prefix]
        return stale

    def lookup(self, name: Name) -> Optional[Interface]:
        """
        Longest prefix match of a name in the FIB
        """
        prefix = longest_prefix_match(name, self.base)
        if prefix is None:
            return None
        return self.base[prefix]
