"""
Helpers for hierarchical NDN names.

Names are kept as plain '/'-separated strings, e.g. '/serverB/interest1/1000'.
"""
import time
from typing import Iterable, List, Optional

from ..types import Name, Prefix, SeqNum

VERSION_MARKER = 'v='
"""Marks a version component (naming conventions, URI form)."""


def components(name: Name) -> List[str]:
    """
    Splits a name into its components.

    :param name: The name to split.
    :return: The non empty components of the name.
    """
    return [c for c in name.split('/') if c != '']


def normalize(name: Name) -> Name:
    """
    Returns the canonical form of a name: leading '/', no empty components.
    """
    return '/' + '/'.join(components(name))


def append(name: Name, *parts) -> Name:
    """
    Appends one or more components to a name.

    :param name: The name to extend.
    :return: The extended name.
    """
    extra = [str(p).strip('/') for p in parts]
    return normalize('/'.join([name] + extra))


def append_version(name: Name, version: Optional[int] = None) -> Name:
    """
    Appends a version component, the current UNIX time in milliseconds by default.
    """
    if version is None:
        version = int(time.time() * 1000)
    return append(name, VERSION_MARKER + str(version))


def append_sequence(name: Name, sequence: SeqNum) -> Name:
    """
    Appends a sequence number component to a name.
    """
    return append(name, sequence)


def sequence_of(name: Name) -> SeqNum:
    """
    Reads the trailing sequence number of a name.

    :param name: A name ending in a decimal component.
    :return: The sequence number.
    :raises ValueError: If the last component isn't a number.
    """
    parts = components(name)
    if not parts or not parts[-1].isdigit():
        raise ValueError('name has no trailing sequence number: %s' % name)
    return int(parts[-1])


def is_prefix_of(prefix: Prefix, name: Name) -> bool:
    """
    Checks whether every component of prefix leads name.
    """
    head = components(prefix)
    return components(name)[:len(head)] == head


def longest_prefix_match(name: Name, prefixes: Iterable[Prefix]) -> Optional[Prefix]:
    """
    Finds the longest prefix among prefixes that matches name.
    """
    best = None
    for prefix in prefixes:
        if is_prefix_of(prefix, name):
            if best is None or len(components(prefix)) > len(components(best)):
                best = prefix
    return best
