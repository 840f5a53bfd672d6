"""
File based hand-off of the timestamps recorded by each role.

A record is a block of newline-delimited integers: the sequence number
followed by a fixed number of fields. Blocks are appended with a single
write, so a reader either sees a whole block or a truncated tail that it
reports as an error.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from os import makedirs
from os.path import join
from threading import Lock
from typing import Iterator, Optional, Tuple
import logging

from .error import MetricIOError
from .types import SeqNum

DRIVER_LOG = 'driver.log'
RELAY_LOG = 'relay.log'
TERMINAL_LOG = 'terminal.log'

DRIVER_FIELDS = 2
"""send_outer_request, receive_outer_response"""
RELAY_FIELDS = 5
"""inner_sequence, receive_outer_request, send_inner_request, receive_inner_response, send_outer_response"""
TERMINAL_FIELDS = 2
"""receive_inner_request, send_inner_response"""

Record = Tuple[int, ...]
"""A record's values, sequence first."""


def log_path(directory: str, filename: str) -> str:
    """
    The path of a role's log inside the metrics directory.
    """
    return join(directory, filename)


@dataclass
class MetricSink:
    """
    Append-only writer of one role's timestamp records.
    """
    path: str
    """The file the records are appended to."""
    lock: Lock = field(default_factory=Lock, init=False)

    def __hash__(self) -> int:
        return hash(self.path)

    def append(self, sequence: SeqNum, *fields: int):
        """
        Appends a record.

        :param sequence: The sequence number keying the record.
        :param fields: The record's values.
        :raises MetricIOError: If the record couldn't be written.
        """
        block = ''.join('%d\n' % int(v) for v in (sequence,) + fields)

        with self.lock:
            try:
                with open(self.path, 'a') as f:
                    f.write(block)
                    f.flush()
            except OSError as e:
                raise MetricIOError(e)

        logging.debug('Recorded %s in %s', block.split(), self.path)


@dataclass
class MetricSource:
    """
    Sequential reader of one role's timestamp records.
    """
    path: str
    """The file the records are read from."""

    def __hash__(self) -> int:
        return hash(self.path)

    def __enter__(self) -> MetricSource:
        self.open()
        return self

    def __exit__(self, *exc):
        self.close()

    def __post_init__(self):
        self._file = None
        self._missing = False

    def open(self):
        """
        Opens the file. A file that doesn't exist yet has no records.
        """
        self.close()
        try:
            self._file = open(self.path, 'r')
            self._missing = False
        except FileNotFoundError:
            self._missing = True
        except OSError as e:
            raise MetricIOError(e)

    def close(self):
        if self._file is not None:
            self._file.close()
            self._file = None

    def read_next(self, n_fields: int) -> Optional[Record]:
        """
        Reads the next record of n_fields values, plus its sequence number.

        :return: The record or None at the end of the file.
        :raises MetricIOError: If the file ends in the middle of a block
                               or holds something other than integers.
        """
        if self._file is None:
            if self._missing:
                return None
            self.open()
            if self._missing:
                return None

        values = []
        for _ in range(n_fields + 1):
            line = self._file.readline()
            if line == '':
                if values:
                    raise MetricIOError(
                        'truncated record in %s: %s' % (self.path, values))
                return None
            try:
                values.append(int(line.strip()))
            except ValueError:
                raise MetricIOError(
                    'invalid value in %s: %r' % (self.path, line))

        return tuple(values)

    def records(self, n_fields: int) -> Iterator[Record]:
        """
        Iterates over every record of the file from the start.
        """
        self.open()
        try:
            while True:
                record = self.read_next(n_fields)
                if record is None:
                    return
                yield record
        finally:
            self.close()


def ensure_dir(directory: str) -> str:
    """
    Creates the metrics directory when needed.
    """
    try:
        makedirs(directory, exist_ok=True)
    except OSError as e:
        raise MetricIOError(e)
    return directory
