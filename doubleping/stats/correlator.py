"""
Joins the timestamps of the driver, the relay and the terminal.

Every record is keyed by a sequence number: the driver's and the relay's by
the driver's sequence, the terminal's by the relay's inner sequence, which
the relay stores alongside its stamps. A cycle missing from any of the three
logs is reported as missing rather than paired with another cycle, and so is
a cycle whose records don't line up in time, as when a rerun reuses the
sequence numbers of an earlier run.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple
import logging
import time

import numpy as np

from doubleping.common.clock import elapsed_ms
from doubleping.common.error import CorrelationUnderrun, MetricIOError
from doubleping.common.metrics import (DRIVER_FIELDS, DRIVER_LOG, RELAY_FIELDS, RELAY_LOG,
                                       TERMINAL_FIELDS, TERMINAL_LOG, MetricSource, log_path)
from doubleping.common.types import Micros, Millis, SeqNum

Table = Dict[SeqNum, Tuple[int, ...]]
"""A role's records by sequence, values without the sequence."""

DERIVED = ('interest_rtt', 'gen_inner_request', 'interest_travel',
           'data_rtt', 'gen_outer_response', 'data_travel',
           'rtt', 'inner_rtt', 'gen_inner_response')
"""The derived values of a row, in milliseconds."""


@dataclass(frozen=True)
class MetricRow:
    """
    The eight stamps of one cycle and the intervals derived from them.
    """
    sequence: SeqNum
    inner_sequence: SeqNum
    send_outer_request: Micros
    receive_outer_request: Micros
    send_inner_request: Micros
    receive_inner_request: Micros
    send_inner_response: Micros
    receive_inner_response: Micros
    send_outer_response: Micros
    receive_outer_response: Micros

    @property
    def interest_rtt(self) -> Millis:
        """Driver sends Interest 1 -> terminal receives Interest 2."""
        return elapsed_ms(self.send_outer_request, self.receive_inner_request)

    @property
    def gen_inner_request(self) -> Millis:
        return elapsed_ms(self.receive_outer_request, self.send_inner_request)

    @property
    def interest_travel(self) -> Millis:
        return self.interest_rtt - self.gen_inner_request

    @property
    def data_rtt(self) -> Millis:
        """Terminal sends Data 2 -> driver receives Data 1."""
        return elapsed_ms(self.send_inner_response, self.receive_outer_response)

    @property
    def gen_outer_response(self) -> Millis:
        return elapsed_ms(self.receive_inner_response, self.send_outer_response)

    @property
    def data_travel(self) -> Millis:
        return self.data_rtt - self.gen_outer_response

    @property
    def rtt(self) -> Millis:
        """Interest 1 -> Data 1, as seen by the driver."""
        return elapsed_ms(self.send_outer_request, self.receive_outer_response)

    @property
    def inner_rtt(self) -> Millis:
        """Interest 2 -> Data 2, as seen by the relay."""
        return elapsed_ms(self.send_inner_request, self.receive_inner_response)

    @property
    def gen_inner_response(self) -> Millis:
        return elapsed_ms(self.receive_inner_request, self.send_inner_response)

    @property
    def stamps(self) -> Tuple[Micros, ...]:
        """The eight stamps in the order they are taken."""
        return (self.send_outer_request, self.receive_outer_request,
                self.send_inner_request, self.receive_inner_request,
                self.send_inner_response, self.receive_inner_response,
                self.send_outer_response, self.receive_outer_response)

    @property
    def is_ordered(self) -> bool:
        """
        Whether the stamps never go back in time.

        The three roles share one monotonic clock, so a row joining records
        of different runs shows up as a stamp earlier than its predecessor.
        """
        stamps = self.stamps
        return all(a <= b for a, b in zip(stamps, stamps[1:]))

    def derived(self) -> Dict[str, Millis]:
        return {name: getattr(self, name) for name in DERIVED}


@dataclass(frozen=True)
class Report:
    """
    The rows of a run, in the order the driver recorded them.
    """
    expected: int
    """The number of cycles asked for."""
    rows: Tuple[MetricRow, ...] = field(default=())
    missing: Tuple[SeqNum, ...] = field(default=())
    """Sequences that couldn't be joined."""

    @property
    def partial(self) -> bool:
        return len(self.rows) < self.expected

    def average(self) -> Optional[Dict[str, Millis]]:
        """
        Averages every derived value, leaving out the first cycle.

        The first cycle pays for route discovery, so it is not representative.
        :return: The averages or None with fewer than two rows.
        """
        if len(self.rows) < 2:
            return None
        values = np.array([[getattr(r, name) for name in DERIVED] for r in self.rows[1:]])
        return dict(zip(DERIVED, values.mean(axis=0).tolist()))

    def format(self) -> str:
        """
        Renders the report as text.
        """
        header = ['count', 'sequence'] + list(DERIVED)
        lines = ['\t'.join(header)]
        for count, row in enumerate(self.rows, 1):
            lines.append('\t'.join([str(count), str(row.sequence)] +
                                   ['%.3f' % v for v in row.derived().values()]))

        avg = self.average()
        if avg is not None:
            lines.append('\t'.join(['avg', '-'] + ['%.3f' % avg[name] for name in DERIVED]))

        if self.partial:
            lines.append('partial: %d of %d cycles, missing %s' % (
                len(self.rows), self.expected,
                ', '.join(str(s) for s in self.missing) or 'none recorded'))
        return '\n'.join(lines)


def _table(source: MetricSource, n_fields: int) -> Table:
    """
    Reads a role's records in file order.

    A later record for the same sequence replaces the earlier one and takes
    its place at the end of the table.
    """
    table: Table = {}
    try:
        for record in source.records(n_fields):
            table.pop(record[0], None)
            table[record[0]] = record[1:]
    except MetricIOError as e:
        logging.warning('Stopped reading %s: %s', source.path, e)
    return table


@dataclass
class StatisticsCorrelator:
    """
    Computes reports from the three roles' timestamp logs.
    """
    driver_source: MetricSource
    relay_source: MetricSource
    terminal_source: MetricSource

    def __hash__(self) -> int:
        return super().__hash__()

    @classmethod
    def from_dir(cls, directory: str) -> StatisticsCorrelator:
        """
        Reads the logs of a metrics directory.
        """
        return cls(MetricSource(log_path(directory, DRIVER_LOG)),
                   MetricSource(log_path(directory, RELAY_LOG)),
                   MetricSource(log_path(directory, TERMINAL_LOG)))

    def _load(self) -> Tuple[Table, Table, Table]:
        return (_table(self.driver_source, DRIVER_FIELDS),
                _table(self.relay_source, RELAY_FIELDS),
                _table(self.terminal_source, TERMINAL_FIELDS))

    @staticmethod
    def join(sequence: SeqNum, driver: Table, relay: Table, terminal: Table) -> MetricRow:
        """
        Joins the records of one cycle.

        :raises CorrelationUnderrun: If one of the roles has no record for it,
                                     or its records come from different runs.
        """
        if sequence not in driver:
            raise CorrelationUnderrun('cycle %d: no driver record' % sequence)
        if sequence not in relay:
            raise CorrelationUnderrun('cycle %d: no relay record' % sequence)

        send_i1, receive_d1 = driver[sequence]
        inner, receive_i1, send_i2, receive_d2, send_d1 = relay[sequence]

        if inner not in terminal:
            raise CorrelationUnderrun(
                'cycle %d: no terminal record for inner sequence %d' % (sequence, inner))

        receive_i2, send_d2 = terminal[inner]

        row = MetricRow(sequence, inner, send_i1, receive_i1, send_i2, receive_i2,
                        send_d2, receive_d2, send_d1, receive_d1)
        if not row.is_ordered:
            raise CorrelationUnderrun(
                'cycle %d: stamps out of order, records of another run' % sequence)
        return row

    def compute_report(self, expected_cycles: int,
                       sequences: Optional[Iterable[SeqNum]] = None) -> Report:
        """
        Computes the report of a run.

        :param expected_cycles: The number of cycles the run was asked for.
        :param sequences: The run's sequences in send order. The last
                          expected_cycles driver records when not given.
        """
        driver, relay, terminal = self._load()

        if sequences is None:
            sequences = list(driver)[-expected_cycles:] if expected_cycles > 0 else []

        rows: List[MetricRow] = []
        missing: List[SeqNum] = []

        for sequence in list(sequences)[:expected_cycles]:
            try:
                rows.append(self.join(sequence, driver, relay, terminal))
            except CorrelationUnderrun as e:
                logging.warning('Skipping %s', e)
                missing.append(sequence)

        if len(rows) < expected_cycles:
            logging.warning('Partial report: %d of %d cycles', len(rows), expected_cycles)

        return Report(expected_cycles, tuple(rows), tuple(missing))

    def await_records(self, sequences: Iterable[SeqNum], timeout: float,
                      poll: float = 0.05) -> bool:
        """
        Waits until every cycle in sequences can be joined.

        :param timeout: Give up after this many seconds.
        :return: Whether every cycle could be joined in time.
        """
        wanted = list(sequences)
        deadline = time.monotonic() + timeout

        while True:
            driver, relay, terminal = self._load()
            pending = [s for s in wanted if not self._joinable(s, driver, relay, terminal)]

            if not pending:
                return True
            if time.monotonic() >= deadline:
                logging.warning('Records still missing for cycles %s', pending)
                return False

            logging.debug('Waiting for the records of %d cycles', len(pending))
            time.sleep(poll)

    def _joinable(self, sequence, driver, relay, terminal) -> bool:
        try:
            self.join(sequence, driver, relay, terminal)
        except CorrelationUnderrun:
            return False
        return True

