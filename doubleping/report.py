#!/usr/bin/env python3

import sys

from doubleping.common.cli import ArgumentParser, report_error, setup_logging
from doubleping.common.types import DEFAULT_METRICS_DIR
from doubleping.stats.correlator import StatisticsCorrelator


def main(argv=None) -> int:
    """
    Print the report of the last run recorded in a metrics directory.
    """
    parser = ArgumentParser(description='doubleping statistics.')
    parser.add_argument('cycles', type=int, help='number of cycles of the run')
    parser.add_argument('-m', '--metrics-dir', type=str, default=DEFAULT_METRICS_DIR)
    parser.add_argument('-l', '--level', type=str, default='warning',)
    args = parser.parse_args(argv)

    setup_logging(args.level)

    try:
        report = StatisticsCorrelator.from_dir(args.metrics_dir).compute_report(args.cycles)
        print(report.format())
    except Exception as e:
        return report_error(e)

    return 0


if __name__ == '__main__':
    sys.exit(main())
