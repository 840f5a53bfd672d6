#!/usr/bin/env python3

from os.path import join
import sys

from doubleping.client.driver import PingDriver
from doubleping.common.cli import (ArgumentParser, add_common_arguments, report_error, setup_logging,
                                   terminate_on_signal)
from doubleping.common.metrics import DRIVER_LOG, MetricSink, ensure_dir
from doubleping.common.types import DEFAULT_PORT, DRAIN_INTERVAL, INTERVAL, OUTER_LIFETIME
from doubleping.stats.correlator import StatisticsCorrelator
from doubleping.transport.base import parse_address
from doubleping.transport.face import Face


def main(argv=None) -> int:
    """
    Start the client, which drives the cycles and prints the report.
    """
    parser = ArgumentParser(description='doubleping client.')
    parser.add_argument('name', type=str, help='name to request, e.g. /serverB/interest1')
    parser.add_argument('cycles', type=int, help='number of cycles to run')
    parser.add_argument('--interval', type=float, default=INTERVAL,
                        help='seconds between two sends')
    parser.add_argument('--lifetime', type=int, default=OUTER_LIFETIME,
                        help='Interest lifetime in ms')
    parser.add_argument('--seq-base', type=int, default=None)
    parser.add_argument('--drain', type=float, default=DRAIN_INTERVAL,
                        help='longest wait in seconds for the servers\' records')
    add_common_arguments(parser)
    args = parser.parse_args(argv)
    log_lvl = setup_logging(args.level)

    try:
        metrics_dir = ensure_dir(args.metrics_dir)
        face = Face(parse_address(args.forwarder, DEFAULT_PORT))
        driver = PingDriver(face, MetricSink(join(metrics_dir, DRIVER_LOG)),
                            StatisticsCorrelator.from_dir(metrics_dir),
                            base_name=args.name, cycles=args.cycles,
                            interval=args.interval, lifetime=args.lifetime,
                            seq_base=args.seq_base, drain_interval=args.drain,
                            level=log_lvl)
    except Exception as e:
        return report_error(e)

    terminate_on_signal(driver.terminate)

    try:
        driver.run()
    except KeyboardInterrupt:
        driver.terminate()
    except Exception as e:
        return report_error(e)

    return 0


if __name__ == '__main__':
    sys.exit(main())
