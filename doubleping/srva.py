#!/usr/bin/env python3

from os.path import join
import sys

from doubleping.common.cli import (ArgumentParser, add_common_arguments, report_error, setup_logging,
                                   terminate_on_signal)
from doubleping.common.metrics import TERMINAL_LOG, MetricSink, ensure_dir
from doubleping.common.signer import make_signer
from doubleping.common.types import DEFAULT_PORT
from doubleping.server.terminal import TerminalResponder
from doubleping.transport.base import parse_address
from doubleping.transport.face import Face


def main(argv=None) -> int:
    """
    Start server A, the end of the chain.
    """
    parser = ArgumentParser(description='doubleping server A.')
    parser.add_argument('prefix', type=str, help='prefix to serve, e.g. /serverA')
    add_common_arguments(parser)
    args = parser.parse_args(argv)
    log_lvl = setup_logging(args.level)

    try:
        face = Face(parse_address(args.forwarder, DEFAULT_PORT))
        sink = MetricSink(join(ensure_dir(args.metrics_dir), TERMINAL_LOG))
        srv = TerminalResponder(face, make_signer(args.key), sink,
                                prefix=args.prefix, level=log_lvl)
    except Exception as e:
        return report_error(e)

    terminate_on_signal(srv.terminate)

    try:
        srv.serve()
    except KeyboardInterrupt:
        srv.terminate()
    except Exception as e:
        return report_error(e)

    return 0


if __name__ == '__main__':
    sys.exit(main())
