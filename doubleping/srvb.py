#!/usr/bin/env python3

from os.path import join
import sys

from doubleping.common.cli import (ArgumentParser, add_common_arguments, report_error, setup_logging,
                                   terminate_on_signal)
from doubleping.common.metrics import RELAY_LOG, MetricSink, ensure_dir
from doubleping.common.signer import make_signer
from doubleping.common.types import DEFAULT_PORT, INNER_LIFETIME
from doubleping.server.relay import RelayResponder
from doubleping.transport.base import parse_address
from doubleping.transport.face import Face


def main(argv=None) -> int:
    """
    Start server B, the relay between the client and server A.
    """
    parser = ArgumentParser(description='doubleping server B.')
    parser.add_argument('prefix', type=str, help='prefix to serve, e.g. /serverB')
    parser.add_argument('inner', type=str, help='name to request from, e.g. /serverA/interest2')
    parser.add_argument('--lifetime', type=int, default=INNER_LIFETIME,
                        help='inner Interest lifetime in ms')
    parser.add_argument('--seq-base', type=int, default=None)
    add_common_arguments(parser)
    args = parser.parse_args(argv)
    log_lvl = setup_logging(args.level)

    try:
        face = Face(parse_address(args.forwarder, DEFAULT_PORT))
        sink = MetricSink(join(ensure_dir(args.metrics_dir), RELAY_LOG))
        srv = RelayResponder(face, make_signer(args.key), sink,
                             prefix=args.prefix, inner_prefix=args.inner,
                             inner_lifetime=args.lifetime, seq_base=args.seq_base,
                             level=log_lvl)
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
