#!/usr/bin/env python3

import sys

from doubleping.common.cli import ArgumentParser, report_error, setup_logging, terminate_on_signal
from doubleping.common.types import DEFAULT_ADDRESS, DEFAULT_PORT
from doubleping.forwarder.forwarder import Forwarder


def main(argv=None) -> int:
    """
    Start the local forwarder every face connects to.
    """
    parser = ArgumentParser(description='doubleping forwarder.')
    parser.add_argument('-a', '--address', type=str, default=DEFAULT_ADDRESS)
    parser.add_argument('-p', '--port', type=int, default=DEFAULT_PORT)
    parser.add_argument('-l', '--level', type=str, default='info',)
    args = parser.parse_args(argv)
    log_lvl = setup_logging(args.level)

    try:
        fwd = Forwarder((args.address, args.port), level=log_lvl)
    except Exception as e:
        return report_error(e)

    terminate_on_signal(lambda: fwd.terminate('Received SIGTERM.'))

    try:
        fwd.start()
        while fwd.is_alive():
            fwd.join(1)
    except KeyboardInterrupt:
        fwd.terminate('Requested by user.')
        fwd.join()
    except Exception as e:
        return report_error(e)

    return 0


if __name__ == '__main__':
    sys.exit(main())
