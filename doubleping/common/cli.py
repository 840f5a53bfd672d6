"""
Argument parsing shared by the command line entry points.
"""
import argparse
import logging
import signal
import sys
from logging import INFO, DEBUG, ERROR, WARNING

from .types import DEFAULT_ADDRESS, DEFAULT_METRICS_DIR, DEFAULT_PORT


class ArgumentParser(argparse.ArgumentParser):
    """
    Prints the usage and exits with status 1 on bad arguments.
    """

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, '%s: error: %s\n' % (self.prog, message))


def parse_level(level: str) -> int:
    """
    Maps the --level option to a logging level.
    """
    if level == 'debug':
        return DEBUG
    elif level == 'error' or level == 'err':
        return ERROR
    elif level == 'warning' or level == 'warn':
        return WARNING
    return INFO


def add_common_arguments(parser: argparse.ArgumentParser):
    parser.add_argument('-f', '--forwarder', type=str,
                        default='[%s]:%d' % (DEFAULT_ADDRESS, DEFAULT_PORT),
                        help='forwarder address, host:port')
    parser.add_argument('-m', '--metrics-dir', type=str, default=DEFAULT_METRICS_DIR)
    parser.add_argument('-k', '--key', type=str, default=None,
                        help='HMAC key, digest signatures when omitted')
    parser.add_argument('-l', '--level', type=str, default='info',)


def report_error(e: Exception) -> int:
    """
    Prints a caught top level error; the process still exits normally.
    """
    print('ERROR: %s' % e, file=sys.stderr)
    return 0


def terminate_on_signal(terminate, signum: int = signal.SIGTERM):
    """
    Calls terminate when the process receives signum, so that a killed
    server still withdraws its prefixes.

    :return: The handler that was installed before.
    """
    def handler(sig, frame):
        logging.info('Received signal %d.', sig)
        terminate()

    return signal.signal(signum, handler)


def setup_logging(level: str) -> int:
    """
    Configures the root logger before any component logs.
    """
    log_lvl = parse_level(level)
    logging.basicConfig(
        level=log_lvl, format='%(levelname)s: %(message)s')
    return log_lvl
