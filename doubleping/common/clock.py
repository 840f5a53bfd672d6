import time

from .types import Micros


def now_us() -> Micros:
    """
    Reads the monotonic clock in microseconds.

    CLOCK_MONOTONIC is shared by every process of a host, so readings taken
    by the driver, the relay and the terminal can be subtracted from each other.
    """
    return time.monotonic_ns() // 1000


def elapsed_ms(start: Micros, end: Micros) -> float:
    """
    The time between two readings in milliseconds.
    """
    return (end - start) / 1000
