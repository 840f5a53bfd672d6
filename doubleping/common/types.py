from typing import Callable, Tuple

# Type aliases that are common to nearly all components.
# Defined here so that changes can be made to the types without
# having to change all components and avoid breakage of the system.

Address = Tuple[str, int]
"""The (host, port) address of a node."""

Micros = int
"""A monotonic clock reading in microseconds."""

Millis = float
"""A duration in milliseconds."""

SeqNum = int
"""A cycle's sequence number."""

###############################################
# NDN specific types                          #
###############################################

Interface = Address
"""The address of the interface."""

Prefix = str
"""A prefix leading to data."""

Name = str
"""A full hierarchical name, e.g. /serverB/interest1/1000."""

Callback = Callable[[], None]
"""A timer callback run by a face's event loop."""

###############################################
# Defaults                                    #
###############################################

DEFAULT_ADDRESS = '::1'
"""The forwarder's default address."""

DEFAULT_PORT = 6363
"""The forwarder's default port."""

DEFAULT_METRICS_DIR = 'metrics'
"""The directory holding every role's timestamp log."""

APP_MARKER = 'testApp'
"""The component appended to a request's name to build its response name."""

CONTENT = b'HELLO KITTY'
"""The demonstration payload of every response."""

FRESHNESS = 10000
"""The freshness period of every response in milliseconds."""

INNER_LIFETIME = 1000
"""The lifetime of the relay's inner requests in milliseconds."""

OUTER_LIFETIME = 2000
"""The lifetime of the driver's outer requests in milliseconds."""

INTERVAL = 1.0
"""The delay between two consecutive driver sends in seconds."""

DRAIN_INTERVAL = 2.0
"""Upper bound, in seconds, on the wait for the responders' records."""

REGISTER_TIMEOUT = 2.0
"""The time a face waits for the forwarder to answer a registration."""

PURGE_INTERVAL = 0.5
"""How often the forwarder expires stale PIT entries, in seconds."""

REFRESH_INTERVAL = 1.0
"""How often a face registers its prefixes again, in seconds."""

REGISTRATION_LIFETIME = 3.0
"""Seconds after which the forwarder drops a prefix its face stopped registering."""

MTU = 8800
"""The largest datagram read from a socket."""
