from itertools import count
from os.path import join
from typing import Callable, Dict, List, Tuple
import heapq

import pytest

from doubleping.common.metrics import DRIVER_LOG, RELAY_LOG, TERMINAL_LOG, MetricSink
from doubleping.common.ndn.name import is_prefix_of, longest_prefix_match
from doubleping.common.ndn.ndn_packets import NDNPacket
from doubleping.common.error import SignError
from doubleping.common.signer import DigestSha256Signer, Signer
from doubleping.stats.correlator import StatisticsCorrelator
from doubleping.transport.base import RequestChannel


class FakeNetwork:
    """
    In-memory overlay with a virtual clock.

    Every channel shares one timer heap; run() pops timers in deadline order
    until a channel shuts down or nothing is left to do.
    """

    def __init__(self, delay: float = 0.001):
        self.delay = delay
        self.now = 0.0
        self.timers: List[Tuple[float, int, Callable]] = []
        self.order = count()
        self.routes: Dict[str, Tuple['FakeChannel', Callable]] = {}
        self.channels: List['FakeChannel'] = []
        self.drop: Callable[[NDNPacket], bool] = lambda interest: False
        self.stopped = False

    def schedule(self, delay: float, callback: Callable):
        heapq.heappush(self.timers, (self.now + delay, next(self.order), callback))

    def run(self):
        while self.timers and not self.stopped:
            deadline, _, callback = heapq.heappop(self.timers)
            self.now = max(self.now, deadline)
            callback()

    def deliver(self, interest: NDNPacket):
        prefix = longest_prefix_match(interest.name, self.routes)
        if prefix is None or self.drop(interest):
            return
        _, handler = self.routes[prefix]
        self.schedule(self.delay, lambda: handler(interest))

    def deliver_data(self, data: NDNPacket):
        for channel in self.channels:
            channel.satisfy(data)


class FakeChannel(RequestChannel):

    def __init__(self, net: FakeNetwork):
        self.net = net
        self.pit: Dict[str, dict] = {}
        self.sent: List[NDNPacket] = []
        self.responses: List[NDNPacket] = []
        self.closed = False
        net.channels.append(self)

    def advertise(self, prefix, on_request, on_register_failed, on_register_success=None):
        owner = self.net.routes.get(prefix)
        if owner is not None and owner[0] is not self:
            on_register_failed(prefix, 'prefix already registered')
            return
        self.net.routes[prefix] = (self, on_request)
        if on_register_success is not None:
            on_register_success(prefix)

    def request(self, interest, on_response, on_timeout):
        entry = {'interest': interest, 'on_response': on_response,
                 'on_timeout': on_timeout}
        self.pit[interest.name] = entry
        self.sent.append(interest)

        def expire():
            if self.pit.get(interest.name) is entry:
                del self.pit[interest.name]
                on_timeout(interest)

        self.net.schedule(interest.lifetime / 1000, expire)
        self.net.deliver(interest)

    def satisfy(self, data: NDNPacket):
        for name in [n for n in self.pit if is_prefix_of(n, data.name)]:
            entry = self.pit.pop(name)
            self.net.schedule(self.net.delay,
                              lambda e=entry: e['on_response'](e['interest'], data))

    def respond(self, data):
        self.responses.append(data)
        self.net.deliver_data(data)

    def schedule(self, delay, callback):
        self.net.schedule(delay, callback)

    def process_events(self):
        self.net.run()

    def shutdown(self):
        self.closed = True
        self.net.stopped = True


@pytest.fixture
def net() -> FakeNetwork:
    return FakeNetwork()


@pytest.fixture
def channel(net) -> Callable[[], FakeChannel]:
    """
    Builds channels attached to the shared fake network.
    """
    return lambda: FakeChannel(net)


@pytest.fixture
def signer() -> DigestSha256Signer:
    return DigestSha256Signer()


class NoIdentitySigner(Signer):

    def _digest(self, portion):
        raise SignError('no identity')


@pytest.fixture
def broken_signer() -> Signer:
    """
    A signer that fails on every packet.
    """
    return NoIdentitySigner()


@pytest.fixture
def metrics_dir(tmp_path) -> str:
    return str(tmp_path)


@pytest.fixture
def sinks(metrics_dir) -> Dict[str, MetricSink]:
    return {
        'driver': MetricSink(join(metrics_dir, DRIVER_LOG)),
        'relay': MetricSink(join(metrics_dir, RELAY_LOG)),
        'terminal': MetricSink(join(metrics_dir, TERMINAL_LOG)),
    }


@pytest.fixture
def correlator(metrics_dir) -> StatisticsCorrelator:
    return StatisticsCorrelator.from_dir(metrics_dir)

