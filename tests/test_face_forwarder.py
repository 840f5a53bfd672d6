"""
The three roles talking through a real forwarder over UDP on the loopback.
"""
from os.path import join
from socket import AF_INET, SOCK_DGRAM, socket
from threading import Thread
import os
import signal
import time

import pytest

from doubleping import srva
from doubleping.client.driver import DriverState, PingDriver
from doubleping.common.error import TransportRegistrationError
from doubleping.common.metrics import RELAY_LOG, TERMINAL_LOG, MetricSink
from doubleping.common.ndn.ndn_packets import (PACKET_TYPE_ACCEPT, PACKET_TYPE_REGISTER,
                                               PACKET_TYPE_REJECT, NDNPacket, make_control)
from doubleping.forwarder.forwarder import Forwarder
from doubleping.server.relay import RelayResponder
from doubleping.server.terminal import TerminalResponder
from doubleping.transport.face import Face, Registration


def wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() >= deadline:
            return False
        time.sleep(0.01)
    return True


@pytest.fixture
def forwarder():
    fwd = Forwarder(('127.0.0.1', 0), purge_interval=0.05, registration_lifetime=0.5)
    fwd.start()
    yield fwd
    fwd.terminate('test over')
    fwd.join(5)


@pytest.fixture
def face(forwarder):
    return lambda: Face(forwarder.address, register_timeout=1.0, refresh_interval=0.1)


@pytest.fixture
def servers(face, signer, metrics_dir):
    terminal = TerminalResponder(face(), signer, MetricSink(join(metrics_dir, TERMINAL_LOG)))
    relay = RelayResponder(face(), signer, MetricSink(join(metrics_dir, RELAY_LOG)))
    terminal.start()
    relay.start()
    assert terminal.ready.wait(5)
    assert relay.ready.wait(5)

    yield terminal, relay

    for srv in (terminal, relay):
        srv.terminate()
        srv.join(5)


def test_full_run(face, servers, sinks, correlator, capsys):
    terminal, relay = servers
    driver = PingDriver(face(), sinks['driver'], correlator, cycles=3, seq_base=7,
                        interval=0.05, drain_interval=2.0)
    driver.start()
    driver.join(10)

    assert not driver.is_alive()
    assert driver.state == DriverState.STOPPED
    assert driver.completed == [7, 8, 9]
    assert terminal.answered == 3

    report = driver.report
    assert [r.sequence for r in report.rows] == [7, 8, 9]
    assert not report.partial
    for row in report.rows:
        assert row.rtt > 0
        assert row.inner_rtt > 0
        assert row.rtt >= row.inner_rtt

    out = capsys.readouterr().out
    assert out.splitlines()[0].startswith('count\tsequence')


def test_prefix_taken_by_another_face(face, servers, signer, metrics_dir):
    intruder = TerminalResponder(face(), signer, MetricSink(join(metrics_dir, 'other.log')))

    with pytest.raises(TransportRegistrationError) as e:
        intruder.serve()

    assert 'already registered' in str(e.value)
    assert not intruder.ready.is_set()


def test_registration_without_forwarder(signer, metrics_dir):
    # nothing listens on the forwarder's port
    fwd = Forwarder(('127.0.0.1', 0))
    address = fwd.address
    fwd.sock.close()

    srv = TerminalResponder(Face(address, register_timeout=0.2), signer,
                            MetricSink(join(metrics_dir, TERMINAL_LOG)))
    with pytest.raises(TransportRegistrationError) as e:
        srv.serve()
    assert 'no answer' in str(e.value)


def test_terminate_withdraws_prefix(forwarder, face, signer, metrics_dir):
    srv = TerminalResponder(face(), signer, MetricSink(join(metrics_dir, TERMINAL_LOG)))
    srv.start()
    assert srv.ready.wait(5)
    assert forwarder.fib.lookup('/serverA/interest2/1') is not None

    srv.terminate()
    srv.join(5)

    assert not srv.is_alive()
    assert wait_until(lambda: forwarder.fib.lookup('/serverA/interest2/1') is None)


def test_interest_without_route_times_out(face, sinks, correlator):
    driver = PingDriver(face(), sinks['driver'], correlator, base_name='/nobody/home',
                        cycles=1, seq_base=1, lifetime=100, drain_interval=0)
    driver.start()
    driver.join(5)

    assert driver.timed_out == [1]
    assert driver.report.partial


def test_live_server_keeps_its_prefix(forwarder, face, servers, signer, metrics_dir):
    # several registration lifetimes go by, the servers register again meanwhile
    time.sleep(4 * forwarder.registration_lifetime)

    intruder = TerminalResponder(face(), signer, MetricSink(join(metrics_dir, 'other.log')))
    with pytest.raises(TransportRegistrationError):
        intruder.serve()


def test_prefix_of_a_vanished_face_expires(forwarder, face, signer, metrics_dir):
    # a server that dies without unregistering
    sock = socket(AF_INET, SOCK_DGRAM)
    sock.settimeout(5)
    sock.sendto(make_control(PACKET_TYPE_REGISTER, '/serverA').to_bytes(), forwarder.address)
    assert NDNPacket.from_bytes(sock.recvfrom(1500)[0]).is_accept
    sock.close()

    assert forwarder.fib.owner('/serverA') is not None
    assert wait_until(lambda: forwarder.fib.owner('/serverA') is None)

    srv = TerminalResponder(face(), signer, MetricSink(join(metrics_dir, TERMINAL_LOG)))
    srv.start()
    try:
        assert srv.ready.wait(5)
    finally:
        srv.terminate()
        srv.join(5)


@pytest.fixture
def sigterm_handler():
    previous = signal.getsignal(signal.SIGTERM)
    yield
    signal.signal(signal.SIGTERM, previous)


def test_sigterm_withdraws_prefix(forwarder, metrics_dir, sigterm_handler):
    def kill_when_registered():
        if wait_until(lambda: forwarder.fib.owner('/serverA') is not None):
            os.kill(os.getpid(), signal.SIGTERM)

    killer = Thread(target=kill_when_registered, daemon=True)
    killer.start()

    status = srva.main(['/serverA', '-f', '127.0.0.1:%d' % forwarder.address[1],
                        '-m', metrics_dir])
    killer.join(5)

    assert status == 0
    assert wait_until(lambda: forwarder.fib.owner('/serverA') is None, timeout=0.3)


def test_face_gives_up_a_prefix_the_forwarder_gave_away():
    face = Face(('127.0.0.1', 9))
    failed = []
    try:
        face.handlers['/serverA'] = Registration(
            lambda interest: None, lambda prefix, reason: failed.append((prefix, reason)),
            None, 0.0)

        face._handle_packet(make_control(PACKET_TYPE_ACCEPT, '/serverA'))
        assert '/serverA' in face.handlers

        face._handle_packet(make_control(PACKET_TYPE_REJECT, '/serverA', 'taken'))
        assert face.handlers == {}
        assert failed == [('/serverA', 'taken')]
    finally:
        face.shutdown()
