import logging
import os
import signal
import time

import pytest

from doubleping import clt, fwd, report, srva, srvb
from doubleping.common.cli import parse_level, terminate_on_signal
from doubleping.transport.base import parse_address


@pytest.mark.parametrize('main, argv', [
    (srva.main, []),
    (srvb.main, ['/serverB']),
    (clt.main, ['/serverB/interest1']),
    (clt.main, ['/serverB/interest1', 'three']),
    (report.main, []),
])
def test_missing_arguments_exit_with_usage(main, argv, capsys):
    with pytest.raises(SystemExit) as e:
        main(argv)

    assert e.value.code == 1
    assert 'usage:' in capsys.readouterr().err


def test_forwarder_bad_port(capsys):
    with pytest.raises(SystemExit) as e:
        fwd.main(['-p', 'http'])
    assert e.value.code == 1


def test_stats_prints_report(sinks, metrics_dir, capsys):
    for seq in (10, 11):
        sinks['driver'].append(seq, 1000, 9000)
        sinks['relay'].append(seq, seq + 90, 2000, 3000, 7000, 8000)
        sinks['terminal'].append(seq + 90, 4000, 5000)

    assert report.main(['2', '-m', metrics_dir]) == 0

    lines = capsys.readouterr().out.splitlines()
    assert lines[0].split('\t')[:3] == ['count', 'sequence', 'interest_rtt']
    assert lines[1].split('\t')[:3] == ['1', '10', '3.000']
    assert lines[2].split('\t')[:2] == ['2', '11']
    assert lines[3].startswith('avg')


def test_stats_on_empty_dir(tmp_path, capsys):
    assert report.main(['3', '-m', str(tmp_path / 'none')]) == 0
    assert 'partial: 0 of 3 cycles' in capsys.readouterr().out


@pytest.mark.parametrize('text, address', [
    ('[::1]:6363', ('::1', 6363)),
    ('[::1]', ('::1', 9)),
    ('localhost:7000', ('localhost', 7000)),
    ('127.0.0.1', ('127.0.0.1', 9)),
])
def test_parse_address(text, address):
    assert parse_address(text, 9) == address


def test_parse_level():
    assert parse_level('debug') == logging.DEBUG
    assert parse_level('warn') == logging.WARNING
    assert parse_level('err') == logging.ERROR
    assert parse_level('anything') == logging.INFO


def test_terminate_on_signal():
    calls = []
    previous = terminate_on_signal(lambda: calls.append('terminated'))
    try:
        os.kill(os.getpid(), signal.SIGTERM)
        deadline = time.monotonic() + 2
        while not calls and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        signal.signal(signal.SIGTERM, previous)

    assert calls == ['terminated']
