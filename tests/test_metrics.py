from os.path import join

import pytest

from doubleping.common.error import MetricIOError
from doubleping.common.metrics import MetricSink, MetricSource, ensure_dir


def test_records_are_blocks_of_integer_lines(tmp_path):
    path = str(tmp_path / 'relay.log')
    sink = MetricSink(path)
    sink.append(1000, 7, 10, 20, 30, 40)
    sink.append(1001, 8, 11, 21, 31, 41)

    with open(path) as f:
        assert f.read().split('\n') == [
            '1000', '7', '10', '20', '30', '40',
            '1001', '8', '11', '21', '31', '41', '']

    with MetricSource(path) as source:
        assert source.read_next(5) == (1000, 7, 10, 20, 30, 40)
        assert source.read_next(5) == (1001, 8, 11, 21, 31, 41)
        assert source.read_next(5) is None


def test_missing_file_has_no_records(tmp_path):
    source = MetricSource(str(tmp_path / 'nothing.log'))
    assert source.read_next(2) is None
    assert list(source.records(2)) == []


def test_truncated_block_is_an_error(tmp_path):
    path = tmp_path / 'driver.log'
    path.write_text('1000\n10\n20\n1001\n11\n')

    source = MetricSource(str(path))
    records = source.records(2)
    assert next(records) == (1000, 10, 20)
    with pytest.raises(MetricIOError):
        next(records)


def test_garbage_is_an_error(tmp_path):
    path = tmp_path / 'driver.log'
    path.write_text('1000\nten\n20\n')

    with pytest.raises(MetricIOError):
        list(MetricSource(str(path)).records(2))


def test_records_restart_from_the_top(tmp_path):
    path = str(tmp_path / 'terminal.log')
    MetricSink(path).append(5, 1, 2)
    source = MetricSource(path)

    assert list(source.records(2)) == [(5, 1, 2)]
    assert list(source.records(2)) == [(5, 1, 2)]


def test_unwritable_sink_raises_metric_io_error(tmp_path):
    sink = MetricSink(join(str(tmp_path), 'missing', 'driver.log'))
    with pytest.raises(MetricIOError):
        sink.append(1, 2, 3)


def test_ensure_dir(tmp_path):
    target = join(str(tmp_path), 'a', 'b')
    assert ensure_dir(target) == target
    assert ensure_dir(target) == target
