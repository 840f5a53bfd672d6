import pytest

from doubleping.common.ndn import name as names


def test_append_normalizes_slashes():
    assert names.append('/serverB/', 'interest1', 1000) == '/serverB/interest1/1000'
    assert names.append('serverA', '/testApp/') == '/serverA/testApp'


def test_append_version_uses_given_version():
    assert names.append_version('/a/testApp', 1700000000000) == '/a/testApp/v=1700000000000'


def test_append_version_defaults_to_unix_millis():
    version = names.components(names.append_version('/a'))[-1]
    assert version.startswith(names.VERSION_MARKER)
    assert int(version[len(names.VERSION_MARKER):]) > 1500000000000


def test_sequence_of():
    assert names.sequence_of('/serverB/interest1/1000') == 1000

    with pytest.raises(ValueError):
        names.sequence_of('/serverB/interest1')
    with pytest.raises(ValueError):
        names.sequence_of('/')


def test_is_prefix_of_matches_whole_components():
    assert names.is_prefix_of('/serverA', '/serverA/interest2/7')
    assert names.is_prefix_of('/', '/anything')
    assert not names.is_prefix_of('/server', '/serverA/interest2')
    assert not names.is_prefix_of('/serverA/interest2/7', '/serverA')


def test_longest_prefix_match():
    prefixes = ['/serverA', '/serverA/interest2', '/serverB']
    assert names.longest_prefix_match('/serverA/interest2/3', prefixes) == '/serverA/interest2'
    assert names.longest_prefix_match('/serverA/other', prefixes) == '/serverA'
    assert names.longest_prefix_match('/serverC/x', prefixes) is None
