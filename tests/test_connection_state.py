import pytest

from stagerelay.connectors import ConnectionState, FailureCounters, check_transition
from stagerelay.errors import InvalidStateTransition


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (ConnectionState.DISCONNECTED, ConnectionState.CONNECTING),
        (ConnectionState.CONNECTING, ConnectionState.CONNECTED),
        (ConnectionState.CONNECTED, ConnectionState.RECONNECTING),
        (ConnectionState.RECONNECTING, ConnectionState.DISCONNECTED),
        (ConnectionState.RECONNECTING, ConnectionState.CONNECTED),
        (ConnectionState.CONNECTED, ConnectionState.STOPPED),
    ],
)
def test_legal_transitions(current, target):
    check_transition(current, target)


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (ConnectionState.CONNECTED, ConnectionState.CONNECTING),
        (ConnectionState.DISCONNECTED, ConnectionState.CONNECTED),
        (ConnectionState.STOPPED, ConnectionState.CONNECTING),
    ],
)
def test_illegal_transitions(current, target):
    with pytest.raises(InvalidStateTransition):
        check_transition(current, target)


def test_failure_counters_reset():
    counters = FailureCounters(network=2, dom=1)
    counters.reset()
    assert (counters.network, counters.dom) == (0, 0)
