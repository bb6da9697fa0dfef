import pytest

from agent_client.network.connection import backoff_delay


def test_first_delay_is_base():
    assert backoff_delay(0, 1.0, 30.0) == 1.0


def test_delays_double_until_capped():
    delays = [backoff_delay(attempt, 1.0, 30.0) for attempt in range(8)]
    assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0, 30.0]


def test_sequence_is_non_decreasing_and_bounded():
    delays = [backoff_delay(attempt, 0.25, 7.5) for attempt in range(200)]
    assert all(a <= b for a, b in zip(delays, delays[1:]))
    assert max(delays) == 7.5


def test_large_attempt_counts_do_not_overflow():
    assert backoff_delay(5000, 1.0, 30.0) == 30.0


def test_negative_attempt_rejected():
    with pytest.raises(ValueError):
        backoff_delay(-1, 1.0, 30.0)
