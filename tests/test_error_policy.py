"""Tests for the consecutive-failure circuit breaker."""

import pytest

from sitecrawl.crawler.error_policy import ErrorPolicy
from sitecrawl.exceptions import TooManyErrors


def test_trips_on_maximum_plus_one_consecutive_failures():
    policy = ErrorPolicy(maximum_number_of_errors=3)

    for _ in range(3):
        policy.record_failure()
    assert policy.consecutive_errors == 3

    with pytest.raises(TooManyErrors):
        policy.record_failure()


def test_success_resets_the_count():
    policy = ErrorPolicy(maximum_number_of_errors=3)

    for _ in range(3):
        policy.record_failure()
    policy.record_success()
    for _ in range(3):
        policy.record_failure()

    assert policy.consecutive_errors == 3
    assert policy.total_failures == 6


def test_zero_maximum_trips_on_first_failure():
    policy = ErrorPolicy(maximum_number_of_errors=0)

    with pytest.raises(TooManyErrors):
        policy.record_failure()


def test_reset_clears_counters():
    policy = ErrorPolicy(maximum_number_of_errors=5)
    policy.record_failure()
    policy.record_failure()

    policy.reset()

    assert policy.consecutive_errors == 0
    assert policy.total_failures == 0
