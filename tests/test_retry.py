from unittest.mock import Mock

import pytest

from showrelay.retry import RetryPolicy, retry


def test_returns_first_success_without_sleeping():
    sleep = Mock()
    op = Mock(return_value="ok")
    assert retry(op, RetryPolicy(), sleep=sleep) == "ok"
    assert op.call_count == 1
    sleep.assert_not_called()


def test_retries_until_success_with_exponential_delays():
    sleeps = []
    op = Mock(side_effect=[RuntimeError("a"), RuntimeError("b"), "done"])
    policy = RetryPolicy(max_retries=3, initial_delay=1.0, backoff_factor=2.0)
    assert retry(op, policy, sleep=sleeps.append) == "done"
    assert op.call_count == 3
    assert sleeps == [1.0, 2.0]


def test_never_exceeds_max_retries_and_surfaces_last_error():
    errors = [RuntimeError(f"fail {i}") for i in range(10)]
    op = Mock(side_effect=errors)
    with pytest.raises(RuntimeError) as exc:
        retry(op, RetryPolicy(max_retries=2), sleep=lambda d: None)
    assert op.call_count == 3
    assert exc.value is errors[2]


def test_delay_is_capped_by_max_delay():
    sleeps = []
    op = Mock(side_effect=[ValueError()] * 4 + ["ok"])
    policy = RetryPolicy(max_retries=5, initial_delay=10.0, backoff_factor=3.0, max_delay=25.0)
    retry(op, policy, sleep=sleeps.append)
    assert sleeps == [10.0, 25.0, 25.0, 25.0]


def test_non_retryable_error_propagates_immediately():
    op = Mock(side_effect=KeyError("nope"))
    sleep = Mock()
    with pytest.raises(KeyError):
        retry(op, RetryPolicy(max_retries=3, is_retryable=lambda e: False), sleep=sleep)
    assert op.call_count == 1
    sleep.assert_not_called()


def test_on_retry_receives_attempt_error_and_delay():
    on_retry = Mock()
    err = RuntimeError("x")
    op = Mock(side_effect=[err, "ok"])
    retry(op, RetryPolicy(initial_delay=0.5, on_retry=on_retry), sleep=lambda d: None)
    on_retry.assert_called_once_with(1, err, 0.5)


def test_predicate_may_mutate_state_for_next_attempt():
    payload = {"items": list(range(10))}
    seen = []

    def op():
        seen.append(len(payload["items"]))
        if len(payload["items"]) > 5:
            raise ValueError("too many")
        return "ok"

    def shrink(error):
        payload["items"] = payload["items"][:5]
        return True

    assert retry(op, RetryPolicy(max_retries=1, is_retryable=shrink), sleep=lambda d: None) == "ok"
    assert seen == [10, 5]


def test_zero_retries_means_single_attempt():
    op = Mock(side_effect=RuntimeError("once"))
    with pytest.raises(RuntimeError):
        retry(op, RetryPolicy(max_retries=0), sleep=lambda d: None)
    assert op.call_count == 1


def test_policy_replace_keeps_other_fields():
    base = RetryPolicy(max_retries=2, initial_delay=1.0)
    derived = base.replace(max_retries=5)
    assert derived.max_retries == 5
    assert derived.initial_delay == 1.0
    assert base.max_retries == 2
