"""Tests for the exponential-backoff retry executor."""

from __future__ import annotations

from typing import List

import pytest

from src.retry_handler import RetryHandler, RetryPolicy


class Flaky:
    """Fails ``failures`` times, then returns ``"ok"``."""

    def __init__(self, failures: int, exc: Exception = RuntimeError("boom")) -> None:
        self.failures = failures
        self.exc = exc
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return "ok"


def test_delay_without_jitter_doubles_and_caps() -> None:
    handler = RetryHandler(RetryPolicy(base_delay_ms=1000, max_delay_ms=5000, jitter=False))
    assert [handler.calculate_delay(a) for a in range(5)] == [1000, 2000, 4000, 5000, 5000]


@pytest.mark.parametrize("rand, expected", [(0.0, 500), (0.75, 1250), (0.5, 1000)])
def test_delay_with_jitter_scales_into_half_open_range(rand: float, expected: int) -> None:
    handler = RetryHandler(RetryPolicy(base_delay_ms=1000, jitter=True), rand=lambda: rand)
    assert handler.calculate_delay(0) == expected


def test_succeeds_on_third_attempt(sleeps: List[float]) -> None:
    op = Flaky(failures=2)
    handler = RetryHandler(RetryPolicy(max_retries=3, jitter=False), sleep=sleeps.append)
    assert handler.execute(op) == "ok"
    assert op.calls == 3
    assert sleeps == [1.0, 2.0]


def test_exhaustion_reraises_last_error_unchanged(sleeps: List[float]) -> None:
    error = ValueError("still failing")
    op = Flaky(failures=10, exc=error)
    policy = RetryPolicy(max_retries=3, base_delay_ms=1000, max_delay_ms=10000, jitter=True)
    handler = RetryHandler(policy, sleep=sleeps.append, rand=lambda: 0.9999)

    with pytest.raises(ValueError) as excinfo:
        handler.execute(op)

    assert excinfo.value is error
    assert op.calls == policy.max_retries + 1
    assert len(sleeps) == policy.max_retries
    assert sum(sleeps) <= policy.max_retries * policy.max_delay_ms / 1000 * 1.5


def test_non_retryable_errors_propagate_immediately(sleeps: List[float]) -> None:
    op = Flaky(failures=1, exc=KeyError("nope"))
    handler = RetryHandler(retry_on=(ValueError,), sleep=sleeps.append)
    with pytest.raises(KeyError):
        handler.execute(op)
    assert op.calls == 1
    assert sleeps == []


def test_zero_retries_calls_once(sleeps: List[float]) -> None:
    op = Flaky(failures=1)
    with pytest.raises(RuntimeError):
        RetryHandler(RetryPolicy(max_retries=0), sleep=sleeps.append).execute(op)
    assert op.calls == 1


def test_policy_from_config_uses_defaults_for_missing_keys() -> None:
    policy = RetryPolicy.from_config({"max_retries": 5, "jitter": False})
    assert policy == RetryPolicy(max_retries=5, base_delay_ms=1000, max_delay_ms=10000, jitter=False)
    assert RetryPolicy.from_config(None) == RetryPolicy()
