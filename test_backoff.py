#!/usr/bin/env python3
"""Test the worker restart policy."""

from rtmp2hls.backoff import RestartPolicy


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_single_crash_restarts_immediately():
    clock = FakeClock()
    policy = RestartPolicy(initial=5.0, maximum=60.0, stable_after=30.0, clock=clock)
    assert policy.ready()

    assert policy.record_exit(runtime=0.2) == 0.0
    assert policy.ready()

    policy.reset()
    assert policy.record_exit(runtime=3600.0) == 0.0
    assert policy.failures == 0
    assert policy.ready()
    print("✓ Immediate restart test passed")


def test_exponential_backoff_with_ceiling():
    clock = FakeClock()
    policy = RestartPolicy(initial=5.0, maximum=30.0, stable_after=30.0, clock=clock)

    delays = [policy.record_exit(runtime=0.1) for _ in range(6)]
    assert delays == [0.0, 5.0, 10.0, 20.0, 30.0, 30.0]

    assert not policy.ready()
    assert policy.remaining() == 30.0
    clock.now += 29.0
    assert not policy.ready()
    clock.now += 1.0
    assert policy.ready()
    print("✓ Exponential backoff test passed")


def test_sustained_run_resets_backoff():
    clock = FakeClock()
    policy = RestartPolicy(initial=5.0, maximum=60.0, stable_after=30.0, clock=clock)

    for _ in range(4):
        policy.record_exit(runtime=1.0)
    assert policy.failures == 4

    assert policy.record_exit(runtime=45.0) == 0.0
    assert policy.failures == 0
    assert policy.ready()
    print("✓ Backoff reset test passed")


def test_circuit_breaker():
    clock = FakeClock()
    policy = RestartPolicy(initial=0.0, maximum=0.0, max_restarts=2, clock=clock)

    policy.record_exit(runtime=0.0)
    policy.record_exit(runtime=0.0)
    assert not policy.exhausted
    assert policy.ready()

    policy.record_exit(runtime=0.0)
    assert policy.exhausted
    assert not policy.ready()

    unlimited = RestartPolicy(clock=clock)
    for _ in range(100):
        unlimited.record_exit(runtime=0.0)
    assert not unlimited.exhausted
    print("✓ Circuit breaker test passed")


def test_default_policy_never_holds_back():
    clock = FakeClock()
    policy = RestartPolicy(clock=clock)

    delays = [policy.record_exit(runtime=0.1) for _ in range(5)]
    assert delays == [0.0] * 5
    assert policy.ready()
    print("✓ Default policy test passed")


if __name__ == "__main__":
    test_default_policy_never_holds_back()
    test_single_crash_restarts_immediately()
    test_exponential_backoff_with_ceiling()
    test_sustained_run_resets_backoff()
    test_circuit_breaker()
