"""Circuit breaker tests"""

from eatwhat.services.circuit_breaker import CircuitBreaker


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def make_breaker(clock: FakeClock) -> CircuitBreaker:
    return CircuitBreaker(failure_threshold=5, cooldown_sec=600, clock=clock)


def test_opens_after_consecutive_failures():
    breaker = make_breaker(FakeClock())
    for _ in range(4):
        breaker.record_failure()
        assert breaker.state == "closed"
    breaker.record_failure()
    assert breaker.state == "open"
    assert breaker.allow_request() is False


def test_success_resets_failure_count():
    breaker = make_breaker(FakeClock())
    for _ in range(4):
        breaker.record_failure()
    breaker.record_success()
    breaker.record_failure()
    assert breaker.state == "closed"
    assert breaker.consecutive_failures == 1


def test_half_open_allows_exactly_one_trial():
    clock = FakeClock()
    breaker = make_breaker(clock)
    for _ in range(5):
        breaker.record_failure()

    clock.now = 599
    assert breaker.allow_request() is False

    clock.now = 600
    assert breaker.state == "half_open"
    assert breaker.allow_request() is True
    assert breaker.allow_request() is False

    breaker.record_success()
    assert breaker.state == "closed"
    assert breaker.allow_request() is True


def test_failed_trial_reopens_with_fresh_cooldown():
    clock = FakeClock()
    breaker = make_breaker(clock)
    for _ in range(5):
        breaker.record_failure()
    clock.now = 700
    assert breaker.allow_request() is True
    breaker.record_failure()
    assert breaker.state == "open"

    clock.now = 1200
    assert breaker.state == "open"
    clock.now = 1300
    assert breaker.state == "half_open"


def test_instances_do_not_share_state():
    first, second = make_breaker(FakeClock()), make_breaker(FakeClock())
    for _ in range(5):
        first.record_failure()
    assert first.state == "open"
    assert second.state == "closed"


def test_released_trial_can_be_claimed_again():
    clock = FakeClock()
    breaker = make_breaker(clock)
    for _ in range(5):
        breaker.record_failure()
    clock.now = 600
    assert breaker.allow_request() is True
    assert breaker.allow_request() is False

    breaker.release_trial()

    assert breaker.state == "half_open"
    assert breaker.allow_request() is True


def test_release_outside_half_open_is_a_no_op():
    breaker = make_breaker(FakeClock())
    breaker.release_trial()
    assert breaker.state == "closed"
    assert breaker.allow_request() is True
