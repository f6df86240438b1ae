from datetime import date

from bailbonds.portal import (
    LoginRateLimiter,
    PortalSessions,
    authenticate,
    hash_password,
    verify_password,
)
from bailbonds.storage import MemoryStorage


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_password_hashing() -> None:
    stored = hash_password("secret", iterations=1000)
    assert stored.startswith("pbkdf2_sha256$1000$")
    assert verify_password("secret", stored)
    assert not verify_password("Secret", stored)
    assert hash_password("secret", iterations=1000) != stored


def test_verify_rejects_malformed_hashes() -> None:
    assert not verify_password("secret", None)
    assert not verify_password("secret", "plain-text")
    assert not verify_password("secret", "md5$10$salt$abc")
    assert not verify_password("secret", "pbkdf2_sha256$many$salt$abc")


def test_sessions_expire() -> None:
    clock = FakeClock()
    sessions = PortalSessions(ttl_seconds=60, clock=clock)
    token = sessions.issue("client-2")
    assert sessions.verify(token) == "client-2"
    assert sessions.verify("forged") is None
    assert sessions.verify(None) is None
    clock.now += 60
    assert sessions.verify(token) is None


def test_sessions_revoke() -> None:
    sessions = PortalSessions(clock=FakeClock())
    first = sessions.issue("client-1")
    second = sessions.issue("client-1")
    other = sessions.issue("client-2")
    sessions.revoke(first)
    assert sessions.verify(first) is None
    assert sessions.verify(second) == "client-1"
    sessions.revoke_client("client-1")
    assert sessions.verify(second) is None
    assert sessions.verify(other) == "client-2"


def test_rate_limiter_window() -> None:
    clock = FakeClock()
    limiter = LoginRateLimiter(max_attempts=3, window_seconds=100, clock=clock)
    for _ in range(3):
        assert not limiter.blocked("10.0.0.1")
        limiter.record_failure("10.0.0.1")
    assert limiter.blocked("10.0.0.1")
    assert not limiter.blocked("10.0.0.2")
    clock.now += 100
    assert not limiter.blocked("10.0.0.1")


def test_rate_limiter_reset() -> None:
    limiter = LoginRateLimiter(max_attempts=1, clock=FakeClock())
    limiter.record_failure("ip")
    assert limiter.blocked("ip")
    limiter.reset("ip")
    assert not limiter.blocked("ip")


def test_authenticate() -> None:
    storage = MemoryStorage(today=date(2024, 6, 15))
    assert authenticate(storage, "mgarcia", "checkin2024")["id"] == "client-2"
    assert authenticate(storage, "mgarcia", "wrong") is None
    assert authenticate(storage, "nobody", "checkin2024") is None
    assert authenticate(storage, "", "checkin2024") is None
    storage.update_client("client-2", {"portal_enabled": False})
    assert authenticate(storage, "mgarcia", "checkin2024") is None


def test_rate_limiter_forgets_idle_keys() -> None:
    clock = FakeClock()
    limiter = LoginRateLimiter(max_attempts=2, window_seconds=10, clock=clock)
    assert not limiter.blocked("10.0.0.9")
    assert "10.0.0.9" not in limiter._attempts
    limiter.record_failure("10.0.0.1")
    clock.now += 10
    assert not limiter.blocked("10.0.0.1")
    assert limiter._attempts == {}
