"""
Unit Tests for the Auth Guard

Reliability Level: L6 Critical
Python 3.8 Compatible

Tests the AuthGuard:
- Verification order (allowlist, lockout, missing, invalid)
- Lockout after the threshold and expiry after the lock duration
- Attempt window pruning
- Sweep of idle records
"""

import pytest

from rank_gateway.auth.guard import AuthGuard, AuthResult
from rank_gateway.clock import ManualClock
from rank_gateway.errors import AuthError, ErrorKind


API_KEY = "s3cret-key-0123456789"
CLIENT_IP = "1.2.3.4"


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def guard(clock: ManualClock) -> AuthGuard:
    return AuthGuard(
        key_source=API_KEY,
        lock_threshold=5,
        lock_duration_seconds=900,
        attempt_window_seconds=300,
        clock=clock,
    )


# =============================================================================
# Credential Verification
# =============================================================================

class TestVerify:

    def test_exact_key_is_accepted(self, guard: AuthGuard) -> None:
        result = guard.verify(CLIENT_IP, API_KEY)
        assert result.ok is True
        assert result.reason is None

    def test_missing_key_is_rejected_and_counted(self, guard: AuthGuard) -> None:
        result = guard.verify(CLIENT_IP, None)
        assert result.ok is False
        assert result.reason is ErrorKind.MISSING_CREDENTIAL
        assert guard.tracked_count == 1

    def test_empty_key_counts_as_missing(self, guard: AuthGuard) -> None:
        assert guard.verify(CLIENT_IP, "").reason is ErrorKind.MISSING_CREDENTIAL

    def test_wrong_length_key_is_rejected(self, guard: AuthGuard) -> None:
        result = guard.verify(CLIENT_IP, API_KEY + "x")
        assert result.reason is ErrorKind.INVALID_CREDENTIAL

    def test_same_length_wrong_key_is_rejected(self, guard: AuthGuard) -> None:
        wrong = API_KEY[:-1] + ("0" if API_KEY[-1] != "0" else "1")
        assert len(wrong) == len(API_KEY)
        assert guard.verify(CLIENT_IP, wrong).reason is ErrorKind.INVALID_CREDENTIAL

    def test_callable_key_source_is_read_on_every_check(self, clock: ManualClock) -> None:
        keys = {"current": "first-key"}
        guard = AuthGuard(key_source=lambda: keys["current"], clock=clock)

        assert guard.verify(CLIENT_IP, "first-key").ok
        keys["current"] = "rotated-key"
        assert not guard.verify(CLIENT_IP, "first-key").ok
        assert guard.verify(CLIENT_IP, "rotated-key").ok

    def test_unset_expected_key_rejects_everything(self, clock: ManualClock) -> None:
        guard = AuthGuard(key_source="", clock=clock)
        assert guard.verify(CLIENT_IP, "anything").reason is ErrorKind.INVALID_CREDENTIAL

    def test_success_clears_prior_failures(self, guard: AuthGuard) -> None:
        guard.verify(CLIENT_IP, "wrong")
        guard.verify(CLIENT_IP, "wrong")
        assert guard.tracked_count == 1

        assert guard.verify(CLIENT_IP, API_KEY).ok
        assert guard.tracked_count == 0


# =============================================================================
# IP Allowlist
# =============================================================================

class TestAllowlist:

    def test_ip_outside_allowlist_is_denied_before_key_check(self, clock: ManualClock) -> None:
        guard = AuthGuard(key_source=API_KEY, ip_allowlist=["10.0.0.1"], clock=clock)
        result = guard.verify(CLIENT_IP, API_KEY)
        assert result.reason is ErrorKind.IP_DENIED
        # Denied IPs never accumulate failed attempts
        assert guard.tracked_count == 0

    def test_allowlist_precedes_lockout(self, clock: ManualClock) -> None:
        guard = AuthGuard(
            key_source=API_KEY,
            ip_allowlist=["10.0.0.1"],
            lock_threshold=1,
            clock=clock,
        )
        guard.record_failure(CLIENT_IP)
        assert guard.is_locked_out(CLIENT_IP)
        assert guard.verify(CLIENT_IP, API_KEY).reason is ErrorKind.IP_DENIED

    def test_localhost_alias_covers_loopback_addresses(self, clock: ManualClock) -> None:
        guard = AuthGuard(key_source=API_KEY, ip_allowlist=["localhost"], clock=clock)
        assert guard.is_ip_allowed("127.0.0.1")
        assert guard.is_ip_allowed("::1")
        assert guard.is_ip_allowed("::ffff:127.0.0.1")
        assert not guard.is_ip_allowed("192.168.1.10")

    def test_wildcard_allows_everyone(self, clock: ManualClock) -> None:
        guard = AuthGuard(key_source=API_KEY, ip_allowlist=["*"], clock=clock)
        assert guard.is_ip_allowed("203.0.113.9")

    def test_empty_allowlist_allows_everyone(self, guard: AuthGuard) -> None:
        assert guard.is_ip_allowed("203.0.113.9")


# =============================================================================
# Lockout
# =============================================================================

class TestLockout:

    def test_five_failures_then_sixth_call_is_locked_out(
        self, guard: AuthGuard, clock: ManualClock
    ) -> None:
        for _ in range(5):
            result = guard.verify(CLIENT_IP, "wrong-key")
            assert result.reason is ErrorKind.INVALID_CREDENTIAL
            clock.advance(2)

        result = guard.verify(CLIENT_IP, "wrong-key")
        assert result.reason is ErrorKind.LOCKED_OUT
        # Fifth failure at t=8s, sixth call at t=10s
        assert 895 <= result.retry_after_seconds <= 900

    def test_locked_ip_is_rejected_even_with_correct_key(
        self, guard: AuthGuard, clock: ManualClock
    ) -> None:
        for _ in range(5):
            guard.verify(CLIENT_IP, "wrong-key")

        result = guard.verify(CLIENT_IP, API_KEY)
        assert result.reason is ErrorKind.LOCKED_OUT

    def test_lock_expires_and_attempts_reset(self, guard: AuthGuard, clock: ManualClock) -> None:
        for _ in range(5):
            guard.record_failure(CLIENT_IP)
        assert guard.is_locked_out(CLIENT_IP)

        clock.advance(899)
        assert guard.is_locked_out(CLIENT_IP)

        clock.advance(1)
        assert not guard.is_locked_out(CLIENT_IP)

        # Attempts were cleared with the lock: one more failure does not relock
        guard.record_failure(CLIENT_IP)
        assert not guard.is_locked_out(CLIENT_IP)

    def test_failures_outside_window_do_not_accumulate(
        self, guard: AuthGuard, clock: ManualClock
    ) -> None:
        for _ in range(4):
            guard.record_failure(CLIENT_IP)
        clock.advance(301)

        guard.record_failure(CLIENT_IP)
        assert not guard.is_locked_out(CLIENT_IP)

    def test_lockout_is_per_ip(self, guard: AuthGuard) -> None:
        for _ in range(5):
            guard.record_failure(CLIENT_IP)

        assert guard.is_locked_out(CLIENT_IP)
        assert guard.verify("5.6.7.8", API_KEY).ok

    def test_remaining_seconds_is_zero_when_not_locked(self, guard: AuthGuard) -> None:
        assert guard.lockout_remaining_seconds(CLIENT_IP) == 0

    def test_locked_ips_and_stats(self, guard: AuthGuard) -> None:
        for _ in range(5):
            guard.record_failure(CLIENT_IP)
        guard.record_failure("5.6.7.8")

        assert guard.locked_ips() == [CLIENT_IP]
        stats = guard.stats()
        assert stats["locked_count"] == 1
        assert stats["tracked_records"] == 2


# =============================================================================
# Maintenance
# =============================================================================

class TestSweep:

    def test_sweep_removes_idle_records_only(self, guard: AuthGuard, clock: ManualClock) -> None:
        guard.record_failure("5.6.7.8")
        for _ in range(5):
            guard.record_failure(CLIENT_IP)

        clock.advance(301)
        removed = guard.sweep()

        assert removed == 1
        assert guard.locked_ips() == [CLIENT_IP]

    def test_sweep_removes_expired_locks(self, guard: AuthGuard, clock: ManualClock) -> None:
        for _ in range(5):
            guard.record_failure(CLIENT_IP)

        clock.advance(901)
        assert guard.sweep() == 1
        assert guard.tracked_count == 0


# =============================================================================
# AuthResult
# =============================================================================

class TestAuthResult:

    def test_ok_result_does_not_raise(self) -> None:
        AuthResult(ok=True).raise_for_rejection()

    def test_lockout_result_raises_with_retry_after(self) -> None:
        result = AuthResult(ok=False, reason=ErrorKind.LOCKED_OUT, retry_after_seconds=900)

        with pytest.raises(AuthError) as exc_info:
            result.raise_for_rejection()

        error = exc_info.value
        assert error.status_code == 429
        assert error.error_code == "AUTH-004"
        body = error.to_body()
        assert body["retryAfter"] == 900
        assert body["error"] == "LockedOut"
        assert "900 seconds" in body["message"]

    def test_missing_credential_maps_to_401(self) -> None:
        with pytest.raises(AuthError) as exc_info:
            AuthResult(ok=False, reason=ErrorKind.MISSING_CREDENTIAL).raise_for_rejection()
        assert exc_info.value.status_code == 401
        assert "retryAfter" not in exc_info.value.to_body()

    def test_invalid_credential_maps_to_403(self) -> None:
        with pytest.raises(AuthError) as exc_info:
            AuthResult(ok=False, reason=ErrorKind.INVALID_CREDENTIAL).raise_for_rejection()
        assert exc_info.value.status_code == 403
