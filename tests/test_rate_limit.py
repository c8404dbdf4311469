"""
Tests for the per-client rate limiter, at unit level with a frozen clock,
then through the credential endpoints.
"""
import threading
from types import SimpleNamespace

import pytest
from starlette.requests import Request

from exhibit_api.clock import FrozenClock
from exhibit_api.config import settings
from exhibit_api.rate_limit import RateLimiter, client_identity


def _limiter(window_ms=60_000, max=5, capacity=500):
    clock = FrozenClock()
    return RateLimiter(window_ms, max, capacity, clock=clock), clock


# ---------------------------------------------------------------------------
# Counter semantics
# ---------------------------------------------------------------------------

def test_exactly_max_requests_allowed_per_window():
    rl, _ = _limiter(max=5)
    decisions = [rl.check("1.2.3.4") for _ in range(6)]
    assert [d.allowed for d in decisions] == [True] * 5 + [False]
    assert [d.remaining for d in decisions[:5]] == [4, 3, 2, 1, 0]
    assert decisions[-1].retry_after == 60


def test_rejected_requests_are_not_counted():
    rl, _ = _limiter(max=2)
    rl.check("a")
    rl.check("a")
    for _ in range(5):
        assert not rl.check("a").allowed
    assert rl.count("a") == 2


def test_counter_resets_after_window():
    rl, clock = _limiter(window_ms=60_000, max=5)
    for _ in range(5):
        rl.check("a")
    assert not rl.check("a").allowed
    clock.advance(60)
    decision = rl.check("a")
    assert decision.allowed
    assert decision.remaining == 4


def test_counter_still_live_just_before_window_end():
    rl, clock = _limiter(window_ms=60_000, max=1)
    rl.check("a")
    clock.advance(59.9)
    assert not rl.check("a").allowed


def test_rejection_does_not_extend_window():
    rl, clock = _limiter(window_ms=10_000, max=1)
    rl.check("a")
    clock.advance(9)
    assert not rl.check("a").allowed
    clock.advance(1)
    assert rl.check("a").allowed


def test_each_allowed_request_rearms_the_window():
    rl, clock = _limiter(window_ms=10_000, max=3)
    rl.check("a")
    clock.advance(8)
    rl.check("a")
    clock.advance(8)
    # 16s after the first hit but only 8s after the last
    assert rl.count("a") == 2


def test_identities_are_independent():
    rl, _ = _limiter(max=1)
    assert rl.check("a").allowed
    assert rl.check("b").allowed
    assert not rl.check("a").allowed


def test_retry_after_rounds_up_to_whole_seconds():
    rl, _ = _limiter(window_ms=1_500, max=1)
    rl.check("a")
    assert rl.check("a").retry_after == 2


def test_capacity_is_never_exceeded():
    rl, _ = _limiter(max=5, capacity=3)
    for ident in ["a", "b", "c", "d", "e"]:
        rl.check(ident)
        assert len(rl) <= 3
    assert "a" not in rl
    assert "b" not in rl
    assert all(i in rl for i in ["c", "d", "e"])


def test_lru_eviction_keeps_recently_used_identity():
    rl, _ = _limiter(max=5, capacity=3)
    rl.check("a")
    rl.check("b")
    rl.check("c")
    rl.check("a")  # a is now most recent
    rl.check("d")
    assert "b" not in rl
    assert "a" in rl
    assert rl.count("a") == 2


def test_expired_entries_are_dropped_before_live_ones():
    rl, clock = _limiter(window_ms=10_000, max=5, capacity=2)
    rl.check("old")
    clock.advance(11)
    rl.check("b")
    rl.check("c")
    assert "old" not in rl
    assert "b" in rl and "c" in rl


def test_invalid_configuration_rejected():
    with pytest.raises(ValueError):
        RateLimiter(0, 5)
    with pytest.raises(ValueError):
        RateLimiter(1000, 0)
    with pytest.raises(ValueError):
        RateLimiter(1000, 5, capacity=0)


def test_concurrent_checks_never_overshoot():
    rl, _ = _limiter(max=50)
    allowed = []
    lock = threading.Lock()

    def hammer():
        for _ in range(20):
            d = rl.check("shared")
            if d.allowed:
                with lock:
                    allowed.append(d.remaining)

    threads = [threading.Thread(target=hammer) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(allowed) == 50
    assert sorted(allowed) == list(range(50))
    assert rl.count("shared") == 50


def test_reset_clears_all_counters():
    rl, _ = _limiter(max=1)
    rl.check("a")
    rl.reset()
    assert len(rl) == 0
    assert rl.check("a").allowed


# ---------------------------------------------------------------------------
# Client identity
# ---------------------------------------------------------------------------

def _request(headers=None, client=("10.0.0.9", 1234)):
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/auth/signin",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


def test_identity_uses_first_forwarded_address():
    req = _request({"X-Forwarded-For": " 203.0.113.7 , 10.0.0.1"})
    assert client_identity(req) == "203.0.113.7"


def test_identity_falls_back_to_peer_address():
    assert client_identity(_request()) == "10.0.0.9"


def test_forwarded_header_ignored_when_untrusted():
    req = _request({"X-Forwarded-For": "203.0.113.7"})
    assert client_identity(req, trust_forwarded_for=False) == "10.0.0.9"


def test_identity_empty_without_any_address():
    assert client_identity(_request(client=None)) == ""


# ---------------------------------------------------------------------------
# HTTP boundary
# ---------------------------------------------------------------------------

def _signin(client, ip):
    return client.post(
        "/auth/signin",
        json={"email": "nobody@example.com", "password": "wrong-password"},
        headers={"X-Forwarded-For": ip},
    )


def test_signin_sixth_attempt_gets_429(client):
    for _ in range(settings.signin_max):
        resp = _signin(client, "198.51.100.1")
        assert resp.status_code == 400
    resp = _signin(client, "198.51.100.1")
    assert resp.status_code == 429
    assert resp.json() == {"message": "Rate limit exceeded"}
    assert resp.headers["X-RateLimit-Limit"] == str(settings.signin_max)
    assert resp.headers["X-RateLimit-Remaining"] == "0"
    assert resp.headers["Retry-After"] == "60"


def test_other_client_unaffected(client):
    for _ in range(settings.signin_max + 1):
        _signin(client, "198.51.100.2")
    assert _signin(client, "198.51.100.3").status_code == 400


def test_allowed_response_carries_limit_headers(client):
    resp = client.post(
        "/auth/forgot-password",
        json={"email": "nobody@example.com"},
        headers={"X-Forwarded-For": "198.51.100.4"},
    )
    assert resp.status_code == 200
    assert resp.headers["X-RateLimit-Limit"] == str(settings.password_reset_max)
    assert resp.headers["X-RateLimit-Remaining"] == str(settings.password_reset_max - 1)
    assert "Retry-After" not in resp.headers


def test_groups_have_separate_counters(client):
    for _ in range(settings.signin_max + 1):
        _signin(client, "198.51.100.5")
    resp = client.post(
        "/auth/forgot-password",
        json={"email": "nobody@example.com"},
        headers={"X-Forwarded-For": "198.51.100.5"},
    )
    assert resp.status_code == 200


def test_window_expiry_through_http(client, frozen_clock):
    from exhibit_api.main import app
    from exhibit_api.rate_limit import build_rate_limiters

    app.state.rate_limiters = build_rate_limiters(settings, clock=frozen_clock)
    for _ in range(settings.signin_max):
        _signin(client, "198.51.100.6")
    assert _signin(client, "198.51.100.6").status_code == 429
    frozen_clock.advance(minutes=1)
    assert _signin(client, "198.51.100.6").status_code == 400


def test_anonymous_client_rejected_by_default(monkeypatch):
    from exhibit_api import rate_limit

    monkeypatch.setattr(rate_limit, "client_identity", lambda request, trust=True: "")
    dep = rate_limit.rate_limited("signin")
    request = SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace(
        rate_limiters={"signin": RateLimiter(60_000, 5)}
    )))
    with pytest.raises(rate_limit.RateLimitRejected) as exc:
        dep(request, SimpleNamespace(headers={}))
    assert exc.value.decision.retry_after == 60


def test_anonymous_clients_share_a_bucket_when_configured(monkeypatch):
    from exhibit_api import rate_limit

    monkeypatch.setattr(rate_limit, "client_identity", lambda request, trust=True: "")
    monkeypatch.setattr(settings, "anonymous_client_policy", "shared")
    bucket = RateLimiter(60_000, 2)
    request = SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace(
        rate_limiters={"signin": bucket}
    )))
    dep = rate_limit.rate_limited("signin")
    response = SimpleNamespace(headers={})
    dep(request, response)
    dep(request, response)
    assert response.headers["X-RateLimit-Remaining"] == "0"
    with pytest.raises(rate_limit.RateLimitRejected):
        dep(request, response)
