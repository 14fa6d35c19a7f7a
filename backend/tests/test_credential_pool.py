"""Tests for the API key pool and the shared pool machinery."""

import pytest

from vidscript.services.ai_clients import AIClientError, ErrorKind
from vidscript.services.pools import CredentialPool, FailureKind, PoolConfigurationError


def error(kind: ErrorKind) -> AIClientError:
    return AIClientError("upstream failed", kind=kind)


def test_round_robin_over_available_keys(clock):
    pool = CredentialPool(["k1", "k2", "k3"], clock=clock)

    drawn = [pool.next().secret for _ in range(6)]

    assert drawn == ["k1", "k2", "k3", "k1", "k2", "k3"]


def test_empty_pool_raises_configuration_error():
    pool = CredentialPool([])

    with pytest.raises(PoolConfigurationError, match="No API keys configured"):
        pool.next()


def test_blank_and_duplicate_keys_are_skipped():
    pool = CredentialPool(["k1", "  ", "", "k1"])

    assert len(pool) == 1


def test_cooling_key_is_skipped_until_cooldown_expires(clock):
    pool = CredentialPool(["k1", "k2"], cooldown_base=60, cooldown_max=300, clock=clock)
    first = pool.next()
    pool.mark_failed(first, error(ErrorKind.RATE_LIMITED))

    # fail_count=1 -> cooldown 120s
    assert {pool.next().id for _ in range(4)} == {"key_1"}

    clock.advance(121)
    assert {pool.next().id for _ in range(4)} == {"key_0", "key_1"}


def test_cooldown_is_monotone_and_capped():
    pool = CredentialPool([], cooldown_base=60, cooldown_max=300)

    delays = [pool.cooldown(n) for n in range(6)]

    assert delays == sorted(delays)
    assert delays[:3] == [60, 120, 240]
    assert max(delays) == 300


def test_success_decreases_fail_count_by_one(clock):
    pool = CredentialPool(["k1"], clock=clock)
    key = pool.next()
    pool.mark_failed(key, error(ErrorKind.RATE_LIMITED))
    pool.mark_failed(key, error(ErrorKind.RATE_LIMITED))

    pool.mark_success(key)

    assert key.fail_count == 1
    assert key.last_failed is not None

    pool.mark_success(key)
    assert key.fail_count == 0
    assert key.last_failed is None


def test_invalid_key_is_disabled_permanently(clock):
    pool = CredentialPool(["bad", "good"], clock=clock)
    bad = pool.next()

    kind = pool.mark_failed(bad, error(ErrorKind.INVALID_CREDENTIAL))

    assert kind == FailureKind.AUTH_FAILED
    assert not bad.active
    clock.advance(10_000)
    assert {pool.next().secret for _ in range(3)} == {"good"}

    pool.reset_cooldowns()
    assert not bad.active

    pool.reset_cooldowns(include_permanent=True)
    assert bad.active


def test_quota_exhaustion_disables_until_reset(clock):
    pool = CredentialPool(["k1", "k2"], clock=clock)
    key = pool.next()

    pool.mark_failed(key, error(ErrorKind.QUOTA_EXHAUSTED))
    assert not key.active
    assert key.disabled_reason == FailureKind.QUOTA_EXHAUSTED

    pool.reset_cooldowns()
    assert key.active
    assert key.fail_count == 0


def test_all_cooling_triggers_emergency_reset(clock):
    pool = CredentialPool(["k1", "k2"], clock=clock)
    for key in pool.entries:
        pool.mark_failed(key, error(ErrorKind.RATE_LIMITED))

    selected = pool.next()

    assert selected.id == "key_0"
    assert all(k.fail_count == 0 for k in pool.entries)


def test_all_disabled_raises(clock):
    pool = CredentialPool(["k1"], clock=clock)
    pool.mark_failed(pool.next(), error(ErrorKind.INVALID_CREDENTIAL))

    with pytest.raises(PoolConfigurationError, match="disabled"):
        pool.next()


def test_never_selects_inactive_or_cooling_entry(clock):
    pool = CredentialPool(["k1", "k2", "k3", "k4"], clock=clock)
    entries = pool.entries
    pool.mark_failed(entries[0], error(ErrorKind.INVALID_CREDENTIAL))
    pool.mark_failed(entries[1], error(ErrorKind.MODEL_OVERLOADED))

    for _ in range(10):
        selected = pool.next()
        assert selected.active
        assert pool.is_available(selected)


def test_classify_unstructured_errors():
    pool = CredentialPool([])

    assert pool.classify(RuntimeError("Quota exceeded for project")) == FailureKind.QUOTA_EXHAUSTED
    assert pool.classify(RuntimeError("Too many requests")) == FailureKind.RATE_LIMITED
    assert pool.classify(RuntimeError("model is overloaded")) == FailureKind.OVERLOADED
    assert pool.classify(RuntimeError("API key invalid")) == FailureKind.AUTH_FAILED
    assert pool.classify(RuntimeError("boom")) == FailureKind.UNKNOWN
    assert pool.classify(error(ErrorKind.SERVICE_UNAVAILABLE)) == FailureKind.OVERLOADED


def test_remove_by_id_or_value_and_stats_hide_secret():
    pool = CredentialPool(["AIzaSecretValue123", "other-key-456"])

    assert pool.remove("key_0")
    assert pool.remove("other-key-456")
    assert not pool.remove("missing")

    pool.add("AIzaAnotherSecret999")
    stats = pool.get_stats()
    assert stats["total"] == 1
    assert stats["entries"][0]["preview"] == "AIza...t999"
    assert "AIzaAnotherSecret999" not in str(stats)


def test_reload_replaces_keys():
    pool = CredentialPool(["k1", "k2"])

    pool.reload(["k3"])

    assert [c.secret for c in pool.entries] == ["k3"]
    assert pool.next().secret == "k3"


def test_stats_current_is_the_next_key_drawn(clock):
    pool = CredentialPool(["k1", "k2", "k3"], clock=clock)
    pool.next()
    pool.mark_failed(pool.entries[1], error(ErrorKind.RATE_LIMITED))

    current = pool.get_stats()["current"]

    assert current != "key_1"
    assert current == pool.next().id
