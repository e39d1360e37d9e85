from compliance.services.limits_cache import LimitsCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    cache: LimitsCache[str] = LimitsCache(ttl_seconds=10, clock=clock)
    cache.set(("travis", "tx", 2024, "STANDARD"), "limits")

    clock.now += 9.9
    assert cache.get(("travis", "tx", 2024, "STANDARD")) == "limits"

    clock.now += 0.1
    assert cache.get(("travis", "tx", 2024, "STANDARD")) is None
    assert len(cache) == 0


def test_reads_do_not_extend_lifetime() -> None:
    clock = FakeClock()
    cache: LimitsCache[str] = LimitsCache(ttl_seconds=10, clock=clock)
    cache.set("key", "value")

    for _ in range(3):
        clock.now += 4
        cache.get("key")

    assert cache.get("key") is None


def test_clear_single_key_and_all() -> None:
    cache: LimitsCache[int] = LimitsCache(ttl_seconds=10, clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)

    cache.clear("a")
    assert cache.get("a") is None
    assert cache.get("b") == 2

    cache.clear()
    assert len(cache) == 0
