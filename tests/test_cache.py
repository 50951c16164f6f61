from mq_planner.api.cache import ReadThroughCache


def test_hit_until_invalidated():
    c = ReadThroughCache(ttl_sec=60)
    calls = []

    def compute():
        calls.append(1)
        return {"n": len(calls)}

    assert c.get_or_compute("preview", ("balanced",), compute) == {"n": 1}
    assert c.get_or_compute("preview", ("balanced",), compute) == {"n": 1}
    assert c.get_or_compute("preview", ("hybrid",), compute) == {"n": 2}
    assert len(c) == 2

    c.invalidate()
    assert len(c) == 0
    assert c.get_or_compute("preview", ("balanced",), compute) == {"n": 3}


def test_cached_values_are_copies():
    c = ReadThroughCache(ttl_sec=60)
    first = c.get_or_compute("stats", (), lambda: {"rows": [1, 2]})
    first["rows"].append(3)
    assert c.get_or_compute("stats", (), lambda: None) == {"rows": [1, 2]}


def test_zero_ttl_disables_caching():
    c = ReadThroughCache(ttl_sec=0)
    calls = []
    c.get_or_compute("suggest", (), lambda: calls.append(1))
    c.get_or_compute("suggest", (), lambda: calls.append(1))
    assert len(calls) == 2
    assert len(c) == 0


def test_oldest_entry_evicted_when_full():
    c = ReadThroughCache(ttl_sec=60, max_entries=2)
    for key in ("a", "b", "c"):
        c.get_or_compute("e", key, lambda: key)
    assert len(c) == 2
    assert c.get_or_compute("e", "a", lambda: "recomputed") == "recomputed"


def test_value_computed_across_an_invalidation_is_not_stored():
    c = ReadThroughCache(ttl_sec=60)
    calls = []

    def compute_while_a_write_lands():
        calls.append(1)
        c.invalidate()
        return "before-write"

    assert c.get_or_compute("preview", (), compute_while_a_write_lands) == "before-write"
    assert len(c) == 0
    assert c.get_or_compute("preview", (), lambda: "after-write") == "after-write"
    assert calls == [1]
