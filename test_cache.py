from cache import RedisCache, UserLocaleCache, TaskCache


def test_json_round_trip_and_prefix(cache, fake_redis):
    assert cache.set_json("answer", {"value": 42}, ttl=10) is True
    assert cache.get_json("answer") == {"value": 42}
    assert "test:answer" in fake_redis.store
    assert fake_redis.ttls["test:answer"] == 10


def test_default_ttl_is_used(fake_redis):
    cache = RedisCache(client=fake_redis, prefix="p:", default_ttl=77)
    cache.set("k", "v")
    assert fake_redis.ttls["p:k"] == 77


def test_invalid_json_is_a_miss(cache, fake_redis):
    fake_redis.store["test:broken"] = "{not json"
    assert cache.get_json("broken") is None


def test_failures_are_misses(cache, fake_redis):
    fake_redis.fail = True
    assert cache.get("x") is None
    assert cache.set("x", "1") is False
    assert cache.delete("x") == 0
    assert cache.smembers("s") == set()
    assert cache.publish("chan", "msg") == -1
    assert cache.ping() is False


def test_circuit_opens_after_repeated_failures(cache, fake_redis):
    fake_redis.fail = True
    for _ in range(5):
        cache.get("x")
    assert cache.is_available is False

    # Redis wieder da, aber der Circuit bleibt im Zeitfenster offen
    fake_redis.fail = False
    fake_redis.store["test:x"] = "1"
    assert cache.get("x") is None


def test_user_locale_cache(cache, fake_redis):
    locales = UserLocaleCache(cache, ttl=3600)
    locales.put(5, "fr")
    assert locales.get(5) == "fr"
    assert fake_redis.ttls["test:user_locale:5"] == 3600
    locales.forget(5)
    assert locales.get(5) is None


def test_invalidate_user_removes_all_listings_and_stats(cache, fake_redis):
    tasks = TaskCache(cache, list_ttl=300, stats_ttl=900)
    tasks.put_listing(1, "user:1:tasks:aaa", {"data": []})
    tasks.put_listing(1, "user:1:tasks:bbb", {"data": [1]})
    tasks.put_listing(2, "user:2:tasks:ccc", {"data": [2]})
    tasks.put_stats(1, {"total": 3})
    assert fake_redis.ttls["test:user:1:task_stats"] == 900
    assert fake_redis.smembers("test:user:1:task_keys") == {"user:1:tasks:aaa", "user:1:tasks:bbb"}

    tasks.invalidate_user(1)
    assert tasks.get_listing("user:1:tasks:aaa") is None
    assert tasks.get_listing("user:1:tasks:bbb") is None
    assert tasks.get_stats(1) is None
    assert "test:user:1:task_keys" not in fake_redis.sets
    # andere Benutzer bleiben unberührt
    assert tasks.get_listing("user:2:tasks:ccc") == {"data": [2]}


def test_unconnected_cache_is_unavailable():
    cache = RedisCache()
    assert cache.is_available is False
    assert cache.get("x") is None
    assert cache.ping() is False
    assert TaskCache(cache).invalidate_user(1) == 0
