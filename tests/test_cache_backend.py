import json
import os
import unittest
from unittest.mock import MagicMock, patch

os.environ.pop("UPSTASH_REDIS_URL", None)

import redis

from services.cache import cache_backend
from services.cache.cache_backend import cache_clear_local, cache_get_many, cache_set_many


class LocalCacheTests(unittest.TestCase):
    def setUp(self):
        cache_clear_local()

    def test_hit_is_keyed_by_caller_key(self):
        cache_set_many({"coingecko:price:bitcoin": {"price": 1.0}})
        got = cache_get_many(["COINGECKO:PRICE:bitcoin", "coingecko:price:ethereum"])
        self.assertEqual(got, {"COINGECKO:PRICE:bitcoin": {"price": 1.0}, "coingecko:price:ethereum": None})

    def test_blank_keys_are_skipped(self):
        cache_set_many({"  ": 1})
        self.assertEqual(cache_get_many(["", " "]), {})

    def test_entries_expire(self):
        with patch.object(cache_backend.time, "time", return_value=1000.0):
            cache_set_many({"k": 1}, ttl_seconds=10)
        with patch.object(cache_backend.time, "time", return_value=1010.0):
            self.assertEqual(cache_get_many(["k"]), {"k": 1})
        with patch.object(cache_backend.time, "time", return_value=1010.5):
            self.assertEqual(cache_get_many(["k"]), {"k": None})


class RedisLayerTests(unittest.TestCase):
    def setUp(self):
        cache_clear_local()

    def test_l2_hit_fills_l1(self):
        r = MagicMock()
        r.mget.return_value = [json.dumps({"price": 2.0}), None]
        with patch.object(cache_backend, "get_redis_client", return_value=r):
            got = cache_get_many(["a", "b"])
        self.assertEqual(got, {"a": {"price": 2.0}, "b": None})
        r.mget.assert_called_once_with(["cryptotracker:A", "cryptotracker:B"])
        # served from L1 now
        self.assertEqual(cache_get_many(["a"]), {"a": {"price": 2.0}})

    def test_redis_errors_degrade_to_local(self):
        r = MagicMock()
        r.mget.side_effect = redis.RedisError("down")
        r.pipeline.return_value.execute.side_effect = redis.RedisError("down")
        with patch.object(cache_backend, "get_redis_client", return_value=r):
            cache_set_many({"a": 1})
            cache_clear_local()
            self.assertEqual(cache_get_many(["a"]), {"a": None})
            cache_set_many({"a": 1})
            self.assertEqual(cache_get_many(["a"]), {"a": 1})


if __name__ == "__main__":
    unittest.main()
