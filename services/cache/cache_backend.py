# services/cache/cache_backend.py
"""
Two-level TTL cache for price quotes.

L1 is a per-process dict, L2 is redis when UPSTASH_REDIS_URL is set. Redis
failures are logged and degrade to L1 only.
"""
from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple

import redis as redis_sync

logger = logging.getLogger(__name__)

DEFAULT_TTL_SEC = int(os.getenv("CACHE_DEFAULT_TTL_SEC", "30"))
LOCAL_CACHE_TTL_SEC = int(os.getenv("CACHE_LOCAL_TTL_SEC", "30"))
REDIS_PREFIX = os.getenv("REDIS_PREFIX", "cryptotracker:")
UPSTASH_REDIS_URL = os.getenv("UPSTASH_REDIS_URL")

# key -> (expires_at, payload)
_LOCAL: Dict[str, Tuple[float, Any]] = {}

_redis_client: Optional[redis_sync.Redis] = None


def get_redis_client() -> Optional[redis_sync.Redis]:
    global _redis_client
    if _redis_client is None and UPSTASH_REDIS_URL:
        try:
            _redis_client = redis_sync.from_url(
                UPSTASH_REDIS_URL,
                decode_responses=True,
                socket_timeout=2,
                socket_connect_timeout=2,
            )
        except (redis_sync.RedisError, ValueError) as e:
            logger.warning("cache.redis.init_failed error=%s", e)
    return _redis_client


def _norm_key(key: str) -> str:
    return (key or "").strip().upper()


def _ttl(ttl_seconds: Optional[int]) -> int:
    return int(ttl_seconds) if ttl_seconds and ttl_seconds > 0 else DEFAULT_TTL_SEC


def cache_clear_local() -> None:
    _LOCAL.clear()


def _l1_lookup(keys: Iterable[Tuple[str, str]], now: float) -> Tuple[Dict[str, Any], List[Tuple[str, str]]]:
    found: Dict[str, Any] = {}
    missing: List[Tuple[str, str]] = []
    for key, k in keys:
        entry = _LOCAL.get(k)
        if entry and now <= entry[0]:
            found[key] = entry[1]
            continue
        if entry:
            _LOCAL.pop(k, None)
        missing.append((key, k))
    return found, missing


def _l2_lookup(missing: List[Tuple[str, str]]) -> Dict[str, Any]:
    r = get_redis_client()
    if not r or not missing:
        return {}

    try:
        raws = r.mget([REDIS_PREFIX + k for _, k in missing])
    except redis_sync.RedisError as e:
        logger.warning("cache.redis.mget_failed error=%s", e)
        return {}

    found: Dict[str, Any] = {}
    expires_at = time.time() + LOCAL_CACHE_TTL_SEC
    for (key, k), raw in zip(missing, raws):
        if not isinstance(raw, (str, bytes, bytearray)):
            continue
        try:
            payload = json.loads(raw)
        except ValueError:
            logger.warning("cache.redis.bad_payload key=%s", k)
            continue
        found[key] = payload
        _LOCAL[k] = (expires_at, payload)
    return found


def cache_get_many(keys: List[str]) -> Dict[str, Optional[Any]]:
    """Look keys up in L1, then L2. Result is keyed by the keys as passed in; misses map to None."""
    pairs = [(key, _norm_key(key)) for key in keys]
    pairs = [(key, k) for key, k in pairs if k]

    out: Dict[str, Optional[Any]] = {key: None for key, _ in pairs}
    found, missing = _l1_lookup(pairs, time.time())
    out.update(found)
    out.update(_l2_lookup(missing))
    return out


def cache_set_many(kv: Dict[str, Any], ttl_seconds: int = DEFAULT_TTL_SEC) -> None:
    """Write to both levels. L1 keeps entries for min(LOCAL_CACHE_TTL_SEC, ttl_seconds)."""
    entries = {_norm_key(key): payload for key, payload in kv.items() if _norm_key(key)}
    if not entries:
        return

    ttl = _ttl(ttl_seconds)
    expires_at = time.time() + min(LOCAL_CACHE_TTL_SEC, ttl)
    for k, payload in entries.items():
        _LOCAL[k] = (expires_at, payload)

    r = get_redis_client()
    if not r:
        return

    try:
        pipe = r.pipeline(transaction=False)
        for k, payload in entries.items():
            pipe.setex(REDIS_PREFIX + k, ttl, json.dumps(payload, separators=(",", ":")))
        pipe.execute()
    except redis_sync.RedisError as e:
        logger.warning("cache.redis.pipeline_failed error=%s", e)
