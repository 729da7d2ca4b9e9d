from __future__ import annotations

import json
import os
from typing import Any, Optional

import redis
from dotenv import load_dotenv
from upstash_redis import Redis as UpstashRedis

load_dotenv()


def _redis_client() -> Optional[Any]:
    tcp_url = os.getenv("REDIS_URL")
    if tcp_url:
        return redis.Redis.from_url(tcp_url, decode_responses=True)
    url = os.getenv("UPSTASH_REDIS_REST_URL")
    token = os.getenv("UPSTASH_REDIS_REST_TOKEN")
    if not url or not token:
        return None
    return UpstashRedis(url=url, token=token)


def _redis_get_json(key: str, client: Optional[Any] = None) -> Optional[Any]:
    client = client or REDIS
    if not client:
        return None
    raw = client.get(key)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return None


def _redis_set_json(key: str, value: Any, ttl_seconds: int, client: Optional[Any] = None) -> None:
    client = client or REDIS
    if not client:
        return
    client.setex(key, ttl_seconds, json.dumps(value))


def _redis_delete(key: str, client: Optional[Any] = None) -> None:
    client = client or REDIS
    if not client:
        return
    client.delete(key)


REDIS = _redis_client()
