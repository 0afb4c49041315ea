from __future__ import annotations

import json
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator

import redis

from srs.errors import ReviewSessionBusyError
from srs.utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_LOCK_SECONDS = 30


def review_session_key(user_id: str) -> str:
    return f"reviews:session:{user_id}"


def review_lock_key(user_id: str) -> str:
    return f"reviews:session:{user_id}:lock"


class ReviewSessionCache:
    """Redis-backed store for review session snapshots, one per user."""

    def __init__(self, client: redis.Redis, ttl_seconds: int = 6 * 60 * 60, lock_seconds: int = DEFAULT_LOCK_SECONDS) -> None:
        self._redis = client
        self.ttl_seconds = ttl_seconds
        self.lock_seconds = lock_seconds

    @classmethod
    def from_url(cls, redis_url: str, ttl_seconds: int = 6 * 60 * 60) -> "ReviewSessionCache":
        return cls(redis.from_url(redis_url, decode_responses=True), ttl_seconds=ttl_seconds)

    def load(self, user_id: str) -> Dict[str, Any] | None:
        raw = self._redis.get(review_session_key(user_id))
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            logger.warning("Discarding unreadable review session | user=%s", user_id)
            return None
        return data if isinstance(data, dict) else None

    def save(self, user_id: str, snapshot: Dict[str, Any]) -> None:
        self._redis.set(review_session_key(user_id), json.dumps(snapshot, separators=(",", ":")), ex=self.ttl_seconds)

    def clear(self, user_id: str) -> None:
        self._redis.delete(review_session_key(user_id))

    @contextmanager
    def locked(self, user_id: str) -> Iterator[None]:
        """Hold the user's session for one restore-change-save cycle.

        Raises ``ReviewSessionBusyError`` when another holder has it. The lock
        expires after ``lock_seconds`` if its holder dies.
        """
        key = review_lock_key(user_id)
        token = uuid.uuid4().hex
        if not self._redis.set(key, token, ex=self.lock_seconds, nx=True):
            logger.info("Review session busy | user=%s", user_id)
            raise ReviewSessionBusyError(user_id)
        try:
            yield
        finally:
            if self._redis.get(key) == token:
                self._redis.delete(key)
