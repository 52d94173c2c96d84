"""Key-value record store. Redis in deployment, in-memory for local runs and tests."""

import threading
import time
from abc import ABC, abstractmethod
from typing import Optional, Sequence

import redis
import structlog
from redis.exceptions import RedisError, WatchError

logger = structlog.get_logger()


class StoreError(Exception):
    """Base record store error."""


class StoreUnavailableError(StoreError):
    """Store could not be reached or timed out."""


class StoreConflictError(StoreError):
    """Optimistic concurrency check failed on save."""

    def __init__(self, message: str, keys: Optional[list[str]] = None):
        super().__init__(message)
        self.keys = keys or []


class RecordStore(ABC):
    """Minimal get/set/set-membership contract the repository relies on."""

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]: ...

    @abstractmethod
    def set(self, key: str, value: bytes, ttl_seconds: Optional[int] = None) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...

    @abstractmethod
    def add_to_set(self, set_key: str, member: str) -> None: ...

    @abstractmethod
    def remove_from_set(self, set_key: str, member: str) -> None: ...

    @abstractmethod
    def members_of(self, set_key: str) -> list[str]: ...

    @abstractmethod
    def compare_and_set(
        self,
        key: str,
        expected: Optional[bytes],
        value: Optional[bytes],
        ttl_seconds: Optional[int] = None,
    ) -> bool:
        """Write ``value`` only if the current value equals ``expected``.

        ``expected=None`` means the key must not exist; ``value=None`` deletes.
        Returns False on conflict.
        """
        ...

    @abstractmethod
    def compare_and_set_many(
        self,
        expected: dict[str, Optional[bytes]],
        values: dict[str, Optional[bytes]],
        set_key: Optional[str] = None,
        add_members: Sequence[str] = (),
        remove_members: Sequence[str] = (),
    ) -> bool:
        """Apply ``values`` and the membership changes to ``set_key`` as one unit.

        Nothing is written unless every key in ``expected`` still holds its
        expected value. ``None`` in ``values`` deletes. Returns False on conflict.
        """
        ...

    @abstractmethod
    def ping(self) -> float:
        """Round-trip latency in milliseconds. Raises StoreUnavailableError."""
        ...


class RedisRecordStore(RecordStore):
    """redis-py backed store. All client errors surface as StoreUnavailableError."""

    def __init__(self, url: str, client: Optional[redis.Redis] = None, socket_timeout: float = 5.0):
        self.url = url
        self.client = client or redis.Redis.from_url(
            url, socket_timeout=socket_timeout, socket_connect_timeout=socket_timeout
        )

    def _wrap(self, op: str, e: Exception):
        logger.error("store.redis_error", op=op, error=str(e))
        raise StoreUnavailableError(f"Redis {op} failed: {e}") from e

    def get(self, key: str) -> Optional[bytes]:
        try:
            return self.client.get(key)
        except RedisError as e:
            self._wrap("get", e)

    def set(self, key: str, value: bytes, ttl_seconds: Optional[int] = None) -> None:
        try:
            self.client.set(key, value, ex=ttl_seconds)
        except RedisError as e:
            self._wrap("set", e)

    def delete(self, key: str) -> None:
        try:
            self.client.delete(key)
        except RedisError as e:
            self._wrap("delete", e)

    def add_to_set(self, set_key: str, member: str) -> None:
        try:
            self.client.sadd(set_key, member)
        except RedisError as e:
            self._wrap("sadd", e)

    def remove_from_set(self, set_key: str, member: str) -> None:
        try:
            self.client.srem(set_key, member)
        except RedisError as e:
            self._wrap("srem", e)

    def members_of(self, set_key: str) -> list[str]:
        try:
            members = self.client.smembers(set_key)
        except RedisError as e:
            self._wrap("smembers", e)
        return sorted(m.decode() if isinstance(m, bytes) else m for m in members)

    def compare_and_set(self, key, expected, value, ttl_seconds=None) -> bool:
        try:
            with self.client.pipeline() as pipe:
                try:
                    pipe.watch(key)
                    current = pipe.get(key)
                    if current != expected:
                        pipe.unwatch()
                        return False
                    pipe.multi()
                    if value is None:
                        pipe.delete(key)
                    else:
                        pipe.set(key, value, ex=ttl_seconds)
                    pipe.execute()
                    return True
                except WatchError:
                    return False
        except RedisError as e:
            self._wrap("compare_and_set", e)

    def compare_and_set_many(self, expected, values, set_key=None, add_members=(), remove_members=()) -> bool:
        keys = list(expected)
        try:
            with self.client.pipeline() as pipe:
                try:
                    if keys:
                        pipe.watch(*keys)
                        current = pipe.mget(keys)
                        if any(value != expected[key] for key, value in zip(keys, current)):
                            pipe.unwatch()
                            return False
                    pipe.multi()
                    for key, value in values.items():
                        if value is None:
                            pipe.delete(key)
                        else:
                            pipe.set(key, value)
                    if set_key and add_members:
                        pipe.sadd(set_key, *add_members)
                    if set_key and remove_members:
                        pipe.srem(set_key, *remove_members)
                    pipe.execute()
                    return True
                except WatchError:
                    return False
        except RedisError as e:
            self._wrap("compare_and_set_many", e)

    def ping(self) -> float:
        start = time.perf_counter()
        try:
            self.client.ping()
        except RedisError as e:
            self._wrap("ping", e)
        return (time.perf_counter() - start) * 1000


class InMemoryRecordStore(RecordStore):
    """Process-local store with TTL support. Not shared across processes."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._values: dict[str, tuple[bytes, Optional[float]]] = {}
        self._sets: dict[str, set[str]] = {}
        self._lock = threading.RLock()

    def _live(self, key: str) -> Optional[bytes]:
        entry = self._values.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._values[key]
            return None
        return value

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._live(key)

    def set(self, key: str, value: bytes, ttl_seconds: Optional[int] = None) -> None:
        with self._lock:
            expires_at = self._clock() + ttl_seconds if ttl_seconds else None
            self._values[key] = (bytes(value), expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)

    def add_to_set(self, set_key: str, member: str) -> None:
        with self._lock:
            self._sets.setdefault(set_key, set()).add(member)

    def remove_from_set(self, set_key: str, member: str) -> None:
        with self._lock:
            self._sets.get(set_key, set()).discard(member)

    def members_of(self, set_key: str) -> list[str]:
        with self._lock:
            return sorted(self._sets.get(set_key, set()))

    def compare_and_set(self, key, expected, value, ttl_seconds=None) -> bool:
        with self._lock:
            if self._live(key) != expected:
                return False
            if value is None:
                self._values.pop(key, None)
            else:
                self.set(key, value, ttl_seconds)
            return True

    def compare_and_set_many(self, expected, values, set_key=None, add_members=(), remove_members=()) -> bool:
        with self._lock:
            if any(self._live(key) != value for key, value in expected.items()):
                return False
            for key, value in values.items():
                if value is None:
                    self._values.pop(key, None)
                else:
                    self.set(key, value)
            for member in add_members:
                self.add_to_set(set_key, member)
            for member in remove_members:
                self.remove_from_set(set_key, member)
            return True

    def ping(self) -> float:
        return 0.0


def create_record_store(
    backend: str = "redis", url: Optional[str] = None, socket_timeout: float = 5.0
) -> RecordStore:
    """Build the configured store.

    Args:
        backend: "redis" or "memory"
        url: Redis URL (required for the redis backend)
    """
    if backend == "memory":
        logger.info("store.init", backend="memory")
        return InMemoryRecordStore()
    if backend == "redis":
        if not url:
            raise StoreUnavailableError(
                "Database not configured: REDIS_URL or KV_URL environment variable is required"
            )
        logger.info("store.init", backend="redis")
        return RedisRecordStore(url, socket_timeout=socket_timeout)
    raise ValueError(f"Unknown store backend: {backend}. Use: redis, memory")
