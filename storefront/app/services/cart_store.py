# storefront/app/services/cart_store.py
from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from pydantic import ValidationError

from storefront.app.core.config import Settings
from storefront.app.core.metrics import cart_persist
from storefront.app.models.cart import CartAggregate

logger = logging.getLogger(__name__)


class CartStoreError(RuntimeError):
    """Raised by a storage backend when the underlying store cannot be read or written."""
    pass


@runtime_checkable
class KeyValueStoreProto(Protocol):
    """Minimal durable string store the persistence adapter writes through."""
    def get(self, key: str) -> Optional[str]: ...
    def set(self, key: str, value: str) -> None: ...
    def delete(self, key: str) -> None: ...


# =========================================================
# Backends
# =========================================================

_SAFE_KEY_RE = re.compile(r"[^A-Za-z0-9._-]+")


class FileKeyValueStore:
    """One JSON document per key under `root`, replaced atomically on write."""

    def __init__(self, root: Path):
        self.root = Path(root).expanduser()

    def _path(self, key: str) -> Path:
        name = _SAFE_KEY_RE.sub("_", key).strip("._") or "default"
        return self.root / f"{name}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            if not path.exists():
                return None
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise CartStoreError(f"cannot read {path}: {e}") from e

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(value, encoding="utf-8")
            tmp.replace(path)
        except OSError as e:
            raise CartStoreError(f"cannot write {path}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise CartStoreError(f"cannot delete {self._path(key)}: {e}") from e


class RedisKeyValueStore:
    """String keys in redis, optionally with a TTL (SETEX)."""

    def __init__(self, client: Any, *, prefix: str = "", ttl_seconds: int = 0):
        self._client = client
        self._prefix = prefix
        self._ttl = int(ttl_seconds or 0)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get(self, key: str) -> Optional[str]:
        try:
            raw = self._client.get(self._key(key))
        except Exception as e:
            raise CartStoreError(f"redis GET {self._key(key)} failed: {e}") from e
        if isinstance(raw, (bytes, bytearray)):
            return raw.decode("utf-8")
        return raw

    def set(self, key: str, value: str) -> None:
        try:
            if self._ttl > 0:
                self._client.setex(self._key(key), self._ttl, value)
            else:
                self._client.set(self._key(key), value)
        except Exception as e:
            raise CartStoreError(f"redis SET {self._key(key)} failed: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._client.delete(self._key(key))
        except Exception as e:
            raise CartStoreError(f"redis DEL {self._key(key)} failed: {e}") from e


class MemoryKeyValueStore:
    """Process-local store; nothing survives a restart."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


# =========================================================
# Persistence adapter
# =========================================================

class CartPersistence:
    """
    Serializes the cart to a single named record and reads it back.

    save() never raises: the in-memory cart stays the source of truth for the
    session, so a failed write is logged and counted only.
    load() returns None for a missing, unreadable or structurally invalid record.
    """

    def __init__(self, store: KeyValueStoreProto, key: str = "cart-storage"):
        self.store = store
        self.key = key

    def save(self, aggregate: CartAggregate) -> None:
        try:
            payload = json.dumps(aggregate.to_wire(), ensure_ascii=False)
            self.store.set(self.key, payload)
        except Exception as e:
            cart_persist.inc({"action": "save", "result": "fail"})
            logger.warning("Failed to persist cart to storage (key=%s): %s", self.key, e)
            return
        cart_persist.inc({"action": "save", "result": "ok"})
        logger.debug("Persisted cart (key=%s, lines=%d)", self.key, len(aggregate.items))

    def load(self) -> Optional[CartAggregate]:
        try:
            raw = self.store.get(self.key)
        except Exception as e:
            cart_persist.inc({"action": "load", "result": "fail"})
            logger.warning("Failed to read cart from storage (key=%s): %s", self.key, e)
            return None

        if not raw:
            cart_persist.inc({"action": "load", "result": "miss"})
            return None

        try:
            aggregate = CartAggregate.from_wire(json.loads(raw))
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            cart_persist.inc({"action": "load", "result": "corrupt"})
            logger.warning("Ignoring corrupt cart snapshot (key=%s): %s", self.key, e)
            return None

        cart_persist.inc({"action": "load", "result": "ok"})
        return aggregate

    def clear(self) -> None:
        """Drop the stored record (logout/reset); errors are logged like save()."""
        try:
            self.store.delete(self.key)
        except Exception as e:
            logger.warning("Failed to delete cart snapshot (key=%s): %s", self.key, e)


# =========================================================
# Factory
# =========================================================

def build_store(settings: Settings) -> KeyValueStoreProto:
    backend = settings.effective_store_backend
    if backend == "memory":
        return MemoryKeyValueStore()
    if backend == "redis":
        from storefront.app.core.redis_conn import get_sync_redis
        return RedisKeyValueStore(
            get_sync_redis(),
            prefix=settings.redis_key_prefix,
            ttl_seconds=settings.cart_ttl_seconds,
        )
    return FileKeyValueStore(settings.cart_store_dir)


def build_persistence(settings: Settings) -> CartPersistence:
    return CartPersistence(build_store(settings), key=settings.cart_storage_key)
