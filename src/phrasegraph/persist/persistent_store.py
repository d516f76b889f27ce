from __future__ import annotations

import json
import logging
import threading
from typing import Any

from ..errors import CapabilityError
from .kv_store import KVStore


logger = logging.getLogger(__name__)

STAGING = "staging"
CURRENT = "current"
BACKUP = "backup"


class PersistentStore:
    """Staged commit with backup rotation over a primary KV store.

    save: staging -> read back -> backup <- current (or payload) -> current -> drop staging.
    Any failure writes the payload to the fallback store's legacy key instead.
    load: current -> backup -> fallback legacy key -> None.
    """

    def __init__(self, primary: KVStore, fallback: KVStore, *, legacy_key: str = "semanticGraph"):
        self.primary = primary
        self.fallback = fallback
        self.legacy_key = legacy_key

    def save(self, snapshot: dict[str, Any]) -> bool:
        """Returns True when the primary commit succeeded."""
        payload = json.dumps(snapshot, ensure_ascii=False, sort_keys=True)
        try:
            self._commit(payload)
        except Exception as e:
            logger.warning("primary save failed, writing legacy fallback: %s", e)
            self._write_fallback(payload)
            return False

        # Mirror the last commit to the legacy key.
        self._write_fallback(payload)
        return True

    def _commit(self, payload: str) -> None:
        self.primary.put(STAGING, payload)
        if self.primary.get(STAGING) != payload:
            raise CapabilityError("Staging readback did not match the written payload")
        previous = self.primary.get(CURRENT)
        self.primary.put(BACKUP, previous if previous else payload)
        self.primary.put(CURRENT, payload)
        self.primary.delete(STAGING)

    def _write_fallback(self, payload: str) -> None:
        try:
            self.fallback.put(self.legacy_key, payload)
        except Exception as e:
            logger.error("fallback save to %r failed: %s", self.legacy_key, e)

    def load(self) -> dict[str, Any] | None:
        for source, store, key in (
            ("current", self.primary, CURRENT),
            ("backup", self.primary, BACKUP),
            ("legacy", self.fallback, self.legacy_key),
        ):
            data = _read_json(store, key)
            if data is not None:
                if source != "current":
                    logger.info("loaded snapshot from %s", source)
                return data
        return None

    def clear_all(self) -> None:
        for key in (CURRENT, BACKUP, STAGING):
            try:
                self.primary.delete(key)
            except Exception as e:
                logger.warning("could not delete %r from primary store: %s", key, e)
        try:
            self.fallback.delete(self.legacy_key)
        except Exception as e:
            logger.warning("could not delete legacy key %r: %s", self.legacy_key, e)


def _read_json(store: KVStore, key: str) -> dict[str, Any] | None:
    try:
        raw = store.get(key)
    except Exception as e:
        logger.warning("read of %r failed: %s", key, e)
        return None
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except ValueError as e:
        logger.warning("stored %r is not valid JSON: %s", key, e)
        return None
    return data if isinstance(data, dict) else None


class DebouncedSaver:
    """Coalesces save requests; the last payload within the window wins."""

    def __init__(self, store: PersistentStore, *, delay_s: float = 0.8):
        self.store = store
        self.delay_s = float(delay_s)
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._pending: dict[str, Any] | None = None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def request_save(self, snapshot: dict[str, Any]) -> None:
        with self._lock:
            self._pending = snapshot
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.delay_s, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self) -> None:
        with self._lock:
            # A timer replaced or cancelled while waiting on the lock owns nothing.
            if self._timer is not threading.current_thread():
                return
            snapshot, self._pending = self._pending, None
            self._timer = None
            if snapshot is not None:
                # Every store write happens under the lock.
                self.store.save(snapshot)

    def force_save(self, snapshot: dict[str, Any]) -> bool:
        """Cancel any pending write, then save now."""
        with self._lock:
            self._cancel_locked()
            return self.store.save(snapshot)

    def flush(self) -> bool:
        """Write the pending payload now, if any."""
        with self._lock:
            snapshot = self._pending
            self._cancel_locked()
            if snapshot is None:
                return False
            return self.store.save(snapshot)

    def cancel(self) -> None:
        with self._lock:
            self._cancel_locked()

    def _cancel_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending = None
