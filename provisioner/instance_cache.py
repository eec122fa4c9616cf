"""
Multi-Instance Credential Cache
===============================
Caches ``RemoteInstance`` records fetched from an instance registry.

Responsibilities:
    1. Serve repeated lookups without hitting the registry (TTL-bounded)
    2. Bound memory: above the high-water mark keep only the most recently
       accessed entries
    3. Single-flight misses: concurrent lookups of one key load it once
    4. Report usage statistics

Registries:
    - ``JsonInstanceRegistry`` — a JSON file of instance records
    - ``EnvInstanceRegistry``  — one ``default`` instance from ``PROSBC_*``
"""

from __future__ import annotations

import itertools
import json
import logging
import os
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .errors import InstanceNotFound, InstanceUnavailable
from .models import RemoteInstance

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Registries
# ---------------------------------------------------------------------------

DEFAULT_INSTANCE_ID = "default"


class InstanceRegistry(ABC):
    """Read-only source of ``RemoteInstance`` records."""

    @abstractmethod
    def get_instance(self, instance_id: str) -> RemoteInstance:
        """Return the instance or raise ``InstanceNotFound``."""
        ...

    @abstractmethod
    def list_instances(self) -> List[RemoteInstance]:
        ...


def default_instance_from_env(environ: Optional[Dict[str, str]] = None) -> Optional[RemoteInstance]:
    """Instance built from ``PROSBC_BASE_URL`` / ``_USERNAME`` / ``_PASSWORD``."""
    env = os.environ if environ is None else environ
    base_url = env.get("PROSBC_BASE_URL", "")
    if not base_url:
        return None
    return RemoteInstance(
        id=DEFAULT_INSTANCE_ID,
        name="Default ProSBC",
        base_url=base_url,
        username=env.get("PROSBC_USERNAME", ""),
        password=env.get("PROSBC_PASSWORD", ""),
    )


class EnvInstanceRegistry(InstanceRegistry):
    """A single ``default`` instance configured through the environment."""

    def __init__(self, environ: Optional[Dict[str, str]] = None):
        self._environ = environ

    def get_instance(self, instance_id: str) -> RemoteInstance:
        instance = default_instance_from_env(self._environ)
        if instance is None or str(instance_id) != DEFAULT_INSTANCE_ID:
            raise InstanceNotFound(instance_id)
        return instance

    def list_instances(self) -> List[RemoteInstance]:
        instance = default_instance_from_env(self._environ)
        return [instance] if instance else []


class JsonInstanceRegistry(InstanceRegistry):
    """Instance records stored in a JSON file.

    The file holds a list of objects (or ``{"instances": [...]}``) with
    ``id``, ``name``, ``baseUrl``, ``username``, ``password``, ``isActive``.
    It is re-read on every lookup; the cache in front of it absorbs the cost.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def _load(self) -> List[RemoteInstance]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.warning(f"[CACHE] Registry file {self.path} not found")
            return []
        if isinstance(data, dict):
            data = data.get("instances", [])
        return [RemoteInstance.from_dict(record) for record in data]

    def get_instance(self, instance_id: str) -> RemoteInstance:
        for instance in self._load():
            if instance.id == str(instance_id):
                return instance
        raise InstanceNotFound(instance_id)

    def list_instances(self) -> List[RemoteInstance]:
        return self._load()


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

@dataclass
class CacheEntry:
    credentials: RemoteInstance
    timestamp: float
    last_accessed: float
    access_count: int = 1
    # Monotonic access order; breaks ties on a coarse clock
    sequence: int = 0


class CredentialCache:
    """Thread-safe TTL cache of instance records keyed by instance id."""

    def __init__(
        self,
        loader: Callable[[str], RemoteInstance],
        *,
        ttl_s: float = 600.0,
        high_water: int = 20,
        keep: int = 15,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            loader:     Fetches a record on a miss (usually ``registry.get_instance``).
            ttl_s:      Entry lifetime; older entries count as a miss.
            high_water: Entry count that triggers eviction.
            keep:       Entries kept after eviction (most recently accessed).
            clock:      Monotonic time source (injected for tests).
        """
        self._loader = loader
        self.ttl_s = ttl_s
        self.high_water = high_water
        self.keep = min(keep, high_water)
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._key_locks: Dict[str, threading.Lock] = {}
        self._sequence = itertools.count(1)
        self.hits = 0
        self.misses = 0

    @staticmethod
    def _key(instance_id: str) -> str:
        return f"prosbc_{instance_id}"

    def _fresh(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.timestamp < self.ttl_s

    def _lookup(self, key: str) -> Optional[RemoteInstance]:
        """Return a fresh record and touch it; caller holds ``_lock``."""
        entry = self._entries.get(key)
        now = self._clock()
        if entry is None or not self._fresh(entry, now):
            return None
        entry.last_accessed = now
        entry.sequence = next(self._sequence)
        entry.access_count += 1
        self.hits += 1
        return entry.credentials

    # ── Public API ────────────────────────────────────────────────

    def get(self, instance_id: str) -> RemoteInstance:
        """Return the cached record for *instance_id*, loading it on a miss.

        Raises:
            InstanceNotFound / InstanceUnavailable: propagated from the loader.
        """
        key = self._key(instance_id)
        with self._lock:
            cached = self._lookup(key)
            if cached is not None:
                return cached
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            # Another thread may have loaded it while we waited
            with self._lock:
                cached = self._lookup(key)
                if cached is not None:
                    return cached

            instance = self._loader(instance_id)

            with self._lock:
                now = self._clock()
                previous = self._entries.get(key)
                self._entries[key] = CacheEntry(
                    credentials=instance,
                    timestamp=now,
                    last_accessed=now,
                    access_count=(previous.access_count if previous else 0) + 1,
                    sequence=next(self._sequence),
                )
                self.misses += 1
                logger.debug(f"[CACHE] Loaded {instance.display_name} into cache")
                self._evict_if_needed()
            return instance

    def __contains__(self, instance_id: str) -> bool:
        with self._lock:
            entry = self._entries.get(self._key(instance_id))
            return entry is not None and self._fresh(entry, self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self, instance_id: Optional[str] = None) -> None:
        """Drop one entry, or everything when *instance_id* is None."""
        with self._lock:
            if instance_id is None:
                self._entries.clear()
                self._key_locks.clear()
                logger.info("[CACHE] Cleared all cached credentials")
            else:
                key = self._key(instance_id)
                self._entries.pop(key, None)
                self._key_locks.pop(key, None)
                logger.info(f"[CACHE] Cleared cached credentials for instance {instance_id}")

    def stats(self) -> dict:
        with self._lock:
            total = sum(e.access_count for e in self._entries.values())
            size = len(self._entries)
            return {
                "size": size,
                "total_access": total,
                "average_access": round(total / size, 2) if size else 0,
                "hits": self.hits,
                "misses": self.misses,
                "ttl_s": self.ttl_s,
                "high_water": self.high_water,
                "keep": self.keep,
            }

    # ── Eviction ──────────────────────────────────────────────────

    def _evict_if_needed(self) -> None:
        """Caller holds ``_lock``."""
        if len(self._entries) <= self.high_water:
            return
        ranked = sorted(self._entries.items(), key=lambda kv: (kv[1].last_accessed, kv[1].sequence), reverse=True)
        evicted = [key for key, _ in ranked[self.keep:]]
        for key in evicted:
            del self._entries[key]
            self._key_locks.pop(key, None)
        logger.info(f"[CACHE] Evicted {len(evicted)} entries, kept {len(self._entries)}")


def registry_loader(registry: InstanceRegistry) -> Callable[[str], RemoteInstance]:
    """Loader that rejects inactive or incomplete instances."""
    def load(instance_id: str) -> RemoteInstance:
        instance = registry.get_instance(instance_id)
        if not instance.is_active:
            raise InstanceUnavailable(f"ProSBC instance {instance.display_name} is inactive")
        if not instance.base_url:
            raise InstanceUnavailable(f"ProSBC instance {instance.display_name} has no base URL")
        return instance
    return load
