"""
Tests for instance registries and the credential cache.
"""

import json
import threading
import time

import pytest

from provisioner.errors import InstanceNotFound, InstanceUnavailable
from provisioner.instance_cache import (
    CredentialCache,
    EnvInstanceRegistry,
    JsonInstanceRegistry,
    registry_loader,
)
from provisioner.models import RemoteInstance


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class CountingLoader:
    """Registry stand-in that counts how often each id is fetched."""

    def __init__(self, delay=0.0):
        self.delay = delay
        self.loads = []
        self._lock = threading.Lock()

    def __call__(self, instance_id):
        if self.delay:
            time.sleep(self.delay)
        with self._lock:
            self.loads.append(instance_id)
        if instance_id == "missing":
            raise InstanceNotFound(instance_id)
        return RemoteInstance(id=instance_id, base_url=f"sbc{instance_id}.example.test",
                              username="admin", password="pw")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def loader():
    return CountingLoader()


@pytest.fixture
def cache(loader, clock):
    return CredentialCache(loader, ttl_s=600, high_water=3, keep=2, clock=clock)


# ====================================================================
# 1. Cache behaviour
# ====================================================================

class TestCredentialCache:

    def test_second_lookup_is_served_from_cache(self, cache, loader):
        first = cache.get("1")
        second = cache.get("1")
        assert first is second
        assert loader.loads == ["1"]
        assert "1" in cache

    def test_entry_expires_after_ttl(self, cache, loader, clock):
        cache.get("1")
        clock.advance(599)
        cache.get("1")
        assert loader.loads == ["1"]
        clock.advance(2)
        assert "1" not in cache
        cache.get("1")
        assert loader.loads == ["1", "1"]

    def test_eviction_keeps_most_recently_accessed(self, cache, loader, clock):
        """Above the high-water mark only the ``keep`` freshest entries stay."""
        for instance_id in ("1", "2", "3"):
            cache.get(instance_id)
            clock.advance(1)
        cache.get("1")  # touch 1 so it outranks 2 and 3
        clock.advance(1)
        cache.get("4")
        assert len(cache) == 2
        assert "4" in cache
        assert "1" in cache
        assert "2" not in cache
        cache.get("2")
        assert loader.loads.count("2") == 2

    def test_eviction_order_on_a_frozen_clock(self, cache):
        """Entries loaded within one clock tick still rank by access order."""
        for instance_id in ("1", "2", "3"):
            cache.get(instance_id)
        cache.get("1")
        cache.get("4")
        assert "4" in cache
        assert "1" in cache
        assert "2" not in cache
        assert "3" not in cache

    def test_no_eviction_at_high_water(self, cache):
        for instance_id in ("1", "2", "3"):
            cache.get(instance_id)
        assert len(cache) == 3

    def test_loader_errors_propagate_and_are_not_cached(self, cache, loader):
        with pytest.raises(InstanceNotFound):
            cache.get("missing")
        with pytest.raises(InstanceNotFound):
            cache.get("missing")
        assert loader.loads == ["missing", "missing"]
        assert len(cache) == 0

    def test_clear_one_and_all(self, cache):
        cache.get("1")
        cache.get("2")
        cache.clear("1")
        assert "1" not in cache
        assert "2" in cache
        cache.clear()
        assert len(cache) == 0

    def test_stats(self, cache):
        cache.get("1")
        cache.get("1")
        cache.get("2")
        stats = cache.stats()
        assert stats["size"] == 2
        assert stats["total_access"] == 3
        assert stats["average_access"] == 1.5
        assert stats["hits"] == 1
        assert stats["misses"] == 2
        assert stats["high_water"] == 3
        assert stats["keep"] == 2

    def test_stats_on_empty_cache(self, cache):
        assert cache.stats()["average_access"] == 0

    def test_concurrent_misses_load_once(self):
        """Single-flight: threads racing on one key trigger one registry load."""
        slow = CountingLoader(delay=0.05)
        cache = CredentialCache(slow)
        results = []
        threads = [threading.Thread(target=lambda: results.append(cache.get("7"))) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert slow.loads == ["7"]
        assert len(results) == 8
        assert all(r is results[0] for r in results)


# ====================================================================
# 2. Registries
# ====================================================================

class TestRegistries:

    def test_json_registry_list_format(self, tmp_path):
        path = tmp_path / "instances.json"
        path.write_text(json.dumps([
            {"id": 1, "name": "Lab", "baseUrl": "https://lab.example.test", "username": "a", "password": "b"},
            {"id": 2, "name": "Old", "baseUrl": "https://old.example.test", "isActive": False},
        ]))
        registry = JsonInstanceRegistry(str(path))
        assert [i.id for i in registry.list_instances()] == ["1", "2"]
        lab = registry.get_instance("1")
        assert lab.base_url == "https://lab.example.test"
        assert lab.password == "b"
        assert registry.get_instance(2).is_active is False

    def test_json_registry_wrapped_format(self, tmp_path):
        path = tmp_path / "instances.json"
        path.write_text(json.dumps({"instances": [{"id": "x", "base_url": "sbc.example.test"}]}))
        assert JsonInstanceRegistry(str(path)).get_instance("x").base_url == "sbc.example.test"

    def test_json_registry_unknown_id(self, tmp_path):
        path = tmp_path / "instances.json"
        path.write_text("[]")
        with pytest.raises(InstanceNotFound):
            JsonInstanceRegistry(str(path)).get_instance("9")

    def test_missing_registry_file_is_empty(self, tmp_path):
        registry = JsonInstanceRegistry(str(tmp_path / "absent.json"))
        assert registry.list_instances() == []

    def test_env_registry(self):
        registry = EnvInstanceRegistry({
            "PROSBC_BASE_URL": "https://sbc.example.test",
            "PROSBC_USERNAME": "admin",
            "PROSBC_PASSWORD": "pw",
        })
        instance = registry.get_instance("default")
        assert instance.username == "admin"
        assert registry.list_instances() == [instance]
        with pytest.raises(InstanceNotFound):
            registry.get_instance("1")

    def test_env_registry_without_base_url(self):
        registry = EnvInstanceRegistry({})
        assert registry.list_instances() == []
        with pytest.raises(InstanceNotFound):
            registry.get_instance("default")

    def test_loader_rejects_inactive_instances(self, tmp_path):
        path = tmp_path / "instances.json"
        path.write_text(json.dumps([
            {"id": "1", "baseUrl": "https://old.example.test", "isActive": False},
            {"id": "2", "name": "Blank"},
        ]))
        load = registry_loader(JsonInstanceRegistry(str(path)))
        with pytest.raises(InstanceUnavailable):
            load("1")
        with pytest.raises(InstanceUnavailable, match="no base URL"):
            load("2")
