"""
Tests for guest cart storage backends.
"""
import pytest
import redis

from cart_engine.domain.errors import StorageError
from cart_engine.repos.storage import MemoryStorage, RedisStorage


class FakePipeline:
    def __init__(self, client):
        self.client = client
        self.ops = []

    def set(self, name, value):
        self.ops.append(("set", name, value))

    def delete(self, name):
        self.ops.append(("delete", name))

    def publish(self, channel, message):
        self.ops.append(("publish", channel, message))

    def execute(self):
        if self.client.fail:
            raise redis.ConnectionError("redis down")
        for op in self.ops:
            if op[0] == "set":
                self.client.data[op[1]] = op[2]
            elif op[0] == "delete":
                self.client.data.pop(op[1], None)
        self.client.executed.append(self.ops)


class FakeRedis:
    def __init__(self, fail=False):
        self.fail = fail
        self.data = {}
        self.executed = []

    def get(self, name):
        if self.fail:
            raise redis.ConnectionError("redis down")
        return self.data.get(name)

    def pipeline(self, transaction=True):
        return FakePipeline(self)


class TestMemoryStorage:
    def test_save_load_delete(self):
        storage = MemoryStorage()

        storage.save("guest_cart", "{}")
        assert storage.load("guest_cart") == "{}"

        storage.delete("guest_cart")
        assert storage.load("guest_cart") is None

    def test_listeners_get_key_and_origin(self):
        storage = MemoryStorage()
        seen = []
        unsubscribe = storage.subscribe("guest_cart", lambda key, origin: seen.append((key, origin)))

        storage.save("guest_cart", "{}", origin="tab-a")
        storage.save("other", "{}", origin="tab-a")
        unsubscribe()
        storage.delete("guest_cart", origin="tab-b")

        assert seen == [("guest_cart", "tab-a")]

    def test_quota(self):
        storage = MemoryStorage(quota=5)

        with pytest.raises(StorageError):
            storage.save("guest_cart", "x" * 6)
        assert storage.load("guest_cart") is None


class TestRedisStorage:
    def test_write_is_set_plus_publish(self):
        client = FakeRedis()
        storage = RedisStorage(namespace="device-1", client=client)

        storage.save("guest_cart", '{"items": []}', origin="tab-a")

        assert client.executed == [
            [
                ("set", "device-1:guest_cart", '{"items": []}'),
                ("publish", "device-1:guest_cart:changed", "tab-a"),
            ]
        ]
        assert storage.load("guest_cart") == '{"items": []}'

    def test_delete_publishes_too(self):
        client = FakeRedis()
        storage = RedisStorage(client=client)
        storage.save("guest_cart", "{}")

        storage.delete("guest_cart", origin="tab-b")

        assert client.executed[-1] == [("delete", "guest_cart"), ("publish", "guest_cart:changed", "tab-b")]
        assert storage.load("guest_cart") is None

    def test_redis_errors_become_storage_errors(self):
        storage = RedisStorage(client=FakeRedis(fail=True))

        with pytest.raises(StorageError):
            storage.load("guest_cart")
        with pytest.raises(StorageError):
            storage.save("guest_cart", "{}")
