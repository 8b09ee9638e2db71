# cart_engine/repos/storage.py
from typing import Callable

import redis
from redis.exceptions import RedisError

from cart_engine.domain.errors import StorageError
from cart_engine.utils.retry import redis_retry
from cart_engine.utils.settings import REDIS_URL
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)

# callback(key, origin) - origin to id instancji, ktora zapisala zmiane
ChangeListener = Callable[[str, str | None], None]


class CartStorage:
    """
    Lokalny magazyn klucz -> JSON dla koszyka goscia (odpowiednik localStorage).
    Zmiana klucza jest rozglaszana do wszystkich subskrybentow tego klucza
    (takze innych "kart" / procesow korzystajacych z tego samego magazynu).
    """

    def load(self, key: str) -> str | None:
        raise NotImplementedError

    def save(self, key: str, value: str, origin: str | None = None) -> None:
        raise NotImplementedError

    def delete(self, key: str, origin: str | None = None) -> None:
        raise NotImplementedError

    def subscribe(self, key: str, listener: ChangeListener) -> Callable[[], None]:
        raise NotImplementedError


class MemoryStorage(CartStorage):
    """Magazyn w pamieci procesu. `quota` (w znakach) symuluje limit localStorage."""

    def __init__(self, quota: int | None = None):
        self.quota = quota
        self._data: dict[str, str] = {}
        self._listeners: dict[str, list[ChangeListener]] = {}

    def load(self, key: str) -> str | None:
        return self._data.get(key)

    def save(self, key: str, value: str, origin: str | None = None) -> None:
        if self.quota is not None and len(value) > self.quota:
            raise StorageError(f"Storage quota exceeded for {key!r}")
        self._data[key] = value
        self._notify(key, origin)

    def delete(self, key: str, origin: str | None = None) -> None:
        self._data.pop(key, None)
        self._notify(key, origin)

    def subscribe(self, key: str, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.setdefault(key, []).append(listener)

        def unsubscribe():
            if listener in self._listeners.get(key, []):
                self._listeners[key].remove(listener)

        return unsubscribe

    def _notify(self, key: str, origin: str | None) -> None:
        for listener in list(self._listeners.get(key, [])):
            listener(key, origin)


class RedisStorage(CartStorage):
    """
    Magazyn w redisie. Zapis = SET + PUBLISH na kanale `<klucz>:changed`,
    wiadomosc niesie origin zapisujacego. `namespace` oddziela urzadzenia.
    """

    def __init__(self, url: str | None = None, namespace: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}" if self.namespace else key

    def _channel(self, key: str) -> str:
        return f"{self._key(key)}:changed"

    def load(self, key: str) -> str | None:
        try:
            return self._get(self._key(key))
        except RedisError as e:
            raise StorageError(f"Could not read {key!r}: {e}") from e

    def save(self, key: str, value: str, origin: str | None = None) -> None:
        logger.info(f"RedisStorage SET {self._key(key)}")
        try:
            self._write(key, value, origin)
        except RedisError as e:
            raise StorageError(f"Could not write {key!r}: {e}") from e

    def delete(self, key: str, origin: str | None = None) -> None:
        logger.info(f"RedisStorage DEL {self._key(key)}")
        try:
            self._write(key, None, origin)
        except RedisError as e:
            raise StorageError(f"Could not delete {key!r}: {e}") from e

    def subscribe(self, key: str, listener: ChangeListener) -> Callable[[], None]:
        pubsub = self.redis.pubsub(ignore_subscribe_messages=True)

        def handler(message):
            listener(key, message.get("data") or None)

        pubsub.subscribe(**{self._channel(key): handler})
        #osobny watek czyta wiadomosci z kanalu
        worker = pubsub.run_in_thread(sleep_time=0.1, daemon=True)

        def unsubscribe():
            worker.stop()
            pubsub.close()

        return unsubscribe

    @redis_retry()
    def _get(self, name: str) -> str | None:
        return self.redis.get(name)

    @redis_retry()
    def _write(self, key: str, value: str | None, origin: str | None) -> None:
        #zapis i powiadomienie w jednej transakcji
        pipe = self.redis.pipeline(transaction=True)
        if value is None:
            pipe.delete(self._key(key))
        else:
            pipe.set(self._key(key), value)
        pipe.publish(self._channel(key), origin or "")
        pipe.execute()
