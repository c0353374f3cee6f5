from collections import OrderedDict
from datetime import UTC, datetime, timedelta

from campus_reminder.helpers.config_models.session import MemoryModel
from campus_reminder.helpers.monitoring import suppress
from campus_reminder.models.readiness import ReadinessEnum
from campus_reminder.persistence.ikvstore import IKeyValueStore


class MemoryKeyValueStore(IKeyValueStore):
    """
    A simple in-memory store, lost when the process exits.

    Use the least recently used (LRU) policy to remove the oldest used items when the store is full.

    See: https://en.wikipedia.org/wiki/Cache_replacement_policies#Least_recently_used_(LRU)
    """

    _config: MemoryModel
    _store: OrderedDict[str, str]
    _ttl: OrderedDict[str, datetime]

    def __init__(self, config: MemoryModel):
        self._config = config
        self._store = OrderedDict()
        self._ttl = OrderedDict()

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the memory store.
        """
        return ReadinessEnum.OK  # Always ready, it's memory :)

    async def get(self, key: str) -> str | None:
        """
        Get a value from the store.

        If the key does not exist or is expired, return `None`.
        """
        # Check TTL, delete if expired
        ttl = self._ttl.get(key, None)
        if ttl and ttl < datetime.now(UTC):
            await self.delete(key)
            return None

        # Get from store
        res = self._store.get(key, None)
        if res is None:
            return None

        # Move to first
        self._store.move_to_end(key, last=False)
        self._ttl.move_to_end(key, last=False)

        return res

    async def set(
        self,
        key: str,
        ttl_sec: int,
        value: str,
    ) -> bool:
        """
        Set a value in the store.
        """
        # Delete the last if full
        if key not in self._store and len(self._store) >= self._config.max_size:
            self._ttl.popitem()
            self._store.popitem()

        # Set TTL as first element
        self._ttl[key] = datetime.now(UTC) + timedelta(seconds=ttl_sec)
        self._ttl.move_to_end(key, last=False)

        # Add value as first element
        self._store[key] = value
        self._store.move_to_end(key, last=False)

        return True

    async def delete(self, key: str) -> bool:
        """
        Delete a value from the store.
        """
        with suppress(KeyError):
            self._ttl.pop(key)
        with suppress(KeyError):
            self._store.pop(key)
        return True
