from abc import ABC, abstractmethod

from campus_reminder.helpers.monitoring import start_as_current_span
from campus_reminder.models.readiness import ReadinessEnum


class IKeyValueStore(ABC):
    """
    String key-value store, used to keep the session across restarts.
    """

    @abstractmethod
    @start_as_current_span("kvstore_readiness")
    async def readiness(self) -> ReadinessEnum:
        pass

    @abstractmethod
    @start_as_current_span("kvstore_get")
    async def get(self, key: str) -> str | None:
        pass

    @abstractmethod
    @start_as_current_span("kvstore_set")
    async def set(
        self,
        key: str,
        ttl_sec: int,
        value: str,
    ) -> bool:
        pass

    @abstractmethod
    @start_as_current_span("kvstore_delete")
    async def delete(self, key: str) -> bool:
        pass
