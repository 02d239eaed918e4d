"""Client-side status coordination: request coalescing and status waits."""

from pywakeup.status.cache import CacheEntry, CacheStats, RequestCache
from pywakeup.status.client import StatusClient
from pywakeup.status.events import StatusBus, StatusEvent, StatusSource
from pywakeup.status.waiters import StatusWait, StatusWaitCoordinator

__all__ = [
    "CacheEntry",
    "CacheStats",
    "RequestCache",
    "StatusBus",
    "StatusClient",
    "StatusEvent",
    "StatusSource",
    "StatusWait",
    "StatusWaitCoordinator",
]
