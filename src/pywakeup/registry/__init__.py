"""Device registration storage and boundary."""

from pywakeup.registry.service import RegistrationService
from pywakeup.registry.store import JsonFileRegistrationStore, MemoryRegistrationStore, RegistrationStore

__all__ = [
    "JsonFileRegistrationStore",
    "MemoryRegistrationStore",
    "RegistrationService",
    "RegistrationStore",
]
