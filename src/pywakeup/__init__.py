"""pywakeup - silent wake-up push scheduling and status-wait coordination."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pywakeup")
except PackageNotFoundError:
    __version__ = "0+local"
from pywakeup.config import WakeupConfig
from pywakeup.dispatch import DispatchScheduler, HttpPushGateway, PushGateway, PushSender, TickReport
from pywakeup.exceptions import (
    DeliveryError,
    PermanentDeliveryError,
    StorageError,
    TransientDeliveryError,
    WaitCancelledError,
    WaitError,
    WaitExhaustedError,
    WaitTimedOutError,
    WakeupConfigError,
    WakeupError,
    WakeupValidationError,
)
from pywakeup.models import ActivityType, PushAck, Registration, WaitOutcome
from pywakeup.registry import JsonFileRegistrationStore, MemoryRegistrationStore, RegistrationService, RegistrationStore
from pywakeup.status import (
    RequestCache,
    StatusBus,
    StatusClient,
    StatusEvent,
    StatusSource,
    StatusWait,
    StatusWaitCoordinator,
)

__all__ = [
    "__version__",
    "ActivityType",
    "DeliveryError",
    "DispatchScheduler",
    "HttpPushGateway",
    "JsonFileRegistrationStore",
    "MemoryRegistrationStore",
    "PermanentDeliveryError",
    "PushAck",
    "PushGateway",
    "PushSender",
    "Registration",
    "RegistrationService",
    "RegistrationStore",
    "RequestCache",
    "StatusBus",
    "StatusClient",
    "StatusEvent",
    "StatusSource",
    "StatusWait",
    "StatusWaitCoordinator",
    "StorageError",
    "TickReport",
    "TransientDeliveryError",
    "WaitCancelledError",
    "WaitError",
    "WaitExhaustedError",
    "WaitOutcome",
    "WaitTimedOutError",
    "WakeupConfig",
    "WakeupConfigError",
    "WakeupError",
    "WakeupValidationError",
]
