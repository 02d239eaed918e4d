"""Wake-up push sending and scheduling."""

from pywakeup.dispatch.push import HttpPushGateway, PushGateway, PushSender, classify_failure
from pywakeup.dispatch.scheduler import DispatchScheduler, TickReport

__all__ = [
    "DispatchScheduler",
    "HttpPushGateway",
    "PushGateway",
    "PushSender",
    "TickReport",
    "classify_failure",
]
