"""Data models for pywakeup."""

from pywakeup.models.push import PushAck
from pywakeup.models.registration import ActivityType, RegisterRequest, Registration, UnregisterRequest
from pywakeup.models.wait import WaitOutcome

__all__ = [
    "ActivityType",
    "PushAck",
    "RegisterRequest",
    "Registration",
    "UnregisterRequest",
    "WaitOutcome",
]
