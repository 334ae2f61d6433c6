"""VAPI voice-call platform facade."""

from voiceops.vapi.resources import ResourceKind
from voiceops.vapi.service import HealthStatus, ResourceOutcome, VapiService

__all__ = [
    "ResourceKind",
    "HealthStatus",
    "ResourceOutcome",
    "VapiService",
]
