"""Telemetry and tracing."""

from .events import ChatCompressionEvent, ObservationMaskingEvent, TelemetryRecorder
from .tracing import configure_tracing

__all__ = [
    "ChatCompressionEvent",
    "ObservationMaskingEvent",
    "TelemetryRecorder",
    "configure_tracing",
]
