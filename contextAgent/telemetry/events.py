"""Usage telemetry events for context management."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ObservationMaskingEvent:
    tokens_before: int
    tokens_after: int
    masked_count: int
    total_prunable_tokens: int
    event_name: str = "observation_masking"


@dataclass(frozen=True)
class ChatCompressionEvent:
    tokens_before: int
    tokens_after: int
    compression_status: str
    truncated_count: int = 0
    event_name: str = "chat_compression"


TelemetryEvent = Any
TelemetrySink = Callable[[Dict[str, Any]], None]


@dataclass
class TelemetryRecorder:
    """Collect telemetry events for one session.

    Events are logged, kept in memory, and forwarded to any registered sinks.
    A failing sink is logged and never breaks the pipeline.
    """

    enabled: bool = True
    sinks: List[TelemetrySink] = field(default_factory=list)
    events: List[Dict[str, Any]] = field(default_factory=list)

    def add_sink(self, sink: TelemetrySink) -> None:
        self.sinks.append(sink)

    def record(self, event: TelemetryEvent, session_id: Optional[str] = None) -> None:
        if not self.enabled:
            return

        payload = asdict(event)
        payload["timestamp"] = datetime.now(timezone.utc).isoformat()
        if session_id:
            payload["session_id"] = session_id

        self.events.append(payload)
        LOGGER.info(f"Telemetry {payload['event_name']}: {payload}")

        for sink in self.sinks:
            try:
                sink(payload)
            except Exception as e:
                LOGGER.warning(f"Telemetry sink {sink!r} failed: {e}")
