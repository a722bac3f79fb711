"""Per-session services shared by the context budget pipeline."""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Callable, Optional

from langchain_core.language_models import BaseChatModel

from contextAgent.config.settings import Settings, get_settings
from contextAgent.context.token_tracker import TokenTracker
from contextAgent.context.tokens import TokenEstimator, estimate_tokens
from contextAgent.models.summarizer import build_summarizer_model
from contextAgent.persistence.offload import OffloadStore
from contextAgent.persistence.storage import SessionStorage
from contextAgent.telemetry.events import TelemetryRecorder
from contextAgent.tools.registry import ToolRegistry

LOGGER = logging.getLogger(__name__)

IdFactory = Callable[[], str]


def random_suffix() -> str:
    return uuid.uuid4().hex[:8]


class ContextSession:
    """Everything one session's masking, compression and tool gating depend on.

    Constructed per session and passed explicitly; nothing here is a
    process-wide singleton. Tests inject a deterministic `estimator`,
    `id_factory` and `summarizer`.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        session_id: Optional[str] = None,
        estimator: Optional[TokenEstimator] = None,
        id_factory: Optional[IdFactory] = None,
        summarizer: Optional[BaseChatModel] = None,
        telemetry: Optional[TelemetryRecorder] = None,
        tool_registry: Optional[ToolRegistry] = None,
        offload_store: Optional[OffloadStore] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.session_id = session_id or str(uuid.uuid4())
        self.storage = SessionStorage(self.session_id, self.settings.storage)
        self.estimator: TokenEstimator = estimator or estimate_tokens
        self.id_factory: IdFactory = id_factory or random_suffix
        self.telemetry = telemetry or TelemetryRecorder(
            enabled=self.settings.observability.usage_statistics_enabled
        )
        self.tool_registry = tool_registry or ToolRegistry(self.settings.tool_search)
        self.offload_store = offload_store or OffloadStore()
        self.token_tracker = TokenTracker(self.settings)

        self._summarizer = summarizer
        self._truncation_lock = threading.Lock()
        self._truncation_id = 0

        LOGGER.debug(f"ContextSession created: {self.session_id[:16]} (storage: {self.storage.session_dir})")

    def new_id(self) -> str:
        return self.id_factory()

    def next_truncation_id(self) -> int:
        """Monotonic per-session id for truncated tool output files."""
        with self._truncation_lock:
            self._truncation_id += 1
            return self._truncation_id

    @property
    def truncation_id(self) -> int:
        """Last id handed out (0 before the first truncation)."""
        return self._truncation_id

    @property
    def summarizer(self) -> BaseChatModel:
        """Chat model that writes state snapshots, built from settings on first use."""
        if self._summarizer is None:
            self._summarizer = build_summarizer_model(self.settings)
        return self._summarizer
