"""Per-session storage layout for offloaded content."""

from __future__ import annotations

import logging
from pathlib import Path

from contextAgent.config.settings import StorageSettings

LOGGER = logging.getLogger(__name__)


class SessionStorage:
    """Resolve session-scoped directories.

    Directory structure:
        {root}/{session_id}/
            ├── observations/    # Masked tool observations
            └── tool-outputs/    # Tool outputs truncated during compression

    Directories are created lazily by the offload store, right before the
    first write, so a session that never offloads leaves nothing behind.
    """

    def __init__(self, session_id: str, settings: StorageSettings | None = None):
        """Initialize storage for a session.

        Args:
            session_id: Session/thread ID
            settings: Storage settings (root and sub-directory names)
        """
        self.settings = settings or StorageSettings()
        self.session_id = session_id
        self.root = Path(self.settings.root)

    @property
    def session_dir(self) -> Path:
        return self.root / self.session_id

    @property
    def observations_dir(self) -> Path:
        return self.session_dir / self.settings.observation_dir

    @property
    def tool_outputs_dir(self) -> Path:
        return self.session_dir / self.settings.tool_output_dir
