"""Write-once offload store for observations and truncated tool outputs."""

from __future__ import annotations

import asyncio
import functools
import logging
import re
from dataclasses import dataclass
from pathlib import Path

from contextAgent.utils.error_handler import OffloadError

LOGGER = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


def safe_filename_component(value: str) -> str:
    """Make a tool name or call id usable inside a file name."""
    cleaned = _UNSAFE_CHARS.sub("_", str(value)).strip("._")
    return cleaned[:80] or "unknown"


@dataclass(frozen=True)
class OffloadedFile:
    path: Path
    size_bytes: int
    line_count: int

    @property
    def size_mb(self) -> str:
        return f"{self.size_bytes / 1024 / 1024:.2f}"


class OffloadStore:
    """Pure I/O: persist text payloads and hand back their location.

    Files are opened in exclusive-create mode, so content is never
    overwritten once written. Blocking file I/O runs in the default executor
    so several writes of one pass can proceed concurrently.
    """

    async def ensure_dir(self, directory: Path) -> Path:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None, functools.partial(directory.mkdir, parents=True, exist_ok=True)
        )
        return directory

    async def write(self, directory: Path, file_name: str, content: str) -> OffloadedFile:
        """Write `content` to `directory/file_name`.

        Raises:
            OffloadError: the file exists already or cannot be written
        """
        path = directory / file_name
        loop = asyncio.get_running_loop()
        try:
            size_bytes = await loop.run_in_executor(None, self._write_new, path, content)
        except OSError as e:
            raise OffloadError(f"Failed to offload content to {path}: {e}", path=str(path)) from e

        line_count = len(content.split("\n"))
        LOGGER.debug(f"Offloaded {size_bytes:,} bytes ({line_count:,} lines) to {path}")
        return OffloadedFile(path=path, size_bytes=size_bytes, line_count=line_count)

    @staticmethod
    def _write_new(path: Path, content: str) -> int:
        data = content.encode("utf-8")
        with open(path, "xb") as f:
            f.write(data)
        return len(data)
