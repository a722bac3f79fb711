"""Persistence utilities."""

from .offload import OffloadedFile, OffloadStore, safe_filename_component
from .storage import SessionStorage

__all__ = ["OffloadedFile", "OffloadStore", "SessionStorage", "safe_filename_component"]
