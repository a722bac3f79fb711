"""Configuration entry points."""

from .settings import (
    ContextSettings,
    MaskingSettings,
    ModelRoutingSettings,
    ObservabilitySettings,
    Settings,
    StorageSettings,
    ToolSearchSettings,
    get_settings,
)

__all__ = [
    "ContextSettings",
    "MaskingSettings",
    "ModelRoutingSettings",
    "ObservabilitySettings",
    "Settings",
    "StorageSettings",
    "ToolSearchSettings",
    "get_settings",
]
