"""Settings persistence and notification services."""

from .notifications import EventBusNotifier, LoggingNotifier, NotificationSink
from .settings import GenerationPreset, SecretVault, Settings, SettingsStore

__all__ = [
    "EventBusNotifier",
    "GenerationPreset",
    "LoggingNotifier",
    "NotificationSink",
    "SecretVault",
    "Settings",
    "SettingsStore",
]
