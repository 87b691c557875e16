"""
Settings snapshot model and providers.
"""

from .models import (
    DEFAULT_SETTINGS,
    DEFAULT_TRACK_MAPPING,
    AppSettings,
    BehaviorSettings,
    CompetitionSettings,
    CpuPriority,
    FFmpegSettings,
    FileNamingSettings,
    ProcessingMode,
    ShareCodeSettings,
)
from .provider import JsonSettingsProvider, StaticSettingsProvider, get_app_home

__all__ = [
    "AppSettings",
    "BehaviorSettings",
    "CompetitionSettings",
    "CpuPriority",
    "DEFAULT_SETTINGS",
    "DEFAULT_TRACK_MAPPING",
    "FFmpegSettings",
    "FileNamingSettings",
    "ProcessingMode",
    "ShareCodeSettings",
    "JsonSettingsProvider",
    "StaticSettingsProvider",
    "get_app_home",
]
