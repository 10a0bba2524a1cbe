"""
Data Models Layer.

This package contains the Pydantic models and dataclasses that define the core
data structures used throughout the application: configuration, build service
payloads, task events and session statistics.
"""

from .build import BuildImage, BuildRequest, BuildResult, BuildStatus
from .config import BuildConfig, DeviceConfig
from .events import BuildTask, Failure, Progress, ProgressEvent, Success, TaskState
from .stats import BuildStats

__all__ = [
    "BuildConfig",
    "BuildImage",
    "BuildRequest",
    "BuildResult",
    "BuildStats",
    "BuildStatus",
    "BuildTask",
    "DeviceConfig",
    "Failure",
    "Progress",
    "ProgressEvent",
    "Success",
    "TaskState",
]
