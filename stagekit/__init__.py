"""Reusable entity/component store and stage scheduler.

This package is intentionally independent of `suji.*`. Content kinds, components,
fault policies and the stage list are conventions of the consuming application.
"""

from stagekit.recorder import DefaultSystemRecorder, NullSystemRecorder, SystemRecorder, utc_now_iso8601
from stagekit.schedule import BarrierHook, Schedule, Stage, StageReport
from stagekit.store import (
    DuplicateComponentError,
    Entity,
    MissingComponentError,
    MissingResourceError,
    Store,
)
from stagekit.system import (
    AccessViolationError,
    Commands,
    SystemAccess,
    SystemContext,
    SystemRef,
    system,
)

__all__ = [
    "AccessViolationError",
    "BarrierHook",
    "Commands",
    "DefaultSystemRecorder",
    "DuplicateComponentError",
    "Entity",
    "MissingComponentError",
    "MissingResourceError",
    "NullSystemRecorder",
    "Schedule",
    "Stage",
    "StageReport",
    "Store",
    "SystemAccess",
    "SystemContext",
    "SystemRecorder",
    "SystemRef",
    "system",
    "utc_now_iso8601",
]
