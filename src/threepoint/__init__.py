"""
threepoint - three-point (PERT) project estimation.

Tasks carry best / most likely / worst case hours and are organised into
phases and groups; the engine turns them into weighted estimates, costs and
summaries:
Phase → Group → Task
"""

from .version import VERSION, APP_SCHEMA_VERSION
from .models import (
    Task,
    Group,
    Phase,
    ProjectConfig,
    ProjectState,
    DEFAULT_PHASE_ID,
    DEFAULT_GROUP_ID,
    NO_GROUP,
)
from .engine import (
    Summary,
    estimate,
    effective_rate,
    total_cost,
    is_included,
    summarize,
    overall_summary,
    phase_summaries,
    group_summaries,
    nested_summaries,
)
from .store import ProjectStore
from .data import DataCore

__version__ = VERSION

__all__ = [
    "VERSION",
    "APP_SCHEMA_VERSION",
    "Task",
    "Group",
    "Phase",
    "ProjectConfig",
    "ProjectState",
    "DEFAULT_PHASE_ID",
    "DEFAULT_GROUP_ID",
    "NO_GROUP",
    "Summary",
    "estimate",
    "effective_rate",
    "total_cost",
    "is_included",
    "summarize",
    "overall_summary",
    "phase_summaries",
    "group_summaries",
    "nested_summaries",
    "ProjectStore",
    "DataCore",
]
