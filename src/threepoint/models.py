from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Dict, Union, Any
import json
import re
import yaml

from .version import APP_SCHEMA_VERSION

DEFAULT_PHASE_ID = "default"
DEFAULT_GROUP_ID = "default"
NO_GROUP = ""

# Raw numeric input as typed by the user; the engine coerces it.
NumericInput = Union[float, str]

class BaseYAMLModel(BaseModel):
    """Base model with YAML and JSON round-tripping helpers."""

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.model_dump(mode='json'), default_flow_style=False,
                              sort_keys=False, indent=2, allow_unicode=True)

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode='json'), indent=2, ensure_ascii=False)

    @classmethod
    def from_yaml(cls, text: str):
        data = yaml.safe_load(text) or {}
        return cls.model_validate(data)

    @classmethod
    def from_json(cls, text: str):
        return cls.model_validate(json.loads(text))


class Task(BaseModel):
    """A single estimated unit of work."""

    id: str = Field(description="Unique, stable identifier of the task")
    name: str = Field(default="", description="Free text name of the task")
    description: str = Field(default="", description="Optional longer description")
    # None is a blank input and counts as 0
    best: Optional[NumericInput] = Field(default=0.0, description="Optimistic (best case) estimate in hours")
    likely: Optional[NumericInput] = Field(default=0.0, description="Most likely estimate in hours")
    worst: Optional[NumericInput] = Field(default=0.0, description="Pessimistic (worst case) estimate in hours")
    cost_override: Optional[NumericInput] = Field(
        default=None,
        description="Hourly rate for this task only; empty means inherit"
    )
    group_id: str = Field(default=DEFAULT_GROUP_ID, description="Group the task belongs to; empty for no group")
    phase_id: str = Field(default=DEFAULT_PHASE_ID, description="Phase the task belongs to; never empty")

    @field_validator('group_id', mode='before')
    @classmethod
    def normalize_group(cls, v):
        return NO_GROUP if v is None else v

    @field_validator('phase_id', mode='before')
    @classmethod
    def normalize_phase(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_PHASE_ID
        return v


class Group(BaseModel):
    """A set of tasks scoped under a phase, with its own rate and inclusion flag."""

    id: str = Field(description="Unique identifier of the group")
    name: str = Field(default="New Group", description="Display name")
    description: str = Field(default="", description="Optional description")
    cost_override: Optional[NumericInput] = Field(
        default=None,
        description="Hourly rate for tasks in this group; empty means inherit"
    )
    phase_id: str = Field(default=DEFAULT_PHASE_ID, description="Phase this group is scoped under")
    include_in_computation: bool = Field(default=True, description="When false, tasks in this group are left out of every summary")
    visible: bool = Field(default=True, description="Whether the group is expanded in listings")


class Phase(BaseModel):
    """A coarse project stage; groups and tasks hang off it."""

    id: str = Field(description="Unique identifier of the phase")
    name: str = Field(default="New Phase", description="Display name")
    description: str = Field(default="", description="Optional description")
    cost_override: Optional[NumericInput] = Field(
        default=None,
        description="Hourly rate for tasks in this phase; empty means inherit"
    )
    include_in_computation: bool = Field(default=True, description="When false, tasks in this phase are left out of every summary")
    visible: bool = Field(default=True, description="Whether the phase is expanded in listings")


class ProjectConfig(BaseModel):
    project_name: str = Field(default="My Project", description="Name used in reports and export file names")
    global_cost: Optional[NumericInput] = Field(default=50.0, description="Fallback hourly rate")
    show_groups: bool = Field(default=True, description="Break summaries down by group")
    show_phases: bool = Field(default=True, description="Break summaries down by phase")
    language: str = Field(default="en", description="Preferred language of the browser tool")


def default_phase() -> Phase:
    return Phase(id=DEFAULT_PHASE_ID, name="Default Phase")

def default_group() -> Group:
    return Group(id=DEFAULT_GROUP_ID, name="Default Group", phase_id=DEFAULT_PHASE_ID)


_COUNTER_PATTERN = re.compile(r'^(?:[a-z]+-)?(\d+)$')

def _next_counter(ids, current: int) -> int:
    """Return a counter value strictly greater than every numeric id suffix in use."""
    highest = 0
    for record_id in ids:
        match = _COUNTER_PATTERN.match(record_id)
        if match:
            highest = max(highest, int(match.group(1)))
    return max(current, highest + 1)

def _reconcile_order(order: List[str], records: Dict[str, Any]) -> List[str]:
    """Keep known ids in their current order, drop duplicates and unknown ids, append the rest."""
    seen = set()
    result = []
    for record_id in order:
        if record_id in records and record_id not in seen:
            seen.add(record_id)
            result.append(record_id)
    result.extend(record_id for record_id in records if record_id not in seen)
    return result


class ProjectState(BaseYAMLModel):
    """The complete store of one estimation project."""

    schema_version: str = Field(default=APP_SCHEMA_VERSION, description="Schema version the data was written with")
    config: ProjectConfig = Field(default_factory=ProjectConfig, description="Project wide settings")
    tasks: Dict[str, Task] = Field(default_factory=dict, description="Tasks keyed by id")
    tasks_order: List[str] = Field(default_factory=list, description="Display order of task ids")
    next_task_id: int = Field(default=1, description="Next sequential task id")
    groups: Dict[str, Group] = Field(
        default_factory=lambda: {DEFAULT_GROUP_ID: default_group()},
        description="Groups keyed by id"
    )
    groups_order: List[str] = Field(default_factory=lambda: [DEFAULT_GROUP_ID], description="Display order of group ids")
    next_group_id: int = Field(default=1, description="Next sequential group number")
    phases: Dict[str, Phase] = Field(
        default_factory=lambda: {DEFAULT_PHASE_ID: default_phase()},
        description="Phases keyed by id"
    )
    phases_order: List[str] = Field(default_factory=lambda: [DEFAULT_PHASE_ID], description="Display order of phase ids")
    next_phase_id: int = Field(default=1, description="Next sequential phase number")

    @model_validator(mode='after')
    def enforce_invariants(self):
        for task_id, task in self.tasks.items():
            if task.id != task_id:
                raise ValueError(f"Task keyed as '{task_id}' carries id '{task.id}'")

        if DEFAULT_PHASE_ID not in self.phases:
            self.phases = {DEFAULT_PHASE_ID: default_phase(), **self.phases}
        if DEFAULT_GROUP_ID not in self.groups:
            self.groups = {DEFAULT_GROUP_ID: default_group(), **self.groups}

        self.tasks_order = _reconcile_order(self.tasks_order, self.tasks)
        self.groups_order = _reconcile_order(self.groups_order, self.groups)
        self.phases_order = _reconcile_order(self.phases_order, self.phases)

        self.next_task_id = _next_counter(self.tasks, self.next_task_id)
        self.next_group_id = _next_counter((g for g in self.groups if g != DEFAULT_GROUP_ID), self.next_group_id)
        self.next_phase_id = _next_counter((p for p in self.phases if p != DEFAULT_PHASE_ID), self.next_phase_id)
        return self

    def find_task(self, task_id: str) -> Optional[Task]:
        return self.tasks.get(task_id)

    def find_group(self, group_id: str) -> Optional[Group]:
        return self.groups.get(group_id)

    def find_phase(self, phase_id: str) -> Optional[Phase]:
        return self.phases.get(phase_id)

    def ordered_tasks(self) -> List[Task]:
        """Tasks in display order."""
        return [self.tasks[t] for t in self.tasks_order]
