"""
Estimation engine - three-point estimates, rate resolution and summaries.

Every function here is pure: inputs are never mutated, nothing is cached and
nothing is raised for malformed data. Non-numeric input counts as 0, missing
group/phase references count as absent, and divisions by zero give a defined
sentinel instead of NaN.

A task's phase is always taken from ``task.phase_id``. The phase a task's group
is scoped under (``group.phase_id``) is never consulted, neither for the phase
rate fallback nor for per-phase bucketing, so a task may sit in a different
phase than its group.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Iterable, List, Mapping, Optional
import math

from .models import Task, Group, Phase, ProjectState, NO_GROUP

NO_GROUP_NAME = "No Group"


def to_number(value: Any) -> float:
    """Coerce raw numeric input to a float; anything unusable becomes 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(str(value).strip())
        except ValueError:
            return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def has_override(value: Any) -> bool:
    """True when a rate override is present and not blank."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def estimate(task: Task) -> float:
    """Weighted three-point (PERT) estimate: (best + 4 * likely + worst) / 6."""
    return (to_number(task.best) + 4 * to_number(task.likely) + to_number(task.worst)) / 6


def resolve_group(task: Task, groups: Mapping[str, Group]) -> Optional[Group]:
    if not task.group_id:
        return None
    return groups.get(task.group_id)


def resolve_phase(task: Task, phases: Mapping[str, Phase]) -> Optional[Phase]:
    return phases.get(task.phase_id)


def effective_rate(task: Task, groups: Mapping[str, Group], phases: Mapping[str, Phase],
                   global_cost: Any) -> float:
    """
    Resolve the hourly rate of a task.

    The first override found wins: the task's own, then its group's, then the
    phase named by ``task.phase_id``; otherwise the global cost applies.
    """
    if has_override(task.cost_override):
        return to_number(task.cost_override)
    group = resolve_group(task, groups)
    if group is not None and has_override(group.cost_override):
        return to_number(group.cost_override)
    phase = resolve_phase(task, phases)
    if phase is not None and has_override(phase.cost_override):
        return to_number(phase.cost_override)
    return to_number(global_cost)


def total_cost(task: Task, groups: Mapping[str, Group], phases: Mapping[str, Phase],
               global_cost: Any) -> float:
    return estimate(task) * effective_rate(task, groups, phases, global_cost)


def is_included(task: Task, groups: Mapping[str, Group], phases: Mapping[str, Phase]) -> bool:
    """
    Whether a task takes part in aggregates.

    A task is left out only when its group or its phase is flagged with
    ``include_in_computation = False``. Tasks without a group (or whose group
    was removed) are included unless their phase is excluded.
    """
    group = resolve_group(task, groups)
    if group is not None and group.include_in_computation is False:
        return False
    phase = resolve_phase(task, phases)
    if phase is not None and phase.include_in_computation is False:
        return False
    return True


def group_bucket(task: Task, groups: Mapping[str, Group]) -> str:
    """The group id a task is summarised under; NO_GROUP when unassigned or dangling."""
    group = resolve_group(task, groups)
    return group.id if group is not None else NO_GROUP


class Summary(BaseModel):
    """Sums over the included tasks of one aggregate scope."""

    model_config = ConfigDict(frozen=True)

    sum_best: float = Field(default=0.0, description="Sum of best case estimates")
    sum_likely: float = Field(default=0.0, description="Sum of most likely estimates")
    sum_worst: float = Field(default=0.0, description="Sum of worst case estimates")
    sum_estimate: float = Field(default=0.0, description="Sum of weighted estimates")
    sum_cost: float = Field(default=0.0, description="Sum of task costs")
    count: int = Field(default=0, description="Number of included tasks")

    @property
    def avg_estimate(self) -> float:
        return self.sum_estimate / self.count if self.count > 0 else 0.0

    @property
    def avg_rate(self) -> Optional[float]:
        """Blended hourly rate (cost weighted by estimate); None when nothing was estimated."""
        return self.sum_cost / self.sum_estimate if self.sum_estimate > 0 else None


def summarize(task_ids: Iterable[str], tasks: Mapping[str, Task], groups: Mapping[str, Group],
              phases: Mapping[str, Phase], global_cost: Any) -> Summary:
    """
    Aggregate the given tasks in a single pass.

    Ids that are not in ``tasks`` (removed tasks) are skipped, as are tasks
    failing the inclusion filter.

    Args:
        task_ids: Ids of the tasks to aggregate.
        tasks: Tasks keyed by id.
        groups: Groups keyed by id.
        phases: Phases keyed by id.
        global_cost: Fallback hourly rate.

    Returns:
        A Summary with the sums and the count of included tasks.
    """
    sum_best = sum_likely = sum_worst = sum_estimate = sum_cost = 0.0
    count = 0
    for task_id in task_ids:
        task = tasks.get(task_id)
        if task is None or not is_included(task, groups, phases):
            continue
        task_estimate = estimate(task)
        sum_best += to_number(task.best)
        sum_likely += to_number(task.likely)
        sum_worst += to_number(task.worst)
        sum_estimate += task_estimate
        sum_cost += task_estimate * effective_rate(task, groups, phases, global_cost)
        count += 1
    return Summary(sum_best=sum_best, sum_likely=sum_likely, sum_worst=sum_worst,
                   sum_estimate=sum_estimate, sum_cost=sum_cost, count=count)


class PhaseSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    phase_id: str
    name: str
    cost_override: Optional[Any] = None
    include_in_computation: bool = True
    summary: Summary


class GroupSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    group_id: str = Field(description="Group id, or NO_GROUP for the unassigned bucket")
    name: str
    cost_override: Optional[Any] = None
    include_in_computation: bool = True
    task_ids: List[str] = Field(default_factory=list)
    summary: Summary


class PhaseBreakdown(BaseModel):
    """A phase summary together with the summaries of the groups found among its tasks."""

    model_config = ConfigDict(frozen=True)

    phase: PhaseSummary
    task_ids: List[str] = Field(default_factory=list)
    groups: List[GroupSummary] = Field(default_factory=list)


def _summarize_state(task_ids: Iterable[str], state: ProjectState) -> Summary:
    return summarize(task_ids, state.tasks, state.groups, state.phases, state.config.global_cost)


def overall_summary(state: ProjectState) -> Summary:
    return _summarize_state(state.tasks_order, state)


def _phase_summary(phase_id: str, task_ids: List[str], state: ProjectState) -> PhaseSummary:
    phase = state.phases.get(phase_id)
    return PhaseSummary(
        phase_id=phase_id,
        name=phase.name if phase is not None else phase_id,
        cost_override=phase.cost_override if phase is not None else None,
        include_in_computation=phase.include_in_computation if phase is not None else True,
        summary=_summarize_state(task_ids, state),
    )


def _group_summaries(task_ids: List[str], state: ProjectState, keep_empty: bool) -> List[GroupSummary]:
    buckets = {}
    for task_id in task_ids:
        bucket = group_bucket(state.tasks[task_id], state.groups)
        buckets.setdefault(bucket, []).append(task_id)

    result = []
    for group_id in state.groups_order:
        ids = buckets.get(group_id, [])
        if not ids and not keep_empty:
            continue
        group = state.groups[group_id]
        result.append(GroupSummary(
            group_id=group_id,
            name=group.name,
            cost_override=group.cost_override,
            include_in_computation=group.include_in_computation,
            task_ids=ids,
            summary=_summarize_state(ids, state),
        ))
    if NO_GROUP in buckets:
        ids = buckets[NO_GROUP]
        result.append(GroupSummary(group_id=NO_GROUP, name=NO_GROUP_NAME, task_ids=ids,
                                   summary=_summarize_state(ids, state)))
    return result


def phase_summaries(state: ProjectState) -> List[PhaseSummary]:
    """One summary per phase in display order, empty phases included."""
    return [
        _phase_summary(phase_id, [t for t in state.tasks_order if state.tasks[t].phase_id == phase_id], state)
        for phase_id in state.phases_order
    ]


def group_summaries(state: ProjectState) -> List[GroupSummary]:
    """One summary per group in display order, plus the "No Group" bucket when it is not empty."""
    return _group_summaries(list(state.tasks_order), state, keep_empty=True)


def nested_summaries(state: ProjectState) -> List[PhaseBreakdown]:
    """
    Phase -> Group breakdown.

    For every phase that has tasks: a summary over all of the phase's tasks and
    one summary per group present among them. Groups are matched by the task's
    group only, so a group scoped under another phase still shows up here.
    """
    result = []
    for phase_id in state.phases_order:
        ids = [t for t in state.tasks_order if state.tasks[t].phase_id == phase_id]
        if not ids:
            continue
        result.append(PhaseBreakdown(
            phase=_phase_summary(phase_id, ids, state),
            task_ids=ids,
            groups=_group_summaries(ids, state, keep_empty=False),
        ))
    return result
