"""
ProjectStore - the single mutable owner of a project's state.

Mutations never touch the published state: each one works on a deep copy and
swaps it in under a lock, so a snapshot handed to the engine is always complete
and never changes underneath it.
"""
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from .models import (
    ProjectState, Task, Group, Phase,
    DEFAULT_GROUP_ID, DEFAULT_PHASE_ID, NO_GROUP,
)
from .recovery import UnknownRecordError, ProtectedRecordError
from .logs import get_logger

log = get_logger("store")

COPY_PREFIX = "Copy of "

TASK_FIELDS = {'name', 'description', 'best', 'likely', 'worst', 'cost_override', 'group_id', 'phase_id'}
GROUP_FIELDS = {'name', 'description', 'cost_override', 'phase_id', 'include_in_computation', 'visible'}
PHASE_FIELDS = {'name', 'description', 'cost_override', 'include_in_computation', 'visible'}


def _check_fields(kind: str, updates: Dict[str, Any], allowed: set):
    unknown = set(updates) - allowed
    if unknown:
        raise ValueError(f"Unknown {kind} field(s): {', '.join(sorted(unknown))}")


def _move(order: List[str], record_id: str, offset: int) -> bool:
    """Swap record_id with its neighbour; returns False at either end."""
    index = order.index(record_id)
    target = index + offset
    if target < 0 or target >= len(order):
        return False
    order[index], order[target] = order[target], order[index]
    return True


class ProjectStore:
    """Owns one ProjectState and serialises every change to it."""

    def __init__(self, state: Optional[ProjectState] = None):
        self._lock = threading.RLock()
        self._state = state if state is not None else ProjectState()

    def snapshot(self) -> ProjectState:
        """The current state; treat it as read-only."""
        with self._lock:
            return self._state

    @contextmanager
    def _mutate(self) -> Iterator[ProjectState]:
        with self._lock:
            draft = self._state.model_copy(deep=True)
            yield draft
            # Re-run validation so orders and counters stay consistent.
            self._state = ProjectState.model_validate(draft.model_dump())

    def load_state(self, state: ProjectState):
        with self._lock:
            self._state = ProjectState.model_validate(state.model_dump())
        log.info(f"Loaded state with {len(state.tasks)} tasks, {len(state.groups)} groups, {len(state.phases)} phases")

    # --- Tasks ---

    def _require_task(self, state: ProjectState, task_id: str) -> Task:
        task = state.tasks.get(task_id)
        if task is None:
            raise UnknownRecordError(f"No task with id '{task_id}'")
        return task

    def add_task(self, phase_id: Optional[str] = None, group_id: Optional[str] = None, **fields) -> Task:
        """
        Append a new task.

        Without an explicit phase or group the new task takes them from the last
        task in display order, falling back to the default phase and group.
        """
        _check_fields("task", fields, TASK_FIELDS - {'phase_id', 'group_id'})
        with self._mutate() as state:
            last = state.tasks[state.tasks_order[-1]] if state.tasks_order else None
            if phase_id is None:
                phase_id = last.phase_id if last is not None else DEFAULT_PHASE_ID
            if group_id is None:
                group_id = last.group_id if last is not None else DEFAULT_GROUP_ID

            task_id = str(state.next_task_id)
            fields.setdefault('name', f"Task {task_id}")
            task = Task(id=task_id, phase_id=phase_id, group_id=group_id, **fields)
            state.tasks[task_id] = task
            state.tasks_order.append(task_id)
            state.next_task_id += 1
        log.debug(f"Added task {task_id} in phase '{task.phase_id}', group '{task.group_id}'")
        return task

    def edit_task(self, task_id: str, **updates) -> Task:
        """Update task fields. Moving a task to another phase clears its group unless one is given."""
        _check_fields("task", updates, TASK_FIELDS)
        with self._mutate() as state:
            current = self._require_task(state, task_id)
            if 'phase_id' in updates and 'group_id' not in updates and updates['phase_id'] != current.phase_id:
                updates['group_id'] = NO_GROUP
            task = Task.model_validate({**current.model_dump(), **updates})
            state.tasks[task_id] = task
        log.debug(f"Edited task {task_id}: {sorted(updates)}")
        return task

    def remove_task(self, task_id: str):
        with self._mutate() as state:
            self._require_task(state, task_id)
            del state.tasks[task_id]
            state.tasks_order.remove(task_id)
        log.debug(f"Removed task {task_id}")

    def duplicate_task(self, task_id: str) -> Task:
        """Copy a task under a new id, right after the original in display order."""
        with self._mutate() as state:
            original = self._require_task(state, task_id)
            new_id = str(state.next_task_id)
            copy = original.model_copy(deep=True, update={'id': new_id, 'name': COPY_PREFIX + original.name})
            state.tasks[new_id] = copy
            state.tasks_order.insert(state.tasks_order.index(task_id) + 1, new_id)
            state.next_task_id += 1
        log.debug(f"Duplicated task {task_id} as {new_id}")
        return copy

    def clear_tasks(self) -> int:
        """Remove every task; ids keep counting up so none is reused."""
        with self._mutate() as state:
            removed = len(state.tasks)
            state.tasks = {}
            state.tasks_order = []
        log.info(f"Cleared {removed} tasks")
        return removed

    def move_task_up(self, task_id: str) -> bool:
        with self._mutate() as state:
            self._require_task(state, task_id)
            return _move(state.tasks_order, task_id, -1)

    def move_task_down(self, task_id: str) -> bool:
        with self._mutate() as state:
            self._require_task(state, task_id)
            return _move(state.tasks_order, task_id, 1)

    # --- Groups ---

    def _require_group(self, state: ProjectState, group_id: str) -> Group:
        group = state.groups.get(group_id)
        if group is None:
            raise UnknownRecordError(f"No group with id '{group_id}'")
        return group

    def add_group(self, **fields) -> Group:
        _check_fields("group", fields, GROUP_FIELDS)
        with self._mutate() as state:
            group_id = f"group-{state.next_group_id}"
            group = Group(id=group_id, **fields)
            state.groups[group_id] = group
            state.groups_order.append(group_id)
            state.next_group_id += 1
        log.debug(f"Added group {group_id} under phase '{group.phase_id}'")
        return group

    def edit_group(self, group_id: str, **updates) -> Group:
        _check_fields("group", updates, GROUP_FIELDS)
        with self._mutate() as state:
            current = self._require_group(state, group_id)
            group = Group.model_validate({**current.model_dump(), **updates})
            state.groups[group_id] = group
        log.debug(f"Edited group {group_id}: {sorted(updates)}")
        return group

    def remove_group(self, group_id: str):
        """Remove a group. Tasks keep the stale id and are summarised as unassigned."""
        if group_id == DEFAULT_GROUP_ID:
            raise ProtectedRecordError("The default group cannot be removed")
        with self._mutate() as state:
            self._require_group(state, group_id)
            del state.groups[group_id]
            state.groups_order.remove(group_id)
        log.debug(f"Removed group {group_id}")

    def move_group_up(self, group_id: str) -> bool:
        with self._mutate() as state:
            self._require_group(state, group_id)
            return _move(state.groups_order, group_id, -1)

    def move_group_down(self, group_id: str) -> bool:
        with self._mutate() as state:
            self._require_group(state, group_id)
            return _move(state.groups_order, group_id, 1)

    # --- Phases ---

    def _require_phase(self, state: ProjectState, phase_id: str) -> Phase:
        phase = state.phases.get(phase_id)
        if phase is None:
            raise UnknownRecordError(f"No phase with id '{phase_id}'")
        return phase

    def add_phase(self, **fields) -> Phase:
        _check_fields("phase", fields, PHASE_FIELDS)
        with self._mutate() as state:
            phase_id = f"phase-{state.next_phase_id}"
            phase = Phase(id=phase_id, **fields)
            state.phases[phase_id] = phase
            state.phases_order.append(phase_id)
            state.next_phase_id += 1
        log.debug(f"Added phase {phase_id}")
        return phase

    def edit_phase(self, phase_id: str, **updates) -> Phase:
        _check_fields("phase", updates, PHASE_FIELDS)
        with self._mutate() as state:
            current = self._require_phase(state, phase_id)
            phase = Phase.model_validate({**current.model_dump(), **updates})
            state.phases[phase_id] = phase
        log.debug(f"Edited phase {phase_id}: {sorted(updates)}")
        return phase

    def remove_phase(self, phase_id: str):
        if phase_id == DEFAULT_PHASE_ID:
            raise ProtectedRecordError("The default phase cannot be removed")
        with self._mutate() as state:
            self._require_phase(state, phase_id)
            del state.phases[phase_id]
            state.phases_order.remove(phase_id)
        log.debug(f"Removed phase {phase_id}")

    def move_phase_up(self, phase_id: str) -> bool:
        with self._mutate() as state:
            self._require_phase(state, phase_id)
            return _move(state.phases_order, phase_id, -1)

    def move_phase_down(self, phase_id: str) -> bool:
        with self._mutate() as state:
            self._require_phase(state, phase_id)
            return _move(state.phases_order, phase_id, 1)

    # --- Config ---

    def _set_config(self, **updates):
        with self._mutate() as state:
            state.config = state.config.model_copy(update=updates)
        log.debug(f"Config updated: {updates}")

    def set_global_cost(self, cost: Any):
        self._set_config(global_cost=cost)

    def set_project_name(self, name: str):
        self._set_config(project_name=name)

    def set_show_groups(self, show: bool):
        self._set_config(show_groups=show)

    def set_show_phases(self, show: bool):
        self._set_config(show_phases=show)

    def set_language(self, language: str):
        self._set_config(language=language)
