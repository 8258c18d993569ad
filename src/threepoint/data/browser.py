"""
Conversion between ProjectState and the browser estimator's state document.

The browser tool keeps camelCase keys, wraps every task field in a
``{"value", "type", "validationMessage"}`` object and uses an empty string for
"inherit" rate overrides. Its JSON exports and share links carry this shape.
"""
from typing import Any, Dict, Optional

from pydantic import ValidationError

from threepoint.logs import get_logger
from threepoint.models import ProjectState, NO_GROUP
from threepoint.recovery import CorruptionError

log = get_logger("data.browser")

# browser task key -> (Task field, browser input type)
TASK_FIELD_MAP = {
    'id': ('id', 'STRING'),
    'taskName': ('name', 'STRING'),
    'bestCase': ('best', 'NUMBER'),
    'mostLikely': ('likely', 'NUMBER'),
    'worstCase': ('worst', 'NUMBER'),
    'costOverride': ('cost_override', 'NUMBER'),
    'groupId': ('group_id', 'STRING'),
    'phaseId': ('phase_id', 'STRING'),
    'taskDesc': ('description', 'STRING'),
}

CONFIG_FIELD_MAP = {
    'projectName': 'project_name',
    'globalCost': 'global_cost',
    'showGroups': 'show_groups',
    'showPhases': 'show_phases',
    'language': 'language',
}

RECORD_FIELD_MAP = {
    'id': 'id',
    'name': 'name',
    'description': 'description',
    'costOverride': 'cost_override',
    'phaseId': 'phase_id',
    'includeInComputation': 'include_in_computation',
    'visible': 'visible',
}


def _unwrap(field: Any) -> Any:
    if isinstance(field, dict):
        return field.get('value')
    return field

def _override_in(value: Any) -> Optional[Any]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return value

def _override_out(value: Any) -> Any:
    return "" if value is None else value

def _wrap(value: Any, input_type: str) -> Dict[str, Any]:
    return {'value': value, 'type': input_type, 'validationMessage': ""}

def _record_in(raw: Dict[str, Any]) -> Dict[str, Any]:
    record = {RECORD_FIELD_MAP[k]: v for k, v in raw.items() if k in RECORD_FIELD_MAP}
    record['cost_override'] = _override_in(record.get('cost_override'))
    return record

def _record_out(record: Dict[str, Any]) -> Dict[str, Any]:
    reverse = {v: k for k, v in RECORD_FIELD_MAP.items()}
    raw = {reverse[k]: v for k, v in record.items() if k in reverse}
    raw['costOverride'] = _override_out(raw.get('costOverride'))
    return raw


def from_browser_state(document: Dict[str, Any]) -> ProjectState:
    """
    Build a ProjectState from the browser tool's state document.

    Raises:
        CorruptionError: The document is not a browser state or holds invalid values.
    """
    if not isinstance(document, dict):
        raise CorruptionError("Browser state must be a JSON object")

    tasks_slice = document.get('tasks') or {}
    groups_slice = document.get('groups') or {}
    phases_slice = document.get('phases') or {}
    config_slice = document.get('config') or {}

    tasks = {}
    for key, raw_task in (tasks_slice.get('tasks') or {}).items():
        task = {field: _unwrap(raw_task[k]) for k, (field, _) in TASK_FIELD_MAP.items() if k in raw_task}
        task.setdefault('id', key)
        task['id'] = str(task['id'])
        if task.get('group_id') is None:
            task['group_id'] = NO_GROUP
        task['cost_override'] = _override_in(task.get('cost_override'))
        tasks[task['id']] = task

    data = {
        'config': {CONFIG_FIELD_MAP[k]: v for k, v in config_slice.items() if k in CONFIG_FIELD_MAP},
        'tasks': tasks,
        'tasks_order': [str(t) for t in tasks_slice.get('tasksOrder', [])],
        'next_task_id': tasks_slice.get('nextID', 1),
        'groups': {k: _record_in(v) for k, v in (groups_slice.get('groups') or {}).items()},
        'groups_order': list(groups_slice.get('groupsOrder', [])),
        'next_group_id': groups_slice.get('nextGroupId', 1),
        'phases': {k: _record_in(v) for k, v in (phases_slice.get('phases') or {}).items()},
        'phases_order': list(phases_slice.get('phasesOrder', [])),
        'next_phase_id': phases_slice.get('nextPhaseId', 1),
    }
    if not data['groups']:
        data.pop('groups')
        data.pop('groups_order')
    if not data['phases']:
        data.pop('phases')
        data.pop('phases_order')

    try:
        state = ProjectState.model_validate(data)
    except ValidationError as e:
        raise CorruptionError(f"Browser state holds invalid data: {e}") from e
    log.debug(f"Converted browser state with {len(state.tasks)} tasks")
    return state


def to_browser_state(state: ProjectState) -> Dict[str, Any]:
    """Render a ProjectState in the browser tool's state shape."""
    tasks = {}
    for task in state.ordered_tasks():
        values = task.model_dump(mode='json')
        values['cost_override'] = _override_out(values['cost_override'])
        tasks[task.id] = {k: _wrap(values[field], input_type) for k, (field, input_type) in TASK_FIELD_MAP.items()}

    return {
        'tasks': {
            'nextID': state.next_task_id,
            'tasks': tasks,
            'tasksOrder': list(state.tasks_order),
        },
        'config': {k: getattr(state.config, field) for k, field in CONFIG_FIELD_MAP.items()},
        'groups': {
            'groups': {g: _record_out(state.groups[g].model_dump(mode='json')) for g in state.groups_order},
            'groupsOrder': list(state.groups_order),
            'nextGroupId': state.next_group_id,
        },
        'phases': {
            'phases': {p: _record_out(state.phases[p].model_dump(mode='json')) for p in state.phases_order},
            'phasesOrder': list(state.phases_order),
            'nextPhaseId': state.next_phase_id,
        },
    }


def is_browser_state(document: Any) -> bool:
    """Heuristic: browser documents nest their tasks under tasks.tasks."""
    return (isinstance(document, dict)
            and isinstance(document.get('tasks'), dict)
            and 'tasksOrder' in document['tasks'])
