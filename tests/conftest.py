"""Shared fixtures for threepoint tests."""

import os
import tempfile

# Keep test runs from writing into the user's log directory.
os.environ.setdefault("TPE_LOG_DIR", tempfile.mkdtemp(prefix="tpe-logs-"))

import pytest

from threepoint.models import ProjectState, Task, Group, Phase, ProjectConfig


@pytest.fixture
def project_dir(tmp_path, monkeypatch):
    """Run in an empty working directory with the project stored under it."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("TPE_PROJECT_DIR", raising=False)
    return tmp_path


@pytest.fixture
def sample_state():
    """Two phases, two groups, four tasks; one group excluded from computation."""
    return ProjectState(
        config=ProjectConfig(project_name="Website", global_cost=50),
        phases={
            "default": Phase(id="default", name="Default Phase"),
            "phase-1": Phase(id="phase-1", name="Build", cost_override=40),
        },
        phases_order=["default", "phase-1"],
        groups={
            "default": Group(id="default", name="Default Group"),
            "group-1": Group(id="group-1", name="Backend", phase_id="phase-1", cost_override=30),
            "group-2": Group(id="group-2", name="Extras", phase_id="phase-1", include_in_computation=False),
        },
        groups_order=["default", "group-1", "group-2"],
        tasks={
            "1": Task(id="1", name="Design", best=10, likely=15, worst=20),
            "2": Task(id="2", name="API", best=6, likely=12, worst=30, group_id="group-1", phase_id="phase-1"),
            "3": Task(id="3", name="Admin", best=1, likely=2, worst=3, group_id="group-2", phase_id="phase-1"),
            "4": Task(id="4", name="Deploy", best=2, likely=3, worst=4, group_id="", phase_id="phase-1"),
        },
        tasks_order=["1", "2", "3", "4"],
    )
