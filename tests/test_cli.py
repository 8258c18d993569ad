"""Tests for the tpe command line."""

import json

import pytest
from click.testing import CliRunner
from openpyxl import load_workbook

from threepoint.cli import main
from threepoint.data import DataCore, save_state


@pytest.fixture
def runner():
    # wide enough that rich tables never wrap cells
    return CliRunner(env={"COLUMNS": "200"})


@pytest.fixture
def project(project_dir, runner):
    """An initialized project in the working directory."""
    result = runner.invoke(main, ['init', '--name', 'Website', '--cost', '50'])
    assert result.exit_code == 0, result.output
    return project_dir


def _run(runner, *args):
    result = runner.invoke(main, list(args))
    assert result.exit_code == 0, result.output
    return result


class TestProjectCommands:
    """Test init, status and config."""

    def test_init(self, project_dir, runner):
        result = _run(runner, 'init', '--name', 'Website')
        assert "Initialized project 'Website'" in result.output
        assert (project_dir / ".tpe" / "project.yml").exists()
        assert DataCore.load().config.project_name == "Website"

    def test_init_twice(self, project, runner):
        result = runner.invoke(main, ['init'])
        assert result.exit_code == 1
        assert "already initialized" in result.output

    def test_status_outside_project(self, project_dir, runner):
        result = _run(runner, 'status')
        assert "Not in an estimation project directory" in result.output

    def test_status(self, project, runner):
        _run(runner, 'task', 'add', '--best', '6', '--likely', '6', '--worst', '6')
        result = _run(runner, 'status')
        assert "Website: 1 tasks" in result.output
        assert "cost 300.00" in result.output

    def test_commands_need_project(self, project_dir, runner):
        result = runner.invoke(main, ['task', 'list'])
        assert result.exit_code == 1
        assert "tpe init" in result.output

    def test_config(self, project, runner):
        result = _run(runner, 'config', '--cost', '80', '--no-groups', '--language', 'de')
        assert "Global hourly rate: 80" in result.output
        config = DataCore.load().config
        assert config.global_cost == 80
        assert config.show_groups is False
        assert config.show_phases is True
        assert config.language == "de"

    def test_version(self, runner):
        result = _run(runner, '--version')
        assert "tpe" in result.output


class TestTaskCommands:
    """Test task subcommands."""

    def test_add_and_list(self, project, runner):
        result = _run(runner, 'task', 'add', '--name', 'Design', '--best', '10', '--likely', '15', '--worst', '20')
        assert "Added task 1: Design (15.00 h)" in result.output
        result = _run(runner, 'task', 'list')
        assert "Design" in result.output
        assert "750.00" in result.output

    def test_list_empty(self, project, runner):
        assert "No tasks yet" in _run(runner, 'task', 'list').output

    def test_list_marks_ignored(self, project, runner):
        _run(runner, 'group', 'add', '--name', 'Extras', '--exclude')
        _run(runner, 'task', 'add', '--group', 'group-1')
        assert "ignored in summaries" in _run(runner, 'task', 'list').output

    def test_edit(self, project, runner):
        _run(runner, 'task', 'add', '--rate', '70')
        _run(runner, 'task', 'edit', '1', '--name', 'Build', '--inherit-rate', '--no-group')
        task = DataCore.load().tasks["1"]
        assert task.name == "Build"
        assert task.cost_override is None
        assert task.group_id == ""

    def test_edit_nothing(self, project, runner):
        _run(runner, 'task', 'add')
        assert "Nothing to change" in _run(runner, 'task', 'edit', '1').output

    def test_edit_unknown(self, project, runner):
        result = runner.invoke(main, ['task', 'edit', '42', '--name', 'x'])
        assert result.exit_code == 1
        assert "❌" in result.output

    def test_duplicate_remove_and_move(self, project, runner):
        _run(runner, 'task', 'add', '--name', 'A')
        _run(runner, 'task', 'add', '--name', 'B')
        assert "as 3: Copy of A" in _run(runner, 'task', 'duplicate', '1').output
        assert DataCore.load().tasks_order == ["1", "3", "2"]
        _run(runner, 'task', 'down', '1')
        assert DataCore.load().tasks_order == ["3", "1", "2"]
        _run(runner, 'task', 'remove', '3')
        assert DataCore.load().tasks_order == ["1", "2"]

    def test_move_messages(self, project, runner):
        _run(runner, 'task', 'add', '--name', 'A')
        _run(runner, 'task', 'add', '--name', 'B')
        assert "Moved task 2 up" in _run(runner, 'task', 'up', '2').output
        assert "Task 2 is already first" in _run(runner, 'task', 'up', '2').output
        assert "Task 1 is already last" in _run(runner, 'task', 'down', '1').output
        assert DataCore.load().tasks_order == ["2", "1"]

    def test_list_table(self, project, runner):
        _run(runner, 'task', 'add', '--name', '[bold]Design')
        output = _run(runner, 'task', 'list').output
        assert "Estimate" in output
        assert "[bold]Design" in output

    def test_clear(self, project, runner):
        _run(runner, 'task', 'add')
        _run(runner, 'task', 'add')
        assert "Removed 2 task(s)" in _run(runner, 'task', 'clear', '--yes').output
        assert DataCore.load().tasks == {}

    def test_clear_aborted(self, project, runner):
        _run(runner, 'task', 'add')
        result = runner.invoke(main, ['task', 'clear'], input="n\n")
        assert result.exit_code == 1
        assert len(DataCore.load().tasks) == 1


class TestGroupAndPhaseCommands:
    """Test group and phase subcommands."""

    def test_group_lifecycle(self, project, runner):
        _run(runner, 'phase', 'add', '--name', 'Build', '--rate', '40')
        _run(runner, 'group', 'add', '--name', 'Backend', '--phase', 'phase-1', '--rate', '30')
        _run(runner, 'group', 'edit', 'group-1', '--exclude')
        state = DataCore.load()
        assert state.groups["group-1"].phase_id == "phase-1"
        assert state.groups["group-1"].include_in_computation is False
        assert "Backend" in _run(runner, 'group', 'list').output
        _run(runner, 'group', 'remove', 'group-1')
        assert "group-1" not in DataCore.load().groups

    def test_default_group_protected(self, project, runner):
        result = runner.invoke(main, ['group', 'remove', 'default'])
        assert result.exit_code == 1

    def test_phase_lifecycle(self, project, runner):
        _run(runner, 'phase', 'add', '--name', 'Build')
        _run(runner, 'phase', 'add', '--name', 'Launch')
        _run(runner, 'phase', 'up', 'phase-2')
        _run(runner, 'phase', 'edit', 'phase-1', '--rate', '90')
        state = DataCore.load()
        assert state.phases_order == ["default", "phase-2", "phase-1"]
        assert state.phases["phase-1"].cost_override == 90
        assert "Launch" in _run(runner, 'phase', 'list').output
        assert "Moved phase phase-1 up" in _run(runner, 'phase', 'up', 'phase-1').output
        assert "Phase default is already first" in _run(runner, 'phase', 'up', 'default').output
        _run(runner, 'phase', 'down', 'phase-1')
        _run(runner, 'phase', 'remove', 'phase-2')
        assert DataCore.load().phases_order == ["default", "phase-1"]


class TestSummaryAndExport:
    """Test summaries, exports and sharing against the sample project."""

    @pytest.fixture
    def sample_project(self, project_dir, sample_state):
        save_state(sample_state, DataCore.project_file(), create_dirs=True)
        return project_dir

    def test_summary_nested(self, sample_project, runner):
        result = _run(runner, 'summary')
        assert "1290.00" in result.output
        assert "Phase Build" in result.output
        assert "  Group Extras (ignored)" in result.output

    def test_summary_by_group(self, sample_project, runner):
        result = _run(runner, 'summary', '--by', 'group')
        assert "Group No Group: 1 tasks" in result.output
        assert "rate N/A" in result.output

    def test_summary_overall(self, sample_project, runner):
        result = _run(runner, 'summary', '--by', 'overall')
        assert "Total Cost" in result.output
        assert "Phase " not in result.output

    def test_export_default_names(self, sample_project, runner):
        _run(runner, 'export', 'report')
        _run(runner, 'export', 'csv')
        assert (sample_project / "Website_estimation_report.md").exists()
        assert (sample_project / "Website_tasks.csv").exists()

    def test_export_xlsx_and_pdf(self, sample_project, runner):
        assert "Exported xlsx to Website_tasks.xlsx" in _run(runner, 'export', 'xlsx').output
        _run(runner, 'export', 'pdf')
        assert load_workbook(sample_project / "Website_tasks.xlsx").sheetnames == ["Tasks", "Summary"]
        assert (sample_project / "Website_estimation_report.pdf").read_bytes().startswith(b"%PDF")

    def test_export_browser_json(self, sample_project, runner):
        _run(runner, 'export', 'json', '--browser', '-o', 'out/browser.json')
        document = json.loads((sample_project / "out" / "browser.json").read_text())
        assert document["config"]["projectName"] == "Website"

    def test_import(self, sample_project, runner, sample_state):
        _run(runner, 'export', 'json', '--browser', '-o', 'browser.json')
        _run(runner, 'task', 'clear', '--yes')
        result = _run(runner, 'import', 'browser.json', '--yes')
        assert "Imported 4 tasks" in result.output
        assert DataCore.load() == sample_state

    def test_share_round_trip(self, sample_project, runner, sample_state, tmp_path, monkeypatch):
        token = _run(runner, 'share').output.strip()
        monkeypatch.setenv("TPE_PROJECT_DIR", str(tmp_path / "other"))
        result = _run(runner, 'load-share', token, '--yes')
        assert "Loaded 'Website' with 4 tasks" in result.output
        assert DataCore.load() == sample_state

    def test_share_link(self, sample_project, runner):
        result = _run(runner, 'share', '--base-url', 'https://example.com/app')
        assert result.output.startswith("https://example.com/app?sharedState=")
        assert result.output.strip().endswith("&lang=en")

    def test_share_link_download(self, sample_project, runner):
        result = _run(runner, 'share', '--base-url', 'https://example.com/app', '--download', 'excel')
        assert result.output.strip().endswith("&lang=en&download=excel")

    def test_share_download_needs_link(self, sample_project, runner):
        result = runner.invoke(main, ['share', '--download', 'pdf'])
        assert result.exit_code == 2
        assert "--download needs --base-url" in result.output

    def test_load_share_link(self, sample_project, runner, sample_state, tmp_path, monkeypatch):
        link = _run(runner, 'share', '--base-url', 'https://example.com/app').output.strip()
        monkeypatch.setenv("TPE_PROJECT_DIR", str(tmp_path / "other"))
        _run(runner, 'load-share', link, '--yes')
        assert DataCore.load() == sample_state

    def test_load_bad_share(self, sample_project, runner):
        result = runner.invoke(main, ['load-share', 'garbage!', '--yes'])
        assert result.exit_code == 1
        assert "Invalid share token" in result.output
