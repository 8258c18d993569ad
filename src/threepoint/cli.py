"""
Command Line Interface for the three-point estimator.
"""

import click
from contextlib import contextmanager
from pathlib import Path
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from .version import VERSION
from .data import DataCore, decode_state, encode_state, share_url
from .data.share import DOWNLOAD_TYPES
from .data.validate import validate_state_file
from .engine import (
    estimate, effective_rate, total_cost, is_included,
    overall_summary, phase_summaries, group_summaries, nested_summaries,
)
from .export import (
    build_overall_table, format_amount, format_input, default_filename,
    export_state_json, export_state_yaml, export_tasks_csv, export_summary_csv, export_report,
    export_xlsx, export_pdf,
)
from .models import ProjectState, ProjectConfig, NO_GROUP
from .recovery import ThreePointError

SUMMARY_MODES = ['auto', 'overall', 'phase', 'group', 'nested']


@contextmanager
def _reported_errors():
    """Report package errors as a message and exit status 1."""
    try:
        yield
    except ThreePointError as e:
        click.echo(f"❌ {e}", err=True)
        raise SystemExit(1)
    except ValueError as e:
        click.echo(f"❌ Invalid value: {e}", err=True)
        raise SystemExit(1)


def _print_table(header, rows, title=None):
    table = Table(title=title, show_header=True, header_style="bold")
    for index, column in enumerate(header):
        table.add_column(column, style="cyan" if index == 0 else None)
    for row in rows:
        table.add_row(*(escape(str(value)) for value in row))
    # Created per call so the width follows the current terminal (or COLUMNS)
    Console().print(table)


def _summary_line(label, summary):
    return (f"{label}: {summary.count} tasks, {format_amount(summary.sum_estimate)} h, "
            f"cost {format_amount(summary.sum_cost)}, avg {format_amount(summary.avg_estimate)} h, "
            f"rate {format_amount(summary.avg_rate)}")


def _report_move(kind, record_id, moved, direction):
    if moved:
        click.echo(f"✅ Moved {kind} {record_id} {direction}")
    else:
        end = 'first' if direction == 'up' else 'last'
        click.echo(f"💡 {kind.capitalize()} {record_id} is already {end}")


def _rate_update(rate, inherit_rate):
    if inherit_rate:
        return {'cost_override': None}
    if rate is not None:
        return {'cost_override': rate}
    return {}


def _given(**options):
    return {k: v for k, v in options.items() if v is not None}


@click.group()
@click.version_option(version=VERSION, prog_name="tpe")
def main():
    """
    Three-point estimator - PERT estimates and cost roll-ups for project tasks.
    """
    pass


@main.command()
@click.option('--name', default=None, help='Project name')
@click.option('--cost', type=float, default=None, help='Global hourly rate')
def init(name, cost):
    """Initialize a new estimation project in the current directory."""
    if DataCore.is_initialized():
        click.echo(f"❌ Project already initialized ({DataCore.project_file()} exists)")
        raise SystemExit(1)

    config = ProjectConfig(**_given(project_name=name, global_cost=cost))
    with _reported_errors():
        path = DataCore.init_project(ProjectState(config=config))
    click.echo(f"🚀 Initialized project '{config.project_name}' in {path}")
    click.echo("💡 Use 'tpe task add' to start estimating")


@main.command()
def status():
    """Show the project file and its headline numbers."""
    click.echo("🔧 Three-point estimator")
    click.echo(f"📦 Version: {VERSION}")

    if not DataCore.is_initialized():
        click.echo("❌ Not in an estimation project directory")
        click.echo("💡 Run 'tpe init' to initialize a project")
        return

    click.echo(f"📍 Project file: {DataCore.project_file()}")
    if not validate_state_file(DataCore.project_file()):
        click.echo("⚠️  Project file failed validation; see the log for details")
        raise SystemExit(1)

    with _reported_errors():
        state = DataCore.load()
    click.echo(f"📋 {state.config.project_name}: {len(state.tasks)} tasks, "
               f"{len(state.groups)} groups, {len(state.phases)} phases")
    click.echo(f"💶 Global hourly rate: {format_input(state.config.global_cost)}")
    click.echo(_summary_line("📊 Overall", overall_summary(state)))


@main.command()
@click.option('--by', 'mode', type=click.Choice(SUMMARY_MODES), default='auto',
              help='Breakdown; auto follows the show-groups/show-phases settings')
def summary(mode):
    """Show overall, per-phase, per-group or nested summaries."""
    with _reported_errors():
        state = DataCore.load()

    if mode == 'auto':
        if state.config.show_phases and state.config.show_groups:
            mode = 'nested'
        elif state.config.show_phases:
            mode = 'phase'
        elif state.config.show_groups:
            mode = 'group'
        else:
            mode = 'overall'

    header, rows = build_overall_table(overall_summary(state))
    _print_table(header, rows)

    if mode == 'phase':
        click.echo("")
        for item in phase_summaries(state):
            suffix = "" if item.include_in_computation else " (ignored)"
            click.echo(_summary_line(f"Phase {item.name}{suffix}", item.summary))
    elif mode == 'group':
        click.echo("")
        for item in group_summaries(state):
            suffix = "" if item.include_in_computation else " (ignored)"
            click.echo(_summary_line(f"Group {item.name}{suffix}", item.summary))
    elif mode == 'nested':
        for breakdown in nested_summaries(state):
            phase = breakdown.phase
            click.echo("")
            suffix = "" if phase.include_in_computation else " (ignored)"
            click.echo(_summary_line(f"Phase {phase.name}{suffix}", phase.summary))
            for item in breakdown.groups:
                suffix = "" if item.include_in_computation else " (ignored)"
                click.echo(_summary_line(f"  Group {item.name}{suffix}", item.summary))


# --- Tasks ---

@main.group()
def task():
    """Add, edit and reorder tasks."""
    pass


@task.command('list')
def task_list():
    """List tasks with their estimate, rate and cost."""
    with _reported_errors():
        state = DataCore.load()
    if not state.tasks:
        click.echo("📭 No tasks yet")
        return

    rows = []
    for t in state.ordered_tasks():
        marker = "" if is_included(t, state.groups, state.phases) else " *"
        rows.append([
            t.id + marker, t.name,
            format_input(t.best), format_input(t.likely), format_input(t.worst),
            format_amount(estimate(t)),
            format_amount(effective_rate(t, state.groups, state.phases, state.config.global_cost)),
            format_amount(total_cost(t, state.groups, state.phases, state.config.global_cost)),
            t.group_id or "-", t.phase_id,
        ])
    _print_table(["ID", "Name", "Best", "Likely", "Worst", "Estimate", "Rate", "Cost", "Group", "Phase"], rows)
    if any(r[0].endswith("*") for r in rows):
        click.echo("* ignored in summaries")


@task.command('add')
@click.option('--name', default=None, help='Task name (default "Task <id>")')
@click.option('--desc', 'description', default=None, help='Task description')
@click.option('--best', type=float, default=None, help='Best case hours')
@click.option('--likely', type=float, default=None, help='Most likely hours')
@click.option('--worst', type=float, default=None, help='Worst case hours')
@click.option('--rate', type=float, default=None, help='Hourly rate override')
@click.option('--group', 'group_id', default=None, help='Group id (default: same as the last task)')
@click.option('--no-group', is_flag=True, help='Leave the task without a group')
@click.option('--phase', 'phase_id', default=None, help='Phase id (default: same as the last task)')
def task_add(name, description, best, likely, worst, rate, group_id, no_group, phase_id):
    """Add a task."""
    if no_group:
        group_id = NO_GROUP
    with _reported_errors(), DataCore.get_context() as context:
        new_task = context.store.add_task(
            phase_id=phase_id, group_id=group_id,
            **_given(name=name, description=description, best=best, likely=likely,
                     worst=worst, cost_override=rate)
        )
    click.echo(f"✅ Added task {new_task.id}: {new_task.name} ({format_amount(estimate(new_task))} h)")


@task.command('edit')
@click.argument('task_id')
@click.option('--name', default=None)
@click.option('--desc', 'description', default=None)
@click.option('--best', type=float, default=None)
@click.option('--likely', type=float, default=None)
@click.option('--worst', type=float, default=None)
@click.option('--rate', type=float, default=None, help='Hourly rate override')
@click.option('--inherit-rate', is_flag=True, help='Drop the rate override')
@click.option('--group', 'group_id', default=None)
@click.option('--no-group', is_flag=True, help='Remove the task from its group')
@click.option('--phase', 'phase_id', default=None, help='Moving phase clears the group unless --group is given')
def task_edit(task_id, name, description, best, likely, worst, rate, inherit_rate, group_id, no_group, phase_id):
    """Edit a task."""
    updates = _given(name=name, description=description, best=best, likely=likely, worst=worst,
                     group_id=NO_GROUP if no_group else group_id, phase_id=phase_id)
    updates.update(_rate_update(rate, inherit_rate))
    if not updates:
        click.echo("💡 Nothing to change")
        return
    with _reported_errors(), DataCore.get_context() as context:
        edited = context.store.edit_task(task_id, **updates)
    click.echo(f"✅ Updated task {edited.id}: {edited.name}")


@task.command('remove')
@click.argument('task_id')
def task_remove(task_id):
    """Remove a task."""
    with _reported_errors(), DataCore.get_context() as context:
        context.store.remove_task(task_id)
    click.echo(f"🗑️  Removed task {task_id}")


@task.command('duplicate')
@click.argument('task_id')
def task_duplicate(task_id):
    """Copy a task; the copy is placed right after it."""
    with _reported_errors(), DataCore.get_context() as context:
        copy = context.store.duplicate_task(task_id)
    click.echo(f"✅ Duplicated task {task_id} as {copy.id}: {copy.name}")


@task.command('up')
@click.argument('task_id')
def task_up(task_id):
    """Move a task up in display order."""
    with _reported_errors(), DataCore.get_context() as context:
        moved = context.store.move_task_up(task_id)
    _report_move("task", task_id, moved, "up")


@task.command('down')
@click.argument('task_id')
def task_down(task_id):
    """Move a task down in display order."""
    with _reported_errors(), DataCore.get_context() as context:
        moved = context.store.move_task_down(task_id)
    _report_move("task", task_id, moved, "down")


@task.command('clear')
@click.confirmation_option(prompt='Are you sure you want to remove all tasks?')
def task_clear():
    """Remove all tasks."""
    with _reported_errors(), DataCore.get_context() as context:
        removed = context.store.clear_tasks()
    click.echo(f"🗑️  Removed {removed} task(s)")


# --- Groups and phases ---

@main.group()
def group():
    """Manage task groups."""
    pass


@group.command('list')
def group_list():
    """List groups."""
    with _reported_errors():
        state = DataCore.load()
    rows = [[g.id, g.name, g.phase_id, format_input(g.cost_override) or "-",
             "yes" if g.include_in_computation else "no"]
            for g in (state.groups[i] for i in state.groups_order)]
    _print_table(["ID", "Name", "Phase", "Rate", "Included"], rows)


@group.command('add')
@click.option('--name', default=None)
@click.option('--desc', 'description', default=None)
@click.option('--rate', type=float, default=None, help='Hourly rate override')
@click.option('--phase', 'phase_id', default=None, help='Phase the group is scoped under')
@click.option('--exclude', is_flag=True, help='Leave this group out of summaries')
def group_add(name, description, rate, phase_id, exclude):
    """Add a group."""
    fields = _given(name=name, description=description, cost_override=rate, phase_id=phase_id)
    if exclude:
        fields['include_in_computation'] = False
    with _reported_errors(), DataCore.get_context() as context:
        new_group = context.store.add_group(**fields)
    click.echo(f"✅ Added group {new_group.id}: {new_group.name}")


@group.command('edit')
@click.argument('group_id')
@click.option('--name', default=None)
@click.option('--desc', 'description', default=None)
@click.option('--rate', type=float, default=None, help='Hourly rate override')
@click.option('--inherit-rate', is_flag=True, help='Drop the rate override')
@click.option('--phase', 'phase_id', default=None)
@click.option('--include/--exclude', 'include', default=None, help='Count this group in summaries')
def group_edit(group_id, name, description, rate, inherit_rate, phase_id, include):
    """Edit a group."""
    updates = _given(name=name, description=description, phase_id=phase_id, include_in_computation=include)
    updates.update(_rate_update(rate, inherit_rate))
    if not updates:
        click.echo("💡 Nothing to change")
        return
    with _reported_errors(), DataCore.get_context() as context:
        edited = context.store.edit_group(group_id, **updates)
    click.echo(f"✅ Updated group {edited.id}: {edited.name}")


@group.command('remove')
@click.argument('group_id')
def group_remove(group_id):
    """Remove a group (its tasks become unassigned)."""
    with _reported_errors(), DataCore.get_context() as context:
        context.store.remove_group(group_id)
    click.echo(f"🗑️  Removed group {group_id}")


@group.command('up')
@click.argument('group_id')
def group_up(group_id):
    """Move a group up in display order."""
    with _reported_errors(), DataCore.get_context() as context:
        moved = context.store.move_group_up(group_id)
    _report_move("group", group_id, moved, "up")


@group.command('down')
@click.argument('group_id')
def group_down(group_id):
    """Move a group down in display order."""
    with _reported_errors(), DataCore.get_context() as context:
        moved = context.store.move_group_down(group_id)
    _report_move("group", group_id, moved, "down")


@main.group()
def phase():
    """Manage project phases."""
    pass


@phase.command('list')
def phase_list():
    """List phases."""
    with _reported_errors():
        state = DataCore.load()
    rows = [[p.id, p.name, format_input(p.cost_override) or "-",
             "yes" if p.include_in_computation else "no"]
            for p in (state.phases[i] for i in state.phases_order)]
    _print_table(["ID", "Name", "Rate", "Included"], rows)


@phase.command('add')
@click.option('--name', default=None)
@click.option('--desc', 'description', default=None)
@click.option('--rate', type=float, default=None, help='Hourly rate override')
@click.option('--exclude', is_flag=True, help='Leave this phase out of summaries')
def phase_add(name, description, rate, exclude):
    """Add a phase."""
    fields = _given(name=name, description=description, cost_override=rate)
    if exclude:
        fields['include_in_computation'] = False
    with _reported_errors(), DataCore.get_context() as context:
        new_phase = context.store.add_phase(**fields)
    click.echo(f"✅ Added phase {new_phase.id}: {new_phase.name}")


@phase.command('edit')
@click.argument('phase_id')
@click.option('--name', default=None)
@click.option('--desc', 'description', default=None)
@click.option('--rate', type=float, default=None, help='Hourly rate override')
@click.option('--inherit-rate', is_flag=True, help='Drop the rate override')
@click.option('--include/--exclude', 'include', default=None, help='Count this phase in summaries')
def phase_edit(phase_id, name, description, rate, inherit_rate, include):
    """Edit a phase."""
    updates = _given(name=name, description=description, include_in_computation=include)
    updates.update(_rate_update(rate, inherit_rate))
    if not updates:
        click.echo("💡 Nothing to change")
        return
    with _reported_errors(), DataCore.get_context() as context:
        edited = context.store.edit_phase(phase_id, **updates)
    click.echo(f"✅ Updated phase {edited.id}: {edited.name}")


@phase.command('remove')
@click.argument('phase_id')
def phase_remove(phase_id):
    """Remove a phase."""
    with _reported_errors(), DataCore.get_context() as context:
        context.store.remove_phase(phase_id)
    click.echo(f"🗑️  Removed phase {phase_id}")


@phase.command('up')
@click.argument('phase_id')
def phase_up(phase_id):
    """Move a phase up in display order."""
    with _reported_errors(), DataCore.get_context() as context:
        moved = context.store.move_phase_up(phase_id)
    _report_move("phase", phase_id, moved, "up")


@phase.command('down')
@click.argument('phase_id')
def phase_down(phase_id):
    """Move a phase down in display order."""
    with _reported_errors(), DataCore.get_context() as context:
        moved = context.store.move_phase_down(phase_id)
    _report_move("phase", phase_id, moved, "down")


# --- Settings ---

@main.command()
@click.option('--cost', type=float, default=None, help='Global hourly rate')
@click.option('--name', default=None, help='Project name')
@click.option('--groups/--no-groups', 'show_groups', default=None, help='Break summaries down by group')
@click.option('--phases/--no-phases', 'show_phases', default=None, help='Break summaries down by phase')
@click.option('--language', default=None, help='Language of the browser tool')
def config(cost, name, show_groups, show_phases, language):
    """Show or change project settings."""
    with _reported_errors(), DataCore.get_context() as context:
        store = context.store
        if cost is not None:
            store.set_global_cost(cost)
        if name is not None:
            store.set_project_name(name)
        if show_groups is not None:
            store.set_show_groups(show_groups)
        if show_phases is not None:
            store.set_show_phases(show_phases)
        if language is not None:
            store.set_language(language)
        settings = store.snapshot().config

    click.echo(f"📋 Project: {settings.project_name}")
    click.echo(f"💶 Global hourly rate: {format_input(settings.global_cost)}")
    click.echo(f"👥 Show groups: {'yes' if settings.show_groups else 'no'}")
    click.echo(f"🗂️  Show phases: {'yes' if settings.show_phases else 'no'}")
    click.echo(f"🌐 Language: {settings.language}")


# --- Export, import and sharing ---

EXPORTERS = {
    'json': ('state.json', export_state_json),
    'yaml': ('state.yml', export_state_yaml),
    'csv': ('tasks.csv', export_tasks_csv),
    'summary-csv': ('summary.csv', export_summary_csv),
    'report': ('estimation_report.md', export_report),
    'xlsx': ('tasks.xlsx', export_xlsx),
    'pdf': ('estimation_report.pdf', export_pdf),
}


@main.command('export')
@click.argument('kind', type=click.Choice(sorted(EXPORTERS)))
@click.option('-o', '--output', type=click.Path(dir_okay=False, path_type=Path), default=None,
              help='Output file (default: <project name>_<kind file>)')
@click.option('--browser', is_flag=True, help='For json: write the browser tool format')
def export_cmd(kind, output, browser):
    """Export the project as json, yaml, csv, summary-csv, report, xlsx or pdf."""
    with _reported_errors():
        state = DataCore.load()
        suffix, exporter = EXPORTERS[kind]
        output = output or Path(default_filename(state, suffix))
        if kind == 'json':
            exporter(state, output, browser=browser)
        else:
            exporter(state, output)
    click.echo(f"✅ Exported {kind} to {output}")


@main.command('import')
@click.argument('file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.confirmation_option(prompt='This replaces the current project. Continue?')
def import_cmd(file):
    """Replace the project with a state file (threepoint or browser tool JSON)."""
    with _reported_errors():
        state = DataCore.import_file(file)
        if DataCore.is_initialized():
            with DataCore.get_context() as context:
                context.store.load_state(state)
        else:
            DataCore.init_project(state)
    click.echo(f"✅ Imported {len(state.tasks)} tasks from {file}")


@main.command()
@click.option('--base-url', default=None,
              help='Print a link: <base-url>?sharedState=<token>&lang=<language>')
@click.option('--download', type=click.Choice(DOWNLOAD_TYPES), default=None,
              help='Make the link download a pdf or excel export when opened')
def share(base_url, download):
    """Print a share token (or link) holding the whole project."""
    if download and not base_url:
        raise click.UsageError("--download needs --base-url")
    with _reported_errors():
        state = DataCore.load()
    click.echo(share_url(state, base_url, download=download) if base_url else encode_state(state))


@main.command('load-share')
@click.argument('token')
@click.confirmation_option(prompt='This replaces the current project. Continue?')
def load_share(token):
    """Replace the project with the state from a share token or link."""
    with _reported_errors():
        state = decode_state(token)
        if DataCore.is_initialized():
            with DataCore.get_context() as context:
                context.store.load_state(state)
        else:
            DataCore.init_project(state)
    click.echo(f"✅ Loaded '{state.config.project_name}' with {len(state.tasks)} tasks")


if __name__ == "__main__":
    main()
