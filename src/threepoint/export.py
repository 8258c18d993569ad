"""
Export adapters - tabular rows, CSV and xlsx spreadsheets, Markdown and PDF reports,
and state files.

All numbers come from the estimation engine; this module only rounds them for
display (two decimals, "N/A" for an undefined average rate).
"""
import csv
import io
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union
from xml.sax.saxutils import escape as xml_escape

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import PageBreak, Paragraph, SimpleDocTemplate, Spacer, TableStyle
from reportlab.platypus import Table as PdfTable

from .engine import (
    estimate, effective_rate, total_cost,
    overall_summary, phase_summaries, group_summaries, nested_summaries,
    Summary, NO_GROUP_NAME,
)
from .models import ProjectState, Task
from .data.io import atomic_write, DATA_BYTES, DATA_JSON, DATA_TEXT, DATA_YAML
from .data.browser import to_browser_state
from .logs import get_logger

log = get_logger("export")

NA = "N/A"

Table = Tuple[List[str], List[List[Any]]]

TASK_HEADER = [
    "ID", "Task Name", "Task Desc", "Best Case", "Most Likely", "Worst Case",
    "Estimate", "Rate Override", "Hourly Rate", "Cost",
    "Group", "Group Desc", "Phase", "Phase Desc",
]

SUMMARY_HEADER = [
    "Best Case Sum", "Most Likely Sum", "Worst Case Sum", "Estimate Sum",
    "Average Estimate", "Average Hourly Rate", "Rate Override", "Total Cost", "Total Tasks",
]

DETAIL_HEADER = [
    "ID", "Task Name", "Task Desc", "Best Case", "Most Likely", "Worst Case",
    "Estimate", "Rate Override", "Hourly Rate", "Cost",
]


def format_amount(value: Optional[float]) -> str:
    """Round for display; None renders as N/A."""
    if value is None:
        return NA
    return f"{value:.2f}"


def format_input(value: Any) -> str:
    """Show a raw numeric input the way it was entered."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _task_cells(task: Task, state: ProjectState) -> List[Any]:
    rate = effective_rate(task, state.groups, state.phases, state.config.global_cost)
    return [
        task.id,
        task.name,
        task.description,
        format_input(task.best),
        format_input(task.likely),
        format_input(task.worst),
        format_amount(estimate(task)),
        format_input(task.cost_override),
        format_amount(rate),
        format_amount(total_cost(task, state.groups, state.phases, state.config.global_cost)),
    ]


def build_task_rows(state: ProjectState) -> Table:
    """Header and one row per task, in display order."""
    rows = []
    for task in state.ordered_tasks():
        group = state.groups.get(task.group_id) if task.group_id else None
        phase = state.phases.get(task.phase_id)
        if group is not None:
            group_name = group.name
        else:
            group_name = task.group_id or NO_GROUP_NAME
        rows.append(_task_cells(task, state) + [
            group_name,
            group.description if group is not None else "",
            phase.name if phase is not None else task.phase_id,
            phase.description if phase is not None else "",
        ])
    return list(TASK_HEADER), rows


def _summary_cells(summary: Summary, cost_override: Any) -> List[Any]:
    return [
        format_amount(summary.sum_best),
        format_amount(summary.sum_likely),
        format_amount(summary.sum_worst),
        format_amount(summary.sum_estimate),
        format_amount(summary.avg_estimate),
        format_amount(summary.avg_rate),
        format_input(cost_override),
        format_amount(summary.sum_cost),
        summary.count,
    ]


def build_overall_table(summary: Summary) -> Table:
    return ["Metric", "Value"], [
        ["Total Tasks", summary.count],
        ["Total Estimate", format_amount(summary.sum_estimate)],
        ["Total Cost", format_amount(summary.sum_cost)],
        ["Avg Estimate per Task", format_amount(summary.avg_estimate)],
        ["Avg Hourly Rate", format_amount(summary.avg_rate)],
    ]


def build_summary_tables(state: ProjectState) -> Dict[str, Table]:
    """Overall, per-phase and per-group summary tables, keyed by title."""
    phase_rows = [[p.name] + _summary_cells(p.summary, p.cost_override) for p in phase_summaries(state)]
    group_rows = [[g.name] + _summary_cells(g.summary, g.cost_override) for g in group_summaries(state)]
    return {
        "Overall Summary": build_overall_table(overall_summary(state)),
        "Per Phase Summary": (["Phase"] + SUMMARY_HEADER, phase_rows),
        "Per Group Summary": (["Group"] + SUMMARY_HEADER, group_rows),
    }


def _csv_text(tables: List[Tuple[Optional[str], Table]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    for index, (title, (header, rows)) in enumerate(tables):
        if index:
            writer.writerow([])
        if title:
            writer.writerow([title])
        writer.writerow(header)
        writer.writerows(rows)
    return buffer.getvalue()


def tasks_csv(state: ProjectState) -> str:
    return _csv_text([(None, build_task_rows(state))])


def summary_csv(state: ProjectState) -> str:
    return _csv_text(list(build_summary_tables(state).items()))


def _md_table(header: List[str], rows: List[List[Any]]) -> List[str]:
    def cell(value):
        return str(value).replace("|", "\\|").replace("\n", " ")
    lines = ["| " + " | ".join(cell(h) for h in header) + " |",
             "|" + "|".join(" --- " for _ in header) + "|"]
    lines.extend("| " + " | ".join(cell(v) for v in row) + " |" for row in rows)
    return lines


def _heading(kind: str, name: str, included: bool) -> str:
    return f"{kind}: {name}" + ("" if included else " (Ignored)")


def _total_line(kind: str, summary: Summary) -> str:
    return (f"{kind} total: {format_amount(summary.sum_estimate)} h, "
            f"{format_amount(summary.sum_cost)} cost, {summary.count} tasks")


def report_markdown(state: ProjectState) -> str:
    """A full estimation report: summaries first, then tasks by phase and group."""
    lines = ["# Estimation Report Summary", "", f"Project: {state.config.project_name}", ""]
    for title, (header, rows) in build_summary_tables(state).items():
        lines += [f"## {title}", ""] + _md_table(header, rows) + [""]

    lines += ["## Task Details", ""]
    for breakdown in nested_summaries(state):
        phase = breakdown.phase
        lines += ["### " + _heading("Phase", phase.name, phase.include_in_computation), ""]
        described = state.phases.get(phase.phase_id)
        if described is not None and described.description:
            lines += [described.description, ""]
        for group in breakdown.groups:
            lines += ["#### " + _heading("Group", group.name, group.include_in_computation), ""]
            rows = [_task_cells(state.tasks[t], state) for t in group.task_ids]
            lines += _md_table(DETAIL_HEADER, rows) + [""]
            lines += [_total_line("Group", group.summary), ""]
        lines += [_total_line("Phase", phase.summary), ""]
    return "\n".join(lines)


# --- Spreadsheet ---

HEADER_FONT = Font(bold=True, color="FFFFFFFF", size=12)
TASKS_HEADER_FILL = PatternFill("solid", fgColor="FF4F81BD")
SUMMARY_TITLE_FILL = PatternFill("solid", fgColor="FF4CAF50")
SUMMARY_HEADER_FILL = PatternFill("solid", fgColor="FF388E3C")


def _style_header(sheet, row_index: int, fill: PatternFill):
    for cell in sheet[row_index]:
        cell.font = HEADER_FONT
        cell.fill = fill
        cell.alignment = Alignment(horizontal="center", vertical="center")


def xlsx_bytes(state: ProjectState) -> bytes:
    """
    Workbook with a Tasks sheet (one row per task) and a Summary sheet holding
    the overall, per-phase and per-group tables one below the other.
    """
    workbook = Workbook()

    tasks_sheet = workbook.active
    tasks_sheet.title = "Tasks"
    header, rows = build_task_rows(state)
    tasks_sheet.append(header)
    for row in rows:
        tasks_sheet.append(row)
    _style_header(tasks_sheet, 1, TASKS_HEADER_FILL)
    tasks_sheet.freeze_panes = "B2"
    for index, title in enumerate(header, start=1):
        tasks_sheet.column_dimensions[get_column_letter(index)].width = len(title) + 5

    summary_sheet = workbook.create_sheet("Summary")
    for title, (header, rows) in build_summary_tables(state).items():
        summary_sheet.append([title])
        title_cell = summary_sheet.cell(row=summary_sheet.max_row, column=1)
        title_cell.font = Font(bold=True, size=14)
        title_cell.fill = SUMMARY_TITLE_FILL
        summary_sheet.append(header)
        _style_header(summary_sheet, summary_sheet.max_row, SUMMARY_HEADER_FILL)
        for row in rows:
            summary_sheet.append(row)
        summary_sheet.append([])
        summary_sheet.append([])
    summary_sheet.column_dimensions["A"].width = 25
    for index in range(2, len(SUMMARY_HEADER) + 2):
        summary_sheet.column_dimensions[get_column_letter(index)].width = 15

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


# --- PDF ---

def _pdf_table(header: List[str], rows: List[List[Any]]) -> PdfTable:
    table = PdfTable([header] + [[str(v) for v in row] for row in rows], repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#4F81BD")),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 7),
        ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
    ]))
    return table


def pdf_bytes(state: ProjectState) -> bytes:
    """The same report as report_markdown, laid out as a landscape A4 PDF."""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=landscape(A4), rightMargin=24, leftMargin=24,
                            topMargin=24, bottomMargin=24, title="Estimation Report Summary")
    styles = getSampleStyleSheet()

    story = [
        Paragraph("Estimation Report Summary", styles["Title"]),
        Paragraph(xml_escape(f"Project: {state.config.project_name}"), styles["Normal"]),
        Spacer(1, 12),
    ]
    for title, (header, rows) in build_summary_tables(state).items():
        story += [Paragraph(title, styles["Heading2"]), _pdf_table(header, rows), Spacer(1, 12)]

    story += [PageBreak(), Paragraph("Task Details", styles["Heading2"])]
    for breakdown in nested_summaries(state):
        phase = breakdown.phase
        story.append(Paragraph(xml_escape(_heading("Phase", phase.name, phase.include_in_computation)),
                               styles["Heading3"]))
        described = state.phases.get(phase.phase_id)
        if described is not None and described.description:
            story.append(Paragraph(xml_escape(described.description), styles["Italic"]))
        for group in breakdown.groups:
            story.append(Paragraph(xml_escape(_heading("Group", group.name, group.include_in_computation)),
                                   styles["Heading4"]))
            rows = [_task_cells(state.tasks[t], state) for t in group.task_ids]
            story += [_pdf_table(DETAIL_HEADER, rows),
                      Paragraph(_total_line("Group", group.summary), styles["Normal"]),
                      Spacer(1, 8)]
        story += [Paragraph(_total_line("Phase", phase.summary), styles["Normal"]), Spacer(1, 12)]

    doc.build(story)
    return buffer.getvalue()


def default_filename(state: ProjectState, suffix: str) -> str:
    safe_name = "".join(c for c in state.config.project_name if c.isalnum() or c in ('-', '_', ' ')).strip()
    return f"{safe_name or 'project'}_{suffix}"


def export_state_json(state: ProjectState, file_path: Union[Path, str], browser: bool = False) -> Path:
    """Write the raw state; browser=True writes the browser tool's document shape."""
    data = to_browser_state(state) if browser else state.model_dump(mode='json')
    atomic_write(DATA_JSON, file_path, data, create_dirs=True)
    log.info(f"Exported state to {file_path}")
    return Path(file_path)


def export_state_yaml(state: ProjectState, file_path: Union[Path, str]) -> Path:
    atomic_write(DATA_YAML, file_path, state.model_dump(mode='json'), create_dirs=True)
    log.info(f"Exported state to {file_path}")
    return Path(file_path)


def export_tasks_csv(state: ProjectState, file_path: Union[Path, str]) -> Path:
    atomic_write(DATA_TEXT, file_path, tasks_csv(state), create_dirs=True)
    log.info(f"Exported {len(state.tasks)} tasks to {file_path}")
    return Path(file_path)


def export_summary_csv(state: ProjectState, file_path: Union[Path, str]) -> Path:
    atomic_write(DATA_TEXT, file_path, summary_csv(state), create_dirs=True)
    log.info(f"Exported summary to {file_path}")
    return Path(file_path)


def export_report(state: ProjectState, file_path: Union[Path, str]) -> Path:
    atomic_write(DATA_TEXT, file_path, report_markdown(state), create_dirs=True)
    log.info(f"Exported report to {file_path}")
    return Path(file_path)


def export_xlsx(state: ProjectState, file_path: Union[Path, str]) -> Path:
    atomic_write(DATA_BYTES, file_path, xlsx_bytes(state), create_dirs=True)
    log.info(f"Exported workbook with {len(state.tasks)} tasks to {file_path}")
    return Path(file_path)


def export_pdf(state: ProjectState, file_path: Union[Path, str]) -> Path:
    atomic_write(DATA_BYTES, file_path, pdf_bytes(state), create_dirs=True)
    log.info(f"Exported PDF report to {file_path}")
    return Path(file_path)
