"""Console rendering for workflow runs."""

import zlib
from typing import Iterable, List, Optional

from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .core.workflow_log import LogEntry
from .costs import MODEL_PRICING, format_cost
from .enums import LogType, TaskStatus, WorkflowStatus

ACCENT = "#7FA6D9"
BORDER = "#3B4252"
DIM = "#6B7280"
SUCCESS = "#57DB9C"
WARN = "#D9A67F"
ERROR = "#D97F7F"
INFO = "#7FD9D9"

# Palette for telling agents apart
AGENT_COLORS = [
    "#7FA6D9",  # blue
    "#57DB9C",  # green
    "#D9A67F",  # orange
    "#D97FD9",  # magenta
    "#7FD9D9",  # cyan
    "#D9D97F",  # yellow
    "#9C7FD9",  # purple
    "#D97F7F",  # red
]

# Status display: (icon, color, label)
_TASK_DISPLAY = {
    TaskStatus.TODO:                ("○", DIM,     "todo"),
    TaskStatus.DOING:               ("▸", INFO,    "doing"),
    TaskStatus.AWAITING_VALIDATION: ("⊙", INFO,    "awaiting validation"),
    TaskStatus.REVISE:              ("⟲", WARN,    "revise"),
    TaskStatus.VALIDATED:           ("✓", SUCCESS, "validated"),
    TaskStatus.DONE:                ("✓", SUCCESS, "done"),
    TaskStatus.BLOCKED:             ("■", WARN,    "blocked"),
    TaskStatus.ERROR:               ("✗", ERROR,   "error"),
}

_WORKFLOW_COLORS = {
    WorkflowStatus.INITIAL: DIM,
    WorkflowStatus.RUNNING: INFO,
    WorkflowStatus.FINISHED: SUCCESS,
    WorkflowStatus.BLOCKED: WARN,
    WorkflowStatus.ERRORED: ERROR,
}


def color_for_agent(name: str) -> str:
    return AGENT_COLORS[zlib.crc32(name.encode("utf-8")) % len(AGENT_COLORS)]


def _fmt_tokens(n: int) -> str:
    if n >= 1_000_000:
        return f"{n / 1_000_000:.1f}M"
    if n >= 1_000:
        return f"{n / 1_000:.1f}k"
    return str(n)


class WorkflowRenderer:
    """Prints the task plan, live task/workflow events, and the final summary."""

    def __init__(self, console: Console):
        self.console = console

    def render_plan(self, tasks: Iterable) -> None:
        table = Table(show_header=True, header_style=f"bold {ACCENT}",
                      border_style=BORDER, padding=(0, 1))
        table.add_column("ID", style="bold", min_width=6)
        table.add_column("Agent", min_width=10)
        table.add_column("Task", min_width=30)
        table.add_column("Depends On", min_width=10)
        table.add_column("Flags")

        for task in tasks:
            agent_name = getattr(task.agent, "name", "?")
            color = color_for_agent(agent_name)
            flags = []
            if task.is_deliverable:
                flags.append("deliverable")
            if task.external_validation_required:
                flags.append("validation")
            table.add_row(
                task.id,
                f"[{color}]{agent_name}[/{color}]",
                escape(task.interpolated_description or task.description),
                ", ".join(task.dependencies) or "-",
                ", ".join(flags) or "-",
            )

        self.console.print(Panel(
            table,
            title=f"[bold {ACCENT}] Task Plan [/bold {ACCENT}]",
            title_align="left",
            border_style=BORDER,
            padding=(0, 1),
        ))

    def render_event(self, entry: LogEntry) -> None:
        """One line per task/workflow status change; agent chatter is skipped."""
        if entry.log_type == LogType.TASK_STATUS_UPDATE:
            icon, color, label = _TASK_DISPLAY[entry.task_status]
            agent = entry.agent_name or "?"
            agent_color = color_for_agent(agent)
            self.console.print(
                f"  [{color}]{icon}[/{color}] [bold]{escape(entry.task_title or '')}[/bold] "
                f"[{agent_color}]{escape(agent)}[/{agent_color}] "
                f"[{DIM}]{label}[/{DIM}]")
        elif entry.log_type == LogType.WORKFLOW_STATUS_UPDATE:
            color = _WORKFLOW_COLORS[entry.workflow_status]
            self.console.print(
                f"  [{color}]workflow {entry.workflow_status.value.lower()}[/{color}]")

    def render_result(self, result, tasks: List) -> None:
        stats = result.stats
        table = Table(show_header=True, header_style=f"bold {ACCENT}",
                      border_style=BORDER, padding=(0, 1))
        table.add_column("", width=2)
        table.add_column("Task", min_width=20)
        table.add_column("Agent")
        table.add_column("Status")
        table.add_column("Note")
        for task in tasks:
            icon, color, label = _TASK_DISPLAY[task.status]
            note = task.error or task.blocked_reason or ""
            table.add_row(f"[{color}]{icon}[/{color}]", escape(task.title),
                          getattr(task.agent, "name", "?"), label, escape(note))

        usage = stats.llm_usage_stats
        cost = stats.cost_details
        summary = Text()
        summary.append(f"duration {stats.duration:.1f}s", style=DIM)
        summary.append("  ·  ", style=DIM)
        summary.append(f"{stats.iteration_count} iterations", style=DIM)
        summary.append("  ·  ", style=DIM)
        summary.append(
            f"{_fmt_tokens(usage.input_tokens)} in / {_fmt_tokens(usage.output_tokens)} out "
            f"({usage.calls_count} calls, {usage.calls_error_count} failed)",
            style=DIM)
        summary.append("  ·  ", style=DIM)
        summary.append(f"cost {format_cost(cost.total_cost, cost.currency)}", style=DIM)

        parts = [table, Text(""), summary]
        if result.result is not None:
            parts += [Text(""), Text(str(result.result))]

        color = _WORKFLOW_COLORS[result.status]
        self.console.print(Panel(
            Group(*parts),
            title=f"[bold {color}] {stats.team_name}: {result.status.value} [/bold {color}]",
            title_align="left",
            border_style=BORDER,
            padding=(0, 1),
        ))

    def render_pricing(self, table_data: Optional[dict] = None) -> None:
        pricing = table_data if table_data is not None else MODEL_PRICING
        table = Table(show_header=True, header_style=f"bold {ACCENT}",
                      border_style=BORDER, padding=(0, 1))
        table.add_column("Model")
        table.add_column("Provider")
        table.add_column("Input $/1M", justify="right")
        table.add_column("Output $/1M", justify="right")
        for model, p in sorted(pricing.items()):
            table.add_row(model, p.provider, f"{p.input_price_per_million:g}",
                          f"{p.output_price_per_million:g}")
        self.console.print(table)
