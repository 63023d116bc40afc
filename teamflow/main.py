"""
teamflow: run teams of LLM agents from the terminal.

Commands: teamflow run TEAM_FILE | teamflow validate TEAM_FILE | teamflow pricing
"""

import asyncio
import sys

import click
import yaml
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from . import __version__
from .config import TeamflowConfig
from .enums import TaskStatus, WorkflowStatus
from .errors import ConfigError, WorkflowError
from .logger import setup_logger
from .rendering import ACCENT, BORDER, WorkflowRenderer
from .team.loader import load_team

console = Console()
BANNER = (
    f"[bold {ACCENT}]teamflow[/bold {ACCENT}] "
    f"[dim]v{__version__} · multi-agent workflows[/dim]"
)

_EXIT_CODES = {
    WorkflowStatus.FINISHED: 0,
    WorkflowStatus.BLOCKED: 2,
    WorkflowStatus.RUNNING: 3,
}


@click.group()
@click.version_option(__version__, prog_name="teamflow")
def cli():
    """teamflow: run teams of LLM agents."""


@cli.command()
@click.argument("team_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--input", "-i", "inputs", multiple=True, metavar="KEY=VALUE",
              help="Workflow input (repeatable)")
@click.option("--project-dir", "-d", default=".", help="Where to look for .teamflow.yml")
@click.option("--auto-approve", "-y", is_flag=True,
              help="Validate tasks awaiting validation without asking")
@click.option("--quiet", "-q", is_flag=True, help="Hide per-task events")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.option("--log-file", default=None, help="Log file path (default ~/.teamflow/logs)")
@click.option("--no-log-file", is_flag=True, help="Disable file logging")
def run(team_file, inputs, project_dir, auto_approve, quiet, verbose, log_file, no_log_file):
    """Run the team defined in TEAM_FILE."""
    config = TeamflowConfig.load(project_dir)
    setup_logger(
        "teamflow",
        verbose=verbose or config.verbose,
        log_file=False if no_log_file else (log_file or config.log_file),
    )
    console.print(BANNER)

    try:
        team = load_team(team_file, config=config)
        parsed_inputs = parse_inputs(inputs)
    except ConfigError as e:
        raise click.ClickException(str(e))

    renderer = WorkflowRenderer(console)
    for task in team.tasks:
        task.interpolate({**team.inputs, **parsed_inputs})
    renderer.render_plan(team.tasks)
    if not quiet:
        team.workflow_log.subscribe(renderer.render_event)

    try:
        result = asyncio.run(_drive(team, parsed_inputs, auto_approve))
    except WorkflowError as e:
        console.print(f"  [red]{escape(str(e))}[/red]")
        if e.result is not None:
            renderer.render_result(e.result, team.tasks)
        sys.exit(1)

    renderer.render_result(result, team.tasks)
    sys.exit(_EXIT_CODES.get(result.status, 1))


async def _drive(team, inputs, auto_approve: bool):
    """Start the team and handle validation prompts until it stops."""
    try:
        result = await team.start(inputs)
        while result.status == WorkflowStatus.RUNNING:
            awaiting = team.get_tasks_by_status(TaskStatus.AWAITING_VALIDATION)
            if not awaiting:
                break
            for task in awaiting:
                _review(team, task, auto_approve)
            result = await team.resume()
        return result
    finally:
        await team.cleanup()


def _review(team, task, auto_approve: bool) -> None:
    console.print(Panel(
        Text(str(task.result)),
        title=f"[bold {ACCENT}] {task.title} [/bold {ACCENT}]",
        title_align="left",
        border_style=BORDER,
    ))
    if auto_approve:
        team.validate_task(task.id)
        return
    answer = click.prompt("  Approve? [y] or type feedback", default="y").strip()
    if answer.lower() in ("y", "yes"):
        team.validate_task(task.id)
    else:
        team.provide_feedback(task.id, answer)


@cli.command()
@click.argument("team_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--project-dir", "-d", default=".")
def validate(team_file, project_dir):
    """Check TEAM_FILE and print its task plan."""
    config = TeamflowConfig.load(project_dir)
    try:
        team = load_team(team_file, config=config)
    except ConfigError as e:
        raise click.ClickException(str(e))

    problems = team.manager.board.validate_graph()
    WorkflowRenderer(console).render_plan(team.tasks)
    if problems:
        for p in problems:
            console.print(f"  [red]✗ {escape(p)}[/red]")
        sys.exit(1)
    console.print(f"  [green]✓ {len(team.tasks)} tasks, {len(team.agents)} agents[/green]")


@cli.command()
@click.option("--project-dir", "-d", default=".")
def pricing(project_dir):
    """Show model prices (built-in table plus config overrides)."""
    config = TeamflowConfig.load(project_dir)
    WorkflowRenderer(console).render_pricing(config.costs.pricing_table())


def parse_inputs(pairs) -> dict:
    """``("a=5", "name=Ada")`` -> ``{"a": 5, "name": "Ada"}`` (values read as YAML scalars)."""
    parsed = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ConfigError("--input", f"expected KEY=VALUE, got {pair!r}")
        try:
            parsed[key.strip()] = yaml.safe_load(value) if value else ""
        except yaml.YAMLError:
            parsed[key.strip()] = value
    return parsed


if __name__ == "__main__":
    cli()
