# display.py
# All terminal output for the skill agent.
#
# This module owns presentation entirely. executor.py never prints; it calls
# reporter hooks, and ConsoleReporter turns them into rich output.
#
# Colour language:
#   cyan: run / step routing
#   magenta: tool calls and replies
#   green: final answer
#   yellow: graceful termination (budget, steps, cancellation)
#   red: failures and missing tools

import json
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from skill_agent.executor import Reporter
from skill_agent.models import (
    ConversationTurn,
    ExecutionProfile,
    Limits,
    RunResult,
    RunStatus,
    ToolRequest,
)
from skill_agent.projects import Project
from skill_agent.tools import Tool

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    """Single-line, truncated and markup-escaped."""
    value = value.replace("\n", " ")
    if len(value) > max_len:
        value = value[:max_len] + "…"
    return escape(value)


_STATUS_STYLE = {
    RunStatus.FINAL_ANSWER: ("RESULT", "green"),
    RunStatus.BUDGET_EXCEEDED: ("BUDGET EXCEEDED", "yellow"),
    RunStatus.STEPS_EXHAUSTED: ("STEPS EXHAUSTED", "yellow"),
    RunStatus.CANCELLED: ("CANCELLED", "yellow"),
    RunStatus.FAILED: ("FAILED ✗", "red"),
}


# ---------------------------------------------------------------------------
# Reporter
# ---------------------------------------------------------------------------


class ConsoleReporter(Reporter):
    """Render executor events to a rich console."""

    def __init__(self, out: Console | None = None) -> None:
        self._console = out or console

    def run_started(self, profile: ExecutionProfile, task: str, limits: Limits) -> None:
        self._console.print()
        self._console.print(Rule(f"[cyan]RUN · skill {escape(profile.name)}[/cyan]", style="cyan"))
        self._console.print(
            Panel(
                f"[white]{escape(task)}[/white]",
                title=_label("TASK", "cyan"),
                subtitle=(
                    f"[dim]model={escape(profile.default_model)}  max_steps={limits.max_steps}  "
                    f"max_chars={limits.max_chars}  temperature={limits.temperature}[/dim]"
                ),
                border_style="cyan",
                padding=(0, 2),
            )
        )

    def step_started(self, step: int, limits: Limits, chars: int) -> None:
        budget = f"{chars}/{limits.max_chars}" if limits.max_chars else f"{chars}"
        self._console.print()
        self._console.print(
            f"[bold cyan]  STEP [{step + 1}/{limits.max_steps}][/bold cyan]  "
            f"[dim]context chars {budget}[/dim]"
        )

    def tool_called(self, request: ToolRequest, args: dict[str, Any]) -> None:
        self._console.print(
            f"  [magenta]Action[/magenta]   [bold white]{escape(request.name)}[/bold white]"
            f"  [dim]{_mono(json.dumps(args), 100)}[/dim]"
        )

    def tool_finished(self, request: ToolRequest, reply: ConversationTurn) -> None:
        style = "red" if reply.content.startswith("tool error:") else "white"
        self._console.print(f"  [magenta]Observe[/magenta]  [{style}]{_mono(reply.content, 140)}[/{style}]")

    def tool_not_found(self, request: ToolRequest) -> None:
        self._console.print(
            f"  [bold red]✗ Tool {escape(repr(request.name))} is not permitted for this run.[/bold red]"
            "  [dim]Reported back to the model.[/dim]"
        )

    def run_finished(self, result: RunResult) -> None:
        tag, color = _STATUS_STYLE[result.status]
        body = result.text
        if result.status is RunStatus.FAILED:
            body = f"{type(result.error).__name__}: {result.error}"
        self._console.print()
        self._console.print(
            Panel(
                f"[white]{escape(body)}[/white]",
                title=_label(tag, color),
                subtitle=f"[dim]{result.steps} step(s), {len(result.conversation)} turn(s)[/dim]",
                border_style=color,
                padding=(1, 2),
            )
        )


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


def tool_table(tools: list[Tool]) -> None:
    table = Table(box=box.SIMPLE_HEAVY, border_style="cyan", header_style="bold cyan")
    table.add_column("Tool", style="bold white")
    table.add_column("Model", style="dim")
    table.add_column("Description", style="white")
    for tool in tools:
        table.add_row(escape(tool.name), escape(tool.required_model) or "-", escape(tool.description))
    console.print(table)


def skill_table(skills: list[ExecutionProfile]) -> None:
    table = Table(box=box.SIMPLE_HEAVY, border_style="cyan", header_style="bold cyan")
    table.add_column("Skill", style="bold white")
    table.add_column("Model", style="dim")
    table.add_column("Tools", style="magenta")
    table.add_column("Description", style="white")
    for skill in skills:
        table.add_row(
            escape(skill.name),
            escape(skill.default_model),
            escape(", ".join(skill.tools)) or "-",
            escape(skill.description),
        )
    console.print(table)


def project_table(projects: list[Project]) -> None:
    if not projects:
        console.print("[dim]No projects found. Set persistence.projects_dir in the config.[/dim]")
        return
    table = Table(box=box.SIMPLE_HEAVY, border_style="cyan", header_style="bold cyan")
    table.add_column("Project", style="bold white")
    table.add_column("Name", style="white")
    table.add_column("Model", style="dim")
    table.add_column("Tools", style="magenta")
    table.add_column("Skills", style="cyan")
    for project in projects:
        table.add_row(
            escape(project.id),
            escape(project.name),
            escape(project.default_model) or "-",
            escape(", ".join(project.tools)) or "-",
            escape(", ".join(project.skills)) or "all",
        )
    console.print(table)


def warning(message: str) -> None:
    console.print(_label("WARN", "yellow"), f"[yellow] {escape(message)}[/yellow]")


def batch_summary(tasks: list[str], results: list[RunResult]) -> None:
    table = Table(box=box.SIMPLE_HEAVY, border_style="dim", header_style="bold dim")
    table.add_column("#", justify="center", width=4)
    table.add_column("Task", style="white")
    table.add_column("Status", width=16)
    table.add_column("Answer", style="dim white")
    for index, (task, result) in enumerate(zip(tasks, results), start=1):
        tag, color = _STATUS_STYLE[result.status]
        table.add_row(str(index), _mono(task, 40), f"[{color}]{tag}[/{color}]", _mono(result.text, 60))
    console.print(Panel(table, title="[dim]BATCH SUMMARY[/dim]", border_style="dim", padding=(0, 1)))
