# run.py
# Entry point. Config and wiring only; no logic lives here.
#
#   skill-agent run "What is 17 * 23?" --skill tutor
#   skill-agent run "Draft the release notes" --project acme --new-thread notes
#   skill-agent batch prompts.txt --skill summarizer --timeout 120
#   skill-agent skills

from pathlib import Path
from typing import NoReturn

import click
from rich.markup import escape

from skill_agent import config as app_config
from skill_agent import display
from skill_agent.client import OpenRouterClient
from skill_agent.context import RunContext
from skill_agent.conversation import FileConversationStore, ThreadNotFoundError
from skill_agent.display import ConsoleReporter
from skill_agent.executor import Executor
from skill_agent.models import Skill
from skill_agent.projects import (
    Project,
    ProjectNotFoundError,
    ProjectSkillError,
    get_project,
    load_projects_dir,
)
from skill_agent.skills import SkillNotFoundError, SkillRegistry, all_builtin_skills, load_skills_dir
from skill_agent.tools import (
    Tool,
    ToolCatalog,
    apply_tool_metadata,
    code_executor,
    load_tool_metadata,
    safe_default_tools,
)

DEFAULT_SKILL = "research_assistant"


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_catalog(cfg: app_config.Config) -> ToolCatalog:
    catalog = ToolCatalog(safe_default_tools())
    if cfg.tools.enable_code_execution:
        catalog.register(code_executor())
    try:
        apply_tool_metadata(catalog, load_tool_metadata(cfg.tools.metadata_dir))
    except ValueError as exc:
        display.warning(f"tool metadata not loaded: {exc}")
    return catalog


def build_registry(cfg: app_config.Config, catalog: ToolCatalog) -> SkillRegistry:
    registry = SkillRegistry(catalog, all_builtin_skills().values())
    try:
        load_skills_dir(cfg.persistence.skills_dir, registry, cfg.llm.default_model)
    except ValueError as exc:
        display.warning(f"skill definitions not loaded: {exc}")
    return registry


def load_projects(cfg: app_config.Config) -> dict[str, Project]:
    try:
        return load_projects_dir(cfg.persistence.projects_dir)
    except ValueError as exc:
        display.warning(f"project definitions not loaded: {exc}")
        return {}


def _abort(ctx: click.Context, message: object, code: int = 2) -> NoReturn:
    display.console.print(f"[red]{escape(str(message))}[/red]")
    ctx.exit(code)


def _load_config(
    ctx: click.Context, max_steps: int | None = None, max_chars: int | None = None
) -> app_config.Config:
    try:
        cfg = app_config.load(ctx.obj["config_path"])
    except app_config.ConfigError as exc:
        _abort(ctx, exc)
    if max_steps is not None:
        cfg.agent.max_steps = max_steps
    if max_chars is not None:
        cfg.agent.max_chars = max_chars
    return cfg


def _prepare(
    ctx: click.Context,
    cfg: app_config.Config,
    skill_name: str,
    project_id: str | None,
    model: str | None,
) -> tuple[Skill, list[Tool]]:
    """Resolve the skill, apply the project scope and pick the tools present in the catalog."""
    try:
        cfg.validate_settings()
    except app_config.ConfigError as exc:
        _abort(ctx, exc)

    catalog = build_catalog(cfg)
    registry = build_registry(cfg, catalog)
    try:
        skill = registry.get(skill_name)
        if project_id:
            skill = get_project(load_projects(cfg), project_id).scope(skill)
    except (SkillNotFoundError, ProjectNotFoundError, ProjectSkillError) as exc:
        _abort(ctx, exc)
    if model:
        skill = skill.model_copy(update={"default_model": model})

    for name in skill.tools:
        if name not in catalog:
            display.warning(f"skill {skill.name} permits {name!r}, which is not registered; skipping it.")
    return skill, catalog.subset(name for name in skill.tools if name in catalog)


def run_options(func):
    """Options shared by every command that executes a skill."""
    options = [
        click.option("--skill", "skill_name", default=DEFAULT_SKILL, show_default=True, help="Skill to run."),
        click.option("--project", "project_id", help="Project id scoping prompt, tools and model."),
        click.option("--model", help="Override the model chosen by the skill or project."),
        click.option("--max-steps", type=click.IntRange(min=1), help="Override agent.max_steps."),
        click.option("--max-chars", type=click.IntRange(min=0), help="Override agent.max_chars (0 disables)."),
        click.option("--timeout", type=click.FloatRange(min=0), help="Cancel after this many seconds."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to a .yaml/.yml/.json config file.",
)
@click.pass_context
def cli(ctx, config_path):
    """skill-agent: run tool-using skills against an OpenAI-compatible model."""
    ctx.obj = {"config_path": config_path}


@cli.command("run")
@click.argument("task")
@run_options
@click.option("--thread", "thread_id", help="Continue and persist to this conversation thread.")
@click.option("--new-thread", metavar="TITLE", help="Start a new conversation thread and persist to it.")
@click.pass_context
def run_task(ctx, task, skill_name, project_id, model, max_steps, max_chars, timeout, thread_id, new_thread):
    """Run one TASK to completion."""
    cfg = _load_config(ctx, max_steps, max_chars)

    store = None
    history = []
    if thread_id or new_thread:
        store = FileConversationStore(cfg.persistence.threads_dir)
    if thread_id:
        try:
            thread = store.get_thread(thread_id)
        except ThreadNotFoundError as exc:
            _abort(ctx, exc)
        project_id = project_id or thread.project_id or None
        history = store.recent_turns(thread_id)

    skill, tools = _prepare(ctx, cfg, skill_name, project_id, model)

    if new_thread:
        thread_id = store.create_thread(new_thread, project_id=project_id or "").id
        display.console.print(f"[dim]thread {thread_id}[/dim]")

    executor = Executor(OpenRouterClient.from_config(cfg.llm), limits=cfg.agent.limits(), reporter=ConsoleReporter())
    result = executor.run(task, skill, tools, history=history, context=RunContext(timeout=timeout))

    if store:
        # Skip the system turn and replayed history; persist only this run's turns.
        store.append_turns(thread_id, result.conversation[1 + len(history):])
    ctx.exit(0 if result.ok else 1)


@cli.command("batch")
@click.argument("tasks_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@run_options
@click.option("--workers", default=4, show_default=True, type=click.IntRange(min=1), help="Concurrent runs.")
@click.pass_context
def run_batch(ctx, tasks_file, skill_name, project_id, model, max_steps, max_chars, timeout, workers):
    """Run every non-empty line of TASKS_FILE concurrently. --timeout bounds the whole batch."""
    cfg = _load_config(ctx, max_steps, max_chars)
    skill, tools = _prepare(ctx, cfg, skill_name, project_id, model)

    tasks = [line.strip() for line in tasks_file.read_text(encoding="utf-8").splitlines() if line.strip()]
    executor = Executor(OpenRouterClient.from_config(cfg.llm), limits=cfg.agent.limits())
    results = executor.run_batch(tasks, skill, tools, max_workers=workers, context=RunContext(timeout=timeout))
    display.batch_summary(tasks, results)
    ctx.exit(0 if all(result.ok for result in results) else 1)


@cli.command("tools")
@click.pass_context
def list_tools(ctx):
    """List registered tools."""
    catalog = build_catalog(_load_config(ctx))
    display.tool_table(catalog.subset(catalog.names()))


@cli.command("skills")
@click.pass_context
def list_skills(ctx):
    """List available skills."""
    cfg = _load_config(ctx)
    display.skill_table(build_registry(cfg, build_catalog(cfg)).skills())


@cli.command("projects")
@click.pass_context
def list_projects(ctx):
    """List projects from persistence.projects_dir."""
    projects = load_projects(_load_config(ctx))
    display.project_table([projects[key] for key in sorted(projects)])


@cli.command("init-config")
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
def init_config(path):
    """Write an example config file to PATH (.json for JSON, YAML otherwise)."""
    fmt = "json" if path.suffix == ".json" else "yaml"
    app_config.save_example(path, fmt)
    display.console.print(f"Wrote example config to {escape(str(path))}")


if __name__ == "__main__":
    cli()
