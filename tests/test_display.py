from rich.console import Console

from conftest import ScriptedClient, call, text
from skill_agent.display import ConsoleReporter
from skill_agent.executor import Executor
from skill_agent.models import Limits, RunStatus
from skill_agent.tools import SimpleTool


def test_console_reporter_renders_a_run(profile, calculator_stub):
    out = Console(record=True, width=200)
    client = ScriptedClient([call("calculator", '{"expression": "2+2"}'), call("shell"), text("4")])
    executor = Executor(client, Limits(max_steps=5), reporter=ConsoleReporter(out))

    executor.run("What is 2+2?", profile, [calculator_stub])

    rendered = out.export_text()
    assert "skill tester" in rendered
    assert "STEP [1/5]" in rendered
    assert "Observe" in rendered
    assert "'shell' is not permitted" in rendered
    assert "RESULT" in rendered


def test_console_reporter_shows_failure(profile):
    out = Console(record=True, width=200)
    executor = Executor(ScriptedClient([RuntimeError("boom")]), reporter=ConsoleReporter(out))

    executor.run("q", profile, [])

    rendered = out.export_text()
    assert "FAILED" in rendered
    assert "RuntimeError: boom" in rendered


def test_markup_like_text_is_printed_literally(profile):
    out = Console(record=True, width=200)
    bbcode = SimpleTool("calculator", "returns bbcode", lambda args, ctx: "see [/b] here")
    client = ScriptedClient([call("calculator"), text("use the regex [/\\] to split paths")])
    executor = Executor(client, reporter=ConsoleReporter(out))

    result = executor.run("what does [bold]x[/bold] mean?", profile, [bbcode])

    assert result.status is RunStatus.FINAL_ANSWER
    rendered = out.export_text()
    assert "see [/b] here" in rendered
    assert "use the regex [/\\] to split paths" in rendered
    assert "what does [bold]x[/bold] mean?" in rendered
