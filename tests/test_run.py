from unittest.mock import patch

import pytest
from click.testing import CliRunner
from rich.console import Console

from conftest import ScriptedClient, call, text
from skill_agent import config as app_config
from skill_agent import display
from skill_agent.conversation import FileConversationStore
from skill_agent.run import cli


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path):
    for name in ("OPENROUTER_API_KEY", "LLM_BASE_URL", "LLM_DEFAULT_MODEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(app_config, "config_locations", lambda: [tmp_path])


@pytest.fixture(autouse=True)
def screen(monkeypatch):
    recorder = Console(record=True, width=200)
    monkeypatch.setattr(display, "console", recorder)
    return recorder


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setenv("OPENROUTER_API_KEY", "test-key")


@pytest.fixture
def projects_config(tmp_path):
    projects = tmp_path / "projects"
    projects.mkdir()
    (projects / "acme.yaml").write_text(
        "name: ACME\n"
        "system_prompt: You work for ACME. Answer in one line.\n"
        "tools: [calculator]\n"
        "skills: [tutor, research_assistant]\n"
        "default_model: acme/model\n",
        encoding="utf-8",
    )
    (tmp_path / "llm.yaml").write_text(f"persistence:\n  projects_dir: {projects}\n", encoding="utf-8")


def test_list_skills_and_tools(runner, screen):
    assert runner.invoke(cli, ["skills"]).exit_code == 0
    assert runner.invoke(cli, ["tools"]).exit_code == 0
    out = screen.export_text()
    assert "research_assistant" in out
    assert "calculator" in out


def test_run_requires_api_key(runner, screen):
    result = runner.invoke(cli, ["run", "What is 2+2?"])
    assert result.exit_code == 2
    assert "API key is required" in screen.export_text()


def test_unknown_skill(runner, api_key):
    assert runner.invoke(cli, ["run", "hi", "--skill", "poet"]).exit_code == 2


def test_invalid_step_override_is_a_usage_error(runner, api_key):
    assert runner.invoke(cli, ["run", "hi", "--max-steps", "0"]).exit_code == 2


@patch("skill_agent.run.OpenRouterClient")
def test_single_run_with_tool(mock_client_cls, runner, api_key):
    client = ScriptedClient([call("calculator", '{"expression": "17 * 23"}'), text("391")])
    mock_client_cls.from_config.return_value = client

    result = runner.invoke(cli, ["run", "What is 17 * 23?", "--skill", "tutor", "--model", "vendor/tiny"])

    assert result.exit_code == 0
    assert client.calls[0]["model"] == "vendor/tiny"
    assert client.calls[1]["conversation"][-1].content == "391"


@patch("skill_agent.run.OpenRouterClient")
def test_step_exhaustion_exit_code(mock_client_cls, runner, api_key):
    mock_client_cls.from_config.return_value = ScriptedClient([call("calculator")])
    result = runner.invoke(cli, ["run", "loop", "--skill", "tutor", "--max-steps", "2"])
    assert result.exit_code == 1


@patch("skill_agent.run.OpenRouterClient")
def test_new_thread_is_persisted_and_replayed(mock_client_cls, runner, api_key, tmp_path):
    mock_client_cls.from_config.return_value = ScriptedClient([text("Paris")])
    assert runner.invoke(cli, ["run", "Capital of France?", "--new-thread", "geo"]).exit_code == 0

    store = FileConversationStore(tmp_path / ".llm_threads")
    (thread,) = store.list_threads()
    assert [turn.content for turn in thread.turns] == ["Capital of France?", "Paris"]

    second = ScriptedClient([text("Berlin")])
    mock_client_cls.from_config.return_value = second
    assert runner.invoke(cli, ["run", "And Germany?", "--thread", thread.id]).exit_code == 0

    sent = [turn.content for turn in second.calls[0]["conversation"][1:]]
    assert sent == ["Capital of France?", "Paris", "And Germany?"]
    assert len(store.get_thread(thread.id).turns) == 4


def test_unknown_thread(runner, api_key):
    assert runner.invoke(cli, ["run", "hi", "--thread", "does-not-exist"]).exit_code == 2


@patch("skill_agent.run.OpenRouterClient")
def test_batch(mock_client_cls, runner, api_key, tmp_path, screen):
    client = ScriptedClient([text("done")])
    mock_client_cls.from_config.return_value = client
    tasks = tmp_path / "tasks.txt"
    tasks.write_text("first\n\nsecond\n", encoding="utf-8")

    result = runner.invoke(cli, ["batch", str(tasks), "--skill", "summarizer"])

    assert result.exit_code == 0
    assert len(client.calls) == 2
    assert "BATCH SUMMARY" in screen.export_text()


@patch("skill_agent.run.OpenRouterClient")
def test_batch_timeout_reaches_every_run(mock_client_cls, runner, api_key, tmp_path, screen):
    client = ScriptedClient([text("never")])
    mock_client_cls.from_config.return_value = client
    tasks = tmp_path / "tasks.txt"
    tasks.write_text("first\nsecond\n", encoding="utf-8")

    result = runner.invoke(cli, ["batch", str(tasks), "--timeout", "0"])

    assert result.exit_code == 1
    assert client.calls == []
    assert "CANCELLED" in screen.export_text()


def test_missing_batch_file_is_a_usage_error(runner, api_key, tmp_path):
    result = runner.invoke(cli, ["batch", str(tmp_path / "absent.txt")])
    assert result.exit_code == 2
    assert result.exception is None or isinstance(result.exception, SystemExit)


@patch("skill_agent.run.OpenRouterClient")
def test_malformed_skill_file_is_a_warning(mock_client_cls, runner, api_key, tmp_path, screen):
    skills = tmp_path / "skills"
    skills.mkdir()
    (skills / "broken.yaml").write_text("name: [unclosed\n", encoding="utf-8")
    (tmp_path / "llm.yaml").write_text(f"persistence:\n  skills_dir: {skills}\n", encoding="utf-8")
    mock_client_cls.from_config.return_value = ScriptedClient([text("ok")])

    result = runner.invoke(cli, ["run", "hi"])

    assert result.exit_code == 0
    assert "skill definitions not loaded" in screen.export_text()


@patch("skill_agent.run.OpenRouterClient")
def test_project_scopes_prompt_tools_and_model(mock_client_cls, runner, api_key, projects_config, tmp_path):
    client = ScriptedClient([text("4")])
    mock_client_cls.from_config.return_value = client

    result = runner.invoke(cli, ["run", "2+2?", "--skill", "tutor", "--project", "acme", "--new-thread", "maths"])

    assert result.exit_code == 0
    query = client.calls[0]
    assert query["model"] == "acme/model"
    assert [schema["function"]["name"] for schema in query["tool_schemas"]] == ["calculator"]
    assert query["conversation"][0].content.startswith("You work for ACME. Answer in one line.\n\n")

    (thread,) = FileConversationStore(tmp_path / ".llm_threads").list_threads()
    assert thread.project_id == "acme"


@patch("skill_agent.run.OpenRouterClient")
def test_thread_remembers_its_project(mock_client_cls, runner, api_key, projects_config, tmp_path):
    mock_client_cls.from_config.return_value = ScriptedClient([text("4")])
    runner.invoke(cli, ["run", "2+2?", "--skill", "tutor", "--project", "acme", "--new-thread", "maths"])
    (thread,) = FileConversationStore(tmp_path / ".llm_threads").list_threads()

    client = ScriptedClient([text("6")])
    mock_client_cls.from_config.return_value = client
    assert runner.invoke(cli, ["run", "3+3?", "--skill", "tutor", "--thread", thread.id]).exit_code == 0
    assert client.calls[0]["model"] == "acme/model"


def test_project_rejects_skill_it_does_not_enable(runner, api_key, projects_config, screen):
    result = runner.invoke(cli, ["run", "hi", "--skill", "translator", "--project", "acme"])
    assert result.exit_code == 2
    assert "not enabled in project acme" in screen.export_text()


def test_unknown_project(runner, api_key, projects_config):
    assert runner.invoke(cli, ["run", "hi", "--project", "globex"]).exit_code == 2


def test_list_projects(runner, projects_config, screen):
    assert runner.invoke(cli, ["projects"]).exit_code == 0
    assert "ACME" in screen.export_text()


def test_init_config(runner, tmp_path):
    target = tmp_path / "example.yaml"
    assert runner.invoke(cli, ["init-config", str(target)]).exit_code == 0
    assert app_config.load(target).llm.api_key == "your-api-key-here"
