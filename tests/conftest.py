import pytest

from skill_agent.context import RunContext
from skill_agent.models import ExecutionProfile, FinalText, ToolCalls, ToolRequest
from skill_agent.tools import SimpleTool


class ScriptedClient:
    """Deterministic ModelClient: replays a list of responses, recording each query."""

    def __init__(self, responses):
        self._responses = list(responses)
        self.calls = []

    def complete(self, conversation, tool_schemas, *, model, temperature, context=None):
        self.calls.append(
            {
                "conversation": tuple(conversation),
                "tool_schemas": list(tool_schemas),
                "model": model,
                "temperature": temperature,
            }
        )
        response = self._responses[min(len(self.calls), len(self._responses)) - 1]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(len(self.calls))
        return response


def text(value: str) -> FinalText:
    return FinalText(text=value)


def call(name: str, arguments: str = "{}", call_id: str = "call_1", content: str = "") -> ToolCalls:
    return ToolCalls(text=content, requests=(ToolRequest(id=call_id, name=name, arguments=arguments),))


@pytest.fixture
def profile() -> ExecutionProfile:
    return ExecutionProfile(
        name="tester",
        instructions="You are a test assistant.",
        default_model="test/model",
        tools=("calculator",),
    )


@pytest.fixture
def calculator_stub() -> SimpleTool:
    def handler(args: dict, context: RunContext) -> str:
        return {"2+2": "4"}.get(args.get("expression", ""), "0")

    return SimpleTool("calculator", "Evaluate arithmetic", handler).with_parameters(
        {"type": "object", "properties": {"expression": {"type": "string"}}, "required": ["expression"]}
    )
