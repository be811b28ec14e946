# executor.py
# Skill agent loop.
#
# The Executor owns control flow. The model is a passive responder: each step
# it either answers in plain text or asks for tools, and the executor runs
# those tools in order, feeds the replies back, and asks again.
#
# Control flow per step:
#   budget check → cancellation check → model query
#   → final text? return : append assistant turn → dispatch each request
#
# Missing tools and tool failures are conversational content, never run
# failures, so the model can correct itself within its step budget.

import json
import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from skill_agent.client import ModelClient
from skill_agent.context import RunCancelledError, RunContext
from skill_agent.models import (
    ConversationTurn,
    ExecutionProfile,
    FinalText,
    Limits,
    RunResult,
    RunStatus,
    ToolRequest,
)
from skill_agent.tools import Tool, parse_arguments

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class EmptyAnswerError(Exception):
    """Raised when the model returns neither text nor tool calls. Always fatal."""


# ---------------------------------------------------------------------------
# Prompts and notices
# ---------------------------------------------------------------------------

TOOL_PROTOCOL_PROMPT = """\
You can use tools to complete the task. If you choose to use a tool, respond \
ONLY with JSON in the form {"tool":"name","args":{...}}. Otherwise, reply with \
the final answer in plain text.\
"""

BUDGET_EXCEEDED_TEXT = "Context budget exceeded before completion."
STEPS_EXHAUSTED_TEXT = "Max steps reached without final answer."
CANCELLED_TEXT = "Run cancelled before completion."


def build_system_prompt(profile: ExecutionProfile, tools: Sequence[Tool]) -> str:
    """Profile preamble, protocol instruction, then one entry per permitted tool."""
    lines = [profile.instructions, "", TOOL_PROTOCOL_PROMPT, "", "Available tools:"]
    for tool in tools:
        lines.append(f"- {tool.name}: {tool.description}")
        lines.append(f"  parameters: {json.dumps(tool.parameters, sort_keys=True)}")
    return "\n".join(lines)


def total_chars(conversation: Sequence[ConversationTurn]) -> int:
    return sum(len(turn.content) for turn in conversation)


# ---------------------------------------------------------------------------
# Reporting hooks
# ---------------------------------------------------------------------------


class Reporter:
    """No-op observer. Subclass and override the hooks you care about."""

    def run_started(self, profile: ExecutionProfile, task: str, limits: Limits) -> None:
        pass

    def step_started(self, step: int, limits: Limits, chars: int) -> None:
        pass

    def tool_called(self, request: ToolRequest, args: dict[str, Any]) -> None:
        pass

    def tool_finished(self, request: ToolRequest, reply: ConversationTurn) -> None:
        pass

    def tool_not_found(self, request: ToolRequest) -> None:
        pass

    def run_finished(self, result: RunResult) -> None:
        pass


# ---------------------------------------------------------------------------
# Run state
# ---------------------------------------------------------------------------


@dataclass
class RunState:
    """Mutable state of exactly one in-flight run. Never shared."""

    profile: ExecutionProfile
    limits: Limits
    tools: dict[str, Tool]
    context: RunContext
    conversation: list[ConversationTurn] = field(default_factory=list)
    step: int = 0

    def append(self, turn: ConversationTurn) -> None:
        self.conversation.append(turn)

    def result(self, status: RunStatus, text: str = "", error: Exception | None = None) -> RunResult:
        return RunResult(
            status=status,
            text=text,
            steps=self.step,
            conversation=tuple(self.conversation),
            error=error,
        )


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class Executor:
    """
    Multi-step tool-using loop around a ModelClient.

    The executor holds only read-only collaborators and default limits, so a
    single instance can serve many concurrent runs.

    Example:
        executor = Executor(OpenRouterClient(api_key=key))
        skill = registry.get("research_assistant")
        result = executor.run("What is 2+2?", skill, catalog.subset(skill.tools))
        print(result.text)
    """

    def __init__(
        self,
        client: ModelClient,
        limits: Limits | None = None,
        reporter: Reporter | None = None,
    ) -> None:
        self._client = client
        self._limits = limits or Limits()
        self._reporter = reporter or Reporter()

    @property
    def limits(self) -> Limits:
        return self._limits

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def run(
        self,
        task: str,
        profile: ExecutionProfile,
        tools: Sequence[Tool],
        limits: Limits | None = None,
        *,
        history: Sequence[ConversationTurn] = (),
        context: RunContext | None = None,
    ) -> RunResult:
        """
        Execute one task to completion.

        Always returns a RunResult. Transport failures and empty answers come
        back as FAILED results carrying the original exception; call
        `unwrap()` to re-raise it.
        """
        state = RunState(
            profile=profile,
            limits=limits or self._limits,
            tools={tool.name: tool for tool in tools},
            context=context or RunContext(),
        )
        state.append(ConversationTurn.system(build_system_prompt(profile, tools)))
        state.conversation.extend(history)
        state.append(ConversationTurn.user(task))

        self._notify("run_started", profile, task, state.limits)
        result = self._loop(state, [tool.schema() for tool in tools])
        self._notify("run_finished", result)
        return result

    def run_batch(
        self,
        tasks: Sequence[str],
        profile: ExecutionProfile,
        tools: Sequence[Tool],
        limits: Limits | None = None,
        max_workers: int = 4,
        context: RunContext | None = None,
    ) -> list[RunResult]:
        """Run independent tasks concurrently. Results are in task order."""
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = [
                pool.submit(self.run, task, profile, tools, limits, context=context)
                for task in tasks
            ]
            return [future.result() for future in futures]

    def chat(
        self,
        conversation: Sequence[ConversationTurn],
        model: str,
        temperature: float | None = None,
    ) -> str:
        """Single completion without tools. Transport errors propagate."""
        response = self._client.complete(
            conversation,
            [],
            model=model,
            temperature=self._limits.temperature if temperature is None else temperature,
        )
        return response.text

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _loop(self, state: RunState, schemas: list[dict[str, Any]]) -> RunResult:
        limits = state.limits

        while state.step < limits.max_steps:
            chars = total_chars(state.conversation)
            if limits.max_chars > 0 and chars > limits.max_chars:
                return state.result(RunStatus.BUDGET_EXCEEDED, BUDGET_EXCEEDED_TEXT)
            if state.context.cancelled:
                return state.result(RunStatus.CANCELLED, CANCELLED_TEXT)

            self._notify("step_started", state.step, limits, chars)
            state.step += 1
            try:
                response = self._client.complete(
                    tuple(state.conversation),
                    schemas,
                    model=state.profile.default_model,
                    temperature=limits.temperature,
                    context=state.context,
                )
            except RunCancelledError:
                return state.result(RunStatus.CANCELLED, CANCELLED_TEXT)
            except Exception as exc:
                return state.result(RunStatus.FAILED, error=exc)

            if isinstance(response, FinalText):
                if not response.text:
                    return state.result(
                        RunStatus.FAILED, error=EmptyAnswerError("model returned empty response")
                    )
                state.append(ConversationTurn.assistant(response.text))
                return state.result(RunStatus.FINAL_ANSWER, response.text)

            state.append(ConversationTurn.assistant(response.text, response.requests))
            for index, request in enumerate(response.requests):
                if state.context.cancelled:
                    for pending in response.requests[index:]:
                        state.append(ConversationTurn.tool_reply(pending.id, "tool call cancelled"))
                    break
                state.append(self.dispatch(request, state.tools, state.context))

        if state.context.cancelled:
            return state.result(RunStatus.CANCELLED, CANCELLED_TEXT)
        return state.result(RunStatus.STEPS_EXHAUSTED, STEPS_EXHAUSTED_TEXT)

    def _notify(self, hook: str, *args: Any) -> None:
        # Reporters observe; their failures never change a run's outcome.
        try:
            getattr(self._reporter, hook)(*args)
        except Exception:
            logger.exception("reporter hook %s failed", hook)

    # ------------------------------------------------------------------
    # Tool dispatch
    # ------------------------------------------------------------------

    def dispatch(
        self, request: ToolRequest, tools: dict[str, Tool], context: RunContext
    ) -> ConversationTurn:
        """
        Resolve and invoke one tool request.

        Produces exactly one tool-role turn and never raises: an unknown tool,
        a tool error or a cancellation all become the reply's text.
        """
        tool = tools.get(request.name)
        if tool is None:
            self._notify("tool_not_found", request)
            return ConversationTurn.tool_reply(request.id, f"tool not found: {request.name}")

        args = parse_arguments(request.arguments)
        self._notify("tool_called", request, args)
        try:
            output = tool.execute(args, context)
        except RunCancelledError:
            output = "tool error: cancelled"
        except Exception as exc:
            output = f"tool error: {exc}"

        reply = ConversationTurn.tool_reply(request.id, str(output))
        self._notify("tool_finished", request, reply)
        return reply
