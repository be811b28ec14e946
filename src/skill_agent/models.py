# models.py
# Data contracts for the skill agent loop.
# No business logic lives here, only schema and validation.

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolRequest(BaseModel):
    """A model-emitted instruction to invoke one tool."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Opaque correlation id echoed by the tool reply.")
    name: str = Field(..., description="Tool name as emitted by the model.")
    arguments: str = Field(default="", description="Raw JSON argument payload, unparsed.")


class ConversationTurn(BaseModel):
    """One role-tagged entry in the conversation. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str = ""
    tool_requests: tuple[ToolRequest, ...] = Field(
        default=(), description="Pending requests, assistant turns only."
    )
    tool_call_id: str | None = Field(
        default=None, description="Id of the request this answers, tool turns only."
    )

    @classmethod
    def system(cls, content: str) -> "ConversationTurn":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "ConversationTurn":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(
        cls, content: str, tool_requests: tuple[ToolRequest, ...] | list[ToolRequest] = ()
    ) -> "ConversationTurn":
        return cls(role=Role.ASSISTANT, content=content, tool_requests=tuple(tool_requests))

    @classmethod
    def tool_reply(cls, tool_call_id: str, content: str) -> "ConversationTurn":
        return cls(role=Role.TOOL, content=content, tool_call_id=tool_call_id)

    def to_message(self) -> dict[str, Any]:
        """Render as an OpenAI-compatible chat message."""
        message: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_requests:
            message["tool_calls"] = [
                {
                    "id": req.id,
                    "type": "function",
                    "function": {"name": req.name, "arguments": req.arguments},
                }
                for req in self.tool_requests
            ]
        if self.tool_call_id is not None:
            message["tool_call_id"] = self.tool_call_id
        return message


class ExecutionProfile(BaseModel):
    """A reusable bundle of instructions, default model and permitted tools (a "skill")."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    instructions: str = Field(..., description="Instruction preamble for the system turn.")
    default_model: str = Field(..., description="Model identifier sent to the provider.")
    tools: tuple[str, ...] = Field(default=(), description="Permitted tool names.")
    examples: tuple[str, ...] = ()
    resources: tuple[str, ...] = ()


Skill = ExecutionProfile


class Limits(BaseModel):
    """Per-run resource limits."""

    model_config = ConfigDict(frozen=True)

    max_steps: int = Field(default=6, ge=1)
    max_chars: int = Field(default=24000, ge=0, description="0 disables the budget check.")
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)


# ---------------------------------------------------------------------------
# Model output
# ---------------------------------------------------------------------------


class FinalText(BaseModel):
    """The model answered in plain text."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["final_text"] = "final_text"
    text: str


class ToolCalls(BaseModel):
    """The model asked for one or more tools, in emitted order."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["tool_calls"] = "tool_calls"
    text: str = ""
    requests: tuple[ToolRequest, ...] = Field(..., min_length=1)


ModelResponse = Annotated[Union[FinalText, ToolCalls], Field(discriminator="kind")]


# ---------------------------------------------------------------------------
# Run outcome
# ---------------------------------------------------------------------------


class RunStatus(str, Enum):
    FINAL_ANSWER = "final_answer"
    BUDGET_EXCEEDED = "budget_exceeded"
    STEPS_EXHAUSTED = "steps_exhausted"
    CANCELLED = "cancelled"
    FAILED = "failed"


class RunResult(BaseModel):
    """Exactly one of these is produced per Executor.run call."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    status: RunStatus
    text: str = ""
    steps: int = Field(default=0, description="Model queries issued during the run.")
    conversation: tuple[ConversationTurn, ...] = ()
    error: Exception | None = Field(default=None, description="Original error for FAILED runs.")

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.FINAL_ANSWER

    def unwrap(self) -> str:
        """Return the text, re-raising the original error of a failed run."""
        if self.status is RunStatus.FAILED and self.error is not None:
            raise self.error
        return self.text
