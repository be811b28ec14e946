# tools.py
# Tool catalog and built-in tool implementations.
#
# The executor only ever sees Tool objects drawn from a ToolCatalog; it never
# calls the _tool_* functions below directly. Tools report ordinary failures by
# raising, and the executor turns the exception into a conversational reply.

import ast
import json
import math
import operator
import subprocess
import sys
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from skill_agent.context import RunContext


class ToolNotFoundError(Exception):
    """Raised when a catalog lookup names a tool that was never registered."""


class ToolExecutionError(Exception):
    """Raised by a tool when it cannot produce a result."""


class ModelType(str, Enum):
    INVALID = ""
    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    TRANSCRIBE = "transcribe"
    EMBEDDING = "embedding"
    VISION = "vision"


EMPTY_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}


# ---------------------------------------------------------------------------
# Tool interface
# ---------------------------------------------------------------------------


class Tool(ABC):
    """
    A named, described, schema-bearing callable.

    `required_model` and `model_type` are read by callers when they assemble
    the permitted subset for a run; the executor ignores them.
    """

    name: str = ""
    description: str = ""
    parameters: dict[str, Any] = EMPTY_SCHEMA
    required_model: str = ""
    model_type: ModelType = ModelType.TEXT

    @abstractmethod
    def execute(self, args: dict[str, Any], context: RunContext) -> str:
        ...

    def schema(self) -> dict[str, Any]:
        """Function-calling schema in the OpenAI format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


Handler = Callable[[dict[str, Any], RunContext], str]


class SimpleTool(Tool):
    """
    Wrap a plain function as a tool.

    Example:
        shout = SimpleTool("shout", "Upper-case a message",
                           lambda args, ctx: args.get("message", "").upper())
        shout.with_parameters({"type": "object",
                               "properties": {"message": {"type": "string"}}})
    """

    def __init__(self, name: str, description: str, handler: Handler) -> None:
        self.name = name
        self.description = description
        self.parameters = dict(EMPTY_SCHEMA)
        self.required_model = ""
        self.model_type = ModelType.TEXT
        self._handler = handler

    def with_parameters(self, parameters: dict[str, Any]) -> "SimpleTool":
        self.parameters = parameters
        return self

    def with_model(self, model: str) -> "SimpleTool":
        self.required_model = model
        return self

    def with_model_type(self, model_type: ModelType) -> "SimpleTool":
        self.model_type = model_type
        return self

    def execute(self, args: dict[str, Any], context: RunContext) -> str:
        return self._handler(args, context)


class WrappedTool(Tool):
    """Overlay YAML metadata on an existing tool, delegating execution to it."""

    def __init__(self, base: Tool, meta: "ToolMetadata") -> None:
        self._base = base
        self.name = meta.name
        self.description = meta.description
        self.parameters = meta.parameters or base.parameters
        self.required_model = meta.required_model or base.required_model
        self.model_type = (
            meta.model_type if meta.model_type is not ModelType.INVALID else base.model_type
        )

    def execute(self, args: dict[str, Any], context: RunContext) -> str:
        return self._base.execute(args, context)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class ToolCatalog:
    """
    Registry of every tool known to the application.

    Shared read-mostly across runs: register everything up front, then hand
    `subset(...)` results to the executor.
    """

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def names(self) -> list[str]:
        return sorted(self._tools)

    def subset(self, names: Iterable[str]) -> list[Tool]:
        """Resolve names to tools, in the order given."""
        selected: list[Tool] = []
        for name in names:
            tool = self._tools.get(name)
            if tool is None:
                raise ToolNotFoundError(f"tool not found: {name}")
            selected.append(tool)
        return selected

    def schemas(self) -> list[dict[str, Any]]:
        return [self._tools[name].schema() for name in self.names()]

    def execute(self, name: str, args: dict[str, Any], context: RunContext | None = None) -> str:
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(f"tool not found: {name}")
        return tool.execute(args, context or RunContext())


# ---------------------------------------------------------------------------
# YAML metadata overlay
# ---------------------------------------------------------------------------


class ToolMetadata(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    required_model: str = ""
    model_type: ModelType = ModelType.INVALID
    parameters: dict[str, Any] = Field(default_factory=dict)


def load_tool_metadata(directory: str | Path | None) -> list[ToolMetadata]:
    """
    Read every *.yaml file under `directory`.

    A missing directory yields an empty list. Malformed files raise ValueError
    naming the offending path.
    """
    if not directory:
        return []
    root = Path(directory)
    if not root.is_dir():
        return []

    metas: list[ToolMetadata] = []
    for path in sorted(root.rglob("*")):
        if not path.is_file() or path.suffix.lower() != ".yaml":
            continue
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            metas.append(ToolMetadata.model_validate(data))
        except (yaml.YAMLError, ValidationError) as exc:
            raise ValueError(f"parse tool yaml {path}: {exc}") from exc
    return metas


def apply_tool_metadata(catalog: ToolCatalog, metas: Iterable[ToolMetadata]) -> None:
    """Wrap already-registered tools with matching metadata. Unknown names are skipped."""
    for meta in metas:
        base = catalog.get(meta.name)
        if base is None:
            continue
        catalog.register(WrappedTool(base, meta))


# ---------------------------------------------------------------------------
# Built-in tools
# ---------------------------------------------------------------------------

_BIN_OPS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS: dict[type, Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

_MATH_NAMES: dict[str, Any] = {
    "pi": math.pi,
    "e": math.e,
    "sqrt": math.sqrt,
    "log": math.log,
    "log10": math.log10,
    "exp": math.exp,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "abs": abs,
    "round": round,
}

MAX_EXPONENT = 1000
MAX_RESULT_BITS = 10_000


def _check_size(op: ast.operator, left: Any, right: Any) -> None:
    """Reject integer results that would exceed MAX_RESULT_BITS before computing them."""
    if isinstance(op, ast.Pow):
        if abs(right) > MAX_EXPONENT:
            raise ToolExecutionError(f"exponent too large: {right}")
        if isinstance(left, int) and isinstance(right, int) and right > 0:
            if abs(left).bit_length() * right > MAX_RESULT_BITS:
                raise ToolExecutionError("result too large")
    elif isinstance(op, ast.Mult) and isinstance(left, int) and isinstance(right, int):
        if abs(left).bit_length() + abs(right).bit_length() > MAX_RESULT_BITS:
            raise ToolExecutionError("result too large")


def _evaluate(node: ast.AST, context: RunContext) -> Any:
    context.check()
    if isinstance(node, ast.Expression):
        return _evaluate(node.body, context)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BIN_OPS:
        left, right = _evaluate(node.left, context), _evaluate(node.right, context)
        _check_size(node.op, left, right)
        return _BIN_OPS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_evaluate(node.operand, context))
    if isinstance(node, ast.Name) and node.id in _MATH_NAMES:
        return _MATH_NAMES[node.id]
    if isinstance(node, ast.Call) and isinstance(node.func, ast.Name) and not node.keywords:
        func = _MATH_NAMES.get(node.func.id)
        if callable(func):
            return func(*[_evaluate(arg, context) for arg in node.args])
    raise ToolExecutionError(f"unsupported expression element: {ast.dump(node)[:60]}")


def _tool_calculator(args: dict, context: RunContext) -> str:
    expression = str(args.get("expression", "")).strip()
    if not expression:
        raise ToolExecutionError("no expression provided")
    try:
        tree = ast.parse(expression, mode="eval")
        value = _evaluate(tree, context)
    except SyntaxError as exc:
        raise ToolExecutionError(f"invalid expression: {expression}") from exc
    except (ArithmeticError, ValueError, TypeError) as exc:
        raise ToolExecutionError(f"cannot evaluate {expression}: {exc}") from exc

    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


MAX_FETCH_BYTES = 1024 * 1024
FETCH_TIMEOUT = 30.0


def _tool_fetch_url(args: dict, context: RunContext) -> str:
    import httpx

    url = str(args.get("url", "")).strip()
    if not url:
        raise ToolExecutionError("no URL provided")

    remaining = context.remaining()
    timeout = FETCH_TIMEOUT if remaining is None else min(FETCH_TIMEOUT, remaining)
    body = bytearray()
    with httpx.stream(
        "GET",
        url,
        headers={"User-Agent": "skill-agent/1.0"},
        timeout=timeout,
        follow_redirects=True,
    ) as response:
        if response.status_code != 200:
            raise ToolExecutionError(f"HTTP {response.status_code}: {response.reason_phrase}")
        for chunk in response.iter_bytes():
            context.check()
            body.extend(chunk)
            if len(body) >= MAX_FETCH_BYTES:
                break

    text = bytes(body[:MAX_FETCH_BYTES]).decode("utf-8", errors="replace")
    return f"Content from {url}:\n\n{text}"


def _tool_search(args: dict, context: RunContext) -> str:
    from ddgs import DDGS

    query = str(args.get("query", "")).strip()
    if not query:
        raise ToolExecutionError("no query provided")
    max_results = args.get("max_results", 4)
    if not isinstance(max_results, int) or max_results < 1:
        max_results = 4

    # ddgs yields lazily; the request happens while listing.
    hits = list(DDGS().text(query, max_results=max_results))
    context.check()
    if not hits:
        return "No results found."

    return "\n\n".join(
        f"{n}. {hit.get('title') or 'Untitled'}\n{hit.get('body', '')}\nURL: {hit.get('href', '')}"
        for n, hit in enumerate(hits, start=1)
    )


CODE_TIMEOUT = 30.0
_INTERPRETERS = {
    "python": [sys.executable, "-c"],
    "node": ["node", "-e"],
}


def _tool_execute_code(args: dict, context: RunContext) -> str:
    language = str(args.get("language", "")).strip().lower()
    code = str(args.get("code", ""))
    if language not in _INTERPRETERS:
        raise ToolExecutionError(f"language not allowed: {language or '<missing>'}")
    if not code.strip():
        raise ToolExecutionError("no code provided")

    remaining = context.remaining()
    timeout = CODE_TIMEOUT if remaining is None else min(CODE_TIMEOUT, remaining)
    try:
        completed = subprocess.run(
            [*_INTERPRETERS[language], code],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        raise ToolExecutionError(f"execution timed out after {timeout:.0f}s") from exc

    output = (completed.stdout or "") + (completed.stderr or "")
    if completed.returncode != 0:
        raise ToolExecutionError(f"execution error: exit status {completed.returncode}\nOutput: {output}")
    return f"Execution successful:\n{output}"


def calculator() -> Tool:
    return SimpleTool(
        "calculator",
        "Perform mathematical calculations and evaluate expressions",
        _tool_calculator,
    ).with_parameters(
        {
            "type": "object",
            "properties": {
                "expression": {
                    "type": "string",
                    "description": "Mathematical expression to evaluate (e.g., '2 + 2', '10 * 5 + 3')",
                }
            },
            "required": ["expression"],
        }
    )


def url_fetcher() -> Tool:
    return SimpleTool("fetch_url", "Fetch and read content from a URL", _tool_fetch_url).with_parameters(
        {
            "type": "object",
            "properties": {"url": {"type": "string", "description": "URL to fetch content from"}},
            "required": ["url"],
        }
    )


def web_search() -> Tool:
    return SimpleTool("web_search", "Search the web for current information", _tool_search).with_parameters(
        {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query"},
                "max_results": {"type": "integer", "description": "Number of results (default 4)"},
            },
            "required": ["query"],
        }
    )


def code_executor() -> Tool:
    """Runs code on the host. Only register it for trusted environments."""
    return SimpleTool(
        "execute_code",
        "Execute a short Python or Node.js program and return its output",
        _tool_execute_code,
    ).with_parameters(
        {
            "type": "object",
            "properties": {
                "language": {
                    "type": "string",
                    "description": "Programming language (python, node)",
                    "enum": sorted(_INTERPRETERS),
                },
                "code": {"type": "string", "description": "Code to execute"},
            },
            "required": ["language", "code"],
        }
    )


def safe_default_tools() -> list[Tool]:
    """Tools without host side effects."""
    return [url_fetcher(), calculator(), web_search()]


def all_builtin_tools() -> dict[str, Tool]:
    tools = {tool.name: tool for tool in safe_default_tools()}
    executor = code_executor()
    tools[executor.name] = executor
    return tools


def parse_arguments(raw: str | None) -> dict[str, Any]:
    """
    Decode a raw argument payload into a dict.

    Anything that is not a JSON object degrades to an empty dict; the tool is
    still invoked and may then fail on its own terms.
    """
    if not raw or not raw.strip():
        return {}
    try:
        data = json.loads(raw, strict=False)
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}
