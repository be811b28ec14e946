# skills.py
# Skill registry: named execution profiles handed to the executor.
#
# A skill is read-only input to a run. The registry resolves a skill's
# permitted tool names against a ToolCatalog so callers can assemble the
# subset before calling Executor.run.

from collections.abc import Iterable
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from skill_agent.models import Skill
from skill_agent.tools import Tool, ToolCatalog, ToolNotFoundError


class SkillNotFoundError(Exception):
    """Raised when a registry lookup names a skill that was never registered."""


CLAUDE_SONNET = "anthropic/claude-3.5-sonnet"
GPT_4O = "openai/gpt-4o"


# ---------------------------------------------------------------------------
# Built-in skills
# ---------------------------------------------------------------------------

RESEARCH_ASSISTANT = Skill(
    name="research_assistant",
    description="Deep research on any topic using web search and analysis",
    instructions="""\
You are a research assistant skilled at finding, analyzing, and synthesizing information.

Your research process:
1. Break down the research question into sub-questions
2. Search for relevant sources using web_search
3. Read detailed content with fetch_url if URLs are provided
4. Synthesize findings into a comprehensive report
5. Cite all sources

Always verify information from multiple sources and provide clear, well-structured answers.\
""",
    tools=("web_search", "fetch_url"),
    examples=(
        "Research the latest developments in quantum computing",
        "What are the health benefits of intermittent fasting?",
    ),
    default_model=CLAUDE_SONNET,
)

CODER = Skill(
    name="coder",
    description="Programming assistant that writes, explains, and debugs code",
    instructions="""\
You are an expert programmer proficient in multiple languages.

Write clean, well-documented, efficient code and explain it clearly.
Use web_search to look up documentation and best practices.
Use execute_code to test and verify code when appropriate.\
""",
    tools=("web_search", "execute_code"),
    examples=("Write a Python function to find prime numbers", "Debug this JavaScript code"),
    default_model=CLAUDE_SONNET,
)

CODE_REVIEWER = Skill(
    name="code_reviewer",
    description="Analyze code quality and provide detailed feedback",
    instructions="""\
You are an expert code reviewer who provides constructive, detailed feedback.

Check structure, potential bugs and edge cases, performance, and security.
Suggest improvements with examples of better approaches.
Focus on being helpful and educational, not just critical.\
""",
    examples=("Review this function for potential issues",),
    default_model=CLAUDE_SONNET,
)

SUMMARIZER = Skill(
    name="summarizer",
    description="Summarize long texts, articles, or documents concisely",
    instructions="""\
You are an expert at creating clear, concise summaries of complex content.

Identify the main ideas, keep the summary accurate, and use bullet points
when they help. Use fetch_url to retrieve web articles when given URLs.\
""",
    tools=("fetch_url", "web_search"),
    examples=("Summarize this article: [URL]", "Give me the key points from this document"),
    default_model=CLAUDE_SONNET,
)

TRANSLATOR = Skill(
    name="translator",
    description="Translate text between languages with cultural context",
    instructions="""\
You are an expert translator fluent in multiple languages.

Detect the source language when it is not given, preserve meaning and tone,
and explain idioms that do not translate directly.\
""",
    tools=("web_search",),
    examples=("Translate 'Hello, how are you?' to Spanish",),
    default_model=GPT_4O,
)

DATA_ANALYST = Skill(
    name="data_analyst",
    description="Analyze data, find patterns, and provide insights",
    instructions="""\
You are a data analyst skilled at extracting insights from data.

Understand the data, identify patterns and trends, check arithmetic with the
calculator tool, and explain your methodology.\
""",
    tools=("calculator",),
    examples=("Analyze this sales data for trends",),
    default_model=GPT_4O,
)

TUTOR = Skill(
    name="tutor",
    description="Educational tutor that explains concepts step-by-step",
    instructions="""\
You are a patient, knowledgeable tutor who excels at teaching complex topics.

Break concepts into small parts, use analogies and real-world examples, and
use the calculator tool for math problems when needed.\
""",
    tools=("calculator", "web_search"),
    examples=("Explain quantum entanglement like I'm 12", "Help me understand calculus derivatives"),
    default_model=CLAUDE_SONNET,
)

CONTENT_CREATOR = Skill(
    name="content_creator",
    description="Create engaging, well-sourced content",
    instructions="""\
You are a content creator who produces high-quality, engaging content.

Research the topic with web_search, read sources with fetch_url, write
compelling copy for the target platform, and cite your sources.\
""",
    tools=("web_search", "fetch_url"),
    examples=("Write a blog post about sustainable living tips",),
    default_model=GPT_4O,
)


def default_skills() -> list[Skill]:
    return [RESEARCH_ASSISTANT, SUMMARIZER, TRANSLATOR, TUTOR]


def all_builtin_skills() -> dict[str, Skill]:
    skills = [
        RESEARCH_ASSISTANT,
        CONTENT_CREATOR,
        CODE_REVIEWER,
        DATA_ANALYST,
        TUTOR,
        TRANSLATOR,
        SUMMARIZER,
        CODER,
    ]
    return {skill.name: skill for skill in skills}


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class SkillRegistry:
    """Named skills bound to the catalog their tools come from."""

    def __init__(self, catalog: ToolCatalog, skills: Iterable[Skill] = ()) -> None:
        self._catalog = catalog
        self._skills: dict[str, Skill] = {}
        for skill in skills:
            self.register(skill)

    def register(self, skill: Skill) -> None:
        self._skills[skill.name] = skill

    def get(self, name: str) -> Skill:
        try:
            return self._skills[name]
        except KeyError:
            raise SkillNotFoundError(f"skill not found: {name}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._skills

    def skills(self) -> list[Skill]:
        return [self._skills[name] for name in sorted(self._skills)]

    def tools_for(self, name: str) -> list[Tool]:
        """Resolve a skill's permitted tools. Every name must be in the catalog."""
        skill = self.get(name)
        try:
            return self._catalog.subset(skill.tools)
        except ToolNotFoundError as exc:
            raise ToolNotFoundError(f"{exc} (required by skill {name})") from exc

    def missing_tools(self) -> dict[str, list[str]]:
        """Map skill name to the permitted tool names the catalog lacks."""
        missing: dict[str, list[str]] = {}
        for skill in self.skills():
            absent = [tool for tool in skill.tools if tool not in self._catalog]
            if absent:
                missing[skill.name] = absent
        return missing


class SkillFile(BaseModel):
    """On-disk YAML shape of a skill."""

    name: str = ""
    description: str = ""
    system_prompt: str = ""
    tools: list[str] = Field(default_factory=list)
    resources: list[str] = Field(default_factory=list)
    examples: list[str] = Field(default_factory=list)
    default_model: str = ""


def load_skills_dir(directory: str | Path | None, registry: SkillRegistry, default_model: str) -> int:
    """
    Register every *.yaml skill under `directory`. Returns how many were loaded.

    A missing directory loads nothing. Files without a name are skipped;
    unparseable files raise ValueError naming the path.
    """
    if not directory:
        return 0
    root = Path(directory)
    if not root.is_dir():
        return 0

    loaded = 0
    for path in sorted(root.rglob("*.yaml")):
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            entry = SkillFile.model_validate(data)
        except (yaml.YAMLError, ValidationError) as exc:
            raise ValueError(f"parse skill yaml {path}: {exc}") from exc
        if not entry.name:
            continue
        registry.register(
            Skill(
                name=entry.name,
                description=entry.description,
                instructions=entry.system_prompt,
                tools=tuple(entry.tools),
                resources=tuple(entry.resources),
                examples=tuple(entry.examples),
                default_model=entry.default_model or default_model,
            )
        )
        loaded += 1
    return loaded
