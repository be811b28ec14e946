# projects.py
# Projects: YAML-defined scopes layered over a skill.
#
# A project prepends its own system prompt to the skill's instructions,
# replaces the skill's permitted tools when it names any, and can pin the
# model. It may also restrict which skills run under it.

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError

from skill_agent.models import Skill


class ProjectNotFoundError(Exception):
    """Raised when a project id is not among the loaded definitions."""


class ProjectSkillError(Exception):
    """Raised when a skill is used under a project that does not allow it."""


class Project(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    system_prompt: str = ""
    tools: tuple[str, ...] = ()
    skills: tuple[str, ...] = ()
    default_model: str = ""
    owner_user_id: str = ""

    def allows_skill(self, name: str) -> bool:
        return not self.skills or name in self.skills

    def scope(self, skill: Skill) -> Skill:
        """
        Return a copy of `skill` shaped by this project.

        Raises ProjectSkillError when the project lists skills and this one
        is not among them.
        """
        if not self.allows_skill(skill.name):
            raise ProjectSkillError(f"skill {skill.name} is not enabled in project {self.id}")

        update: dict = {}
        if self.system_prompt:
            update["instructions"] = f"{self.system_prompt}\n\n{skill.instructions}"
        if self.tools:
            update["tools"] = self.tools
        if self.default_model:
            update["default_model"] = self.default_model
        return skill.model_copy(update=update)


def load_projects_dir(directory: str | Path | None) -> dict[str, Project]:
    """
    Read every *.yaml project under `directory`, keyed by id.

    A file without an id takes its stem as the id. A missing directory yields
    nothing; a malformed file raises ValueError naming the path.
    """
    if not directory:
        return {}
    root = Path(directory)
    if not root.is_dir():
        return {}

    projects: dict[str, Project] = {}
    for path in sorted(root.rglob("*.yaml")):
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            if not isinstance(data, dict):
                raise ValueError("expected a mapping")
            if not data.get("id"):
                data["id"] = path.stem
            project = Project.model_validate(data)
        except (yaml.YAMLError, ValidationError, ValueError) as exc:
            raise ValueError(f"parse project yaml {path}: {exc}") from exc
        projects[project.id] = project
    return projects


def get_project(projects: dict[str, Project], project_id: str) -> Project:
    try:
        return projects[project_id]
    except KeyError:
        raise ProjectNotFoundError(f"project not found: {project_id}") from None
