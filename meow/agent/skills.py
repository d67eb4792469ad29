"""
Defines the SkillLoader class for loading skills from markdown files.

Structure:
data_dir/
  skills/
    skill_name.md     YAML frontmatter (name, description, tools, schedule) + body
"""
from pathlib import Path
from typing import List, Optional, Union

from meow.utils.frontmatter import FrontmatterParser
from meow.utils.logging import log_debug


class Skill:
    """Represents a skill with its metadata and instructions."""
    def __init__(self,
                 name: str,
                 description: str,
                 body: str,
                 path: str,
                 tools: Optional[List[str]] = None,
                 schedule: Optional[str] = None):
        self.name = name
        self.description = description
        self.body = body
        self.path = path
        self.tools = tools
        self.schedule = schedule


class SkillLoader:
    """
    Loads skills from the skills/ directory of the data dir.

    Files without frontmatter or without a name are skipped.
    """
    def __init__(self, data_dir: Union[str, Path]):
        self.skills_directory = Path(data_dir) / "skills"

    def load_skill(self, skill_file: Path) -> Optional[Skill]:
        """
        Loads a single skill from a markdown file.

        Args:
            skill_file: Path to the skill file

        Returns:
            Skill object if successfully loaded, None otherwise
        """
        try:
            raw = skill_file.read_text(encoding="utf-8")
        except OSError:
            return None

        meta, body = FrontmatterParser.parse(raw)
        if not meta or not meta.get("name"):
            log_debug(f"Skipping skill file without a name: {skill_file}")
            return None

        tools = meta.get("tools")
        if isinstance(tools, str):
            tools = [t.strip() for t in tools.strip("[]").split(",") if t.strip()]
        schedule = meta.get("schedule")

        return Skill(
            name=str(meta["name"]),
            description=str(meta.get("description") or ""),
            body=body.strip(),
            path=str(skill_file),
            tools=tools if isinstance(tools, list) else None,
            schedule=str(schedule) if schedule else None,
        )

    def load_all(self) -> List[Skill]:
        """Load every skill file, in file name order."""
        if not self.skills_directory.is_dir():
            return []

        skills = []
        for skill_file in sorted(self.skills_directory.glob("*.md")):
            skill = self.load_skill(skill_file)
            if skill:
                skills.append(skill)
        return skills

    def build_context(self, skills: List[Skill]) -> str:
        if not skills:
            return ""
        return "\n\n---\n\n".join(
            f"### {s.name}\n{s.description}\n\n{s.body}" for s in skills
        )
