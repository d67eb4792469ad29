"""
Frontmatter parsing for markdown provider files (skills, notes).
"""
from typing import Optional, Dict, Any, Tuple
import yaml


class FrontmatterParser:
    """Parser for markdown documents with a leading YAML frontmatter block."""

    @staticmethod
    def parse(text: str) -> Tuple[Optional[Dict[str, Any]], str]:
        """
        Parse YAML frontmatter from complete text.

        Args:
            text: Document text that may start with a --- delimited block

        Returns:
            Tuple of (frontmatter dict or None, body without frontmatter)
        """
        if not text.startswith("---"):
            return None, text

        parts = text.split("---", 2)
        if len(parts) < 3:
            return None, text

        try:
            frontmatter = yaml.safe_load(parts[1])
        except yaml.YAMLError:
            return None, text
        if not isinstance(frontmatter, dict):
            return None, text
        return frontmatter, parts[2].lstrip("\n")
