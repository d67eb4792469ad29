"""Section-level merge for the long-term memory file.

A write to MEMORY.md never replaces the whole document: both documents are
parsed into heading -> body sections, new sections override same-named
existing ones, and untouched sections are carried over in place.
"""

from __future__ import annotations

import re

PREAMBLE = "__preamble__"

_HEADING_RE = re.compile(r"^#{1,3}\s")


def parse_sections(content: str) -> dict[str, str]:
    """Parse markdown into an ordered mapping of heading line -> body.

    Content before the first heading is stored under PREAMBLE, and only
    when it is not blank.
    """
    sections: dict[str, str] = {}
    heading = PREAMBLE
    body: list[str] = []

    for line in content.split("\n"):
        if _HEADING_RE.match(line):
            text = "\n".join(body).strip()
            if text or heading != PREAMBLE:
                sections[heading] = text
            heading = line
            body = []
        else:
            body.append(line)

    text = "\n".join(body).strip()
    if text or heading != PREAMBLE:
        sections[heading] = text
    return sections


def render_sections(sections: dict[str, str]) -> str:
    parts: list[str] = []
    for heading, body in sections.items():
        if heading == PREAMBLE:
            parts.append(body)
        elif body:
            parts.append(f"{heading}\n{body}")
        else:
            parts.append(heading)
    return "\n\n".join(parts).strip() + "\n"


def merge_memory(existing: str, new_content: str) -> str:
    """Merge new long-term memory content into the existing document."""
    if not existing.strip():
        return new_content

    merged = parse_sections(existing)
    for heading, body in parse_sections(new_content).items():
        merged[heading] = body
    return render_sections(merged)


def is_long_term_file(path: str) -> bool:
    """Whether a path targets the long-term memory file (MEMORY.md)."""
    return path.replace("\\", "/").rsplit("/", 1)[-1].lower() == "memory.md"
