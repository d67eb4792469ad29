"""file_read / file_write tools, scoped to the data directory."""

from pathlib import Path
from typing import Any, Dict, List, Optional

from meow.memory.sections import is_long_term_file, merge_memory
from meow.memory.store import MemoryStore
from meow.tools.registry import Tool
from meow.utils.logging import log_info

_PATH_PARAM = {"type": "string", "description": "Relative path within the data/ directory"}


def resolve_in_data_dir(data_dir: Path, path: str) -> Optional[Path]:
    """Resolve a relative path, or None if it escapes the data directory."""
    root = data_dir.resolve()
    full = (root / path).resolve()
    if full != root and root not in full.parents:
        return None
    return full


def create_file_tools(data_dir: Path, memory: MemoryStore) -> List[Tool]:
    """Build the file tools. Writes under the memory root are reindexed immediately."""

    def file_read(path: str) -> Dict[str, Any]:
        full = resolve_in_data_dir(data_dir, path)
        if full is None:
            return {"exists": False, "content": "", "error": "Path outside data/"}
        try:
            return {"exists": True, "content": full.read_text(encoding="utf-8")}
        except OSError:
            return {"exists": False, "content": "", "error": "File not found"}

    def file_write(path: str, content: str) -> Dict[str, Any]:
        full = resolve_in_data_dir(data_dir, path)
        if full is None:
            return {"success": False, "path": "", "error": "Path outside data/"}
        try:
            full.parent.mkdir(parents=True, exist_ok=True)
            if is_long_term_file(path) and full.exists():
                content = merge_memory(full.read_text(encoding="utf-8"), content)
            full.write_text(content, encoding="utf-8")
        except OSError as e:
            return {"success": False, "path": str(full), "error": str(e)}

        log_info(f"file_written path={full} chars={len(content)}")
        rel_path = memory.relative_path(full)
        if rel_path is not None:
            memory.on_file_changed(rel_path)
        return {"success": True, "path": str(full)}

    return [
        Tool(
            name="file_read",
            description="Read a file from the data/ directory",
            parameters={
                "type": "object",
                "properties": {"path": _PATH_PARAM},
                "required": ["path"],
            },
            execute=file_read,
        ),
        Tool(
            name="file_write",
            description=(
                "Write content to a file in the data/ directory. "
                "For MEMORY.md, content is merged with existing sections automatically."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "path": _PATH_PARAM,
                    "content": {"type": "string", "description": "Content to write"},
                },
                "required": ["path", "content"],
            },
            execute=file_write,
        ),
    ]
