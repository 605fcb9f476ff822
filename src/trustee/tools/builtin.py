"""Built-in workspace tools.

Every path argument is resolved against the workspace root and rejected if it
escapes it.
"""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from trustee.tools.registry import RegisteredTool, ToolRegistry
from trustee_llm.types.tools import ToolDefinition, ToolResult

# --- Tool Definitions (JSON Schema) ---

READ_FILE = ToolDefinition(
    name="read_file",
    description="Read a text file from the workspace. Returns line-numbered content.",
    input_schema={
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "Path relative to the workspace"},
            "offset": {"type": "integer", "description": "1-based line number to start reading from"},
            "limit": {"type": "integer", "description": "Max lines to read (default: 2000)"},
        },
        "required": ["path"],
    },
)

CREATE_FILE = ToolDefinition(
    name="create_file",
    description="Create or overwrite a file with the given content. Parent directories are created.",
    input_schema={
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "Path relative to the workspace"},
            "content": {"type": "string", "description": "The full file content"},
        },
        "required": ["path", "content"],
    },
)

EDIT_FILE = ToolDefinition(
    name="edit_file",
    description="Replace an exact string occurrence in a file.",
    input_schema={
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "Path relative to the workspace"},
            "old_string": {"type": "string", "description": "Exact text to find"},
            "new_string": {"type": "string", "description": "Replacement text"},
            "replace_all": {"type": "boolean", "description": "Replace all occurrences (default: false)"},
        },
        "required": ["path", "old_string", "new_string"],
    },
)

LIST_FILES = ToolDefinition(
    name="list_files",
    description="List workspace files matching a glob pattern.",
    input_schema={
        "type": "object",
        "properties": {
            "pattern": {"type": "string", "description": "Glob pattern (default: '**/*')"},
        },
    },
)

RUN_COMMAND = ToolDefinition(
    name="run_command",
    description="Run a shell command in the workspace. Returns stdout, stderr and exit code.",
    input_schema={
        "type": "object",
        "properties": {
            "command": {"type": "string", "description": "The command to run"},
        },
        "required": ["command"],
    },
)

SUBMIT = ToolDefinition(
    name="submit",
    description="Declare the task finished, with a short summary of what was done.",
    input_schema={
        "type": "object",
        "properties": {
            "summary": {"type": "string", "description": "What was accomplished"},
        },
        "required": ["summary"],
    },
)


class Workspace:
    """Executors for the built-in tools, bound to one root directory."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    def resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if not target.is_relative_to(self.root):
            raise ValueError(f"Path escapes the workspace: {path}")
        return target

    def read_file(self, args: dict[str, Any]) -> str:
        path = self.resolve(args["path"])
        lines = path.read_text(encoding="utf-8").splitlines()
        start = max(int(args.get("offset") or 1), 1)
        limit = int(args.get("limit") or 2000)
        selected = lines[start - 1:start - 1 + limit]
        return "\n".join(f"{start + i:4d} | {line}" for i, line in enumerate(selected))

    def create_file(self, args: dict[str, Any]) -> str:
        path = self.resolve(args["path"])
        content = args["content"]
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return f"Wrote {len(content.encode('utf-8'))} bytes to {args['path']}"

    def edit_file(self, args: dict[str, Any]) -> str:
        path = self.resolve(args["path"])
        old, new = args["old_string"], args["new_string"]
        replace_all = bool(args.get("replace_all", False))

        content = path.read_text(encoding="utf-8")
        count = content.count(old)
        if count == 0:
            raise ValueError(f"old_string not found in {args['path']}")
        if count > 1 and not replace_all:
            raise ValueError(
                f"old_string found {count} times in {args['path']}. "
                "Provide more context to make it unique, or set replace_all=true."
            )

        path.write_text(content.replace(old, new, -1 if replace_all else 1), encoding="utf-8")
        return f"Made {count if replace_all else 1} replacement(s) in {args['path']}"

    def list_files(self, args: dict[str, Any]) -> str:
        pattern = args.get("pattern") or "**/*"
        matches = sorted(
            str(p.relative_to(self.root)) for p in self.root.glob(pattern) if p.is_file()
        )
        return "\n".join(matches) if matches else "No files found."

    async def run_command(self, args: dict[str, Any]) -> ToolResult:
        proc = await asyncio.create_subprocess_shell(
            args["command"],
            cwd=self.root,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await proc.communicate()
        except asyncio.CancelledError:
            # Timeout or session cancellation: do not leave the child running
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise
        return ToolResult(
            tool_call_id="",
            success=proc.returncode == 0,
            content=f"Exit code: {proc.returncode}",
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            error_kind=None if proc.returncode == 0 else "execution_error",
        )

    def submit(self, args: dict[str, Any]) -> str:
        return f"Task submitted: {args.get('summary', '')}".rstrip()


def build_builtin_registry(
    root: str | Path,
    exclude: set[str] | None = None,
) -> ToolRegistry:
    """Registry with the built-in tools bound to the workspace at *root*.

    Args:
        root: Workspace directory.
        exclude: Tool names to skip.
    """
    ws = Workspace(root)
    skip = exclude or set()
    executors = [
        (READ_FILE, ws.read_file),
        (CREATE_FILE, ws.create_file),
        (EDIT_FILE, ws.edit_file),
        (LIST_FILES, ws.list_files),
        (RUN_COMMAND, ws.run_command),
        (SUBMIT, ws.submit),
    ]
    registry = ToolRegistry()
    for definition, executor in executors:
        if definition.name not in skip:
            registry.register(RegisteredTool(definition=definition, executor=executor))
    return registry
