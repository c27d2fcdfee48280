"""Extract files from fenced code blocks in agent output."""

import re
from typing import Dict, Iterable, List

from modelrelay.agent.schemas import CodeFile

# ```lang file="path"  ...  ```
FENCED_BLOCK = re.compile(r"```([^\n`]*)\n(.*?)```", re.DOTALL)
FILE_ATTRIBUTE = re.compile(r"""file\s*=\s*["']([^"']+)["']""")

LANGUAGE_EXTENSIONS: Dict[str, str] = {
    "typescript": "ts",
    "ts": "ts",
    "tsx": "tsx",
    "javascript": "js",
    "js": "js",
    "jsx": "jsx",
    "python": "py",
    "py": "py",
    "css": "css",
    "html": "html",
    "json": "json",
    "markdown": "md",
    "md": "md",
    "bash": "sh",
    "sh": "sh",
    "shell": "sh",
    "sql": "sql",
    "yaml": "yaml",
    "yml": "yaml",
}


def extension_for(language: str) -> str:
    return LANGUAGE_EXTENSIONS.get(language.lower(), "txt")


def parse_code_files(text: str) -> List[CodeFile]:
    """Return one CodeFile per fenced block, in document order.

    The path comes from a ``file="..."`` attribute on the fence line. Blocks
    without one are named ``file-1.<ext>``, ``file-2.<ext>`` and so on,
    counting only unnamed blocks.
    """
    files: List[CodeFile] = []
    unnamed = 0
    for match in FENCED_BLOCK.finditer(text or ""):
        info, body = match.group(1).strip(), match.group(2)
        language = info.split()[0] if info else "text"
        if language.startswith("file="):
            language = "text"

        attribute = FILE_ATTRIBUTE.search(info)
        if attribute:
            path = attribute.group(1).strip()
        else:
            unnamed += 1
            path = f"file-{unnamed}.{extension_for(language)}"

        files.append(CodeFile(path=path, language=language, content=body.rstrip("\n")))
    return files


def merge_code_files(*groups: Iterable[CodeFile]) -> List[CodeFile]:
    """Merge file lists; a later file replaces an earlier one with the same path."""
    merged: Dict[str, CodeFile] = {}
    for group in groups:
        for code_file in group:
            merged[code_file.path] = code_file
    return list(merged.values())
