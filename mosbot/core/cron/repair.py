"""Lenient JSON repair for documents written by other processes.

Other writers sometimes embed multi-line text (typically a fenced code
block) into a JSON string without escaping it, leaving literal newlines and
bare double quotes inside string values. Each pass below is followed by a
strict parse; the first one that parses wins.
"""

from __future__ import annotations

import json
import re
from typing import Any

from mosbot.core.errors import CorruptedDocument

# literal-newline + ```lang + literal-newline + body + literal-newline + ``` + literal-newline
_FENCED_BLOCK = re.compile(r"\n(```[a-z]*)\n(.*?)\n(```)\n", re.DOTALL)


def _parses(text: str) -> bool:
    try:
        json.loads(text)
    except ValueError:
        return False
    return True


def _escape_fenced_block(match: re.Match) -> str:
    opening, body, closing = match.groups()
    body = (
        body.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )
    return f"\\n{opening}\\n{body}\\n{closing}\\n"


def escape_fenced_blocks(text: str) -> str:
    return _FENCED_BLOCK.sub(_escape_fenced_block, text)


def escape_bare_newlines(text: str) -> str:
    """Escape raw CR/LF found inside string literals, honoring backslash escapes."""
    out: list[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if escaped:
            out.append(ch)
            escaped = False
        elif ch == "\\" and in_string:
            out.append(ch)
            escaped = True
        elif ch == '"':
            out.append(ch)
            in_string = not in_string
        elif in_string and ch == "\n":
            out.append("\\n")
        elif in_string and ch == "\r":
            out.append("\\r")
        else:
            out.append(ch)
    return "".join(out)


def repair_json_text(text: str) -> str:
    """Return text that strict-parses; unchanged when it already does.

    Raises CorruptedDocument when no pass produces valid JSON.
    """
    if _parses(text):
        return text

    fixed = escape_fenced_blocks(text)
    if _parses(fixed):
        return fixed

    sanitized = escape_bare_newlines(fixed)
    try:
        json.loads(sanitized)
    except ValueError as e:
        raise CorruptedDocument(f"Document is not valid JSON after repair: {e}") from e
    return sanitized


def parse_lenient(text: str) -> Any:
    """Strict parse with the repair passes as fallback."""
    return json.loads(repair_json_text(text))
