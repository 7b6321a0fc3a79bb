"""Reading and writing JSON-with-comments configuration documents."""
import json
import logging
from pathlib import Path
from typing import Any, Dict

from .errors import MalformedConfigFile

logger = logging.getLogger(__name__)

INDENT = 4


def strip_comments(text: str) -> str:
    """Remove // and /* */ comments from JSON-with-comments text.

    String literals are copied verbatim, including any comment markers and
    escaped quotes inside them. The newline that ends a line comment is kept,
    block comment delimiters are dropped.

    Args:
        text: JSON text that may contain comments

    Returns:
        Text suitable for json.loads
    """
    result = []
    in_string = False
    in_line_comment = False
    in_block_comment = False
    escaped = False

    i = 0
    length = len(text)
    while i < length:
        char = text[i]
        next_char = text[i + 1] if i + 1 < length else ""

        if escaped:
            result.append(char)
            escaped = False
            i += 1
            continue

        if char == "\\" and in_string:
            escaped = True
            result.append(char)
            i += 1
            continue

        if char == '"' and not in_line_comment and not in_block_comment:
            in_string = not in_string
            result.append(char)
            i += 1
            continue

        if in_string:
            result.append(char)
            i += 1
            continue

        if in_line_comment:
            if char in ("\n", "\r"):
                in_line_comment = False
                result.append(char)
            i += 1
            continue

        if in_block_comment:
            if char == "*" and next_char == "/":
                in_block_comment = False
                i += 2
            else:
                i += 1
            continue

        if char == "/" and next_char == "/":
            in_line_comment = True
            i += 2
            continue

        if char == "/" and next_char == "*":
            in_block_comment = True
            i += 2
            continue

        result.append(char)
        i += 1

    return "".join(result)


def parse(text: str, source: Path) -> Dict[str, Any]:
    """Parse JSON-with-comments text into a top-level object.

    Raises:
        MalformedConfigFile: if the stripped text is not a JSON object
    """
    try:
        data = json.loads(strip_comments(text))
    except json.JSONDecodeError as e:
        raise MalformedConfigFile(source, str(e)) from e

    if not isinstance(data, dict):
        raise MalformedConfigFile(source, f"expected an object at top level, got {type(data).__name__}")
    return data


def load_document(path: Path) -> Dict[str, Any]:
    """Load a configuration document from disk.

    Args:
        path: Path to a launch.json or tasks.json style file

    Returns:
        The decoded top-level object

    Raises:
        FileNotFoundError: if the file does not exist
        MalformedConfigFile: if the file cannot be decoded
    """
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise MalformedConfigFile(path, str(e)) from e
    return parse(text, path)


def dump_document(path: Path, document: Dict[str, Any]) -> None:
    """Write a document as plain JSON. Comments in the previous file are lost."""
    path.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(document, indent=INDENT, ensure_ascii=False)
    path.write_text(content, encoding="utf-8")
    logger.debug("Wrote %s", path)
