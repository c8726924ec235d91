"""
YAML/JSON encoding of semantic layer dumps.

Dumps are written in YAML by default; imports accept YAML or JSON and can
sniff the format from the content.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import yaml

__all__ = [
    "OUTPUT_FORMATS",
    "INPUT_FORMATS",
    "detect_format",
    "parse_payload",
    "format_payload",
    "read_payload_file",
    "write_payload_file",
    "parse_json_option",
]

OUTPUT_FORMATS = ("yaml", "json")
INPUT_FORMATS = ("auto",) + OUTPUT_FORMATS


def detect_format(content: str) -> str:
    """JSON if the document starts with '{', YAML otherwise."""
    return "json" if content.strip().startswith("{") else "yaml"


def parse_payload(content: str, fmt: str = "auto") -> Any:
    """
    Parse a dump document.

    Args:
        content: Document text
        fmt: "auto", "yaml" or "json"

    Returns:
        Parsed document

    Raises:
        ValueError: If the format is unknown or the document does not parse
    """
    if fmt not in INPUT_FORMATS:
        raise ValueError(f"Invalid format '{fmt}'. Use one of: {', '.join(INPUT_FORMATS)}")
    if fmt == "auto":
        fmt = detect_format(content)

    try:
        if fmt == "json":
            return json.loads(content)
        return yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ValueError(f"Failed to parse {fmt} input: {e}") from e


def format_payload(data: Any, fmt: str = "yaml") -> str:
    """Encode a dump as YAML or JSON text."""
    if fmt == "json":
        return json.dumps(data, indent=2)
    if fmt == "yaml":
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)
    raise ValueError(f"Invalid format '{fmt}'. Use one of: {', '.join(OUTPUT_FORMATS)}")


def read_payload_file(path: str | Path, fmt: str = "auto") -> Any:
    """
    Read and parse a dump file.

    Raises:
        ValueError: If the file does not exist or cannot be parsed
    """
    path = Path(path)
    if not path.is_file():
        raise ValueError(f"File not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        content = f.read()
    return parse_payload(content, fmt)


def write_payload_file(data: Any, path: str | Path, fmt: str = "yaml") -> Path:
    """Write a dump to path, creating parent directories as needed."""
    path = Path(path)
    text = format_payload(data, fmt)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    return path


def parse_json_option(value: Optional[str], name: str) -> Any:
    """
    Parse a JSON-valued command line option.

    Returns None for a missing option so callers can apply their default.
    """
    if value is None or not value.strip():
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise ValueError(f"Option '{name}' is not valid JSON: {e}") from e
