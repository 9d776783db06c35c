"""Readers shared by the lockfile parsers.

Each reader turns format errors into ``LockfileParseError`` carrying the file
and, where the underlying parser reports one, the line/column.
"""

from __future__ import annotations

import json
import logging
import re
import tomllib
from pathlib import Path
from typing import Any, List, Optional

import yaml

from common.errors import LockfileParseError

logger = logging.getLogger(__name__)

_TOML_LOCATION_RE = re.compile(r"\(at line (\d+), column (\d+)\)")


def _location(line: Optional[int], column: Optional[int] = None) -> Optional[str]:
    if line is None:
        return None
    if column is None:
        return f"line {line}"
    return f"line {line}, column {column}"


def read_text(path: Path) -> str:
    """Read a lockfile as UTF-8 text."""
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise LockfileParseError(str(path), f"not valid UTF-8 ({e.reason})") from e
    except OSError as e:
        raise LockfileParseError(str(path), f"cannot read file: {e.strerror or e}") from e


def read_lines(path: Path) -> List[str]:
    """Read a lockfile as a list of lines without trailing newlines."""
    return read_text(path).splitlines()


def load_toml(path: Path) -> dict:
    """Parse a TOML lockfile."""
    text = read_text(path)
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        message = str(e)
        match = _TOML_LOCATION_RE.search(message)
        location = _location(int(match.group(1)), int(match.group(2))) if match else None
        detail = _TOML_LOCATION_RE.sub("", message).strip() or "invalid TOML"
        raise LockfileParseError(str(path), detail, location) from e


def load_json(path: Path) -> Any:
    """Parse a JSON lockfile."""
    text = read_text(path)
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise LockfileParseError(str(path), e.msg, _location(e.lineno, e.colno)) from e


def load_yaml(path: Path) -> Any:
    """Parse a YAML lockfile with ``yaml.safe_load``."""
    text = read_text(path)
    try:
        return yaml.safe_load(text)
    except yaml.MarkedYAMLError as e:
        mark = e.problem_mark
        location = _location(mark.line + 1, mark.column + 1) if mark else None
        raise LockfileParseError(str(path), e.problem or "invalid YAML", location) from e
    except yaml.YAMLError as e:
        raise LockfileParseError(str(path), str(e)) from e


def expect_mapping(data: Any, path: Path, what: str = "top level") -> dict:
    """Return ``data`` if it is a mapping, otherwise raise a parse error."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise LockfileParseError(str(path), f"{what} must be a mapping, got {type(data).__name__}")
    return data
