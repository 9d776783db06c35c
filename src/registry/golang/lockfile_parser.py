"""Lockfile parsers for Go modules (go.mod, go.sum).

go.mod is preferred because it names the version the build selects; go.sum
can list several historical versions of one module. Versions are returned
exactly as written (``v1.9.1``); tag prefix handling happens at fetch time.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

from common.errors import LockfileParseError, PackageNotFound
from registry.lockfile_io import read_lines
from versioning.models import Exact, LocalPath, ResolvedVersion

logger = logging.getLogger(__name__)

LOCKFILES = ("go.mod", "go.sum")


def normalize_module_path(path: str) -> str:
    """Module paths are case-sensitive in Go; keys are lowercased for matching."""
    return path.strip().lower()


def _strip_comment(line: str) -> str:
    return line.split("//", 1)[0].strip()


def _go_mod_directives(path: Path) -> Iterable[Tuple[int, str, str]]:
    """Yield (line number, directive, body) with ``require ( ... )`` blocks flattened."""
    block: Optional[str] = None
    block_start = 0
    for number, raw in enumerate(read_lines(path), start=1):
        line = _strip_comment(raw)
        if not line:
            continue
        if block is not None:
            if line == ")":
                block = None
                continue
            yield number, block, line
            continue
        directive, _, rest = line.partition(" ")
        rest = rest.strip()
        if rest == "(":
            block = directive
            block_start = number
            continue
        yield number, directive, rest
    if block is not None:
        raise LockfileParseError(str(path), f"unterminated '{block} (' block", f"line {block_start}")


def parse_go_mod(path: Path, package: str) -> ResolvedVersion:
    """Find a module in go.mod ``require`` directives.

    A ``replace`` pointing at a filesystem path makes the module LocalPath.
    """
    wanted = normalize_module_path(package)
    required: Dict[str, str] = {}
    local_replacements: Dict[str, str] = {}
    for number, directive, body in _go_mod_directives(path):
        if directive == "require":
            parts = body.split()
            if len(parts) < 2:
                raise LockfileParseError(str(path), f"malformed require '{body}'", f"line {number}")
            required.setdefault(normalize_module_path(parts[0].strip('"')), parts[1])
        elif directive == "replace":
            old, arrow, new = body.partition("=>")
            if not arrow:
                raise LockfileParseError(str(path), f"malformed replace '{body}'", f"line {number}")
            old_module = normalize_module_path(old.split()[0].strip('"')) if old.split() else ""
            target = new.split()[0] if new.split() else ""
            if target.startswith(("./", "../", "/")) or target in (".", ".."):
                local_replacements[old_module] = target
            elif target:
                logger.debug("go.mod replaces %s with module %s; using the original path", old_module, target)

    if wanted in local_replacements:
        return LocalPath(local_replacements[wanted])
    if wanted in required:
        return Exact(required[wanted])
    raise PackageNotFound(package, str(path))


def parse_go_sum(path: Path, package: str) -> ResolvedVersion:
    """Find a module in go.sum (``<module> <version>[/go.mod] <hash>``)."""
    wanted = normalize_module_path(package)
    for number, raw in enumerate(read_lines(path), start=1):
        line = raw.strip()
        if not line or line.startswith("//"):
            continue
        parts = line.split()
        if len(parts) != 3:
            raise LockfileParseError(str(path), "expected '<module> <version> <hash>'", f"line {number}")
        module, version = parts[0], parts[1]
        if version.endswith("/go.mod"):
            version = version[: -len("/go.mod")]
        if normalize_module_path(module) == wanted:
            return Exact(version)
    raise PackageNotFound(package, str(path))


PARSERS = {
    "go.mod": parse_go_mod,
    "go.sum": parse_go_sum,
}


def find_version(lockfile: Path, package: str) -> ResolvedVersion:
    """Dispatch to the parser for ``lockfile`` by its file name."""
    return PARSERS[lockfile.name](lockfile, package)
