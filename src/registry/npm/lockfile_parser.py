"""Lockfile parsers for the npm ecosystem (pnpm-lock.yaml, yarn.lock, package-lock.json).

Each parser locates one package and reports how it is pinned. Names are
compared lowercase; scoped names (``@scope/pkg``) are matched whole.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from common.errors import LockfileParseError, PackageNotFound
from registry.lockfile_io import expect_mapping, load_json, load_yaml, read_lines
from repository.url_normalize import looks_like_git_source, split_git_source
from versioning.models import Exact, GitCommit, LocalPath, ResolvedVersion

logger = logging.getLogger(__name__)

LOCKFILES = ("pnpm-lock.yaml", "yarn.lock", "package-lock.json")

_LOCAL_PREFIXES = ("link:", "file:", "portal:", "workspace:")
_PNPM_PEER_RE = re.compile(r"\(.*\)$")
# pnpm < 9 records git dependencies as host/org/repo/<sha>
_PNPM_HOSTED_GIT_RE = re.compile(r"^(github\.com|gitlab\.com|bitbucket\.org)/([^/]+)/([^/]+)/([0-9a-f]{7,40})$")


def normalize_node_name(name: str) -> str:
    """npm names are lowercased for every cache and lookup key."""
    return name.strip().lower()


def split_spec(spec: str) -> Tuple[str, str]:
    """Split ``name@range`` (scope-aware) into (name, range)."""
    spec = spec.strip().strip('"').strip("'")
    idx = spec.find("@", 1)
    if idx == -1:
        return spec, ""
    return spec[:idx], spec[idx + 1:]


def parse_version_string(value: str) -> ResolvedVersion:
    """Classify a lockfile version field as a local path, a git source, or a version."""
    value = value.strip()
    if value.startswith(_LOCAL_PREFIXES):
        return LocalPath(value.split(":", 1)[1])
    hosted = _PNPM_HOSTED_GIT_RE.match(value)
    if hosted:
        host, org, repo, sha = hosted.groups()
        return GitCommit(url=f"https://{host}/{org}/{repo}.git", commit=sha)
    if looks_like_git_source(value):
        url, commit = split_git_source(value)
        return GitCommit(url=url, commit=commit)
    return Exact(value)


# ---------------------------------------------------------------- pnpm


def _strip_pnpm_peers(version: str) -> str:
    version = _PNPM_PEER_RE.sub("", version)
    # pnpm v5 appended peers with an underscore: 1.0.0_react@18.0.0
    if "_" in version and version[:1].isdigit():
        version = version.split("_", 1)[0]
    return version


def parse_pnpm_package_key(key: str) -> Optional[Tuple[str, str]]:
    """Parse a ``packages:`` key into (name, version).

    Handles ``lodash@4.17.21`` (v9), ``/lodash@4.17.21`` (v6) and
    ``/lodash/4.17.21`` (v5), with or without a scope.
    """
    key = _PNPM_PEER_RE.sub("", key.strip().lstrip("/"))
    idx = key.find("@", 1)
    if idx != -1:
        name = key[:idx]
        if name.count("/") == (1 if name.startswith("@") else 0):
            return name, _strip_pnpm_peers(key[idx + 1:])
    if "/" not in key:
        return None
    name, version = key.rsplit("/", 1)
    if not name or name.startswith("@") and "/" not in name:
        return None
    return name, _strip_pnpm_peers(version)


def _pnpm_direct_dependencies(data: Dict[str, Any]) -> Iterable[Tuple[str, Any]]:
    sections = ("dependencies", "devDependencies", "optionalDependencies")
    importers = data.get("importers")
    scopes: List[Dict[str, Any]] = []
    if isinstance(importers, dict):
        scopes.extend(v for v in importers.values() if isinstance(v, dict))
    scopes.append(data)
    for scope in scopes:
        for section in sections:
            deps = scope.get(section)
            if isinstance(deps, dict):
                yield from deps.items()


def parse_pnpm_lock(path: Path, package: str) -> ResolvedVersion:
    """Find a package in pnpm-lock.yaml (lockfile versions 5 through 9)."""
    data = expect_mapping(load_yaml(path), path)
    wanted = normalize_node_name(package)

    for name, entry in _pnpm_direct_dependencies(data):
        if normalize_node_name(str(name)) != wanted:
            continue
        version = entry.get("version") if isinstance(entry, dict) else entry
        if isinstance(version, str) and version:
            return parse_version_string(_strip_pnpm_peers(version))

    packages = data.get("packages") or {}
    if not isinstance(packages, dict):
        raise LockfileParseError(str(path), "'packages' must be a mapping")
    for key, entry in packages.items():
        entry = entry if isinstance(entry, dict) else {}
        resolution = entry.get("resolution") if isinstance(entry.get("resolution"), dict) else {}
        parsed = parse_pnpm_package_key(str(key))
        name = entry.get("name") or (parsed[0] if parsed else None)
        if not name or normalize_node_name(str(name)) != wanted:
            continue
        if resolution.get("type") == "git" and resolution.get("repo"):
            url, _ = split_git_source(resolution["repo"])
            return GitCommit(url=url, commit=resolution.get("commit") or "HEAD")
        if resolution.get("type") == "directory" and resolution.get("directory"):
            return LocalPath(resolution["directory"])
        version = entry.get("version") or (parsed[1] if parsed else None)
        if version:
            return parse_version_string(str(version))
    raise PackageNotFound(package, str(path))


# ---------------------------------------------------------------- yarn


def parse_yarn_header(line: str) -> List[str]:
    """Split an entry header (``"a@^1", a@^1.1:``) into its specs."""
    return [spec.strip().strip('"').strip("'") for spec in line.rstrip().rstrip(":").split(",") if spec.strip()]


def _yarn_field(line: str) -> Tuple[str, str]:
    """Parse an indented ``key "value"`` (v1) or ``key: value`` (berry) line."""
    stripped = line.strip()
    match = re.match(r'^("?)([^\s":]+)\1:?\s+(.*)$', stripped)
    if not match:
        return stripped.rstrip(":"), ""
    value = match.group(3).strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        value = value[1:-1]
    return match.group(2), value


def parse_yarn_lock(path: Path, package: str) -> ResolvedVersion:
    """Find a package in yarn.lock (classic v1 and berry v2+ formats)."""
    lines = read_lines(path)
    wanted = normalize_node_name(package)
    current_specs: List[str] = []
    header_line = 0
    fields: Dict[str, str] = {}

    def _finish() -> Optional[ResolvedVersion]:
        if not current_specs:
            return None
        ranges = [split_spec(s)[1] for s in current_specs]
        if "version" not in fields:
            raise LockfileParseError(str(path), f"entry {current_specs[0]} has no version", f"line {header_line}")
        resolved = fields.get("resolved") or ""
        resolution = fields.get("resolution") or ""
        if resolution:
            resolution = split_spec(resolution)[1]
        for candidate in (resolution, resolved, *ranges):
            if candidate.startswith(_LOCAL_PREFIXES):
                return LocalPath(candidate.split(":", 1)[1].split("::", 1)[0])
        for candidate in (resolution, resolved, *ranges):
            if candidate and looks_like_git_source(candidate):
                url, commit = split_git_source(candidate)
                return GitCommit(url=url, commit=commit)
        return Exact(fields["version"])

    for number, line in enumerate(lines, start=1):
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        if not line[0].isspace():
            found = _finish()
            if found is not None:
                return found
            if not line.rstrip().endswith(":"):
                raise LockfileParseError(str(path), f"unexpected line {line.strip()!r}", f"line {number}")
            specs = parse_yarn_header(line)
            current_specs = [s for s in specs if normalize_node_name(split_spec(s)[0]) == wanted]
            header_line = number
            fields = {}
            continue
        if current_specs and line.startswith("  ") and not line.startswith("    "):
            key, value = _yarn_field(line)
            if key in ("version", "resolved", "resolution"):
                if not value:
                    raise LockfileParseError(str(path), f"empty '{key}' field", f"line {number}")
                fields[key] = value
    found = _finish()
    if found is not None:
        return found
    raise PackageNotFound(package, str(path))


# ---------------------------------------------------------------- package-lock


def _from_package_lock_entry(entry: Dict[str, Any]) -> Optional[ResolvedVersion]:
    if entry.get("link"):
        return LocalPath(entry.get("resolved"))
    resolved = entry.get("resolved")
    version = entry.get("version")
    if isinstance(resolved, str):
        if resolved.startswith("file:"):
            return LocalPath(resolved[len("file:"):])
        if looks_like_git_source(resolved):
            url, commit = split_git_source(resolved)
            return GitCommit(url=url, commit=commit)
    if isinstance(version, str) and version:
        return parse_version_string(version)
    return None


def _package_lock_key_name(key: str) -> Optional[str]:
    marker = "node_modules/"
    idx = key.rfind(marker)
    if idx == -1:
        return None
    return key[idx + len(marker):]


def _search_v1_dependencies(deps: Any, wanted: str) -> Optional[ResolvedVersion]:
    if not isinstance(deps, dict):
        return None
    nested: List[Any] = []
    for name, entry in deps.items():
        if not isinstance(entry, dict):
            continue
        if normalize_node_name(name) == wanted:
            resolved = _from_package_lock_entry(entry)
            if resolved is not None:
                return resolved
        if "dependencies" in entry:
            nested.append(entry["dependencies"])
    for child in nested:
        found = _search_v1_dependencies(child, wanted)
        if found is not None:
            return found
    return None


def parse_package_lock(path: Path, package: str) -> ResolvedVersion:
    """Find a package in package-lock.json.

    Supports lockfileVersion 1, 2, and 3. For v2/v3 the top-level
    ``node_modules/<name>`` entry wins over nested copies.
    """
    data = expect_mapping(load_json(path), path)
    wanted = normalize_node_name(package)

    packages = data.get("packages")
    if isinstance(packages, dict):
        nested_match: Optional[ResolvedVersion] = None
        for key, entry in packages.items():
            if not key or not isinstance(entry, dict):
                continue
            name = _package_lock_key_name(key)
            if name is None:
                # workspace member stored under its source directory
                if normalize_node_name(str(entry.get("name", ""))) == wanted:
                    return LocalPath(key)
                continue
            if normalize_node_name(name) != wanted:
                continue
            resolved = _from_package_lock_entry(entry)
            if resolved is None:
                continue
            if key == f"node_modules/{name}":
                return resolved
            if nested_match is None:
                nested_match = resolved
        if nested_match is not None:
            return nested_match

    found = _search_v1_dependencies(data.get("dependencies"), wanted)
    if found is not None:
        return found
    raise PackageNotFound(package, str(path))


PARSERS = {
    "pnpm-lock.yaml": parse_pnpm_lock,
    "yarn.lock": parse_yarn_lock,
    "package-lock.json": parse_package_lock,
}


def find_version(lockfile: Path, package: str) -> ResolvedVersion:
    """Dispatch to the parser for ``lockfile`` by its file name."""
    return PARSERS[lockfile.name](lockfile, package)
