"""Lockfile parsers for the Python ecosystem.

Supported files, in lookup priority order: poetry.lock, uv.lock,
requirements.txt and pyproject.toml. Every parser answers one question: which
version (or git commit, or local path) does this file pin for a package?
Names are compared in PEP 503 canonical form, so ``Requests``,
``requests`` and ``re_quests`` style spellings all match.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import requirements
from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name

from common.errors import LockfileParseError, PackageNotFound
from registry.lockfile_io import expect_mapping, load_toml, read_lines
from repository.url_normalize import split_git_source
from versioning.models import Exact, GitCommit, LocalPath, ResolvedVersion

logger = logging.getLogger(__name__)

LOCKFILES = ("poetry.lock", "uv.lock", "requirements.txt", "pyproject.toml")

_CONSTRAINT_PREFIXES = ("===", "==", ">=", "<=", "~=", "!=", "^", "~", ">", "<", "=")
_PEP508_URL_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*\s*(\[[^\]]*\])?\s*@\s*\S")


def normalize_python_name(name: str) -> str:
    """Return the PEP 503 canonical form of a distribution name."""
    return canonicalize_name(name)


def strip_version_constraint(constraint: str) -> str:
    """Reduce a poetry-style constraint to its first bare version.

    ``^2.31.0`` -> ``2.31.0``; ``>=2.0,<3.0`` -> ``2.0``.
    """
    first = constraint.split(",", 1)[0].strip()
    for prefix in _CONSTRAINT_PREFIXES:
        if first.startswith(prefix):
            return first[len(prefix):].strip()
    return first


def split_pip_vcs_url(url: str) -> GitCommit:
    """Split ``git+https://host/org/repo.git@rev#egg=x`` into a GitCommit."""
    base = url.split("#", 1)[0]
    scheme, sep, rest = base.partition("://")
    netloc, slash, path = rest.partition("/")
    revision = "HEAD"
    if "@" in path:
        path, revision = path.rsplit("@", 1)
    clean, _ = split_git_source(f"{scheme}{sep}{netloc}{slash}{path}")
    return GitCommit(url=clean, commit=revision or "HEAD")


def _from_pep508(req: Requirement) -> Optional[ResolvedVersion]:
    """Map a PEP 508 requirement to a resolved version, or None if unpinned."""
    if req.url:
        if req.url.startswith("git+"):
            return split_pip_vcs_url(req.url)
        if req.url.startswith("file:"):
            return LocalPath(req.url)
        return None
    for spec in req.specifier:
        if spec.operator in ("==", "===") and "*" not in spec.version:
            return Exact(spec.version)
    return None


def _lock_packages(data: Dict[str, Any], path: Path) -> Iterable[Dict[str, Any]]:
    package_list = data.get("package", [])
    if not isinstance(package_list, list):
        raise LockfileParseError(str(path), "'package' must be an array of tables")
    for pkg in package_list:
        if isinstance(pkg, dict) and isinstance(pkg.get("name"), str):
            yield pkg


def _require_version(pkg: Dict[str, Any], path: Path) -> Exact:
    version = pkg.get("version")
    if not isinstance(version, str) or not version:
        raise LockfileParseError(str(path), f"package '{pkg.get('name')}' has no version")
    return Exact(version)


def parse_poetry_lock(path: Path, package: str) -> ResolvedVersion:
    """Find a package in poetry.lock.

    poetry.lock is a TOML file with ``[[package]]`` sections; non-registry
    packages carry a ``[package.source]`` table.
    """
    data = load_toml(path)
    wanted = normalize_python_name(package)
    for pkg in _lock_packages(data, path):
        if normalize_python_name(pkg["name"]) != wanted:
            continue
        source = pkg.get("source")
        if isinstance(source, dict):
            kind = source.get("type")
            if kind == "git":
                commit = source.get("resolved_reference") or source.get("reference") or "HEAD"
                return GitCommit(url=split_git_source(source.get("url", ""))[0], commit=commit)
            if kind in ("directory", "file"):
                return LocalPath(source.get("url"))
        return _require_version(pkg, path)
    raise PackageNotFound(package, str(path))


def parse_uv_lock(path: Path, package: str) -> ResolvedVersion:
    """Find a package in uv.lock.

    uv records the origin of every package in an inline ``source`` table:
    ``{ registry = ... }``, ``{ git = "url?rev=x#sha" }``, or one of
    ``editable``/``directory``/``path``/``virtual`` for local code.
    """
    data = load_toml(path)
    wanted = normalize_python_name(package)
    for pkg in _lock_packages(data, path):
        if normalize_python_name(pkg["name"]) != wanted:
            continue
        source = pkg.get("source") or {}
        if isinstance(source, dict):
            if "git" in source:
                url, commit = split_git_source(source["git"])
                return GitCommit(url=url, commit=commit)
            for local_key in ("editable", "directory", "path", "virtual"):
                if local_key in source:
                    return LocalPath(str(source[local_key]))
        return _require_version(pkg, path)
    raise PackageNotFound(package, str(path))


def _logical_lines(lines: Iterable[str]) -> Iterable[tuple]:
    """Yield (line number, text) joining backslash continuations and dropping comments."""
    buffer = ""
    start = 0
    for number, raw in enumerate(lines, start=1):
        line = raw.split(" #", 1)[0].rstrip() if not raw.lstrip().startswith("#") else ""
        if not buffer:
            start = number
        if line.endswith("\\"):
            buffer += line[:-1] + " "
            continue
        text = (buffer + line).strip()
        buffer = ""
        if text:
            yield start, text
    if buffer.strip():
        yield start, buffer.strip()


def parse_requirements_txt(path: Path, package: str) -> ResolvedVersion:
    """Find a package in a requirements.txt file.

    Only exact pins (``==``/``===``) count as resolved; a VCS line yields a
    GitCommit and a local path yields LocalPath. Option lines such as
    ``--index-url`` or ``-r other.txt`` are skipped.
    """
    wanted = normalize_python_name(package)
    for number, text in _logical_lines(read_lines(path)):
        editable = False
        if text.startswith(("-e ", "--editable ", "--editable=")):
            editable = True
            text = text.split(None, 1)[1] if " " in text else text.split("=", 1)[1]
        elif text.startswith("-"):
            continue
        # per-requirement options such as --hash=sha256:...
        text = text.split(" --", 1)[0].strip()

        if _PEP508_URL_RE.match(text):
            try:
                pep_req = Requirement(text)
            except InvalidRequirement as e:
                raise LockfileParseError(str(path), str(e), f"line {number}") from e
            if normalize_python_name(pep_req.name) == wanted:
                resolved = _from_pep508(pep_req)
                if resolved is not None:
                    return resolved
            continue

        if text.startswith((".", "/", "~", "file:")):
            # a bare path names no distribution; match on the directory name
            local = text.split("#", 1)[0].rstrip("/")
            if normalize_python_name(Path(local).name or local) == wanted or \
                    f"egg={package}" in text:
                return LocalPath(local)
            continue

        try:
            parsed = list(requirements.parse(f"-e {text}" if editable else text))
        except ValueError as e:
            raise LockfileParseError(str(path), str(e), f"line {number}") from e
        for req in parsed:
            if not req.name or normalize_python_name(req.name) != wanted:
                continue
            if req.vcs:
                clean, _ = split_git_source(req.uri or "")
                return GitCommit(url=clean, commit=req.revision or "HEAD")
            if req.local_file or req.path:
                return LocalPath(req.path)
            for op, version in req.specs:
                if op in ("==", "===") and "*" not in version:
                    return Exact(version)
            logger.debug("%s is listed in %s but not pinned with ==", package, path)
    raise PackageNotFound(package, str(path))


def _poetry_dependency_tables(poetry: Dict[str, Any]) -> Iterable[Dict[str, Any]]:
    for key in ("dependencies", "dev-dependencies"):
        table = poetry.get(key)
        if isinstance(table, dict):
            yield table
    groups = poetry.get("group")
    if isinstance(groups, dict):
        for group in groups.values():
            if isinstance(group, dict) and isinstance(group.get("dependencies"), dict):
                yield group["dependencies"]


def _from_poetry_entry(value: Any) -> Optional[ResolvedVersion]:
    if isinstance(value, str):
        version = strip_version_constraint(value)
        return Exact(version) if version and version != "*" else None
    if isinstance(value, list):
        # multiple-constraint form: use the first entry
        return _from_poetry_entry(value[0]) if value else None
    if not isinstance(value, dict):
        return None
    if "git" in value:
        commit = value.get("rev") or value.get("tag") or value.get("branch") or "HEAD"
        return GitCommit(url=split_git_source(value["git"])[0], commit=commit)
    if "path" in value:
        return LocalPath(value["path"])
    if isinstance(value.get("version"), str):
        return _from_poetry_entry(value["version"])
    return None


def parse_pyproject_toml(path: Path, package: str) -> ResolvedVersion:
    """Find a package declared in pyproject.toml.

    Poetry's ``[tool.poetry]`` tables are checked first, then PEP 621
    ``project.dependencies`` and ``project.optional-dependencies``.
    """
    data = load_toml(path)
    wanted = normalize_python_name(package)

    poetry = expect_mapping(data.get("tool", {}), path, "[tool]").get("poetry")
    if isinstance(poetry, dict):
        for table in _poetry_dependency_tables(poetry):
            for name, value in table.items():
                if normalize_python_name(name) == wanted:
                    resolved = _from_poetry_entry(value)
                    if resolved is not None:
                        return resolved

    project = expect_mapping(data.get("project", {}), path, "[project]")
    declared = list(project.get("dependencies") or [])
    optional = project.get("optional-dependencies") or {}
    if isinstance(optional, dict):
        for extra in optional.values():
            declared.extend(extra or [])
    for entry in declared:
        if not isinstance(entry, str):
            continue
        try:
            req = Requirement(entry)
        except InvalidRequirement as e:
            raise LockfileParseError(str(path), f"invalid dependency '{entry}': {e}") from e
        if normalize_python_name(req.name) == wanted:
            resolved = _from_pep508(req)
            if resolved is not None:
                return resolved
    raise PackageNotFound(package, str(path))


PARSERS = {
    "poetry.lock": parse_poetry_lock,
    "uv.lock": parse_uv_lock,
    "requirements.txt": parse_requirements_txt,
    "pyproject.toml": parse_pyproject_toml,
}


def find_version(lockfile: Path, package: str) -> ResolvedVersion:
    """Dispatch to the parser for ``lockfile`` by its file name."""
    return PARSERS[lockfile.name](lockfile, package)
