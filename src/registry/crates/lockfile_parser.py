"""Lockfile parser for Rust (Cargo.lock).

Cargo.lock is TOML with one ``[[package]]`` table per crate version. The
``source`` field says where it came from: ``registry+...`` for crates.io,
``git+<url>?<query>#<commit>`` for git dependencies, and no source at all for
path dependencies and workspace members.
"""

from __future__ import annotations

import logging
from pathlib import Path

from common.errors import LockfileParseError, PackageNotFound
from registry.lockfile_io import load_toml
from repository.url_normalize import split_git_source
from versioning.models import Exact, GitCommit, LocalPath, ResolvedVersion

logger = logging.getLogger(__name__)

LOCKFILES = ("Cargo.lock",)


def normalize_crate_name(name: str) -> str:
    """Crate names treat '-' and '_' as the same; keys use lowercase with '_'."""
    return name.strip().lower().replace("-", "_")


def parse_cargo_lock(path: Path, package: str) -> ResolvedVersion:
    """Find a crate in Cargo.lock; the first matching entry wins."""
    data = load_toml(path)
    wanted = normalize_crate_name(package)
    packages = data.get("package", [])
    if not isinstance(packages, list):
        raise LockfileParseError(str(path), "'package' must be an array of tables")
    for pkg in packages:
        if not isinstance(pkg, dict) or normalize_crate_name(str(pkg.get("name", ""))) != wanted:
            continue
        source = pkg.get("source")
        if source is None:
            return LocalPath()
        if isinstance(source, str) and source.startswith("git+"):
            url, commit = split_git_source(source)
            return GitCommit(url=url, commit=commit)
        version = pkg.get("version")
        if not isinstance(version, str) or not version:
            raise LockfileParseError(str(path), f"crate '{pkg.get('name')}' has no version")
        return Exact(version)
    raise PackageNotFound(package, str(path))


def find_version(lockfile: Path, package: str) -> ResolvedVersion:
    """Cargo has a single lockfile format."""
    return parse_cargo_lock(lockfile, package)
