"""Lockfile parser for Ruby (Gemfile.lock).

Bundler writes one top-level section per source::

    GIT
      remote: https://github.com/rails/rails.git
      revision: 4f1c3e8...
      specs:
        rails (7.2.0.alpha)
          actionpack (= 7.2.0.alpha)

    GEM
      remote: https://rubygems.org/
      specs:
        nokogiri (1.16.0-x86_64-linux)

Gems sit at four spaces of indentation; six-space lines are their own
requirements and are skipped.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, Optional

from common.errors import LockfileParseError, PackageNotFound
from registry.lockfile_io import read_lines
from repository.url_normalize import split_git_source
from versioning.models import Exact, GitCommit, LocalPath, ResolvedVersion

logger = logging.getLogger(__name__)

LOCKFILES = ("Gemfile.lock",)

_SPEC_RE = re.compile(r"^    ([^\s(]+) \(([^)]+)\)$")


def normalize_gem_name(name: str) -> str:
    """Gem names are matched case-insensitively."""
    return name.strip().lower()


def strip_platform(version: str) -> str:
    """Drop a platform suffix: ``1.16.0-x86_64-linux`` -> ``1.16.0``.

    RubyGems spells pre-releases with dots (``1.0.0.rc1``), so the first
    '-' always starts the platform.
    """
    return version.split("-", 1)[0]


def parse_gemfile_lock(path: Path, package: str) -> ResolvedVersion:
    """Find a gem in Gemfile.lock across its GEM, GIT and PATH sections."""
    wanted = normalize_gem_name(package)
    section: Optional[str] = None
    attrs: Dict[str, str] = {}
    in_specs = False

    for number, line in enumerate(read_lines(path), start=1):
        if not line.strip():
            continue
        if not line.startswith(" "):
            section = line.strip()
            attrs = {}
            in_specs = False
            continue
        if line.startswith("  ") and not line.startswith("    "):
            key, _, value = line.strip().partition(":")
            if key == "specs":
                in_specs = True
            else:
                attrs[key] = value.strip()
            continue
        if not in_specs or line.startswith("      "):
            continue

        match = _SPEC_RE.match(line.rstrip())
        if not match:
            raise LockfileParseError(str(path), f"malformed spec line {line.strip()!r}", f"line {number}")
        name, version = match.groups()
        if normalize_gem_name(name) != wanted:
            continue
        if section == "GIT":
            remote = attrs.get("remote")
            if not remote:
                raise LockfileParseError(str(path), "GIT section has no remote", f"line {number}")
            url, _ = split_git_source(remote)
            return GitCommit(url=url, commit=attrs.get("revision") or "HEAD")
        if section == "PATH":
            return LocalPath(attrs.get("remote"))
        return Exact(strip_platform(version))
    raise PackageNotFound(package, str(path))


def find_version(lockfile: Path, package: str) -> ResolvedVersion:
    """Bundler has a single lockfile format."""
    return parse_gemfile_lock(lockfile, package)
