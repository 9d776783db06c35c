"""Lockfile parser for Swift Package Manager (Package.resolved).

SwiftPM has no registry with repository metadata, so Package.resolved is
both the version source and the repository source. Format versions:

* v1: ``{"object": {"pins": [{"package", "repositoryURL", "state"}]}}``
* v2/v3: ``{"pins": [{"identity", "kind", "location", "state"}]}``

Xcode projects keep the file inside the project bundle, so each directory
level is also searched for ``*.xcodeproj`` and ``*.xcworkspace`` copies.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from common.errors import LockfileParseError, PackageNotFound, RepoNotFound
from registry.lockfile_io import expect_mapping, load_json
from repository.url_normalize import normalize_repo_url
from versioning.models import Exact, GitCommit, LocalPath, ResolvedVersion

logger = logging.getLogger(__name__)

LOCKFILES = ("Package.resolved",)

_LOCAL_KINDS = ("localSourceControl", "fileSystem")


def normalize_swift_name(name: str) -> str:
    """SwiftPM identities are lowercase repository names."""
    return name.strip().lower()


def identity_from_location(location: str) -> str:
    """``https://github.com/apple/swift-nio.git`` -> ``swift-nio``."""
    last = location.rstrip("/").rsplit("/", 1)[-1]
    last = last.rsplit(":", 1)[-1]
    if last.endswith(".git"):
        last = last[:-4]
    return normalize_swift_name(last)


def xcode_lockfile_candidates(directory: Path) -> Iterable[Path]:
    """Package.resolved copies inside Xcode bundles at one directory level."""
    try:
        children = sorted(directory.iterdir())
    except OSError:
        return
    for child in children:
        if child.name.endswith(".xcodeproj"):
            yield child / "project.xcworkspace" / "xcshareddata" / "swiftpm" / "Package.resolved"
    for child in children:
        if child.name.endswith(".xcworkspace"):
            yield child / "xcshareddata" / "swiftpm" / "Package.resolved"


def _pins(path: Path) -> List[Dict[str, Any]]:
    """Return pins normalized to the v2 shape (identity, kind, location, state)."""
    data = expect_mapping(load_json(path), path)
    version = data.get("version")
    if version == 1:
        obj = expect_mapping(data.get("object"), path, "'object'")
        raw_pins = obj.get("pins") or []
        pins = []
        for pin in raw_pins if isinstance(raw_pins, list) else []:
            if not isinstance(pin, dict):
                continue
            location = pin.get("repositoryURL") or ""
            pins.append({
                "identity": identity_from_location(location) if location else normalize_swift_name(pin.get("package", "")),
                "name": pin.get("package", ""),
                "kind": "remoteSourceControl",
                "location": location,
                "state": pin.get("state") or {},
            })
        return pins
    if version in (2, 3):
        raw_pins = data.get("pins") or []
        if not isinstance(raw_pins, list):
            raise LockfileParseError(str(path), "'pins' must be an array")
        return [pin for pin in raw_pins if isinstance(pin, dict)]
    raise LockfileParseError(str(path), f"unsupported Package.resolved version {version!r}")


def _find_pin(path: Path, package: str) -> Optional[Dict[str, Any]]:
    wanted = normalize_swift_name(package)
    # a full URL may be given instead of an identity
    if "/" in wanted:
        wanted = identity_from_location(wanted)
    for pin in _pins(path):
        identity = normalize_swift_name(str(pin.get("identity", "")))
        location = str(pin.get("location", ""))
        names = {identity, normalize_swift_name(str(pin.get("name", "")))}
        if location:
            names.add(identity_from_location(location))
        if wanted in names:
            return pin
    return None


def parse_package_resolved(path: Path, package: str) -> ResolvedVersion:
    """Find a pin by identity or by the last segment of its repository URL."""
    pin = _find_pin(path, package)
    if pin is None:
        raise PackageNotFound(package, str(path))
    location = str(pin.get("location", ""))
    if pin.get("kind") in _LOCAL_KINDS:
        return LocalPath(location or None)
    state = pin.get("state") if isinstance(pin.get("state"), dict) else {}
    if state.get("version"):
        return Exact(str(state["version"]))
    if state.get("revision"):
        # branch or revision pin
        return GitCommit(url=normalize_repo_url(location, require_known_host=False) or location,
                         commit=str(state["revision"]))
    raise LockfileParseError(str(path), f"pin '{pin.get('identity')}' has neither version nor revision")


def find_version(lockfile: Path, package: str) -> ResolvedVersion:
    """All Package.resolved locations share one format."""
    return parse_package_resolved(lockfile, package)


def locate_repo(package: str, lockfile: Optional[Path]) -> str:
    """Return the repository URL recorded for ``package`` in Package.resolved.

    Args:
        package: Identity or repository name.
        lockfile: Nearest Package.resolved, or None when there is none.

    Raises:
        RepoNotFound: when no Package.resolved exists or it has no remote pin.
    """
    if lockfile is None:
        raise RepoNotFound("swift", package, "no Package.resolved found")
    pin = _find_pin(lockfile, package)
    location = str(pin.get("location", "")) if pin else ""
    url = normalize_repo_url(location, require_known_host=False) if location else None
    if not url or (pin and pin.get("kind") in _LOCAL_KINDS):
        raise RepoNotFound("swift", package, f"{lockfile} has no remote pin for it")
    return url
