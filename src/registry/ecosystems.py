"""Per-ecosystem capability table.

Every ecosystem is described by one ``EcosystemSupport`` record: its lockfile
names in priority order, its name normalizer, its lockfile parser, and its
repository lookup. Callers pick a record by ``Ecosystem`` and never branch on
the ecosystem themselves.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from versioning.models import Ecosystem, RepoLocation, ResolvedVersion, normalize_version

from registry.crates import client as crates_client
from registry.crates import lockfile_parser as cargo_lock
from registry.golang import client as go_client
from registry.golang import lockfile_parser as go_lock
from registry.npm import client as npm_client
from registry.npm import lockfile_parser as npm_lock
from registry.pypi import client as pypi_client
from registry.pypi import lockfile_parser as pypi_lock
from registry.rubygems import client as rubygems_client
from registry.rubygems import lockfile_parser as gem_lock
from registry.swift import lockfile_parser as swift_lock


def default_tag_candidates(version: str, location: RepoLocation) -> List[str]:  # pylint: disable=unused-argument
    """``v{v}`` then ``{v}``, with ``v`` the version minus any tag prefix."""
    clean = normalize_version(version)
    return [f"v{clean}", clean]


def _go_tag_candidates(version: str, location: RepoLocation) -> List[str]:
    return go_client.tag_candidates(version, location.subdir)


def _go_override_subdir(package: str) -> str:
    repo = go_client.known_host_repo(package)
    return repo.subdir if repo else ""


def _swift_name(name: str) -> str:
    return swift_lock.identity_from_location(name) if "/" in name else swift_lock.normalize_swift_name(name)


@dataclass(frozen=True)
class EcosystemSupport:
    """Capabilities of one ecosystem."""
    ecosystem: Ecosystem
    lockfiles: Tuple[str, ...]
    normalize_name: Callable[[str], str]
    find_version: Callable[[Path, str], ResolvedVersion]
    locate_repo: Callable[[str, Path], RepoLocation]
    tag_candidates: Callable[[str, RepoLocation], List[str]] = default_tag_candidates
    override_subdir: Callable[[str], str] = lambda package: ""
    extra_lockfile_candidates: Callable[[Path], Iterable[Path]] = lambda directory: ()
    pinned_commit: Callable[[str], Optional[str]] = lambda version: None

    def lockfile_candidates(self, directory: Path) -> Iterable[Path]:
        """Lockfile paths to test at one directory level, in priority order."""
        for name in self.lockfiles:
            yield directory / name
        yield from self.extra_lockfile_candidates(directory)

    def find_lockfile(self, start_dir: Path) -> Optional[Path]:
        """Walk from ``start_dir`` to the filesystem root; the first existing lockfile wins.

        At each level the ecosystem's files are tested in priority order and
        the search stops at the first hit; files are never merged.
        """
        start = Path(start_dir).resolve()
        for directory in [start, *start.parents]:
            for candidate in self.lockfile_candidates(directory):
                if candidate.is_file():
                    return candidate
        return None

    def package_path(self, package: str) -> Tuple[str, ...]:
        """Cache/link path segments for a package (scopes and module paths nest)."""
        return tuple(part for part in self.normalize_name(package).split("/") if part)


SUPPORT: Dict[Ecosystem, EcosystemSupport] = {
    Ecosystem.PYTHON: EcosystemSupport(
        ecosystem=Ecosystem.PYTHON,
        lockfiles=pypi_lock.LOCKFILES,
        normalize_name=pypi_lock.normalize_python_name,
        find_version=pypi_lock.find_version,
        locate_repo=lambda package, start_dir: RepoLocation(pypi_client.locate_repo(package)),
    ),
    Ecosystem.NODE: EcosystemSupport(
        ecosystem=Ecosystem.NODE,
        lockfiles=npm_lock.LOCKFILES,
        normalize_name=npm_lock.normalize_node_name,
        find_version=npm_lock.find_version,
        locate_repo=lambda package, start_dir: RepoLocation(npm_client.locate_repo(package)),
    ),
    Ecosystem.GO: EcosystemSupport(
        ecosystem=Ecosystem.GO,
        lockfiles=go_lock.LOCKFILES,
        normalize_name=go_lock.normalize_module_path,
        find_version=go_lock.find_version,
        locate_repo=lambda package, start_dir: go_client.locate_module(package),
        tag_candidates=_go_tag_candidates,
        override_subdir=_go_override_subdir,
        pinned_commit=go_client.pseudo_version_commit,
    ),
    Ecosystem.RUST: EcosystemSupport(
        ecosystem=Ecosystem.RUST,
        lockfiles=cargo_lock.LOCKFILES,
        normalize_name=cargo_lock.normalize_crate_name,
        find_version=cargo_lock.find_version,
        locate_repo=lambda package, start_dir: RepoLocation(crates_client.locate_repo(package)),
    ),
    Ecosystem.RUBY: EcosystemSupport(
        ecosystem=Ecosystem.RUBY,
        lockfiles=gem_lock.LOCKFILES,
        normalize_name=gem_lock.normalize_gem_name,
        find_version=gem_lock.find_version,
        locate_repo=lambda package, start_dir: RepoLocation(rubygems_client.locate_repo(package)),
    ),
    Ecosystem.SWIFT: EcosystemSupport(
        ecosystem=Ecosystem.SWIFT,
        lockfiles=swift_lock.LOCKFILES,
        normalize_name=_swift_name,
        find_version=swift_lock.find_version,
        locate_repo=lambda package, start_dir: RepoLocation(
            swift_lock.locate_repo(package, SUPPORT[Ecosystem.SWIFT].find_lockfile(start_dir))
        ),
        extra_lockfile_candidates=swift_lock.xcode_lockfile_candidates,
    ),
}


def get_support(ecosystem: Ecosystem) -> EcosystemSupport:
    """Return the capability record for ``ecosystem``."""
    return SUPPORT[ecosystem]
