"""Data models for dependency references and resolved versions."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class Ecosystem(Enum):
    """Enum for supported ecosystems."""
    PYTHON = "python"
    NODE = "node"
    GO = "go"
    RUST = "rust"
    RUBY = "ruby"
    SWIFT = "swift"

    @classmethod
    def from_token(cls, token: str) -> Optional["Ecosystem"]:
        """Map a user-supplied ecosystem name or alias to an Ecosystem."""
        return _ALIASES.get(token.strip().lower())


_ALIASES = {
    "python": Ecosystem.PYTHON,
    "pypi": Ecosystem.PYTHON,
    "pip": Ecosystem.PYTHON,
    "node": Ecosystem.NODE,
    "nodejs": Ecosystem.NODE,
    "npm": Ecosystem.NODE,
    "go": Ecosystem.GO,
    "golang": Ecosystem.GO,
    "rust": Ecosystem.RUST,
    "cargo": Ecosystem.RUST,
    "crates": Ecosystem.RUST,
    "ruby": Ecosystem.RUBY,
    "gem": Ecosystem.RUBY,
    "rubygems": Ecosystem.RUBY,
    "swift": Ecosystem.SWIFT,
    "spm": Ecosystem.SWIFT,
}


@dataclass(frozen=True)
class DependencyRef:
    """A dependency reference as typed by the user.

    ``package_name`` keeps the original casing for display and registry
    queries; cache and link keys come from the ecosystem's name normalizer.
    """
    ecosystem: Ecosystem
    package_name: str
    version: Optional[str] = None

    def __str__(self) -> str:
        base = f"{self.ecosystem.value}:{self.package_name}"
        return f"{base}@{self.version}" if self.version else base


@dataclass(frozen=True)
class Exact:
    """A pinned registry version, kept exactly as the lockfile spells it."""
    version: str


@dataclass(frozen=True)
class GitCommit:
    """A dependency sourced from a git repository at a specific commit.

    ``commit`` is "HEAD" when the source names no revision.
    """
    url: str
    commit: str


@dataclass(frozen=True)
class LocalPath:
    """A dependency already on disk; nothing to fetch."""
    path: Optional[str] = None


ResolvedVersion = Union[Exact, GitCommit, LocalPath]


def normalize_version(version: str) -> str:
    """Strip a leading tag prefix ``v``/``V`` from a version.

    Only strips when a digit follows, so branch-like names are untouched.
    Idempotent: ``normalize_version("v2.31.0") == normalize_version("2.31.0")``.
    """
    version = version.strip()
    if len(version) > 1 and version[0] in "vV" and version[1].isdigit():
        return version[1:]
    return version


@dataclass(frozen=True)
class RepoLocation:
    """A clonable repository, plus the module subdirectory inside it (Go only)."""
    url: str
    subdir: str = ""
