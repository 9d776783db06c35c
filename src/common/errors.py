"""Error taxonomy for dotdeps.

Every terminal failure of a single ``add``/``remove`` is one of these. Each
class carries a stable ``code`` for logs and the process exit code ``main``
uses. Messages are written to be shown to the user verbatim.
"""

from __future__ import annotations

from typing import Optional

from constants import ExitCodes


class DotDepsError(Exception):
    """Base class for all dotdeps failures."""

    code: str = "UNKNOWN"
    exit_code: ExitCodes = ExitCodes.FILE_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidReference(DotDepsError):
    """A dependency reference could not be parsed."""

    code = "INVALID_REFERENCE"
    exit_code = ExitCodes.USAGE_ERROR


class ConfigError(DotDepsError):
    """The configuration file is unreadable or has the wrong shape."""

    code = "CONFIG_ERROR"
    exit_code = ExitCodes.USAGE_ERROR


class CacheUnwritable(DotDepsError):
    """The cache root cannot be created or written to."""

    code = "CACHE_UNWRITABLE"

    def __init__(self, path: str, detail: str) -> None:
        super().__init__(
            f"Cache directory {path} is not writable: {detail}. "
            "Check its permissions or point DOTDEPS_CACHE_DIR at a writable location."
        )
        self.path = path


class NoLockfile(DotDepsError):
    """No lockfile for the ecosystem exists in the directory or its ancestors."""

    code = "NO_LOCKFILE"

    def __init__(self, ecosystem: str, package: str, start_dir: str, searched: str) -> None:
        super().__init__(
            f"No lockfile found for {ecosystem}:{package} (looked for {searched} "
            f"in {start_dir} and its parents). Specify a version explicitly: "
            f"{ecosystem}:{package}@<version>"
        )
        self.ecosystem = ecosystem
        self.package = package


class PackageNotFound(DotDepsError):
    """A lockfile exists but has no entry for the package."""

    code = "PACKAGE_NOT_FOUND"

    def __init__(self, package: str, lockfile: str) -> None:
        super().__init__(
            f"Package '{package}' not found in {lockfile}. "
            "Specify a version explicitly with <ecosystem>:<package>@<version>"
        )
        self.package = package
        self.lockfile = lockfile


class LockfileParseError(DotDepsError):
    """A lockfile is malformed for its format."""

    code = "LOCKFILE_PARSE_ERROR"

    def __init__(self, file: str, detail: str, location: Optional[str] = None) -> None:
        where = f"{file} ({location})" if location else file
        super().__init__(f"Failed to parse {where}: {detail}")
        self.file = file
        self.location = location
        self.detail = detail


class RepoNotFound(DotDepsError):
    """No clonable repository URL could be determined."""

    code = "REPO_NOT_FOUND"
    exit_code = ExitCodes.CONNECTION_ERROR

    def __init__(self, ecosystem: str, package: str, detail: str, config_path: str = "") -> None:
        hint = config_path or "the dotdeps config file"
        super().__init__(
            f"Could not find a repository for {ecosystem}:{package}: {detail}. "
            f"Add an override in {hint}: "
            f'{{"overrides": {{"{ecosystem}": {{"{package}": {{"repo": "https://..."}}}}}}}}'
        )
        self.ecosystem = ecosystem
        self.package = package
        self.detail = detail


class TagNotFound(DotDepsError):
    """None of the candidate refs exist; recovered by cloning the default branch."""

    code = "TAG_NOT_FOUND"

    def __init__(self, repo_url: str, candidates) -> None:
        super().__init__(
            f"No tag matching {', '.join(candidates)} in {repo_url}"
        )
        self.repo_url = repo_url
        self.candidates = list(candidates)


class CloneFailed(DotDepsError):
    """git could not produce a checkout."""

    code = "CLONE_FAILED"
    exit_code = ExitCodes.CONNECTION_ERROR

    def __init__(self, repo_url: str, detail: str) -> None:
        super().__init__(f"Failed to clone {repo_url}: {detail}")
        self.repo_url = repo_url
        self.detail = detail


class DiskFull(DotDepsError):
    """The filesystem ran out of space while writing a cache entry."""

    code = "DISK_FULL"

    def __init__(self, path: str) -> None:
        super().__init__(
            f"No space left on device while writing {path}. "
            "Free disk space or lower cache_limit_gb in the dotdeps config."
        )
        self.path = path


class LinkCreationFailed(DotDepsError):
    """The project link could not be created."""

    code = "LINK_CREATION_FAILED"

    def __init__(self, link_path: str, detail: str) -> None:
        super().__init__(f"Failed to create link {link_path}: {detail}")
        self.link_path = link_path
