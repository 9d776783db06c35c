"""Version resolution from the nearest lockfile."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from common.errors import NoLockfile
from common.logging_utils import extra_context, is_debug_enabled
from registry.ecosystems import EcosystemSupport

from .models import ResolvedVersion

logger = logging.getLogger(__name__)


def find_lockfile(support: EcosystemSupport, start_dir: Path) -> Optional[Path]:
    """Nearest lockfile of the ecosystem at or above ``start_dir``."""
    return support.find_lockfile(start_dir)


def resolve_version(support: EcosystemSupport, package: str, start_dir: Path) -> ResolvedVersion:
    """Resolve the version of ``package`` pinned by the nearest lockfile.

    Args:
        support: Capability record for the package's ecosystem.
        package: Package name as the user typed it.
        start_dir: Directory to start searching from.

    Returns:
        ResolvedVersion: Exact, GitCommit or LocalPath.

    Raises:
        NoLockfile: no lockfile anywhere up the directory chain.
        PackageNotFound: the lockfile has no entry for the package.
        LockfileParseError: the lockfile is malformed.
    """
    lockfile = find_lockfile(support, start_dir)
    if lockfile is None:
        raise NoLockfile(
            support.ecosystem.value,
            package,
            str(start_dir),
            ", ".join(support.lockfiles),
        )
    resolved = support.find_version(lockfile, package)
    if is_debug_enabled(logger):
        logger.debug(
            "Resolved version from lockfile",
            extra=extra_context(
                event="decision",
                component="resolver",
                action="resolve_version",
                outcome=type(resolved).__name__,
                lockfile=str(lockfile),
                package=package,
            )
        )
    logger.info("Using %s from %s", package, lockfile)
    return resolved
