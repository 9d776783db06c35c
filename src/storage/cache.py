"""On-disk source cache.

Layout: ``<root>/<ecosystem>/<package path segments>/<version>/``. A directory
is a complete entry exactly when it contains ``.git``; entries are populated
in a hidden staging sibling and renamed into place, so a concurrent reader
never sees a half-written entry. Entries are evicted least-recently-accessed
first (filesystem atime) once the cache grows past its byte budget.
"""

from __future__ import annotations

import errno
import logging
import os
import shutil
import tempfile
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple, TypeVar

from constants import Constants
from common.errors import CacheUnwritable, DiskFull
from common.logging_utils import extra_context, is_debug_enabled
from versioning.models import Exact, GitCommit, ResolvedVersion, normalize_version

logger = logging.getLogger(__name__)

T = TypeVar("T")

_COLLISION_ERRNOS = (errno.EEXIST, errno.ENOTEMPTY)


@dataclass(frozen=True)
class CacheKey:
    """Identity of one cache entry."""
    ecosystem: str
    package_path: Tuple[str, ...]
    version: str

    @classmethod
    def for_resolved(cls, ecosystem: str, package_path: Tuple[str, ...], resolved: ResolvedVersion) -> "CacheKey":
        """Build the key for a resolved version.

        Exact versions drop a leading ``v``; git entries use a 12 character
        commit prefix.
        """
        if isinstance(resolved, Exact):
            version = normalize_version(resolved.version)
        elif isinstance(resolved, GitCommit):
            version = resolved.commit[:Constants.CACHE_COMMIT_PREFIX_LEN]
        else:
            raise ValueError(f"local dependencies are not cached: {resolved!r}")
        return cls(ecosystem, tuple(package_path), version.replace("/", "_").replace("\\", "_"))


@dataclass
class CacheEntry:
    """A complete entry found on disk."""
    path: Path
    atime: float
    size: int = 0


def default_cache_root(cache_dir: Optional[str] = None) -> Path:
    """Resolve the cache root.

    ``$DOTDEPS_CACHE_DIR``, then the configured ``cache_dir``, then
    ``$XDG_CACHE_HOME/dotdeps``, then ``~/.cache/dotdeps``.
    """
    env_dir = os.environ.get(Constants.ENV_CACHE_DIR)
    if env_dir:
        return Path(env_dir).expanduser()
    if cache_dir:
        return Path(cache_dir).expanduser()
    xdg = os.environ.get("XDG_CACHE_HOME")
    base = Path(xdg) if xdg else Path.home() / ".cache"
    return base / Constants.PROG_NAME


def _is_staging(name: str) -> bool:
    return name.startswith(Constants.STAGING_PREFIX)


def _remove(path: Path) -> None:
    if path.exists() or path.is_symlink():
        shutil.rmtree(path, ignore_errors=False)


class CacheManager:
    """Owns the cache root and every entry below it."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    # ------------------------------------------------------------ lookup

    def path_for(self, key: CacheKey) -> Path:
        """Directory of an entry, whether or not it exists."""
        return self.root.joinpath(key.ecosystem, *key.package_path, key.version)

    @staticmethod
    def is_complete(path: Path) -> bool:
        return (path / ".git").is_dir()

    def exists(self, key: CacheKey) -> bool:
        """True only for a fully materialized entry."""
        return self.is_complete(self.path_for(key))

    def touch(self, path: Path) -> None:
        """Mark an entry as used: read the directory, then set atime to now keeping mtime."""
        os.listdir(path)
        st = os.stat(path)
        os.utime(path, ns=(time.time_ns(), st.st_mtime_ns))

    # ------------------------------------------------------------ writes

    def ensure_writable(self) -> None:
        """Create the root and prove it is writable before any fetch starts.

        Raises:
            CacheUnwritable: the root cannot be created or written.
            DiskFull: the filesystem has no space left.
        """
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(dir=self.root, prefix=Constants.STAGING_PREFIX) as check:
                check.write(b"ok")
                check.flush()
        except OSError as e:
            if e.errno == errno.ENOSPC:
                raise DiskFull(str(self.root)) from e
            raise CacheUnwritable(str(self.root), e.strerror or str(e)) from e

    def materialize(self, key: CacheKey, populate: Callable[[Path], T]) -> Tuple[Path, Optional[T]]:
        """Create an entry atomically.

        ``populate`` fills a private staging directory which is then renamed
        onto the entry path. Any failure removes the staging directory. If
        another process completed the same entry first, the staged copy is
        discarded and the existing entry is used.

        Returns:
            (entry path, populate's return value)
        """
        final = self.path_for(key)
        try:
            final.parent.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(prefix=Constants.STAGING_PREFIX, dir=final.parent))
        except OSError as e:
            if e.errno == errno.ENOSPC:
                raise DiskFull(str(final)) from e
            raise CacheUnwritable(str(final.parent), e.strerror or str(e)) from e

        try:
            result = populate(staging)
            self._promote(staging, final)
        except OSError as e:
            _remove(staging)
            if e.errno == errno.ENOSPC:
                raise DiskFull(str(final)) from e
            raise
        except BaseException:
            _remove(staging)
            raise
        logger.debug("Cached %s", final)
        return final, result

    def _promote(self, staging: Path, final: Path) -> None:
        try:
            os.rename(staging, final)
            return
        except OSError as e:
            if e.errno not in _COLLISION_ERRNOS and not isinstance(e, FileExistsError):
                raise
        if self.is_complete(final):
            logger.info("%s was cached by another process; discarding duplicate download", final)
            _remove(staging)
            return
        # an incomplete directory squats on the entry path; it can never become complete
        logger.warning("Replacing incomplete cache directory %s", final)
        self._remove_entry(final, prune=False)
        os.rename(staging, final)

    # ------------------------------------------------------------ eviction

    def _walk_entries(self, directory: Path) -> Iterator[Path]:
        """Yield complete entries without ever listing inside one (that would bump its atime)."""
        try:
            children = list(os.scandir(directory))
        except FileNotFoundError:
            return
        for child in children:
            if _is_staging(child.name) or not child.is_dir(follow_symlinks=False):
                continue
            path = Path(child.path)
            if self.is_complete(path):
                yield path
            else:
                yield from self._walk_entries(path)

    def entries(self) -> List[CacheEntry]:
        """All complete entries with their access times, sizes not yet computed."""
        found = []
        for path in self._walk_entries(self.root):
            try:
                found.append(CacheEntry(path=path, atime=os.stat(path).st_atime))
            except FileNotFoundError:
                continue
        return found

    @staticmethod
    def entry_size(path: Path) -> int:
        """Total bytes under ``path``, restoring its atime so measuring is not a use."""
        st = os.stat(path)
        total = 0
        for dirpath, dirnames, filenames in os.walk(path):
            # os.walk lists symlinked directories under dirnames without following them
            links = [name for name in dirnames if os.path.islink(os.path.join(dirpath, name))]
            for name in filenames + links:
                try:
                    total += os.lstat(os.path.join(dirpath, name)).st_size
                except FileNotFoundError:
                    continue
        os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns))
        return total

    def total_size(self) -> int:
        """Bytes used by all complete entries."""
        return sum(self.entry_size(entry.path) for entry in self.entries())

    def _remove_entry(self, path: Path, prune: bool = True) -> None:
        # rename first so no reader sees a half-deleted entry
        doomed = path.parent / f"{Constants.STAGING_PREFIX}evict-{uuid.uuid4().hex}"
        try:
            os.rename(path, doomed)
        except FileNotFoundError:
            return
        shutil.rmtree(doomed)
        if prune:
            self._prune_empty_parents(path.parent)

    def _prune_empty_parents(self, directory: Path) -> None:
        root = self.root.resolve()
        current = directory
        while current.resolve() != root and root in current.resolve().parents:
            try:
                current.rmdir()
            except OSError:
                return
            current = current.parent

    def evict_to_budget(self, budget_bytes: int, keep: Optional[Path] = None) -> List[Path]:
        """Remove least-recently-accessed entries until the cache fits the budget.

        Args:
            budget_bytes: Size limit; 0 disables eviction.
            keep: Entry that must survive (the one just written).

        Returns:
            Paths of the evicted entries.
        """
        if budget_bytes <= 0:
            return []
        entries = self.entries()
        for entry in entries:
            entry.size = self.entry_size(entry.path)
        total = sum(entry.size for entry in entries)
        if total <= budget_bytes:
            return []

        keep_resolved = keep.resolve() if keep else None
        evicted: List[Path] = []
        for entry in sorted(entries, key=lambda e: e.atime):
            if total <= budget_bytes:
                break
            if keep_resolved is not None and entry.path.resolve() == keep_resolved:
                continue
            self._remove_entry(entry.path)
            total -= entry.size
            evicted.append(entry.path)
            logger.info("Evicted %s from cache (%d bytes)", entry.path, entry.size)
        if is_debug_enabled(logger):
            logger.debug(
                "Cache eviction finished",
                extra=extra_context(
                    event="eviction",
                    component="cache",
                    action="evict_to_budget",
                    outcome="over_budget" if total > budget_bytes else "within_budget",
                    evicted=len(evicted),
                    total_bytes=total,
                    budget_bytes=budget_bytes,
                )
            )
        return evicted

    def sweep_stale_staging(self, max_age: float = Constants.STAGING_MAX_AGE_SEC) -> List[Path]:
        """Delete staging directories abandoned by interrupted processes."""
        cutoff = time.time() - max_age
        removed: List[Path] = []
        stack = [self.root]
        while stack:
            directory = stack.pop()
            try:
                children = list(os.scandir(directory))
            except FileNotFoundError:
                continue
            for child in children:
                if not child.is_dir(follow_symlinks=False):
                    continue
                path = Path(child.path)
                if _is_staging(child.name):
                    if child.stat(follow_symlinks=False).st_mtime < cutoff:
                        shutil.rmtree(path, ignore_errors=True)
                        removed.append(path)
                        logger.debug("Removed stale staging directory %s", path)
                elif not self.is_complete(path):
                    stack.append(path)
        return removed
