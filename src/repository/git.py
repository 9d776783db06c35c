"""Shallow git fetcher.

Every checkout is shallow: the consumer reads current source, not history.
For a pinned version the first existing ref among the tag candidates is
cloned; when none exists the default branch is cloned with a warning. For a
git-pinned dependency the exact commit is fetched. Whatever happens, a failed
fetch leaves nothing at the destination.
"""

from __future__ import annotations

import errno
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from constants import Constants
from common.errors import CloneFailed, DiskFull, TagNotFound
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer
from versioning.models import Exact, GitCommit, ResolvedVersion

logger = logging.getLogger(__name__)

_DISK_FULL_MARKERS = ("No space left on device", "ENOSPC")


class GitCommandError(Exception):
    """A git subprocess failed; converted to CloneFailed at the fetch boundary."""

    def __init__(self, args: Sequence[str], detail: str) -> None:
        super().__init__(f"git {' '.join(args[:2])}: {detail}")
        self.detail = detail


@dataclass
class FetchResult:
    """What was checked out."""
    ref: Optional[str]
    commit: Optional[str]
    used_default_branch: bool = False


def remove_tree(path: Path) -> None:
    """Delete a directory tree if it exists."""
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.exists():
        shutil.rmtree(path)


def parse_ls_remote(output: str) -> Dict[str, str]:
    """Map short ref names (tags and branches) to commits from ``git ls-remote``.

    Peeled tag lines (``refs/tags/v1^{}``) overwrite the tag object id with
    the commit it points at.
    """
    refs: Dict[str, str] = {}
    for line in output.splitlines():
        sha, _, ref = line.strip().partition("\t")
        if not ref:
            continue
        for prefix in ("refs/tags/", "refs/heads/"):
            if ref.startswith(prefix):
                name = ref[len(prefix):]
                if name.endswith("^{}"):
                    refs[name[:-3]] = sha
                else:
                    refs.setdefault(name, sha)
    return refs


class GitFetcher:
    """Runs git to materialize one repository snapshot into a directory."""

    def __init__(self, git: str = "git", timeout: Optional[float] = None) -> None:
        self.git = git
        self.timeout = timeout

    def _run(self, args: List[str], *, cwd: Optional[Path] = None) -> subprocess.CompletedProcess:
        timeout = self.timeout if self.timeout is not None else Constants.GIT_TIMEOUT
        env = dict(os.environ, GIT_TERMINAL_PROMPT="0")
        if is_debug_enabled(logger):
            logger.debug(
                "git command",
                extra=extra_context(
                    event="subprocess",
                    component="git",
                    action=args[0],
                    target=safe_url(args[-1]) if "://" in args[-1] else None,
                )
            )
        try:
            result = subprocess.run(
                [self.git, *args],
                cwd=str(cwd) if cwd else None,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
                env=env,
            )
        except subprocess.TimeoutExpired as e:
            raise GitCommandError(args, f"timed out after {timeout} seconds") from e
        except FileNotFoundError as e:
            raise GitCommandError(args, f"'{self.git}' executable not found") from e
        except OSError as e:
            if e.errno == errno.ENOSPC:
                raise DiskFull(str(cwd or args[-1])) from e
            raise GitCommandError(args, str(e)) from e
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            if any(marker in stderr for marker in _DISK_FULL_MARKERS):
                raise DiskFull(str(cwd or args[-1]))
            raise GitCommandError(args, stderr.splitlines()[-1] if stderr else f"exit status {result.returncode}")
        return result

    def remote_refs(self, url: str) -> Dict[str, str]:
        """List tags and branches of a remote without cloning."""
        result = self._run(["ls-remote", "--tags", "--heads", url])
        return parse_ls_remote(result.stdout)

    def _head_commit(self, dest: Path) -> Optional[str]:
        try:
            return self._run(["rev-parse", "HEAD"], cwd=dest).stdout.strip() or None
        except GitCommandError:
            logger.debug("Could not read HEAD of %s", dest)
            return None

    def _clone(self, url: str, dest: Path, ref: Optional[str] = None) -> None:
        args = ["clone", "--quiet", "--depth", "1"]
        if ref:
            args += ["--branch", ref, "--single-branch"]
        self._run(args + [url, str(dest)])

    def _fetch_version(self, url: str, candidates: Sequence[str], dest: Path) -> FetchResult:
        refs = self.remote_refs(url)
        for candidate in candidates:
            if candidate in refs:
                self._clone(url, dest, candidate)
                return FetchResult(ref=candidate, commit=self._head_commit(dest))
        missing = TagNotFound(url, candidates)
        logger.warning("%s; using the default branch instead (not the pinned version)", missing)
        self._clone(url, dest)
        return FetchResult(ref=None, commit=self._head_commit(dest), used_default_branch=True)

    def _fetch_commit(self, url: str, commit: str, dest: Path) -> FetchResult:
        dest.mkdir(parents=True, exist_ok=True)
        self._run(["init", "--quiet", str(dest)])
        self._run(["remote", "add", "origin", url], cwd=dest)
        try:
            self._run(["fetch", "--quiet", "--depth", "1", "origin", commit], cwd=dest)
            self._run(["checkout", "--quiet", "FETCH_HEAD"], cwd=dest)
        except GitCommandError as first:
            # servers may refuse fetching an unadvertised commit; search recent history instead
            depth = Constants.GIT_COMMIT_FETCH_DEPTH
            logger.info("Direct fetch of %s refused (%s); fetching the last %d commits", commit, first.detail, depth)
            self._run(["fetch", "--quiet", "--depth", str(depth), "origin"], cwd=dest)
            try:
                self._run(["checkout", "--quiet", commit], cwd=dest)
            except GitCommandError as e:
                raise GitCommandError(
                    ["checkout", commit],
                    f"commit {commit} is not reachable within the last {depth} commits",
                ) from e
        return FetchResult(ref=commit, commit=self._head_commit(dest) or commit)

    def fetch(
        self,
        repo_url: str,
        resolved: ResolvedVersion,
        dest: Path,
        tag_candidates: Sequence[str] = (),
    ) -> FetchResult:
        """Check out ``resolved`` from ``repo_url`` into ``dest``.

        Args:
            repo_url: Clonable URL.
            resolved: Exact version or GitCommit.
            dest: Empty or missing directory to populate.
            tag_candidates: Refs to try, in order, for an Exact version.

        Raises:
            CloneFailed: network, auth or missing-commit failures.
            DiskFull: the filesystem ran out of space.
        """
        with Timer() as t:
            try:
                if isinstance(resolved, GitCommit) and resolved.commit not in ("", "HEAD"):
                    result = self._fetch_commit(repo_url, resolved.commit, dest)
                elif isinstance(resolved, GitCommit):
                    self._clone(repo_url, dest)
                    result = FetchResult(ref=None, commit=self._head_commit(dest))
                elif isinstance(resolved, Exact):
                    result = self._fetch_version(repo_url, tag_candidates, dest)
                else:
                    raise ValueError(f"nothing to fetch for {resolved!r}")
            except GitCommandError as e:
                remove_tree(dest)
                raise CloneFailed(safe_url(repo_url) or repo_url, e.detail) from e
            except BaseException:
                remove_tree(dest)
                raise
        if is_debug_enabled(logger):
            logger.debug(
                "git fetch complete",
                extra=extra_context(
                    event="fetch",
                    component="git",
                    action="fetch",
                    outcome="default_branch" if result.used_default_branch else "success",
                    duration_ms=t.duration_ms(),
                    target=safe_url(repo_url),
                    ref=result.ref,
                )
            )
        return result
