"""The add/remove/list/clean operations.

``add`` runs the full pipeline for one dependency reference::

    resolve version -> locate repository -> shallow fetch -> cache -> link

Each stage short-circuits: a local-path dependency stops after resolution, and
an entry already in the cache skips locating and fetching entirely (no network
traffic, only an access-time bump).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from common.config import Settings
from common.logging_utils import extra_context, is_debug_enabled, Timer
from registry.ecosystems import EcosystemSupport, get_support
from repository.git import GitFetcher
from repository.locator import locate
from storage.cache import CacheKey, CacheManager, default_cache_root
from storage.links import LinkEntry, LinkManager
from versioning.models import DependencyRef, Exact, GitCommit, LocalPath, RepoLocation, ResolvedVersion
from versioning.resolver import resolve_version

logger = logging.getLogger(__name__)


@dataclass
class AddResult:
    """Outcome of one ``add``."""
    ref: DependencyRef
    resolved: ResolvedVersion
    version: Optional[str] = None
    cache_path: Optional[Path] = None
    link_path: Optional[Path] = None
    from_cache: bool = False
    used_default_branch: bool = False
    fetched_ref: Optional[str] = None
    dry_run: bool = False

    @property
    def is_local(self) -> bool:
        return isinstance(self.resolved, LocalPath)


class DotDeps:
    """Wires the resolver, locator, fetcher, cache and links together for one project."""

    def __init__(
        self,
        settings: Settings,
        project_root: Optional[Path] = None,
        cache: Optional[CacheManager] = None,
        fetcher: Optional[GitFetcher] = None,
    ) -> None:
        self.settings = settings
        self.project_root = Path(project_root) if project_root else Path.cwd()
        self.cache = cache or CacheManager(default_cache_root(settings.cache_dir))
        self.fetcher = fetcher or GitFetcher(timeout=settings.git_timeout)
        self.links = LinkManager(self.project_root, settings.link_dir)

    def add(self, ref: DependencyRef, dry_run: bool = False) -> AddResult:
        """Make the source of ``ref`` available under the project's link directory.

        With ``dry_run`` the version is resolved and the cache consulted, but
        nothing is located, fetched or linked.

        Raises:
            DotDepsError: any terminal failure; nothing partial is left in the cache.
        """
        support = get_support(ref.ecosystem)
        ecosystem = ref.ecosystem.value
        if ref.version:
            resolved: ResolvedVersion = Exact(ref.version)
        else:
            resolved = resolve_version(support, ref.package_name, self.project_root)

        if isinstance(resolved, LocalPath):
            where = f" ({resolved.path})" if resolved.path else ""
            logger.info("%s is a local dependency%s; its source is already on disk, nothing to fetch", ref, where)
            return AddResult(ref=ref, resolved=resolved, dry_run=dry_run)

        package_path = support.package_path(ref.package_name)
        key = CacheKey.for_resolved(ecosystem, package_path, resolved)
        entry = self.cache.path_for(key)
        result = AddResult(ref=ref, resolved=resolved, version=key.version, cache_path=entry, dry_run=dry_run)

        if dry_run:
            result.from_cache = self.cache.exists(key)
            result.link_path = self.links.link_path(ecosystem, package_path)
            logger.info("Dry run: would link %s %s (%s)", ref, key.version, "cached" if result.from_cache else "fetch")
            return result

        self.cache.ensure_writable()
        if self.cache.exists(key):
            self.cache.touch(entry)
            result.from_cache = True
            logger.info("Using cached %s at %s", ref, entry)
        else:
            known_url = resolved.url if isinstance(resolved, GitCommit) else None
            location = locate(
                support, ref.package_name, self.settings,
                known_git_url=known_url, start_dir=self.project_root,
            )
            target, candidates = self._fetch_target(support, resolved, location)
            with Timer() as t:
                entry, fetched = self.cache.materialize(
                    key, lambda dest: self.fetcher.fetch(location.url, target, dest, candidates)
                )
            result.cache_path = entry
            result.fetched_ref = fetched.ref if fetched else None
            result.used_default_branch = bool(fetched and fetched.used_default_branch)
            if is_debug_enabled(logger):
                logger.debug(
                    "Dependency cached",
                    extra=extra_context(
                        event="cache",
                        component="pipeline",
                        action="materialize",
                        outcome="default_branch" if result.used_default_branch else "success",
                        duration_ms=t.duration_ms(),
                        path=str(entry),
                    )
                )
            self.cache.sweep_stale_staging()
            self.cache.evict_to_budget(self.settings.cache_limit_bytes, keep=entry)

        result.link_path = self.links.link(ecosystem, package_path, entry, support.normalize_name)
        return result

    @staticmethod
    def _fetch_target(
        support: EcosystemSupport, resolved: ResolvedVersion, location: RepoLocation
    ) -> Tuple[ResolvedVersion, List[str]]:
        """What to check out: a version pinned to a commit (Go pseudo-versions) skips tag lookup."""
        if not isinstance(resolved, Exact):
            return resolved, []
        commit = support.pinned_commit(resolved.version)
        if commit:
            logger.debug("%s pins commit %s", resolved.version, commit)
            return GitCommit(location.url, commit), []
        return resolved, support.tag_candidates(resolved.version, location)

    def remove(self, ref: DependencyRef, dry_run: bool = False) -> bool:
        """Remove the project link for ``ref``; the cache entry stays for reuse.

        With ``dry_run`` only reports whether a link would be removed.
        """
        support = get_support(ref.ecosystem)
        package_path = support.package_path(ref.package_name)
        if dry_run:
            return self.links.is_linked(ref.ecosystem.value, package_path)
        removed = self.links.unlink(ref.ecosystem.value, package_path)
        if not removed:
            logger.info("%s is not linked in %s", ref, self.links.root)
        return removed

    def list(self) -> List[LinkEntry]:
        return self.links.list()

    def clean(self, dry_run: bool = False) -> bool:
        """Remove the project's link directory."""
        if dry_run:
            return self.links.root.is_symlink() or self.links.root.exists()
        return self.links.clean()
