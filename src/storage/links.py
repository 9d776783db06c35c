"""Project-local links into the cache.

A project sees cached sources at ``<project>/<link dir>/<ecosystem>/<package
path>``. Each link is an absolute symlink to one cache entry; where symlinks
cannot be created the entry is copied instead and a marker file records where
the copy came from.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence

from constants import Constants
from common.errors import LinkCreationFailed
from common.logging_utils import extra_context, is_debug_enabled

logger = logging.getLogger(__name__)


@dataclass
class LinkEntry:
    """One dependency linked into a project."""
    ecosystem: str
    package: str
    version: str
    path: Path
    target: str
    is_broken: bool = False
    is_copy: bool = False

    @property
    def ref(self) -> str:
        return f"{self.ecosystem}:{self.package}"


def _is_copy(path: Path) -> bool:
    return path.is_dir() and not path.is_symlink() and (path / Constants.COPY_MARKER_FILE).is_file()


def _remove_path(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


def _read_marker(path: Path) -> dict:
    try:
        with open(path / Constants.COPY_MARKER_FILE, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, ValueError) as e:
        logger.warning("Unreadable copy marker in %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


class LinkManager:
    """Creates, lists and removes links under one project's link directory."""

    def __init__(self, project_root: Path, link_dir: str = Constants.LINK_DIR) -> None:
        self.project_root = Path(project_root)
        self.root = self.project_root / link_dir

    def link_path(self, ecosystem: str, package_path: Sequence[str]) -> Path:
        return self.root.joinpath(ecosystem, *package_path)

    def _remove_aliases(self, link: Path, normalize_name: Callable[[str], str]) -> None:
        """Drop siblings naming the same package under another spelling of the ecosystem."""
        if not link.parent.is_dir():
            return
        key = normalize_name(link.name)
        for sibling in link.parent.iterdir():
            if sibling.name == link.name or sibling.name.startswith(Constants.STAGING_PREFIX):
                continue
            if normalize_name(sibling.name) != key:
                continue
            if sibling.is_symlink() or _is_copy(sibling):
                logger.debug("Removing alias link %s", sibling)
                _remove_path(sibling)

    def _check_parents(self, link: Path) -> None:
        """Refuse link paths that would write through another link or leave the link dir."""
        try:
            relative = link.relative_to(self.root)
        except ValueError as e:
            raise LinkCreationFailed(str(link), f"outside {self.root}") from e
        if any(part in ("", ".", "..") for part in relative.parts):
            raise LinkCreationFailed(str(link), "invalid path segment")
        linked = self._linked_parent(link)
        if linked is not None:
            raise LinkCreationFailed(
                str(link), f"{linked} is a linked package; remove it before linking a package nested under it"
            )

    def _linked_parent(self, link: Path) -> Optional[Path]:
        """The first directory between the link dir and ``link`` that is itself a link."""
        current = self.root
        for part in link.relative_to(self.root).parts[:-1]:
            current = current / part
            if current.is_symlink() or _is_copy(current):
                return current
        return None

    def link(
        self,
        ecosystem: str,
        package_path: Sequence[str],
        cache_dir: Path,
        normalize_name: Callable[[str], str] = str.lower,
    ) -> Path:
        """Point the project's link for a package at ``cache_dir``.

        Args:
            ecosystem: Ecosystem tag, the first path segment under the link dir.
            package_path: Normalized package path segments.
            cache_dir: Cache entry to expose.
            normalize_name: The ecosystem's name normalizer; siblings it maps
                to the same name are stale aliases and are removed.

        Returns:
            Path: the link path.

        Raises:
            LinkCreationFailed: the path collides with another link, or neither
                a symlink nor a copy could be created.
        """
        link = self.link_path(ecosystem, package_path)
        target = Path(cache_dir).resolve()
        self._check_parents(link)
        try:
            link.parent.mkdir(parents=True, exist_ok=True)
            root = self.root.resolve()
            parent = link.parent.resolve()
            if parent != root and root not in parent.parents:
                raise LinkCreationFailed(str(link), f"{link.parent} resolves outside {self.root}")
            self._remove_aliases(link, normalize_name)
            # a real directory (an earlier copy) cannot be replaced by os.replace
            if link.is_dir() and not link.is_symlink():
                if not _is_copy(link):
                    raise LinkCreationFailed(
                        str(link), "a directory holding other linked packages is in the way"
                    )
                shutil.rmtree(link)
        except OSError as e:
            raise LinkCreationFailed(str(link), str(e)) from e

        temp = link.parent / f"{Constants.STAGING_PREFIX}{link.name}-{uuid.uuid4().hex[:8]}"
        try:
            os.symlink(target, temp, target_is_directory=True)
        except (OSError, NotImplementedError) as e:
            logger.debug("Symlink %s failed (%s); falling back to copy", link, e)
            self._copy(link, target)
            return link
        try:
            os.replace(temp, link)
        except OSError as e:
            temp.unlink()
            raise LinkCreationFailed(str(link), str(e)) from e

        if is_debug_enabled(logger):
            logger.debug(
                "Linked dependency",
                extra=extra_context(
                    event="link",
                    component="links",
                    action="symlink",
                    outcome="success",
                    link=str(link),
                    target=str(target),
                )
            )
        return link

    def _copy(self, link: Path, target: Path) -> None:
        logger.warning(
            "Symlinks unavailable; copying %s to %s (uses additional disk space per project)",
            target, link,
        )
        try:
            _remove_path(link)
            shutil.copytree(target, link, symlinks=True)
            marker = {"source": str(target), "version": target.name}
            with open(link / Constants.COPY_MARKER_FILE, "w", encoding="utf-8") as fh:
                json.dump(marker, fh, indent=2)
        except (OSError, shutil.Error) as e:
            if link.exists():
                shutil.rmtree(link, ignore_errors=True)
            raise LinkCreationFailed(str(link), str(e)) from e

    def _prune_empty(self, directory: Path) -> None:
        root = self.root.resolve()
        current = directory
        while current.exists() and current.resolve() != root and root in current.resolve().parents:
            try:
                current.rmdir()
            except OSError:
                return
            current = current.parent

    def is_linked(self, ecosystem: str, package_path: Sequence[str]) -> bool:
        """True when the package has a link or copy of its own.

        Paths inside another linked package and plain directories that only
        group other links do not count.
        """
        link = self.link_path(ecosystem, package_path)
        if self._linked_parent(link) is not None:
            logger.debug("%s lies inside another link", link)
            return False
        return link.is_symlink() or _is_copy(link)

    def unlink(self, ecosystem: str, package_path: Sequence[str]) -> bool:
        """Remove a link or copy. Returns False when there was nothing to remove."""
        if not self.is_linked(ecosystem, package_path):
            return False
        link = self.link_path(ecosystem, package_path)
        _remove_path(link)
        self._prune_empty(link.parent)
        logger.debug("Removed link %s", link)
        return True

    def _entries_under(self, directory: Path, ecosystem: str, segments: List[str]) -> Iterator[LinkEntry]:
        for child in sorted(directory.iterdir()):
            if child.name.startswith(Constants.STAGING_PREFIX):
                continue
            parts = segments + [child.name]
            package = "/".join(parts)
            if child.is_symlink():
                target = os.readlink(child)
                yield LinkEntry(
                    ecosystem=ecosystem,
                    package=package,
                    version=Path(target).name,
                    path=child,
                    target=target,
                    is_broken=not child.exists(),
                )
            elif child.is_dir() and (child / Constants.COPY_MARKER_FILE).is_file():
                marker = _read_marker(child)
                source = str(marker.get("source", ""))
                yield LinkEntry(
                    ecosystem=ecosystem,
                    package=package,
                    version=str(marker.get("version") or Path(source).name),
                    path=child,
                    target=source,
                    is_copy=True,
                )
            elif child.is_dir():
                yield from self._entries_under(child, ecosystem, parts)

    def list(self) -> List[LinkEntry]:
        """Every link in the project, broken ones included (they are reported, not repaired)."""
        if not self.root.is_dir():
            return []
        found: List[LinkEntry] = []
        for eco_dir in sorted(self.root.iterdir()):
            if eco_dir.is_dir() and not eco_dir.is_symlink():
                found.extend(self._entries_under(eco_dir, eco_dir.name, []))
        for entry in found:
            if entry.is_broken:
                logger.warning("Broken link %s -> %s (cache entry was evicted)", entry.path, entry.target)
        return found

    def clean(self) -> bool:
        """Remove the whole link directory; the cache is untouched."""
        if not (self.root.is_symlink() or self.root.exists()):
            return False
        _remove_path(self.root)
        logger.info("Removed %s", self.root)
        return True
