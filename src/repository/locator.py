"""Repository location: known git URL, then user override, then registry."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from common.config import Settings
from common.errors import RepoNotFound
from common.logging_utils import extra_context, is_debug_enabled, safe_url
from registry.ecosystems import EcosystemSupport
from versioning.models import RepoLocation

from .url_normalize import normalize_repo_url

logger = logging.getLogger(__name__)


def locate(
    support: EcosystemSupport,
    package: str,
    settings: Settings,
    *,
    known_git_url: Optional[str] = None,
    start_dir: Optional[Path] = None,
) -> RepoLocation:
    """Determine a clonable repository for a package.

    Order:
        1. ``known_git_url`` from the lockfile, used as-is.
        2. The override table (case-insensitive, also by normalized name).
        3. The ecosystem registry, queried once.

    Raises:
        RepoNotFound: when the registry has nothing usable; the message points
            at the config file so the user can add an override.
    """
    ecosystem = support.ecosystem.value
    if known_git_url:
        _log_source("lockfile", ecosystem, package, known_git_url)
        return RepoLocation(known_git_url)

    override = settings.repo_override(support.ecosystem, [package], support.normalize_name)
    if override:
        url = normalize_repo_url(override, require_known_host=False) or override
        _log_source("override", ecosystem, package, url)
        return RepoLocation(url, support.override_subdir(package))

    try:
        location = support.locate_repo(package, start_dir or Path.cwd())
    except RepoNotFound as e:
        raise RepoNotFound(ecosystem, package, e.detail, settings.config_path or "") from e
    _log_source("registry", ecosystem, package, location.url)
    return location


def _log_source(source: str, ecosystem: str, package: str, url: str) -> None:
    logger.info("Repository for %s:%s from %s: %s", ecosystem, package, source, safe_url(url))
    if is_debug_enabled(logger):
        logger.debug(
            "Repository located",
            extra=extra_context(
                event="decision",
                component="locator",
                action="locate",
                outcome=source,
                target=safe_url(url),
                package=package,
            )
        )
