"""NPM registry client: find the source repository of a package."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from constants import Constants
from common.errors import RepoNotFound
from common.logging_utils import extra_context, is_debug_enabled, safe_url
from registry.http import fetch_metadata
from repository.url_normalize import normalize_repo_url

logger = logging.getLogger(__name__)


def package_url(package: str, url: str = Constants.REGISTRY_URL_NPM) -> str:
    """Registry document URL; the scope separator must be encoded (@scope%2fname)."""
    return url + package.replace("/", "%2f")


def extract_repo_url(data: Dict[str, Any]) -> Optional[str]:
    """Pick the repository URL out of an npm packument.

    ``repository`` may be a string (``github:org/repo``, ``org/repo``, a URL)
    or an object with a ``url`` field. ``homepage`` is used only when it sits
    on a known git host.
    """
    repository = data.get("repository")
    raw = repository.get("url") if isinstance(repository, dict) else repository
    url = normalize_repo_url(raw) if isinstance(raw, str) else None
    if url:
        return url
    homepage = data.get("homepage")
    return normalize_repo_url(homepage) if isinstance(homepage, str) else None


def locate_repo(package: str, url: str = Constants.REGISTRY_URL_NPM) -> str:
    """Return the repository URL the npm registry advertises for ``package``.

    Raises:
        RepoNotFound: if the registry has no entry or no repository URL.
    """
    fullurl = package_url(package, url)
    data = fetch_metadata(
        fullurl,
        ecosystem="node",
        package=package,
        headers={"Accept": "application/json"},
    )
    repo = extract_repo_url(data)
    if is_debug_enabled(logger):
        logger.debug(
            "npm repository lookup",
            extra=extra_context(
                event="decision",
                component="npm_client",
                action="locate_repo",
                outcome="found" if repo else "missing",
                target=safe_url(fullurl),
                package=package,
            )
        )
    if not repo:
        raise RepoNotFound("node", package, "npm metadata has no repository field")
    return repo
