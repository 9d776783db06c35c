"""PyPI registry client: find the source repository of a distribution."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from constants import Constants
from common.errors import RepoNotFound
from common.logging_utils import extra_context, is_debug_enabled, safe_url
from registry.http import fetch_metadata
from repository.url_normalize import is_known_git_host, normalize_repo_url

logger = logging.getLogger(__name__)

# project_urls labels in the order they are trusted
PROJECT_URL_KEYS = ["source", "repository", "source code", "code", "github", "homepage"]


def extract_repo_url(info: Dict[str, Any]) -> Optional[str]:
    """Pick the repository URL out of the ``info`` block of PyPI JSON.

    Args:
        info: The ``info`` object of https://pypi.org/pypi/<name>/json

    Returns:
        A normalized clone URL, or None when nothing looks like a git repo.
    """
    project_urls = info.get("project_urls") or {}
    if not isinstance(project_urls, dict):
        project_urls = {}
    by_label = {str(k).strip().lower(): v for k, v in project_urls.items() if isinstance(v, str)}

    for key in PROJECT_URL_KEYS:
        url = normalize_repo_url(by_label.get(key))
        if url:
            return url

    # any other label pointing at a git host (e.g. "Changelog" on GitHub)
    for value in by_label.values():
        if is_known_git_host(value):
            url = normalize_repo_url(value)
            if url:
                return url

    return normalize_repo_url(info.get("home_page"))


def locate_repo(package: str, url: str = Constants.REGISTRY_URL_PYPI) -> str:
    """Return the repository URL PyPI advertises for ``package``.

    Raises:
        RepoNotFound: if the registry has no entry or no repository URL.
    """
    fullurl = f"{url}{package}/json"
    data = fetch_metadata(fullurl, ecosystem="python", package=package)
    info = data.get("info") or {}
    repo = extract_repo_url(info) if isinstance(info, dict) else None
    if is_debug_enabled(logger):
        logger.debug(
            "PyPI repository lookup",
            extra=extra_context(
                event="decision",
                component="pypi_client",
                action="locate_repo",
                outcome="found" if repo else "missing",
                target=safe_url(fullurl),
                package=package,
            )
        )
    if not repo:
        raise RepoNotFound("python", package, "PyPI metadata lists no source repository")
    return repo
