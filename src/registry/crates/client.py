"""crates.io registry client: find the source repository of a crate."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from constants import Constants
from common.errors import RepoNotFound
from registry.http import fetch_metadata
from repository.url_normalize import normalize_repo_url

logger = logging.getLogger(__name__)


def extract_repo_url(data: Dict[str, Any]) -> Optional[str]:
    """Use ``crate.repository``, then ``crate.homepage`` when it is a git host."""
    crate = data.get("crate") or {}
    if not isinstance(crate, dict):
        return None
    for field in ("repository", "homepage"):
        url = normalize_repo_url(crate.get(field)) if isinstance(crate.get(field), str) else None
        if url:
            return url
    return None


def locate_repo(package: str, url: str = Constants.REGISTRY_URL_CRATES) -> str:
    """Return the repository URL crates.io advertises for ``package``.

    crates.io rejects requests without a User-Agent; ``fetch_text`` always
    sends one.

    Raises:
        RepoNotFound: if the registry has no entry or no repository URL.
    """
    data = fetch_metadata(f"{url}{package}", ecosystem="rust", package=package)
    repo = extract_repo_url(data)
    if not repo:
        raise RepoNotFound("rust", package, "crates.io metadata has no repository field")
    logger.debug("crates.io repository for %s: %s", package, repo)
    return repo
