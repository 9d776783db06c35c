"""RubyGems registry client: find the source repository of a gem."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from constants import Constants
from common.errors import RepoNotFound
from registry.http import fetch_metadata
from repository.url_normalize import normalize_repo_url

logger = logging.getLogger(__name__)

# source_code_uri is the field meant for repositories; homepage_uri is often a website
GEM_URL_FIELDS = ["source_code_uri", "homepage_uri"]


def extract_repo_url(data: Dict[str, Any]) -> Optional[str]:
    """Pick the repository URL out of /api/v1/gems/<name>.json.

    ``source_code_uri`` frequently points at a version page such as
    ``https://github.com/rails/rails/tree/v7.1.0``; normalization cuts it
    back to the repository root.
    """
    metadata = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
    for field in GEM_URL_FIELDS:
        raw = data.get(field) or metadata.get(field)
        url = normalize_repo_url(raw) if isinstance(raw, str) else None
        if url:
            return url
    return None


def locate_repo(package: str, url: str = Constants.REGISTRY_URL_RUBYGEMS) -> str:
    """Return the repository URL RubyGems advertises for ``package``.

    Raises:
        RepoNotFound: if the registry has no entry or no repository URL.
    """
    data = fetch_metadata(f"{url}{package}.json", ecosystem="ruby", package=package)
    repo = extract_repo_url(data)
    if not repo:
        raise RepoNotFound("ruby", package, "RubyGems metadata has no source_code_uri or homepage_uri")
    logger.debug("RubyGems repository for %s: %s", package, repo)
    return repo
