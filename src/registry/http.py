"""Shared metadata fetch for registry clients.

Wraps ``get_json`` so each registry module turns "no usable response" into a
single ``RepoNotFound`` instead of duplicating status/shape checks.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from common.errors import RepoNotFound
from common.http_client import get_json

logger = logging.getLogger(__name__)


def fetch_metadata(
    url: str,
    *,
    ecosystem: str,
    package: str,
    headers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Fetch a registry metadata document, exactly once.

    Args:
        url: Metadata endpoint for the package.
        ecosystem: Ecosystem name, used for logs and errors.
        package: Package name as the user typed it.
        headers: Optional request headers.

    Returns:
        dict: The decoded JSON object.

    Raises:
        RepoNotFound: on transport failure, non-200 status, or a non-object body.
    """
    status, _, data = get_json(url, context=ecosystem, headers=headers)
    if status == 0:
        raise RepoNotFound(ecosystem, package, "registry request failed")
    if status == 404:
        raise RepoNotFound(ecosystem, package, "package not found in registry")
    if status != 200:
        raise RepoNotFound(ecosystem, package, f"registry returned HTTP {status}")
    if not isinstance(data, dict):
        raise RepoNotFound(ecosystem, package, "registry response was not a JSON object")
    return data
