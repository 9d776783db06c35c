"""Go module path to repository mapping.

Go has no metadata registry to ask; the module path is the repository
location, modulo a few conventions:

* a trailing major-version element (``/v2``) is not part of the repository;
* on github.com-style hosts the repository is the first three elements and
  anything below it is a subdirectory whose tags are prefixed with it;
* ``golang.org/x/<name>`` lives on go.googlesource.com and ``gopkg.in`` on GitHub;
* anything else is resolved through the ``go-import`` meta tag served at
  ``https://<path>?go-get=1``.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from constants import Constants
from common.http_client import fetch_text
from versioning.models import RepoLocation, normalize_version

logger = logging.getLogger(__name__)

_MAJOR_SUFFIX_RE = re.compile(r"^v(\d+)$")
_GOPKG_RE = re.compile(r"^gopkg\.in/(?:([^/]+)/)?([^/.]+)\.v\d+(?:/(.*))?$")
_GO_IMPORT_RE = re.compile(
    r"""<meta\s+[^>]*?name=["']go-import["'][^>]*?content=["']([^"']+)["']""",
    re.IGNORECASE,
)
_GO_IMPORT_REVERSED_RE = re.compile(
    r"""<meta\s+[^>]*?content=["']([^"']+)["'][^>]*?name=["']go-import["']""",
    re.IGNORECASE,
)

_THREE_SEGMENT_HOSTS = ("github.com", "gitlab.com", "bitbucket.org", "codeberg.org")
_PSEUDO_VERSION_RE = re.compile(
    r"^v\d+\.\d+\.\d+-(?:[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*\.)?\d{14}-([0-9a-f]{12})(?:\+incompatible)?$"
)


def strip_major_version(module_path: str) -> str:
    """Drop a trailing ``/vN`` (N >= 2) element: ``github.com/o/r/v2`` -> ``github.com/o/r``."""
    head, _, last = module_path.rstrip("/").rpartition("/")
    match = _MAJOR_SUFFIX_RE.match(last)
    if head and match and int(match.group(1)) >= 2:
        return head
    return module_path.rstrip("/")


def known_host_repo(module_path: str) -> Optional[RepoLocation]:
    """Map a module path to its repository without any network access, if possible."""
    path = strip_major_version(module_path)
    segments = path.split("/")
    host = segments[0].lower()

    if host in _THREE_SEGMENT_HOSTS:
        if len(segments) < 3:
            return None
        return RepoLocation(
            url=f"https://{'/'.join(segments[:3])}.git",
            subdir="/".join(segments[3:]),
        )
    if host == "golang.org" and len(segments) >= 3 and segments[1] == "x":
        return RepoLocation(
            url=f"{Constants.GO_SOURCE_URL}{segments[2]}",
            subdir="/".join(segments[3:]),
        )
    gopkg = _GOPKG_RE.match(module_path)
    if gopkg:
        user, name, rest = gopkg.groups()
        owner = user or f"go-{name}"
        return RepoLocation(url=f"https://github.com/{owner}/{name}.git", subdir=rest or "")
    return None


def parse_go_import(html: str, module_path: str) -> Optional[RepoLocation]:
    """Extract the git repository root from ``go-import`` meta tags."""
    contents = _GO_IMPORT_RE.findall(html) + _GO_IMPORT_REVERSED_RE.findall(html)
    best: Optional[RepoLocation] = None
    best_len = -1
    for content in contents:
        parts = content.split()
        if len(parts) != 3:
            continue
        prefix, vcs, repo_root = parts
        if vcs != "git":
            continue
        if module_path != prefix and not module_path.startswith(prefix + "/"):
            continue
        if len(prefix) > best_len:
            rest = strip_major_version(module_path)[len(prefix):].strip("/")
            best = RepoLocation(url=repo_root, subdir=rest)
            best_len = len(prefix)
    return best


def locate_module(module_path: str) -> RepoLocation:
    """Return the repository for a module path.

    Never raises: a vanity host that cannot be resolved falls back to
    ``https://<path>`` so the clone itself reports the failure.
    """
    repo = known_host_repo(module_path)
    if repo is not None:
        return repo

    url = f"https://{module_path}?go-get=1"
    status, _, body = fetch_text(url, context="go")
    if status == 200:
        found = parse_go_import(body, module_path)
        if found is not None:
            logger.debug("go-import for %s -> %s", module_path, found.url)
            return found
    logger.debug("No go-import metadata for %s (status %s); cloning the path directly", module_path, status)
    return RepoLocation(url=f"https://{strip_major_version(module_path)}")


def tag_candidates(version: str, subdir: str = "") -> List[str]:
    """Refs to try for a module version, most specific first.

    Modules below the repository root are tagged ``<subdir>/vX.Y.Z``;
    ``+incompatible`` is a go.mod annotation, not part of the tag.
    """
    clean = normalize_version(version.replace("+incompatible", ""))
    candidates = []
    if subdir:
        candidates.append(f"{subdir}/v{clean}")
    candidates.extend([f"v{clean}", clean])
    return candidates


def pseudo_version_commit(version: str) -> Optional[str]:
    """The commit abbreviation of a pseudo-version, or None for a tagged release.

    ``v0.0.0-20230102150405-abcdef123456``, ``v1.2.4-0.20230102150405-abcdef123456``
    and ``v1.2.3-pre.0.20230102150405-abcdef123456`` all name commit
    ``abcdef123456``; no tag exists for them.
    """
    match = _PSEUDO_VERSION_RE.match(version.strip())
    return match.group(1) if match else None
