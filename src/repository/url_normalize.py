"""Repository URL normalization shared by lockfile parsers and registry clients.

Registries and lockfiles spell repository locations many ways
(``git+ssh://git@host/org/repo.git``, ``git@host:org/repo``, ``github:org/repo``,
``https://github.com/org/repo/tree/main``). Everything here reduces those to a
clonable HTTPS URL.
"""
from __future__ import annotations

import re
from typing import Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

from constants import Constants

_SHORTHAND_HOSTS = {
    "github": "github.com",
    "gitlab": "gitlab.com",
    "bitbucket": "bitbucket.org",
}

# Hosts whose repository root is always exactly /<owner>/<repo>
_TWO_SEGMENT_HOSTS = {"github.com", "bitbucket.org", "codeberg.org"}

_WEB_PATH_MARKERS = ("/tree/", "/blob/", "/releases/", "/issues", "/wiki", "/-/")

_SCP_RE = re.compile(r"^(?:[\w.-]+@)([\w.-]+):(?!//)(.+)$")


def host_of(url: str) -> str:
    """Return the lowercase host of an http(s) URL, or '' when there is none."""
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def is_known_git_host(url: str) -> bool:
    """Return True when the URL points at a recognised git hosting service."""
    host = host_of(url)
    if not host:
        return False
    return any(host == known or host.endswith("." + known) for known in Constants.KNOWN_GIT_HOSTS) \
        or host.endswith("sr.ht")


def to_https(url: str) -> str:
    """Rewrite git transport spellings to an https:// URL; other URLs pass through."""
    url = url.strip()
    if url.startswith("git+"):
        url = url[len("git+"):]
    if url.startswith("git://"):
        return "https://" + url[len("git://"):]
    if url.startswith("ssh://"):
        rest = url[len("ssh://"):]
        if "@" in rest.split("/", 1)[0]:
            rest = rest.split("@", 1)[1]
        host, _, path = rest.partition("/")
        # ssh://git@host:org/repo is occasionally seen; the colon is not a port
        if ":" in host and not host.split(":", 1)[1].isdigit():
            host, extra = host.split(":", 1)
            path = f"{extra}/{path}" if path else extra
        else:
            host = host.split(":", 1)[0]
        return f"https://{host}/{path}"
    match = _SCP_RE.match(url)
    if match and "://" not in url:
        return f"https://{match.group(1)}/{match.group(2)}"
    return url


def expand_shorthand(spec: str) -> Optional[str]:
    """Expand ``github:org/repo``, ``gitlab:org/repo`` and bare ``org/repo``."""
    spec = spec.strip()
    prefix, sep, rest = spec.partition(":")
    if sep and prefix in _SHORTHAND_HOSTS and not rest.startswith("//"):
        return f"https://{_SHORTHAND_HOSTS[prefix]}/{rest}"
    if "://" in spec or spec.startswith("git@") or ":" in spec:
        return None
    parts = spec.split("/")
    if len(parts) == 2 and all(parts) and not spec.startswith((".", "/", "~")):
        return f"https://github.com/{spec}"
    return None


def strip_web_paths(url: str) -> str:
    """Cut browser-only suffixes (/tree/main, /blob/x, /releases, #readme, ?query)."""
    parts = urlsplit(url)
    path = parts.path
    cuts = [idx for idx in (path.find(marker) for marker in _WEB_PATH_MARKERS) if idx != -1]
    if cuts:
        path = path[:min(cuts)]
    host = (parts.hostname or "").lower()
    if host in _TWO_SEGMENT_HOSTS:
        segments = [s for s in path.split("/") if s]
        if len(segments) > 2:
            path = "/" + "/".join(segments[:2])
    path = path.rstrip("/")
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


def normalize_repo_url(url: Optional[str], *, require_known_host: bool = True) -> Optional[str]:
    """Normalize a repository URL to a clonable HTTPS form.

    Args:
        url: Raw URL from a registry, lockfile or override.
        require_known_host: Reject URLs that are neither on a known git host
            nor end in ``.git`` (registry homepages are often plain websites).

    Returns:
        The normalized URL, or None when the input is unusable.
    """
    if not url or not isinstance(url, str) or not url.strip():
        return None
    expanded = expand_shorthand(url)
    candidate = expanded if expanded else to_https(url)
    if candidate.startswith("http://"):
        candidate = "https://" + candidate[len("http://"):]
    if not candidate.startswith("https://"):
        if "://" in candidate or candidate.startswith(("/", ".", "~")):
            return None
        candidate = "https://" + candidate
    candidate = strip_web_paths(candidate)
    known = is_known_git_host(candidate)
    if require_known_host and not known and not candidate.endswith(".git"):
        return None
    if known and not candidate.endswith(".git"):
        candidate += ".git"
    return candidate


def looks_like_git_source(spec: str) -> bool:
    """Return True when a lockfile version/resolved field names a git source."""
    spec = spec.strip()
    return (
        spec.startswith(("git+", "git://", "git@", "ssh://", "github:", "gitlab:", "bitbucket:"))
        or (".git" in spec and "#" in spec)
    )


def split_git_source(spec: str) -> Tuple[str, str]:
    """Split a git source spec into (clone URL, commit).

    Handles ``git+https://host/repo.git?rev=main#<sha>`` (uv, Cargo),
    ``git+ssh://git@host/repo.git#<sha>`` (npm), ``repo.git#commit=<sha>``
    (yarn berry) and specs without a fragment, whose commit is ``"HEAD"``.
    """
    spec = spec.strip()
    url, _, fragment = spec.partition("#")
    commit = fragment.strip()
    if commit.startswith("commit="):
        commit = commit[len("commit="):]
    # yarn berry may append "&other=..." to the fragment
    commit = commit.split("&", 1)[0]
    expanded = expand_shorthand(url)
    clean = expanded if expanded else to_https(url)
    clean = clean.split("?", 1)[0]
    return clean, commit or "HEAD"
