"""Token parsing utilities for dependency references."""

from typing import Optional, Tuple

from common.errors import InvalidReference

from .models import DependencyRef, Ecosystem


def split_version(spec: str) -> Tuple[str, Optional[str]]:
    """Return (package, version or None) using the rightmost-'@' rule.

    A leading '@' belongs to an npm scope (``@types/node``), never to a version.
    """
    spec = spec.strip()
    at = spec.rfind('@')
    if at <= 0:
        return spec, None
    package = spec[:at].strip()
    version = spec[at + 1:].strip()
    return package, version or None


def parse_dependency_ref(token: str) -> DependencyRef:
    """Parse ``<ecosystem>:<package>[@<version>]`` into a DependencyRef.

    Examples:
        ``python:requests@2.31.0``, ``node:@types/node``,
        ``go:github.com/org/repo/v2@1.0.0``

    Raises:
        InvalidReference: when the token is missing a part or names an unknown ecosystem.
    """
    raw = token.strip()
    if ':' not in raw:
        raise InvalidReference(
            f"Invalid dependency '{token}': expected <ecosystem>:<package>[@<version>]"
        )
    eco_part, spec = raw.split(':', 1)
    ecosystem = Ecosystem.from_token(eco_part)
    if ecosystem is None:
        supported = ", ".join(e.value for e in Ecosystem)
        raise InvalidReference(
            f"Unknown ecosystem '{eco_part}' in '{token}' (supported: {supported})"
        )
    package, version = split_version(spec)
    if not package or package == '@':
        raise InvalidReference(f"Invalid dependency '{token}': package name is empty")
    if spec.rstrip().endswith('@'):
        raise InvalidReference(f"Invalid dependency '{token}': version after '@' is empty")
    return DependencyRef(ecosystem=ecosystem, package_name=package, version=version)
