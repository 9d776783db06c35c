"""User configuration loading.

The config file is looked up at ``$DOTDEPS_CONFIG`` or
``$XDG_CONFIG_HOME/dotdeps/config.{json,yaml,yml}`` (``~/.config`` when XDG is
unset). JSON is a subset of YAML, so a single ``yaml.safe_load`` reads all
three. A missing file means defaults.

Example::

    {
      "cache_limit_gb": 5,
      "overrides": {
        "python": {"some-obscure-lib": {"repo": "https://github.com/org/lib"}}
      }
    }
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional

import yaml

from constants import Constants
from common.errors import ConfigError
from versioning.models import Ecosystem

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    """Typed view of the user configuration."""
    cache_limit_gb: float = Constants.DEFAULT_CACHE_LIMIT_GB
    overrides: Dict[Ecosystem, Dict[str, str]] = field(default_factory=dict)
    cache_dir: Optional[str] = None
    link_dir: str = Constants.LINK_DIR
    request_timeout: float = Constants.REQUEST_TIMEOUT
    git_timeout: float = Constants.GIT_TIMEOUT
    config_path: Optional[str] = None

    @property
    def cache_limit_bytes(self) -> int:
        """Budget in bytes; 0 disables eviction."""
        if self.cache_limit_gb <= 0:
            return 0
        return int(self.cache_limit_gb * Constants.BYTES_PER_GB)

    def repo_override(
        self,
        ecosystem: Ecosystem,
        names: Iterable[str],
        normalize: Callable[[str], str] = str.lower,
    ) -> Optional[str]:
        """Return the override URL for the first matching name.

        Names match case-insensitively, then after ``normalize`` (the
        ecosystem's name normalizer) is applied to both the name and the
        configured keys, so ``some_obscure_lib`` and ``some-obscure-lib``
        select the same Python override.
        """
        table = self.overrides.get(ecosystem)
        if not table:
            return None
        normalized = {normalize(key): url for key, url in table.items()}
        for name in names:
            url = table.get(name.lower()) or normalized.get(normalize(name))
            if url:
                return url
        return None


def config_dir() -> Path:
    """Directory holding the dotdeps config file."""
    base = os.environ.get("XDG_CONFIG_HOME")
    root = Path(base) if base else Path.home() / ".config"
    return root / Constants.CONFIG_DIR_NAME


def default_config_path() -> Path:
    """Return the config file path in effect, whether or not it exists."""
    env_path = os.environ.get(Constants.ENV_CONFIG)
    if env_path:
        return Path(env_path).expanduser()
    directory = config_dir()
    for name in Constants.CONFIG_FILE_NAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return directory / Constants.CONFIG_FILE_NAMES[0]


def _as_number(data: Dict[str, Any], key: str, default: float, path: Path) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"Invalid config {path}: '{key}' must be a number, got {value!r}")
    if value < 0:
        raise ConfigError(f"Invalid config {path}: '{key}' must not be negative")
    return value


def _parse_overrides(raw: Any, path: Path) -> Dict[Ecosystem, Dict[str, str]]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Invalid config {path}: 'overrides' must be a mapping")
    parsed: Dict[Ecosystem, Dict[str, str]] = {}
    for eco_key, packages in raw.items():
        ecosystem = Ecosystem.from_token(str(eco_key))
        if ecosystem is None:
            logger.warning("Ignoring overrides for unknown ecosystem '%s' in %s", eco_key, path)
            continue
        if not isinstance(packages, dict):
            raise ConfigError(
                f"Invalid config {path}: overrides.{eco_key} must map package names to repos"
            )
        table = parsed.setdefault(ecosystem, {})
        for name, entry in packages.items():
            # {"repo": url} is the documented form; a bare URL string is accepted too
            url = entry.get("repo") if isinstance(entry, dict) else entry
            if not isinstance(url, str) or not url.strip():
                raise ConfigError(
                    f"Invalid config {path}: overrides.{eco_key}.{name} needs a 'repo' URL"
                )
            table[str(name).lower()] = url.strip()
    return parsed


def load_config(path: Optional[str] = None) -> Settings:
    """Load settings from ``path`` or the default location.

    Args:
        path: Explicit config file; must exist when given.

    Returns:
        Settings: parsed settings, defaults when no file exists.

    Raises:
        ConfigError: if the file cannot be read or has the wrong shape.
    """
    config_path = Path(path).expanduser() if path else default_config_path()
    if not config_path.is_file():
        if path:
            raise ConfigError(f"Config file not found: {config_path}")
        logger.debug("No config file at %s, using defaults", config_path)
        return Settings(config_path=str(config_path))

    try:
        with open(config_path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except OSError as e:
        raise ConfigError(f"Cannot read config {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid config {config_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid config {config_path}: top level must be a mapping")

    cache_dir = data.get("cache_dir")
    link_dir = data.get("link_dir", Constants.LINK_DIR)
    if cache_dir is not None and not isinstance(cache_dir, str):
        raise ConfigError(f"Invalid config {config_path}: 'cache_dir' must be a string")
    if not isinstance(link_dir, str) or not link_dir.strip() or os.path.isabs(link_dir):
        raise ConfigError(f"Invalid config {config_path}: 'link_dir' must be a relative path")

    settings = Settings(
        cache_limit_gb=_as_number(data, "cache_limit_gb", Constants.DEFAULT_CACHE_LIMIT_GB, config_path),
        overrides=_parse_overrides(data.get("overrides"), config_path),
        cache_dir=os.path.expanduser(cache_dir) if cache_dir else None,
        link_dir=link_dir.strip(),
        request_timeout=_as_number(data, "request_timeout", Constants.REQUEST_TIMEOUT, config_path),
        git_timeout=_as_number(data, "git_timeout", Constants.GIT_TIMEOUT, config_path),
        config_path=str(config_path),
    )
    logger.debug("Loaded config from %s", config_path)
    return settings


def apply_runtime_settings(settings: Settings) -> None:
    """Push tunables into Constants so leaf modules pick them up."""
    Constants.REQUEST_TIMEOUT = settings.request_timeout  # type: ignore[assignment]
    Constants.GIT_TIMEOUT = settings.git_timeout  # type: ignore[assignment]
