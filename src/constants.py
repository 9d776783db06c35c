"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    EXIT_WARNINGS = 3
    USAGE_ERROR = 64


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    PROG_NAME = "dotdeps"
    REGISTRY_URL_PYPI = "https://pypi.org/pypi/"
    REGISTRY_URL_NPM = "https://registry.npmjs.org/"
    REGISTRY_URL_CRATES = "https://crates.io/api/v1/crates/"
    REGISTRY_URL_RUBYGEMS = "https://rubygems.org/api/v1/gems/"
    GO_SOURCE_URL = "https://go.googlesource.com/"
    USER_AGENT = "dotdeps (https://github.com/dotdeps/dotdeps)"

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    GIT_TIMEOUT = 300  # Timeout in seconds for a single git subprocess
    GIT_COMMIT_FETCH_DEPTH = 50

    ENV_CONFIG = "DOTDEPS_CONFIG"
    ENV_CACHE_DIR = "DOTDEPS_CACHE_DIR"
    ENV_LOG_LEVEL = "DOTDEPS_LOG_LEVEL"
    CONFIG_DIR_NAME = "dotdeps"
    CONFIG_FILE_NAMES = ["config.json", "config.yaml", "config.yml"]

    DEFAULT_CACHE_LIMIT_GB = 5
    BYTES_PER_GB = 1024 ** 3
    LINK_DIR = ".deps"
    STAGING_PREFIX = ".dotdeps-tmp-"
    STAGING_MAX_AGE_SEC = 24 * 60 * 60
    COPY_MARKER_FILE = ".dotdeps-link.json"
    CACHE_COMMIT_PREFIX_LEN = 12

    KNOWN_GIT_HOSTS = [
        "github.com",
        "gitlab.com",
        "bitbucket.org",
        "codeberg.org",
        "git.sr.ht",
    ]
