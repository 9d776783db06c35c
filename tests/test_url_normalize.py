"""Tests for repository URL normalization."""

import pytest

from repository.url_normalize import (
    expand_shorthand,
    is_known_git_host,
    looks_like_git_source,
    normalize_repo_url,
    split_git_source,
    to_https,
)


class TestNormalizeRepoUrl:
    """Registry and lockfile spellings reduce to a clonable HTTPS URL."""

    @pytest.mark.parametrize("raw,expected", [
        ("https://github.com/psf/requests", "https://github.com/psf/requests.git"),
        ("https://github.com/psf/requests.git", "https://github.com/psf/requests.git"),
        ("git+https://github.com/lodash/lodash.git", "https://github.com/lodash/lodash.git"),
        ("git+ssh://git@github.com/org/repo.git", "https://github.com/org/repo.git"),
        ("git://github.com/org/repo.git", "https://github.com/org/repo.git"),
        ("git@github.com:org/repo.git", "https://github.com/org/repo.git"),
        ("github:org/repo", "https://github.com/org/repo.git"),
        ("org/repo", "https://github.com/org/repo.git"),
        ("http://github.com/org/repo", "https://github.com/org/repo.git"),
        ("https://github.com/rails/rails/tree/v7.1.0", "https://github.com/rails/rails.git"),
        ("https://github.com/org/repo/blob/main/README.md", "https://github.com/org/repo.git"),
        ("https://github.com/org/repo#readme", "https://github.com/org/repo.git"),
        ("https://gitlab.com/group/sub/project/-/tree/main", "https://gitlab.com/group/sub/project.git"),
    ])
    def test_known_host_spellings(self, raw, expected):
        assert normalize_repo_url(raw) == expected

    def test_plain_website_rejected(self):
        assert normalize_repo_url("https://requests.readthedocs.io") is None

    def test_plain_website_accepted_without_host_check(self):
        assert normalize_repo_url("https://git.example.org/team/lib", require_known_host=False) == \
            "https://git.example.org/team/lib"

    def test_unknown_host_with_git_suffix_kept(self):
        assert normalize_repo_url("https://git.example.org/team/lib.git") == "https://git.example.org/team/lib.git"

    @pytest.mark.parametrize("raw", [None, "", "   ", "/local/path", "file:///tmp/repo"])
    def test_unusable_values(self, raw):
        assert normalize_repo_url(raw, require_known_host=False) is None


class TestHelpers:
    """Test the smaller building blocks."""

    def test_to_https_ssh_with_colon_path(self):
        assert to_https("ssh://git@github.com:org/repo.git") == "https://github.com/org/repo.git"

    def test_to_https_ssh_with_port(self):
        assert to_https("ssh://git@example.org:2222/org/repo.git") == "https://example.org/org/repo.git"

    def test_expand_shorthand_rejects_urls(self):
        assert expand_shorthand("https://github.com/org/repo") is None
        assert expand_shorthand("gitlab:group/project") == "https://gitlab.com/group/project"

    def test_known_hosts(self):
        assert is_known_git_host("https://github.com/org/repo")
        assert is_known_git_host("https://git.sr.ht/~user/repo")
        assert not is_known_git_host("https://example.com/org/repo")

    def test_looks_like_git_source(self):
        assert looks_like_git_source("git+https://github.com/org/repo.git#abc")
        assert looks_like_git_source("https://github.com/org/repo.git#abc")
        assert not looks_like_git_source("4.17.21")
        assert not looks_like_git_source("https://registry.npmjs.org/lodash/-/lodash-4.17.21.tgz")


class TestSplitGitSource:
    """Split lockfile git specs into (url, commit)."""

    def test_fragment_commit(self):
        assert split_git_source("git+ssh://git@github.com/org/repo.git#abc123") == (
            "https://github.com/org/repo.git", "abc123"
        )

    def test_query_dropped(self):
        assert split_git_source("git+https://github.com/org/repo?rev=v1#def456") == (
            "https://github.com/org/repo", "def456"
        )

    def test_yarn_berry_commit_fragment(self):
        assert split_git_source("https://github.com/org/repo.git#commit=abc&workspace=pkg") == (
            "https://github.com/org/repo.git", "abc"
        )

    def test_no_fragment_means_head(self):
        assert split_git_source("https://github.com/org/repo.git") == ("https://github.com/org/repo.git", "HEAD")
