"""Tests for the shallow git fetcher, with git itself mocked."""

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from common.errors import CloneFailed, DiskFull
from repository.git import GitFetcher, parse_ls_remote
from versioning.models import Exact, GitCommit, LocalPath

URL = "https://github.com/org/repo.git"

LS_REMOTE = (
    "1111111111111111111111111111111111111111\trefs/heads/main\n"
    "2222222222222222222222222222222222222222\trefs/tags/v1.0.0\n"
    "3333333333333333333333333333333333333333\trefs/tags/v1.0.0^{}\n"
    "4444444444444444444444444444444444444444\trefs/tags/sdk/azcore/v1.9.0\n"
    "5555555555555555555555555555555555555555\trefs/tags/2.0.0\n"
)


class FakeGit:
    """Stands in for subprocess.run; clones create the destination directory."""

    def __init__(self, failures=None, ls_remote=LS_REMOTE):
        self.calls = []
        self.failures = failures or {}
        self.ls_remote = ls_remote

    def __call__(self, cmd, cwd=None, **kwargs):
        args = cmd[1:]
        self.calls.append(args)
        verb = args[0]
        if verb in self.failures:
            stderr = self.failures[verb]
            if isinstance(stderr, list):
                stderr = stderr.pop(0) if stderr else None
            if stderr is not None:
                if verb == "clone":
                    # git leaves a partial checkout behind when it dies mid-transfer
                    Path(args[-1]).mkdir(parents=True, exist_ok=True)
                return subprocess.CompletedProcess(cmd, 128, "", stderr)
        if verb == "clone":
            dest = Path(args[-1])
            (dest / ".git").mkdir(parents=True)
            (dest / "README.md").write_text("hello")
        if verb == "init":
            (Path(args[-1]) / ".git").mkdir(parents=True, exist_ok=True)
        stdout = ""
        if verb == "ls-remote":
            stdout = self.ls_remote
        elif verb == "rev-parse":
            stdout = "abcdefabcdefabcdefabcdefabcdefabcdefabcd\n"
        return subprocess.CompletedProcess(cmd, 0, stdout, "")

    def verbs(self):
        return [call[0] for call in self.calls]


class TestParseLsRemote:
    """Test ls-remote output parsing."""

    def test_peeled_tags_point_at_commit(self):
        refs = parse_ls_remote(LS_REMOTE)
        assert refs["v1.0.0"] == "3333333333333333333333333333333333333333"
        assert refs["main"] == "1111111111111111111111111111111111111111"
        assert "sdk/azcore/v1.9.0" in refs


class TestFetchVersion:
    """Exact versions clone the first existing tag candidate."""

    def test_first_existing_candidate(self, tmp_path):
        fake = FakeGit()
        dest = tmp_path / "entry"
        with patch("repository.git.subprocess.run", side_effect=fake):
            result = GitFetcher().fetch(URL, Exact("1.0.0"), dest, ["v1.0.0", "1.0.0"])
        assert result.ref == "v1.0.0"
        assert not result.used_default_branch
        clone = next(call for call in fake.calls if call[0] == "clone")
        assert clone[:4] == ["clone", "--quiet", "--depth", "1"]
        assert "--branch" in clone and "v1.0.0" in clone
        assert (dest / ".git").is_dir()

    def test_later_candidate_used(self, tmp_path):
        fake = FakeGit()
        with patch("repository.git.subprocess.run", side_effect=fake):
            result = GitFetcher().fetch(URL, Exact("2.0.0"), tmp_path / "entry", ["v2.0.0", "2.0.0"])
        assert result.ref == "2.0.0"

    def test_submodule_tag_prefix(self, tmp_path):
        fake = FakeGit()
        candidates = ["sdk/azcore/v1.9.0", "v1.9.0", "1.9.0"]
        with patch("repository.git.subprocess.run", side_effect=fake):
            result = GitFetcher().fetch(URL, Exact("v1.9.0"), tmp_path / "entry", candidates)
        assert result.ref == "sdk/azcore/v1.9.0"

    def test_missing_tag_falls_back_to_default_branch(self, tmp_path, caplog):
        fake = FakeGit()
        with patch("repository.git.subprocess.run", side_effect=fake):
            with caplog.at_level("WARNING"):
                result = GitFetcher().fetch(URL, Exact("9.9.9"), tmp_path / "entry", ["v9.9.9", "9.9.9"])
        assert result.used_default_branch
        assert result.ref is None
        clone = next(call for call in fake.calls if call[0] == "clone")
        assert "--branch" not in clone
        assert "v9.9.9" in caplog.text
        assert "default branch" in caplog.text

    def test_clone_failure_leaves_nothing(self, tmp_path):
        fake = FakeGit(failures={"clone": "fatal: unable to access 'https://github.com/org/repo.git/': Could not resolve host"})
        dest = tmp_path / "entry"
        with patch("repository.git.subprocess.run", side_effect=fake):
            with pytest.raises(CloneFailed) as exc:
                GitFetcher().fetch(URL, Exact("1.0.0"), dest, ["v1.0.0"])
        assert "Could not resolve host" in str(exc.value)
        assert not dest.exists()

    def test_ls_remote_failure_is_clone_failure(self, tmp_path):
        fake = FakeGit(failures={"ls-remote": "fatal: repository not found"})
        with patch("repository.git.subprocess.run", side_effect=fake):
            with pytest.raises(CloneFailed, match="repository not found"):
                GitFetcher().fetch(URL, Exact("1.0.0"), tmp_path / "entry", ["v1.0.0"])
        assert "clone" not in fake.verbs()

    def test_disk_full(self, tmp_path):
        fake = FakeGit(failures={"clone": "fatal: write error: No space left on device"})
        dest = tmp_path / "entry"
        with patch("repository.git.subprocess.run", side_effect=fake):
            with pytest.raises(DiskFull):
                GitFetcher().fetch(URL, Exact("1.0.0"), dest, ["v1.0.0"])
        assert not dest.exists()

    def test_timeout(self, tmp_path):
        def _timeout(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, 1)
        with patch("repository.git.subprocess.run", side_effect=_timeout):
            with pytest.raises(CloneFailed, match="timed out"):
                GitFetcher(timeout=1).fetch(URL, Exact("1.0.0"), tmp_path / "entry", ["v1.0.0"])

    def test_git_not_installed(self, tmp_path):
        with patch("repository.git.subprocess.run", side_effect=FileNotFoundError("git")):
            with pytest.raises(CloneFailed, match="not found"):
                GitFetcher().fetch(URL, Exact("1.0.0"), tmp_path / "entry", ["v1.0.0"])


class TestFetchCommit:
    """Git-pinned dependencies fetch the exact commit."""

    COMMIT = "0123456789abcdef0123456789abcdef01234567"

    def test_direct_commit_fetch(self, tmp_path):
        fake = FakeGit()
        dest = tmp_path / "entry"
        with patch("repository.git.subprocess.run", side_effect=fake):
            result = GitFetcher().fetch(URL, GitCommit(URL, self.COMMIT), dest)
        assert fake.verbs()[:4] == ["init", "remote", "fetch", "checkout"]
        fetch = fake.calls[2]
        assert fetch[-1] == self.COMMIT
        assert "--depth" in fetch and "1" in fetch
        assert result.ref == self.COMMIT

    def test_refused_commit_falls_back_to_deeper_history(self, tmp_path):
        fake = FakeGit(failures={"fetch": ["error: Server does not allow request for unadvertised object", None]})
        with patch("repository.git.subprocess.run", side_effect=fake):
            GitFetcher().fetch(URL, GitCommit(URL, self.COMMIT), tmp_path / "entry")
        fetches = [call for call in fake.calls if call[0] == "fetch"]
        assert len(fetches) == 2
        assert "50" in fetches[1]
        assert fake.calls[-2] == ["checkout", "--quiet", self.COMMIT]

    def test_unreachable_commit_cleans_up(self, tmp_path):
        fake = FakeGit(failures={
            "fetch": ["error: unadvertised object", None],
            "checkout": ["error: pathspec did not match"],
        })
        dest = tmp_path / "entry"
        with patch("repository.git.subprocess.run", side_effect=fake):
            with pytest.raises(CloneFailed, match="not reachable"):
                GitFetcher().fetch(URL, GitCommit(URL, self.COMMIT), dest)
        assert not dest.exists()

    def test_head_clones_default_branch(self, tmp_path):
        fake = FakeGit()
        with patch("repository.git.subprocess.run", side_effect=fake):
            result = GitFetcher().fetch(URL, GitCommit(URL, "HEAD"), tmp_path / "entry")
        assert fake.verbs()[0] == "clone"
        assert result.commit == "abcdefabcdefabcdefabcdefabcdefabcdefabcd"

    def test_local_path_is_rejected(self, tmp_path):
        with pytest.raises(ValueError):
            GitFetcher().fetch(URL, LocalPath("."), tmp_path / "entry")
