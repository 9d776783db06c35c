"""Tests for argument parsing and the command-line entry point."""

import json
import logging
from unittest.mock import patch

import pytest

from args import parse_args
from constants import Constants
from dotdeps import main


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def project(tmp_path, monkeypatch):
    root = tmp_path / "project"
    root.mkdir()
    monkeypatch.chdir(root)
    monkeypatch.setenv(Constants.ENV_CONFIG, str(tmp_path / "no-config.json"))
    monkeypatch.setenv(Constants.ENV_CACHE_DIR, str(tmp_path / "cache"))
    monkeypatch.delenv(Constants.ENV_LOG_LEVEL, raising=False)
    return root


def _run(argv):
    with pytest.raises(SystemExit) as exc:
        main(argv)
    return exc.value.code


def _fake_clone(repo_url, resolved, dest, tag_candidates=()):
    (dest / ".git").mkdir()


class TestParseArgs:
    """Test parse_args."""

    def test_aliases(self):
        assert parse_args(["rm", "python:requests"]).command == "remove"
        assert parse_args(["ls"]).command == "list"

    def test_add_many(self):
        args = parse_args(["add", "python:requests", "node:@types/node@20.1.0"])
        assert args.command == "add"
        assert args.refs == ["python:requests", "node:@types/node@20.1.0"]

    def test_clean_flag(self):
        assert parse_args(["--clean"]).command == "clean"

    def test_clean_flag_with_command_rejected(self):
        with pytest.raises(SystemExit):
            parse_args(["--clean", "add", "python:requests"])

    def test_json_and_dry_run_flags(self):
        args = parse_args(["add", "python:requests", "--dry-run", "--json"])
        assert args.JSON and args.DRY_RUN
        assert parse_args(["list", "--json"]).JSON
        assert parse_args(["clean", "-n"]).DRY_RUN
        assert not parse_args(["--clean"]).DRY_RUN

    def test_list_has_no_dry_run(self):
        with pytest.raises(SystemExit):
            parse_args(["list", "--dry-run"])

    def test_loglevel_case_insensitive(self):
        assert parse_args(["--loglevel", "debug", "list"]).LOG_LEVEL == "DEBUG"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            parse_args([])

    def test_add_needs_a_ref(self):
        with pytest.raises(SystemExit):
            parse_args(["add"])


class TestMain:
    """Test main end to end with git mocked."""

    def test_add_list_remove(self, project, capsys):
        with patch("pipeline.GitFetcher.fetch", side_effect=_fake_clone):
            assert _run(["add", "go:github.com/org/repo@v1.0.0"]) == 0
        out = capsys.readouterr().out
        assert "go:github.com/org/repo@v1.0.0 1.0.0 -> .deps/go/github.com/org/repo" in out
        assert (project / ".deps" / "go" / "github.com" / "org" / "repo").is_symlink()

        assert _run(["list"]) == 0
        assert capsys.readouterr().out.strip() == "go:github.com/org/repo 1.0.0"

        assert _run(["rm", "go:github.com/org/repo"]) == 0
        assert "Removed go:github.com/org/repo" in capsys.readouterr().out
        assert _run(["remove", "go:github.com/org/repo"]) == 0
        assert "was not linked" in capsys.readouterr().out

    def test_clean(self, project, capsys):
        (project / ".deps" / "python").mkdir(parents=True)
        assert _run(["clean"]) == 0
        assert "Removed .deps" in capsys.readouterr().out
        assert not (project / ".deps").exists()
        assert _run(["--clean"]) == 0
        assert "Nothing to clean" in capsys.readouterr().out

    def test_invalid_reference_exit_code(self, project):
        assert _run(["add", "cobol:thing"]) == 64

    def test_no_lockfile_exit_code(self, project, capsys):
        with patch("versioning.resolver.find_lockfile", return_value=None):
            assert _run(["add", "rust:serde"]) == 1
        assert "rust:serde@<version>" in capsys.readouterr().err

    def test_later_refs_still_processed(self, project):
        with patch("pipeline.GitFetcher.fetch", side_effect=_fake_clone):
            assert _run(["add", "cobol:thing", "go:github.com/org/repo@1.0.0"]) == 64
        assert (project / ".deps" / "go" / "github.com" / "org" / "repo").is_symlink()

    def test_bad_config_exit_code(self, project, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text('{"cache_limit_gb": "lots"}')
        assert _run(["--config", str(bad), "list"]) == 64

    def test_local_dependency_message(self, project, capsys):
        (project / "go.mod").write_text(
            "module example.com/app\n\nrequire github.com/forked/lib v1.0.0\n\nreplace github.com/forked/lib => ../lib\n"
        )
        assert _run(["add", "go:github.com/forked/lib"]) == 0
        assert "local dependency" in capsys.readouterr().out

    def test_list_empty_message(self, project, capsys):
        assert _run(["list"]) == 0
        assert "No dependencies in .deps/" in capsys.readouterr().out


class TestJsonOutput:
    """Test --json output for each command."""

    def test_list_json_empty(self, project, capsys):
        assert _run(["list", "--json"]) == 0
        assert json.loads(capsys.readouterr().out) == {"dependencies": []}

    def test_add_list_remove_clean_json(self, project, capsys):
        with patch("pipeline.GitFetcher.fetch", side_effect=_fake_clone):
            assert _run(["add", "--json", "go:github.com/org/repo@v1.0.0"]) == 0
        added = json.loads(capsys.readouterr().out)
        assert added == {
            "ecosystem": "go",
            "package": "github.com/org/repo",
            "version": "1.0.0",
            "path": ".deps/go/github.com/org/repo",
            "cached": False,
        }

        assert _run(["list", "--json"]) == 0
        assert json.loads(capsys.readouterr().out) == {
            "dependencies": [{"ecosystem": "go", "package": "github.com/org/repo", "version": "1.0.0"}]
        }

        assert _run(["rm", "--json", "go:github.com/org/repo"]) == 0
        assert json.loads(capsys.readouterr().out) == {
            "ecosystem": "go", "package": "github.com/org/repo", "removed": True,
        }

        assert _run(["clean", "--json"]) == 0
        assert json.loads(capsys.readouterr().out) == {"cleaned": True}

    def test_add_error_json(self, project, capsys):
        assert _run(["add", "--json", "cobol:thing"]) == 64
        payload = json.loads(capsys.readouterr().out)
        assert payload["ref"] == "cobol:thing"
        assert payload["code"] == "INVALID_REFERENCE"


class TestDryRun:
    """Test --dry-run for add, remove and clean."""

    def test_add_dry_run_resolves_without_fetching(self, project, capsys):
        (project / "poetry.lock").write_text('[[package]]\nname = "requests"\nversion = "2.31.0"\n')
        with patch("pipeline.GitFetcher.fetch") as mock_fetch:
            assert _run(["add", "python:requests", "--dry-run"]) == 0
        mock_fetch.assert_not_called()
        assert "Fetching requests 2.31.0" in capsys.readouterr().out
        assert not (project / ".deps").exists()

    def test_add_dry_run_json(self, project, capsys):
        assert _run(["add", "--dry-run", "--json", "go:github.com/org/repo@1.0.0"]) == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["dry_run"] is True
        assert payload["cached"] is False
        assert payload["version"] == "1.0.0"

    def test_remove_and_clean_dry_run_keep_links(self, project, capsys):
        with patch("pipeline.GitFetcher.fetch", side_effect=_fake_clone):
            assert _run(["add", "go:github.com/org/repo@1.0.0"]) == 0
        capsys.readouterr()
        link = project / ".deps" / "go" / "github.com" / "org" / "repo"

        assert _run(["remove", "-n", "go:github.com/org/repo"]) == 0
        assert "Would remove go:github.com/org/repo" in capsys.readouterr().out
        assert _run(["clean", "--dry-run"]) == 0
        assert "Would remove .deps" in capsys.readouterr().out
        assert link.is_symlink()
