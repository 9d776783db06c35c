"""Tests for Go module resolution: go.mod/go.sum parsing and module path mapping."""

from unittest.mock import patch

import pytest

from common.errors import LockfileParseError, PackageNotFound
from registry.golang.client import (
    known_host_repo,
    locate_module,
    parse_go_import,
    pseudo_version_commit,
    strip_major_version,
    tag_candidates,
)
from registry.golang.lockfile_parser import find_version, parse_go_mod, parse_go_sum
from versioning.models import Exact, LocalPath, RepoLocation


GO_MOD = """module example.com/app

go 1.21

require (
\tgithub.com/org/repo/v2 v2.1.0
\tgolang.org/x/net v0.17.0 // indirect
\tgithub.com/Azure/azure-sdk-for-go/sdk/azcore v1.9.0
)

require github.com/single/line v1.0.0

replace github.com/forked/lib => ../lib

replace github.com/other/mod => github.com/fork/mod v1.2.3
"""


class TestGoModParser:
    """Test go.mod parser."""

    def test_block_require(self, tmp_path):
        gomod = tmp_path / "go.mod"
        gomod.write_text(GO_MOD)
        assert parse_go_mod(gomod, "github.com/org/repo/v2") == Exact("v2.1.0")

    def test_trailing_comment_ignored(self, tmp_path):
        gomod = tmp_path / "go.mod"
        gomod.write_text(GO_MOD)
        assert parse_go_mod(gomod, "golang.org/x/net") == Exact("v0.17.0")

    def test_single_line_require(self, tmp_path):
        gomod = tmp_path / "go.mod"
        gomod.write_text(GO_MOD)
        assert parse_go_mod(gomod, "github.com/single/line") == Exact("v1.0.0")

    def test_case_insensitive_lookup(self, tmp_path):
        gomod = tmp_path / "go.mod"
        gomod.write_text(GO_MOD)
        assert parse_go_mod(gomod, "github.com/azure/azure-sdk-for-go/sdk/azcore") == Exact("v1.9.0")

    def test_local_replace(self, tmp_path):
        gomod = tmp_path / "go.mod"
        gomod.write_text(GO_MOD)
        assert parse_go_mod(gomod, "github.com/forked/lib") == LocalPath("../lib")

    def test_module_replace_is_not_a_requirement(self, tmp_path):
        gomod = tmp_path / "go.mod"
        gomod.write_text(GO_MOD)
        with pytest.raises(PackageNotFound):
            parse_go_mod(gomod, "github.com/other/mod")

    def test_unterminated_block(self, tmp_path):
        gomod = tmp_path / "go.mod"
        gomod.write_text("module x\n\nrequire (\n\tgithub.com/a/b v1.0.0\n")
        with pytest.raises(LockfileParseError) as exc:
            parse_go_mod(gomod, "github.com/a/b")
        assert exc.value.location == "line 3"


class TestGoSumParser:
    """Test go.sum parser."""

    def test_version_and_go_mod_lines(self, tmp_path):
        gosum = tmp_path / "go.sum"
        gosum.write_text(
            "github.com/pkg/errors v0.9.1 h1:FEBLx1zS214owpjy7qsBeixbURkuhQAwrK5UwLGTwt4=\n"
            "github.com/pkg/errors v0.9.1/go.mod h1:bwawxfHBFNV+L2hUp1rHADufV3IMtnDRdf1r5NINEl0=\n"
        )
        assert parse_go_sum(gosum, "github.com/pkg/errors") == Exact("v0.9.1")

    def test_go_mod_only_line(self, tmp_path):
        gosum = tmp_path / "go.sum"
        gosum.write_text("golang.org/x/sys v0.13.0/go.mod h1:oPkhp1MJrh7nUepCBck5+mAzfO9JrbApNNgaTdGDITg=\n")
        assert parse_go_sum(gosum, "golang.org/x/sys") == Exact("v0.13.0")

    def test_malformed_line(self, tmp_path):
        gosum = tmp_path / "go.sum"
        gosum.write_text("github.com/pkg/errors v0.9.1\n")
        with pytest.raises(LockfileParseError) as exc:
            parse_go_sum(gosum, "github.com/pkg/errors")
        assert exc.value.location == "line 1"

    def test_find_version_dispatch(self, tmp_path):
        gosum = tmp_path / "go.sum"
        gosum.write_text("github.com/a/b v1.0.0 h1:x=\n")
        assert find_version(gosum, "github.com/a/b") == Exact("v1.0.0")


class TestModulePathMapping:
    """Test module path to repository mapping."""

    def test_strip_major_version(self):
        assert strip_major_version("github.com/org/repo/v2") == "github.com/org/repo"
        assert strip_major_version("github.com/org/repo/v1") == "github.com/org/repo/v1"
        assert strip_major_version("github.com/org/repo") == "github.com/org/repo"

    def test_github_major_version_module(self):
        assert known_host_repo("github.com/org/repo/v2") == RepoLocation("https://github.com/org/repo.git", "")

    def test_github_submodule(self):
        assert known_host_repo("github.com/Azure/azure-sdk-for-go/sdk/azcore") == RepoLocation(
            "https://github.com/Azure/azure-sdk-for-go.git", "sdk/azcore"
        )

    def test_golang_x(self):
        assert known_host_repo("golang.org/x/net/http2") == RepoLocation(
            "https://go.googlesource.com/net", "http2"
        )

    def test_gopkg_in(self):
        assert known_host_repo("gopkg.in/yaml.v3") == RepoLocation("https://github.com/go-yaml/yaml.git", "")
        assert known_host_repo("gopkg.in/user/pkg.v1") == RepoLocation("https://github.com/user/pkg.git", "")

    def test_unknown_host(self):
        assert known_host_repo("go.uber.org/zap") is None

    def test_tag_candidates_submodule_first(self):
        assert tag_candidates("v1.9.0", "sdk/azcore") == ["sdk/azcore/v1.9.0", "v1.9.0", "1.9.0"]

    def test_tag_candidates_incompatible(self):
        assert tag_candidates("v2.0.0+incompatible") == ["v2.0.0", "2.0.0"]

    def test_parse_go_import_longest_prefix(self):
        html = (
            '<html><head>'
            '<meta name="go-import" content="go.uber.org/zap git https://github.com/uber-go/zap">'
            '<meta name="go-import" content="go.uber.org git https://example.org/other">'
            '</head></html>'
        )
        assert parse_go_import(html, "go.uber.org/zap") == RepoLocation("https://github.com/uber-go/zap", "")

    @patch("registry.golang.client.fetch_text")
    def test_locate_module_vanity_import(self, mock_fetch):
        mock_fetch.return_value = (
            200, {}, '<meta name="go-import" content="go.uber.org/zap git https://github.com/uber-go/zap">'
        )
        assert locate_module("go.uber.org/zap") == RepoLocation("https://github.com/uber-go/zap", "")
        mock_fetch.assert_called_once()
        assert mock_fetch.call_args[0][0] == "https://go.uber.org/zap?go-get=1"

    @patch("registry.golang.client.fetch_text")
    def test_locate_module_known_host_makes_no_request(self, mock_fetch):
        locate_module("github.com/org/repo/v2")
        mock_fetch.assert_not_called()

    @patch("registry.golang.client.fetch_text")
    def test_locate_module_falls_back_to_path(self, mock_fetch):
        mock_fetch.return_value = (0, {}, "connection refused")
        assert locate_module("example.org/mod/v3") == RepoLocation("https://example.org/mod", "")

    @pytest.mark.parametrize("version", [
        "v0.0.0-20230102150405-abcdef123456",
        "v1.2.4-0.20230102150405-abcdef123456",
        "v1.2.3-pre.0.20230102150405-abcdef123456",
        "v2.0.1-0.20230102150405-abcdef123456+incompatible",
    ])
    def test_pseudo_version_names_commit(self, version):
        assert pseudo_version_commit(version) == "abcdef123456"

    @pytest.mark.parametrize("version", ["v1.2.3", "v1.0.0-rc.1", "v0.0.0-2023-abcdef123456"])
    def test_release_versions_have_no_commit(self, version):
        assert pseudo_version_commit(version) is None
