from __future__ import annotations

import json
from pathlib import Path

import pytest

from git_merge_repos.config import (
    Credentials,
    SubtreeConfig,
    derive_remote_name,
    is_valid_remote_name,
    is_config_pair,
    load_configs_file,
    load_configs_json,
    load_configs_tsv,
    parse_config_pairs,
    parse_credentials,
    validate_configs,
)
from git_merge_repos.errors import InvalidConfigError


@pytest.mark.parametrize(
    ("location", "expected"),
    [
        ("https://github.com/team/repo-a.git", "repo-a"),
        ("https://github.com/team/repo-a/", "repo-a"),
        ("git@github.com:team/repo-b.git", "repo-b"),
        ("ssh://git@example.com:2222/srv/tools.git", "tools"),
        ("/srv/git/library/.git", "library"),
        ("../checkouts/docs", "docs"),
        ("file:///tmp/archive.bundle", "archive"),
        ("C:\\work\\legacy.git", "legacy"),
    ],
)
def test_derive_remote_name(location: str, expected: str) -> None:
    assert derive_remote_name(location) == expected


def test_empty_remote_name_is_rejected() -> None:
    with pytest.raises(InvalidConfigError):
        SubtreeConfig("docs", "https://example.com/")


@pytest.mark.parametrize(
    "location",
    ["/repos/my repo", "/repos/.hidden", "/repos/app.lock", "/repos/a..b", "/repos/what?", "/repos/@"],
)
def test_remote_names_must_fit_in_refs(location: str) -> None:
    with pytest.raises(InvalidConfigError, match="cannot be used in a git ref name"):
        SubtreeConfig("dir", location)


def test_valid_remote_names() -> None:
    assert is_valid_remote_name("repo-a")
    assert is_valid_remote_name("lib_v2.0")
    assert not is_valid_remote_name("ref@{1}")
    assert not is_valid_remote_name("trailing.")


def test_subtree_directory_is_normalized() -> None:
    assert SubtreeConfig(".", "/repos/a").subtree_directory == "."
    assert SubtreeConfig("/", "/repos/a").subtree_directory == "."
    assert SubtreeConfig("", "/repos/a").subtree_directory == "."
    assert SubtreeConfig("./libs/core/", "/repos/a").subtree_directory == "libs/core"
    assert SubtreeConfig("libs/core", "/repos/a").path_prefix == b"libs/core/"
    assert SubtreeConfig(".", "/repos/a").path_prefix == b""


def test_subtree_directory_cannot_escape() -> None:
    with pytest.raises(InvalidConfigError):
        SubtreeConfig("../outside", "/repos/a")


def test_validate_configs_rejects_empty_and_duplicates() -> None:
    with pytest.raises(InvalidConfigError):
        validate_configs([])
    with pytest.raises(InvalidConfigError, match="share the remote name 'app'"):
        validate_configs([SubtreeConfig("a", "/one/app"), SubtreeConfig("b", "/two/app.git")])


def test_load_configs_json(tmp_path: Path) -> None:
    path = tmp_path / "repos.json"
    path.write_text(
        json.dumps(
            [
                {"url": "https://example.com/team/server.git", "directory": "server"},
                {"url": "https://example.com/team/web.git", "directory": "."},
            ]
        )
    )

    configs = load_configs_json(path)

    assert [config.remote_name for config in configs] == ["server", "web"]
    assert [config.subtree_directory for config in configs] == ["server", "."]


def test_load_configs_json_errors(tmp_path: Path) -> None:
    path = tmp_path / "repos.json"
    path.write_text("{not json")
    with pytest.raises(InvalidConfigError):
        load_configs_json(path)

    path.write_text(json.dumps({"url": "x"}))
    with pytest.raises(InvalidConfigError):
        load_configs_json(path)

    path.write_text(json.dumps([{"url": "https://example.com/a.git"}]))
    with pytest.raises(InvalidConfigError, match="'url' and 'directory'"):
        load_configs_json(path)

    path.write_text("[]")
    with pytest.raises(InvalidConfigError):
        load_configs_json(path)


def test_load_configs_tsv(tmp_path: Path) -> None:
    path = tmp_path / "repos.txt"
    path.write_text(
        "https://example.com/team/server.git\tserver\n"
        "\n"
        "git@example.com:team/web.git\t.\r\n"
    )

    configs = load_configs_file(path)

    assert [(c.remote_name, c.subtree_directory) for c in configs] == [("server", "server"), ("web", ".")]


def test_load_configs_tsv_errors(tmp_path: Path) -> None:
    path = tmp_path / "repos.tsv"
    path.write_text("https://example.com/a.git server\n")
    with pytest.raises(InvalidConfigError, match="Line 1"):
        load_configs_tsv(path)

    path.write_text("\n")
    with pytest.raises(InvalidConfigError):
        load_configs_tsv(path)


def test_parse_config_pairs_splits_at_last_colon() -> None:
    configs = parse_config_pairs(
        ["https://example.com/team/server.git:server", "git@example.com:team/web.git:web/app"]
    )

    assert [(c.fetch_location, c.subtree_directory) for c in configs] == [
        ("https://example.com/team/server.git", "server"),
        ("git@example.com:team/web.git", "web/app"),
    ]


def test_is_config_pair() -> None:
    assert is_config_pair("/repos/a:docs")
    assert not is_config_pair("alice")
    assert not is_config_pair("https://example.com/a.git")


def test_parse_credentials() -> None:
    assert parse_credentials([]) is None
    assert parse_credentials(["alice", "s3cret"]) == Credentials("alice", "s3cret")
    for values in (["alice"], ["alice", ""], ["", "s3cret"], ["a", "b", "c"]):
        with pytest.raises(InvalidConfigError):
            parse_credentials(values)


def test_credentials_repr_hides_password() -> None:
    assert "s3cret" not in repr(Credentials("alice", "s3cret"))
