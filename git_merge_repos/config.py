from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence
from urllib.parse import urlsplit

from .errors import InvalidConfigError

ROOT_DIRECTORY = "."

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")
_WINDOWS_DRIVE_RE = re.compile(r"^[A-Za-z]:[\\/]")
_SCP_RE = re.compile(r"^(?:[^@/]+@)?[^/:]+:")
_STRIPPED_SUFFIXES = (".git", ".bundle")
_REF_UNSAFE_RE = re.compile(r"[\x00-\x20\x7f~^:?*\[\\]|\.\.|@\{")


@dataclass(frozen=True)
class SubtreeConfig:
    """One input repository and the directory its tree is moved into.

    ``subtree_directory`` may be ``"."`` (or ``""``/``"/"``) to keep the
    repository's layout unchanged.
    """

    subtree_directory: str
    fetch_location: str
    remote_name: str = field(init=False)

    def __post_init__(self) -> None:
        name = derive_remote_name(self.fetch_location)
        if not name:
            raise InvalidConfigError(
                f"Could not determine repository name from fetch location: {self.fetch_location}"
            )
        if not is_valid_remote_name(name):
            raise InvalidConfigError(
                f"Repository name '{name}' derived from {self.fetch_location} "
                "cannot be used in a git ref name."
            )
        object.__setattr__(self, "remote_name", name)
        object.__setattr__(
            self, "subtree_directory", normalize_subtree_directory(self.subtree_directory)
        )

    @property
    def path_prefix(self) -> bytes:
        if self.subtree_directory == ROOT_DIRECTORY:
            return b""
        return self.subtree_directory.encode("utf-8") + b"/"


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str = field(repr=False)


def derive_remote_name(location: str) -> str:
    """Return the human-readable name of a fetch location.

    ``https://example.com/team/repo-a.git`` and ``git@example.com:team/repo-a``
    both yield ``repo-a``; a trailing ``/.git`` segment is skipped.
    """
    cleaned = location.strip()
    if _SCHEME_RE.match(cleaned):
        path = urlsplit(cleaned).path
    elif _WINDOWS_DRIVE_RE.match(cleaned):
        path = cleaned
    elif _SCP_RE.match(cleaned):
        path = cleaned.split(":", 1)[1]
    else:
        path = cleaned
    parts = [segment for segment in re.split(r"[/\\]", path) if segment]
    if parts and parts[-1] == ".git":
        parts.pop()
    if not parts:
        return ""
    name = parts[-1]
    for suffix in _STRIPPED_SUFFIXES:
        if name.endswith(suffix):
            return name[: -len(suffix)]
    return name


def is_valid_remote_name(name: str) -> bool:
    """Whether ``name`` can be one component of a ref name (see git-check-ref-format)."""
    return not (
        name in ("", "@")
        or name.startswith(".")
        or name.endswith((".", ".lock"))
        or _REF_UNSAFE_RE.search(name)
    )


def normalize_subtree_directory(directory: str) -> str:
    parts = [part for part in directory.replace("\\", "/").split("/") if part not in ("", ".")]
    if ".." in parts:
        raise InvalidConfigError(f"Subtree directory must not leave the repository: {directory}")
    return "/".join(parts) or ROOT_DIRECTORY


def validate_configs(configs: Sequence[SubtreeConfig]) -> List[SubtreeConfig]:
    if not configs:
        raise InvalidConfigError("No repositories to merge were configured.")
    seen: dict[str, SubtreeConfig] = {}
    for config in configs:
        previous = seen.get(config.remote_name)
        if previous is not None:
            raise InvalidConfigError(
                f"Repositories {previous.fetch_location} and {config.fetch_location} "
                f"share the remote name '{config.remote_name}'."
            )
        seen[config.remote_name] = config
    return list(configs)


def load_configs_json(path: Path) -> List[SubtreeConfig]:
    try:
        data = json.loads(path.read_text())
    except OSError as exc:
        raise InvalidConfigError(f"Cannot read repository list {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise InvalidConfigError(f"Repository list {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise InvalidConfigError(f"Repository list {path} must contain a JSON array.")

    configs: List[SubtreeConfig] = []
    for index, entry in enumerate(data):
        if not isinstance(entry, dict) or not entry.get("url") or "directory" not in entry:
            raise InvalidConfigError(
                f"Entry {index} in {path} needs 'url' and 'directory' fields: {entry!r}"
            )
        configs.append(SubtreeConfig(str(entry["directory"]), str(entry["url"])))
    logging.debug("Loaded %d repositories from %s", len(configs), path)
    return validate_configs(configs)


def load_configs_tsv(path: Path) -> List[SubtreeConfig]:
    """Read one ``<url><TAB><directory>`` line per repository; blank lines are skipped."""
    try:
        lines = path.read_text().splitlines()
    except OSError as exc:
        raise InvalidConfigError(f"Cannot read repository list {path}: {exc}") from exc

    configs: List[SubtreeConfig] = []
    for number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        fields = line.split("\t")
        if len(fields) != 2 or not fields[0].strip():
            raise InvalidConfigError(
                f"Line {number} in {path} must be <url><TAB><directory>: {line!r}"
            )
        configs.append(SubtreeConfig(fields[1].strip(), fields[0].strip()))
    logging.debug("Loaded %d repositories from %s", len(configs), path)
    return validate_configs(configs)


def load_configs_file(path: Path) -> List[SubtreeConfig]:
    if path.suffix.lower() == ".json":
        return load_configs_json(path)
    return load_configs_tsv(path)


def is_config_pair(value: str) -> bool:
    if ":" not in value:
        return False
    _, directory = value.rsplit(":", 1)
    return bool(directory) and not directory.startswith("//")


def parse_config_pairs(values: Sequence[str]) -> List[SubtreeConfig]:
    configs: List[SubtreeConfig] = []
    for value in values:
        if not is_config_pair(value):
            raise InvalidConfigError(f"Expected <url>:<directory>, got '{value}'")
        location, directory = value.rsplit(":", 1)
        if not location:
            raise InvalidConfigError(f"Missing repository url in '{value}'")
        configs.append(SubtreeConfig(directory, location))
    return validate_configs(configs)


def parse_credentials(values: Sequence[str]) -> Optional[Credentials]:
    if not values:
        return None
    if len(values) != 2 or not values[0] or not values[1]:
        raise InvalidConfigError("A username and a password must be given together.")
    return Credentials(username=values[0], password=values[1])
