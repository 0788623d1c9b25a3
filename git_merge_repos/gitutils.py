from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Mapping, Optional, Sequence, Union
from urllib.parse import quote, urlsplit, urlunsplit

from .config import Credentials
from .errors import GitCommandError

ZERO_ID = "0" * 40


def is_git_repo(path: Path) -> bool:
    path = path.expanduser()
    return (path / ".git").exists() or (
        (path / "HEAD").is_file() and (path / "objects").is_dir() and (path / "refs").is_dir()
    )


def run_git(
    repo: Path,
    args: Sequence[str],
    *,
    input: Union[bytes, str, None] = None,
    env: Optional[Mapping[str, str]] = None,
    text: bool = True,
    display_args: Optional[Sequence[str]] = None,
) -> subprocess.CompletedProcess:
    logging.debug("git %s", " ".join(display_args if display_args is not None else args))
    return subprocess.run(
        ["git", "-C", str(repo)] + list(args),
        input=input,
        env=dict(env) if env is not None else None,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=text,
    )


def check_git(
    repo: Path,
    args: Sequence[str],
    *,
    input: Union[bytes, str, None] = None,
    env: Optional[Mapping[str, str]] = None,
    text: bool = True,
) -> subprocess.CompletedProcess:
    result = run_git(repo, args, input=input, env=env, text=text)
    if result.returncode != 0:
        stderr = result.stderr if text else result.stderr.decode("utf-8", errors="replace")
        raise GitCommandError(f"git {' '.join(args)} failed in {repo}: {stderr.strip()}")
    return result


def init_repo(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
    check_git(path, ["init"])


def environ_with(**overrides: str) -> dict:
    env = os.environ.copy()
    env.update(overrides)
    return env


def authenticated_url(location: str, credentials: Optional[Credentials]) -> str:
    """Embed credentials into an HTTP(S) fetch location.

    Other transports are returned unchanged; the caller decides whether to
    warn about credentials that cannot be used.
    """
    if credentials is None or not supports_credentials(location):
        return location
    parts = urlsplit(location)
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    userinfo = f"{quote(credentials.username, safe='')}:{quote(credentials.password, safe='')}"
    return urlunsplit((parts.scheme, f"{userinfo}@{host}", parts.path, parts.query, parts.fragment))


def supports_credentials(location: str) -> bool:
    return urlsplit(location).scheme in {"http", "https"}


def redact(text: str, credentials: Optional[Credentials]) -> str:
    if credentials is None:
        return text
    for secret in {credentials.password, quote(credentials.password, safe="")}:
        if secret:
            text = text.replace(secret, "****")
    return text


def absolute_location(location: str) -> str:
    """Make a local repository path usable from inside another repository."""
    if "://" in location:
        return location
    candidate = Path(location).expanduser()
    if candidate.exists():
        return str(candidate.resolve())
    return location
