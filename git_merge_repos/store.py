"""
Object store access for the merge engine.

The engine only talks to the ``ObjectStore``/``Repository`` protocols so it
can run against an in-memory store in tests. ``GitRepository`` implements
them with git plumbing commands run inside the output repository.
"""

from __future__ import annotations

import logging
import re
import tempfile
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Tuple

from .config import Credentials
from .errors import FetchError, GitCommandError, MalformedObjectError, RefUpdateConflictError
from .gitutils import (
    absolute_location,
    authenticated_url,
    check_git,
    environ_with,
    redact,
    run_git,
    supports_credentials,
)

_IDENT_RE = re.compile(r"^(?P<name>.*?) ?<(?P<email>[^>]*)> (?P<when>-?\d+)(?: (?P<tz>[+-]\d{4}))?$")


@dataclass(frozen=True)
class Identity:
    name: str
    email: str
    timestamp: int
    offset: int  # minutes east of UTC

    @classmethod
    def parse(cls, raw: str) -> "Identity":
        match = _IDENT_RE.match(raw.strip())
        if not match:
            raise MalformedObjectError(f"Malformed identity: {raw!r}")
        # A missing zone is read as UTC, as git does.
        tz = match.group("tz") or "+0000"
        minutes = int(tz[1:3]) * 60 + int(tz[3:5])
        return cls(
            name=match.group("name"),
            email=match.group("email"),
            timestamp=int(match.group("when")),
            offset=-minutes if tz.startswith("-") else minutes,
        )

    def format(self) -> str:
        sign = "-" if self.offset < 0 else "+"
        minutes = abs(self.offset)
        return f"{self.name} <{self.email}> {self.timestamp} {sign}{minutes // 60:02d}{minutes % 60:02d}"

    def at_time_of(self, other: "Identity") -> "Identity":
        return replace(self, timestamp=other.timestamp, offset=other.offset)


@dataclass(frozen=True)
class TreeEntry:
    path: bytes
    mode: int
    object_id: str


@dataclass(frozen=True)
class CommitInfo:
    object_id: str
    tree_id: str
    parent_ids: Tuple[str, ...]
    committer: Identity
    message: str


@dataclass(frozen=True)
class TagInfo:
    object_id: str
    name: str
    target_id: str
    target_kind: str
    tagger: Optional[Identity]
    message: str


class ObjectStore(Protocol):
    def resolve_ref(self, name: str) -> Optional[str]: ...

    def list_refs(self, prefix: str) -> List[str]: ...

    def object_kind(self, object_id: str) -> str: ...

    def read_commit(self, object_id: str) -> CommitInfo: ...

    def read_tag(self, object_id: str) -> TagInfo: ...

    def read_tree(self, tree_id: str) -> List[TreeEntry]: ...

    def write_tree(self, entries: Sequence[TreeEntry]) -> str: ...

    def write_commit(
        self,
        tree_id: str,
        parent_ids: Sequence[str],
        author: Identity,
        committer: Identity,
        message: str,
    ) -> str: ...

    def write_tag(
        self,
        name: str,
        target_id: str,
        target_kind: str,
        tagger: Optional[Identity],
        message: str,
    ) -> str: ...

    def update_ref(self, name: str, new_id: str, expected_old: Optional[str] = None) -> None: ...

    def delete_ref(self, name: str) -> None: ...


class Repository(ObjectStore, Protocol):
    """An object store with a transport and a working tree attached."""

    def fetch(
        self, location: str, refspecs: Sequence[str], credentials: Optional[Credentials] = None
    ) -> None: ...

    def configured_identity(self) -> Identity: ...

    def head_branch(self) -> Optional[str]: ...

    def reset_hard(self, ref: str) -> None: ...


class GitRepository:
    def __init__(self, path: Path) -> None:
        self.path = path

    def __repr__(self) -> str:
        return f"GitRepository({str(self.path)!r})"

    # Refs -----------------------------------------------------------------
    def resolve_ref(self, name: str) -> Optional[str]:
        result = run_git(self.path, ["rev-parse", "--verify", "--quiet", name])
        if result.returncode != 0:
            return None
        return result.stdout.strip()

    def list_refs(self, prefix: str) -> List[str]:
        result = check_git(self.path, ["for-each-ref", "--format=%(refname)", prefix.rstrip("/")])
        return sorted(line for line in result.stdout.splitlines() if line.startswith(prefix))

    def update_ref(self, name: str, new_id: str, expected_old: Optional[str] = None) -> None:
        args = ["update-ref", name, new_id]
        if expected_old is None:
            check_git(self.path, args)
            return
        result = run_git(self.path, args + [expected_old])
        if result.returncode != 0:
            raise RefUpdateConflictError(
                name, result.stderr.strip() or f"exit status {result.returncode}"
            )

    def delete_ref(self, name: str) -> None:
        check_git(self.path, ["update-ref", "-d", name])

    def head_branch(self) -> Optional[str]:
        result = run_git(self.path, ["symbolic-ref", "--quiet", "HEAD"])
        if result.returncode != 0:
            return None
        return result.stdout.strip()

    # Objects --------------------------------------------------------------
    def object_kind(self, object_id: str) -> str:
        return check_git(self.path, ["cat-file", "-t", object_id]).stdout.strip()

    def read_commit(self, object_id: str) -> CommitInfo:
        raw = check_git(self.path, ["cat-file", "commit", object_id], text=False).stdout
        headers, message = _split_object(raw)
        return CommitInfo(
            object_id=object_id,
            tree_id=_single(headers, "tree", object_id),
            parent_ids=tuple(value for key, value in headers if key == "parent"),
            committer=_identity(_single(headers, "committer", object_id), object_id),
            message=message,
        )

    def read_tag(self, object_id: str) -> TagInfo:
        raw = check_git(self.path, ["cat-file", "tag", object_id], text=False).stdout
        headers, message = _split_object(raw)
        tagger = next((value for key, value in headers if key == "tagger"), None)
        return TagInfo(
            object_id=object_id,
            name=_single(headers, "tag", object_id),
            target_id=_single(headers, "object", object_id),
            target_kind=_single(headers, "type", object_id),
            tagger=_identity(tagger, object_id) if tagger else None,
            message=message,
        )

    def read_tree(self, tree_id: str) -> List[TreeEntry]:
        """Every blob, symlink and gitlink of the tree, with its full path."""
        output = check_git(self.path, ["ls-tree", "-r", "-z", tree_id], text=False).stdout
        entries: List[TreeEntry] = []
        for record in output.split(b"\0"):
            if not record:
                continue
            meta, path = record.split(b"\t", 1)
            mode, _kind, object_id = meta.split(b" ")
            entries.append(TreeEntry(path=path, mode=int(mode, 8), object_id=object_id.decode("ascii")))
        return entries

    def write_tree(self, entries: Sequence[TreeEntry]) -> str:
        payload = b"".join(
            b"%06o %s\t%s\0" % (entry.mode, entry.object_id.encode("ascii"), entry.path)
            for entry in entries
        )
        with tempfile.TemporaryDirectory(prefix="git-merge-repos-") as tmpdir:
            env = environ_with(GIT_INDEX_FILE=str(Path(tmpdir) / "index"))
            check_git(self.path, ["update-index", "-z", "--index-info"], input=payload, env=env, text=False)
            return check_git(self.path, ["write-tree"], env=env).stdout.strip()

    def write_commit(
        self,
        tree_id: str,
        parent_ids: Sequence[str],
        author: Identity,
        committer: Identity,
        message: str,
    ) -> str:
        lines = [f"tree {tree_id}"]
        lines.extend(f"parent {parent_id}" for parent_id in parent_ids)
        lines.append(f"author {author.format()}")
        lines.append(f"committer {committer.format()}")
        return self._write_object("commit", lines, message)

    def write_tag(
        self,
        name: str,
        target_id: str,
        target_kind: str,
        tagger: Optional[Identity],
        message: str,
    ) -> str:
        lines = [f"object {target_id}", f"type {target_kind}", f"tag {name}"]
        if tagger is not None:
            lines.append(f"tagger {tagger.format()}")
        return self._write_object("tag", lines, message)

    def _write_object(self, kind: str, headers: Sequence[str], message: str) -> str:
        raw = ("\n".join(headers) + "\n\n" + message).encode("utf-8", "surrogateescape")
        result = check_git(self.path, ["hash-object", "-t", kind, "-w", "--stdin"], input=raw, text=False)
        return result.stdout.decode("ascii").strip()

    # Transport and working tree ---------------------------------------------
    def fetch(
        self, location: str, refspecs: Sequence[str], credentials: Optional[Credentials] = None
    ) -> None:
        if credentials is not None and not supports_credentials(location):
            logging.warning("Credentials are only used for http(s); ignoring them for %s", location)
        location = absolute_location(location)
        url = authenticated_url(location, credentials)
        args = ["fetch", "--no-tags", url, *refspecs]
        result = run_git(
            self.path,
            args,
            env=environ_with(GIT_TERMINAL_PROMPT="0"),
            display_args=["fetch", "--no-tags", location, *refspecs],
        )
        if result.returncode != 0:
            raise FetchError(location, redact(result.stderr.strip(), credentials))

    def configured_identity(self) -> Identity:
        result = run_git(self.path, ["var", "GIT_COMMITTER_IDENT"])
        if result.returncode != 0:
            raise GitCommandError(
                "Cannot determine the identity for merge commits; "
                f"configure user.name and user.email: {result.stderr.strip()}"
            )
        return Identity.parse(result.stdout)

    def reset_hard(self, ref: str) -> None:
        if self.head_branch() != ref:
            check_git(self.path, ["symbolic-ref", "HEAD", ref])
        bare = check_git(self.path, ["rev-parse", "--is-bare-repository"]).stdout.strip()
        if bare == "true":
            return
        check_git(self.path, ["reset", "--hard", "--quiet"])


def _split_object(raw: bytes) -> Tuple[List[Tuple[str, str]], str]:
    header, _, body = raw.partition(b"\n\n")
    headers: List[Tuple[str, str]] = []
    for line in header.split(b"\n"):
        if not line or line.startswith(b" "):
            continue  # continuation of gpgsig/mergetag
        key, _, value = line.partition(b" ")
        headers.append((key.decode("ascii"), value.decode("utf-8", "surrogateescape")))
    return headers, body.decode("utf-8", "surrogateescape")


def _single(headers: Sequence[Tuple[str, str]], key: str, object_id: str) -> str:
    for name, value in headers:
        if name == key:
            return value
    raise MalformedObjectError(f"Object {object_id} has no '{key}' header")


def _identity(raw: str, object_id: str) -> Identity:
    try:
        return Identity.parse(raw)
    except MalformedObjectError as exc:
        raise MalformedObjectError(f"Object {object_id}: {exc}") from exc
