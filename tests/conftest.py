from __future__ import annotations

import hashlib
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from git_merge_repos.config import Credentials
from git_merge_repos.errors import FetchError, RefUpdateConflictError
from git_merge_repos.gitutils import ZERO_ID
from git_merge_repos.store import CommitInfo, Identity, TagInfo, TreeEntry

BLOB_MODE = 0o100644
TREE_MODE = 0o040000
MERGER = Identity("Merger", "merger@example.com", 0, 0)


class MemoryObjectStore:
    """In-memory stand-in for a git repository, used to test the merge engine."""

    def __init__(self) -> None:
        self.objects: Dict[str, tuple] = {}
        self.refs: Dict[str, str] = {}
        self.authors: Dict[str, Identity] = {}
        self.remotes: Dict[str, "MemoryObjectStore"] = {}
        self.fetches: List[Tuple[str, Tuple[str, ...], Optional[Credentials]]] = []
        self.head = "refs/heads/master"
        self.checked_out: Optional[str] = None

    # Helpers for building fixtures -----------------------------------------
    def _put(self, kind: str, payload: object) -> str:
        object_id = hashlib.sha1(f"{kind}:{payload!r}".encode("utf-8")).hexdigest()
        self.objects.setdefault(object_id, (kind, payload))
        return object_id

    def blob(self, data: bytes) -> str:
        return self._put("blob", data)

    def tree(self, files: Dict[str, bytes]) -> str:
        entries = [
            TreeEntry(path=path.encode("utf-8"), mode=BLOB_MODE, object_id=self.blob(data))
            for path, data in files.items()
        ]
        return self.write_tree(entries)

    def commit(
        self,
        files: Dict[str, bytes],
        *,
        timestamp: int = 1_000_000,
        offset: int = 0,
        parents: Sequence[str] = (),
        message: str = "commit\n",
    ) -> str:
        ident = Identity("Dev", "dev@example.com", timestamp, offset)
        return self.write_commit(self.tree(files), parents, ident, ident, message)

    def annotated_tag(
        self,
        name: str,
        target_id: str,
        *,
        timestamp: Optional[int] = 1_000_000,
        message: str = "release\n",
    ) -> str:
        tagger = None
        if timestamp is not None:
            tagger = Identity("Tagger", "tagger@example.com", timestamp, 60)
        return self.write_tag(name, target_id, self.object_kind(target_id), tagger, message)

    def files(self, tree_id: str) -> Dict[str, bytes]:
        return {
            entry.path.decode("utf-8"): self.objects[entry.object_id][1]
            for entry in self.read_tree(tree_id)
        }

    # ObjectStore -------------------------------------------------------------
    def resolve_ref(self, name: str) -> Optional[str]:
        return self.refs.get(name)

    def list_refs(self, prefix: str) -> List[str]:
        return sorted(name for name in self.refs if name.startswith(prefix))

    def object_kind(self, object_id: str) -> str:
        return self.objects[object_id][0]

    def read_commit(self, object_id: str) -> CommitInfo:
        kind, payload = self.objects[object_id]
        assert kind == "commit"
        return payload

    def read_tag(self, object_id: str) -> TagInfo:
        kind, payload = self.objects[object_id]
        assert kind == "tag"
        return payload

    def read_tree(self, tree_id: str) -> List[TreeEntry]:
        entries: List[TreeEntry] = []
        for name, mode, object_id in self.objects[tree_id][1]:
            if mode == TREE_MODE:
                for child in self.read_tree(object_id):
                    entries.append(
                        TreeEntry(path=name + b"/" + child.path, mode=child.mode, object_id=child.object_id)
                    )
            else:
                entries.append(TreeEntry(path=name, mode=mode, object_id=object_id))
        return entries

    def write_tree(self, entries: Sequence[TreeEntry]) -> str:
        children: Dict[bytes, List[TreeEntry]] = {}
        items: List[Tuple[bytes, int, str]] = []
        for entry in entries:
            head, sep, rest = entry.path.partition(b"/")
            if sep:
                children.setdefault(head, []).append(
                    TreeEntry(path=rest, mode=entry.mode, object_id=entry.object_id)
                )
            else:
                items.append((head, entry.mode, entry.object_id))
        for name, nested in children.items():
            items.append((name, TREE_MODE, self.write_tree(nested)))
        return self._put("tree", tuple(sorted(items)))

    def write_commit(
        self,
        tree_id: str,
        parent_ids: Sequence[str],
        author: Identity,
        committer: Identity,
        message: str,
    ) -> str:
        content = (tree_id, tuple(parent_ids), author, committer, message)
        object_id = hashlib.sha1(f"commit:{content!r}".encode("utf-8")).hexdigest()
        self.objects[object_id] = (
            "commit",
            CommitInfo(object_id, tree_id, tuple(parent_ids), committer, message),
        )
        self.authors[object_id] = author
        return object_id

    def write_tag(
        self,
        name: str,
        target_id: str,
        target_kind: str,
        tagger: Optional[Identity],
        message: str,
    ) -> str:
        content = (name, target_id, target_kind, tagger, message)
        object_id = hashlib.sha1(f"tag:{content!r}".encode("utf-8")).hexdigest()
        self.objects[object_id] = (
            "tag",
            TagInfo(object_id, name, target_id, target_kind, tagger, message),
        )
        return object_id

    def update_ref(self, name: str, new_id: str, expected_old: Optional[str] = None) -> None:
        if expected_old is not None:
            current = self.refs.get(name, ZERO_ID)
            if current != expected_old:
                raise RefUpdateConflictError(name, "LOCK_FAILURE")
        self.refs[name] = new_id

    def delete_ref(self, name: str) -> None:
        del self.refs[name]

    # Repository ------------------------------------------------------------
    def fetch(
        self, location: str, refspecs: Sequence[str], credentials: Optional[Credentials] = None
    ) -> None:
        self.fetches.append((location, tuple(refspecs), credentials))
        remote = self.remotes.get(location)
        if remote is None:
            raise FetchError(location, "repository not found")
        self.objects.update(remote.objects)
        for refspec in refspecs:
            source, destination = refspec.lstrip("+").split(":")
            source_prefix, destination_prefix = source.rstrip("*"), destination.rstrip("*")
            for ref in remote.list_refs(source_prefix):
                self.refs[destination_prefix + ref[len(source_prefix):]] = remote.refs[ref]

    def configured_identity(self) -> Identity:
        return MERGER

    def head_branch(self) -> Optional[str]:
        return self.head

    def reset_hard(self, ref: str) -> None:
        self.head = ref
        self.checked_out = ref


@pytest.fixture
def store() -> MemoryObjectStore:
    return MemoryObjectStore()


@pytest.fixture
def make_store():
    return MemoryObjectStore


@pytest.fixture(autouse=True)
def git_identity(tmp_path_factory, monkeypatch: pytest.MonkeyPatch) -> None:
    global_config = tmp_path_factory.mktemp("gitconfig") / "config"
    global_config.write_text("")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(global_config))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "tester")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "tester@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "tester")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "tester@example.com")
