from __future__ import annotations

import logging
from typing import Dict, List, Sequence, Tuple

from .commit import MergeParent
from .errors import StructuralConflictError
from .store import ObjectStore, TreeEntry


def combine_trees(store: ObjectStore, parents: Sequence[MergeParent], context: str = "") -> str:
    """Write one tree holding every parent's files under its subtree directory.

    All contributions are gathered before anything is checked, and overlaps
    are reported for the smallest conflicting path, so the outcome does not
    depend on parent order. A path contributed by two parents, or a file in
    one parent where another has a directory, raises StructuralConflictError.
    """
    contributions: Dict[bytes, List[Tuple[MergeParent, TreeEntry]]] = {}
    for parent in parents:
        prefix = parent.config.path_prefix
        for entry in store.read_tree(parent.commit.tree_id):
            path = prefix + entry.path
            contributions.setdefault(path, []).append(
                (parent, TreeEntry(path=path, mode=entry.mode, object_id=entry.object_id))
            )

    _check_overlaps(contributions, context)

    entries = [items[0][1] for _, items in sorted(contributions.items())]
    tree_id = store.write_tree(entries)
    logging.debug("Combined %d entries from %d tree(s) into %s", len(entries), len(parents), tree_id)
    return tree_id


def _check_overlaps(
    contributions: Dict[bytes, List[Tuple[MergeParent, TreeEntry]]], context: str
) -> None:
    conflicts: Dict[bytes, List[MergeParent]] = {}
    for path, items in contributions.items():
        if len(items) > 1:
            conflicts[path] = [parent for parent, _ in items]

    owners: Dict[bytes, List[MergeParent]] = {}
    for path, items in contributions.items():
        for directory in _parent_directories(path):
            owners.setdefault(directory, []).extend(parent for parent, _ in items)
    for directory in owners.keys() & contributions.keys():
        involved = [parent for parent, _ in contributions[directory]] + owners[directory]
        conflicts.setdefault(directory, involved)

    if not conflicts:
        return
    path = min(conflicts)
    remotes: List[str] = []
    for parent in conflicts[path]:
        if parent.config.remote_name not in remotes:
            remotes.append(parent.config.remote_name)
    raise StructuralConflictError(path.decode("utf-8", errors="replace"), remotes, context)


def _parent_directories(path: bytes) -> List[bytes]:
    parts = path.split(b"/")[:-1]
    return [b"/".join(parts[: index + 1]) for index in range(len(parts))]
