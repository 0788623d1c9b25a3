from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from .config import SubtreeConfig
from .store import CommitInfo, Identity, ObjectStore


@dataclass(frozen=True)
class MergeParent:
    config: SubtreeConfig
    commit: CommitInfo


def latest_committer(commits: Iterable[CommitInfo]) -> Optional[Identity]:
    """Committer identity with the latest timestamp; the first one wins ties."""
    latest: Optional[Identity] = None
    for commit in commits:
        ident = commit.committer
        if latest is None or ident.timestamp > latest.timestamp:
            latest = ident
    return latest


def synthesize_commit(
    store: ObjectStore,
    parents: Sequence[MergeParent],
    tree_id: str,
    message: str,
    identity: Identity,
) -> str:
    latest = latest_committer(parent.commit for parent in parents)
    if latest is None:
        raise ValueError("A merge commit needs at least one parent commit.")
    ident = identity.at_time_of(latest)
    commit_id = store.write_commit(
        tree_id,
        [parent.commit.object_id for parent in parents],
        author=ident,
        committer=ident,
        message=message,
    )
    logging.debug("Wrote merge commit %s with %d parent(s)", commit_id, len(parents))
    return commit_id
