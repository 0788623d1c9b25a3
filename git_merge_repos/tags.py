"""
Tag handling for merged tags.

Each repository's tag is either lightweight (the ref points at a commit) or
annotated (the ref points at a tag object). The merged tag reuses the
metadata of one annotated tag, the canonical tag, chosen by folding
``prefer_later_tag`` over the annotated tags in declaration order.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from .commit import MergeParent
from .errors import InvalidObjectKindError, UnresolvedObjectError
from .refs import ResolvedRefSet
from .store import CommitInfo, ObjectStore, TagInfo


def classify_tag_object(store: ObjectStore, object_id: str) -> Tuple[CommitInfo, Optional[TagInfo]]:
    """Return the commit a tag ref leads to and its tag object, if annotated."""
    kind = store.object_kind(object_id)
    if kind == "commit":
        return store.read_commit(object_id), None
    if kind != "tag":
        raise InvalidObjectKindError(f"Object with ID {object_id} has invalid type for a tag: {kind}")

    tag = store.read_tag(object_id)
    target_id, target_kind = tag.target_id, tag.target_kind
    while target_kind == "tag":
        nested = store.read_tag(target_id)
        target_id, target_kind = nested.target_id, nested.target_kind
    if target_kind != "commit":
        raise UnresolvedObjectError(
            f"Peeled tag {tag.name} does not point to a commit, "
            f"but to the following object: {target_kind} {target_id}"
        )
    return store.read_commit(target_id), tag


def prefer_later_tag(canonical: Optional[TagInfo], candidate: TagInfo) -> TagInfo:
    if canonical is None:
        return candidate
    if (
        candidate.tagger is not None
        and canonical.tagger is not None
        and candidate.tagger.timestamp > canonical.tagger.timestamp
    ):
        return candidate
    return canonical


def resolve_tag_parents(
    store: ObjectStore, resolved: ResolvedRefSet
) -> Tuple[List[MergeParent], Optional[TagInfo]]:
    parents: List[MergeParent] = []
    canonical: Optional[TagInfo] = None
    for config, object_id in resolved.resolved:
        commit, tag = classify_tag_object(store, object_id)
        parents.append(MergeParent(config=config, commit=commit))
        if tag is not None:
            canonical = prefer_later_tag(canonical, tag)
    return parents, canonical


def create_merged_tag(
    store: ObjectStore, name: str, canonical: Optional[TagInfo], commit_id: str
) -> str:
    """Return the object the merged tag ref should point at."""
    if canonical is None:
        return commit_id
    tag_id = store.write_tag(
        name=name,
        target_id=commit_id,
        target_kind="commit",
        tagger=canonical.tagger,
        message=canonical.message,
    )
    logging.debug("Cloned annotated tag %s onto %s as %s", canonical.object_id, commit_id, tag_id)
    return tag_id
