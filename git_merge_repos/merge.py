from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .commit import MergeParent, synthesize_commit
from .config import Credentials, SubtreeConfig, validate_configs
from .errors import InvalidObjectKindError
from .gitutils import ZERO_ID
from .refs import (
    BRANCH_PREFIX,
    BRANCH_STAGING_PREFIX,
    TAG_PREFIX,
    TAG_STAGING_PREFIX,
    list_ref_names,
    resolve_refs,
)
from .reporting import MergedRef
from .store import CommitInfo, Identity, Repository
from .tags import create_merged_tag, resolve_tag_parents
from .tree import combine_trees

DEFAULT_BRANCH = BRANCH_PREFIX + "master"


class RepoMerger:
    """Fetches the input repositories and merges same-named branches and tags.

    Every branch/tag name is merged into a new commit whose parents are the
    tips of that name in each repository (in configuration order) and whose
    tree puts each repository's files under its subtree directory.
    """

    def __init__(
        self,
        repository: Repository,
        configs: Sequence[SubtreeConfig],
        *,
        credentials: Optional[Credentials] = None,
        identity: Optional[Identity] = None,
    ) -> None:
        self.repository = repository
        self.configs = validate_configs(configs)
        self.credentials = credentials
        self._identity = identity
        self.staging_refs: List[str] = []

    @property
    def identity(self) -> Identity:
        if self._identity is None:
            self._identity = self.repository.configured_identity()
        return self._identity

    def run(self) -> List[MergedRef]:
        self.fetch()
        merged_refs = self.merge_branches()
        merged_refs.extend(self.merge_tags())
        self.delete_staging_refs()
        self.reset_to_default_branch()
        return merged_refs

    def fetch(self) -> None:
        for config in self.configs:
            logging.info("Fetching %s from %s", config.remote_name, config.fetch_location)
            refspecs = [
                f"+refs/heads/*:{BRANCH_STAGING_PREFIX}{config.remote_name}/*",
                f"+refs/tags/*:{TAG_STAGING_PREFIX}{config.remote_name}/*",
            ]
            self.repository.fetch(config.fetch_location, refspecs, self.credentials)
            for prefix in (BRANCH_STAGING_PREFIX, TAG_STAGING_PREFIX):
                self.staging_refs.extend(
                    self.repository.list_refs(f"{prefix}{config.remote_name}/")
                )

    def merge_branches(self) -> List[MergedRef]:
        names = list_ref_names(self.repository, BRANCH_STAGING_PREFIX, self.configs)
        return [self.merge_branch(name) for name in names]

    def merge_tags(self) -> List[MergedRef]:
        names = list_ref_names(self.repository, TAG_STAGING_PREFIX, self.configs)
        return [self.merge_tag(name) for name in names]

    def merge_branch(self, name: str) -> MergedRef:
        resolved = resolve_refs(self.repository, BRANCH_STAGING_PREFIX, name, self.configs)
        parents = [
            MergeParent(config=config, commit=self._read_branch_commit(name, object_id))
            for config, object_id in resolved.resolved
        ]
        merged_ref = MergedRef("branch", name, resolved.configs_with, resolved.configs_without)
        commit_id = self._create_merge_commit(parents, merged_ref.message)

        self.repository.update_ref(BRANCH_PREFIX + name, commit_id)
        logging.info("Merged branch '%s' from %d repositories", name, len(parents))
        return merged_ref

    def merge_tag(self, name: str) -> MergedRef:
        resolved = resolve_refs(self.repository, TAG_STAGING_PREFIX, name, self.configs)
        parents, canonical = resolve_tag_parents(self.repository, resolved)
        merged_ref = MergedRef("tag", name, resolved.configs_with, resolved.configs_without)
        commit_id = self._create_merge_commit(parents, merged_ref.message)

        target = create_merged_tag(self.repository, name, canonical, commit_id)
        self.repository.update_ref(TAG_PREFIX + name, target, expected_old=ZERO_ID)
        logging.info(
            "Merged %s tag '%s' from %d repositories",
            "lightweight" if canonical is None else "annotated",
            name,
            len(parents),
        )
        return merged_ref

    def delete_staging_refs(self) -> None:
        """Delete the refs fetched into the staging namespaces.

        Merged refs named ``original/...`` live next to the staging refs and
        are kept.
        """
        for ref in self.staging_refs:
            logging.debug("Deleting staging ref %s", ref)
            self.repository.delete_ref(ref)
        self.staging_refs = []

    def reset_to_default_branch(self) -> Optional[str]:
        for ref in (self.repository.head_branch(), DEFAULT_BRANCH):
            if ref and self.repository.resolve_ref(ref) is not None:
                self.repository.reset_hard(ref)
                logging.info("Checked out %s", ref)
                return ref
        logging.info("No default branch was merged; working tree left untouched.")
        return None

    def _read_branch_commit(self, name: str, object_id: str) -> CommitInfo:
        kind = self.repository.object_kind(object_id)
        if kind != "commit":
            raise InvalidObjectKindError(
                f"Branch '{name}' points to object {object_id} of type {kind}, not a commit"
            )
        return self.repository.read_commit(object_id)

    def _create_merge_commit(self, parents: Sequence[MergeParent], message: str) -> str:
        tree_id = combine_trees(self.repository, parents, context=message)
        return synthesize_commit(self.repository, parents, tree_id, message, self.identity)
