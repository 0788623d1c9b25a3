from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from .config import SubtreeConfig
from .store import ObjectStore

BRANCH_STAGING_PREFIX = "refs/heads/original/"
TAG_STAGING_PREFIX = "refs/tags/original/"
BRANCH_PREFIX = "refs/heads/"
TAG_PREFIX = "refs/tags/"


@dataclass(frozen=True)
class ResolvedRefSet:
    """Object ids of one ref name across the configured repositories.

    ``resolved`` keeps configuration declaration order, which becomes the
    parent order of the merge commit.
    """

    name: str
    resolved: Tuple[Tuple[SubtreeConfig, str], ...]
    configs: Tuple[SubtreeConfig, ...]

    @property
    def configs_with(self) -> Tuple[SubtreeConfig, ...]:
        return tuple(config for config, _ in self.resolved)

    @property
    def configs_without(self) -> Tuple[SubtreeConfig, ...]:
        present = set(self.configs_with)
        return tuple(config for config in self.configs if config not in present)


def staging_ref(prefix: str, config: SubtreeConfig, name: str) -> str:
    return f"{prefix}{config.remote_name}/{name}"


def resolve_refs(
    store: ObjectStore, ref_prefix: str, name: str, configs: Sequence[SubtreeConfig]
) -> ResolvedRefSet:
    resolved: List[Tuple[SubtreeConfig, str]] = []
    for config in configs:
        object_id = store.resolve_ref(staging_ref(ref_prefix, config, name))
        if object_id is not None:
            resolved.append((config, object_id))
    return ResolvedRefSet(name=name, resolved=tuple(resolved), configs=tuple(configs))


def list_ref_names(
    store: ObjectStore, ref_prefix: str, configs: Sequence[SubtreeConfig]
) -> List[str]:
    names: set[str] = set()
    for config in configs:
        namespace = f"{ref_prefix}{config.remote_name}/"
        names.update(ref[len(namespace):] for ref in store.list_refs(namespace))
    return sorted(names)
