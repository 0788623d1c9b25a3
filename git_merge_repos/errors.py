from __future__ import annotations


class MergeReposError(Exception):
    """Base exception for repository merge failures."""


class InvalidConfigError(MergeReposError):
    """The set of input repositories cannot be merged as configured."""


class GitCommandError(MergeReposError):
    """A git plumbing command exited with a non-zero status."""


class FetchError(MergeReposError):
    def __init__(self, location: str, detail: str) -> None:
        super().__init__(f"Fetching {location} failed: {detail}")
        self.location = location
        self.detail = detail


class StructuralConflictError(MergeReposError):
    """Two input trees contribute content at the same path."""

    def __init__(self, path: str, remotes: list[str], context: str = "") -> None:
        message = (
            f"Trees of repositories overlap in path '{path}' ({', '.join(remotes)}). "
            "Only non-overlapping trees can be merged; move each repository "
            "into its own subdirectory first."
        )
        if context:
            message += f"\nCurrent commit:\n{context}"
        super().__init__(message)
        self.path = path
        self.remotes = remotes


class UnresolvedObjectError(MergeReposError):
    """A tag could not be peeled to a commit."""


class InvalidObjectKindError(MergeReposError):
    """A ref points at an object of a kind that cannot be merged."""


class RefUpdateConflictError(MergeReposError):
    def __init__(self, ref: str, result: str) -> None:
        super().__init__(f"Creating ref {ref} failed with result {result}")
        self.ref = ref
        self.result = result


class MalformedObjectError(MergeReposError):
    """A commit or tag object cannot be parsed."""
