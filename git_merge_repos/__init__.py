"""
git_merge_repos package

Provides the CLI entrypoint (`python -m git_merge_repos`) and the subtree
merge engine that joins several repositories' branches and tags.
"""

from .cli import main

__all__ = ["main"]
