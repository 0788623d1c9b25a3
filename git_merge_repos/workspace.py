from __future__ import annotations

import logging
from pathlib import Path

from .errors import InvalidConfigError
from .gitutils import init_repo, is_git_repo
from .store import GitRepository


def prepare_output_repo(path: Path) -> GitRepository:
    """Open the output repository, creating it with ``git init`` when needed."""
    path = path.expanduser().resolve()
    if path.exists() and not path.is_dir():
        raise InvalidConfigError(f"Output path exists but is not a directory: {path}")
    if is_git_repo(path):
        logging.info("Merging into existing repository at %s", path)
    else:
        logging.info("Creating repository at %s", path)
        init_repo(path)
    return GitRepository(path)
