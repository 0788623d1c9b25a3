from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .config import (
    Credentials,
    SubtreeConfig,
    is_config_pair,
    load_configs_file,
    parse_config_pairs,
    parse_credentials,
)
from .errors import InvalidConfigError, MergeReposError
from .merge import RepoMerger
from .reporting import summarize_incomplete, write_merge_report
from .workspace import prepare_output_repo


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="git-merge-repos",
        description=(
            "Merge several git repositories into one. Each repository's history is "
            "kept under its own directory and same-named branches and tags are "
            "joined by merge commits."
        ),
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("merged"),
        help="Directory of the merged repository, created if missing (default: ./merged).",
    )
    parser.add_argument(
        "--report",
        type=Path,
        help="Write a JSON report of the merged branches and tags to this file.",
    )
    parser.add_argument(
        "sources",
        nargs="+",
        metavar="SOURCE",
        help=(
            "Either a repository list file (JSON list of {\"url\": ..., \"directory\": ...} "
            "objects, or one <url><TAB><directory> line per repository) "
            "or one or more <url>:<directory> pairs, optionally followed by USERNAME PASSWORD."
        ),
    )
    return parser


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def resolve_sources(values: Sequence[str]) -> Tuple[List[SubtreeConfig], Optional[Credentials]]:
    first = values[0]
    if Path(first).expanduser().is_file():
        configs = load_configs_file(Path(first).expanduser())
        rest = values[1:]
    else:
        count = 0
        while count < len(values) and is_config_pair(values[count]):
            count += 1
        if count == 0:
            raise InvalidConfigError(
                f"'{first}' is neither a repository list file nor a <url>:<directory> pair"
            )
        configs = parse_config_pairs(values[:count])
        rest = values[count:]
    return configs, parse_credentials(rest)


def run(
    args: argparse.Namespace,
    configs: Sequence[SubtreeConfig],
    credentials: Optional[Credentials],
) -> int:
    logging.debug("Arguments: %s", args)
    repository = prepare_output_repo(args.output)
    logging.info(
        "Started merging %d repositories into one, output directory: %s",
        len(configs),
        repository.path,
    )

    start = time.monotonic()
    merged_refs = RepoMerger(repository, configs, credentials=credentials).run()
    elapsed_ms = int((time.monotonic() - start) * 1000)

    for line in summarize_incomplete(merged_refs):
        logging.warning("%s", line)
    if args.report:
        write_merge_report(args.report, merged_refs)
    logging.info("Done, took %d ms", elapsed_ms)
    logging.info("Merged repository: %s", repository.path)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    try:
        configs, credentials = resolve_sources(args.sources)
    except InvalidConfigError as exc:
        parser.error(str(exc))
    try:
        return run(args, configs, credentials)
    except MergeReposError as exc:
        logging.error("%s", exc)
        return 2
    except KeyboardInterrupt:
        logging.error("Interrupted")
        return 130


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
