from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Tuple

from .config import SubtreeConfig


@dataclass(frozen=True)
class MergedRef:
    """A merged branch or tag and the repositories it was present/missing in."""

    kind: str
    name: str
    configs_with: Tuple[SubtreeConfig, ...]
    configs_without: Tuple[SubtreeConfig, ...]

    @property
    def message(self) -> str:
        return format_merge_message(self.kind, self.name, self.configs_with, self.configs_without)


def format_merge_message(
    kind: str,
    name: str,
    configs_with: Sequence[SubtreeConfig],
    configs_without: Sequence[SubtreeConfig],
) -> str:
    lines = [f"Merge {kind} '{name}' from multiple repositories", "", " Repositories:"]
    lines.extend(f"\t{config.remote_name}" for config in configs_with)
    if configs_without:
        lines.append("")
        lines.append(f"Repositories without this {kind}:")
        lines.extend(f"\t{config.remote_name}" for config in configs_without)
    return "\n".join(lines) + "\n"


def summarize_incomplete(merged_refs: Sequence[MergedRef]) -> List[str]:
    lines = []
    for ref in merged_refs:
        if ref.configs_without:
            missing = ", ".join(config.remote_name for config in ref.configs_without)
            lines.append(f"{ref.kind} '{ref.name}' was not in: {missing}")
    return lines


def write_merge_report(report_path: Path, merged_refs: Sequence[MergedRef]) -> None:
    payload = {
        "refs": [
            {
                "kind": ref.kind,
                "name": ref.name,
                "repositories": [config.remote_name for config in ref.configs_with],
                "missing": [config.remote_name for config in ref.configs_without],
            }
            for ref in merged_refs
        ]
    }
    report_path.write_text(json.dumps(payload, indent=2))
    logging.info("Wrote merge report to %s", report_path)
