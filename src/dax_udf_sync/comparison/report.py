"""Status Reporter - summarize sync entries as a table, JSON or Markdown."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Tuple

from dax_udf_sync.domain.status import SyncEntry, SyncStatus

logger = logging.getLogger(__name__)

# Terminal escape codes for SyncStatus.color
ANSI_COLORS = {
    "green": "\033[92m",
    "red": "\033[91m",
    "yellow": "\033[93m",
    "blue": "\033[94m",
    "gray": "\033[90m",
}
ANSI_RESET = "\033[0m"


class StatusReporter:
    """Generate status artifacts for one reconcile run."""

    def __init__(self, repo: str, branch: str, location: str) -> None:
        self.repo = repo
        self.branch = branch
        self.location = location

    def summarize(self, entries: List[SyncEntry]) -> Dict[str, Any]:
        counts = {status.code: 0 for status in SyncStatus}
        for entry in entries:
            counts[entry.status.code] += 1

        out_of_sync = len(entries) - counts[SyncStatus.IN_SYNC.code]
        return {
            "repo": self.repo,
            "branch": self.branch,
            "local": self.location,
            "total_functions": len(entries),
            "counts": counts,
            "out_of_sync": out_of_sync,
            "sync_status": "IN_SYNC" if out_of_sync == 0 else "OUT_OF_SYNC",
            "timestamp": datetime.now().isoformat(),
        }

    def generate_json_report(self, entries: List[SyncEntry]) -> str:
        report = {
            "metadata": {
                "repo": self.repo,
                "branch": self.branch,
                "local": self.location,
                "generated_at": datetime.now().isoformat(),
            },
            "statistics": self.summarize(entries),
            "functions": [entry.to_dict() for entry in entries],
        }
        return json.dumps(report, indent=2, default=str)

    def generate_markdown_summary(self, entries: List[SyncEntry]) -> str:
        stats = self.summarize(entries)
        counts = stats["counts"]
        md_lines = [
            f"# Function Sync Report: {self.repo}@{self.branch}",
            f"**Local model:** {self.location}",
            f"**Generated:** {stats['timestamp']}",
            "",
            "## Summary",
            f"- **Functions:** {stats['total_functions']}",
            f"- **In sync:** {counts[SyncStatus.IN_SYNC.code]}",
            f"- **Modified:** {counts[SyncStatus.MODIFIED.code]}",
            f"- **Local only:** {counts[SyncStatus.LOCAL_ONLY.code]}",
            f"- **Remote only:** {counts[SyncStatus.REMOTE_ONLY.code]}",
            f"- **Unknown:** {counts[SyncStatus.UNKNOWN.code]}",
            f"- **Status:** {stats['sync_status']}",
            "",
        ]

        pending = [entry for entry in entries if entry.status is not SyncStatus.IN_SYNC]
        if pending:
            md_lines.append("## Out of Sync")
            md_lines.append("")
            md_lines.append("| Function | Status | Remote path |")
            md_lines.append("| --- | --- | --- |")
            for entry in pending:
                md_lines.append(
                    f"| {entry.name} | {entry.status.label} | {entry.remote_path or '-'} |"
                )
        else:
            md_lines.append("All functions in sync.")

        return "\n".join(md_lines) + "\n"

    def generate_table(self, entries: List[SyncEntry], color: bool = False) -> str:
        """Plain-text table for terminal output; ``color`` tints the status column."""
        rows: List[Tuple[str, str, str]] = [
            (entry.status.label.upper(), entry.name, entry.remote_path or entry.error or "")
            for entry in entries
        ]
        if not rows:
            return "No functions found.\n"

        status_width = max(len("STATUS"), *(len(row[0]) for row in rows))
        name_width = max(len("FUNCTION"), *(len(row[1]) for row in rows))
        lines = [f"{'STATUS':<{status_width}}  {'FUNCTION':<{name_width}}  REMOTE PATH"]
        for entry, (status, name, detail) in zip(entries, rows):
            cell = f"{status:<{status_width}}"
            if color:
                cell = f"{ANSI_COLORS[entry.status.color]}{status}{ANSI_RESET}{cell[len(status):]}"
            lines.append(f"{cell}  {name:<{name_width}}  {detail}".rstrip())

        stats = self.summarize(entries)
        lines.append("")
        lines.append(
            f"{stats['total_functions']} functions, {stats['out_of_sync']} out of sync "
            f"({self.repo}@{self.branch})"
        )
        return "\n".join(lines) + "\n"

    def write_reports(self, entries: List[SyncEntry], output_dir: Path) -> Tuple[Path, Path]:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        json_path = output_dir / "sync-status.json"
        md_path = output_dir / "sync-status.md"

        json_path.write_text(self.generate_json_report(entries), encoding="utf-8")
        md_path.write_text(self.generate_markdown_summary(entries), encoding="utf-8")

        logger.info("Wrote sync status reports")
        logger.info("  JSON: %s", json_path)
        logger.info("  Markdown: %s", md_path)
        return json_path, md_path
