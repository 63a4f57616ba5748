"""
Command-line entry point for dax-udf-sync.

Usage:
    dax-udf-sync --model Sales.SemanticModel status
    dax-udf-sync --functions-dir ./functions push Local.AddTax --dry-run
    dax-udf-sync --model Sales.SemanticModel pull --overwrite

Exit codes:
    0  success / everything in sync
    1  out of sync (status --check) or some functions failed
    2  configuration, model or GitHub error
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dax_udf_sync import __version__
from dax_udf_sync.comparison.report import StatusReporter
from dax_udf_sync.config.settings import ConfigurationError, Settings, setup_logging_redaction
from dax_udf_sync.github.client import GitHubContentsClient
from dax_udf_sync.github.exceptions import GitHubAPIError
from dax_udf_sync.local import FunctionStoreError, open_store
from dax_udf_sync.sync.service import SyncError, SyncResult, SyncService
from dax_udf_sync.utils.logger import set_log_level

EXIT_OK = 0
EXIT_OUT_OF_SYNC = 1
EXIT_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dax-udf-sync",
        description="Sync DAX user-defined functions between a semantic model and GitHub",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="YAML config file (default: udf-sync.yaml if present)")
    parser.add_argument("--repo", help="GitHub repository as owner/name")
    parser.add_argument("--branch", help="Branch to read from and commit to")
    parser.add_argument("--path", dest="functions_path", help="Repository folder holding .dax files")
    local = parser.add_mutually_exclusive_group()
    local.add_argument("--model", dest="model_path", help="TMDL functions.tmdl or semantic model folder")
    local.add_argument("--functions-dir", dest="functions_dir", help="Local folder of .dax files")
    parser.add_argument("-v", "--verbose", action="store_true", help="Write debug logs to stderr")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("scan", help="List function files in the repository")

    status = commands.add_parser("status", help="Compare local functions with the repository")
    status.add_argument("names", nargs="*", help="Only these functions")
    status.add_argument("--format", choices=["table", "json", "markdown"], default="table")
    status.add_argument(
        "--check", action="store_true", help="Exit with status 1 when anything is out of sync"
    )
    status.add_argument("--output", help="Also write sync-status.json and sync-status.md to this folder")

    push = commands.add_parser("push", help="Upload local functions to GitHub")
    push.add_argument("names", nargs="*", help="Only these functions (default: all changed)")
    push.add_argument("--dry-run", action="store_true", help="Show what would be uploaded")

    pull = commands.add_parser("pull", help="Download functions from GitHub into the model")
    pull.add_argument("names", nargs="*", help="Only these functions (default: remote-only)")
    pull.add_argument(
        "--overwrite", action="store_true", help="Also replace locally modified functions"
    )
    pull.add_argument("--dry-run", action="store_true", help="Show what would be downloaded")

    return parser


def _print_result(direction: str, result: SyncResult) -> None:
    changed = result.uploaded if direction == "upload" else result.downloaded
    done = f"Would {direction}" if result.dry_run else f"{direction.capitalize()}ed"
    for name in changed:
        print(f"{done}: {name}")
    for name, error in result.failed.items():
        print(f"FAILED: {name}: {error}", file=sys.stderr)
    print(f"{len(changed)} {direction}ed, {len(result.skipped)} skipped, {len(result.failed)} failed")


def run(args: argparse.Namespace, settings: Settings) -> int:
    settings.validate()
    client = GitHubContentsClient.from_settings(settings)

    if args.command == "scan":
        for remote in client.scan_tree(path=settings.functions_path):
            print(f"{remote.path}\t{remote.sha}\t{remote.size}")
        return EXIT_OK

    store = open_store(
        model_path=settings.model_path,
        functions_dir=settings.functions_dir,
        extension=settings.extensions[0],
    )
    service = SyncService(client=client, store=store, settings=settings)

    if args.command == "status":
        entries = service.status(names=args.names)
        reporter = StatusReporter(settings.repo, settings.branch, store.location)
        if args.format == "json":
            sys.stdout.write(reporter.generate_json_report(entries) + "\n")
        elif args.format == "markdown":
            sys.stdout.write(reporter.generate_markdown_summary(entries))
        else:
            sys.stdout.write(reporter.generate_table(entries, color=sys.stdout.isatty()))
        if args.output:
            reporter.write_reports(entries, Path(args.output))
        if args.check and reporter.summarize(entries)["out_of_sync"]:
            return EXIT_OUT_OF_SYNC
        return EXIT_OK

    if args.command == "push":
        result = service.push(names=args.names, dry_run=args.dry_run)
        _print_result("upload", result)
    else:
        result = service.pull(names=args.names, overwrite=args.overwrite, dry_run=args.dry_run)
        _print_result("download", result)

    return EXIT_OK if result.success else EXIT_OUT_OF_SYNC


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    set_log_level(logging.DEBUG if args.verbose else logging.WARNING)

    try:
        settings = Settings(
            config_path=args.config,
            overrides={
                "repo": args.repo,
                "branch": args.branch,
                "functions_path": args.functions_path,
                "model_path": args.model_path,
                "functions_dir": args.functions_dir,
            },
        )
        if args.model_path:
            settings.functions_dir = None
        elif args.functions_dir:
            settings.model_path = None
        setup_logging_redaction(settings)
        return run(args, settings)
    except (ConfigurationError, FunctionStoreError, SyncError, GitHubAPIError) as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
