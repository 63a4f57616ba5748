#!/usr/bin/env python3
"""
Verification script to print the resolved sync configuration.

Usage:
    python scripts/print_config.py [--config udf-sync.yaml] [--check-access]

Output:
    Summary of the resolved settings including:
    - Target repository, branch and functions folder
    - Where each value came from (config file / environment)
    - Masked GitHub token
    - Optionally, the number of function files visible with that token
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

from dax_udf_sync.config.settings import ENV_OVERRIDES, ConfigurationError, Settings
from dax_udf_sync.github.client import GitHubContentsClient
from dax_udf_sync.github.exceptions import GitHubAPIError
from dax_udf_sync.utils.logger import mask_token

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def print_config_summary(settings: Settings, token: Optional[str]) -> None:
    """Print summary of resolved settings."""
    print("\n" + "=" * 80)
    print("SYNC CONFIGURATION SUMMARY")
    print("=" * 80)

    print(f"\nConfig file: {settings.config_path or '(none)'}")
    for key, value in settings.to_dict().items():
        if key == "config_file":
            continue
        print(f"  {key:<16} {value}")

    print("\n" + "-" * 80)
    print("ENVIRONMENT OVERRIDES")
    print("-" * 80)
    active = [name for name in ENV_OVERRIDES if os.getenv(name)]
    if active:
        for name in active:
            print(f"  - {name} -> {ENV_OVERRIDES[name]}")
    else:
        print("  (none)")

    print(f"\nGitHub token: {mask_token(token)}")
    print("\n" + "=" * 80 + "\n")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Print the resolved dax-udf-sync configuration")
    parser.add_argument("--config", help="YAML config file")
    parser.add_argument(
        "--check-access", action="store_true", help="Scan the repository folder with the token"
    )
    args = parser.parse_args(argv)

    try:
        settings = Settings(config_path=args.config)
        try:
            token: Optional[str] = settings.load_github_token()
        except ConfigurationError as e:
            logger.warning(f"Token not available: {e}")
            token = None

        print_config_summary(settings, token)

        if args.check_access:
            settings.validate()
            client = GitHubContentsClient.from_settings(settings)
            files = client.scan_tree(path=settings.functions_path)
            print(f"✓ {len(files)} function files visible in {settings.repo}@{settings.branch}")

        return 0

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except GitHubAPIError as e:
        logger.error(f"GitHub error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
