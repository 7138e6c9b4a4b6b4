# src/systemaddons/cli.py

import argparse
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from rich.console import Console
from rich.table import Table

from systemaddons import log_utils
from systemaddons.config import PipelineSettings, load_config
from systemaddons.exceptions import SystemAddonsError
from systemaddons.pipeline import PipelineOrchestrator, ReleaseInfo
from systemaddons.utils import get_package_version


def merge_addon_versions(info: ReleaseInfo) -> List[Tuple[str, str, str]]:
    """
    Merge the builtin and update lists of a record into one row per addon.

    Returns:
        List[Tuple[str, str, str]]: (addon id, builtin version, update version)
        rows sorted by addon id; a missing side is an empty string.
    """
    merged: Dict[str, Dict[str, str]] = {}
    for addon in info.builtins:
        merged[addon.id] = {"builtin": addon.version}
    for addon in info.updates:
        merged.setdefault(addon.id, {})["update"] = addon.version
    return [
        (addon_id, versions.get("builtin", ""), versions.get("update", ""))
        for addon_id, versions in sorted(merged.items())
    ]


def render_release_info(console: Console, info: ReleaseInfo) -> None:
    """Print one stored record as a table of addon versions."""
    release = info.release
    table = Table(
        title=f"Firefox {release.version} {release.target}",
        caption=(
            f"{release.url}\nbuild {release.build_id} | {release.locale} | "
            f"channel {release.channel}"
        ),
    )
    table.add_column("Addon")
    table.add_column("Builtin")
    table.add_column("Update")
    for addon_id, builtin, update in merge_addon_versions(info):
        table.add_row(addon_id, builtin, update)
    console.print(table)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="systemaddons-versions - Track system addon versions of Firefox releases"
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Path to the YAML configuration file",
    )
    parser.add_argument(
        "--log-level",
        metavar="LEVEL",
        help="Console log level (e.g., DEBUG, INFO, WARNING)",
    )
    subparsers = parser.add_subparsers(dest="command")

    # Command to run the whole pipeline
    subparsers.add_parser(
        "run", help="Discover, inspect and publish new releases"
    )

    # Command to preview discovery
    walk_parser = subparsers.add_parser(
        "walk", help="List the releases the next run would inspect"
    )
    walk_parser.add_argument(
        "--all",
        dest="include_all",
        action="store_true",
        help="Ignore the latest published version and list every release",
    )

    # Command to display the low-water-mark
    subparsers.add_parser("latest", help="Display the latest published version")

    # Command to display stored records
    show_parser = subparsers.add_parser(
        "show", help="Display the published records"
    )
    show_parser.add_argument(
        "--channel",
        help="Only display records of this release channel",
    )

    # Command to display version
    subparsers.add_parser("version", help="Display systemaddons-versions version")

    return parser


def _load_settings(config_path: Optional[str]) -> PipelineSettings:
    config = load_config(config_path)

    log_level = config.get("LOG_LEVEL")
    if log_level:
        log_utils.set_log_level(str(log_level))
    log_dir = config.get("LOG_DIR")
    if log_dir:
        log_utils.add_file_logging(
            Path(str(log_dir)).expanduser(), str(log_level or "INFO")
        )

    return PipelineSettings.from_config(config)


def run_pipeline(settings: PipelineSettings) -> int:
    """Run the pipeline and return the process exit code."""
    orchestrator = PipelineOrchestrator(settings)
    try:
        summary = orchestrator.run()
    except SystemAddonsError as e:
        log_utils.logger.error(f"Pipeline failed: {e}")
        return 1
    except KeyboardInterrupt:
        log_utils.logger.warning("Pipeline interrupted")
        return 1
    finally:
        orchestrator.close()

    log_utils.logger.info(
        f"Published {summary.published} release(s), {summary.created} new"
    )
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    """
    Entry point for the systemaddons-versions command-line interface.

    Parses command-line arguments and dispatches the subcommands: run, walk,
    latest, show and version. Exits with status 1 when configuration cannot be
    loaded or a command fails.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.log_level:
        log_utils.set_log_level(args.log_level)

    if args.command is None:
        parser.print_help()
        return

    if args.command == "version":
        log_utils.logger.info(f"systemaddons-versions v{get_package_version()}")
        return

    try:
        settings = _load_settings(args.config)
    except SystemAddonsError as e:
        log_utils.logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    # Command-line level wins over the configuration file
    if args.log_level:
        log_utils.set_log_level(args.log_level)

    if args.command == "run":
        exit_code = run_pipeline(settings)
        if exit_code:
            sys.exit(exit_code)
        return

    orchestrator = PipelineOrchestrator(settings)
    try:
        if args.command == "walk":
            for release in orchestrator.preview(ignore_min_version=args.include_all):
                print(release.url)
        elif args.command == "latest":
            latest = orchestrator.resolve_min_version()
            print(latest or "No release published yet")
        elif args.command == "show":
            console = Console()
            records = orchestrator.store.list_records(args.channel)
            if not records:
                print("No release published yet")
            for info in records:
                render_release_info(console, info)
    except SystemAddonsError as e:
        log_utils.logger.error(f"Command '{args.command}' failed: {e}")
        sys.exit(1)
    finally:
        orchestrator.close()


if __name__ == "__main__":
    main()
