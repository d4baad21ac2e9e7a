"""CLI entry point for the student account sync.

Requires .env file with Google Workspace service account settings, except
for --dry-run without credentials and --generate-sample.
"""

import argparse
import logging
import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dotenv import load_dotenv

from roster_sync.config import Config, ConfigError
from roster_sync.directory.admin import DirectoryService
from roster_sync.directory.auth import DirectoryAuth
from roster_sync.directory.client import DirectoryClient
from roster_sync.engine.models import PlanMode
from roster_sync.engine.roster import RosterError, RosterParser, sample_roster
from roster_sync.orchestrator.gate import always_confirm, interactive_confirm
from roster_sync.orchestrator.pipeline import OfflinePipeline, RunContext, SyncPipeline

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(message)s"
LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}
SAMPLE_FILE = Path("sample-students.csv")


def setup_logging(level_name: str, log_dir: Path = Path("logs")) -> None:
    level = LOG_LEVELS.get(level_name.lower(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%H:%M:%S")

    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_dir / f"sync-{date.today().isoformat()}.log")
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(file_handler)


def main():
    parser = argparse.ArgumentParser(description="Google Workspace Student Account Sync")
    parser.add_argument(
        "-d", "--dry-run", action="store_true",
        help="Preview changes without making them",
    )
    parser.add_argument(
        "-f", "--csv-file", type=Path,
        help="Path to student CSV file (overrides STUDENT_CSV_FILE)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-level", choices=sorted(LOG_LEVELS),
        help="Set log level (overrides LOG_LEVEL)",
    )
    modes = parser.add_mutually_exclusive_group()
    modes.add_argument(
        "--create-only", dest="mode", action="store_const", const=PlanMode.CREATE_ONLY,
        help="Only create new accounts",
    )
    modes.add_argument(
        "--move-only", dest="mode", action="store_const", const=PlanMode.MOVE_ONLY,
        help="Only move existing accounts",
    )
    modes.add_argument(
        "--deactivate-only", dest="mode", action="store_const", const=PlanMode.DEACTIVATE_ONLY,
        help="Only deactivate accounts",
    )
    parser.add_argument(
        "--generate-sample", action="store_true",
        help=f"Write a sample roster to {SAMPLE_FILE} and exit",
    )
    parser.add_argument(
        "--no-headers", action="store_true",
        help="CSV file has no header row",
    )
    parser.add_argument(
        "--yes", action="store_true",
        help="Confirm bulk deactivations without prompting",
    )
    parser.add_argument(
        "--env-file", type=Path, default=Path(".env"),
        help="Path to .env file (default: .env)",
    )
    args = parser.parse_args()

    if args.generate_sample:
        SAMPLE_FILE.write_text(sample_roster(), encoding="utf-8")
        print(f"Sample CSV file generated: {SAMPLE_FILE}")
        return

    load_dotenv(args.env_file)
    try:
        config = Config.from_env()
        if args.csv_file:
            config.roster_file = args.csv_file
        if args.dry_run:
            config.dry_run = True
        if args.mode:
            config.mode = args.mode
        if args.verbose or args.log_level:
            config.log_level = args.log_level or "debug"
        config.validate()
    except ConfigError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    setup_logging(config.log_level)
    logger = logging.getLogger("roster_sync")
    logger.info("Starting Google Workspace Student Account Sync")
    logger.info(f"Configuration: {config.redacted()}")

    try:
        students = RosterParser(has_headers=not args.no_headers).parse_file(config.roster_file)
    except RosterError as e:
        logger.error(str(e))
        sys.exit(1)

    context = RunContext(
        config=config,
        confirm=always_confirm if args.yes else interactive_confirm,
    )

    missing = config.missing_credentials()
    if missing and config.dry_run:
        logger.info(f"No directory credentials ({', '.join(missing)}), planning offline")
        OfflinePipeline(students, context).run()
        return
    if missing:
        print(f"ERROR: Missing {', '.join(missing)}. Check your .env file.")
        sys.exit(1)

    auth = DirectoryAuth(config.service_account_key_file, config.delegated_user)
    client = DirectoryClient(
        auth,
        max_retries=config.retry_attempts,
        retry_delay=config.retry_delay_ms / 1000,
    )
    directory = DirectoryService(client, config.domain)

    summary = SyncPipeline(directory, students, context).run()

    # Print results table
    if summary.results:
        print("\n" + "=" * 78)
        print(f"{'Status':<8} {'Action':<12} {'Student':<40} {'Time':>6}")
        print("-" * 78)
        for r in summary.results:
            icon = "OK" if r.success else "FAIL"
            print(
                f"{icon:<8} {r.action.type.value:<12} {r.action.student.label:<40} "
                f"{r.duration_seconds:>5.2f}s"
            )
            if r.error_message:
                print(f"         ERROR: {r.error_message}")
        print("=" * 78)

    failed = summary.error_count + len(summary.org_node_errors)
    print(
        f"\nPlanned: {summary.planned} | Processed: {summary.total_processed} | "
        f"Failed: {failed}{' | CANCELLED' if summary.cancelled else ''}"
    )
    if failed:
        logger.error(f"Sync completed with {failed} error(s)")
        sys.exit(1)
    logger.info("Sync completed successfully")


if __name__ == "__main__":
    main()
