"""
Headless ingest runner.

Copies an extraction tool output directory into a case folder, registers it
as a data source in the case database and creates the artifacts its exports
describe.
"""
from __future__ import annotations

import argparse
import sys
import uuid
from pathlib import Path
from typing import List, Optional, Sequence

from core.config import load_app_config
from core.database import CaseStore
from core.enums import Severity
from core.logging import configure_logging, get_logger
from core.models import DataSource

from .case import CaseHandle
from .dumper import EseDatabaseViewDumper, find_ese_dumper
from .ingest_task import IngestTask

EXIT_CODES = {
    Severity.NO_ERRORS: 0,
    Severity.NON_CRITICAL: 1,
    Severity.CRITICAL: 2,
}


class ConsoleSink:
    """Prints progress and the final result to the terminal."""

    def __init__(self, quiet: bool = False):
        self.quiet = quiet
        self.severity = Severity.NO_ERRORS

    def report_progress(self, text: str) -> None:
        if not self.quiet:
            print(text)

    def is_cancelled(self) -> bool:
        return False

    def done(self, severity: Severity, errors: Sequence[str], new_data_sources: Sequence[DataSource]) -> None:
        self.severity = severity
        for source in new_data_sources:
            print(f"Added data source {source.id}: {source.name} ({source.kind})")
        for message in errors:
            print(f"Error: {message}", file=sys.stderr)
        print(f"Result: {severity}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="case-ingest",
        description="Ingest an extraction tool output directory into a case",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Ingest a logical imager output folder into a case database
  %(prog)s /mnt/usb/Logical_Imager_20190523 /cases/c1/li_1 --case-db /cases/c1/case.sqlite

  # Same, with browser database extraction through ESEDatabaseView
  %(prog)s /mnt/usb/li /cases/c1/li_1 --case-db /cases/c1/case.sqlite \\
      --dumper "C:/Tools/ESEDatabaseView/ESEDatabaseView.exe"

Exit codes: 0 no errors, 1 non-critical errors, 2 critical errors
        """,
    )
    parser.add_argument("source", type=Path, help="Extraction tool output directory")
    parser.add_argument("dest", type=Path, help="Destination directory inside the case")
    parser.add_argument("--case-db", type=Path, required=True,
                        help="Case database (created if missing)")
    parser.add_argument("--device-id", default=None,
                        help="Device id for the new data source (default: random UUID)")
    parser.add_argument("--time-zone", default="UTC",
                        help="IANA time zone of the source device (default: UTC)")
    parser.add_argument("--base-dir", type=Path, default=Path.cwd(),
                        help="Directory holding config/config.yml and logs/")
    parser.add_argument("--dumper", type=Path, default=None,
                        help="Path to ESEDatabaseView for browser database extraction")
    parser.add_argument("--enumerate-subdirs", action="store_true",
                        help="Without images, add every subdirectory instead of only 'root'")
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress progress and console log output")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    app_config = load_app_config(args.base_dir)
    configure_logging(app_config.logs_dir, app_config.logging, console=not args.quiet)
    logger = get_logger("ingest.cli")

    config = app_config.ingest
    if args.enumerate_subdirs:
        config.logical_root_fallback = False

    dumper = None
    requested_dumper = args.dumper or config.dumper_path
    if requested_dumper is not None:
        dumper_path = find_ese_dumper(requested_dumper)
        if dumper_path is None:
            print(f"Error: table dumper not found: {requested_dumper}", file=sys.stderr)
            return 2
        dumper = EseDatabaseViewDumper(dumper_path)

    sink = ConsoleSink(quiet=args.quiet)
    store = CaseStore.open(args.case_db)
    try:
        task = IngestTask(
            args.device_id or str(uuid.uuid4()),
            args.time_zone,
            args.source,
            args.dest,
            sink,
            sink,
            case=CaseHandle.from_store(store),
            config=config,
            dumper=dumper,
        )
        try:
            task.run()
        except KeyboardInterrupt:
            task.cancel()
            logger.warning("Interrupted by user")
            return 130
    finally:
        store.close()

    return EXIT_CODES[sink.severity]


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
