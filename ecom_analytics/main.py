"""
Command-Line Entry Point

Runs the batch pipeline over a directory of raw CSV exports and writes the
analytical reports as parquet.

Usage:
    python -m ecom_analytics.main --source data/raw
    python -m ecom_analytics.main --source data/raw --output data/curated --as-of 2018-10-01
"""

import argparse
import sys
from datetime import datetime
from typing import List, Optional

import structlog

from ecom_analytics.config import get_settings
from ecom_analytics.config.logging import configure_logging
from ecom_analytics.errors import BatchAbortError
from ecom_analytics.ingestion.raw_source import CsvRawSource
from ecom_analytics.workflows.batch_etl import export_reports, run_batch_etl

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="E-Commerce Warehouse Analytics batch run")
    parser.add_argument(
        "--source",
        required=True,
        help="Directory holding the raw CSV exports",
    )
    parser.add_argument(
        "--output",
        default=None,
        help="Directory for parquet reports (default: curated path from settings)",
    )
    parser.add_argument(
        "--as-of",
        dest="as_of",
        type=datetime.fromisoformat,
        default=None,
        help="Reference instant for recency, ISO format (default: now)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LOG_LEVEL (DEBUG, INFO, WARNING, ERROR)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(args.log_level)

    source = CsvRawSource(args.source)
    try:
        result = run_batch_etl(source, settings=settings, as_of=args.as_of)
    except BatchAbortError as e:
        logger.error("Batch run aborted", phase=e.phase, error=e.message, details=e.details)
        return 1

    written = export_reports(result, args.output or settings.data_lake.curated_path)
    logger.info(
        "Batch run finished",
        snapshot_version=result.snapshot_version,
        reports=len(written),
        alerts=len(result.alerts),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
