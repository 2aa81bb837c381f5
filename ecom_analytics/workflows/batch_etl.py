"""
Batch ETL Workflow

Full-refresh pipeline over one raw source:
1. load      - normalize and deduplicate every entity
2. validate  - canonical data quality checks
3. publish   - freeze the record set as a new snapshot version
4. analytics - reports bound to that snapshot
5. alerts    - revenue-drop and slow-shipping alerts

Analytics start only after the snapshot is published. Any exception inside a
phase aborts the run with BatchAbortError; the snapshot of an aborted load is
never published.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar, Union

import polars as pl
import structlog

from ecom_analytics.analytics.alerts import Alert
from ecom_analytics.analytics.reports import ReportBuilder
from ecom_analytics.config import get_settings
from ecom_analytics.config.settings import Settings
from ecom_analytics.errors import BatchAbortError
from ecom_analytics.quality.validators import ValidationStatus, validate_canonical_tables
from ecom_analytics.store.models import RECORD_TYPES
from ecom_analytics.store.snapshot import CanonicalSnapshot, CanonicalStore
from ecom_analytics.transformation.transformers import ETLTransformer, LoadReport

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class PhaseStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class PhaseResult:
    name: str
    status: PhaseStatus
    started_at: datetime
    completed_at: datetime
    error: Optional[str] = None

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()


@dataclass
class PipelineResult:
    """Outcome of one pipeline run"""
    as_of: datetime
    phases: Dict[str, PhaseResult] = field(default_factory=dict)
    snapshot_version: Optional[int] = None
    load_summary: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    rejected_count: int = 0
    fallback_count: int = 0
    reports: Dict[str, pl.DataFrame] = field(default_factory=dict)
    alerts: List[Alert] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return bool(self.phases) and all(
            p.status == PhaseStatus.COMPLETED for p in self.phases.values()
        )


def _run_phase(result: PipelineResult, name: str, func: Callable[[], T]) -> T:
    """Run one phase, recording its status; failures become BatchAbortError"""
    started_at = datetime.utcnow()
    logger.info("Phase started", phase=name)
    try:
        value = func()
    except Exception as e:
        result.phases[name] = PhaseResult(
            name=name,
            status=PhaseStatus.FAILED,
            started_at=started_at,
            completed_at=datetime.utcnow(),
            error=str(e),
        )
        logger.error("Phase failed", phase=name, error=str(e), exc_info=True)
        if isinstance(e, BatchAbortError):
            raise
        raise BatchAbortError(name, str(e), details={"error_type": type(e).__name__}) from e

    result.phases[name] = PhaseResult(
        name=name,
        status=PhaseStatus.COMPLETED,
        started_at=started_at,
        completed_at=datetime.utcnow(),
    )
    logger.info("Phase completed", phase=name, duration_seconds=result.phases[name].duration_seconds)
    return value


def _validate(report: LoadReport) -> None:
    frames = {
        entity: pl.DataFrame(
            [r.to_row() for r in records],
            schema=RECORD_TYPES[entity].polars_schema(),
        )
        for entity, records in report.records.items()
    }
    results = validate_canonical_tables(frames)
    failed = {
        r.table: [c.name for c in r.errors]
        for r in results.values()
        if r.status == ValidationStatus.FAILED
    }
    if failed:
        raise BatchAbortError("validate", "canonical data quality checks failed", details=failed)


def run_batch_etl(
    source: Any,
    settings: Optional[Settings] = None,
    as_of: Optional[datetime] = None,
    store: Optional[CanonicalStore] = None,
) -> PipelineResult:
    """
    Run the full-refresh pipeline.

    Args:
        source: Raw record source (entity_types() / read(entity_type))
        settings: Application settings (default: cached settings)
        as_of: Reference instant for recency (default: settings, then now)
        store: Snapshot store to publish into (default: a new store)

    Returns:
        PipelineResult with phase statuses, counts, reports and alerts

    Raises:
        BatchAbortError: a phase failed; no analytics were produced
    """
    settings = settings or get_settings()
    as_of = as_of or settings.analytics.as_of or datetime.utcnow()
    store = store if store is not None else CanonicalStore()

    result = PipelineResult(as_of=as_of)
    logger.info("Starting batch ETL", as_of=as_of.isoformat(), environment=settings.app_env)

    transformer = ETLTransformer(settings=settings)
    report: LoadReport = _run_phase(result, "load", lambda: transformer.run_full_load(source))
    result.load_summary = report.summary()
    result.rejected_count = report.rejected_count
    result.fallback_count = report.fallback_count

    _run_phase(result, "validate", lambda: _validate(report))

    # Barrier: nothing below runs until the snapshot exists
    snapshot: CanonicalSnapshot = _run_phase(result, "publish", lambda: store.publish(report.records))
    result.snapshot_version = snapshot.version

    builder = ReportBuilder(snapshot, settings)
    result.reports.update(_run_phase(result, "analytics", lambda: builder.build_reports(as_of)))

    alert_frames, alerts = _run_phase(result, "alerts", builder.build_alerts)
    result.reports.update(alert_frames)
    result.alerts = alerts

    logger.info(
        "Batch ETL complete",
        snapshot_version=result.snapshot_version,
        rejected=result.rejected_count,
        fallbacks=result.fallback_count,
        alerts=len(result.alerts),
    )
    return result


def export_reports(result: PipelineResult, output_path: Union[str, Path]) -> Dict[str, str]:
    """Write every report as parquet under output_path/v<snapshot_version>/"""
    directory = Path(output_path) / f"v{result.snapshot_version}"
    directory.mkdir(parents=True, exist_ok=True)

    written = {}
    for name, df in result.reports.items():
        output_file = directory / f"{name}.parquet"
        df.write_parquet(output_file)
        written[name] = str(output_file)
        logger.info(f"Written {len(df)} rows to {output_file}")
    return written
