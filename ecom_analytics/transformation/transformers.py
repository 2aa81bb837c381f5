"""
ETL Transformer

Load-phase orchestrator: normalizes every raw entity into canonical records,
deduplicates them, and reports what was rejected or defaulted along the way.
Entity types are independent, so they can be normalized in parallel.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

import structlog

from ecom_analytics.config import get_settings
from ecom_analytics.config.settings import Settings
from ecom_analytics.store.models import CanonicalRecord, EntityType
from .coercers import CoercionAudit, FieldCoercer
from .deduplicators import Deduplicator
from .normalizers import Normalizer, RawGeolocation, RawRecord, RejectedRow

logger = structlog.get_logger(__name__)


@dataclass
class EntityLoadResult:
    """Result of loading one entity type"""
    entity_type: EntityType
    input_rows: int
    output_rows: int
    rejected: List[RejectedRow]
    duplicates_removed: int
    audit: CoercionAudit
    records: List[CanonicalRecord]
    started_at: datetime
    completed_at: datetime

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()


@dataclass
class LoadReport:
    """Aggregate result of a full load"""
    entities: Dict[EntityType, EntityLoadResult] = field(default_factory=dict)

    @property
    def records(self) -> Dict[EntityType, List[CanonicalRecord]]:
        return {entity: result.records for entity, result in self.entities.items()}

    @property
    def rejected_count(self) -> int:
        return sum(len(r.rejected) for r in self.entities.values())

    @property
    def audit(self) -> CoercionAudit:
        merged = CoercionAudit()
        for result in self.entities.values():
            merged.merge(result.audit)
        return merged

    @property
    def fallback_count(self) -> int:
        return self.audit.total

    def summary(self) -> Dict[str, Dict[str, Any]]:
        return {
            entity.value: {
                "input_rows": r.input_rows,
                "output_rows": r.output_rows,
                "rejected": len(r.rejected),
                "duplicates_removed": r.duplicates_removed,
                "fallbacks": r.audit.total,
            }
            for entity, r in self.entities.items()
        }


class ETLTransformer:
    """
    Load-phase pipeline orchestrator.

    Example:
        transformer = ETLTransformer()
        report = transformer.run_full_load(source)
        store.publish(report.records)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        max_workers: Optional[int] = None,
    ):
        self.settings = settings or get_settings()
        self.max_workers = max_workers or self.settings.analytics.max_workers
        self.deduplicator = Deduplicator(
            strategies=self.settings.dedup.strategies,
            default_strategy=self.settings.dedup.default_strategy,
        )

    def _new_normalizer(self) -> Normalizer:
        # One audit per entity; audits are merged after the workers finish
        audit = CoercionAudit()
        coercer = FieldCoercer(
            datetime_formats=self.settings.analytics.datetime_formats,
            audit=audit,
        )
        return Normalizer(coercer=coercer, audit=audit)

    def transform_entity(
        self,
        entity_type: EntityType,
        raw_rows: Iterable[RawRecord],
    ) -> EntityLoadResult:
        """
        Normalize and deduplicate one entity.

        Pipeline:
        1. Normalize each raw row (reject on missing key)
        2. Deduplicate by key with the configured tie-break
        """
        entity_type = EntityType(entity_type)
        started_at = datetime.utcnow()
        normalizer = self._new_normalizer()

        input_rows = 0
        rejected: List[RejectedRow] = []
        normalized: List[Any] = []
        for raw in raw_rows:
            input_rows += 1
            result = normalizer.normalize(entity_type, raw)
            if isinstance(result, RejectedRow):
                logger.debug(
                    "Rejected raw row",
                    entity=entity_type.value,
                    reason=result.reason,
                )
                rejected.append(result)
            else:
                normalized.append(result)

        if entity_type == EntityType.GEOLOCATION:
            geos: Sequence[RawGeolocation] = normalized
            records = self.deduplicator.dedup_geolocations(geos)
            duplicates_removed = len(geos) - len(records)
        else:
            records = self.deduplicator.dedup_records(entity_type, normalized)
            duplicates_removed = len(normalized) - len(records)

        completed_at = datetime.utcnow()
        logger.info(
            f"Loaded {entity_type.value}",
            input_rows=input_rows,
            output_rows=len(records),
            rejected=len(rejected),
            duplicates_removed=duplicates_removed,
            fallbacks=normalizer.audit.total,
        )

        return EntityLoadResult(
            entity_type=entity_type,
            input_rows=input_rows,
            output_rows=len(records),
            rejected=rejected,
            duplicates_removed=duplicates_removed,
            audit=normalizer.audit,
            records=records,
            started_at=started_at,
            completed_at=completed_at,
        )

    def run_full_load(self, source: Any) -> LoadReport:
        """
        Load every entity a raw source provides.

        Args:
            source: Object with entity_types() and read(entity_type)

        Returns:
            LoadReport with canonical records per entity
        """
        entity_types = list(source.entity_types())
        logger.info(
            "Starting full load",
            entities=[e.value for e in entity_types],
            max_workers=self.max_workers,
        )

        report = LoadReport()
        if self.max_workers > 1 and len(entity_types) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                futures = {
                    entity: pool.submit(self.transform_entity, entity, source.read(entity))
                    for entity in entity_types
                }
                # result() re-raises the first worker failure
                for entity in entity_types:
                    report.entities[entity] = futures[entity].result()
        else:
            for entity in entity_types:
                report.entities[entity] = self.transform_entity(entity, source.read(entity))

        logger.info(
            "Full load complete",
            rejected=report.rejected_count,
            fallbacks=report.fallback_count,
        )
        return report
