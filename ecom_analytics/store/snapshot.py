"""
Canonical Store

Each load cycle publishes a new immutable snapshot of every canonical table.
Analytics bind to one snapshot version, so a reload never mutates tables
another consumer is reading.
"""

from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Type

import polars as pl
import structlog

from ecom_analytics.errors import SnapshotNotFoundError
from .models import CanonicalRecord, EntityType, RECORD_TYPES

logger = structlog.get_logger(__name__)


class CanonicalTable:
    """Read-only, key-addressable collection of one entity's records"""

    def __init__(self, record_type: Type[CanonicalRecord], records: Iterable[CanonicalRecord]):
        self.record_type = record_type
        ordered = sorted(records, key=lambda r: r.sort_key())
        self._records: Tuple[CanonicalRecord, ...] = tuple(ordered)
        self._index: Dict[Tuple[Any, ...], CanonicalRecord] = {}
        for record in self._records:
            if record.key in self._index:
                raise ValueError(
                    f"Duplicate key {record.key} in table '{record_type.table_name}'"
                )
            self._index[record.key] = record
        self._frame: Optional[pl.DataFrame] = None

    @property
    def name(self) -> str:
        return self.record_type.table_name

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[CanonicalRecord]:
        return iter(self._records)

    def __contains__(self, key: Any) -> bool:
        return self._normalize_key(key) in self._index

    def _normalize_key(self, key: Any) -> Tuple[Any, ...]:
        return key if isinstance(key, tuple) else (key,)

    def get(self, key: Any) -> Optional[CanonicalRecord]:
        """Look up a record by primary (scalar) or composite (tuple) key"""
        return self._index.get(self._normalize_key(key))

    @property
    def records(self) -> Tuple[CanonicalRecord, ...]:
        return self._records

    def to_frame(self) -> pl.DataFrame:
        """Polars view of the table (built once, cached)"""
        if self._frame is None:
            self._frame = pl.DataFrame(
                [r.to_row() for r in self._records],
                schema=self.record_type.polars_schema(),
            )
        return self._frame


@dataclass(frozen=True)
class CanonicalSnapshot:
    """One immutable, versioned canonical record set"""
    version: int
    created_at: datetime
    tables: Mapping[EntityType, CanonicalTable] = field(default_factory=dict)

    def table(self, entity: EntityType) -> CanonicalTable:
        entity = EntityType(entity)
        if entity not in self.tables:
            return CanonicalTable(RECORD_TYPES[entity], [])
        return self.tables[entity]

    def frame(self, entity: EntityType) -> pl.DataFrame:
        return self.table(entity).to_frame()

    def row_counts(self) -> Dict[str, int]:
        return {t.name: len(t) for t in self.tables.values()}


class CanonicalStore:
    """
    Registry of published canonical snapshots.

    Example:
        store = CanonicalStore()
        version = store.publish({EntityType.ORDER: orders, ...})
        snapshot = store.get(version)
    """

    def __init__(self, retain: int = 5):
        self.retain = retain
        self._snapshots: Dict[int, CanonicalSnapshot] = {}
        self._next_version = 1
        self._lock = Lock()

    def publish(
        self,
        records_by_entity: Mapping[EntityType, Sequence[CanonicalRecord]],
        created_at: Optional[datetime] = None,
    ) -> CanonicalSnapshot:
        """Freeze a complete record set as the next snapshot version"""
        tables = {
            EntityType(entity): CanonicalTable(RECORD_TYPES[EntityType(entity)], records)
            for entity, records in records_by_entity.items()
        }

        with self._lock:
            snapshot = CanonicalSnapshot(
                version=self._next_version,
                created_at=created_at or datetime.utcnow(),
                tables=tables,
            )
            self._snapshots[snapshot.version] = snapshot
            self._next_version += 1
            self._evict()

        logger.info(
            "Published canonical snapshot",
            version=snapshot.version,
            tables=snapshot.row_counts(),
        )
        return snapshot

    def _evict(self) -> None:
        versions = sorted(self._snapshots)
        for version in versions[:-self.retain]:
            del self._snapshots[version]

    def get(self, version: int) -> CanonicalSnapshot:
        try:
            return self._snapshots[version]
        except KeyError:
            raise SnapshotNotFoundError(
                f"Snapshot version {version} not found",
                details={"available": self.versions},
            ) from None

    def latest(self) -> CanonicalSnapshot:
        if not self._snapshots:
            raise SnapshotNotFoundError("No snapshot has been published")
        return self._snapshots[max(self._snapshots)]

    @property
    def versions(self) -> List[int]:
        return sorted(self._snapshots)
