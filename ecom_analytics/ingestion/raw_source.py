"""
Raw Record Sources

Thin adapters that hand raw, untyped records to the load phase one entity
at a time. Every value arrives as a string or None; typing is the
normalizer's job.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Union

import polars as pl
import structlog

from ecom_analytics.config import get_settings
from ecom_analytics.store.models import EntityType
from ecom_analytics.transformation.normalizers import RawRecord

logger = structlog.get_logger(__name__)


class RawRecordSource(ABC):
    """Abstract base class for raw record providers"""

    @abstractmethod
    def entity_types(self) -> List[EntityType]:
        """Return the entity types this source can provide"""
        pass

    @abstractmethod
    def read(self, entity_type: EntityType) -> Iterable[RawRecord]:
        """
        Read the raw records of one entity.

        Args:
            entity_type: Entity to read

        Returns:
            Iterable of raw string records
        """
        pass


class InMemoryRawSource(RawRecordSource):
    """
    Raw records held in memory, keyed by entity type.

    Example:
        source = InMemoryRawSource({
            EntityType.ORDER: [{"order_id": "o1", "customer_id": "c1", ...}],
        })
    """

    def __init__(self, records: Mapping[Union[EntityType, str], Sequence[RawRecord]]):
        self._records: Dict[EntityType, List[RawRecord]] = {
            EntityType(entity): [dict(r) for r in rows]
            for entity, rows in records.items()
        }

    def entity_types(self) -> List[EntityType]:
        return [e for e in EntityType if e in self._records]

    def read(self, entity_type: EntityType) -> Iterator[RawRecord]:
        return iter(self._records.get(EntityType(entity_type), []))


class CsvRawSource(RawRecordSource):
    """
    Directory of raw CSV exports, one file per entity.

    Files are read with polars with schema inference disabled, so every
    column comes through as a string. Entities whose file is absent are
    skipped.
    """

    def __init__(
        self,
        directory: Optional[Union[str, Path]] = None,
        file_names: Optional[Mapping[str, str]] = None,
        null_values: Optional[Sequence[str]] = None,
    ):
        data_lake = get_settings().data_lake
        self.directory = Path(directory or data_lake.raw_path)
        self.file_names = dict(file_names or data_lake.raw_files)
        self.null_values = list(null_values if null_values is not None else data_lake.null_values)

    def _path_for(self, entity_type: EntityType) -> Optional[Path]:
        name = self.file_names.get(EntityType(entity_type).value)
        if name is None:
            return None
        return self.directory / name

    def entity_types(self) -> List[EntityType]:
        available = []
        for entity in EntityType:
            path = self._path_for(entity)
            if path is not None and path.exists():
                available.append(entity)
        return available

    def read_frame(self, entity_type: EntityType) -> pl.DataFrame:
        """Read one entity's file as an all-string DataFrame"""
        path = self._path_for(entity_type)
        if path is None or not path.exists():
            logger.warning("Raw file not found", entity=EntityType(entity_type).value, path=str(path))
            return pl.DataFrame()

        df = pl.read_csv(
            path,
            infer_schema_length=0,
            null_values=self.null_values,
            encoding="utf8-lossy",
        )
        logger.info(f"Read {len(df)} raw rows from {path.name}", entity=EntityType(entity_type).value)
        return df

    def read(self, entity_type: EntityType) -> Iterator[RawRecord]:
        return self.read_frame(entity_type).iter_rows(named=True)
