"""
Deduplication Module

Selects exactly one representative per group key. Every tie-break is
extended with the record's full canonical ordering, so the survivor depends
only on the input multiset and never on arrival order.
"""

from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Sequence, Tuple

import structlog

from ecom_analytics.store.models import CanonicalRecord, EntityType, Geolocation
from .normalizers import RawGeolocation

logger = structlog.get_logger(__name__)

_SIX_PLACES = Decimal("0.000001")
_MICROSECOND = timedelta(microseconds=1)

TieBreak = Callable[[Any], Tuple[Any, ...]]


def canonical_order(record: CanonicalRecord) -> Tuple[Any, ...]:
    """Lowest full-record ordering wins"""
    return record.sort_key()


def latest_answer(record: CanonicalRecord) -> Tuple[Any, ...]:
    """Most recent review answer wins"""
    # Datetimes cannot be negated; invert via integer microseconds since datetime.min
    elapsed = (record.review_answer_timestamp - datetime.min) // _MICROSECOND
    return (-elapsed,) + record.sort_key()


def earliest_answer(record: CanonicalRecord) -> Tuple[Any, ...]:
    """Oldest review answer wins"""
    return (record.review_answer_timestamp,) + record.sort_key()


def city_ascending(record: Geolocation) -> Tuple[Any, ...]:
    """Alphabetically first city wins, then state"""
    return (record.geolocation_city, record.geolocation_state) + record.sort_key()


TIE_BREAKS: Dict[str, TieBreak] = {
    "canonical_order": canonical_order,
    "latest_answer": latest_answer,
    "earliest_answer": earliest_answer,
    "city_ascending": city_ascending,
}


def resolve_tie_break(name: str) -> TieBreak:
    try:
        return TIE_BREAKS[name]
    except KeyError:
        raise ValueError(
            f"Unknown tie-break strategy '{name}'. Options: {sorted(TIE_BREAKS)}"
        ) from None


class Deduplicator:
    """
    Keyed deduplication with an explicit, total tie-break order.

    Example:
        dedup = Deduplicator()
        reviews = dedup.dedup(reviews, group_key=lambda r: r.review_id, tie_break=latest_answer)
    """

    def __init__(self, strategies: Optional[Dict[str, str]] = None, default_strategy: str = "canonical_order"):
        self.strategies = strategies or {
            EntityType.REVIEW.value: "latest_answer",
            EntityType.GEOLOCATION.value: "city_ascending",
        }
        self.default_strategy = default_strategy

    def tie_break_for(self, entity_type: EntityType) -> TieBreak:
        name = self.strategies.get(EntityType(entity_type).value, self.default_strategy)
        return resolve_tie_break(name)

    def dedup(
        self,
        records: Iterable[Any],
        group_key: Callable[[Any], Hashable],
        tie_break: TieBreak,
    ) -> List[Any]:
        """Keep the record with the smallest tie-break value per group"""
        best: Dict[Hashable, Tuple[Tuple[Any, ...], Any]] = {}
        for record in records:
            key = group_key(record)
            rank = tie_break(record)
            current = best.get(key)
            if current is None or rank < current[0]:
                best[key] = (rank, record)

        survivors = [record for _, record in best.values()]
        survivors.sort(key=lambda r: r.sort_key())
        return survivors

    def dedup_records(
        self,
        entity_type: EntityType,
        records: Sequence[CanonicalRecord],
    ) -> List[CanonicalRecord]:
        """Collapse canonical records to one per primary/composite key"""
        survivors = self.dedup(
            records,
            group_key=lambda r: r.key,
            tie_break=self.tie_break_for(entity_type),
        )
        removed = len(records) - len(survivors)
        if removed:
            logger.info(
                "Removed duplicate records",
                entity=EntityType(entity_type).value,
                duplicates_removed=removed,
                remaining=len(survivors),
            )
        return survivors

    def dedup_geolocations(self, rows: Sequence[RawGeolocation]) -> List[Geolocation]:
        """
        Average coordinates per zip prefix, then keep one row per
        (zip, lat, lng).

        Only rows with both coordinates contribute to the average; a zip with
        no usable coordinates produces no output. Every row of a surviving
        zip competes for the tie-break, including rows whose own coordinates
        were missing.
        """
        sums: Dict[str, List[Any]] = defaultdict(lambda: [Decimal(0), Decimal(0), 0])
        for row in rows:
            if row.lat is None or row.lng is None:
                continue
            acc = sums[row.geolocation_zip_code_prefix]
            acc[0] += row.lat
            acc[1] += row.lng
            acc[2] += 1

        averaged: Dict[str, Tuple[float, float]] = {}
        for zip_prefix, (lat_sum, lng_sum, count) in sums.items():
            lat = (lat_sum / count).quantize(_SIX_PLACES, rounding=ROUND_HALF_UP)
            lng = (lng_sum / count).quantize(_SIX_PLACES, rounding=ROUND_HALF_UP)
            averaged[zip_prefix] = (float(lat), float(lng))

        candidates = []
        for row in rows:
            coords = averaged.get(row.geolocation_zip_code_prefix)
            if coords is None:
                continue
            candidates.append(Geolocation(
                geolocation_zip_code_prefix=row.geolocation_zip_code_prefix,
                geolocation_lat=coords[0],
                geolocation_lng=coords[1],
                geolocation_city=row.geolocation_city,
                geolocation_state=row.geolocation_state,
            ))

        survivors = self.dedup(
            candidates,
            group_key=lambda g: g.key,
            tie_break=self.tie_break_for(EntityType.GEOLOCATION),
        )
        logger.info(
            "Deduplicated geolocations",
            raw_rows=len(rows),
            zip_prefixes=len(averaged),
            remaining=len(survivors),
        )
        return survivors


def dedup_reviews(reviews: Iterable[CanonicalRecord]) -> List[CanonicalRecord]:
    """Convenience function: one review per review_id, latest answer wins"""
    return Deduplicator().dedup(reviews, group_key=lambda r: r.review_id, tie_break=latest_answer)
