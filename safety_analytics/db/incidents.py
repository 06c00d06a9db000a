import asyncio
import csv
import logging
import os
from collections import Counter
from typing import Any, Dict, List, Optional, Tuple

from ..core.errors import DatasetLoadError
from ..core.models import DatasetStats, IncidentRecord
from ..utils.geodesy import coerce_number, distance_meters, is_valid_coordinate

logger = logging.getLogger(__name__)

UNKNOWN_CATEGORY = "Unknown"


def _normalize_row(row: Dict[Optional[str], Any]) -> Dict[str, Any]:
    """Lower-case and trim header names so ' Latitude' and 'latitude' match."""
    return {(key or "").strip().lower(): value for key, value in row.items()}


def parse_incident_rows(path: str) -> List[IncidentRecord]:
    """
    Parse a crime CSV with at least `latitude`, `longitude` and `type` columns.

    Rows with unparsable or out-of-range coordinates are skipped. I/O and CSV
    format errors propagate to the caller.
    """
    records: List[IncidentRecord] = []
    skipped = 0
    with open(path, newline="", encoding="utf-8-sig") as f:
        for row in csv.DictReader(f):
            fields = _normalize_row(row)
            lat = coerce_number(fields.get("latitude"))
            lng = coerce_number(fields.get("longitude"))
            if lat is None or lng is None or not is_valid_coordinate(lat, lng):
                skipped += 1
                logger.warning(f"Invalid crime data row skipped: {row}")
                continue

            category = (fields.get("type") or "").strip() or UNKNOWN_CATEGORY
            records.append(IncidentRecord(
                id=f"crime_{len(records) + 1}",
                latitude=lat,
                longitude=lng,
                category=category,
                raw=dict(row),
            ))

    if skipped:
        logger.info(f"Skipped {skipped} invalid rows while reading {path}")
    return records


class IncidentDataset:
    """
    Crime incidents loaded from a CSV file and kept in memory.

    The collection is an immutable tuple replaced as a whole on each load, so
    readers always see either the previous or the new generation, never a mix.
    """

    def __init__(self, source: Optional[str] = None):
        self.source = source
        self._records: Tuple[IncidentRecord, ...] = ()
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    def __len__(self) -> int:
        return len(self._records)

    async def load(self, source: Optional[str] = None) -> List[IncidentRecord]:
        """
        Load the dataset from `source` (defaults to the configured path).

        A missing file leaves the dataset empty but loaded. A file that exists
        but cannot be read resets the dataset and raises DatasetLoadError.
        """
        path = source or self.source
        if source:
            self.source = source

        if not path or not os.path.exists(path):
            logger.warning(f"Crime data CSV file not found at {path}")
            self._records = ()
            self._loaded = True
            return []

        try:
            records = await asyncio.to_thread(parse_incident_rows, path)
        except (OSError, csv.Error, UnicodeDecodeError) as e:
            logger.error(f"Error reading crime data CSV {path}: {e}")
            self._records = ()
            self._loaded = True
            raise DatasetLoadError(f"Failed to read crime data from {path}: {e}") from e

        self._records = tuple(records)
        self._loaded = True
        logger.info(f"Crime data loaded successfully: {len(records)} records from {path}")
        return records

    async def reload(self, source: Optional[str] = None) -> List[IncidentRecord]:
        """Load the dataset again. The current records stay visible until the new set is complete."""
        logger.info("Reloading crime data...")
        return await self.load(source)

    def get_all(self) -> List[IncidentRecord]:
        if not self._loaded:
            logger.warning("Crime data not yet loaded, returning empty list")
            return []
        return list(self._records)

    def filter_by_type(self, substring: str, records: Optional[List[IncidentRecord]] = None) -> List[IncidentRecord]:
        """Records whose category contains `substring`, ignoring case."""
        records = self._records if records is None else records
        needle = substring.lower()
        return [record for record in records if needle in record.category.lower()]

    def filter_by_area(self, latitude: float, longitude: float, radius: float,
                       records: Optional[List[IncidentRecord]] = None) -> List[IncidentRecord]:
        """Records within `radius` meters of the given point, boundary included."""
        records = self._records if records is None else records
        return [record for record in records
                if distance_meters(latitude, longitude, record.latitude, record.longitude) <= radius]

    def query(self, category: Optional[str] = None, latitude: Optional[float] = None,
              longitude: Optional[float] = None, radius: Optional[float] = None) -> List[IncidentRecord]:
        """
        Combined crime-zone query: category filter first, then area filter.

        The area filter applies only when latitude, longitude and radius are
        all given; the values must already be validated.
        """
        results = self.get_all()
        total = len(results)
        if category:
            results = self.filter_by_type(category, results)
            logger.debug(f"Type filter '{category}': {len(results)} of {total} records")
        if latitude is not None and longitude is not None and radius is not None:
            before = len(results)
            results = self.filter_by_area(latitude, longitude, radius, results)
            logger.debug(f"Area filter {radius}m around [{latitude}, {longitude}]: "
                         f"{len(results)} of {before} records")
        return results

    def stats(self) -> DatasetStats:
        counts = Counter(record.category or UNKNOWN_CATEGORY for record in self._records)
        return DatasetStats(
            total=len(self._records),
            counts_by_category=dict(counts),
            loaded=self._loaded,
        )
