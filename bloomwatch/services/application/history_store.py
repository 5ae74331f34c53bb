"""
Application service: persisted history of analyses.

The history is an append-only log kept in the local store next to the
comparison selection, the current-analysis pointer, the pending revisit
location and the points of interest.
"""
import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import ValidationError
from shapely.geometry import Polygon

from bloomwatch.domain.exceptions import ComparisonError, RecordNotFoundError
from bloomwatch.domain.models import AnalysisRecord, Geometry, PointOfInterest
from bloomwatch.infrastructure.local_store import LocalStore
from bloomwatch.services.domain.time_series_processor import next_record_id, summarize

logger = logging.getLogger(__name__)

HISTORY_KEY = "analysisHistory"
POI_KEY = "poiHistory"
CURRENT_KEY = "currentAnalysisId"
SELECTION_KEY = "compareSelection"
COMPARISON_KEY = "comparisonIds"
REVISIT_KEY = "revisitLocation"

MAX_COMPARISON = 2

CSV_HEADER = [
    "analysis_id",
    "date_iso",
    "tag",
    "crop_type",
    "area_ha",
    "avg_ndvi",
    "avg_ndwi",
    "avg_ndre",
    "avg_cloud_pct",
    "avg_fpi",
]


@dataclass
class SelectionResult:
    """Outcome of a selection change; rejections carry a message for the user."""
    accepted: bool
    selected: list[str] = field(default_factory=list)
    message: Optional[str] = None


@dataclass
class MapFocus:
    """Where the map should go to show a stored geometry."""
    geometry: Geometry
    bounds: tuple[float, float, float, float]
    center: tuple[float, float]


@dataclass
class RevisitResult:
    accepted: bool
    focus: Optional[MapFocus] = None
    message: Optional[str] = None


def _format(value: Optional[float], digits: int) -> str:
    return "" if value is None else f"{value:.{digits}f}"


def _sort_key(record: AnalysisRecord) -> datetime:
    moment = record.date
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def _iso_utc(record: AnalysisRecord) -> str:
    """Creation time in UTC with millisecond precision and a Z suffix."""
    moment = _sort_key(record).astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def map_focus(geometry: Geometry) -> MapFocus:
    """Bounds (min lon, min lat, max lon, max lat) and center (lat, lon) of a geometry."""
    polygon = Polygon(geometry.exterior)
    centroid = polygon.centroid
    return MapFocus(
        geometry=geometry,
        bounds=tuple(polygon.bounds),
        center=(centroid.y, centroid.x),
    )


class HistoryStore:
    """
    History of completed analyses.

    Every read-modify-write holds the store lock, so concurrent requests
    cannot lose appends.
    """

    def __init__(self, store: LocalStore):
        """
        Initialize the history.

        Args:
            store: Key-value store holding the persisted state
        """
        self.store = store
        self._lock = store.lock

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def _load(self) -> List[AnalysisRecord]:
        records = []
        for raw in self.store.get(HISTORY_KEY, []):
            try:
                records.append(AnalysisRecord.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Skipping unreadable history entry: {e}")
        return records

    def _save(self, records: List[AnalysisRecord]):
        self.store.set(
            HISTORY_KEY,
            [record.model_dump(mode="json", by_alias=True) for record in records],
        )

    def add(self, record: AnalysisRecord):
        """
        Append a record.

        Raises:
            ValueError: If a record with the same id already exists
        """
        with self._lock:
            records = self._load()
            if any(existing.id == record.id for existing in records):
                raise ValueError(f"Analysis '{record.id}' already exists")
            records.append(record)
            self._save(records)
        logger.info(f"Saved analysis {record.id} ({len(records)} in history)")

    def add_new(self, record: AnalysisRecord) -> AnalysisRecord:
        """
        Append a freshly built record as the current analysis.

        Records built in the same millisecond would share an id; a taken id
        moves to the next free millisecond.

        Returns:
            The record as saved
        """
        with self._lock:
            taken = {existing.id for existing in self._load()}
            record_id = record.id
            while record_id in taken:
                record_id = next_record_id(record_id)
            if record_id != record.id:
                logger.info(f"Analysis id {record.id} already taken, saving as {record_id}")
                record = record.model_copy(update={"id": record_id})
            self.add(record)
            self.set_current(record.id)
        return record

    def list(self) -> List[AnalysisRecord]:
        """All records, most recent first."""
        return sorted(self._load(), key=_sort_key, reverse=True)

    def get(self, record_id: str) -> AnalysisRecord:
        """
        Get a record by id.

        Raises:
            RecordNotFoundError: If no record has this id
        """
        for record in self._load():
            if record.id == record_id:
                return record
        raise RecordNotFoundError(record_id)

    def delete(self, record_id: str):
        """
        Delete a record and drop it from the comparison selection.

        Raises:
            RecordNotFoundError: If no record has this id
        """
        with self._lock:
            records = self._load()
            remaining = [record for record in records if record.id != record_id]
            if len(remaining) == len(records):
                raise RecordNotFoundError(record_id)
            self._save(remaining)

            selection = self.selection()
            if record_id in selection:
                selection.remove(record_id)
                self.store.set(SELECTION_KEY, selection)
            if self.store.get(CURRENT_KEY) == record_id:
                self.store.remove(CURRENT_KEY)
        logger.info(f"Deleted analysis {record_id}")

    def set_current(self, record_id: str):
        """Mark a record as the one the details view shows."""
        self.get(record_id)
        self.store.set(CURRENT_KEY, record_id)

    def current(self) -> Optional[AnalysisRecord]:
        """The current record, else the last appended one, else None."""
        records = self._load()
        if not records:
            return None
        current_id = self.store.get(CURRENT_KEY)
        for record in records:
            if record.id == current_id:
                return record
        return records[-1]

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    def selection(self) -> List[str]:
        """Ids currently selected for comparison."""
        return list(self.store.get(SELECTION_KEY, []))

    def select_for_comparison(self, record_id: str) -> SelectionResult:
        """
        Toggle a record in the comparison selection.

        Selecting a third record is rejected and leaves the selection as is.

        Raises:
            RecordNotFoundError: If no record has this id
        """
        with self._lock:
            self.get(record_id)
            selection = self.selection()

            if record_id in selection:
                selection.remove(record_id)
            elif len(selection) >= MAX_COMPARISON:
                return SelectionResult(
                    accepted=False,
                    selected=selection,
                    message=f"Only {MAX_COMPARISON} analyses can be compared at a time.",
                )
            else:
                selection.append(record_id)

            self.store.set(SELECTION_KEY, selection)
            return SelectionResult(accepted=True, selected=selection)

    def start_comparison(self) -> SelectionResult:
        """Hand the selected pair to the comparison view and clear the selection."""
        with self._lock:
            selection = self.selection()
            if len(selection) != MAX_COMPARISON:
                return SelectionResult(
                    accepted=False,
                    selected=selection,
                    message=f"Select exactly {MAX_COMPARISON} analyses to compare "
                            f"({len(selection)}/{MAX_COMPARISON} selected).",
                )
            self.store.set(COMPARISON_KEY, selection)
            self.store.remove(SELECTION_KEY)
            return SelectionResult(accepted=True, selected=selection)

    def take_comparison(self) -> tuple[AnalysisRecord, AnalysisRecord]:
        """
        Consume the pair handed to the comparison view.

        The pair stays pending when it cannot be read.

        Raises:
            ComparisonError: If no pair is pending or a record no longer exists
        """
        with self._lock:
            ids = self.store.get(COMPARISON_KEY)
            if not ids or len(ids) != MAX_COMPARISON:
                raise ComparisonError("No pair of analyses was selected for comparison")
            try:
                first, second = (self.get(record_id) for record_id in ids)
            except RecordNotFoundError as e:
                raise ComparisonError(
                    f"Analysis '{e.record_id}' selected for comparison no longer exists",
                    user_message="The selected analyses could not be found",
                ) from e
            self.store.remove(COMPARISON_KEY)
            return first, second

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_csv(self) -> str:
        """
        Serialize the history as CSV, one row per record in insertion order.

        Returns:
            CSV text; only the header when the history is empty
        """
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for record in self._load():
            summary = summarize(record)
            writer.writerow([
                record.id,
                _iso_utc(record),
                record.tag or "",
                record.crop_type or "",
                f"{record.area:.2f}",
                _format(summary.avg_ndvi, 4),
                _format(summary.avg_ndwi, 4),
                _format(summary.avg_ndre, 4),
                _format(summary.avg_cloud_pct, 2),
                _format(summary.avg_fpi, 3),
            ])
        return buffer.getvalue()

    # ------------------------------------------------------------------
    # Map handoff
    # ------------------------------------------------------------------

    def revisit(self, record_id: str) -> RevisitResult:
        """
        Queue a record's geometry for display on the map.

        Raises:
            RecordNotFoundError: If no record has this id
        """
        record = self.get(record_id)
        if record.geometry is None:
            return RevisitResult(
                accepted=False,
                message="This analysis has no saved geometry.",
            )
        self.store.set(REVISIT_KEY, record.geometry.to_geojson())
        return RevisitResult(accepted=True, focus=map_focus(record.geometry))

    def consume_revisit(self) -> Optional[MapFocus]:
        """Read and clear the queued revisit geometry."""
        raw = self.store.pop(REVISIT_KEY)
        if raw is None:
            return None
        try:
            geometry = Geometry.model_validate(raw)
        except ValidationError as e:
            logger.error(f"Discarding unreadable revisit location: {e}")
            return None
        return map_focus(geometry)

    # ------------------------------------------------------------------
    # Points of interest
    # ------------------------------------------------------------------

    def add_point_of_interest(
        self,
        name: str,
        coords: tuple[float, float],
        now: Optional[datetime] = None,
    ) -> PointOfInterest:
        """Save a marker; its id is the creation time in epoch milliseconds."""
        now = now or datetime.now(timezone.utc)
        poi = PointOfInterest(id=int(now.timestamp() * 1000), name=name, coords=coords)
        with self._lock:
            points = self.store.get(POI_KEY, [])
            points.append(poi.model_dump(mode="json"))
            self.store.set(POI_KEY, points)
        return poi

    def list_points_of_interest(self) -> List[PointOfInterest]:
        return [PointOfInterest.model_validate(raw) for raw in self.store.get(POI_KEY, [])]
