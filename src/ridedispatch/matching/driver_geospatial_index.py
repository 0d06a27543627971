import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

import h3

from ridedispatch.db.utils import utc_now
from ridedispatch.geo.distance import haversine_distance_km, validate_coordinate

logger = logging.getLogger(__name__)


class DriverStatus(str, Enum):
    OFFLINE = "offline"
    ONLINE = "online"
    BUSY = "busy"
    ON_TRIP = "on_trip"


@dataclass(frozen=True)
class DriverPresence:
    driver_id: str
    location: tuple[float, float]
    status: DriverStatus
    is_online: bool
    reported_at: datetime
    cell: str

    @property
    def is_matchable(self) -> bool:
        return self.is_online and self.status == DriverStatus.ONLINE


@dataclass(frozen=True)
class NearbyDriver:
    driver_id: str
    location: tuple[float, float]
    distance_km: float


class DriverGeospatialIndex:
    """Spatial index for driver presence using H3 hexagonal cells.

    One entry per driver, overwritten in place by newer reports. Drivers
    whose last report is older than ``staleness_seconds`` are skipped by
    queries and can be dropped with :meth:`prune_stale`.
    """

    def __init__(
        self,
        h3_resolution: int = 9,
        staleness_seconds: float = 60.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._h3_resolution = h3_resolution
        self._edge_km = h3.average_hexagon_edge_length(h3_resolution, unit="km")
        self._staleness = timedelta(seconds=staleness_seconds)
        self._clock = clock
        self._h3_cells: dict[str, set[str]] = {}
        self._presence: dict[str, DriverPresence] = {}
        self._lock = threading.Lock()  # Thread safety for concurrent access

    def upsert_presence(
        self,
        driver_id: str,
        location: tuple[float, float],
        status: DriverStatus | str,
        reported_at: datetime | None = None,
        is_online: bool | None = None,
    ) -> bool:
        """Record a driver report. Returns False if a newer report is already held."""
        lat, lon = validate_coordinate(location)
        status = DriverStatus(status)
        reported_at = reported_at or self._clock()
        if is_online is None:
            is_online = status != DriverStatus.OFFLINE

        with self._lock:
            current = self._presence.get(driver_id)
            if current is not None and current.reported_at > reported_at:
                logger.debug(f"Ignoring out-of-order report for driver {driver_id}")
                return False

            new_cell = self._get_h3_cell(lat, lon)
            if current is not None and current.cell != new_cell:
                self._discard_from_cell(driver_id, current.cell)
            self._h3_cells.setdefault(new_cell, set()).add(driver_id)

            self._presence[driver_id] = DriverPresence(
                driver_id=driver_id,
                location=(lat, lon),
                status=status,
                is_online=is_online,
                reported_at=reported_at,
                cell=new_cell,
            )
            return True

    def get_presence(self, driver_id: str) -> DriverPresence | None:
        with self._lock:
            return self._presence.get(driver_id)

    def remove_driver(self, driver_id: str) -> None:
        with self._lock:
            presence = self._presence.pop(driver_id, None)
            if presence is not None:
                self._discard_from_cell(driver_id, presence.cell)

    def prune_stale(self, now: datetime | None = None) -> int:
        """Drop drivers whose last report is older than the staleness window."""
        cutoff = (now or self._clock()) - self._staleness
        with self._lock:
            stale = [d for d, p in self._presence.items() if p.reported_at < cutoff]
            for driver_id in stale:
                presence = self._presence.pop(driver_id)
                self._discard_from_cell(driver_id, presence.cell)
        if stale:
            logger.info(f"Pruned {len(stale)} stale drivers from index")
        return len(stale)

    def find_nearby(
        self,
        point: tuple[float, float],
        radius_km: float,
        limit: int,
        exclude: Iterable[str] = (),
    ) -> list[NearbyDriver]:
        """Matchable, fresh drivers within ``radius_km`` of ``point``, nearest first.

        Rings of H3 cells are searched outward; the search stops once ``limit``
        candidates are found inside the distance the searched rings fully
        cover, or when the rings cover the whole radius.
        """
        lat, lon = validate_coordinate(point)
        if limit <= 0 or radius_km <= 0:
            return []
        excluded = set(exclude)
        cutoff = self._clock() - self._staleness

        with self._lock:
            if not self._presence:
                return []

            center_cell = self._get_h3_cell(lat, lon)
            # Rings needed to cover the full radius, with margin for cell distortion
            max_k = max(1, int(radius_km / self._edge_km) + 2)

            candidates: list[NearbyDriver] = []
            checked_cells: set[str] = set()

            k = 1
            while True:
                current_k = min(k, max_k)
                ring_cells = set(h3.grid_disk(center_cell, current_k))
                new_cells = ring_cells - checked_cells
                checked_cells |= ring_cells

                for cell in new_cells:
                    for driver_id in self._h3_cells.get(cell, ()):
                        presence = self._presence[driver_id]
                        if (
                            driver_id in excluded
                            or not presence.is_matchable
                            or presence.reported_at < cutoff
                        ):
                            continue
                        d_lat, d_lon = presence.location
                        distance = haversine_distance_km(lat, lon, d_lat, d_lon)
                        if distance <= radius_km:
                            candidates.append(
                                NearbyDriver(driver_id, presence.location, round(distance, 4))
                            )

                if current_k >= max_k:
                    break
                # Anything outside the searched disk is at least this far away
                covered_km = (current_k - 1) * self._edge_km
                if sum(1 for c in candidates if c.distance_km <= covered_km) >= limit:
                    break
                k = k * 2

        candidates.sort(key=lambda c: (c.distance_km, c.driver_id))
        return candidates[:limit]

    def __len__(self) -> int:
        with self._lock:
            return len(self._presence)

    def _get_h3_cell(self, lat: float, lon: float) -> str:
        return h3.latlng_to_cell(lat, lon, self._h3_resolution)

    def _discard_from_cell(self, driver_id: str, cell: str) -> None:
        drivers = self._h3_cells.get(cell)
        if drivers is None:
            return
        drivers.discard(driver_id)
        if not drivers:
            del self._h3_cells[cell]

    def clear(self) -> None:
        """Clear all index state."""
        with self._lock:
            self._h3_cells.clear()
            self._presence.clear()
