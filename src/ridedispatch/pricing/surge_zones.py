"""Time-bounded surge zones and the point-in-polygon index behind them."""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError
from shapely import STRtree
from shapely.geometry import Point, box
from shapely.prepared import PreparedGeometry, prep

from ridedispatch.core.exceptions import ConflictError, NotFoundError, ValidationError
from ridedispatch.db.repositories.surge_zone_repository import SurgeZoneRepository
from ridedispatch.db.transaction import transaction
from ridedispatch.db.utils import utc_now

from .models import SurgeZone

if TYPE_CHECKING:
    from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)

NO_SURGE = 1.0


@dataclass(frozen=True)
class _ZoneSnapshot:
    """Immutable view of the zone set; replaced wholesale on every change."""

    zones: dict[str, SurgeZone] = field(default_factory=dict)
    indexed: tuple[SurgeZone, ...] = ()
    prepared: tuple[PreparedGeometry, ...] = ()
    tree: STRtree | None = None

    @classmethod
    def build(cls, zones: dict[str, SurgeZone]) -> "_ZoneSnapshot":
        indexed = tuple(z for z in zones.values() if z.is_active)
        polygons = [z.to_polygon() for z in indexed]
        return cls(
            zones=zones,
            indexed=indexed,
            prepared=tuple(prep(p) for p in polygons),
            tree=STRtree(polygons) if polygons else None,
        )


class SurgeZoneIndex:
    """Answers "what multiplier applies here, now" over a set of surge zones.

    Readers take a reference to the current snapshot and never lock.
    Writers serialize on a lock, optionally persist the change, then swap
    in a rebuilt snapshot.
    """

    def __init__(
        self,
        session_factory: "sessionmaker[Session] | None" = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._write_lock = threading.Lock()
        self._snapshot = _ZoneSnapshot.build({})

    def load(self) -> int:
        """Restore zones from the repository. Returns the number loaded."""
        if self._session_factory is None:
            return 0
        with self._write_lock:
            with self._session_factory() as session:
                zones = SurgeZoneRepository(session).list_all()
            self._snapshot = _ZoneSnapshot.build({z.id: z for z in zones})
        logger.info(f"Loaded {len(zones)} surge zones")
        return len(zones)

    def effective_multiplier(
        self, point: tuple[float, float], at: datetime | None = None
    ) -> float:
        """Highest multiplier among zones in effect that cover the point, else 1.0."""
        zones = self.matching_zones(point, at)
        if not zones:
            return NO_SURGE
        return max(NO_SURGE, zones[0].multiplier)

    def matching_zones(
        self, point: tuple[float, float], at: datetime | None = None
    ) -> list[SurgeZone]:
        at = at or self._clock()
        snapshot = self._snapshot
        if snapshot.tree is None:
            return []

        lat, lon = point
        geom = Point(lon, lat)
        matches = []
        for idx in snapshot.tree.query(geom):
            zone = snapshot.indexed[idx]
            # covers() is boundary inclusive, contains() is not
            if zone.is_in_effect(at) and snapshot.prepared[idx].covers(geom):
                matches.append(zone)
        matches.sort(key=lambda z: z.multiplier, reverse=True)
        return matches

    def active_zones(self, at: datetime | None = None) -> list[SurgeZone]:
        at = at or self._clock()
        return [z for z in self._snapshot.indexed if z.is_in_effect(at)]

    def zones_in_bounds(
        self,
        min_lat: float,
        min_lon: float,
        max_lat: float,
        max_lon: float,
        at: datetime | None = None,
    ) -> list[SurgeZone]:
        """Zones in effect whose polygon intersects the bounding box."""
        at = at or self._clock()
        snapshot = self._snapshot
        if snapshot.tree is None:
            return []

        bounds = box(min_lon, min_lat, max_lon, max_lat)
        hits = snapshot.tree.query(bounds, predicate="intersects")
        return [snapshot.indexed[i] for i in sorted(hits) if snapshot.indexed[i].is_in_effect(at)]

    def get_zone(self, zone_id: str) -> SurgeZone:
        zone = self._snapshot.zones.get(zone_id)
        if zone is None:
            raise NotFoundError(f"Surge zone {zone_id} not found", details={"zone_id": zone_id})
        return zone

    def list_zones(self) -> list[SurgeZone]:
        return list(self._snapshot.zones.values())

    def add_zone(self, zone: SurgeZone) -> SurgeZone:
        with self._write_lock:
            if zone.id in self._snapshot.zones:
                raise ConflictError(f"Surge zone {zone.id} already exists")
            self._persist(lambda repo: repo.create(zone))
            self._swap({**self._snapshot.zones, zone.id: zone})
        logger.info(f"Surge zone {zone.name} ({zone.id}) added at {zone.multiplier}x")
        return zone

    def add_zones(self, zones: list[SurgeZone]) -> list[SurgeZone]:
        """Add several zones at once; none are added if any id is already taken."""
        with self._write_lock:
            ids = [zone.id for zone in zones]
            taken = sorted({i for i in ids if i in self._snapshot.zones or ids.count(i) > 1})
            if taken:
                raise ConflictError(
                    f"Duplicate surge zone ids: {', '.join(taken)}", details={"zone_ids": taken}
                )

            def create_all(repo: Any) -> None:
                for zone in zones:
                    repo.create(zone)

            self._persist(create_all)
            self._swap({**self._snapshot.zones, **{zone.id: zone for zone in zones}})
        logger.info(f"Added {len(zones)} surge zones")
        return zones

    def update_zone(self, zone_id: str, **changes: Any) -> SurgeZone:
        with self._write_lock:
            current = self.get_zone(zone_id)
            changes.pop("id", None)
            try:
                updated = SurgeZone.model_validate({**current.model_dump(), **changes})
            except PydanticValidationError as e:
                raise ValidationError(
                    f"Invalid surge zone update: {e}", details={"zone_id": zone_id}
                ) from e
            self._persist(lambda repo: repo.save(updated))
            self._swap({**self._snapshot.zones, zone_id: updated})
        return updated

    def activate(self, zone_id: str) -> SurgeZone:
        return self.update_zone(zone_id, is_active=True)

    def deactivate(self, zone_id: str) -> SurgeZone:
        zone = self.update_zone(zone_id, is_active=False)
        logger.info(f"Surge zone {zone_id} deactivated")
        return zone

    def remove_zone(self, zone_id: str) -> None:
        with self._write_lock:
            self.get_zone(zone_id)
            self._persist(lambda repo: repo.delete(zone_id))
            zones = dict(self._snapshot.zones)
            del zones[zone_id]
            self._swap(zones)

    def clear(self) -> None:
        with self._write_lock:
            self._swap({})

    def _swap(self, zones: dict[str, SurgeZone]) -> None:
        self._snapshot = _ZoneSnapshot.build(zones)

    def _persist(self, write: Callable[[Any], None]) -> None:
        if self._session_factory is None:
            return
        with self._session_factory() as session, transaction(session):
            write(SurgeZoneRepository(session))
