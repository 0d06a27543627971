"""Surge zone persistence."""

import json

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ridedispatch.pricing.models import SurgeZone

from ..schema import SurgeZone as SurgeZoneRow


class SurgeZoneRepository:
    def __init__(self, session: Session):
        self.session = session

    def create(self, zone: SurgeZone) -> None:
        self.session.add(self._to_row(zone))

    def save(self, zone: SurgeZone) -> None:
        """Insert or replace the zone."""
        self.session.merge(self._to_row(zone))

    def delete(self, zone_id: str) -> None:
        self.session.execute(delete(SurgeZoneRow).where(SurgeZoneRow.id == zone_id))

    def get(self, zone_id: str) -> SurgeZone | None:
        row = self.session.get(SurgeZoneRow, zone_id)
        return self._to_domain(row) if row else None

    def list_all(self) -> list[SurgeZone]:
        stmt = select(SurgeZoneRow).order_by(SurgeZoneRow.created_at)
        return [self._to_domain(r) for r in self.session.execute(stmt).scalars().all()]

    @staticmethod
    def _to_row(zone: SurgeZone) -> SurgeZoneRow:
        return SurgeZoneRow(
            id=zone.id,
            name=zone.name,
            boundary_json=json.dumps([list(v) for v in zone.boundary]),
            multiplier=zone.multiplier,
            starts_at=zone.starts_at,
            ends_at=zone.ends_at,
            is_active=zone.is_active,
            reason=zone.reason,
        )

    @staticmethod
    def _to_domain(row: SurgeZoneRow) -> SurgeZone:
        return SurgeZone(
            id=row.id,
            name=row.name,
            boundary=[(lat, lon) for lat, lon in json.loads(row.boundary_json)],
            multiplier=row.multiplier,
            starts_at=row.starts_at,
            ends_at=row.ends_at,
            is_active=row.is_active,
            reason=row.reason,
        )
