from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from bbms.models.temperature_limit import AUTHORITATIVE, TemperatureLimit


class CRUDLimit:
    def get(self, db: Session, device_id: str, provenance: str) -> Optional[TemperatureLimit]:
        return db.get(TemperatureLimit, (device_id, provenance))

    def get_all(self, db: Session, provenance: str = AUTHORITATIVE) -> Dict[str, float]:
        result = db.execute(
            select(TemperatureLimit).where(TemperatureLimit.provenance == provenance)
        )
        return {row.device_id: row.value for row in result.scalars().all()}

    def write(self, db: Session, device_id: str, provenance: str, value: float) -> TemperatureLimit:
        row = self.get(db, device_id, provenance)
        if row is None:
            row = TemperatureLimit(device_id=device_id, provenance=provenance)
            db.add(row)
        row.value = float(value)
        row.last_written_at = datetime.now(timezone.utc)
        return row


limit_crud = CRUDLimit()
