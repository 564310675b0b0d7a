from typing import Any, Dict, List, Optional

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from bbms.models.alert import Alert


class CRUDAlert:
    def create(self, db: Session, obj_in: Dict[str, Any]) -> Alert:
        db_obj = Alert(**obj_in)
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def get(self, db: Session, alert_id: str) -> Optional[Alert]:
        return db.get(Alert, alert_id)

    def get_all(self, db: Session) -> List[Alert]:
        query = select(Alert).order_by(desc(Alert.timestamp), desc(Alert.sequence))
        return list(db.execute(query).scalars().all())

    def max_sequence(self, db: Session) -> int:
        return db.execute(select(func.max(Alert.sequence))).scalar() or 0

    def update_flags(self, db: Session, alert_id: str, **flags: bool) -> Optional[Alert]:
        alert = self.get(db, alert_id)
        if alert is None:
            return None

        for key, value in flags.items():
            setattr(alert, key, value)
        db.commit()
        db.refresh(alert)
        return alert

    def mark_all_read(self, db: Session) -> int:
        alerts = db.execute(select(Alert).where(Alert.is_read.is_(False))).scalars().all()
        for alert in alerts:
            alert.is_read = True
        db.commit()
        return len(alerts)

    def delete(self, db: Session, alert_id: str) -> bool:
        alert = self.get(db, alert_id)
        if alert is None:
            return False
        db.delete(alert)
        db.commit()
        return True


alert_crud = CRUDAlert()
