"""Per-device temperature limits with an authoritative copy and a local backup.

Both copies live in ``temperature_limits`` and are told apart by provenance.
The authoritative copy has been seen to silently fall back to the default
limit, so a default-valued authoritative copy next to a non-default backup is
treated as a reset and repaired from the backup.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict

from sqlalchemy.orm import Session, sessionmaker

from bbms.core.config import Settings, settings as default_settings
from bbms.core.exceptions import ValidationError
from bbms.crud import limit_crud
from bbms.models.temperature_limit import AUTHORITATIVE, LOCAL_BACKUP
from bbms.utils.locks import KeyedLock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reconciliation:
    value: float
    healed: bool


class ThresholdStore:
    def __init__(self, session_factory: sessionmaker, settings: Settings = default_settings) -> None:
        self._session_factory = session_factory
        self.default_limit = settings.default_limit
        self.min_limit = settings.min_limit
        self.max_limit = settings.max_limit
        self._locks = KeyedLock()

    def get(self, device_id: str) -> float:
        return self.reconcile(device_id).value

    def set(self, device_id: str, value: float) -> float:
        value = self.validate(value)
        with self._locks(device_id), self._session_factory() as db:
            limit_crud.write(db, device_id, AUTHORITATIVE, value)
            limit_crud.write(db, device_id, LOCAL_BACKUP, value)
            db.commit()
        logger.info("Updated temperature limit for device %s: %.1f", device_id, value)
        return value

    def reconcile(self, device_id: str) -> Reconciliation:
        with self._locks(device_id), self._session_factory() as db:
            result = self._resolve(db, device_id)
            db.commit()
        return result

    def limits(self) -> Dict[str, float]:
        with self._session_factory() as db:
            return limit_crud.get_all(db, AUTHORITATIVE)

    def validate(self, value: float) -> float:
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValidationError(value, self.min_limit, self.max_limit) from None
        if math.isnan(number) or not self.min_limit <= number <= self.max_limit:
            raise ValidationError(value, self.min_limit, self.max_limit)
        return number

    def _looks_reset(self, value: float) -> bool:
        return value == self.default_limit

    def _resolve(self, db: Session, device_id: str) -> Reconciliation:
        authoritative = limit_crud.get(db, device_id, AUTHORITATIVE)
        backup = limit_crud.get(db, device_id, LOCAL_BACKUP)
        backup_value = backup.value if backup is not None else None
        usable_backup = backup_value is not None and not self._looks_reset(backup_value)

        if authoritative is None:
            if usable_backup:
                logger.info(
                    "Restored temperature limit for device %s from backup: %.1f", device_id, backup_value
                )
                limit_crud.write(db, device_id, AUTHORITATIVE, backup_value)
                return Reconciliation(backup_value, healed=True)

            limit_crud.write(db, device_id, AUTHORITATIVE, self.default_limit)
            logger.info("Set default temperature limit for device %s: %.1f", device_id, self.default_limit)
            return Reconciliation(self.default_limit, healed=False)

        if self._looks_reset(authoritative.value):
            if usable_backup:
                logger.warning(
                    "Temperature limit for device %s reverted to default %.1f; restoring backup %.1f",
                    device_id, authoritative.value, backup_value,
                )
                limit_crud.write(db, device_id, AUTHORITATIVE, backup_value)
                limit_crud.write(db, device_id, LOCAL_BACKUP, backup_value)
                return Reconciliation(backup_value, healed=True)
            return Reconciliation(authoritative.value, healed=False)

        if backup_value != authoritative.value:
            limit_crud.write(db, device_id, LOCAL_BACKUP, authoritative.value)
        return Reconciliation(authoritative.value, healed=False)
