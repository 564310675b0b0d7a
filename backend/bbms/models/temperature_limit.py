from sqlalchemy import Column, DateTime, Float, String
from sqlalchemy.sql import func

from bbms.core.database import Base

AUTHORITATIVE = "authoritative"
LOCAL_BACKUP = "local_backup"


class TemperatureLimit(Base):
    __tablename__ = "temperature_limits"

    device_id = Column(String, primary_key=True)
    provenance = Column(String, primary_key=True)  # authoritative, local_backup
    value = Column(Float, nullable=False)
    last_written_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<TemperatureLimit(device={self.device_id}, provenance={self.provenance}, value={self.value})>"
