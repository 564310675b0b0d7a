from sqlalchemy import Boolean, Column, DateTime, Integer, String

from bbms.core.database import Base


class Alert(Base):
    __tablename__ = "alerts"

    id = Column(String, primary_key=True)
    sequence = Column(Integer, nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    title = Column(String, nullable=False)
    message = Column(String, nullable=False)
    severity = Column(String, nullable=False)  # info, warning, critical, success
    category = Column(String, nullable=False)  # hvac, access, network, ...
    device_id = Column(String, nullable=True, index=True)
    zone_id = Column(String, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    is_resolved = Column(Boolean, default=False, nullable=False)

    def __repr__(self):
        return f"<Alert(severity={self.severity}, category={self.category}, device={self.device_id})>"
