"""OperationalAlert model - Detected near-term capacity risk"""
from sqlalchemy import Column, String, Integer, Boolean, Date, Text, Index, Uuid
import uuid

from capacity_service.database import Base
from capacity_service.models.types import UTCDateTime, utcnow

ALERT_TYPES = ("NO_CAPACITY", "LOW_CAPACITY")
SEVERITIES = ("CRITICAL", "WARNING", "INFO")


class OperationalAlert(Base):
    """Capacity alert raised by the alert monitor and resolved by operations staff"""

    __tablename__ = "operational_alerts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    alert_type = Column(String(50), nullable=False)
    severity = Column(String(20), nullable=False)
    alert_date = Column(Date, nullable=False)
    service_type = Column(String(20), nullable=True)
    count = Column(Integer, nullable=True)  # low-capacity slots on alert_date
    message = Column(Text, nullable=False)
    resolved = Column(Boolean, nullable=False, default=False)
    resolved_at = Column(UTCDateTime, nullable=True)
    resolved_by = Column(String(100), nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_operational_alerts_dedup", "alert_type", "severity", "resolved", "created_at"),
    )

    def __repr__(self):
        return f"<OperationalAlert(id={self.id}, type={self.alert_type}, severity={self.severity})>"
