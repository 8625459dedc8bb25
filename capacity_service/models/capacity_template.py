"""CapacityTemplate model - Recurring weekly availability pattern"""
from sqlalchemy import Column, String, Integer, Boolean, Time, ForeignKey, CheckConstraint, Index, Uuid
import uuid

from capacity_service.database import Base
from capacity_service.models.types import UTCDateTime, utcnow


class CapacityTemplate(Base):
    """Weekly rule (day of week + local time of day + capacity) used to generate slots"""

    __tablename__ = "capacity_templates"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    partner_id = Column(Uuid, ForeignKey("partners.id", ondelete="CASCADE"), nullable=False)
    service_type = Column(String(20), nullable=False)
    day_of_week = Column(
        Integer,
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_template_day_of_week"),
        nullable=False,
    )  # 0=Sunday, 1=Monday, ..., 6=Saturday
    slot_start = Column(Time, nullable=False)  # business-local wall clock
    slot_end = Column(Time, nullable=False)
    max_units = Column(Integer, CheckConstraint("max_units > 0", name="ck_template_max_positive"), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("slot_end > slot_start", name="ck_template_time_range"),
        Index("idx_capacity_templates_partner", "partner_id"),
        Index("idx_capacity_templates_active", "active"),
    )

    def __repr__(self):
        return f"<CapacityTemplate(id={self.id}, partner_id={self.partner_id}, day_of_week={self.day_of_week})>"
