"""CapacitySlot model - Bookable time window with finite capacity"""
from sqlalchemy import Column, String, Integer, Text, ForeignKey, CheckConstraint, Index, Uuid
import uuid

from capacity_service.database import Base
from capacity_service.models.types import UTCDateTime, utcnow


class CapacitySlot(Base):
    """
    A fixed [slot_start, slot_end) window of capacity units for one partner.

    reserved_units is only changed through the atomic reserve/release updates in
    the slot store. available_units, utilization_percent and status are derived
    on read and never stored.
    """

    __tablename__ = "capacity_calendar"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    partner_id = Column(Uuid, ForeignKey("partners.id", ondelete="CASCADE"), nullable=False)
    service_type = Column(String(20), nullable=False)
    slot_start = Column(UTCDateTime, nullable=False)
    slot_end = Column(UTCDateTime, nullable=False)
    max_units = Column(Integer, CheckConstraint("max_units > 0", name="ck_capacity_max_positive"), nullable=False)
    reserved_units = Column(Integer, nullable=False, default=0)
    notes = Column(Text, nullable=True)
    created_by = Column(String(100), nullable=True)  # NULL for system-generated slots
    template_id = Column(
        Uuid,
        ForeignKey("capacity_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "reserved_units >= 0 AND reserved_units <= max_units",
            name="ck_capacity_reserved_bounds",
        ),
        CheckConstraint("slot_end > slot_start", name="valid_time_range"),
        Index("idx_capacity_calendar_partner_time", "partner_id", "slot_start"),
        Index("idx_capacity_calendar_start", "slot_start"),
        Index("idx_capacity_calendar_service", "service_type"),
        Index("idx_capacity_calendar_template", "template_id"),
    )

    @property
    def available_units(self) -> int:
        return self.max_units - self.reserved_units

    @property
    def utilization_percent(self) -> int:
        if not self.max_units:
            return 0
        return round(self.reserved_units / self.max_units * 100)

    @property
    def status(self) -> str:
        if self.reserved_units == 0:
            return "available"
        if self.reserved_units < self.max_units:
            return "partial"
        return "full"

    def snapshot(self) -> dict:
        """Audit-friendly representation of the slot's persisted fields"""
        return {
            "partner_id": str(self.partner_id),
            "service_type": self.service_type,
            "slot_start": self.slot_start.isoformat(),
            "slot_end": self.slot_end.isoformat(),
            "max_units": self.max_units,
            "reserved_units": self.reserved_units,
        }

    def __repr__(self):
        return f"<CapacitySlot(id={self.id}, partner_id={self.partner_id}, slot_start={self.slot_start})>"
