"""Partner model - Service provider owning capacity (managed outside this service)"""
from sqlalchemy import Column, String, Integer, Boolean, CheckConstraint, Index, Uuid
import uuid

from capacity_service.database import Base
from capacity_service.models.types import UTCDateTime, utcnow

SERVICE_TYPES = ("LAUNDRY", "CLEANING")

# Fallback capacity quantum when the partner has not declared one
DEFAULT_MAX_ORDERS_PER_SLOT = 8
DEFAULT_MAX_MINUTES_PER_SLOT = 240


class Partner(Base):
    """Service provider with a single service kind and capacity quantum"""

    __tablename__ = "partners"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    service_type = Column(
        String(20),
        CheckConstraint("service_type IN ('LAUNDRY', 'CLEANING')"),
        nullable=False,
    )
    active = Column(Boolean, nullable=False, default=True)
    max_orders_per_slot = Column(Integer, nullable=True)  # LAUNDRY: orders per slot
    max_minutes_per_slot = Column(Integer, nullable=True)  # CLEANING: minutes per slot
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_partners_service_active", "service_type", "active"),
    )

    @property
    def default_capacity_units(self) -> int:
        """Orders per slot for LAUNDRY, minutes per slot for CLEANING"""
        if self.service_type == "LAUNDRY":
            return self.max_orders_per_slot or DEFAULT_MAX_ORDERS_PER_SLOT
        return self.max_minutes_per_slot or DEFAULT_MAX_MINUTES_PER_SLOT

    def __repr__(self):
        return f"<Partner(id={self.id}, name={self.name}, service_type={self.service_type})>"
