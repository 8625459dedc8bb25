"""AuditLog model - Append-only record of capacity mutations"""
from sqlalchemy import Column, String, JSON, Index, Uuid
import uuid

from capacity_service.database import Base
from capacity_service.models.types import UTCDateTime, utcnow


class AuditLog(Base):
    """Who changed which capacity entity, and how"""

    __tablename__ = "audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    actor_id = Column(String(100), nullable=False)
    actor_role = Column(String(50), nullable=False)
    action = Column(String(100), nullable=False)
    entity_type = Column(String(100), nullable=False)
    entity_id = Column(String(100), nullable=False)
    changes = Column(JSON, nullable=False, default=dict)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_audit_logs_entity", "entity_type", "entity_id"),
    )

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action={self.action}, entity_id={self.entity_id})>"
