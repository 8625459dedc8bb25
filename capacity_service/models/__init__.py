"""SQLAlchemy ORM Models for the capacity scheduling schema"""
from capacity_service.models.partner import Partner
from capacity_service.models.capacity_template import CapacityTemplate
from capacity_service.models.capacity_slot import CapacitySlot
from capacity_service.models.operational_alert import OperationalAlert
from capacity_service.models.audit_log import AuditLog

__all__ = [
    "Partner",
    "CapacityTemplate",
    "CapacitySlot",
    "OperationalAlert",
    "AuditLog",
]
