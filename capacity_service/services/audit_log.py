"""
Audit Log Writer

Appends audit entries for capacity mutations. Writes are best-effort: they run
in their own session after the domain change has committed, and a failure is
logged without undoing the change.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from capacity_service.models.audit_log import AuditLog

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


async def record_audit(
    session_factory: async_sessionmaker,
    action: str,
    entity_id: Any,
    changes: Dict[str, Any],
    actor_id: Optional[str] = None,
    entity_type: str = "capacity_slot",
) -> bool:
    """
    Append one audit entry.

    Args:
        session_factory: Session factory for the audit write
        action: Action name, e.g. "capacity.create"
        entity_id: Id of the affected entity (or "bulk")
        changes: JSON-serialisable change map
        actor_id: Admin actor id; None records the system actor
        entity_type: Kind of entity affected

    Returns:
        True if the entry was written, False if the write failed
    """
    try:
        async with session_factory() as session:
            session.add(
                AuditLog(
                    actor_id=actor_id or SYSTEM_ACTOR,
                    actor_role="admin" if actor_id else SYSTEM_ACTOR,
                    action=action,
                    entity_type=entity_type,
                    entity_id=str(entity_id),
                    changes=changes,
                )
            )
            await session.commit()
        return True
    except Exception as e:
        logger.error(f"Audit write failed for {action} on {entity_type} {entity_id}: {e}", exc_info=True)
        return False
