"""
Provider Directory

Read-only lookup of partner (provider) attributes the scheduling core depends on:
active flag, service kind and default capacity quantum. Partner records are
managed elsewhere; this module never writes them.
"""
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from capacity_service.models.partner import Partner


@dataclass(frozen=True)
class ProviderInfo:
    id: uuid.UUID
    name: str
    service_type: str
    active: bool
    default_capacity_units: int


async def get_provider(session: AsyncSession, partner_id: uuid.UUID) -> Optional[ProviderInfo]:
    """
    Look up a partner by id.

    Args:
        session: Session of the calling transaction
        partner_id: Partner UUID

    Returns:
        ProviderInfo, or None if no such partner exists
    """
    partner = await session.get(Partner, partner_id)
    if partner is None:
        return None
    return ProviderInfo(
        id=partner.id,
        name=partner.name,
        service_type=partner.service_type,
        active=bool(partner.active),
        default_capacity_units=partner.default_capacity_units,
    )
