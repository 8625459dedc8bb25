"""
Capacity Slot API Endpoints

GET    /api/v1/capacity/slots               - List/filter slots
POST   /api/v1/capacity/slots               - Create one slot
GET    /api/v1/capacity/slots/{id}          - Read a slot
PUT    /api/v1/capacity/slots/{id}          - Partial update
DELETE /api/v1/capacity/slots/{id}          - Delete an unreserved slot
POST   /api/v1/capacity/slots/{id}/reserve  - Atomically reserve units
POST   /api/v1/capacity/slots/{id}/release  - Release reserved units
"""
import logging
import uuid
from datetime import date, datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Path, Query, status
from pydantic import BaseModel, ConfigDict, Field

from capacity_service.api.auth import require_admin
from capacity_service.errors import ConflictError
from capacity_service.services.slot_store import SlotStore, get_slot_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/capacity/slots", tags=["capacity-slots"])


# Pydantic models

class SlotResponse(BaseModel):
    """Capacity slot with derived availability fields"""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    partner_id: uuid.UUID
    service_type: str
    slot_start: datetime
    slot_end: datetime
    max_units: int
    reserved_units: int
    available_units: int
    utilization_percent: int
    status: str
    notes: Optional[str] = None
    created_by: Optional[str] = None
    template_id: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime


class SlotListResponse(BaseModel):
    slots: List[SlotResponse]
    count: int


class SlotEnvelope(BaseModel):
    slot: SlotResponse


class SlotCreateRequest(BaseModel):
    """Request body for POST /capacity/slots"""
    partner_id: uuid.UUID
    service_type: str
    slot_start: datetime
    slot_end: datetime
    max_units: Optional[int] = Field(None, description="Defaults to the partner's capacity quantum")
    notes: Optional[str] = None


class SlotUpdateRequest(BaseModel):
    """Request body for PUT /capacity/slots/{id}; omitted fields are unchanged"""
    slot_start: Optional[datetime] = None
    slot_end: Optional[datetime] = None
    max_units: Optional[int] = None
    notes: Optional[str] = None


class UnitsRequest(BaseModel):
    units: int = Field(..., gt=0)


class DeleteResponse(BaseModel):
    id: uuid.UUID
    deleted: bool


# API Endpoints

@router.get("", response_model=SlotListResponse)
async def list_slots(
    partner_id: Optional[uuid.UUID] = Query(None, description="Filter by partner"),
    service_type: Optional[str] = Query(None, description="LAUNDRY or CLEANING"),
    start_date: Optional[date] = Query(None, description="First business date (inclusive)"),
    end_date: Optional[date] = Query(None, description="Last business date (inclusive)"),
    user: dict = Depends(require_admin),
    store: SlotStore = Depends(get_slot_store)
):
    """List slots ordered by start time with available_units, utilization_percent and status."""
    slots = await store.list_slots(
        partner_id=partner_id,
        service_type=service_type,
        start_date=start_date,
        end_date=end_date,
    )
    return SlotListResponse(slots=[SlotResponse.model_validate(slot) for slot in slots], count=len(slots))


@router.post("", response_model=SlotEnvelope, status_code=status.HTTP_201_CREATED)
async def create_slot(
    body: SlotCreateRequest,
    user: dict = Depends(require_admin),
    store: SlotStore = Depends(get_slot_store)
):
    """
    Create one capacity slot.

    Raises:
        400: Invalid input, past slot, inactive partner or service mismatch
        404: Partner not found
        409: Overlaps an existing slot for the partner
    """
    slot = await store.create_slot(
        partner_id=body.partner_id,
        service_type=body.service_type,
        slot_start=body.slot_start,
        slot_end=body.slot_end,
        max_units=body.max_units,
        notes=body.notes,
        created_by=user["user_id"],
    )
    return SlotEnvelope(slot=SlotResponse.model_validate(slot))


@router.get("/{slot_id}", response_model=SlotEnvelope)
async def get_slot(
    slot_id: uuid.UUID = Path(..., description="Slot id"),
    user: dict = Depends(require_admin),
    store: SlotStore = Depends(get_slot_store)
):
    slot = await store.get_slot(slot_id)
    return SlotEnvelope(slot=SlotResponse.model_validate(slot))


@router.put("/{slot_id}", response_model=SlotEnvelope)
async def update_slot(
    body: SlotUpdateRequest,
    slot_id: uuid.UUID = Path(..., description="Slot id"),
    user: dict = Depends(require_admin),
    store: SlotStore = Depends(get_slot_store)
):
    """
    Update times, capacity or notes of a slot.

    Raises:
        404: Slot not found
        409: New window overlaps another slot, or max_units below reserved units
    """
    slot = await store.update_slot(slot_id, body.model_dump(exclude_unset=True), actor_id=user["user_id"])
    return SlotEnvelope(slot=SlotResponse.model_validate(slot))


@router.delete("/{slot_id}", response_model=DeleteResponse)
async def delete_slot(
    slot_id: uuid.UUID = Path(..., description="Slot id"),
    user: dict = Depends(require_admin),
    store: SlotStore = Depends(get_slot_store)
):
    """Delete a slot. Slots with reservations are rejected with 409."""
    await store.delete_slot(slot_id, actor_id=user["user_id"])
    return DeleteResponse(id=slot_id, deleted=True)


@router.post("/{slot_id}/reserve", response_model=SlotEnvelope)
async def reserve_units(
    body: UnitsRequest,
    slot_id: uuid.UUID = Path(..., description="Slot id"),
    user: dict = Depends(require_admin),
    store: SlotStore = Depends(get_slot_store)
):
    """Reserve units on a slot; 409 if the slot lacks capacity."""
    if not await store.reserve_units(slot_id, body.units):
        raise ConflictError(
            "Not enough capacity left in this slot",
            details={"requested_units": body.units},
        )
    slot = await store.get_slot(slot_id)
    return SlotEnvelope(slot=SlotResponse.model_validate(slot))


@router.post("/{slot_id}/release", response_model=SlotEnvelope)
async def release_units(
    body: UnitsRequest,
    slot_id: uuid.UUID = Path(..., description="Slot id"),
    user: dict = Depends(require_admin),
    store: SlotStore = Depends(get_slot_store)
):
    await store.release_units(slot_id, body.units)
    slot = await store.get_slot(slot_id)
    return SlotEnvelope(slot=SlotResponse.model_validate(slot))
