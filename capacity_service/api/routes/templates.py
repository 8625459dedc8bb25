"""
Capacity Template API Endpoints

GET    /api/v1/capacity/templates                - List templates
POST   /api/v1/capacity/templates                - Create a template
PUT    /api/v1/capacity/templates/{id}           - Update a template
DELETE /api/v1/capacity/templates/{id}           - Delete, or deactivate if slots reference it
POST   /api/v1/capacity/templates/bulk-generate  - Expand one template into slots (atomic)
"""
import logging
import uuid
from datetime import date, datetime, time
from typing import List, Optional
from fastapi import APIRouter, Depends, Path, Query, status
from pydantic import BaseModel, ConfigDict, Field

from capacity_service.api.auth import require_admin
from capacity_service.services.slot_generator import SlotGenerator, get_slot_generator
from capacity_service.services.template_store import TemplateStore, get_template_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/capacity/templates", tags=["capacity-templates"])


# Pydantic models

class TemplateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    partner_id: uuid.UUID
    service_type: str
    day_of_week: int
    slot_start: time
    slot_end: time
    max_units: int
    active: bool
    created_at: datetime
    updated_at: datetime


class TemplateListResponse(BaseModel):
    templates: List[TemplateResponse]
    count: int


class TemplateEnvelope(BaseModel):
    template: TemplateResponse


class TemplateCreateRequest(BaseModel):
    """Weekly rule; times are business-local wall clock"""
    partner_id: uuid.UUID
    service_type: str
    day_of_week: int = Field(..., description="0=Sunday ... 6=Saturday")
    slot_start: time
    slot_end: time
    max_units: Optional[int] = Field(None, description="Defaults to the partner's capacity quantum")


class TemplateUpdateRequest(BaseModel):
    day_of_week: Optional[int] = None
    slot_start: Optional[time] = None
    slot_end: Optional[time] = None
    max_units: Optional[int] = None
    active: Optional[bool] = None


class TemplateRemoveResponse(BaseModel):
    id: uuid.UUID
    outcome: str  # "deleted" or "deactivated"


class BulkGenerateRequest(BaseModel):
    """Inclusive business-date range, at most 90 days"""
    template_id: uuid.UUID
    start_date: date
    end_date: date


class BulkGenerateResponse(BaseModel):
    success: bool
    slots_created: int
    message: str


# API Endpoints

@router.get("", response_model=TemplateListResponse)
async def list_templates(
    partner_id: Optional[uuid.UUID] = Query(None, description="Filter by partner"),
    service_type: Optional[str] = Query(None, description="LAUNDRY or CLEANING"),
    active: Optional[bool] = Query(None, description="Filter by active flag"),
    user: dict = Depends(require_admin),
    store: TemplateStore = Depends(get_template_store)
):
    templates = await store.list_templates(partner_id=partner_id, service_type=service_type, active=active)
    return TemplateListResponse(
        templates=[TemplateResponse.model_validate(template) for template in templates],
        count=len(templates),
    )


@router.post("", response_model=TemplateEnvelope, status_code=status.HTTP_201_CREATED)
async def create_template(
    body: TemplateCreateRequest,
    user: dict = Depends(require_admin),
    store: TemplateStore = Depends(get_template_store)
):
    template = await store.create_template(
        partner_id=body.partner_id,
        service_type=body.service_type,
        day_of_week=body.day_of_week,
        slot_start=body.slot_start,
        slot_end=body.slot_end,
        max_units=body.max_units,
        actor_id=user["user_id"],
    )
    return TemplateEnvelope(template=TemplateResponse.model_validate(template))


@router.post("/bulk-generate", response_model=BulkGenerateResponse, status_code=status.HTTP_201_CREATED)
async def bulk_generate(
    body: BulkGenerateRequest,
    user: dict = Depends(require_admin),
    generator: SlotGenerator = Depends(get_slot_generator)
):
    """
    Create slots from one template for every matching date in the range.

    All or nothing: if any generated window overlaps an existing slot, nothing
    is created and the response is 409 with up to 5 conflicting start times.
    """
    result = await generator.bulk_generate(
        template_id=body.template_id,
        start_date=body.start_date,
        end_date=body.end_date,
        actor_id=user["user_id"],
    )
    return BulkGenerateResponse(success=True, **result)


@router.put("/{template_id}", response_model=TemplateEnvelope)
async def update_template(
    body: TemplateUpdateRequest,
    template_id: uuid.UUID = Path(..., description="Template id"),
    user: dict = Depends(require_admin),
    store: TemplateStore = Depends(get_template_store)
):
    template = await store.update_template(
        template_id,
        body.model_dump(exclude_unset=True),
        actor_id=user["user_id"],
    )
    return TemplateEnvelope(template=TemplateResponse.model_validate(template))


@router.delete("/{template_id}", response_model=TemplateRemoveResponse)
async def remove_template(
    template_id: uuid.UUID = Path(..., description="Template id"),
    user: dict = Depends(require_admin),
    store: TemplateStore = Depends(get_template_store)
):
    """Hard-delete an unused template; deactivate one that already generated slots."""
    outcome = await store.remove_template(template_id, actor_id=user["user_id"])
    return TemplateRemoveResponse(id=template_id, outcome=outcome)
