"""
Record Endpoints
CRUD, dispositions and bulk import for every partitioned module

Routes:
- GET    /records/lookup/phone              - match a caller against vendors/enquiries
- POST   /records/enquiry/{id}/promote      - convert an enquiry into a vendor
- GET    /records/{module}                  - aggregated, filtered list
- POST   /records/{module}                  - create
- POST   /records/{module}/import           - bulk import (append or replace)
- POST   /records/{module}/clear            - drop a partition
- GET    /records/{module}/{id}             - single record
- PATCH  /records/{module}/{id}             - edit business fields
- DELETE /records/{module}/{id}             - permanent delete
- POST   /records/{module}/{id}/disposition - status transition with history
"""
import logging
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field

from franchise_crm.api.v1.dependencies import get_record_filter, get_record_service
from franchise_crm.domain.models.modules import ModuleType
from franchise_crm.domain.services.record_filter import RecordFilter, distinct_cities
from franchise_crm.domain.services.record_service import ImportMode, RecordService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/records", tags=["records"])


class RecordCreateRequest(BaseModel):
    """New record fields"""
    fields: Dict[str, Any] = Field(..., description="Business fields, e.g. name and phone")
    owner_tenant: Optional[str] = Field(
        default=None, description="Head office only: partition to create the record in"
    )
    follow_up_due: Optional[datetime] = Field(
        default=None, description="Required when fields.status is the follow-up status"
    )


class RecordUpdateRequest(BaseModel):
    changes: Dict[str, Any] = Field(..., description="Business fields to change")


class DispositionRequest(BaseModel):
    """Interaction outcome"""
    status: str = Field(..., description="New status value")
    note: Optional[str] = Field(default=None, description="History note; defaults to the draft note")
    follow_up_due: Optional[datetime] = Field(default=None, description="Required for the follow-up status")


class ImportRequest(BaseModel):
    rows: List[Dict[str, Any]] = Field(..., description="Parsed rows, one dict per record")
    mode: ImportMode = Field(default=ImportMode.APPEND)
    owner_tenant: Optional[str] = None


class ClearRequest(BaseModel):
    owner_tenant: Optional[str] = None


class PromoteRequest(BaseModel):
    vehicle_type: str = Field(default="")
    note: Optional[str] = None


# =============================================================================
# Fixed routes (declared before the generic /{module} routes)
# =============================================================================

@router.get("/lookup/phone")
async def lookup_phone(
    phone: str = Query(..., min_length=3),
    service: RecordService = Depends(get_record_service)
):
    """Existing vendors and enquiries for an incoming caller's number."""
    matches = await service.lookup_by_phone(phone)
    return {
        module: [item.to_api_dict() for item in items]
        for module, items in matches.items()
    }


@router.post("/enquiry/{record_id}/promote", status_code=status.HTTP_201_CREATED)
async def promote_enquiry(
    record_id: str,
    request: PromoteRequest,
    service: RecordService = Depends(get_record_service)
):
    """Create a vendor from an enquiry and mark the enquiry Converted."""
    enquiry, vendor = await service.promote_enquiry_to_vendor(
        record_id, vehicle_type=request.vehicle_type, note=request.note
    )
    return {
        "enquiry": enquiry.model_dump(mode="json"),
        "vendor": vendor.model_dump(mode="json"),
    }


# =============================================================================
# Module routes
# =============================================================================

@router.get("/{module}")
async def list_records(
    module: ModuleType,
    degraded: bool = Query(False, description="Skip corrupted partitions instead of failing"),
    record_filter: RecordFilter = Depends(get_record_filter),
    service: RecordService = Depends(get_record_service)
):
    """
    Records visible to the caller.

    Head office gets every partition (head office first, then franchises
    in registration order); franchises get their own. Each record carries
    a `tenant_tag` naming its origin.
    """
    everything = await service.list_records(module.value, degraded=degraded)
    filtered = record_filter.apply(everything, service.lifecycle.clock.today())
    return {
        "records": [item.to_api_dict() for item in filtered],
        "total": len(filtered),
        "cities": distinct_cities(everything),
    }


@router.post("/{module}", status_code=status.HTTP_201_CREATED)
async def create_record(
    module: ModuleType,
    request: RecordCreateRequest,
    service: RecordService = Depends(get_record_service)
):
    record = await service.create_record(
        module.value,
        request.fields,
        owner_tenant=request.owner_tenant,
        follow_up_due=request.follow_up_due,
    )
    return record.model_dump(mode="json")


@router.post("/{module}/import")
async def import_records(
    module: ModuleType,
    request: ImportRequest,
    service: RecordService = Depends(get_record_service)
):
    """
    Bulk import parsed rows.

    Rows without a phone number are skipped and reported with their row
    number; replace mode overwrites the target partition.
    """
    result = await service.import_records(
        module.value, request.rows, mode=request.mode, owner_tenant=request.owner_tenant
    )
    return asdict(result)


@router.post("/{module}/clear", status_code=status.HTTP_204_NO_CONTENT)
async def clear_records(
    module: ModuleType,
    request: ClearRequest,
    service: RecordService = Depends(get_record_service)
):
    owner = await service.clear_partition(module.value, owner_tenant=request.owner_tenant)
    logger.info(f"{module.value} partition of {owner} cleared by {service.identity.viewer_tenant}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{module}/{record_id}")
async def get_record(
    module: ModuleType,
    record_id: str,
    service: RecordService = Depends(get_record_service)
):
    item = await service.get_record(module.value, record_id)
    return item.to_api_dict()


@router.patch("/{module}/{record_id}")
async def update_record(
    module: ModuleType,
    record_id: str,
    request: RecordUpdateRequest,
    service: RecordService = Depends(get_record_service)
):
    """Edit business fields. Status and history only change via dispositions."""
    record = await service.update_record(module.value, record_id, request.changes)
    return record.model_dump(mode="json")


@router.delete("/{module}/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_record(
    module: ModuleType,
    record_id: str,
    service: RecordService = Depends(get_record_service)
):
    await service.delete_record(module.value, record_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{module}/{record_id}/disposition")
async def record_disposition(
    module: ModuleType,
    record_id: str,
    request: DispositionRequest,
    service: RecordService = Depends(get_record_service)
):
    """Log an interaction outcome; prepends one history entry."""
    record = await service.apply_disposition(
        module.value,
        record_id,
        request.status,
        note=request.note,
        follow_up_due=request.follow_up_due,
    )
    return record.model_dump(mode="json")
