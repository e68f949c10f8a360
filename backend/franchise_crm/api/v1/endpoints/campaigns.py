"""
Campaign Endpoints
Sequential outreach sessions over a module's filtered list

A session is kept per (viewer tenant, module). The dial flow is:
start -> disposition (logs outcome and auto-advances) -> ... -> idle
"""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from franchise_crm.api.v1.dependencies import get_container, get_record_filter, get_record_service
from franchise_crm.core.container import AppContainer
from franchise_crm.domain.models.modules import ModuleType
from franchise_crm.domain.services.campaign_engine import CampaignEngine, CampaignSession
from franchise_crm.domain.services.record_filter import RecordFilter, campaign_stats
from franchise_crm.domain.services.record_service import RecordService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/campaigns", tags=["campaigns"])


class JumpRequest(BaseModel):
    record_id: str = Field(..., min_length=1)


class CampaignDispositionRequest(BaseModel):
    """Outcome for the record under the cursor"""
    status: str
    note: Optional[str] = None
    follow_up_due: Optional[datetime] = None


def _engine(module: ModuleType, container: AppContainer) -> CampaignEngine:
    try:
        return container.campaign_engine(module.value)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def _session_or_404(container: AppContainer, service: RecordService, module: ModuleType) -> CampaignSession:
    session = container.sessions.get(service.identity.viewer_tenant, module.value)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No campaign session")
    return session


async def _session_view(service: RecordService, session: CampaignSession) -> dict:
    view = session.to_dict()
    view["current_record"] = None
    if session.current_record_id:
        item = await service.gateway.find(session.module, session.current_record_id)
        view["current_record"] = item.to_api_dict() if item else None
    return view


@router.post("/{module}/start")
async def start_campaign(
    module: ModuleType,
    record_filter: RecordFilter = Depends(get_record_filter),
    service: RecordService = Depends(get_record_service),
    container: AppContainer = Depends(get_container)
):
    """
    Start (or restart) a session over the filtered list.

    The cursor lands on the first untouched record or due follow-up.
    """
    engine = _engine(module, container)
    items = await service.list_records(module.value, record_filter)
    session = engine.start(
        [item.record for item in items],
        container.clock.today(),
        now=container.clock.now(),
    )
    container.sessions.put(service.identity.viewer_tenant, session)
    return await _session_view(service, session)


@router.get("/{module}")
async def get_campaign(
    module: ModuleType,
    service: RecordService = Depends(get_record_service),
    container: AppContainer = Depends(get_container)
):
    session = _session_or_404(container, service, module)
    return await _session_view(service, session)


@router.post("/{module}/advance")
async def advance_campaign(
    module: ModuleType,
    service: RecordService = Depends(get_record_service),
    container: AppContainer = Depends(get_container)
):
    """Skip ahead to the next untouched record."""
    engine = _engine(module, container)
    session = _session_or_404(container, service, module)
    current = [item.record for item in await service.list_records(module.value)]
    engine.advance(session, current)
    return await _session_view(service, session)


@router.post("/{module}/jump")
async def jump_campaign(
    module: ModuleType,
    request: JumpRequest,
    service: RecordService = Depends(get_record_service),
    container: AppContainer = Depends(get_container)
):
    engine = _engine(module, container)
    session = _session_or_404(container, service, module)
    try:
        engine.jump(session, request.record_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return await _session_view(service, session)


@router.post("/{module}/disposition")
async def campaign_disposition(
    module: ModuleType,
    request: CampaignDispositionRequest,
    service: RecordService = Depends(get_record_service),
    container: AppContainer = Depends(get_container)
):
    """
    Log the outcome for the current record, then auto-advance.

    Returns the updated record and the session after advancing.
    """
    engine = _engine(module, container)
    session = _session_or_404(container, service, module)
    if not session.current_record_id:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Campaign session is idle")

    record = await service.apply_disposition(
        module.value,
        session.current_record_id,
        request.status,
        note=request.note,
        follow_up_due=request.follow_up_due,
    )

    current = [item.record for item in await service.list_records(module.value)]
    engine.advance(session, current)

    return {
        "record": record.model_dump(mode="json"),
        "session": await _session_view(service, session),
    }


@router.delete("/{module}", status_code=status.HTTP_204_NO_CONTENT)
async def end_campaign(
    module: ModuleType,
    service: RecordService = Depends(get_record_service),
    container: AppContainer = Depends(get_container)
):
    container.sessions.end(service.identity.viewer_tenant, module.value)


@router.get("/{module}/stats")
async def campaign_statistics(
    module: ModuleType,
    record_filter: RecordFilter = Depends(get_record_filter),
    service: RecordService = Depends(get_record_service),
    container: AppContainer = Depends(get_container)
):
    """Progress numbers for the filtered list."""
    items = await service.list_records(module.value, record_filter)
    return campaign_stats(
        [item.record for item in items],
        container.specs[module.value],
        container.clock.today(),
    )


@router.get("/{module}/message/{record_id}")
async def outreach_message(
    module: ModuleType,
    record_id: str,
    template: str = Query("whatsapp_no_answer"),
    service: RecordService = Depends(get_record_service),
    container: AppContainer = Depends(get_container)
):
    """Rendered outreach text plus a ready-to-open link for the record."""
    record = (await service.get_record(module.value, record_id)).record
    templates = container.templates
    try:
        text = templates.render(template, name=record.display_name)
        tmpl = templates.get_template(template)
        if tmpl.channel.value == "email":
            subject = templates.render_subject(template) or ""
            link = templates.mailto_link(getattr(record, "email", ""), subject, text)
        else:
            subject = None
            link = templates.whatsapp_link(record.phone, text)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return {"template": template, "subject": subject, "text": text, "link": link}
