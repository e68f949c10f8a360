"""
Export Endpoints
Aggregated snapshots handed to the CSV exporter
"""
from fastapi import APIRouter, Depends

from franchise_crm.api.v1.dependencies import get_gateway
from franchise_crm.domain.models.modules import ModuleType
from franchise_crm.domain.services.aggregation_gateway import AggregationGateway

router = APIRouter(prefix="/export", tags=["export"])


@router.get("/")
async def export_summary(gateway: AggregationGateway = Depends(get_gateway)):
    """Row count per module, for the export picker."""
    counts = await gateway.module_counts([m.value for m in ModuleType])
    return {"viewer": gateway.identity.viewer_tenant, "counts": counts}


@router.get("/{module}")
async def export_module(
    module: ModuleType,
    gateway: AggregationGateway = Depends(get_gateway)
):
    """
    Flat rows of every visible record with a `source` column.

    History is collapsed to `history_count`.
    """
    rows = await gateway.export_snapshot(module.value)
    return {"module": module.value, "rows": rows, "count": len(rows)}
