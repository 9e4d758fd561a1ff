"""Source sync endpoints.

Start, cancel and inspect a manual sync, and manage the reference data the
sync depends on: the inventory directory and the brand/class code mappings.
The tenant is taken from the X-Tenant-ID header.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Header, HTTPException, Query, Request, UploadFile
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from connectors import SourceApiError
from core.observability.logging import get_logger
from inventory_directory.csv_parse import DirectoryFormatError, DirectoryRow
from sync_engine.bootstrap import SyncComponents


router = APIRouter()
logger = get_logger(__name__)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Request / response models
# =============================================================================

class SyncRequest(CamelModel):
    """Request to start a manual sync. All fields optional."""
    date_from: Optional[str] = Field(None, alias="from", description="Range start (YYYY-MM-DD)")
    date_to: Optional[str] = Field(None, alias="to", description="Range end (YYYY-MM-DD)")
    page: int = Field(1, ge=1, description="Customer listing page")
    page_size: Optional[int] = Field(None, ge=1, description="Customers per page")


class DirectoryItem(CamelModel):
    reference: str
    brand: Optional[str] = None
    brand_code: Optional[str] = None
    class_code: Optional[str] = None
    class_name: Optional[str] = None


class DirectoryPutRequest(CamelModel):
    items: List[DirectoryItem] = Field(default_factory=list)


class CodeMappingItem(CamelModel):
    code: str
    name: Optional[str] = None


class CodeMappingPutRequest(CamelModel):
    items: List[CodeMappingItem] = Field(default_factory=list)


# =============================================================================
# Dependencies
# =============================================================================

def get_components(request: Request) -> SyncComponents:
    return request.app.state.components


def get_tenant_id(x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-ID")) -> str:
    if not x_tenant_id or not x_tenant_id.strip():
        raise HTTPException(status_code=400, detail="X-Tenant-ID header required")
    return x_tenant_id.strip()


def _external_id(components: SyncComponents, tenant_id: str) -> str:
    tenant = components.store.get_tenant(tenant_id)
    if tenant is not None and tenant.external_id:
        return tenant.external_id
    return tenant_id


# =============================================================================
# Sync
# =============================================================================

@router.post("/sync", status_code=202)
async def start_sync(
    body: Optional[SyncRequest] = None,
    tenant_id: str = Depends(get_tenant_id),
    components: SyncComponents = Depends(get_components),
) -> Dict[str, Any]:
    """Start a manual sync in the background.

    Returns {"status": "running"} when one is already in progress for the
    tenant, otherwise {"status": "started", "from", "to"}.
    """
    body = body or SyncRequest()
    return components.runner.start(
        tenant_id,
        date_from=body.date_from,
        date_to=body.date_to,
        page=body.page,
        page_size=body.page_size,
    )


@router.post("/sync/cancel")
async def cancel_sync(
    tenant_id: str = Depends(get_tenant_id),
    components: SyncComponents = Depends(get_components),
) -> Dict[str, Any]:
    """Request cancellation; takes effect at the next bucket boundary."""
    cancelled = components.runner.request_cancel(tenant_id)
    return {"cancelled": cancelled}


@router.get("/sync/status")
async def sync_status(
    tenant_id: str = Depends(get_tenant_id),
    components: SyncComponents = Depends(get_components),
) -> Dict[str, Any]:
    """Last-sync status, data coverage and live progress."""
    tenant = components.store.get_tenant(tenant_id)
    coverage = components.store.invoice_coverage(tenant_id)
    progress = components.runner.progress(tenant_id)

    unmapped = tenant.last_sync_unmapped_refs if tenant else None
    total_items = coverage.get("total_items") or 0
    unmapped_percent = None
    if unmapped is not None and total_items > 0:
        unmapped_percent = round(unmapped / total_items * 1000) / 10

    return {
        "running": components.runner.is_running(tenant_id),
        "lastSyncedAt": tenant.last_sync_at.isoformat() if tenant and tenant.last_sync_at else None,
        "lastSyncDurationMs": tenant.last_sync_duration_ms if tenant else None,
        "lastUnmappedRefsCount": unmapped,
        "lastSyncError": tenant.last_sync_error if tenant else None,
        "unmappedRefsPercent": unmapped_percent,
        "dataCoverage": {
            "earliestDate": coverage.get("earliest_date"),
            "latestDate": coverage.get("latest_date"),
            "totalInvoices": coverage.get("total_invoices") or 0,
        },
        "progress": {
            "percent": progress.percent,
            "stage": progress.stage,
            "current": progress.current,
            "total": progress.total,
        } if progress else None,
    }


# =============================================================================
# Inventory directory
# =============================================================================

@router.get("/inventory-directory")
async def list_inventory_directory(
    page: int = Query(1, ge=1),
    page_size: int = Query(100, ge=1, alias="pageSize"),
    tenant_id: str = Depends(get_tenant_id),
    components: SyncComponents = Depends(get_components),
) -> Dict[str, Any]:
    result = components.directory.list(tenant_id, page=page, page_size=page_size)
    return {
        "items": [
            DirectoryItem(
                reference=entry.reference,
                brand=entry.brand,
                brand_code=entry.brand_code,
                class_code=entry.class_code,
                class_name=entry.class_name,
            ).model_dump(by_alias=True)
            for entry in result.items
        ],
        "total": result.total,
        "page": result.page,
        "pageSize": result.page_size,
    }


@router.put("/inventory-directory")
async def put_inventory_directory(
    body: DirectoryPutRequest,
    tenant_id: str = Depends(get_tenant_id),
    components: SyncComponents = Depends(get_components),
) -> Dict[str, Any]:
    """Bulk upsert; the last item per reference wins."""
    rows = [DirectoryRow(**item.model_dump()) for item in body.items]
    result = components.directory.upsert_bulk(tenant_id, rows)
    components.maps_cache.invalidate(tenant_id)
    return {"count": result.count, "duplicateRefsLogged": result.duplicate_refs}


@router.post("/inventory-directory/upload")
async def upload_inventory_directory(
    file: Optional[UploadFile] = File(None),
    tenant_id: str = Depends(get_tenant_id),
    components: SyncComponents = Depends(get_components),
) -> Dict[str, Any]:
    """Load a `;`-delimited directory CSV (multipart field `file`)."""
    if file is None:
        raise HTTPException(status_code=400, detail="CSV file required (field 'file')")
    content = await file.read()
    if not content or not content.strip():
        raise HTTPException(status_code=400, detail="CSV file is empty")

    try:
        result = components.directory.load_csv(tenant_id, content)
    except DirectoryFormatError as e:
        raise HTTPException(status_code=400, detail=str(e))
    components.maps_cache.invalidate(tenant_id)

    message = f"{result.count} references loaded"
    if result.duplicate_refs:
        message += f"; {result.duplicate_refs} duplicate rows superseded"
    return {"count": result.count, "duplicateRefsLogged": result.duplicate_refs, "message": message}


@router.get("/inventory-brands")
async def inventory_brands(
    tenant_id: str = Depends(get_tenant_id),
    components: SyncComponents = Depends(get_components),
) -> Dict[str, List[str]]:
    """Distinct brand names, from the source when it knows them, else the directory."""
    try:
        brands = await components.source_client.inventory_brand_names(
            _external_id(components, tenant_id), tenant_id
        )
    except SourceApiError as e:
        logger.warning("Source brand listing failed; using directory", extra_fields={"error": str(e)})
        brands = []
    if not brands:
        brands = components.directory.brand_names(tenant_id)
    return {"brands": brands}


# =============================================================================
# Brand / class code mappings
# =============================================================================

def _mapping_items(mapping: Dict[str, str]) -> List[Dict[str, str]]:
    return [{"code": code, "name": name} for code, name in mapping.items()]


def _mapping_from_items(items: List[CodeMappingItem]) -> Dict[str, str]:
    mapping: Dict[str, str] = {}
    for item in items:
        code = (item.code or "").strip()
        if not code:
            continue
        mapping[code] = (item.name or "").strip() or code
    return mapping


@router.get("/brand-mapping")
async def get_brand_mapping(
    tenant_id: str = Depends(get_tenant_id),
    components: SyncComponents = Depends(get_components),
) -> Dict[str, Any]:
    return {"items": _mapping_items(components.store.get_code_mappings(tenant_id, "brand"))}


@router.put("/brand-mapping")
async def put_brand_mapping(
    body: CodeMappingPutRequest,
    tenant_id: str = Depends(get_tenant_id),
    components: SyncComponents = Depends(get_components),
) -> Dict[str, Any]:
    count = components.store.upsert_code_mappings(tenant_id, "brand", _mapping_from_items(body.items))
    return {"count": count}


@router.get("/class-mapping")
async def get_class_mapping(
    tenant_id: str = Depends(get_tenant_id),
    components: SyncComponents = Depends(get_components),
) -> Dict[str, Any]:
    return {"items": _mapping_items(components.store.get_code_mappings(tenant_id, "class"))}


@router.put("/class-mapping")
async def put_class_mapping(
    body: CodeMappingPutRequest,
    tenant_id: str = Depends(get_tenant_id),
    components: SyncComponents = Depends(get_components),
) -> Dict[str, Any]:
    count = components.store.upsert_code_mappings(tenant_id, "class", _mapping_from_items(body.items))
    return {"count": count}
