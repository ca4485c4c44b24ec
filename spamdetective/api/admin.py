"""
Admin API endpoints for Spam Detective management.

Includes:
- Whitelist / suspicious domain management, export and import
- Detection settings
- Cache maintenance and system info
"""

from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status

from spamdetective.api.dependencies import (
    analysis_cache,
    get_analyzer,
    get_domain_lists,
    get_settings_accessor,
)
from spamdetective.api.security import verify_api_token
from spamdetective.models.domain import ListType
from spamdetective.schemas.analyze_schemas import (
    CacheClearResponse,
    CacheMaintenanceResponse,
    DomainChangeResponse,
    DomainImportRequest,
    DomainListResponse,
    DomainRequest,
)
from spamdetective.services.lists_service import DomainLists
from spamdetective.services.settings_service import SettingsAccessor
from spamdetective.services.user_analyzer import SpamAnalyzer
from spamdetective.utils.logging_config import metrics


router = APIRouter(
    tags=["admin"],
    dependencies=[Depends(verify_api_token)],
)


def _list_type(name: str) -> ListType:
    try:
        return ListType(name)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown domain list '{name}'. Use 'whitelist' or 'suspicious'.",
        )


# ============== DOMAIN LISTS ==============


@router.get("/domains/export")
def export_domain_lists(lists: DomainLists = Depends(get_domain_lists)):
    return lists.export_lists()


@router.post("/domains/import")
def import_domain_lists(request: DomainImportRequest, lists: DomainLists = Depends(get_domain_lists)):
    data = request.model_dump(exclude={"mode"}, exclude_none=True)
    if not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Nothing to import. Provide whitelist and/or suspicious_domains.",
        )
    result = lists.import_lists(data, mode=request.mode)
    return {**result, "stats": lists.get_stats()}


@router.get("/domains/{list_name}", response_model=DomainListResponse)
def get_domain_list(list_name: str, lists: DomainLists = Depends(get_domain_lists)):
    list_type = _list_type(list_name)
    domains = lists.get_whitelist() if list_type == ListType.WHITELIST else lists.get_suspicious_domains()
    return DomainListResponse(list_type=list_type.value, domains=sorted(domains))


@router.post("/domains/{list_name}", response_model=DomainChangeResponse)
def add_domain(list_name: str, request: DomainRequest, lists: DomainLists = Depends(get_domain_lists)):
    """Add a domain to a list. Adding flushes every cached analysis."""
    list_type = _list_type(list_name)
    domain = request.domain.strip().lower()

    if not lists.is_valid_domain(domain):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid domain format: '{request.domain}'",
        )

    if list_type == ListType.WHITELIST:
        added = lists.add_to_whitelist(domain)
    else:
        added = lists.add_to_suspicious(domain)

    return DomainChangeResponse(
        success=added,
        domain=domain,
        message=f"Domain {domain} added to {list_type.value}" if added else f"Domain {domain} already in {list_type.value}",
    )


@router.delete("/domains/{list_name}", response_model=DomainChangeResponse)
def remove_domain(list_name: str, request: DomainRequest, lists: DomainLists = Depends(get_domain_lists)):
    list_type = _list_type(list_name)
    domain = request.domain.strip().lower()

    if list_type == ListType.WHITELIST:
        removed = lists.remove_from_whitelist(domain)
    else:
        removed = lists.remove_from_suspicious(domain)

    return DomainChangeResponse(
        success=removed,
        domain=domain,
        message=f"Domain {domain} removed from {list_type.value}" if removed else f"Domain {domain} not found in {list_type.value}",
    )


# ============== SETTINGS ==============


@router.get("/settings")
def get_detection_settings(accessor: SettingsAccessor = Depends(get_settings_accessor)):
    return accessor.get().model_dump()


@router.put("/settings")
def update_detection_settings(
    updates: Dict[str, Any],
    accessor: SettingsAccessor = Depends(get_settings_accessor),
):
    """Validate and save a partial update. Invalid thresholds are rejected with 400."""
    saved = accessor.save(updates)
    return {"message": "Settings saved", "settings": saved.model_dump()}


# ============== CACHE / SYSTEM ==============


@router.post("/cache/clear", response_model=CacheClearResponse)
def clear_cache():
    cleared = analysis_cache.clear_all_user_cache()
    return CacheClearResponse(
        message="Cache cleared successfully" if cleared else "No cache entries to clear",
        cache_cleared=cleared,
        stats=analysis_cache.get_stats(),
        timestamp=datetime.now(),
    )


@router.post("/cache/cleanup", response_model=CacheMaintenanceResponse)
def cleanup_cache():
    """Purge expired entries. Expired entries already read as misses; this frees their memory."""
    removed = analysis_cache.cleanup_expired()
    return CacheMaintenanceResponse(
        message=f"Removed {removed} expired cache entries",
        affected=removed,
        stats=analysis_cache.get_stats(),
        timestamp=datetime.now(),
    )


@router.post("/cache/warmup", response_model=CacheMaintenanceResponse)
def warmup_cache(quick_scan: bool = True, analyzer: SpamAnalyzer = Depends(get_analyzer)):
    warmed_up = analyzer.warmup_cache(quick_scan=quick_scan)
    return CacheMaintenanceResponse(
        message=f"Cached {warmed_up} new analyses",
        affected=warmed_up,
        stats=analysis_cache.get_stats(),
        timestamp=datetime.now(),
    )


@router.get("/system")
def system_info(analyzer: SpamAnalyzer = Depends(get_analyzer)):
    return analyzer.system_info()


@router.get("/metrics")
def get_metrics():
    return metrics.get_stats()
