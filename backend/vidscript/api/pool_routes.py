"""
API routes for API key and proxy pool management.

Stats, add/remove, cooldown reset and live proxy probes. Key values are
never returned, only ids and masked previews.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from vidscript.api.deps import get_container
from vidscript.container import ServiceContainer
from vidscript.models.schemas import (
    KeyAddRequest,
    KeyRemoveRequest,
    ProxyAddRequest,
    ProxyIdRequest,
    ProxyTestResult,
    ResetRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["pools"])


# ═══════════════════════════════════════════════════════════════════════════════
# API Keys
# ═══════════════════════════════════════════════════════════════════════════════


@router.get("/keys/stats")
async def key_stats(container: ServiceContainer = Depends(get_container)) -> dict:
    """Usage statistics for the API key pool."""
    return container.credential_pool.get_stats()


@router.post("/keys/add")
async def add_key(
    request: KeyAddRequest,
    container: ServiceContainer = Depends(get_container),
) -> dict:
    """
    Add an API key (adding an existing key is a no-op).

    Raises:
        400: Blank key
    """
    try:
        credential = container.credential_pool.add(request.api_key)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"success": True, "id": credential.id, "preview": credential.preview}


@router.delete("/keys/remove")
async def remove_key(
    request: KeyRemoveRequest,
    container: ServiceContainer = Depends(get_container),
) -> dict:
    """
    Remove an API key by id or value.

    Raises:
        404: Key not found
    """
    if not container.credential_pool.remove(request.identifier):
        raise HTTPException(status_code=404, detail="API key not found")
    return {"success": True}


@router.post("/keys/reset")
async def reset_keys(
    request: ResetRequest | None = None,
    container: ServiceContainer = Depends(get_container),
) -> dict:
    """Clear key cooldowns and re-activate keys disabled by quota."""
    include_permanent = request.include_permanent if request else False
    container.credential_pool.reset_cooldowns(include_permanent=include_permanent)
    return {"success": True, "stats": container.credential_pool.get_stats()}


# ═══════════════════════════════════════════════════════════════════════════════
# Proxies
# ═══════════════════════════════════════════════════════════════════════════════


@router.get("/proxies/stats")
async def proxy_stats(container: ServiceContainer = Depends(get_container)) -> dict:
    """Usage statistics for the proxy pool."""
    return container.egress_pool.get_stats()


@router.post("/proxies/add")
async def add_proxy(
    request: ProxyAddRequest,
    container: ServiceContainer = Depends(get_container),
) -> dict:
    """
    Add a proxy.

    Raises:
        400: Empty URL or unsupported proxy type
    """
    try:
        proxy = container.egress_pool.add(request.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"success": True, "id": proxy.id, "type": proxy.type}


@router.delete("/proxies/remove")
async def remove_proxy(
    request: ProxyIdRequest,
    container: ServiceContainer = Depends(get_container),
) -> dict:
    """
    Remove a proxy.

    Raises:
        404: Proxy not found
    """
    if not container.egress_pool.remove(request.proxy_id):
        raise HTTPException(status_code=404, detail=f"Proxy not found: {request.proxy_id}")
    await container.client.prune_clients()
    return {"success": True}


@router.post("/proxies/reset")
async def reset_proxies(
    request: ResetRequest | None = None,
    container: ServiceContainer = Depends(get_container),
) -> dict:
    """Clear proxy cooldowns and re-activate unavailable proxies."""
    include_permanent = request.include_permanent if request else False
    container.egress_pool.reset_cooldowns(include_permanent=include_permanent)
    return {"success": True, "stats": container.egress_pool.get_stats()}


@router.post("/proxies/test", response_model=ProxyTestResult)
async def test_proxy(
    request: ProxyIdRequest,
    container: ServiceContainer = Depends(get_container),
) -> ProxyTestResult:
    """
    Probe one proxy with a live request.

    Raises:
        404: Proxy not found
    """
    try:
        return await container.egress_pool.test(request.proxy_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Proxy not found: {request.proxy_id}")


@router.post("/proxies/test-all", response_model=list[ProxyTestResult])
async def test_all_proxies(container: ServiceContainer = Depends(get_container)) -> list[ProxyTestResult]:
    """Probe every proxy."""
    results = await container.egress_pool.test_all()
    working = sum(1 for r in results if r.success)
    logger.info(f"Proxy test: {working}/{len(results)} working")
    return results
