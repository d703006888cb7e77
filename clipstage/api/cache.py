from fastapi import APIRouter

from clipstage.api.deps import Services
from clipstage.schemas.player import CacheSweepResponse

router = APIRouter()


@router.post("/sweep", response_model=CacheSweepResponse)
async def sweep_cache(services: Services) -> CacheSweepResponse:
    """Purge title-search entries that have not been used within the expiration window."""
    purged = services.cache.sweep()
    return CacheSweepResponse(purged=purged, remaining=len(services.cache))
