"""Service status endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends

from echoes import __version__
from echoes.api.dependencies import get_enrichment_worker
from echoes.domain.models import utc_now
from echoes.services.enrichment import EnrichmentWorker

router = APIRouter()


@router.get("/health", operation_id="health")
async def health_check(
    worker: Annotated[EnrichmentWorker | None, Depends(get_enrichment_worker)],
) -> dict[str, Any]:
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": utc_now().isoformat(),
        "enrichment": worker.get_job_status() if worker else None,
    }
