"""Manual sync trigger and dry-run preview."""

from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, status

from ...dependencies import get_orchestrator
from ...schemas.sync import SyncPreviewResponse, SyncRunResponse
from ...services.sync.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


@router.post("/run", response_model=SyncRunResponse, status_code=status.HTTP_200_OK)
def run_sync(orchestrator: SyncOrchestrator = Depends(get_orchestrator)) -> SyncRunResponse:
    result = orchestrator.run()
    if result.status == "failed":
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Sync run failed: {result.error_message}",
        )
    return SyncRunResponse(**asdict(result))


@router.get("/preview", response_model=SyncPreviewResponse, status_code=status.HTTP_200_OK)
def preview_sync(orchestrator: SyncOrchestrator = Depends(get_orchestrator)) -> SyncPreviewResponse:
    try:
        preview = orchestrator.preview()
    except Exception as exc:
        logger.exception(f"Error building sync preview: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to build sync preview: {str(exc)}",
        ) from exc
    return SyncPreviewResponse(orders_to_create=preview.orders_to_create, **asdict(preview))
