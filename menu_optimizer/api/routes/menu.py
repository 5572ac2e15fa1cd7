"""Menu file parsing endpoint."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from menu_optimizer.api.dependencies import get_current_restaurant_id, get_menu_ingest_service
from menu_optimizer.schemas import MenuFileReference, MenuItem
from menu_optimizer.services.menu_ingest_service import MenuExtractionError, MenuIngestService
from menu_optimizer.services.postgrest_client import raise_store_error
from menu_optimizer.services.record_store import RecordStoreError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/menu", tags=["Menu"])


@router.post("/parse", response_model=List[MenuItem], status_code=201)
async def parse_menu(
    payload: MenuFileReference,
    restaurant_id: str = Depends(get_current_restaurant_id),
    service: MenuIngestService = Depends(get_menu_ingest_service),
) -> List[MenuItem]:
    """Read an uploaded menu file and store its dishes as menu items."""

    try:
        return await service.parse_and_store(restaurant_id, payload)
    except MenuExtractionError as exc:
        logger.warning("Menu parsing failed: %s", exc)
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except RecordStoreError as exc:
        raise_store_error(exc, context="store parsed menu")


__all__ = ["router"]
