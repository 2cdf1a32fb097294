from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from api.dependencies import get_rate_service
from domain.errors import NetworkError
from services.rate_service import RateService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["rates"])


def revalidate_rates(rates: RateService) -> None:
    try:
        rates.refresh()
    except NetworkError as exc:
        logger.warning("Background rate refresh failed: %s", exc)


@router.get("/rates")
def get_rates(
    background_tasks: BackgroundTasks,
    rates: Annotated[RateService, Depends(get_rate_service)],
) -> dict[str, Any]:
    """Current rates. Stale rates are served immediately and refreshed after the response."""
    if rates.store.is_empty():
        snapshot = rates.refresh()
        stale = False
    elif rates.is_stale:
        snapshot = rates.snapshot()
        stale = True
        background_tasks.add_task(revalidate_rates, rates)
    else:
        snapshot = rates.snapshot()
        stale = False
    return {"success": True, "stale": stale, **snapshot.to_payload()}


@router.get("/convert")
def convert(
    rates: Annotated[RateService, Depends(get_rate_service)],
    amount: Annotated[str, Query()],
    from_code: Annotated[str, Query(alias="from")],
    to_code: Annotated[str, Query(alias="to")],
    record: bool = True,
) -> dict[str, Any]:
    conversion = rates.convert(amount, from_code, to_code, record=record)
    return {"success": True, **conversion.model_dump(mode="json")}
