from typing import Annotated

from fastapi import Depends, Request

from services.context import AppContext
from services.rate_service import RateService


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_rate_service(context: Annotated[AppContext, Depends(get_context)]) -> RateService:
    return context.rates
