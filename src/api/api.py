import logging
from contextlib import asynccontextmanager
from time import perf_counter
from typing import Annotated, Any, AsyncGenerator, Awaitable, Callable

from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.staticfiles import StaticFiles

from api.dependencies import get_context
from api.errors import register_error_handlers
from api.routes import email, rates
from config import AppSettings, config
from services.context import AppContext, build_context

logger = logging.getLogger(__name__)


def create_app(context: AppContext | None = None, settings: AppSettings | None = None) -> FastAPI:
    settings = context.settings if context is not None else (settings or config())

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI) -> AsyncGenerator[None, None]:
        if getattr(fastapi_app.state, "context", None) is None:
            fastapi_app.state.context = build_context(settings)
        yield

    app = FastAPI(title="FastCripto", lifespan=lifespan)
    if context is not None:
        app.state.context = context

    @app.middleware("http")
    async def log_process_time(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        start_time = perf_counter()
        response = await call_next(request)
        process_time = perf_counter() - start_time
        logger.info("%s %s -> %d in %.4fs", request.method, request.url.path, response.status_code, process_time)
        return response

    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    @app.get("/")
    def root() -> dict[str, Any]:
        return {"success": True, "name": "FastCripto", "status": "ok"}

    @app.get("/health")
    def health(ctx: Annotated[AppContext, Depends(get_context)]) -> dict[str, Any]:
        last_updated = ctx.rates.last_updated
        return {
            "status": "ok",
            "rates_last_updated": last_updated.isoformat() if last_updated else None,
            "rates_stale": ctx.rates.is_stale,
        }

    app.include_router(rates.router)
    app.include_router(email.router)

    if settings.static_dir.is_dir():
        app.mount("/static", StaticFiles(directory=settings.static_dir), name="static")
    else:
        logger.debug("Static directory %s not found, /static not mounted", settings.static_dir)

    return app


app = create_app()
