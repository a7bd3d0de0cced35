"""
FastAPI backend for the weather layer merge engine.

Provides REST API endpoints for:
- Loading, ordering and toggling forecast layers
- Merge strategy settings and the selected forecast time
- Merged point/vector queries, coverage, meteograms and route weather
"""

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from weatherlayers import __version__
from weatherlayers.metrics import metrics
from weatherlayers_api.config import settings
from weatherlayers_api.routers import layers, query, system
from weatherlayers_api.state import get_app_state

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# =============================================================================
# Application Factory
# =============================================================================

def create_app() -> FastAPI:
    """
    Application factory for the weather layers API.

    Returns:
        FastAPI: Configured application instance
    """
    application = FastAPI(
        title="Weather Layers API",
        description="""
## Multi-source forecast layer merging

Load GRIB forecast files into named layers, order them by priority and
query merged values at any point and time.

### Merging
- Temporal interpolation between forecast steps per layer
- Candidate scoring on currency, resolution and model quality
- Vector components (wind, current) always taken from one layer
        """,
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @application.middleware("http")
    async def count_requests(request: Request, call_next):
        with metrics.timer("http_request"):
            response = await call_next(request)
        metrics.increment("http_requests")
        if response.status_code >= 400:
            metrics.increment("http_errors")
        return response

    @application.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.error(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors())})

    application.include_router(system.router)
    application.include_router(layers.router)
    application.include_router(query.router)

    return application


app = create_app()

# Initialize application state (thread-safe singleton)
_ = get_app_state()
