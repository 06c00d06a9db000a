import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware

from ..core.config import Settings
from ..core.errors import SafetyAnalyticsError, UserNotFound, ValidationRejected
from ..core.models import LocationUpdate, NearbyUser, SOSAlert, SOSRequest, SOSResponse
from ..core.state import AppContext, get_context
from ..services.dispatcher import validate_submission
from ..services.maintenance import run_eviction_sweeps
from ..services.sse import dashboard_event_generator
from ..utils.geodesy import coerce_number, parse_coordinates
from ..utils.middleware import access_log_middleware
from ..utils.security import limiter, rate_limit_exceeded_handler, sos_rate_limit

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'

# Location used by the development SOS endpoint
TEST_SOS = {"username": "TestUser", "latitude": 40.7128, "longitude": -74.0060}


def configure_logging(level: str):
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=[logging.StreamHandler()])


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Handles application startup and shutdown events.

    The initial crime data load must succeed or startup fails. The user
    cleanup task runs in the background until shutdown.
    """
    ctx: AppContext = app.state.context
    settings = ctx.settings

    if settings.seed_demo_users:
        ctx.directory.seed()

    logger.info("Application startup: loading crime data.")
    await ctx.dataset.load()

    cleanup_task = None
    if settings.user_cleanup_interval > 0:
        cleanup_task = asyncio.create_task(
            run_eviction_sweeps(ctx.directory, settings.user_cleanup_interval, settings.user_max_age)
        )
    logger.info(f"Women Safety Analytics backend ready on port {settings.port}")
    yield

    logger.info("Application shutdown: Cleaning up resources.")
    if cleanup_task:
        cleanup_task.cancel()
        await asyncio.gather(cleanup_task, return_exceptions=True)


router = APIRouter()


@router.get("/", summary="Service Status")
async def root():
    """Simple status message confirming the service is running."""
    return {"message": "Welcome to the Women Safety Analytics Service"}


@router.get("/health", summary="Health Check")
async def health(ctx: AppContext = Depends(get_context)):
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "dashboard_connections": ctx.broadcaster.client_count,
        "registered_users": ctx.directory.count(),
        "crime_records": len(ctx.dataset),
    }


async def _handle_sos(ctx: AppContext, username, latitude, longitude) -> SOSResponse:
    result = await ctx.dispatcher.dispatch(username, latitude, longitude)
    return SOSResponse(
        success=True,
        message="SOS alert processed successfully",
        alert=SOSAlert(**result.alert),
        nearby_users=[
            NearbyUser(
                username=nearby.item.username,
                latitude=nearby.item.latitude,
                longitude=nearby.item.longitude,
                distance_meters=nearby.distance,
                last_seen=nearby.item.last_seen,
            )
            for nearby in result.nearby
        ],
        dashboard_notified=result.dashboards_notified > 0,
    )


@router.post("/api/sos", summary="Submit SOS Alert", response_model=SOSResponse)
@limiter.limit(sos_rate_limit)
async def submit_sos(request: Request, sos: SOSRequest, ctx: AppContext = Depends(get_context)):
    """
    Receives an SOS alert, finds registered users nearby and pushes the alert
    to every connected dashboard.

    **Request Body:**
    - `username` (or `identity`): who is sending the alert
    - `latitude`, `longitude`: where the sender is

    ```json
    {"username": "Sarah_M", "latitude": 40.7580, "longitude": -73.9855}
    ```
    """
    return await _handle_sos(ctx, sos.username, sos.latitude, sos.longitude)


@router.get("/api/sos/test", summary="Simulate SOS Alert", response_model=SOSResponse)
async def simulate_sos(ctx: AppContext = Depends(get_context)):
    """Dispatches a demo alert, for development."""
    return await _handle_sos(ctx, **TEST_SOS)


@router.post("/api/users/location", summary="Register User Location")
async def register_location(update: LocationUpdate, ctx: AppContext = Depends(get_context)):
    username, lat, lng = validate_submission(update.username, update.latitude, update.longitude)
    ctx.directory.upsert(username, lat, lng)
    entry = ctx.directory.get(username)
    return {
        "success": True,
        "user": {
            "username": entry.username,
            "latitude": entry.latitude,
            "longitude": entry.longitude,
            "last_seen": entry.last_seen.isoformat(),
        },
    }


@router.delete("/api/users/{username}", summary="Forget User")
async def remove_user(username: str, ctx: AppContext = Depends(get_context)):
    if not ctx.directory.remove(username):
        raise UserNotFound(username)
    return {"success": True, "username": username}


@router.get("/api/dashboard-stream", summary="Dashboard Event Stream")
async def dashboard_stream(request: Request, ctx: AppContext = Depends(get_context)):
    """
    Server-Sent Events stream of SOS alerts for the dashboard.

    Each alert arrives as an `sos-alert` event carrying the alert and the
    users found near it.
    """
    return StreamingResponse(
        dashboard_event_generator(request, ctx.broadcaster, keepalive=ctx.settings.sse_keepalive_seconds),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


def _area_filter(lat: Optional[str], lng: Optional[str], radius: Optional[str]):
    """Validated (lat, lng, radius) when all three are given, else None."""
    if not (lat and lng and radius):
        return None
    latitude, longitude = parse_coordinates(lat, lng)
    search_radius = coerce_number(radius)
    if search_radius is None or search_radius < 0:
        raise ValidationRejected("Radius must be a non-negative number of meters", reason="invalid_radius")
    return latitude, longitude, search_radius


@router.get("/api/crime-zones", summary="Crime Zones")
async def crime_zones(crime_type: Optional[str] = Query(None, alias="type"),
                      lat: Optional[str] = None, lng: Optional[str] = None,
                      radius: Optional[str] = None, ctx: AppContext = Depends(get_context)):
    """
    Crime locations loaded from the CSV file.

    - `type`: case-insensitive substring of the crime category
    - `lat`, `lng`, `radius`: only crimes within `radius` meters of the point
    """
    area = _area_filter(lat, lng, radius)
    if area:
        records = ctx.dataset.query(crime_type, *area)
    else:
        records = ctx.dataset.query(crime_type)

    logger.info(f"Crime zones request processed: {len(records)} results returned")
    body = {
        "success": True,
        "data": [record.to_dict() for record in records],
        "total": len(records),
        "filters": {
            "type": crime_type or None,
            "location": {"lat": area[0], "lng": area[1], "radius": area[2]} if area else None,
        },
    }
    if len(ctx.dataset) == 0:
        body["message"] = "No crime data available"
    return body


@router.get("/api/crime-zones/stats", summary="Crime Statistics")
async def crime_zone_stats(ctx: AppContext = Depends(get_context)):
    stats = ctx.dataset.stats()
    return {
        "success": True,
        "total": stats.total,
        "counts_by_category": stats.counts_by_category,
        "loaded": stats.loaded,
        "last_updated": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/api/crime-zones/reload", summary="Reload Crime Data")
async def reload_crime_zones(ctx: AppContext = Depends(get_context)):
    """Reads the crime CSV again. A failure here is reported but does not stop the service."""
    records = await ctx.dataset.reload()
    return {"success": True, "total": len(records), "message": "Crime data reloaded"}


async def _service_error_handler(request: Request, exc: SafetyAnalyticsError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"Rejected {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _request_validation_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Invalid request body for {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={"error": "invalid_request", "message": "Request body could not be parsed"},
    )


async def _http_error_handler(request: Request, exc: StarletteHTTPException):
    reason = "not_found" if exc.status_code == 404 else "http_error"
    message = "Route not found" if exc.status_code == 404 else str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"error": reason, "message": message})


async def _unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "internal_error", "message": "Something went wrong"},
    )


def create_app(settings: Optional[Settings] = None, context: Optional[AppContext] = None) -> FastAPI:
    """Builds the FastAPI application with its own stores and services."""
    settings = settings or (context.settings if context else Settings.from_env())
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Women Safety Analytics Service",
        description="Receives SOS alerts, finds nearby users, streams alerts to dashboards via "
                    "Server-Sent Events (SSE) and serves crime zone data.",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.context = context or AppContext(settings=settings)

    app.middleware("http")(access_log_middleware)

    # Add the Rate Limiter middleware
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    app.add_exception_handler(SafetyAnalyticsError, _service_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    app.include_router(router)
    return app


app = create_app()


def run():
    """Console entry point: serve the application with uvicorn."""
    import uvicorn

    settings = app.state.context.settings
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
