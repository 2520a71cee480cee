import logging
from typing import List

import uvicorn
from fastapi import APIRouter, BackgroundTasks, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .db import HistoryStore, UnavailableHistoryStore, open_history_store
from .exceptions import BadRequest, NotFound, StoreUnavailable, TrackerError
from .geoip import GeoLocator
from .ingest import ReportIngestor
from .registry import LiveRegistry
from .schemas import DeviceEntry, HealthOut, HistoryRowOut, ReportAck, ReportIn, ResetAck
from .settings import Settings, settings
from .utils import add_cors

log = logging.getLogger("tracker")
logging.basicConfig(level=settings.log_level)

router = APIRouter()

def _ingestor(request: Request) -> ReportIngestor:
    return request.app.state.ingestor

@router.post("/report", response_model=ReportAck)
async def report(body: ReportIn, request: Request, background: BackgroundTasks):
    ingestor = _ingestor(request)
    entry = ingestor.ingest(
        body,
        peer_host=request.client.host if request.client else None,
        forwarded_for=request.headers.get("x-forwarded-for"),
    )
    # geolocation is detached; the response never waits for it
    ingestor.schedule_enrichment(entry)
    # history write happens after the response; failures only reach the log
    background.add_task(ingestor.persist, entry)
    return ReportAck(device=entry)

@router.get("/devices", response_model=List[DeviceEntry])
def list_devices(request: Request):
    return _ingestor(request).registry.list_all()

@router.get("/devices/{device_id}", response_model=DeviceEntry)
def get_device(device_id: str, request: Request):
    return _ingestor(request).registry.get_by_id(device_id)

@router.get("/history", response_model=List[HistoryRowOut])
def history(request: Request):
    rows = _ingestor(request).store.query_all()
    return [HistoryRowOut.model_validate(r, from_attributes=True) for r in rows]

@router.post("/reset", response_model=ResetAck)
def reset(request: Request):
    cleared = _ingestor(request).registry.clear()
    return ResetAck(message="All live devices cleared (DB history preserved).", cleared=cleared)

@router.get("/health", response_model=HealthOut)
def health(request: Request):
    ingestor = _ingestor(request)
    try:
        rows = ingestor.store.count()
    except StoreUnavailable:
        rows = None
    return HealthOut(
        liveDevices=len(ingestor.registry),
        database="connected" if rows is not None else "unavailable",
        historyRows=rows,
    )

def _error_body(exc: TrackerError) -> dict:
    body = {"error": exc.message}
    if exc.details is not None:
        body["details"] = exc.details
    return body

def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFound)
    async def not_found(request: Request, exc: NotFound):
        return JSONResponse(_error_body(exc), status_code=404)

    @app.exception_handler(BadRequest)
    async def bad_request(request: Request, exc: BadRequest):
        return JSONResponse(_error_body(exc), status_code=400)

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        return JSONResponse(
            {"error": "Invalid request body", "details": jsonable_encoder(exc.errors())},
            status_code=400,
        )

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable(request: Request, exc: StoreUnavailable):
        return JSONResponse(_error_body(exc), status_code=503)

def create_app(
    config: Settings | None = None,
    store: HistoryStore | None = None,
    geolocator: GeoLocator | None = None,
) -> FastAPI:
    """Build the service. ``store`` and ``geolocator`` override what ``config`` selects."""
    config = config or settings
    app = FastAPI(title="Device Tracker API", version="0.1.0")
    add_cors(app, config.cors_origins)
    _install_error_handlers(app)
    app.include_router(router)

    ingestor = ReportIngestor(
        LiveRegistry(),
        store or UnavailableHistoryStore("not started"),
        geolocator,
        trust_proxy=config.trust_proxy,
    )
    app.state.ingestor = ingestor

    @app.on_event("startup")
    async def on_startup():
        if store is None:
            ingestor.store = open_history_store(config)
        if ingestor.geolocator is None and config.geoip_enabled:
            ingestor.geolocator = GeoLocator(
                config.geoip_url, config.geoip_fields, timeout=config.geoip_timeout
            )
        log.info(
            "tracker ready: history=%s geoip=%s",
            "connected" if ingestor.store.available else "unavailable",
            "on" if ingestor.geolocator is not None else "off",
        )

    @app.on_event("shutdown")
    async def on_shutdown():
        await ingestor.drain()
        if ingestor.geolocator is not None:
            await ingestor.geolocator.close()
        if store is None:
            ingestor.store.close()

    return app

app = create_app()

def run() -> None:
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())

if __name__ == "__main__":
    run()
