import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from routers import amenities, reservations, slots
from app.config import load_settings
from app.db import SessionLocal, engine, init_db
from app.errors import ReservationError
from app.logging_config import setup_logging
from app.sweeper import ExpirySweeper

logger = logging.getLogger(__name__)

app = FastAPI(title="Amenity Reservation API", version="0.1.0")

app.include_router(amenities.router, prefix="/amenities", tags=["amenities"])
app.include_router(slots.router, prefix="/slots", tags=["slots"])
app.include_router(reservations.router, prefix="/reservations", tags=["reservations"])


@app.exception_handler(ReservationError)
async def reservation_error_handler(request: Request, exc: ReservationError):
    logger.info("%s %s rejected (%d): %s", request.method, request.url.path, exc.status_code, exc.message)
    content = {"detail": exc.message}
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


@app.on_event("startup")
def on_startup():
    settings = load_settings()
    setup_logging(settings.log_level, settings.log_file)
    app.state.sweeper = None
    if settings.skip_db_init:
        return
    init_db()

    if settings.sweeper_enabled:
        sweeper = ExpirySweeper(
            SessionLocal,
            interval_seconds=settings.sweep_interval_seconds,
            stale_after_hours=settings.stale_pending_hours,
        )
        # recover from any period the sweeper was not running
        try:
            sweeper.cleanup_stale()
        except Exception:
            logger.exception("Stale pending cleanup failed")
        sweeper.start()
        app.state.sweeper = sweeper


@app.on_event("shutdown")
def on_shutdown():
    sweeper = getattr(app.state, "sweeper", None)
    if sweeper is not None and not sweeper.stop():
        logger.warning("Leaving the database engine open for the unfinished sweep")
        return
    engine.dispose()


@app.get("/")
def root():
    return {"ok": True, "service": "amenity-reservation-api"}


@app.get("/health")
def health():
    sweeper = getattr(app.state, "sweeper", None)
    return {"ok": True, "sweeper_running": bool(sweeper and sweeper.running)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
