import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .api.routes import bookings, slots, time_slots
from .db.session import Base, engine
from .config import get_settings
from .workers.scheduler import get_scheduler

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="EV Charging Booking API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(bookings.router, prefix="/api/v1")
app.include_router(slots.router, prefix="/api/v1")
app.include_router(time_slots.router, prefix="/api/v1")

scheduler = None


@app.on_event("startup")
async def startup_event() -> None:
    global scheduler
    Base.metadata.create_all(bind=engine)
    settings = get_settings()
    if settings.scheduler_enabled:
        scheduler = get_scheduler()
        scheduler.start()
        logger.info("Time slot scheduler started", extra={"timezone": settings.timezone})


@app.on_event("shutdown")
async def shutdown_event() -> None:
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
