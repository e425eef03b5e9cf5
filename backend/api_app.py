"""FastAPI application entrypoint.

This file exposes the garage check-in / check-out core over HTTP.

Run locally with:
    uvicorn api_app:app --reload

The store backend, database URL and CORS origins come from `PARKING_*`
environment variables (see core/config.py).
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import get_settings
from core.logging_config import configure_logging
from db.database import init_db
from db.deps import get_parking_manager
from generator.garage_layout import seed_garage
from parking_api.parking_router import install_error_handlers
from parking_api.parking_router import router as parking_router

settings = get_settings()
configure_logging(settings.log_level)
log = logging.getLogger(__name__)

app = FastAPI(title="Parking garage")

# Enable CORS for frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)
app.include_router(parking_router)


@app.on_event("startup")
def _startup() -> None:
    if settings.store_backend == "sql":
        # Ensure the DB file + tables exist before serving requests.
        init_db()

    if settings.demo_garage_id:
        manager = get_parking_manager()
        if manager.spots.list_spots(settings.demo_garage_id):
            log.info("Demo garage %s already has spots; not seeding", settings.demo_garage_id)
        else:
            seed_garage(manager.spots, settings.demo_garage_id)
