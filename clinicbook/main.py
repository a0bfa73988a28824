"""Scheduling API entry point.

Run with:
    uvicorn clinicbook.main:app --reload

Or:
    python -m clinicbook.main
"""

import logging
import os
from contextlib import asynccontextmanager

from clinicbook.api.app import create_app
from clinicbook.config import DATABASE_PATH, configure_logging
from clinicbook.service import build_service
from clinicbook.storage import SQLiteAppointmentStore, shutdown_executor

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app):
    """Close the database and the shared executor on shutdown."""
    logger.info(f"✅ Scheduling API ready: {DATABASE_PATH}")

    yield

    store = app.state.service.store
    if isinstance(store, SQLiteAppointmentStore):
        store.close()
        logger.info("✅ Database closed")
    shutdown_executor()


configure_logging()

# Create app with lifespan
app = create_app(build_service())
app.router.lifespan_context = lifespan


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "clinicbook.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
    )
