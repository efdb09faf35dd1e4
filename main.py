"""
Carpool Ride & Booking Backend
==============================

Entry point for the HTTP API.  The expiry / reminder sweeper runs inside
the same process (see ``src.workers.sweeper``).

    uvicorn main:app --reload
"""

import uvicorn

from src.api.app import create_app
from src.config import settings

app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
        reload=settings.debug,
    )
