from fastapi import FastAPI

from marketpulse.api import health, internal, listings, trends
from marketpulse.core.config import get_settings
from marketpulse.core.logging_config import setup_logging

setup_logging()
settings = get_settings()
app = FastAPI(title=settings.app_name, version="0.1.0", debug=settings.debug)

app.include_router(health.router)
app.include_router(listings.router)
app.include_router(trends.router)
app.include_router(internal.router)
