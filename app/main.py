import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

from app.api.routes_api import router as api_router
from app.core.config import get_settings
from app.core.database import create_db_and_tables

load_dotenv()

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


@asynccontextmanager
async def app_lifespan(app: FastAPI):
    """Application lifespan context manager."""
    if settings.key_value_store == "sql":
        create_db_and_tables()
    yield


# Initialize FastAPI with overarching lifespan
app = FastAPI(
    title="Bingearr",
    description="Watch Later and Watch History lists for a TMDB catalog",
    version="0.1.0",
    lifespan=app_lifespan,
)

# Include routers
app.include_router(api_router, prefix="/api")
