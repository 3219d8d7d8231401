import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.orm import Session

from .config import settings
from .database import create_tables, get_db
from .errors import register_error_handlers
from .redis_client import redis_client
from .routers import availability, holds

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_tables()
    logger.info("Fieldbook API started")
    yield


app = FastAPI(title="Fieldbook Booking API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=86400,
)
register_error_handlers(app)

app.include_router(availability.router)
app.include_router(holds.router)


@app.get("/health")
def health(db: Session = Depends(get_db)):
    status = {"database": True, "redis": True}
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(f"Health: database unreachable: {e}")
        status["database"] = False
    try:
        redis_client.ping()
    except Exception as e:
        logger.warning(f"Health: redis unreachable: {e}")
        status["redis"] = False
    return {"ok": status["database"] and status["redis"], **status}
