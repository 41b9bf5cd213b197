import os
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException
from sqlalchemy import text
from sqlalchemy.orm import Session

from adinsights import models  # noqa: F401 - register tables on Base
from adinsights.database import Base, get_db, get_engine
from adinsights.routes_insights import get_thresholds, router as insights_router

# Load environment variables
load_dotenv()

# Logging setup (structured-ish JSON)
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format='{"time":"%(asctime)s","level":"%(levelname)s","message":"%(message)s","module":"%(name)s"}',
)
logger = logging.getLogger(__name__)


def create_db_and_tables():
    try:
        logger.info("Connecting to database to create tables...")
        Base.metadata.create_all(bind=get_engine())
        logger.info("Tables created successfully.")
    except Exception as e:
        logger.error(f"Error creating tables: {e}")

    thresholds = get_thresholds()
    logger.info(f"Insight rules configured: {thresholds}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()
    yield


app = FastAPI(title="adinsights", lifespan=lifespan)
app.include_router(insights_router)


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=503, detail="Database unavailable")
    return {"status": "ok"}
