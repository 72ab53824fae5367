from fastapi import APIRouter
from sqlalchemy import text

from ..logging_setup import get_logger
from ..store import get_session

logger = get_logger("concisely.routes.health")

router = APIRouter(tags=["Health"])

@router.get("/health")
def health():
    logger.debug("Health check invoked")
    return {"status": "ok"}

@router.get("/health/db")
def health_db():
    with get_session() as s:
        s.exec(text("SELECT 1"))
    return {"status": "ok", "db": "ok"}

@router.get("/")
def read_root():
    return {"status": "ok", "message": "Welcome to the Concisely API"}
