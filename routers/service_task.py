"""
Service Task Router
Entry point for queued background booking tasks
"""
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from core.config import logger
from core.database import get_db
from services.tasks import run_service_task

router = APIRouter(prefix="/api/bookings", tags=["bookings"])


class ServiceTaskRequest(BaseModel):
    type: str
    payload: Optional[dict] = None


@router.post("/service-task")
def service_task(data: ServiceTaskRequest, db: Session = Depends(get_db)):
    logger.info(f"[service-task] running background task: {data.type}")
    status_code, body = run_service_task(db, data.type, data.payload or {})
    return JSONResponse(body, status_code=status_code)
