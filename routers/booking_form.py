"""
Booking Request Form Router
Questionnaire loading, answer saving and section checks for guest bookings
"""
from typing import Any, List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from core.config import logger
from core.database import get_db
from core.errors import SchemaNotFound
from models.booking import Booking
from services.booking_updates import apply_submission, save_qa_pairs
from services.completion import evaluate_completion
from services.schema import resolve_booking_template
from services.section_sync import sync_sections
from services import tasks

router = APIRouter(prefix="/api/booking-request-form", tags=["booking-request-form"])


# ============ Pydantic Models ============

class QaPairIn(BaseModel):
    id: Optional[int] = None
    section_id: int
    question_id: Optional[int] = None
    question_key: Optional[str] = None
    question: Optional[str] = None
    question_type: Optional[str] = None
    label: Optional[str] = None
    answer: Any = None
    submit: Optional[bool] = None
    dirty: Optional[bool] = None
    old_answer: Any = None
    delete: Optional[bool] = None


class SaveFlags(BaseModel):
    booking_uuid: str
    origin: Optional[str] = None


class SaveQaPairsRequest(BaseModel):
    qa_pairs: List[QaPairIn]
    flags: SaveFlags


class CheckSectionRequest(BaseModel):
    booking_id: int


# ============ Endpoints ============

@router.get("/{booking_uuid}")
def get_booking_form(booking_uuid: str, db: Session = Depends(get_db)):
    """Sync the booking's sections, then return its template, answers and completion state"""
    booking = db.query(Booking).filter(Booking.uuid == booking_uuid).first()
    if booking is None:
        return JSONResponse({"error": "Booking not found"}, status_code=404)

    if not sync_sections(db, booking.id):
        logger.warning(f"[booking-form] section sync failed for {booking_uuid}, serving existing sections")
    db.refresh(booking)

    try:
        template = resolve_booking_template(db, booking)
        completion = evaluate_completion(db, booking_uuid, booking=booking)
    except SchemaNotFound as ex:
        return JSONResponse({"error": str(ex)}, status_code=404)

    return {
        "booking": booking.to_dict(),
        "template": template.to_dict(),
        "sections": [s.to_dict() for s in booking.sections],
        "complete": completion.complete,
        "missing_question_ids": completion.missing_question_ids,
    }


@router.post("/save-qa-pair")
def save_qa_pair(data: SaveQaPairsRequest, db: Session = Depends(get_db)):
    """Save a batch of answers, then run the booking lifecycle for it"""
    booking = db.query(Booking).filter(Booking.uuid == data.flags.booking_uuid).first()
    if booking is None:
        return JSONResponse(
            {"success": False, "error": "bookingId was not found or null"},
            status_code=400,
        )

    records = [qa.dict() for qa in data.qa_pairs]
    try:
        saved = save_qa_pairs(db, booking, records)
    except Exception as ex:
        logger.error(f"[booking-form] save-qa-pair failed for {booking.uuid}: {ex}")
        return JSONResponse({"success": False, "error": str(ex)}, status_code=500)

    try:
        result = apply_submission(db, booking, records, saved, origin=data.flags.origin, dispatch=tasks.dispatch_task)
    except SchemaNotFound as ex:
        return JSONResponse({"success": False, "error": str(ex)}, status_code=404)

    return JSONResponse({"success": True, **result.to_dict()}, status_code=201)


@router.post("/check-booking-section")
def check_booking_section(data: CheckSectionRequest, db: Session = Depends(get_db)):
    """Add any template sections the booking is missing"""
    if db.get(Booking, data.booking_id) is None:
        return JSONResponse({"success": False, "message": "Booking not found"}, status_code=404)
    if not sync_sections(db, data.booking_id):
        return JSONResponse({"success": False, "message": "Section sync failed"}, status_code=500)
    return JSONResponse({"success": True}, status_code=201)
