"""
Background booking tasks.

run_service_task() executes one task against a booking and returns
(status_code, body) for the service-task endpoint. Each task that must only
happen once reads its metainfo flag first and sets it only after a pass with
no failures. dispatch_task() runs a task on a daemon thread with its own
session so HTTP handlers never wait on outbound email.
"""
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple

from sqlalchemy.orm import Session

from core.config import PDF_EXPORT_COOLDOWN_SEC, logger
from core.database import SessionLocal
from models.booking import Booking
from services.booking_emails import send_booking_amended_emails, send_dates_of_stay_email
from services.dissemination import disseminate_changes
from services.pdf_export import generate_pdf_export
from services.triggers import (
    EVENT_ON_BOOKING_CONFIRMED,
    EVENT_ON_SUBMIT,
    EVENT_TRIGGER_EMAILS,
    evaluate_email_triggers,
    run_trigger_pass,
    send_trigger_email,
)

TASK_DISSEMINATE = "disseminateChanges"
TASK_TRIGGER_EMAILS = "triggerEmails"
TASK_TRIGGER_ON_SUBMIT = "triggerEmailsOnSubmit"
TASK_TRIGGER_ON_CONFIRMED = "triggerEmailsOnBookingConfirmed"
TASK_PDF_EXPORT = "generatePDFExport"
TASK_EVALUATE_TRIGGERS = "evaluateEmailTriggers"
TASK_SEND_TRIGGER_EMAIL = "sendTriggerEmail"
TASK_DATES_OF_STAY = "sendDatesOfStayEmail"
TASK_BOOKING_AMENDED = "sendBookingAmendedEmails"

# task type -> (trigger event, metainfo flag)
_TRIGGER_TASKS = {
    TASK_TRIGGER_EMAILS: (EVENT_TRIGGER_EMAILS, "triggered_emails.legacy"),
    TASK_TRIGGER_ON_SUBMIT: (EVENT_ON_SUBMIT, "triggered_emails.on_submit"),
    TASK_TRIGGER_ON_CONFIRMED: (EVENT_ON_BOOKING_CONFIRMED, "triggered_emails.on_booking_confirmed"),
}

TASK_TYPES = {
    TASK_DISSEMINATE,
    TASK_PDF_EXPORT,
    TASK_EVALUATE_TRIGGERS,
    TASK_SEND_TRIGGER_EMAIL,
    TASK_DATES_OF_STAY,
    TASK_BOOKING_AMENDED,
    *_TRIGGER_TASKS.keys(),
}

PDF_EXPORT_FLAG = "pdf_export"
DATES_OF_STAY_FLAG = "sendDatesOfStayEmail.sent"


def _done(message: str) -> Tuple[int, dict]:
    return 200, {"success": False, "message": message}


def _mark(db: Session, booking: Booking, flag: str):
    booking.set_flag(flag)
    booking.updated_at = datetime.utcnow()
    db.commit()


def _run_trigger_task(db: Session, booking: Booking, task_type: str, send_email) -> Tuple[int, dict]:
    event, flag = _TRIGGER_TASKS[task_type]
    if booking.flag(flag):
        return _done("Emails already triggered")

    result = run_trigger_pass(db, booking, event, send_email=send_email)
    if result is None or result.failed:
        logger.warning(f"[tasks] {task_type} for booking {booking.uuid} not marked: {result.to_dict() if result else 'incomplete'}")
        return 400, {"success": False, "message": "Error triggering emails", "result": result.to_dict() if result else None}

    _mark(db, booking, flag)
    return 201, {"success": True, "result": result.to_dict()}


def _run_pdf_export(db: Session, booking: Booking, render=None, upload=None) -> Tuple[int, dict]:
    if booking.flag(PDF_EXPORT_FLAG) and booking.updated_at:
        if datetime.utcnow() <= booking.updated_at + timedelta(seconds=PDF_EXPORT_COOLDOWN_SEC):
            return _done("PDF already exported, try again in some time")

    if generate_pdf_export(db, booking, render=render, upload=upload):
        _mark(db, booking, PDF_EXPORT_FLAG)
    return 201, {"success": True}


def _run_dates_of_stay(db: Session, booking: Booking, send_email) -> Tuple[int, dict]:
    if booking.flag(DATES_OF_STAY_FLAG):
        return _done("Dates of Stay Email already sent")
    if booking.complete:
        return _done("Booking is complete, not sending Dates of Stay Email")

    if not send_dates_of_stay_email(booking, send_email=send_email):
        return 400, {"success": False, "message": "Error triggering sendDatesOfStayEmail"}
    _mark(db, booking, DATES_OF_STAY_FLAG)
    return 201, {"success": True}


def run_service_task(db: Session, task_type: str, payload: Optional[dict],
                     send_email: Optional[Callable] = None,
                     copy_if_absent: Optional[Callable] = None,
                     render=None, upload=None) -> Tuple[int, dict]:
    payload = payload or {}
    if task_type not in TASK_TYPES:
        return 400, {"success": False, "message": f"Unknown task type '{task_type}'"}

    if task_type == TASK_SEND_TRIGGER_EMAIL:
        outcome = send_trigger_email(
            payload.get("recipient"),
            payload.get("templateId") or payload.get("template_ref"),
            payload.get("emailData") or payload.get("data") or {},
            subject=payload.get("subject"),
            send_email=send_email,
        )
        if outcome.status != "sent":
            return 400, {"success": False, "message": outcome.reason}
        return 200, {"success": True, "message": f"Email sent to {outcome.recipient}"}

    booking = db.query(Booking).filter(Booking.id == payload.get("booking_id")).first()
    if booking is None:
        return 404, {"success": False, "message": "Booking not found"}

    logger.info(f"[tasks] running {task_type} for booking {booking.uuid}")

    if task_type == TASK_DISSEMINATE:
        qa_pairs = payload.get("data") or booking.qa_pairs
        result = disseminate_changes(db, booking, qa_pairs, copy_if_absent=copy_if_absent)
        return 201, {"success": True, "result": result.to_dict()}

    if task_type in _TRIGGER_TASKS:
        return _run_trigger_task(db, booking, task_type, send_email)

    if task_type == TASK_PDF_EXPORT:
        return _run_pdf_export(db, booking, render=render, upload=upload)

    if task_type == TASK_DATES_OF_STAY:
        return _run_dates_of_stay(db, booking, send_email)

    if task_type == TASK_BOOKING_AMENDED:
        if not send_booking_amended_emails(booking, send_email=send_email):
            return 400, {"success": False, "message": "Error sending amendment emails"}
        return 201, {"success": True}

    result = evaluate_email_triggers(db, booking, trigger_type=payload.get("trigger_type"), send_email=send_email)
    return 200, {"success": True, "result": result.to_dict()}


def _run_in_background(task_type: str, payload: dict):
    db = SessionLocal()
    try:
        status, body = run_service_task(db, task_type, payload)
        logger.info(f"[tasks] {task_type} finished with {status}: {body.get('message') or body.get('success')}")
    except Exception as ex:
        db.rollback()
        logger.exception(f"[tasks] {task_type} failed: {ex}")
    finally:
        db.close()


def dispatch_task(task_type: str, payload: dict) -> threading.Thread:
    """Fire-and-forget: the caller does not wait for the task."""
    thread = threading.Thread(target=_run_in_background, args=(task_type, payload))
    thread.daemon = True
    thread.start()
    return thread
