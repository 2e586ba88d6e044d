"""
Booking PDF export.

Renders the completed booking to EXPORT_TEMP_DIR, uploads it to
exports/<uuid>.pdf in the restricted bucket and removes the local copy.
"""
import os
from typing import Callable, Optional

from sqlalchemy.orm import Session

from core.config import APP_URL, EXPORT_TEMP_DIR, logger
from models.booking import Booking
from services.completion import is_booking_complete
from utils.answers import decode_list, format_date, parse_and_concatenate
from utils.booking_pdf import render_pdf
from utils.packages import serialize_package
from utils.question_keys import QUESTION_KEYS
from utils.storage import upload_file

EXPORT_HEADER_TEMPLATE = "exports/booking_header.txt"


def _equipment_lines(booking: Booking) -> list:
    lines = []
    for link in booking.equipment_links or []:
        eq = link.equipment
        if eq is not None:
            lines.append(f"{eq.name} - {eq.serial_number or 'N/A'}")
    return lines


def build_export_data(booking: Booking) -> dict:
    guest = booking.guest
    rooms = booking.rooms or []
    room = rooms[0] if rooms else None
    room_type = room.room_type if room is not None else None

    data = {
        "app_url": APP_URL,
        "booking_uuid": booking.uuid,
        "reference_id": booking.reference_id,
        "guest_name": guest.full_name if guest else "",
        "guest_email": guest.email if guest else None,
        "guest_phone": guest.phone_number if guest else None,
        "alternate_contact_name": booking.alternate_contact_name,
        "alternate_contact_phone": booking.alternate_contact_number,
        "checkin_date": format_date(room.checkin) if room is not None else None,
        "checkout_date": format_date(room.checkout) if room is not None else None,
        "arrival_time": room.arrival_time if room is not None else None,
        "total_guests": room.total_guests if room is not None else None,
        "adults": room.adults if room is not None else None,
        "children": room.children if room is not None else None,
        "infants": room.infants if room is not None else None,
        "pets": room.pets if room is not None else None,
        "room_label": room.label if room is not None else None,
        "bedrooms": room_type.bedrooms if room_type is not None else None,
        "bathrooms": room_type.bathrooms if room_type is not None else None,
        "ocean_view": bool(room_type.ocean_view) if room_type is not None else False,
        "package": None,
        "course": None,
        "healthinfo": [],
        "healthinfo_updated_date": None,
        "sections": [],
    }

    equipment = ", ".join(_equipment_lines(booking))
    for section in booking.sections:
        questions = []
        for qa in section.qa_pairs:
            if not qa.answer:
                continue
            if qa.question_type == "equipment":
                answer = equipment
            else:
                answer = parse_and_concatenate(qa.answer, qa.question_type or "")
            questions.append({"label": qa.label, "question": qa.question, "answer": answer})

            key = qa.question_key
            if key in (QUESTION_KEYS.ACCOMMODATION_PACKAGE_COURSES, QUESTION_KEYS.ACCOMMODATION_PACKAGE_FULL):
                data["package"] = answer
            elif key == QUESTION_KEYS.COURSE_SELECTION:
                data["course"] = answer
            elif key == QUESTION_KEYS.HEALTH_CONDITIONS:
                selected = decode_list(qa.answer)
                options = qa.question_ref.options if qa.question_ref is not None else []
                data["healthinfo"] = [
                    {"diagnose": opt.get("label") if isinstance(opt, dict) else opt,
                     "answer": (opt.get("label") if isinstance(opt, dict) else opt) in selected}
                    for opt in (options or [])
                ]
                data["healthinfo_updated_date"] = format_date(qa.updated_at)
        data["sections"].append({"label": section.label, "questions": questions})

    code = serialize_package(data["package"])
    data["package_course_code"] = f"Course{code}" if data["course"] else code
    return data


def generate_pdf_export(db: Session, booking: Booking,
                        render: Optional[Callable] = None,
                        upload: Optional[Callable] = None) -> bool:
    """False when the booking is not complete; otherwise the export is uploaded."""
    if not is_booking_complete(db, booking.uuid):
        logger.info(f"[pdf] booking {booking.uuid} incomplete, export skipped")
        return False
    render = render or render_pdf
    upload = upload or upload_file

    data = build_export_data(booking)
    local_path = os.path.join(EXPORT_TEMP_DIR, f"{booking.uuid}.pdf")
    render(EXPORT_HEADER_TEMPLATE, data, local_path)
    try:
        upload(local_path, f"exports/{booking.uuid}.pdf")
    finally:
        try:
            if os.path.exists(local_path):
                os.remove(local_path)
        except OSError as ex:
            logger.warning(f"[pdf] could not remove {local_path}: {ex}")
    logger.info(f"[pdf] booking {booking.uuid} exported")
    return True
