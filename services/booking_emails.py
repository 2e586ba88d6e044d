"""
Guest-facing booking emails outside the trigger rules:
amendment notices and the dates-of-stay reminder.
"""
from typing import Callable, Optional

from core.config import ADMIN_NOTIFICATIONS_EMAIL, EMAIL_SUBJECT_PREFIX, logger
from core.errors import EmailDispatchFailure
from models.booking import Booking, BookingStatus
from utils.answers import format_date
from utils.question_keys import get_check_in_out_answer


def _default_send_email():
    from utils.emailing import send_templated_email
    return send_templated_email


def _try_send(send_email: Callable, recipient: str, subject: str, template_ref: str, data: dict) -> bool:
    try:
        send_email(recipient, subject, template_ref, data)
        return True
    except EmailDispatchFailure as ex:
        logger.warning(f"[booking-email] {template_ref}: {ex}")
        return False
    except Exception as ex:
        logger.exception(f"[booking-email] {template_ref} to {recipient} failed: {ex}")
        return False


def send_booking_amended_emails(booking: Booking, send_email: Optional[Callable] = None) -> bool:
    """Tell the guest and the admin inbox that a confirmed booking was changed."""
    if booking.status_name != BookingStatus.BOOKING_AMENDED.value:
        return False
    send_email = send_email or _default_send_email()
    guest = booking.guest
    data = {
        "guest_name": guest.full_name if guest else "",
        "booking_uuid": booking.uuid,
        "reference_id": booking.reference_id,
    }
    subject = f"{EMAIL_SUBJECT_PREFIX} - Booking Amended"
    ok = True
    if guest and guest.email:
        ok = _try_send(send_email, guest.email, subject, "booking-amended", data) and ok
    if ADMIN_NOTIFICATIONS_EMAIL:
        ok = _try_send(send_email, ADMIN_NOTIFICATIONS_EMAIL, subject, "booking-amended-admin", data) and ok
    return ok


def send_dates_of_stay_email(booking: Booking, send_email: Optional[Callable] = None) -> bool:
    """Remind the guest of the dates they chose while the form is still incomplete."""
    guest = booking.guest
    if guest is None or not guest.email:
        logger.info(f"[booking-email] booking {booking.uuid} has no guest email, dates of stay not sent")
        return False
    pair = get_check_in_out_answer(booking.qa_pairs)
    if not pair:
        logger.info(f"[booking-email] booking {booking.uuid} has no stay dates yet")
        return False
    check_in = format_date(pair[0]) or pair[0]
    check_out = format_date(pair[1]) or pair[1]
    data = {
        "guest_name": guest.full_name,
        "dateOfStay": f"{check_in} - {check_out}",
        "booking_uuid": booking.uuid,
    }
    send_email = send_email or _default_send_email()
    return _try_send(send_email, guest.email, f"{EMAIL_SUBJECT_PREFIX} - Your Dates of Stay", "booking-notify-date-of-stay", data)
