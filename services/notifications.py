"""In-app notifications created once when a booking is completed"""
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from core.config import APP_URL, logger
from models.booking import Booking
from models.notification import Notification, NotificationLibrary

NOTIFICATIONS_FLAG = "notifications"


def _arrival_date(booking: Booking) -> str:
    rooms = booking.rooms or []
    checkin = rooms[0].checkin if rooms else None
    if checkin is None:
        checkin = booking.preferred_arrival_date
    return checkin.strftime("%d/%m/%Y") if checkin else ""


def render_notification(text: str, booking: Booking) -> str:
    guest_name = booking.guest.full_name if booking.guest else ""
    return (text or "").replace("[guest_name]", guest_name).replace("[arrival_date]", _arrival_date(booking))


def generate_notifications(db: Session, booking: Booking) -> list:
    """One Notification per enabled library entry; no-op once the booking's flag is set."""
    if booking.flag(NOTIFICATIONS_FLAG):
        return []

    now = datetime.utcnow()
    created = []
    for entry in db.query(NotificationLibrary).filter(NotificationLibrary.enabled.is_(True)).order_by(NotificationLibrary.id).all():
        note = Notification(
            notification_to=entry.notification_to,
            message=render_notification(entry.notification, booking),
            link=f"{APP_URL}/bookings/{booking.uuid}",
            dispatch_date=now + timedelta(days=entry.date_factor or 0),
        )
        db.add(note)
        created.append(note)

    booking.set_flag(NOTIFICATIONS_FLAG)
    db.commit()
    logger.info(f"[notifications] booking {booking.uuid}: {len(created)} notification(s) created")
    return created
