"""
Dissemination of booking answers into normalized state.

Answers are projected in two phases. build_projection() reads the answer
batch (keyed by question_key) into a plain Projection, recording a failure
per field mapping without stopping the others. apply_projection() then writes
booking fields, equipment dates and rooms in one transaction. Guest uploads
are relocated last, one file at a time.

Running it again with the same answers leaves the same rows behind.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Optional

from sqlalchemy.orm import Session

from core.config import logger
from core.errors import DisseminationPartialFailure
from models.booking import Booking, BookingEquipment, Room, RoomType
from utils import storage
from utils.answers import decode_boolean, decode_list, is_answered, parse_date, parse_int
from utils.question_keys import (
    QUESTION_KEYS,
    UPLOAD_QUESTION_KEYS,
    find_by_question_key,
    find_multiple_by_question_keys,
    get_answer_by_question_key,
    get_check_in_out_answer,
)

_ROOM_COUNT_FIELDS = ("infants", "children", "adults", "pets")


@dataclass
class RoomSlot:
    order: int
    label: str
    room_type_id: int


@dataclass
class Projection:
    slots: Optional[list] = None  # None when no room selection was submitted
    selected_count: int = 0
    room_fields: dict = field(default_factory=dict)
    arrival: Optional[date] = None
    departure: Optional[date] = None
    late_arrival: Optional[bool] = None
    uploads: list = field(default_factory=list)
    failures: list = field(default_factory=list)


@dataclass
class DisseminationResult:
    rooms_written: list = field(default_factory=list)
    rooms_deleted: list = field(default_factory=list)
    uploads_copied: list = field(default_factory=list)
    failures: list = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self):
        return {
            "rooms_written": self.rooms_written,
            "rooms_deleted": self.rooms_deleted,
            "uploads_copied": self.uploads_copied,
            "failures": [str(f) for f in self.failures],
        }


def _run_step(projection: Projection, step: str, fn):
    try:
        fn()
    except Exception as ex:
        failure = ex if isinstance(ex, DisseminationPartialFailure) else DisseminationPartialFailure(step, str(ex))
        projection.failures.append(failure)
        logger.warning(f"[disseminate] {failure}")


def build_projection(db: Session, qa_pairs: list) -> Projection:
    projection = Projection()

    def _rooms():
        qa = find_by_question_key(qa_pairs, QUESTION_KEYS.ROOM_SELECTION)
        if qa is None:
            return
        selected = decode_list(qa.answer if not isinstance(qa, dict) else qa.get("answer"))
        projection.slots = []
        projection.selected_count = len(selected)
        for idx, item in enumerate(selected, start=1):
            name = item.get("name") if isinstance(item, dict) else item
            order = parse_int(item.get("order"), default=idx) if isinstance(item, dict) else idx
            room_type = db.query(RoomType).filter(RoomType.name == name).first() if name else None
            if room_type is None:
                # slot left as is; the other rooms still apply
                projection.failures.append(DisseminationPartialFailure("room_selection", f"unknown room type '{name}'"))
                logger.warning(f"[disseminate] room type '{name}' not found, slot {order} skipped")
                continue
            projection.slots.append(RoomSlot(order=order, label=room_type.name, room_type_id=room_type.id))

    def _dates():
        pair = get_check_in_out_answer(qa_pairs)
        if not pair:
            return
        arrival, departure = parse_date(pair[0]), parse_date(pair[1])
        if arrival is None or departure is None:
            raise DisseminationPartialFailure("stay_dates", f"unparseable dates {pair!r}")
        projection.arrival, projection.departure = arrival, departure
        projection.room_fields["checkin"] = arrival
        projection.room_fields["checkout"] = departure

    def _late_arrival():
        qa = find_by_question_key(qa_pairs, QUESTION_KEYS.LATE_ARRIVAL)
        if qa is not None:
            projection.late_arrival = decode_boolean(qa.get("answer") if isinstance(qa, dict) else qa.answer)

    def _arrival_time():
        answer = get_answer_by_question_key(qa_pairs, QUESTION_KEYS.ARRIVAL_TIME)
        if is_answered(answer):
            projection.room_fields["arrival_time"] = str(answer)

    def _counts():
        for key, name in (
            (QUESTION_KEYS.INFANTS_COUNT, "infants"),
            (QUESTION_KEYS.CHILDREN_COUNT, "children"),
            (QUESTION_KEYS.ADULTS_COUNT, "adults"),
        ):
            answer = get_answer_by_question_key(qa_pairs, key)
            if is_answered(answer):
                value = parse_int(answer, default=None)
                if value is None:
                    projection.failures.append(DisseminationPartialFailure(name, f"not a number: {answer!r}"))
                    continue
                projection.room_fields[name] = value
        pets = get_answer_by_question_key(qa_pairs, QUESTION_KEYS.ASSISTANCE_ANIMAL)
        if is_answered(pets):
            projection.room_fields["pets"] = 1 if decode_boolean(pets) else 0

    def _uploads():
        for qa in find_multiple_by_question_keys(qa_pairs, UPLOAD_QUESTION_KEYS):
            raw = qa.get("answer") if isinstance(qa, dict) else qa.answer
            for filename in decode_list(raw):
                if isinstance(filename, str) and filename.strip():
                    projection.uploads.append(filename.strip())

    _run_step(projection, "room_selection", _rooms)
    _run_step(projection, "stay_dates", _dates)
    _run_step(projection, "late_arrival", _late_arrival)
    _run_step(projection, "arrival_time", _arrival_time)
    _run_step(projection, "occupancy", _counts)
    _run_step(projection, "uploads", _uploads)
    return projection


def _apply_room_fields(room: Room, fields: dict):
    for name, value in fields.items():
        setattr(room, name, value)
    room.total_guests = sum(int(getattr(room, f) or 0) for f in _ROOM_COUNT_FIELDS)


def apply_projection(db: Session, booking: Booking, projection: Projection, result: DisseminationResult):
    """Booking fields, equipment dates and the room set, all or nothing."""
    try:
        if projection.arrival and projection.departure:
            booking.preferred_arrival_date = projection.arrival
            booking.preferred_departure_date = projection.departure
            links = db.query(BookingEquipment).filter(BookingEquipment.booking_id == booking.id).all()
            for link in links:
                if not link.start_date and not link.end_date:
                    link.start_date = projection.arrival
                    link.end_date = projection.departure

        if projection.late_arrival is not None:
            booking.late_arrival = projection.late_arrival

        existing = {r.order: r for r in db.query(Room).filter(Room.booking_id == booking.id).all()}
        written = []
        if projection.slots is None:
            # No selection in this batch: the answers apply to the rooms already on the booking
            for room in existing.values():
                _apply_room_fields(room, projection.room_fields)
                written.append(room)
        else:
            for slot in projection.slots:
                room = existing.get(slot.order)
                if room is None:
                    room = Room(booking_id=booking.id, order=slot.order, infants=0, children=0, adults=0, pets=0)
                    db.add(room)
                    existing[slot.order] = room
                room.label = slot.label
                room.room_type_id = slot.room_type_id
                _apply_room_fields(room, projection.room_fields)
                written.append(room)

            for order, room in list(existing.items()):
                if order > projection.selected_count:
                    db.delete(room)
                    result.rooms_deleted.append(order)

        written_orders = sorted(r.order for r in written if r.order not in result.rooms_deleted)
        db.commit()
        result.rooms_written = written_orders
    except Exception as ex:
        db.rollback()
        failure = DisseminationPartialFailure("rooms", str(ex))
        result.failures.append(failure)
        logger.exception(f"[disseminate] booking {booking.uuid}: {failure}")


def relocate_uploads(guest_id: int, filenames: list, result: DisseminationResult,
                     copy_if_absent: Optional[Callable[[str, str], str]] = None):
    """Copy draft uploads to the guest's documents folder unless already there."""
    copy_if_absent = copy_if_absent or storage.copy_if_absent
    for filename in filenames:
        src = f"booking_request_form/{guest_id}/{filename}"
        dst = f"guests/{guest_id}/documents/{filename}"
        try:
            outcome = copy_if_absent(src, dst)
        except Exception as ex:
            outcome = "failed"
            logger.warning(f"[disseminate] copy {src} failed: {ex}")
        if outcome == "copied":
            result.uploads_copied.append(dst)
        elif outcome == "failed":
            result.failures.append(DisseminationPartialFailure("uploads", f"could not copy {src}"))


def disseminate_changes(db: Session, booking: Booking, qa_pairs: list,
                        copy_if_absent: Optional[Callable[[str, str], str]] = None) -> DisseminationResult:
    logger.info(f"[disseminate] booking {booking.uuid}: {len(qa_pairs)} answer(s)")
    result = DisseminationResult()
    projection = build_projection(db, qa_pairs)
    result.failures.extend(projection.failures)

    apply_projection(db, booking, projection, result)

    if projection.uploads:
        relocate_uploads(booking.guest_id, projection.uploads, result, copy_if_absent=copy_if_absent)

    if result.failures:
        logger.warning(f"[disseminate] booking {booking.uuid}: {len(result.failures)} step(s) failed")
    return result
