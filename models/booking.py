"""
Booking System Models
Guests, bookings, rooms and equipment - the normalized state projected from booking request form answers
"""
import copy
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Date, Boolean, Integer, Float, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
import uuid
import enum

from core.database import Base
from models.template import Section, SECTION_MODEL_BOOKING


class BookingStatus(str, enum.Enum):
    ENQUIRY = "enquiry"
    READY_TO_PROCESS = "ready_to_process"
    PENDING_APPROVAL = "pending_approval"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_AMENDED = "booking_amended"
    GUEST_CANCELLED = "guest_cancelled"
    BOOKING_CANCELLED = "booking_cancelled"


class BookingType(str, enum.Enum):
    FIRST_TIME_GUEST = "First Time Guest"
    RETURNING_GUEST = "Returning Guest"
    ENQUIRY = "Enquiry"


def _default_metainfo():
    return {
        "triggered_emails": {"on_submit": False, "on_booking_confirmed": False},
        "pdf_export": False,
        "notifications": False,
    }


def _default_status():
    return {"name": BookingStatus.ENQUIRY.value, "label": "Enquiry", "color": "gray"}


class Guest(Base):
    __tablename__ = "guests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True, index=True)
    phone_number = Column(String(50), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    bookings = relationship("Booking", back_populates="guest")

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def to_dict(self):
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone_number": self.phone_number,
        }


class Booking(Base):
    """
    Aggregate root of a stay request.
    metainfo is a bag of idempotency flags; flags only ever go false -> true.
    """
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(String(36), nullable=False, unique=True, index=True, default=lambda: str(uuid.uuid4()))
    reference_id = Column(String(32), nullable=True)
    guest_id = Column(Integer, ForeignKey("guests.id", ondelete="CASCADE"), nullable=False, index=True)

    type = Column(String(50), default=BookingType.FIRST_TIME_GUEST.value)
    complete = Column(Boolean, default=False)
    status = Column(JSON, default=_default_status)
    status_logs = Column(JSON, default=list)
    metainfo = Column(JSON, default=_default_metainfo)

    preferred_arrival_date = Column(Date, nullable=True)
    preferred_departure_date = Column(Date, nullable=True)
    late_arrival = Column(Boolean, default=False)
    alternate_contact_name = Column(String(255), nullable=True)
    alternate_contact_number = Column(String(50), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    guest = relationship("Guest", back_populates="bookings")
    rooms = relationship("Room", back_populates="booking", order_by="Room.order", cascade="all, delete-orphan")
    equipment_links = relationship("BookingEquipment", back_populates="booking", cascade="all, delete-orphan")
    sections = relationship(
        Section,
        primaryjoin=f"and_(Booking.id == foreign(Section.model_id), Section.model_type == '{SECTION_MODEL_BOOKING}')",
        order_by=[Section.order, Section.id],
        viewonly=True,
    )

    # --- status -----------------------------------------------------------

    @property
    def status_name(self) -> str:
        st = self.status or {}
        if isinstance(st, dict):
            return str(st.get("name") or "")
        return str(st)

    def set_status(self, name: str, label: str = None, color: str = None):
        new_status = {"name": name, "label": label or name.replace("_", " ").title(), "color": color or "gray"}
        logs = list(self.status_logs or [])
        logs.append({"status": new_status, "created_at": datetime.utcnow().isoformat()})
        self.status = new_status
        self.status_logs = logs

    # --- metainfo flags ---------------------------------------------------

    def get_metainfo(self) -> dict:
        meta = self.metainfo
        return dict(meta) if isinstance(meta, dict) else {}

    def flag(self, path: str) -> bool:
        """Read a dotted metainfo flag, missing keys read as False."""
        node = self.get_metainfo()
        for part in path.split("."):
            if not isinstance(node, dict):
                return False
            node = node.get(part)
        # a dict of nested flags is not itself a set flag
        return bool(node) and not isinstance(node, dict)

    def set_flag(self, path: str):
        """Set a dotted metainfo flag to True. Reassigns the column so the change is tracked."""
        meta = copy.deepcopy(self.get_metainfo())
        parts = path.split(".")
        node = meta
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = True
        self.metainfo = meta

    @property
    def qa_pairs(self):
        return [qa for section in self.sections for qa in section.qa_pairs]

    def to_dict(self):
        return {
            "id": self.id,
            "uuid": self.uuid,
            "reference_id": self.reference_id,
            "guest_id": self.guest_id,
            "type": self.type,
            "complete": bool(self.complete),
            "status": self.status or {},
            "metainfo": self.get_metainfo(),
            "preferred_arrival_date": self.preferred_arrival_date.isoformat() if self.preferred_arrival_date else None,
            "preferred_departure_date": self.preferred_departure_date.isoformat() if self.preferred_departure_date else None,
            "late_arrival": bool(self.late_arrival),
            "alternate_contact_name": self.alternate_contact_name,
            "alternate_contact_number": self.alternate_contact_number,
            "rooms": [r.to_dict() for r in self.rooms],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class RoomType(Base):
    __tablename__ = "room_types"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, unique=True)
    type = Column(String(50), nullable=True)
    price_per_night = Column(Float, default=0.0)
    bedrooms = Column(Integer, default=1)
    bathrooms = Column(Integer, default=1)
    ergonomic_king_beds = Column(Integer, default=0)
    king_single_beds = Column(Integer, default=0)
    queen_sofa_beds = Column(Integer, default=0)
    ocean_view = Column(Integer, default=0)
    max_guests = Column(Integer, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "price_per_night": self.price_per_night,
            "bedrooms": self.bedrooms,
            "bathrooms": self.bathrooms,
            "ergonomic_king_beds": self.ergonomic_king_beds,
            "king_single_beds": self.king_single_beds,
            "queen_sofa_beds": self.queen_sofa_beds,
            "ocean_view": bool(self.ocean_view),
            "max_guests": self.max_guests,
        }


class Room(Base):
    """Per-stay snapshot of one room slot; one row per (booking, order)"""
    __tablename__ = "rooms"
    __table_args__ = (
        UniqueConstraint("booking_id", "order", name="uq_rooms_booking_order"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    room_type_id = Column(Integer, ForeignKey("room_types.id", ondelete="SET NULL"), nullable=True)
    label = Column(String(255), nullable=True)
    order = Column(Integer, nullable=False, default=1)

    checkin = Column(Date, nullable=True)
    checkout = Column(Date, nullable=True)
    arrival_time = Column(String(50), nullable=True)
    infants = Column(Integer, default=0)
    children = Column(Integer, default=0)
    adults = Column(Integer, default=0)
    pets = Column(Integer, default=0)
    total_guests = Column(Integer, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    booking = relationship("Booking", back_populates="rooms")
    room_type = relationship("RoomType")

    def to_dict(self):
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "room_type_id": self.room_type_id,
            "label": self.label,
            "order": self.order,
            "checkin": self.checkin.isoformat() if self.checkin else None,
            "checkout": self.checkout.isoformat() if self.checkout else None,
            "arrival_time": self.arrival_time,
            "infants": self.infants or 0,
            "children": self.children or 0,
            "adults": self.adults or 0,
            "pets": self.pets or 0,
            "total_guests": self.total_guests or 0,
        }


class Equipment(Base):
    __tablename__ = "equipment"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    serial_number = Column(String(100), nullable=True)
    category = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)


class BookingEquipment(Base):
    __tablename__ = "booking_equipment"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    equipment_id = Column(Integer, ForeignKey("equipment.id", ondelete="CASCADE"), nullable=False, index=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)

    booking = relationship("Booking", back_populates="equipment_links")
    equipment = relationship("Equipment")
