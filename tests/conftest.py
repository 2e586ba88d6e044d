"""Pytest configuration for booking engine tests."""

import json
import os
import sys
from pathlib import Path

import pytest

# Ensure project root is on PYTHONPATH
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

# core.database refuses to import without a URL; tests bind their own engine
os.environ.setdefault("DATABASE_URL", "sqlite://")
# keep storage on the local static dir
os.environ["R2_ACCOUNT_ID"] = ""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.database import Base
from core.errors import EmailDispatchFailure
from models.booking import Booking, Guest, Room, RoomType
from models.email_trigger import EmailTrigger
from models.notification import NotificationLibrary
from models.template import Template, Page, Section, Question, QuestionDependency, QaPair, SECTION_MODEL_PAGE
from services.section_sync import create_booking_sections
from utils.question_keys import QUESTION_KEYS


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    try:
        yield session
    finally:
        session.close()


class FormFixture:
    """A two-section booking form with a guest booking cloned from it."""

    def __init__(self, db):
        self.db = db
        self.template = Template(name="Booking Request Form", uuid="tpl-1")
        db.add(self.template)
        db.flush()
        self.page = Page(template_id=self.template.id, title="Your stay", order=1)
        db.add(self.page)
        db.flush()

        self.stay = self._section("Stay details", 1)
        self.funding = self._section("Funding", 2)

        self.q = {}
        self._question("dates", self.stay, "Check In Date and Check Out Date", QUESTION_KEYS.CHECK_IN_OUT_DATE, "date-range", required=True)
        self._question("rooms", self.stay, "Room Selection", QUESTION_KEYS.ROOM_SELECTION, "room", required=True)
        self._question("adults", self.stay, "Number of guests over the age of 16 (including person with the spinal cord injury)", QUESTION_KEYS.ADULTS_COUNT, "number", required=True)
        self._question("children", self.stay, "Number of children under the age of 16 staying.", QUESTION_KEYS.CHILDREN_COUNT, "number")
        self._question("infants", self.stay, "Number of Infants < 2 years staying.", QUESTION_KEYS.INFANTS_COUNT, "number")
        self._question("pets", self.stay, "Will you be bringing an assistance animal with you on your stay?", QUESTION_KEYS.ASSISTANCE_ANIMAL, "radio")
        self._question("late", self.stay, "Do you need to check in after 5PM?", QUESTION_KEYS.LATE_ARRIVAL, "radio")
        self._question("arrival_time", self.stay, "Expected Arrival Time (Check In is from 2pm)", QUESTION_KEYS.ARRIVAL_TIME, "time")
        self._question("funder", self.funding, "How will your stay be funded?", QUESTION_KEYS.FUNDING_SOURCE, "radio", required=True)
        self._question("coordinator", self.funding, "NDIS Support Coordinator Email Address", QUESTION_KEYS.NDIS_COORDINATOR_EMAIL, "email", required=True)
        self._question("coordinator_first", self.funding, "NDIS Support Coordinator First Name", QUESTION_KEYS.NDIS_COORDINATOR_FIRST_NAME, "text")
        self._question("coordinator_last", self.funding, "NDIS Support Coordinator Last Name", QUESTION_KEYS.NDIS_COORDINATOR_LAST_NAME, "text")
        self._question(
            "health", self.funding, "Do any of the following relate to you?", QUESTION_KEYS.HEALTH_CONDITIONS, "checkbox",
            options=[{"label": "Diabetes"}, {"label": "Epilepsy"}, {"label": "Hay fever"}],
        )
        db.flush()
        # the coordinator email is only asked of NDIS funded guests
        db.add(QuestionDependency(question_id=self.q["coordinator"].id, dependence_id=self.q["funder"].id, answer="NDIS"))

        self.studio = RoomType(name="Standard Studio Room", type="studio", price_per_night=450)
        self.deluxe = RoomType(name="Deluxe Suite", type="suite", price_per_night=650, bedrooms=2, bathrooms=2)
        self.ocean = RoomType(name="Ocean View Room", type="studio", price_per_night=550, ocean_view=1)
        db.add_all([self.studio, self.deluxe, self.ocean])

        self.guest = Guest(first_name="Jamie", last_name="Lee", email="jamie@example.com", phone_number="0400 000 000")
        db.add(self.guest)
        db.flush()
        self.booking = Booking(guest_id=self.guest.id, reference_id="SOC-1001")
        db.add(self.booking)
        db.commit()

        create_booking_sections(db, self.booking, self.template.id)
        self.db.refresh(self.booking)

    def _section(self, label, order):
        section = Section(model_type=SECTION_MODEL_PAGE, model_id=self.page.id, label=label, order=order)
        self.db.add(section)
        self.db.flush()
        return section

    def _question(self, name, section, text, key, qtype, required=False, options=None, order=None):
        question = Question(
            section_id=section.id,
            question=text,
            question_key=key,
            type=qtype,
            required=required,
            options=options or [],
            order=order if order is not None else len(self.q),
        )
        self.db.add(question)
        self.q[name] = question
        return question

    def booking_section(self, question):
        return next(s for s in self.booking.sections if s.orig_section_id == question.section_id)

    def answer(self, name, value, commit=True):
        question = self.q[name]
        if isinstance(value, (list, dict)):
            value = json.dumps(value)
        qa = QaPair(
            section_id=self.booking_section(question).id,
            question_id=question.id,
            question=question.question,
            question_type=question.type,
            answer=value,
        )
        self.db.add(qa)
        if commit:
            self.db.commit()
        return qa

    def answer_all_required(self, funder="Private"):
        self.answer("dates", "2025-03-01 - 2025-03-05", commit=False)
        self.answer("rooms", [{"name": "Standard Studio Room", "order": 1}], commit=False)
        self.answer("adults", "2", commit=False)
        self.answer("funder", funder)

    def add_room(self, order, room_type, **fields):
        room = Room(booking_id=self.booking.id, order=order, label=room_type.name, room_type_id=room_type.id, **fields)
        self.db.add(room)
        self.db.commit()
        return room

    def rooms(self):
        return self.db.query(Room).filter(Room.booking_id == self.booking.id).order_by(Room.order).all()

    def add_trigger(self, email_template, trigger_questions, recipient=None, type="internal", enabled=True):
        rule = EmailTrigger(
            email_template=email_template,
            trigger_questions=trigger_questions,
            recipient=recipient,
            type=type,
            enabled=enabled,
        )
        self.db.add(rule)
        self.db.commit()
        return rule

    def add_notification_template(self, text, date_factor=0, notification_to="admin"):
        entry = NotificationLibrary(name="booking", notification=text, date_factor=date_factor, notification_to=notification_to)
        self.db.add(entry)
        self.db.commit()
        return entry


@pytest.fixture
def form(db):
    return FormFixture(db)


class CapturingMailer:
    """Records send_templated_email calls instead of sending."""

    def __init__(self, fail_for=None):
        self.sent = []
        self.fail_for = set(fail_for or [])

    def __call__(self, recipient, subject, template_ref, data):
        if recipient in self.fail_for:
            raise EmailDispatchFailure(recipient, "transport refused message")
        self.sent.append({"recipient": recipient, "subject": subject, "template": template_ref, "data": data})

    def templates(self):
        return [m["template"] for m in self.sent]


@pytest.fixture
def mailer():
    return CapturingMailer()
