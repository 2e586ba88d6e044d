"""
Questionnaire schema loading.

Bookings never store a template foreign key; the template is recovered by
following the first booking section's orig_section_id to its schema section,
then to the owning page and template.
"""
from typing import Iterator

from sqlalchemy.orm import Session, selectinload

from core.config import logger
from core.errors import SchemaNotFound
from models.template import Template, Page, Section, Question, QuestionDependency, SECTION_MODEL_PAGE
from models.booking import Booking


def load_template(db: Session, template_id: int) -> Template:
    """Template with pages, sections, questions and resolved dependencies, all in ascending order."""
    template = (
        db.query(Template)
        .options(
            selectinload(Template.pages)
            .selectinload(Page.sections)
            .selectinload(Section.questions)
            .selectinload(Question.dependencies)
            .selectinload(QuestionDependency.dependency)
        )
        .filter(Template.id == template_id)
        .first()
    )
    if template is None:
        raise SchemaNotFound(f"template {template_id} not found")
    return template


def resolve_template_id(db: Session, booking: Booking) -> int:
    sections = booking.sections
    if not sections:
        raise SchemaNotFound(f"booking {booking.uuid} has no sections")

    orig_id = sections[0].orig_section_id
    if orig_id is None:
        raise SchemaNotFound(f"booking {booking.uuid} first section has no origin section")

    schema_section = db.get(Section, orig_id)
    if schema_section is None or schema_section.model_type != SECTION_MODEL_PAGE:
        raise SchemaNotFound(f"schema section {orig_id} not found")

    page = db.get(Page, schema_section.model_id)
    if page is None:
        raise SchemaNotFound(f"page {schema_section.model_id} not found")
    return page.template_id


def resolve_booking_template(db: Session, booking: Booking) -> Template:
    template_id = resolve_template_id(db, booking)
    template = load_template(db, template_id)
    logger.debug(f"[schema] booking {booking.uuid} -> template {template.id}")
    return template


def iter_schema_sections(template: Template) -> Iterator[Section]:
    for page in template.pages:
        for section in page.sections:
            yield section


def iter_template_questions(template: Template) -> Iterator[Question]:
    for section in iter_schema_sections(template):
        for question in section.questions:
            yield question
