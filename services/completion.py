"""
Booking completion evaluation.

A booking is complete when every required and applicable template question
has a non-empty answer. A question with dependencies is applicable when any
one of its dependency targets was answered with the expected value; when
none is met the question is not required yet.
"""
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.orm import Session

from core.config import logger
from models.booking import Booking
from models.template import Question
from services.schema import resolve_booking_template, iter_template_questions
from utils.answers import is_answered, answer_matches
from utils.question_keys import QUESTION_KEYS, is_ndis_funder


@dataclass
class CompletionResult:
    complete: bool
    required_question_ids: list = field(default_factory=list)
    missing_question_ids: list = field(default_factory=list)
    missing_questions: list = field(default_factory=list)

    def to_dict(self):
        return {
            "complete": self.complete,
            "required_count": len(self.required_question_ids),
            "missing_question_ids": self.missing_question_ids,
            "missing_questions": self.missing_questions,
        }


def _is_applicable(question: Question, answers_by_question: dict) -> bool:
    if not question.dependencies:
        return True
    for dep in question.dependencies:
        raw = answers_by_question.get(dep.dependence_id)
        if raw is not None and is_answered(raw) and answer_matches(raw, dep.answer):
            return True
    return False


def required_questions(questions, qa_pairs) -> list:
    """Filter template questions down to the ones that must be answered for this answer set."""
    answers_by_question = {}
    for qa in qa_pairs:
        if qa.question_id is not None and qa.question_id not in answers_by_question:
            answers_by_question[qa.question_id] = qa.answer

    ndis = is_ndis_funder(qa_pairs)
    out = []
    for q in questions:
        if q.type == "equipment" or not q.required:
            continue
        if q.second_booking_only or q.ndis_only:
            continue
        if ndis and q.type == "radio" and q.question_key == QUESTION_KEYS.ACCOMMODATION_PACKAGE_FULL:
            continue
        if _is_applicable(q, answers_by_question):
            out.append(q)
    return out


def evaluate_completion(db: Session, booking_uuid: str, booking: Optional[Booking] = None) -> CompletionResult:
    """Raises SchemaNotFound when the booking's template chain is broken."""
    if booking is None:
        booking = db.query(Booking).filter(Booking.uuid == booking_uuid).first()
    if booking is None or not booking.sections:
        return CompletionResult(complete=False)

    template = resolve_booking_template(db, booking)
    qa_pairs = booking.qa_pairs
    questions = list(iter_template_questions(template))

    required = required_questions(questions, qa_pairs)
    answered = {qa.question_id for qa in qa_pairs if qa.question_id is not None and is_answered(qa.answer)}

    missing = [q for q in required if q.id not in answered]
    result = CompletionResult(
        complete=not missing,
        required_question_ids=[q.id for q in required],
        missing_question_ids=[q.id for q in missing],
        missing_questions=[q.question for q in missing],
    )
    logger.info(
        f"[completion] booking {booking.uuid}: qa_pairs={len(qa_pairs)} required={len(required)} "
        f"missing={len(missing)} complete={result.complete}"
    )
    return result


def is_booking_complete(db: Session, booking_uuid: str) -> bool:
    return evaluate_completion(db, booking_uuid).complete
