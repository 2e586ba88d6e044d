"""
Email trigger evaluation and dispatch.

Each enabled EmailTrigger is rendered by exactly one strategy, chosen by its
email_template and filtered by lifecycle event. Every rule is evaluated in
isolation: a rule that is skipped or fails never stops the others.

Deduplication across repeated passes is the caller's job (Booking.metainfo
flags); run_trigger_pass only reports what it did.
"""
from dataclasses import dataclass, field
from typing import Callable, Optional

from sqlalchemy.orm import Session

from core.config import EMAIL_SUBJECT_PREFIX, logger
from core.errors import EmailDispatchFailure, TriggerRuleFailure
from models.booking import Booking, BookingStatus
from models.email_trigger import EmailTrigger
from services.completion import is_booking_complete
from utils.answers import (
    decode_answer,
    decode_list,
    filter_health_info,
    format_date,
    is_answered,
    loads_or_raw,
    parse_date,
)
from utils.form_validation import validate_email_format
from utils.packages import describe_package_with_cost
from utils.question_keys import (
    QUESTION_KEYS,
    find_all_by_question_key,
    find_by_question_text,
    generate_question_key,
    get_answer_by_question_key,
    get_check_in_out_answer,
    get_coordinator_info,
    get_funder,
    map_question_text_to_key,
    resolve_question,
)

EVENT_ON_SUBMIT = "on_submit"
EVENT_ON_BOOKING_CONFIRMED = "on_booking_confirmed"
EVENT_TRIGGER_EMAILS = "trigger_emails"
EVENT_EVALUATE = "evaluate"

TEMPLATE_FUNDER = "funder-external-booking"
TEMPLATE_INTERNAL = "internal-recipient-new-booking"
TEMPLATE_EXTERNAL = "external-recipient-new-booking"
TEMPLATE_AMENDED = "recipient-booking-amended"
TEMPLATE_HEALTH_INFO = "internal-recipient-health-info"
TEMPLATE_HIGHLIGHTS = "booking-highlights"
TEMPLATE_FOUNDATION_STAY = "internal-recipient-foundation-stay"

STATUS_SENT = "sent"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"

SendEmail = Callable[[str, str, str, dict], None]


class RuleSkipped(Exception):
    """The rule's condition did not hold for this booking."""
    pass


@dataclass
class EmailJob:
    recipient: Optional[str]
    subject: str
    template_ref: str
    data: dict


@dataclass
class RuleOutcome:
    trigger_id: int
    email_template: str
    status: str
    recipient: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self):
        return {
            "trigger_id": self.trigger_id,
            "email_template": self.email_template,
            "status": self.status,
            "recipient": self.recipient,
            "reason": self.reason,
        }


@dataclass
class TriggerPassResult:
    event: str
    results: list = field(default_factory=list)

    def _count(self, status: str) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def sent(self) -> int:
        return self._count(STATUS_SENT)

    @property
    def skipped(self) -> int:
        return self._count(STATUS_SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(STATUS_FAILED)

    def to_dict(self):
        return {
            "event": self.event,
            "total": self.total,
            "sent": self.sent,
            "skipped": self.skipped,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
        }


def _default_send_email() -> SendEmail:
    from utils.emailing import send_templated_email
    return send_templated_email


def _subject(suffix: str) -> str:
    return f"{EMAIL_SUBJECT_PREFIX} - {suffix}"


# --- booking context ---------------------------------------------------------

@dataclass
class BookingContext:
    booking: Booking
    qa_pairs: list
    funder: Optional[str]
    check_in: Optional[str]
    check_out: Optional[str]

    @classmethod
    def load(cls, booking: Booking) -> "BookingContext":
        qa_pairs = booking.qa_pairs
        pair = get_check_in_out_answer(qa_pairs)
        return cls(
            booking=booking,
            qa_pairs=qa_pairs,
            funder=get_funder(qa_pairs),
            check_in=pair[0] if pair else None,
            check_out=pair[1] if pair else None,
        )

    def answer(self, key: str):
        return get_answer_by_question_key(self.qa_pairs, key)

    def guest_data(self) -> dict:
        guest = self.booking.guest
        data = {
            "booking_uuid": self.booking.uuid,
            "guest_name": guest.full_name if guest else "",
            "guest_email": guest.email if guest else None,
            "guest_phone": guest.phone_number if guest else None,
            "alternate_contact_name": self.booking.alternate_contact_name,
            "alternate_contact_number": self.booking.alternate_contact_number,
            "funder": self.funder,
        }
        if self.check_in and self.check_out:
            data["check_in_date"] = format_date(self.check_in) or self.check_in
            data["check_out_date"] = format_date(self.check_out) or self.check_out
        return data


def _first_condition(rule: EmailTrigger) -> dict:
    conditions = rule.conditions()
    if not conditions:
        raise RuleSkipped("rule has no trigger questions")
    return conditions[0]


def condition_matches(raw, expected, lowercase: bool = False) -> bool:
    """
    No expected answer: any non-empty answer matches.
    Otherwise exact equality, or membership for list answers.
    """
    if not is_answered(raw):
        return False
    if expected is None:
        return True
    if lowercase:
        return str(raw).strip().lower() == str(expected).strip().lower()
    if str(raw) == str(expected):
        return True
    value = loads_or_raw(raw)
    if isinstance(value, list):
        if isinstance(expected, list):
            return all(e in value for e in expected)
        return expected in value
    return False


def _resolve_condition(ctx: BookingContext, cond: dict, require_answer: bool = False):
    return resolve_question(ctx.qa_pairs, cond.get("question"), cond.get("question_key"), require_answer=require_answer)


def _require_recipient(rule: EmailTrigger) -> str:
    if not rule.recipient:
        raise RuleSkipped("rule has no recipient")
    return rule.recipient


# --- strategies ----------------------------------------------------------------

def build_funder_email(ctx: BookingContext, rule: EmailTrigger) -> EmailJob:
    """The coordinator whose email answered the trigger question is the recipient."""
    cond = _first_condition(rule)
    qa, key = _resolve_condition(ctx, cond, require_answer=True)
    if qa is None or not is_answered(qa.answer):
        raise RuleSkipped(f"'{cond.get('question')}' not answered")
    if cond.get("answer") is not None and not condition_matches(qa.answer, cond["answer"]):
        raise RuleSkipped("trigger answer did not match")
    if not ctx.funder:
        raise RuleSkipped("no funder answer")

    data = {"guest_name": ctx.guest_data()["guest_name"], "funder": ctx.funder}
    coordinator = get_coordinator_info(ctx.qa_pairs, key)
    if coordinator["email"]:
        data["coordinator_name"] = coordinator["name"]
        data["icare_or_ndis_number"] = coordinator["participant_number"]
    if ctx.check_in and ctx.check_out:
        data["check_in_date"] = format_date(ctx.check_in) or ctx.check_in
        data["check_out_date"] = format_date(ctx.check_out) or ctx.check_out
    data["rooms"] = [
        {
            "room_type": room.room_type.name if room.room_type else room.label,
            "room_package_price": room.room_type.price_per_night if room.room_type else None,
        }
        for room in ctx.booking.rooms
    ]
    package = ctx.answer(QUESTION_KEYS.ACCOMMODATION_PACKAGE_COURSES) or ctx.answer(QUESTION_KEYS.ACCOMMODATION_PACKAGE_FULL)
    if package:
        data["package_type"] = package
    goals = ctx.answer(QUESTION_KEYS.GOALS_ACHIEVE)
    if goals:
        data["reason_for_stay"] = goals
    return EmailJob(str(qa.answer).strip(), _subject("Booking"), rule.email_template, data)


def build_internal_email(ctx: BookingContext, rule: EmailTrigger) -> EmailJob:
    cond = _first_condition(rule)
    qa, _ = _resolve_condition(ctx, cond)
    if qa is None:
        raise RuleSkipped(f"'{cond.get('question')}' not found")
    if not condition_matches(qa.answer, cond.get("answer"), lowercase=True):
        raise RuleSkipped("trigger answer did not match")
    recipient = _require_recipient(rule)

    data = ctx.guest_data()
    answer = qa.answer or ""
    if answer.strip().lower() in ("yes", "no"):
        data["selected_yes_no_answer"] = answer
        if "accessing Clinical Nurse Education" in (cond.get("question") or ""):
            clinical = find_by_question_text(ctx.qa_pairs, "Clinical Nurse Consultation Services")
            if clinical is not None:
                data["selected_clinical_nurse_consultation_services"] = decode_list(clinical.answer)
    else:
        data["selected_list_answer"] = loads_or_raw(answer)
    data["question"] = qa.question
    return EmailJob(recipient, _subject("New Booking"), rule.email_template, data)


def build_external_email(ctx: BookingContext, rule: EmailTrigger) -> EmailJob:
    """Sent to the address given as the answer to the trigger question."""
    cond = _first_condition(rule)
    qa, _ = _resolve_condition(ctx, cond)
    if qa is None or not is_answered(qa.answer):
        raise RuleSkipped("no recipient answer for external email")
    return EmailJob(str(qa.answer).strip(), _subject("Booking"), rule.email_template, ctx.guest_data())


def build_amended_email(ctx: BookingContext, rule: EmailTrigger) -> EmailJob:
    if ctx.booking.status_name != BookingStatus.BOOKING_AMENDED.value:
        raise RuleSkipped("booking is not amended")
    recipient = _require_recipient(rule)
    return EmailJob(recipient, _subject("Booking"), rule.email_template, ctx.guest_data())


def build_health_info_email(ctx: BookingContext, rule: EmailTrigger) -> EmailJob:
    conditions = rule.conditions()
    if not conditions:
        raise RuleSkipped("rule has no trigger questions")

    health_info = None
    affirmed = []
    for cond in conditions:
        qa, _ = _resolve_condition(ctx, cond, require_answer=True)
        if qa is None or not is_answered(qa.answer):
            continue
        expected = cond.get("answer")
        if expected is not None and not isinstance(expected, (list, dict)):
            if str(expected) != str(qa.answer):
                continue
            affirmed.append(cond.get("question"))
        if not health_info:
            if qa.question_type == "checkbox":
                health_info = filter_health_info(decode_list(qa.answer))
            else:
                health_info = qa.answer

    if not health_info:
        raise RuleSkipped("no health information to report")
    recipient = _require_recipient(rule)

    data = ctx.guest_data()
    data["healthInfo"] = health_info
    if affirmed:
        data["affirmed_questions"] = affirmed
    return EmailJob(recipient, _subject("Booking"), rule.email_template, data)


def build_highlights_email(ctx: BookingContext, rule: EmailTrigger) -> EmailJob:
    """Every answered question the rule lists, with the answer it expects when it names one."""
    conditions = rule.conditions()
    highlights = []
    for qa in ctx.qa_pairs:
        if not is_answered(qa.answer):
            continue
        for cond in conditions:
            key = cond.get("question_key") or map_question_text_to_key(cond.get("question"))
            if key:
                same_question = qa.question_key == key or (
                    not qa.question_key and generate_question_key(qa.question) == key
                )
            else:
                same_question = qa.question == cond.get("question")
            if same_question and condition_matches(qa.answer, cond.get("answer")):
                highlights.append({"question": qa.question, "answer": qa.answer})
                break

    if not highlights:
        raise RuleSkipped("no highlighted answers")
    recipient = _require_recipient(rule)

    data = ctx.guest_data()
    data["booking_highlights"] = highlights
    return EmailJob(recipient, _subject("Booking Highlights"), rule.email_template, data)


def build_foundation_stay_email(ctx: BookingContext, rule: EmailTrigger) -> EmailJob:
    cond = _first_condition(rule)
    qa, _ = _resolve_condition(ctx, cond)
    if qa is None or not condition_matches(qa.answer, cond.get("answer"), lowercase=True):
        raise RuleSkipped(f"'{cond.get('question')}' not answered as expected")
    recipient = _require_recipient(rule)

    guest = ctx.guest_data()
    data = {
        "guest_name": guest["guest_name"],
        "guest_email": guest["guest_email"],
        "guest_phone": guest["guest_phone"],
        "funder": ctx.funder,
    }
    if ctx.answer(QUESTION_KEYS.FUNDING_SOURCE):
        data["message"] = "The guest is applying for financial assistance through the Sargood Foundation."
    elif ctx.answer(QUESTION_KEYS.TRAVEL_GRANT_APPLICATION):
        data["message"] = "The guest is applying for a travel grant."

    data["dob"] = ctx.answer(QUESTION_KEYS.DATE_OF_BIRTH)
    arrival, departure = parse_date(ctx.check_in), parse_date(ctx.check_out)
    if arrival and departure:
        data["nights_stay"] = (departure - arrival).days
        data["arrivalDate"] = arrival.strftime("%d/%m/%Y")
        data["departureDate"] = departure.strftime("%d/%m/%Y")

    package = ctx.answer(QUESTION_KEYS.ACCOMMODATION_PACKAGE_FULL) or ctx.answer(QUESTION_KEYS.ACCOMMODATION_PACKAGE_COURSES)
    if package:
        data["package"] = describe_package_with_cost(package)

    data["applying_assistance"] = ctx.answer(QUESTION_KEYS.FINANCIAL_ASSISTANCE_REASON)
    data["goals1"] = ctx.answer(QUESTION_KEYS.GOALS_ACHIEVE)
    data["why_grant"] = ctx.answer(QUESTION_KEYS.TRAVEL_GRANT_REASON)
    goals = find_all_by_question_key(ctx.qa_pairs, QUESTION_KEYS.GOALS_ACHIEVE)
    data["goals2"] = goals[1].answer if len(goals) > 1 else ""
    data["how_much"] = ctx.answer(QUESTION_KEYS.FUNDING_AMOUNT_TRAVEL)
    return EmailJob(recipient, _subject("New Booking"), rule.email_template, data)


STRATEGIES = {
    TEMPLATE_FUNDER: build_funder_email,
    TEMPLATE_INTERNAL: build_internal_email,
    TEMPLATE_EXTERNAL: build_external_email,
    TEMPLATE_AMENDED: build_amended_email,
    TEMPLATE_HEALTH_INFO: build_health_info_email,
    TEMPLATE_HIGHLIGHTS: build_highlights_email,
    TEMPLATE_FOUNDATION_STAY: build_foundation_stay_email,
}

EVENT_TEMPLATES = {
    EVENT_ON_SUBMIT: {
        TEMPLATE_FUNDER,
        TEMPLATE_EXTERNAL,
        TEMPLATE_AMENDED,
        TEMPLATE_HEALTH_INFO,
        TEMPLATE_HIGHLIGHTS,
        TEMPLATE_FOUNDATION_STAY,
    },
    EVENT_ON_BOOKING_CONFIRMED: {TEMPLATE_INTERNAL},
    EVENT_TRIGGER_EMAILS: {
        TEMPLATE_FUNDER,
        TEMPLATE_INTERNAL,
        TEMPLATE_EXTERNAL,
        TEMPLATE_AMENDED,
        TEMPLATE_HEALTH_INFO,
        TEMPLATE_HIGHLIGHTS,
    },
}


def _references_course_question(rule: EmailTrigger) -> bool:
    for cond in rule.conditions():
        key = cond.get("question_key") or map_question_text_to_key(cond.get("question"))
        if key == QUESTION_KEYS.COURSE_SELECTION:
            return True
    return False


def _applies_to_event(rule: EmailTrigger, event: str) -> bool:
    if rule.email_template not in EVENT_TEMPLATES.get(event, set()):
        return False
    if event == EVENT_ON_SUBMIT and rule.email_template == TEMPLATE_EXTERNAL:
        # on submit, external emails only go out for course bookings
        return _references_course_question(rule)
    return True


# --- dispatch --------------------------------------------------------------------

def _dispatch(job: EmailJob, rule: EmailTrigger, send_email: SendEmail) -> RuleOutcome:
    ok, err = validate_email_format(job.recipient or "")
    if not ok:
        failure = EmailDispatchFailure(job.recipient, err)
        logger.warning(f"[triggers] rule {rule.id} ({rule.email_template}): {failure}")
        return RuleOutcome(rule.id, rule.email_template, STATUS_FAILED, job.recipient, str(failure))
    try:
        send_email(job.recipient, job.subject, job.template_ref, job.data)
    except EmailDispatchFailure as ex:
        logger.warning(f"[triggers] rule {rule.id} ({rule.email_template}): {ex}")
        return RuleOutcome(rule.id, rule.email_template, STATUS_FAILED, job.recipient, str(ex))
    except Exception as ex:
        failure = EmailDispatchFailure(job.recipient, str(ex))
        logger.exception(f"[triggers] rule {rule.id} ({rule.email_template}): {failure}")
        return RuleOutcome(rule.id, rule.email_template, STATUS_FAILED, job.recipient, str(failure))

    rule.record_use()
    logger.info(f"[triggers] rule {rule.id} ({rule.email_template}) sent to {job.recipient}")
    return RuleOutcome(rule.id, rule.email_template, STATUS_SENT, job.recipient)


def _evaluate_rule(ctx: BookingContext, rule: EmailTrigger, builder, send_email: SendEmail) -> RuleOutcome:
    try:
        job = builder(ctx, rule)
    except RuleSkipped as skip:
        logger.info(f"[triggers] rule {rule.id} ({rule.email_template}) skipped: {skip}")
        return RuleOutcome(rule.id, rule.email_template, STATUS_SKIPPED, reason=str(skip))
    except Exception as ex:
        failure = TriggerRuleFailure(rule.id, str(ex))
        logger.exception(f"[triggers] {failure}")
        return RuleOutcome(rule.id, rule.email_template, STATUS_FAILED, reason=str(failure))
    return _dispatch(job, rule, send_email)


def _save_counters(db: Session):
    try:
        db.commit()
    except Exception as ex:
        db.rollback()
        logger.warning(f"[triggers] could not save trigger usage counters: {ex}")


def run_trigger_pass(db: Session, booking: Booking, event: str,
                     send_email: Optional[SendEmail] = None) -> Optional[TriggerPassResult]:
    """
    Evaluate every enabled rule handled by `event` for a complete booking.
    Returns None when the booking is not complete yet.
    """
    if event not in EVENT_TEMPLATES:
        raise ValueError(f"unknown trigger event '{event}'")
    if not is_booking_complete(db, booking.uuid):
        logger.info(f"[triggers] booking {booking.uuid} incomplete, {event} pass skipped")
        return None

    send_email = send_email or _default_send_email()
    query = db.query(EmailTrigger).filter(EmailTrigger.enabled.is_(True))
    if event == EVENT_TRIGGER_EMAILS:
        query = query.filter(EmailTrigger.recipient.isnot(None))
    rules = query.order_by(EmailTrigger.id).all()

    ctx = BookingContext.load(booking)
    result = TriggerPassResult(event=event)
    for rule in rules:
        if not _applies_to_event(rule, event):
            continue
        result.results.append(_evaluate_rule(ctx, rule, STRATEGIES[rule.email_template], send_email))

    _save_counters(db)
    logger.info(
        f"[triggers] booking {booking.uuid} {event}: total={result.total} sent={result.sent} "
        f"skipped={result.skipped} failed={result.failed}"
    )
    return result


# --- generic evaluation ------------------------------------------------------------

def _form_data(qa_pairs: list) -> dict:
    """question_key -> decoded answer; unkeyed rows use the key generated from their text"""
    data = {}
    for qa in qa_pairs:
        key = qa.question_key or generate_question_key(qa.question)
        if key and key not in data:
            data[key] = decode_answer(qa.answer, qa.question_type) if is_answered(qa.answer) else None
    return data


def _generic_matches(submitted, required, question_type: Optional[str] = None) -> bool:
    if submitted is None:
        return False
    if required is None:
        return True
    if question_type == "checkbox" or isinstance(submitted, list):
        submitted_list = submitted if isinstance(submitted, list) else [submitted]
        required_list = required if isinstance(required, list) else [required]
        return all(r in submitted_list for r in required_list)
    return str(submitted).strip().lower() == str(required).strip().lower()


def evaluate_trigger(rule: EmailTrigger, form_data: dict, question_types: Optional[dict] = None) -> bool:
    """All trigger questions must match."""
    conditions = rule.conditions()
    if not conditions:
        return False
    question_types = question_types or {}
    for cond in conditions:
        key = cond.get("question_key") or map_question_text_to_key(cond.get("question")) or generate_question_key(cond.get("question"))
        if not _generic_matches(form_data.get(key), cond.get("answer"), question_types.get(key)):
            return False
    return True


def evaluate_email_triggers(db: Session, booking: Booking, trigger_type: Optional[str] = None,
                            send_email: Optional[SendEmail] = None) -> TriggerPassResult:
    """Type-driven evaluation: internal/highlights go to the rule recipient, external to the answered address."""
    send_email = send_email or _default_send_email()
    query = db.query(EmailTrigger).filter(EmailTrigger.enabled.is_(True))
    if trigger_type:
        query = query.filter(EmailTrigger.type == trigger_type)
    rules = query.order_by(EmailTrigger.id).all()

    ctx = BookingContext.load(booking)
    form_data = _form_data(ctx.qa_pairs)
    question_types = {}
    for qa in ctx.qa_pairs:
        key = qa.question_key or generate_question_key(qa.question)
        if key:
            question_types.setdefault(key, qa.question_type)

    result = TriggerPassResult(event=EVENT_EVALUATE)
    for rule in rules:
        try:
            if not evaluate_trigger(rule, form_data, question_types):
                result.results.append(RuleOutcome(rule.id, rule.email_template, STATUS_SKIPPED, reason="conditions not met"))
                continue
            if rule.type == "external":
                first = rule.conditions()[0]
                qa, _ = _resolve_condition(ctx, first, require_answer=True)
                recipient = str(qa.answer).strip() if qa is not None and is_answered(qa.answer) else None
            else:
                recipient = rule.recipient
            if not recipient:
                result.results.append(RuleOutcome(rule.id, rule.email_template, STATUS_SKIPPED, reason="no recipient"))
                continue

            data = ctx.guest_data()
            data["matched"] = [
                {"question": c.get("question"), "answer": form_data.get(c.get("question_key") or map_question_text_to_key(c.get("question")) or generate_question_key(c.get("question")))}
                for c in rule.conditions()
            ]
            job = EmailJob(recipient, _subject("Booking"), rule.email_template, data)
        except Exception as ex:
            failure = TriggerRuleFailure(rule.id, str(ex))
            logger.exception(f"[triggers] {failure}")
            result.results.append(RuleOutcome(rule.id, rule.email_template, STATUS_FAILED, reason=str(failure)))
            continue
        result.results.append(_dispatch(job, rule, send_email))

    _save_counters(db)
    logger.info(
        f"[triggers] booking {booking.uuid} evaluated {result.total} rule(s): sent={result.sent} "
        f"skipped={result.skipped} failed={result.failed}"
    )
    return result


def send_trigger_email(recipient: str, template_ref: str, data: dict, subject: Optional[str] = None,
                       send_email: Optional[SendEmail] = None) -> RuleOutcome:
    """Send one explicit templated email (background task 'sendTriggerEmail')."""
    send_email = send_email or _default_send_email()
    ok, err = validate_email_format(recipient or "")
    if not ok:
        return RuleOutcome(0, template_ref, STATUS_FAILED, recipient, err)
    try:
        send_email(recipient, subject or _subject("Booking"), template_ref, data or {})
    except Exception as ex:
        logger.warning(f"[triggers] sendTriggerEmail to {recipient} failed: {ex}")
        return RuleOutcome(0, template_ref, STATUS_FAILED, recipient, str(ex))
    return RuleOutcome(0, template_ref, STATUS_SENT, recipient)
