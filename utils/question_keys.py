"""
Question resolution helpers.

Answers are located by stable question_key first. Rows that predate keyed
schema data fall back to a key generated from their display text, and legacy
trigger rules that only stored display text are mapped to a key through
LEGACY_TEXT_TO_KEY before falling back to literal text matching.
"""
import re
from typing import Any, Iterable, Optional


class QUESTION_KEYS:
    # Room and accommodation
    ROOM_SELECTION = "room-selection"
    CHECK_IN_OUT_DATE = "check-in-date-and-check-out-date"
    CHECK_IN_DATE = "check-in-date"
    CHECK_OUT_DATE = "check-out-date"
    LATE_ARRIVAL = "do-you-need-to-check-in-after-5pm"
    ARRIVAL_TIME = "expected-arrival-time-check-in-is-from-2pm"

    # Guest counts
    INFANTS_COUNT = "number-of-infants-2-years-staying"
    CHILDREN_COUNT = "number-of-children-under-the-age-of-16-staying"
    ADULTS_COUNT = "number-of-guests-over-the-age-of-16-including-person-with-the-spinal-cord-injury"
    ASSISTANCE_ANIMAL = "will-you-be-bringing-an-assistance-animal-with-you-on-your-stay"

    # File uploads
    ICARE_APPROVAL_UPLOAD = "please-upload-a-copy-of-your-icare-approval-or-notice-of-assessment-for-your-stay-at-sargood"
    APPROVAL_LETTER_UPLOAD = "upload-approval-letter"
    CARE_PLAN_UPLOAD = "if-you-have-a-care-plan-you-can-upload-here"
    ASSISTANCE_ANIMAL_CERT_1 = "please-upload-assistance-animal-certificate"
    ASSISTANCE_ANIMAL_CERT_2 = "please-upload-your-assistance-animal-certificate-here"
    ASSISTANCE_ANIMAL_CERT_3 = "please-upload-your-assistance-animals-certificate-here"

    # Funding and coordinators
    FUNDING_SOURCE = "how-will-your-stay-be-funded"
    NDIS_COORDINATOR_EMAIL = "ndis-support-coordinator-email-address"
    NDIS_COORDINATOR_FIRST_NAME = "ndis-support-coordinator-first-name"
    NDIS_COORDINATOR_LAST_NAME = "ndis-support-coordinator-last-name"
    NDIS_PARTICIPANT_NUMBER = "ndis-participant-number"
    ICARE_COORDINATOR_EMAIL = "icare-coordinator-email-address"
    ICARE_COORDINATOR_FIRST_NAME = "icare-coordinator-first-name"
    ICARE_COORDINATOR_LAST_NAME = "icare-coordinator-last-name"
    ICARE_PARTICIPANT_NUMBER = "icare-participant-number"
    PLAN_MANAGEMENT_EMAIL = "plan-management-company-email-address"
    PLAN_MANAGEMENT_NAME = "plan-management-company-name"

    # Packages and courses
    ACCOMMODATION_PACKAGE_COURSES = "accommodation-package-options-for-sargood-courses-are"
    ACCOMMODATION_PACKAGE_FULL = "please-select-your-accommodation-and-assistance-package-below-by-selecting-a-package-type-you-are"
    COURSE_SELECTION = "which-course"
    GOALS_ACHIEVE = "what-goals-are-you-looking-to-achieve-by-staying-at-sargood-on-collaroy"

    # Health information
    HEALTH_CONDITIONS = "do-any-of-the-following-relate-to-you"
    DATE_OF_BIRTH = "date-of-birth"

    # Financial assistance
    FINANCIAL_ASSISTANCE_REASON = "why-are-you-applying-for-financial-assistance"
    TRAVEL_GRANT_APPLICATION = "after-reading-the-above-terms-and-conditions-would-you-like-to-apply-for-a-travel-grant"
    TRAVEL_GRANT_REASON = "why-are-yo-applying-for-a-travel-grant"
    FUNDING_AMOUNT_TRAVEL = (
        "approx-how-much-funding-within-500-are-you-applying-for-and-how-will-you-be-using-it-"
        "for-your-travel-to-and-from-sargood-on-collaroy"
    )

    # Clinical services
    CLINICAL_NURSE_EDUCATION = "accessing-clinical-nurse-education"
    CLINICAL_NURSE_CONSULTATION = "clinical-nurse-consultation-services"


UPLOAD_QUESTION_KEYS = [
    QUESTION_KEYS.ICARE_APPROVAL_UPLOAD,
    QUESTION_KEYS.APPROVAL_LETTER_UPLOAD,
    QUESTION_KEYS.CARE_PLAN_UPLOAD,
    QUESTION_KEYS.ASSISTANCE_ANIMAL_CERT_1,
    QUESTION_KEYS.ASSISTANCE_ANIMAL_CERT_2,
    QUESTION_KEYS.ASSISTANCE_ANIMAL_CERT_3,
]

FUNDER_QUESTION_TEXT = "How will your stay be funded?"

# Display texts used by trigger rules created before question keys existed
LEGACY_TEXT_TO_KEY = {
    "NDIS Support Coordinator Email Address": QUESTION_KEYS.NDIS_COORDINATOR_EMAIL,
    "icare Coordinator Email Address": QUESTION_KEYS.ICARE_COORDINATOR_EMAIL,
    "Plan Management Company Email Address": QUESTION_KEYS.PLAN_MANAGEMENT_EMAIL,
    "Room Selection": QUESTION_KEYS.ROOM_SELECTION,
    "Check In Date and Check Out Date": QUESTION_KEYS.CHECK_IN_OUT_DATE,
    "Check In Date": QUESTION_KEYS.CHECK_IN_DATE,
    "Check Out Date": QUESTION_KEYS.CHECK_OUT_DATE,
    "Do you need to check in after 5PM?": QUESTION_KEYS.LATE_ARRIVAL,
    "Expected Arrival Time (Check In is from 2pm)": QUESTION_KEYS.ARRIVAL_TIME,
    "Number of Infants < 2 years staying.": QUESTION_KEYS.INFANTS_COUNT,
    "Number of children under the age of 16 staying.": QUESTION_KEYS.CHILDREN_COUNT,
    "Number of guests over the age of 16 (including person with the spinal cord injury)": QUESTION_KEYS.ADULTS_COUNT,
    "Will you be bringing an assistance animal with you on your stay?": QUESTION_KEYS.ASSISTANCE_ANIMAL,
    FUNDER_QUESTION_TEXT: QUESTION_KEYS.FUNDING_SOURCE,
    "Which course?": QUESTION_KEYS.COURSE_SELECTION,
    "What goals are you looking to achieve by staying at Sargood on Collaroy?": QUESTION_KEYS.GOALS_ACHIEVE,
    "Accommodation package options for Sargood Courses are:": QUESTION_KEYS.ACCOMMODATION_PACKAGE_COURSES,
    (
        "Please select your accommodation and assistance package below. By selecting a package type you are "
        "acknowledging that you are aware of the costs associated with your stay."
    ): QUESTION_KEYS.ACCOMMODATION_PACKAGE_FULL,
    "Do any of the following relate to you?": QUESTION_KEYS.HEALTH_CONDITIONS,
    "Date of Birth": QUESTION_KEYS.DATE_OF_BIRTH,
    "After reading the above terms and conditions would you like to apply for a Travel Grant?": QUESTION_KEYS.TRAVEL_GRANT_APPLICATION,
    "Why are you applying for financial assistance?": QUESTION_KEYS.FINANCIAL_ASSISTANCE_REASON,
}

_MAX_KEY_LEN = 100


def _field(qa: Any, name: str):
    if isinstance(qa, dict):
        return qa.get(name)
    return getattr(qa, name, None)


def generate_question_key(question_text: Optional[str]) -> Optional[str]:
    """Slug a display text: lowercase, alphanumerics and dashes, at most 100 chars cut at a dash."""
    if not question_text or not isinstance(question_text, str):
        return None
    key = question_text.lower().strip()
    key = re.sub(r"[^a-z0-9\s]", "", key)
    key = re.sub(r"\s+", "-", key)
    key = re.sub(r"-+", "-", key)
    key = key.strip("-")
    if len(key) > _MAX_KEY_LEN:
        key = re.sub(r"-[^-]*$", "", key[:_MAX_KEY_LEN])
    return key or "question"


def map_question_text_to_key(question_text: Optional[str]) -> Optional[str]:
    if not question_text:
        return None
    return LEGACY_TEXT_TO_KEY.get(question_text)


def find_by_question_key(qa_pairs: Iterable, question_key: Optional[str]):
    """Stage one of the resolver: schema key, then key generated from unkeyed rows' text."""
    if not question_key:
        return None
    qa_pairs = list(qa_pairs or [])
    for qa in qa_pairs:
        if _field(qa, "question_key") == question_key:
            return qa
    for qa in qa_pairs:
        if _field(qa, "question_key"):
            continue
        if generate_question_key(_field(qa, "question")) == question_key:
            return qa
    return None


def find_all_by_question_key(qa_pairs: Iterable, question_key: str) -> list:
    return [qa for qa in (qa_pairs or []) if _field(qa, "question_key") == question_key]


def get_answer_by_question_key(qa_pairs: Iterable, question_key: str):
    qa = find_by_question_key(qa_pairs, question_key)
    return _field(qa, "answer") if qa is not None else None


def find_by_question_text(qa_pairs: Iterable, search_text: str):
    """Substring match on display text"""
    if not search_text:
        return None
    for qa in (qa_pairs or []):
        text = _field(qa, "question")
        if text and search_text in text:
            return qa
    return None


def find_multiple_by_question_keys(qa_pairs: Iterable, question_keys: Iterable[str]) -> list:
    qa_pairs = list(qa_pairs or [])
    found = []
    for key in question_keys:
        qa = find_by_question_key(qa_pairs, key)
        if qa is not None:
            found.append(qa)
    return found


def resolve_question(qa_pairs: Iterable, question_text: Optional[str] = None, question_key: Optional[str] = None,
                     require_answer: bool = False):
    """
    Two-stage resolver used by trigger rules.
    Key (explicit, or mapped from legacy text) first; literal text match only when no key is known.
    Returns (qa_pair_or_None, resolved_key_or_None).
    """
    key = question_key or map_question_text_to_key(question_text)
    if key:
        return find_by_question_key(qa_pairs, key), key
    for qa in (qa_pairs or []):
        if _field(qa, "question") == question_text:
            if require_answer and not _field(qa, "answer"):
                continue
            return qa, None
    return None, None


def get_coordinator_info(qa_pairs: Iterable, email_question_key: Optional[str]) -> dict:
    qa_pairs = list(qa_pairs or [])
    info = {"email": None, "name": None, "participant_number": None}

    def _answer(key):
        return get_answer_by_question_key(qa_pairs, key)

    if email_question_key == QUESTION_KEYS.NDIS_COORDINATOR_EMAIL:
        first, last = _answer(QUESTION_KEYS.NDIS_COORDINATOR_FIRST_NAME), _answer(QUESTION_KEYS.NDIS_COORDINATOR_LAST_NAME)
        info["email"] = _answer(QUESTION_KEYS.NDIS_COORDINATOR_EMAIL)
        info["name"] = f"{first} {last}" if first and last else None
        info["participant_number"] = _answer(QUESTION_KEYS.NDIS_PARTICIPANT_NUMBER)
    elif email_question_key == QUESTION_KEYS.ICARE_COORDINATOR_EMAIL:
        first, last = _answer(QUESTION_KEYS.ICARE_COORDINATOR_FIRST_NAME), _answer(QUESTION_KEYS.ICARE_COORDINATOR_LAST_NAME)
        info["email"] = _answer(QUESTION_KEYS.ICARE_COORDINATOR_EMAIL)
        info["name"] = f"{first} {last}" if first and last else None
        info["participant_number"] = _answer(QUESTION_KEYS.ICARE_PARTICIPANT_NUMBER)
    elif email_question_key == QUESTION_KEYS.PLAN_MANAGEMENT_EMAIL:
        info["email"] = _answer(QUESTION_KEYS.PLAN_MANAGEMENT_EMAIL)
        info["name"] = _answer(QUESTION_KEYS.PLAN_MANAGEMENT_NAME)
        info["participant_number"] = _answer(QUESTION_KEYS.NDIS_PARTICIPANT_NUMBER)
    return info


def get_funder(qa_pairs: Iterable) -> Optional[str]:
    """Answer to the funding-source question, by key or by its display text"""
    qa_pairs = list(qa_pairs or [])
    qa = find_by_question_key(qa_pairs, QUESTION_KEYS.FUNDING_SOURCE)
    if qa is None:
        qa = next((q for q in qa_pairs if _field(q, "question") == FUNDER_QUESTION_TEXT), None)
    return _field(qa, "answer") if qa is not None else None


def is_ndis_funder(qa_pairs: Iterable) -> bool:
    for qa in (qa_pairs or []):
        if _field(qa, "question_key") != QUESTION_KEYS.FUNDING_SOURCE:
            continue
        answer = _field(qa, "answer") or ""
        if "NDIS" in answer or "NDIA" in answer:
            return True
    return False


def get_check_in_out_answer(qa_pairs: Iterable) -> Optional[tuple]:
    """(check_in, check_out) raw strings; the combined range answer wins over separate dates."""
    qa_pairs = list(qa_pairs or [])
    combined = get_answer_by_question_key(qa_pairs, QUESTION_KEYS.CHECK_IN_OUT_DATE)
    if combined and isinstance(combined, str):
        parts = [p.strip() for p in combined.split(" - ")]
        if len(parts) > 1 and parts[0] and parts[1]:
            return parts[0], parts[1]

    check_in = get_answer_by_question_key(qa_pairs, QUESTION_KEYS.CHECK_IN_DATE)
    check_out = get_answer_by_question_key(qa_pairs, QUESTION_KEYS.CHECK_OUT_DATE)
    if check_in and check_out:
        return check_in, check_out
    return None
