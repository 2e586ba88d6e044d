"""
Form Validation Utilities
Validation for booking request form answers and outbound email recipients
"""
import re
from typing import Any, Tuple

from utils.answers import decode_list, parse_date, split_date_range

_EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'


def validate_email_format(email: str) -> Tuple[bool, str]:
    """Basic email format validation"""
    if not email:
        return False, "Email is required"

    email = email.strip().lower()

    if not re.match(_EMAIL_PATTERN, email):
        return False, "Please enter a valid email address"

    return True, ""


def validate_phone(phone: str) -> Tuple[bool, str]:
    """Validate phone number format"""
    if not phone:
        return True, ""

    # Remove common formatting characters
    clean = re.sub(r'[\s\-\.\(\)]+', '', phone)

    # Should be mostly digits, optionally starting with +
    if not re.match(r'^\+?[0-9]{7,15}$', clean):
        return False, "Please enter a valid phone number"

    return True, ""


def validate_answer(question_type: str, value: Any) -> Tuple[bool, str]:
    """Shape check for a submitted answer. Empty answers are accepted; completeness is evaluated separately."""
    if value is None or (isinstance(value, str) and value.strip() == ''):
        return True, ""

    qtype = (question_type or '').lower()
    if qtype == 'email':
        return validate_email_format(str(value))
    if qtype == 'phone-number':
        return validate_phone(str(value))
    if qtype == 'date':
        if parse_date(value) is None:
            return False, "Please enter a valid date"
    if qtype == 'date-range':
        parts = split_date_range(value)
        if not parts or parse_date(parts[0]) is None or parse_date(parts[1]) is None:
            return False, "Please enter a valid date range"
    if qtype == 'number':
        try:
            float(value)
        except (ValueError, TypeError):
            return False, "Please enter a valid number"
    if qtype == 'room':
        rooms = decode_list(value)
        if any(not isinstance(r, dict) or not r.get('name') for r in rooms):
            return False, "Please select a valid room"

    return True, ""
