"""
Phone number handling for Ivory Coast numbers.

Accepted inputs: 0102030405, +225 0102030405, 00225 01 02 03 04 05,
225-01-02-03-04-05. Stored form is the bare 10 digits.
"""
import re

VALID_PREFIXES = ['01', '05', '07', '21', '22', '23', '24', '25', '27']

_SEPARATORS = re.compile(r'[\s\-().]')
_NON_DIGITS = re.compile(r'\D')


def _strip_country_code(cleaned):
    if cleaned.startswith('+225'):
        return cleaned[4:]
    if cleaned.startswith('00225'):
        return cleaned[5:]
    if cleaned.startswith('225'):
        return cleaned[3:]
    return cleaned


def normalize_phone(phone):
    """Return the 10-digit form of ``phone``, or '' when it is not a valid number"""
    if not phone or not isinstance(phone, str):
        return ''
    cleaned = _strip_country_code(_SEPARATORS.sub('', phone))
    cleaned = _NON_DIGITS.sub('', cleaned)
    if len(cleaned) == 10 and cleaned[:2] in VALID_PREFIXES:
        return cleaned
    return ''


def is_valid_phone(phone):
    return normalize_phone(phone) != ''


def format_phone(phone):
    """Display form ``XX XX XX XX XX``; invalid input is returned unchanged"""
    normalized = normalize_phone(phone)
    if not normalized:
        return phone
    return ' '.join(normalized[i:i + 2] for i in range(0, 10, 2))


def phone_validation_error(phone):
    """Explain why ``phone`` was rejected; None when it is valid"""
    if not phone or not str(phone).strip():
        return 'Phone number is required.'
    if is_valid_phone(phone):
        return None
    cleaned = _NON_DIGITS.sub('', _strip_country_code(_SEPARATORS.sub('', str(phone))))
    if len(cleaned) != 10:
        return f'Phone number must contain 10 digits ({len(cleaned)} found).'
    return f"Invalid prefix: {cleaned[:2]}. Valid prefixes: {', '.join(VALID_PREFIXES)}."
