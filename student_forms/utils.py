"""
Utility functions for dates, ages, phone numbers, hashing and text processing.
"""

import hashlib
import re
from datetime import date, datetime
from typing import Any, Optional


FILENAME_UNSAFE_PATTERN = re.compile(r'[^A-Za-z0-9]')
NON_DIGIT_PATTERN = re.compile(r'\D')


def parse_date(value: Any) -> Optional[date]:
    """
    Parse a date value.

    Args:
        value: ISO date string (YYYY-MM-DD or full ISO timestamp), date or datetime

    Returns:
        The date, or None when the value cannot be parsed
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return value.date()

    if isinstance(value, date):
        return value

    if not isinstance(value, str) or not value.strip():
        return None

    str_value = value.strip()

    try:
        return datetime.fromisoformat(str_value.replace('Z', '+00:00')).date()
    except ValueError:
        pass

    try:
        return datetime.strptime(str_value, '%Y-%m-%d').date()
    except ValueError:
        return None


def calculate_age(dob: Any, reference_date: Optional[date] = None) -> Optional[int]:
    """
    Calculate full elapsed years between a date of birth and a reference date.

    Args:
        dob: Date of birth (string, date or datetime)
        reference_date: Date to measure against (defaults to today)

    Returns:
        Age in whole years, or None when the date of birth is unparseable
    """
    birth_date = parse_date(dob)
    if birth_date is None:
        return None

    if reference_date is None:
        reference_date = date.today()
    elif isinstance(reference_date, datetime):
        reference_date = reference_date.date()

    age = reference_date.year - birth_date.year
    if (reference_date.month, reference_date.day) < (birth_date.month, birth_date.day):
        age -= 1

    return age


def age_group(age: Optional[int]) -> Optional[str]:
    """Bucket an age for analytics."""
    if age is None or age < 0:
        return None
    if age <= 19:
        return '17-19'
    if age <= 22:
        return '20-22'
    if age <= 25:
        return '23-25'
    return '26+'


def format_phone_number(value: str) -> str:
    """
    Normalize a Kenyan phone number to international form.

    Args:
        value: Phone number as entered

    Returns:
        '+254...' form when the number is recognizable, otherwise the digits
        that were entered
    """
    if not value:
        return ''

    digits = NON_DIGIT_PATTERN.sub('', value)

    if digits.startswith('254'):
        return '+' + digits
    if digits.startswith('0'):
        return '+254' + digits[1:]
    if len(digits) == 9:
        return '+254' + digits

    return digits


def format_date(date_value: Any) -> str:
    """
    Format a date value into a standard string.

    Args:
        date_value: Date string, date or datetime

    Returns:
        Formatted date string (DD Month YYYY), or the input as text when it
        cannot be parsed
    """
    if date_value is None or date_value == '':
        return ''

    parsed = parse_date(date_value)
    if parsed is None:
        return str(date_value)

    return parsed.strftime('%d %B %Y')


def sanitize_filename_part(text: Optional[str]) -> str:
    """Strip every character outside [A-Za-z0-9]."""
    if not text:
        return ''
    return FILENAME_UNSAFE_PATTERN.sub('', text)


def calculate_sha256(data: bytes) -> str:
    """
    Calculate SHA256 hash of data.

    Args:
        data: Bytes to hash

    Returns:
        Hexadecimal hash string
    """
    return hashlib.sha256(data).hexdigest()


def escape_text(text: str) -> str:
    """
    Escape special characters in text for safe PDF rendering.

    Args:
        text: Input text

    Returns:
        Escaped text safe for ReportLab
    """
    if not text:
        return ''

    # ReportLab uses XML-like escaping for special characters
    replacements = [
        ('&', '&amp;'),
        ('<', '&lt;'),
        ('>', '&gt;'),
        ('"', '&quot;'),
    ]

    result = text
    for old, new in replacements:
        result = result.replace(old, new)

    return result
