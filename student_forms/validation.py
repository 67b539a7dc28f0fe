"""
Validation for the student registration and media release forms.

Validation Rules Documentation:
===============================

1. REQUIRED FIELDS
   - Full name, admission number, phone number, national ID, nationality,
     gender, date of birth, place of birth, permanent residence, location,
     county and the first emergency contact (name, relationship, phone)
   - County is also checked against the resolved location selection; a
     missing county is only ever reported once

2. DATE OF BIRTH
   - Must parse as a date
   - Age (full elapsed years) within [MIN_AGE, MAX_AGE], inclusive

3. PHONE NUMBERS
   - Whitespace is stripped before matching
   - Kenyan mobile format: optional +254 or 0 prefix, then 7 and eight digits
   - Applies to every non-empty phone field: own, father, mother and both
     emergency contacts

4. NATIONAL ID
   - Digits only, between NATIONAL_ID_MIN_DIGITS and NATIONAL_ID_MAX_DIGITS long

5. KCSE YEAR
   - Optional; when given, 1990 up to next year

6. DATA PROTECTION CONSENT
   - Both the processing consent and the rights acknowledgment must be checked

7. MEDIA RELEASE
   - Full name, ID number, date and signature name are all required

Field State Machine:
====================
UNTOUCHED -> TOUCHED -> VALID | INVALID, re-evaluated on every field event
and once for every field before submission.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from student_forms.config import FormConfig
from student_forms.fields import (
    CONSENT_FIELDS,
    FIELD_SPECS,
    MEDIA_RELEASE_FIELDS,
    PHONE_FIELDS,
    REQUIRED_FIELDS,
    FieldId,
    FieldValues,
    get_field_label,
)
from student_forms.utils import calculate_age, parse_date


@dataclass
class ValidationError:
    """Represents a single validation error against one field."""
    field: str
    message: str
    code: str
    section: str = ''  # For grouping errors by section


@dataclass
class ValidationResult:
    """Container for validation results."""
    errors: List[ValidationError] = field(default_factory=list)
    is_valid: bool = True
    missing: List[str] = field(default_factory=list)  # Labels shown in the summary alert

    def add_error(self, field: str, message: str, code: str = 'invalid', section: str = ''):
        """Add a validation error."""
        self.errors.append(ValidationError(field, message, code, section))
        self.is_valid = False

    @property
    def first_invalid_field(self) -> Optional[str]:
        """The invalid field that comes first on the form, for focus-scrolling."""
        if not self.errors:
            return None
        order = {field_id.value: index for index, field_id in enumerate(FIELD_SPECS)}
        return min(
            (e.field for e in self.errors),
            key=lambda name: order.get(name, len(order))
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {
            'ok': self.is_valid,
            'errors': [
                {'field': e.field, 'message': e.message, 'code': e.code, 'section': e.section}
                for e in self.errors
            ],
            'missing': list(self.missing),
            'firstInvalidField': self.first_invalid_field,
        }

    def get_errors_by_section(self) -> Dict[str, List[ValidationError]]:
        """Group errors by section for UI display."""
        by_section = {}
        for error in self.errors:
            section = error.section or 'general'
            if section not in by_section:
                by_section[section] = []
            by_section[section].append(error)
        return by_section


@dataclass(frozen=True)
class RequiredResult:
    valid: bool
    missing: Tuple[FieldId, ...] = ()

    @property
    def missing_labels(self) -> List[str]:
        return [get_field_label(f) for f in self.missing]


@dataclass(frozen=True)
class ConsentResult:
    valid: bool
    missing: Tuple[str, ...] = ()


# Regex patterns
PHONE_PATTERN = re.compile(r'^(\+254|0)?7[0-9]{8}$')
WHITESPACE_PATTERN = re.compile(r'\s+')
DIGITS_PATTERN = re.compile(r'^\d+$')

KCSE_FIRST_YEAR = 1990

PHONE_FORMAT_MESSAGE = 'Please enter a valid Kenyan phone number (e.g. 0712345678 or +254712345678)'

# Extra entries appended to the missing-field summary
MISSING_VALID_DOB = 'Valid Date of Birth'
MISSING_VALID_PHONES = 'Valid Phone Numbers'
MISSING_VALID_NATIONAL_ID = 'Valid National ID'


def _section(field_id: FieldId) -> str:
    return FIELD_SPECS[field_id].section


# ========================================
# SINGLE-VALUE RULES
# ========================================

def validate_age(dob: Any, today: Optional[date] = None,
                 min_age: int = FormConfig.min_age, max_age: int = FormConfig.max_age) -> bool:
    """
    Check a date of birth against the admissible age range.

    Args:
        dob: Date of birth as entered
        today: Reference date (defaults to today)
        min_age: Youngest admissible age, inclusive
        max_age: Oldest admissible age, inclusive

    Returns:
        True iff the date parses and the age is within range
    """
    age = calculate_age(dob, today)
    if age is None:
        return False
    return min_age <= age <= max_age


def validate_phone(number: Any) -> bool:
    """Kenyan mobile number check after stripping whitespace."""
    if number is None:
        return False
    compact = WHITESPACE_PATTERN.sub('', str(number))
    return bool(PHONE_PATTERN.match(compact))


def validate_national_id(value: Any, min_digits: int = FormConfig.national_id_min_digits,
                         max_digits: int = FormConfig.national_id_max_digits) -> bool:
    if value is None:
        return False
    str_value = str(value).strip()
    if not DIGITS_PATTERN.match(str_value):
        return False
    return min_digits <= len(str_value) <= max_digits


def validate_kcse_year(value: Any, today: Optional[date] = None) -> bool:
    """KCSE year is optional; a given year must fall between 1990 and next year."""
    if value is None or str(value).strip() == '':
        return True
    try:
        year = int(str(value).strip())
    except ValueError:
        return False
    current_year = (today or date.today()).year
    return KCSE_FIRST_YEAR <= year <= current_year + 1


# ========================================
# FORM-LEVEL RULES
# ========================================

def validate_required(values: FieldValues, selection=None) -> RequiredResult:
    """
    Check every required field is filled.

    Args:
        values: Current field values
        selection: Resolved LocationSelection, if the cascade is in use

    Returns:
        RequiredResult listing missing fields in form order
    """
    missing = []
    for field_id in REQUIRED_FIELDS:
        filled = values.is_filled(field_id)
        if field_id == FieldId.COUNTY and selection is not None and selection.county is None:
            filled = False
        if not filled:
            missing.append(field_id)
    return RequiredResult(valid=not missing, missing=tuple(missing))


def validate_consent(values: FieldValues) -> ConsentResult:
    missing = tuple(get_field_label(f) for f in CONSENT_FIELDS if not values.checked(f))
    return ConsentResult(valid=not missing, missing=missing)


def validate_media_release(values: FieldValues, result: Optional[ValidationResult] = None) -> ValidationResult:
    """All four media release fields are required; the date must parse."""
    if result is None:
        result = ValidationResult()

    for field_id in MEDIA_RELEASE_FIELDS:
        label = get_field_label(field_id)
        if not values.is_filled(field_id):
            result.add_error(field_id.value, f'Media release {label.lower()} is required',
                             'required', 'media_release')
            result.missing.append(f'Media Release {label}')
        elif field_id == FieldId.MEDIA_DATE and parse_date(values.text(field_id)) is None:
            result.add_error(field_id.value, 'Please enter a valid date (YYYY-MM-DD)',
                             'format', 'media_release')

    return result


def validate_form(values: FieldValues, selection=None, today: Optional[date] = None,
                  config: Optional[FormConfig] = None,
                  include_media_release: bool = False) -> ValidationResult:
    """
    Validate the student form.

    Consent is checked separately by validate_consent so the caller can
    report it with its own message.

    Args:
        values: Current field values
        selection: Resolved LocationSelection
        today: Reference date for age and KCSE year checks
        config: Age and national ID bounds
        include_media_release: Also validate the media release form

    Returns:
        ValidationResult with per-field errors and the missing-field summary
    """
    config = config or FormConfig()
    result = ValidationResult()

    required = validate_required(values, selection)
    for field_id in required.missing:
        label = get_field_label(field_id)
        result.add_error(field_id.value, f'{label} is required', 'required', _section(field_id))
        result.missing.append(label)

    dob = values.text(FieldId.DATE_OF_BIRTH)
    if dob.strip() and not validate_age(dob, today, config.min_age, config.max_age):
        result.add_error(
            FieldId.DATE_OF_BIRTH.value,
            f'Age must be between {config.min_age} and {config.max_age} years',
            'age_range', 'personal'
        )
        result.missing.append(MISSING_VALID_DOB)

    invalid_phone = False
    for field_id in PHONE_FIELDS:
        number = values.text(field_id)
        if number.strip() and not validate_phone(number):
            result.add_error(field_id.value, PHONE_FORMAT_MESSAGE, 'format', _section(field_id))
            invalid_phone = True
    if invalid_phone:
        result.missing.append(MISSING_VALID_PHONES)

    national_id = values.text(FieldId.NATIONAL_ID)
    if national_id.strip() and not validate_national_id(
            national_id, config.national_id_min_digits, config.national_id_max_digits):
        result.add_error(
            FieldId.NATIONAL_ID.value,
            f'National ID must be {config.national_id_min_digits}-{config.national_id_max_digits} digits',
            'format', 'personal'
        )
        result.missing.append(MISSING_VALID_NATIONAL_ID)

    if not validate_kcse_year(values.text(FieldId.KCSE_YEAR), today):
        result.add_error(FieldId.KCSE_YEAR.value, 'Please enter a valid KCSE year', 'range', 'academic')

    if include_media_release:
        validate_media_release(values, result)

    return result


def validate_field(field_id: FieldId, values: FieldValues, today: Optional[date] = None,
                   config: Optional[FormConfig] = None) -> Optional[str]:
    """
    Evaluate one field on its own.

    Returns:
        The error message, or None when the field is valid
    """
    config = config or FormConfig()
    label = get_field_label(field_id)
    filled = values.is_filled(field_id)

    if not filled:
        if field_id in REQUIRED_FIELDS or field_id in MEDIA_RELEASE_FIELDS:
            return f'{label} is required'
        if field_id in CONSENT_FIELDS:
            return f'{label} is required'
        return None

    value = values.text(field_id)
    if field_id in PHONE_FIELDS and not validate_phone(value):
        return PHONE_FORMAT_MESSAGE
    if field_id == FieldId.NATIONAL_ID and not validate_national_id(
            value, config.national_id_min_digits, config.national_id_max_digits):
        return f'National ID must be {config.national_id_min_digits}-{config.national_id_max_digits} digits'
    if field_id == FieldId.DATE_OF_BIRTH and not validate_age(value, today, config.min_age, config.max_age):
        return f'Age must be between {config.min_age} and {config.max_age} years'
    if field_id == FieldId.KCSE_YEAR and not validate_kcse_year(value, today):
        return 'Please enter a valid KCSE year'
    if field_id == FieldId.MEDIA_DATE and parse_date(value) is None:
        return 'Please enter a valid date (YYYY-MM-DD)'
    return None


# ========================================
# FIELD STATES
# ========================================

class FieldState(Enum):
    UNTOUCHED = 'untouched'
    TOUCHED = 'touched'
    VALID = 'valid'
    INVALID = 'invalid'


class FieldStateTracker:
    """Per-session validation state of each field."""

    def __init__(self, config: Optional[FormConfig] = None):
        self.config = config or FormConfig()
        self._states: Dict[FieldId, FieldState] = {}
        self._messages: Dict[FieldId, str] = {}

    def state(self, field_id: FieldId) -> FieldState:
        return self._states.get(field_id, FieldState.UNTOUCHED)

    def message(self, field_id: FieldId) -> Optional[str]:
        return self._messages.get(field_id)

    def touch(self, field_id: FieldId):
        if self.state(field_id) == FieldState.UNTOUCHED:
            self._states[field_id] = FieldState.TOUCHED

    def evaluate(self, field_id: FieldId, values: FieldValues, today: Optional[date] = None) -> FieldState:
        """Touch the field and settle it as VALID or INVALID."""
        self.touch(field_id)
        message = validate_field(field_id, values, today, self.config)
        if message:
            self._states[field_id] = FieldState.INVALID
            self._messages[field_id] = message
        else:
            self._states[field_id] = FieldState.VALID
            self._messages.pop(field_id, None)
        return self._states[field_id]

    def evaluate_all(self, values: FieldValues, field_ids: Iterable[FieldId],
                     today: Optional[date] = None) -> List[FieldId]:
        """Evaluate every given field; returns the invalid ones in order."""
        return [
            field_id for field_id in field_ids
            if self.evaluate(field_id, values, today) == FieldState.INVALID
        ]

    def invalid_fields(self) -> List[FieldId]:
        return [f for f in FIELD_SPECS if self._states.get(f) == FieldState.INVALID]

    def reset(self):
        self._states.clear()
        self._messages.clear()

    def to_dict(self) -> Dict[str, Dict[str, Optional[str]]]:
        return {
            field_id.value: {'state': state.value, 'message': self._messages.get(field_id)}
            for field_id, state in self._states.items()
        }
