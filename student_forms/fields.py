"""
Typed field registry for the student and media release forms.

Every form control is identified by a FieldId member whose value is the
control's wire identifier (the key used in posted payloads and in draft
snapshots). Lookups elsewhere in the application go through this registry
so required-field sets and section layouts can be checked exhaustively.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union


class FieldKind(Enum):
    """How a field's value is captured."""
    TEXT = 'text'
    DATE = 'date'
    SELECT = 'select'
    CHOICE = 'choice'  # exclusive checkbox group, holds the checked option
    CHECKBOX = 'checkbox'


class FormName(Enum):
    """The two forms making up a registration."""
    STUDENT = 'student'
    MEDIA_RELEASE = 'media_release'


class FieldId(str, Enum):
    """Identifiers for every form control."""

    # Personal information
    FULL_NAME = 'fullName'
    ADMISSION_NUMBER = 'admissionNumber'
    PHONE_NUMBER = 'phoneNumber'
    NATIONAL_ID = 'nationalId'
    PASSPORT_NO = 'passportNo'
    BIRTH_CERT_NO = 'birthCertNo'
    RELIGION = 'religion'
    NATIONALITY = 'nationality'
    GENDER = 'gender'
    ETHNIC_BACKGROUND = 'ethnicBackground'
    DATE_OF_BIRTH = 'dateOfBirth'
    PLACE_OF_BIRTH = 'placeOfBirth'

    # Location
    PERMANENT_RESIDENCE = 'permanentResidence'
    LOCATION = 'location'
    CHIEF_NAME = 'chiefName'
    DIVISION = 'division'
    COUNTY = 'county'
    SUB_COUNTY = 'subCounty'
    CONSTITUENCY = 'constituency'
    WARD = 'ward'
    NEAREST_TOWN = 'nearestTown'
    NEAREST_POLICE = 'nearestPolice'
    HOME_ADDRESS = 'homeAddress'

    # Marital status
    MARITAL_STATUS = 'maritalStatus'
    SPOUSE_DETAILS = 'spouseDetails'
    SPOUSE_OCCUPATION = 'spouseOccupation'
    NUMBER_OF_CHILDREN = 'numberOfChildren'

    # Family
    FATHER_NAME = 'fatherName'
    FATHER_STATUS = 'fatherStatus'
    FATHER_PHONE = 'fatherPhone'
    FATHER_ID_NO = 'fatherIdNo'
    FATHER_OCCUPATION = 'fatherOccupation'
    FATHER_DOB = 'fatherDob'
    MOTHER_NAME = 'motherName'
    MOTHER_STATUS = 'motherStatus'
    MOTHER_PHONE = 'motherPhone'
    MOTHER_ID_NO = 'motherIdNo'
    MOTHER_OCCUPATION = 'motherOccupation'
    MOTHER_DOB = 'motherDob'
    SIBLING_1 = 'sibling1'
    SIBLING_2 = 'sibling2'
    SIBLING_3 = 'sibling3'
    SIBLING_4 = 'sibling4'
    SIBLING_5 = 'sibling5'
    SIBLING_6 = 'sibling6'

    # Emergency contacts
    EMERGENCY_1_NAME = 'emergency1Name'
    EMERGENCY_1_RELATIONSHIP = 'emergency1Relationship'
    EMERGENCY_1_ID = 'emergency1Id'
    EMERGENCY_1_PHONE = 'emergency1Phone'
    EMERGENCY_1_ADDRESS = 'emergency1Address'
    EMERGENCY_2_NAME = 'emergency2Name'
    EMERGENCY_2_RELATIONSHIP = 'emergency2Relationship'
    EMERGENCY_2_ID = 'emergency2Id'
    EMERGENCY_2_PHONE = 'emergency2Phone'
    EMERGENCY_2_ADDRESS = 'emergency2Address'

    # Academic
    SCHOOL_ATTENDED = 'schoolAttended'
    SCHOOL_ADDRESS = 'schoolAddress'
    KCSE_RESULTS = 'kcseResults'
    KCSE_RESULTS_2 = 'kcseResults2'
    INDEX_NUMBER = 'indexNumber'
    KCSE_YEAR = 'kcseYear'
    OTHER_INSTITUTIONS = 'otherInstitutions'

    # Interests and additional information
    SPORTS_INTERESTS = 'sportsInterests'
    CLUBS_INTERESTS = 'clubsInterests'
    PHYSICAL_IMPAIRMENT = 'physicalImpairment'
    ADDITIONAL_INFO = 'additionalInfo'

    # Data protection consent
    DATA_CONSENT = 'dataConsent'
    DATA_RIGHTS = 'dataRights'

    # Media release form
    MEDIA_FULL_NAME = 'mediaFullName'
    MEDIA_ID_NUMBER = 'mediaIdNumber'
    MEDIA_DATE = 'mediaDate'
    MEDIA_SIGNATURE_NAME = 'mediaSignatureName'


@dataclass(frozen=True)
class FieldSpec:
    """Static description of one field."""
    field_id: FieldId
    label: str
    kind: FieldKind = FieldKind.TEXT
    section: str = ''
    form: FormName = FormName.STUDENT


def _spec(field_id: FieldId, label: str, section: str,
          kind: FieldKind = FieldKind.TEXT,
          form: FormName = FormName.STUDENT) -> Tuple[FieldId, FieldSpec]:
    return field_id, FieldSpec(field_id, label, kind, section, form)


F = FieldId
K = FieldKind

FIELD_SPECS: Dict[FieldId, FieldSpec] = dict([
    _spec(F.FULL_NAME, 'Full Name', 'personal'),
    _spec(F.ADMISSION_NUMBER, 'University Admission Number', 'personal'),
    _spec(F.PHONE_NUMBER, 'Phone Number', 'personal'),
    _spec(F.NATIONAL_ID, 'National ID Number', 'personal'),
    _spec(F.PASSPORT_NO, 'Passport Number', 'personal'),
    _spec(F.BIRTH_CERT_NO, 'Birth Certificate Number', 'personal'),
    _spec(F.RELIGION, 'Religion', 'personal'),
    _spec(F.NATIONALITY, 'Nationality', 'personal'),
    _spec(F.GENDER, 'Gender', 'personal', K.SELECT),
    _spec(F.ETHNIC_BACKGROUND, 'Ethnic Background', 'personal'),
    _spec(F.DATE_OF_BIRTH, 'Date of Birth', 'personal', K.DATE),
    _spec(F.PLACE_OF_BIRTH, 'Place of Birth', 'personal'),

    _spec(F.PERMANENT_RESIDENCE, 'Permanent Residence', 'location'),
    _spec(F.LOCATION, 'Location', 'location'),
    _spec(F.CHIEF_NAME, "Chief's Name", 'location'),
    _spec(F.DIVISION, 'Division', 'location'),
    _spec(F.COUNTY, 'County', 'location', K.SELECT),
    _spec(F.SUB_COUNTY, 'Sub County', 'location', K.SELECT),
    _spec(F.CONSTITUENCY, 'Constituency', 'location', K.SELECT),
    _spec(F.WARD, 'Ward', 'location', K.SELECT),
    _spec(F.NEAREST_TOWN, 'Nearest Town', 'location'),
    _spec(F.NEAREST_POLICE, 'Nearest Police Station', 'location'),
    _spec(F.HOME_ADDRESS, 'Home Address', 'location'),

    _spec(F.MARITAL_STATUS, 'Marital Status', 'marital', K.CHOICE),
    _spec(F.SPOUSE_DETAILS, 'Spouse Details', 'marital'),
    _spec(F.SPOUSE_OCCUPATION, 'Spouse Occupation', 'marital'),
    _spec(F.NUMBER_OF_CHILDREN, 'Number of Children', 'marital'),

    _spec(F.FATHER_NAME, "Father's Name", 'family'),
    _spec(F.FATHER_STATUS, "Father's Status", 'family', K.CHOICE),
    _spec(F.FATHER_PHONE, "Father's Phone", 'family'),
    _spec(F.FATHER_ID_NO, "Father's ID Number", 'family'),
    _spec(F.FATHER_OCCUPATION, "Father's Occupation", 'family'),
    _spec(F.FATHER_DOB, "Father's Date of Birth", 'family', K.DATE),
    _spec(F.MOTHER_NAME, "Mother's Name", 'family'),
    _spec(F.MOTHER_STATUS, "Mother's Status", 'family', K.CHOICE),
    _spec(F.MOTHER_PHONE, "Mother's Phone", 'family'),
    _spec(F.MOTHER_ID_NO, "Mother's ID Number", 'family'),
    _spec(F.MOTHER_OCCUPATION, "Mother's Occupation", 'family'),
    _spec(F.MOTHER_DOB, "Mother's Date of Birth", 'family', K.DATE),
    _spec(F.SIBLING_1, 'Sibling 1', 'family'),
    _spec(F.SIBLING_2, 'Sibling 2', 'family'),
    _spec(F.SIBLING_3, 'Sibling 3', 'family'),
    _spec(F.SIBLING_4, 'Sibling 4', 'family'),
    _spec(F.SIBLING_5, 'Sibling 5', 'family'),
    _spec(F.SIBLING_6, 'Sibling 6', 'family'),

    _spec(F.EMERGENCY_1_NAME, 'Emergency Contact 1 Name', 'emergency'),
    _spec(F.EMERGENCY_1_RELATIONSHIP, 'Emergency Contact 1 Relationship', 'emergency'),
    _spec(F.EMERGENCY_1_ID, 'Emergency Contact 1 ID Number', 'emergency'),
    _spec(F.EMERGENCY_1_PHONE, 'Emergency Contact 1 Phone', 'emergency'),
    _spec(F.EMERGENCY_1_ADDRESS, 'Emergency Contact 1 Address', 'emergency'),
    _spec(F.EMERGENCY_2_NAME, 'Emergency Contact 2 Name', 'emergency'),
    _spec(F.EMERGENCY_2_RELATIONSHIP, 'Emergency Contact 2 Relationship', 'emergency'),
    _spec(F.EMERGENCY_2_ID, 'Emergency Contact 2 ID Number', 'emergency'),
    _spec(F.EMERGENCY_2_PHONE, 'Emergency Contact 2 Phone', 'emergency'),
    _spec(F.EMERGENCY_2_ADDRESS, 'Emergency Contact 2 Address', 'emergency'),

    _spec(F.SCHOOL_ATTENDED, 'Secondary School Attended', 'academic'),
    _spec(F.SCHOOL_ADDRESS, 'School Address', 'academic'),
    _spec(F.KCSE_RESULTS, 'KCSE Results', 'academic'),
    _spec(F.KCSE_RESULTS_2, 'KCSE Results (Additional)', 'academic'),
    _spec(F.INDEX_NUMBER, 'KCSE Index Number', 'academic'),
    _spec(F.KCSE_YEAR, 'KCSE Year', 'academic'),
    _spec(F.OTHER_INSTITUTIONS, 'Other Institutions Attended', 'academic'),

    _spec(F.SPORTS_INTERESTS, 'Sports Interests', 'interests'),
    _spec(F.CLUBS_INTERESTS, 'Clubs and Societies', 'interests'),
    _spec(F.PHYSICAL_IMPAIRMENT, 'Physical Impairment', 'additional'),
    _spec(F.ADDITIONAL_INFO, 'Additional Information', 'additional'),

    _spec(F.DATA_CONSENT, 'Data processing consent', 'consent', K.CHECKBOX),
    _spec(F.DATA_RIGHTS, 'Rights acknowledgment', 'consent', K.CHECKBOX),

    _spec(F.MEDIA_FULL_NAME, 'Full Name', 'media_release', form=FormName.MEDIA_RELEASE),
    _spec(F.MEDIA_ID_NUMBER, 'ID Number', 'media_release', form=FormName.MEDIA_RELEASE),
    _spec(F.MEDIA_DATE, 'Date', 'media_release', K.DATE, FormName.MEDIA_RELEASE),
    _spec(F.MEDIA_SIGNATURE_NAME, 'Signature Name', 'media_release', form=FormName.MEDIA_RELEASE),
])

# Order matters: the missing-field list is reported in this order
REQUIRED_FIELDS: Tuple[FieldId, ...] = (
    F.FULL_NAME, F.ADMISSION_NUMBER, F.PHONE_NUMBER, F.NATIONAL_ID,
    F.NATIONALITY, F.GENDER, F.DATE_OF_BIRTH, F.PLACE_OF_BIRTH,
    F.PERMANENT_RESIDENCE, F.LOCATION, F.COUNTY, F.EMERGENCY_1_NAME,
    F.EMERGENCY_1_RELATIONSHIP, F.EMERGENCY_1_PHONE,
)

PHONE_FIELDS: Tuple[FieldId, ...] = (
    F.PHONE_NUMBER, F.FATHER_PHONE, F.MOTHER_PHONE,
    F.EMERGENCY_1_PHONE, F.EMERGENCY_2_PHONE,
)

SIBLING_FIELDS: Tuple[FieldId, ...] = (
    F.SIBLING_1, F.SIBLING_2, F.SIBLING_3, F.SIBLING_4, F.SIBLING_5, F.SIBLING_6,
)

# (name, relationship, national id, phone, address) per contact, in priority order
EMERGENCY_CONTACT_FIELDS: Tuple[Tuple[FieldId, ...], ...] = (
    (F.EMERGENCY_1_NAME, F.EMERGENCY_1_RELATIONSHIP, F.EMERGENCY_1_ID,
     F.EMERGENCY_1_PHONE, F.EMERGENCY_1_ADDRESS),
    (F.EMERGENCY_2_NAME, F.EMERGENCY_2_RELATIONSHIP, F.EMERGENCY_2_ID,
     F.EMERGENCY_2_PHONE, F.EMERGENCY_2_ADDRESS),
)

CONSENT_FIELDS: Tuple[FieldId, ...] = (F.DATA_CONSENT, F.DATA_RIGHTS)

MEDIA_RELEASE_FIELDS: Tuple[FieldId, ...] = (
    F.MEDIA_FULL_NAME, F.MEDIA_ID_NUMBER, F.MEDIA_DATE, F.MEDIA_SIGNATURE_NAME,
)

LOCATION_FIELDS: Tuple[FieldId, ...] = (F.COUNTY, F.SUB_COUNTY, F.CONSTITUENCY, F.WARD)


def fields_for_form(form: FormName) -> List[FieldId]:
    """Return the fields of one form in declaration order."""
    return [spec.field_id for spec in FIELD_SPECS.values() if spec.form == form]


def fields_by_section(form: FormName = FormName.STUDENT) -> Dict[str, List[FieldSpec]]:
    """Group a form's field specs by section, preserving declaration order."""
    sections: Dict[str, List[FieldSpec]] = {}
    for spec in FIELD_SPECS.values():
        if spec.form != form:
            continue
        sections.setdefault(spec.section, []).append(spec)
    return sections


def get_field_label(field_id: FieldId) -> str:
    """Human-readable label used in validation messages."""
    return FIELD_SPECS[field_id].label


def parse_field_id(raw: str) -> Optional[FieldId]:
    """Map a wire identifier to a FieldId, or None for unknown identifiers."""
    try:
        return FieldId(raw)
    except ValueError:
        return None


def coerce_checkbox(value: Any) -> bool:
    """Interpret a posted checkbox value."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes', 'on')
    if isinstance(value, int):
        return value == 1
    return False


class FieldValues:
    """
    Read-only view over the current value of every form field.

    Built from a posted payload or a draft snapshot. Unknown keys are
    ignored; missing keys read as empty (or unchecked for checkboxes).
    """

    def __init__(self, raw: Optional[Mapping[str, Any]] = None):
        self._values: Dict[FieldId, Union[str, bool]] = {}
        for key, value in (raw or {}).items():
            field_id = key if isinstance(key, FieldId) else parse_field_id(str(key))
            if field_id is None:
                continue
            if FIELD_SPECS[field_id].kind == FieldKind.CHECKBOX:
                self._values[field_id] = coerce_checkbox(value)
            else:
                self._values[field_id] = '' if value is None else str(value)

    def text(self, field_id: FieldId) -> str:
        """Raw string value, '' when absent."""
        value = self._values.get(field_id, '')
        if isinstance(value, bool):
            return ''
        return value

    def optional(self, field_id: FieldId) -> Optional[str]:
        """Trimmed value, or None when blank."""
        value = self.text(field_id).strip()
        return value or None

    def checked(self, field_id: FieldId) -> bool:
        return self._values.get(field_id) is True

    def is_filled(self, field_id: FieldId) -> bool:
        """A checkbox is filled iff checked; anything else iff its trimmed value is non-empty."""
        if FIELD_SPECS[field_id].kind == FieldKind.CHECKBOX:
            return self.checked(field_id)
        return bool(self.text(field_id).strip())

    def with_values(self, updates: Mapping[str, Any]) -> 'FieldValues':
        """Return a copy with some fields replaced."""
        merged: Dict[str, Any] = {k.value: v for k, v in self._values.items()}
        for key, value in updates.items():
            merged[key.value if isinstance(key, FieldId) else key] = value
        return FieldValues(merged)

    def to_snapshot(self, field_ids: Optional[Iterable[FieldId]] = None) -> Dict[str, Union[str, bool]]:
        """Flat field-id -> value mapping covering every registry field."""
        snapshot: Dict[str, Union[str, bool]] = {}
        for field_id in (field_ids if field_ids is not None else FIELD_SPECS):
            if FIELD_SPECS[field_id].kind == FieldKind.CHECKBOX:
                snapshot[field_id.value] = self.checked(field_id)
            else:
                snapshot[field_id.value] = self.text(field_id)
        return snapshot

    def __eq__(self, other):
        if not isinstance(other, FieldValues):
            return NotImplemented
        return self.to_snapshot() == other.to_snapshot()

    def __repr__(self):
        filled = sum(1 for f in FIELD_SPECS if self.is_filled(f))
        return f'<FieldValues {filled}/{len(FIELD_SPECS)} filled>'
