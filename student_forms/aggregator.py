"""
Field Aggregator Module

Transforms the current field values and the resolved location selection into
the nested submission record sent to the document store.
All derived fields (age, age group, completeness scores, codes) are computed
in one place only.
"""

from dataclasses import dataclass, fields, is_dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from student_forms.config import FormConfig
from student_forms.fields import (
    EMERGENCY_CONTACT_FIELDS,
    SIBLING_FIELDS,
    FieldId,
    FieldValues,
    FormName,
    fields_for_form,
)
from student_forms.locations import LocationSelection, completeness
from student_forms.utils import age_group, calculate_age, format_phone_number


F = FieldId


def _camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part.capitalize() for part in rest)


def to_document(value: Any) -> Any:
    """Serialize record dataclasses into plain dicts with camelCase keys."""
    if is_dataclass(value) and not isinstance(value, type):
        return {_camel(f.name): to_document(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, (list, tuple)):
        return [to_document(item) for item in value]
    if isinstance(value, dict):
        return {key: to_document(item) for key, item in value.items()}
    return value


@dataclass(frozen=True)
class Metadata:
    submission_date: str
    submission_year: int
    submission_month: int
    submission_day: int
    form_version: str
    processing_status: str = 'completed'
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    data_integrity: bool = True
    location_data_source: str = 'complete'


@dataclass(frozen=True)
class PersonalInfo:
    full_name: str
    admission_number: str
    phone_number: str
    national_id: str
    passport_no: Optional[str]
    birth_cert_no: Optional[str]
    religion: Optional[str]
    nationality: str
    gender: str
    ethnic_background: Optional[str]
    date_of_birth: str
    place_of_birth: str
    age: Optional[int]


@dataclass(frozen=True)
class LocationInfo:
    administrative: Dict[str, Any]
    permanent_residence: str
    location: str
    chief_name: Optional[str]
    division: Optional[str]
    county: Optional[str]
    sub_county: Optional[str]
    constituency: Optional[str]
    ward: Optional[str]
    nearest_town: Optional[str]
    nearest_police: Optional[str]
    home_address: Optional[str]


@dataclass(frozen=True)
class MaritalInfo:
    status: Optional[str]
    spouse_details: Optional[str]
    spouse_occupation: Optional[str]
    number_of_children: int = 0


@dataclass(frozen=True)
class ParentInfo:
    full_name: Optional[str]
    status: Optional[str]
    phone_number: Optional[str]
    national_id: Optional[str]
    occupation: Optional[str]
    date_of_birth: Optional[str]


@dataclass(frozen=True)
class FamilyInfo:
    father: ParentInfo
    mother: ParentInfo
    siblings: Tuple[str, ...] = ()
    sibling_count: int = 0


@dataclass(frozen=True)
class EmergencyContact:
    priority: int
    name: str
    relationship: Optional[str]
    national_id: Optional[str]
    phone_number: Optional[str]
    address: Optional[str]


@dataclass(frozen=True)
class SecondarySchool:
    name: Optional[str]
    address: Optional[str]


@dataclass(frozen=True)
class KcseResults:
    results: Optional[str]
    additional_results: Optional[str]
    index_number: Optional[str]
    year: Optional[int]


@dataclass(frozen=True)
class AcademicInfo:
    secondary_school: SecondarySchool
    kcse: KcseResults
    other_qualifications: Optional[str]


@dataclass(frozen=True)
class Interests:
    sports: Optional[str]
    clubs: Optional[str]
    hobbies: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AdditionalInfo:
    physical_impairment: Optional[str]
    special_needs: bool
    additional_comments: Optional[str]


@dataclass(frozen=True)
class Consent:
    data_processing: bool
    rights_acknowledgment: bool
    consent_date: str


@dataclass(frozen=True)
class Analytics:
    age_group: Optional[str]
    academic_year: str
    semester: str
    location_completeness: int
    gender_code: Optional[str]
    form_completeness: int
    data_quality: str
    emergency_contact_count: int = 0


@dataclass(frozen=True)
class SubmissionRecord:
    """Student form submission, built fresh for every attempt."""
    metadata: Metadata
    personal_info: PersonalInfo
    location_info: LocationInfo
    marital_info: MaritalInfo
    family_info: FamilyInfo
    emergency_contacts: Tuple[EmergencyContact, ...]
    academic_info: AcademicInfo
    interests: Interests
    additional_info: AdditionalInfo
    consent: Consent
    analytics: Analytics

    def to_dict(self) -> Dict[str, Any]:
        return to_document(self)

    def stats_keys(self) -> Dict[str, str]:
        """Breakdown keys for the daily statistics document."""
        return {
            'county': self.location_info.county or 'Unknown',
            'gender': self.personal_info.gender or 'Unknown',
            'ageGroup': self.analytics.age_group or 'Unknown',
        }


@dataclass(frozen=True)
class MediaReleaseRecord:
    full_name: str
    id_number: str
    date: str
    signature_name: str
    form_type: str = 'media_release'
    submission_date: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return to_document(self)


def _iso(now: datetime) -> str:
    return now.isoformat().replace('+00:00', 'Z')


def _to_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def _phone(values: FieldValues, field_id: FieldId) -> Optional[str]:
    raw = values.optional(field_id)
    return format_phone_number(raw) if raw else None


def form_progress(values: FieldValues, form: FormName = FormName.STUDENT) -> Dict[str, int]:
    """
    Filled and total field counts of a form, plus the percentage filled.

    A checkbox counts as filled iff checked, anything else iff its trimmed
    value is non-empty.
    """
    form_fields = fields_for_form(form)
    filled = sum(1 for field_id in form_fields if values.is_filled(field_id))
    total = len(form_fields)
    return {
        'filled': filled,
        'total': total,
        'formCompleteness': round(filled / total * 100) if total else 0,
    }


def form_completeness(values: FieldValues, form: FormName = FormName.STUDENT) -> int:
    return form_progress(values, form)['formCompleteness']


def collect_siblings(values: FieldValues) -> List[str]:
    return [values.optional(f) for f in SIBLING_FIELDS if values.optional(f)]


def collect_emergency_contacts(values: FieldValues) -> List[EmergencyContact]:
    """Emergency contacts in priority order; a contact without a name is skipped."""
    contacts = []
    for priority, (name, relationship, national_id, phone, address) in enumerate(
            EMERGENCY_CONTACT_FIELDS, start=1):
        contact_name = values.optional(name)
        if not contact_name:
            continue
        contacts.append(EmergencyContact(
            priority=priority,
            name=contact_name,
            relationship=values.optional(relationship),
            national_id=values.optional(national_id),
            phone_number=_phone(values, phone),
            address=values.optional(address),
        ))
    return contacts


def _parent(values: FieldValues, name: FieldId, status: FieldId, phone: FieldId,
            id_no: FieldId, occupation: FieldId, dob: FieldId) -> ParentInfo:
    return ParentInfo(
        full_name=values.optional(name),
        status=values.optional(status),
        phone_number=_phone(values, phone),
        national_id=values.optional(id_no),
        occupation=values.optional(occupation),
        date_of_birth=values.optional(dob),
    )


def collect(values: FieldValues, selection: Optional[LocationSelection] = None,
            config: Optional[FormConfig] = None, is_fallback: bool = False,
            now: Optional[datetime] = None, user_agent: Optional[str] = None) -> SubmissionRecord:
    """
    Build the submission record from the current field values.

    Args:
        values: Current field values
        selection: Resolved location selection
        config: Form version, academic year and semester
        is_fallback: Whether the location dataset is the fallback list
        now: Submission time (defaults to the current UTC time)
        user_agent: Client user agent string

    Returns:
        SubmissionRecord
    """
    config = config or FormConfig()
    selection = selection.copy() if selection is not None else LocationSelection()
    now = now or datetime.now(timezone.utc)
    timestamp = _iso(now)

    dob = values.text(F.DATE_OF_BIRTH).strip()
    age = calculate_age(dob, now.date()) if dob else None
    gender = values.text(F.GENDER).strip()

    clubs = values.optional(F.CLUBS_INTERESTS)
    impairment = values.optional(F.PHYSICAL_IMPAIRMENT)
    siblings = collect_siblings(values)
    contacts = collect_emergency_contacts(values)

    def display(level):
        return level.display_name if level else None

    return SubmissionRecord(
        metadata=Metadata(
            submission_date=timestamp,
            submission_year=now.year,
            submission_month=now.month,
            submission_day=now.day,
            form_version=config.form_version,
            user_agent=user_agent,
            location_data_source='fallback' if is_fallback else 'complete',
        ),
        personal_info=PersonalInfo(
            full_name=values.text(F.FULL_NAME).strip().upper(),
            admission_number=values.text(F.ADMISSION_NUMBER).strip(),
            phone_number=format_phone_number(values.text(F.PHONE_NUMBER).strip()),
            national_id=values.text(F.NATIONAL_ID).strip(),
            passport_no=values.optional(F.PASSPORT_NO),
            birth_cert_no=values.optional(F.BIRTH_CERT_NO),
            religion=values.optional(F.RELIGION),
            nationality=values.text(F.NATIONALITY).strip(),
            gender=gender,
            ethnic_background=values.optional(F.ETHNIC_BACKGROUND),
            date_of_birth=dob,
            place_of_birth=values.text(F.PLACE_OF_BIRTH).strip(),
            age=age,
        ),
        location_info=LocationInfo(
            administrative=selection.to_dict(),
            permanent_residence=values.text(F.PERMANENT_RESIDENCE).strip(),
            location=values.text(F.LOCATION).strip(),
            chief_name=values.optional(F.CHIEF_NAME),
            division=values.optional(F.DIVISION),
            county=display(selection.county),
            sub_county=display(selection.sub_county),
            constituency=display(selection.constituency),
            ward=display(selection.ward),
            nearest_town=values.optional(F.NEAREST_TOWN),
            nearest_police=values.optional(F.NEAREST_POLICE),
            home_address=values.optional(F.HOME_ADDRESS),
        ),
        marital_info=MaritalInfo(
            status=values.optional(F.MARITAL_STATUS),
            spouse_details=values.optional(F.SPOUSE_DETAILS),
            spouse_occupation=values.optional(F.SPOUSE_OCCUPATION),
            number_of_children=_to_int(values.optional(F.NUMBER_OF_CHILDREN)) or 0,
        ),
        family_info=FamilyInfo(
            father=_parent(values, F.FATHER_NAME, F.FATHER_STATUS, F.FATHER_PHONE,
                           F.FATHER_ID_NO, F.FATHER_OCCUPATION, F.FATHER_DOB),
            mother=_parent(values, F.MOTHER_NAME, F.MOTHER_STATUS, F.MOTHER_PHONE,
                           F.MOTHER_ID_NO, F.MOTHER_OCCUPATION, F.MOTHER_DOB),
            siblings=tuple(siblings),
            sibling_count=len(siblings),
        ),
        emergency_contacts=tuple(contacts),
        academic_info=AcademicInfo(
            secondary_school=SecondarySchool(
                name=values.optional(F.SCHOOL_ATTENDED),
                address=values.optional(F.SCHOOL_ADDRESS),
            ),
            kcse=KcseResults(
                results=values.optional(F.KCSE_RESULTS),
                additional_results=values.optional(F.KCSE_RESULTS_2),
                index_number=values.optional(F.INDEX_NUMBER),
                year=_to_int(values.optional(F.KCSE_YEAR)),
            ),
            other_qualifications=values.optional(F.OTHER_INSTITUTIONS),
        ),
        interests=Interests(
            sports=values.optional(F.SPORTS_INTERESTS),
            clubs=clubs,
            hobbies=tuple(part.strip() for part in clubs.split(',') if part.strip()) if clubs else (),
        ),
        additional_info=AdditionalInfo(
            physical_impairment=impairment,
            special_needs=bool(impairment) and impairment.lower() != 'none',
            additional_comments=values.optional(F.ADDITIONAL_INFO),
        ),
        consent=Consent(
            data_processing=values.checked(F.DATA_CONSENT),
            rights_acknowledgment=values.checked(F.DATA_RIGHTS),
            consent_date=timestamp,
        ),
        analytics=Analytics(
            age_group=age_group(age),
            academic_year=config.academic_year,
            semester=config.semester,
            location_completeness=completeness(selection),
            gender_code=gender[0].upper() if gender else None,
            form_completeness=form_completeness(values),
            data_quality='basic' if is_fallback else 'complete',
            emergency_contact_count=len(contacts),
        ),
    )


def collect_media_release(values: FieldValues, now: Optional[datetime] = None) -> MediaReleaseRecord:
    now = now or datetime.now(timezone.utc)
    return MediaReleaseRecord(
        full_name=values.text(F.MEDIA_FULL_NAME).strip(),
        id_number=values.text(F.MEDIA_ID_NUMBER).strip(),
        date=values.text(F.MEDIA_DATE).strip(),
        signature_name=values.text(F.MEDIA_SIGNATURE_NAME).strip(),
        submission_date=_iso(now),
    )


def media_release_defaults(values: FieldValues, today: Optional[date] = None) -> Dict[str, str]:
    """
    Prefill values for the media release form.

    Name and ID number are copied from the student form, the signature name
    mirrors the student's name and the date is today. Fields the student has
    already filled in are left alone.
    """
    today = today or date.today()
    prefill = {
        F.MEDIA_FULL_NAME: values.text(F.FULL_NAME).strip(),
        F.MEDIA_ID_NUMBER: values.text(F.NATIONAL_ID).strip(),
        F.MEDIA_SIGNATURE_NAME: values.text(F.FULL_NAME).strip(),
        F.MEDIA_DATE: today.isoformat(),
    }
    return {
        field_id.value: (values.text(field_id) if values.is_filled(field_id) else default)
        for field_id, default in prefill.items()
    }
