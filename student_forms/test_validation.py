"""
Unit tests for validation module.
"""

from datetime import date

import pytest

from student_forms.config import FormConfig
from student_forms.fields import REQUIRED_FIELDS, FieldId, FieldValues
from student_forms.locations import LocationSelection, SelectedLocation
from student_forms.utils import calculate_age
from student_forms.validation import (
    FieldState, FieldStateTracker, ValidationResult,
    validate_age, validate_consent, validate_field, validate_form,
    validate_kcse_year, validate_media_release, validate_national_id,
    validate_phone, validate_required
)


TODAY = date(2024, 9, 2)


def complete_values(**overrides):
    values = {
        'fullName': 'Jane Chebet',
        'admissionNumber': 'SCI/123/24',
        'phoneNumber': '0712345678',
        'nationalId': '12345678',
        'nationality': 'Kenyan',
        'gender': 'Female',
        'dateOfBirth': '2004-05-10',
        'placeOfBirth': 'Eldoret',
        'permanentResidence': 'Langas',
        'location': 'Kapseret',
        'county': '027',
        'emergency1Name': 'Mary Chebet',
        'emergency1Relationship': 'Mother',
        'emergency1Phone': '+254722000111',
        'dataConsent': True,
        'dataRights': True,
    }
    values.update(overrides)
    return FieldValues(values)


def county_selection():
    return LocationSelection(county=SelectedLocation('027', 'UASIN GISHU', 'Uasin Gishu'))


class TestValidationResult:
    def test_initially_valid(self):
        result = ValidationResult()
        assert result.is_valid is True
        assert len(result.errors) == 0

    def test_add_error(self):
        result = ValidationResult()
        result.add_error('field', 'message', 'code')
        assert result.is_valid is False
        assert result.errors[0].field == 'field'
        assert result.errors[0].code == 'code'

    def test_to_dict(self):
        result = ValidationResult()
        result.add_error('phoneNumber', 'message', 'format', 'personal')
        result.add_error('fullName', 'message', 'required', 'personal')
        d = result.to_dict()
        assert d['ok'] is False
        assert len(d['errors']) == 2
        assert d['firstInvalidField'] == 'fullName'

    def test_errors_by_section(self):
        result = ValidationResult()
        result.add_error('fullName', 'm', 'required', 'personal')
        result.add_error('county', 'm', 'required', 'location')
        by_section = result.get_errors_by_section()
        assert set(by_section) == {'personal', 'location'}


class TestAge:
    def test_age_day_before_birthday(self):
        assert calculate_age('2006-03-15', date(2024, 3, 14)) == 17

    def test_age_on_birthday(self):
        assert calculate_age('2006-03-15', date(2024, 3, 15)) == 18

    def test_bounds_inclusive(self):
        assert validate_age('2008-09-02', TODAY) is True  # exactly 16
        assert validate_age('2008-09-03', TODAY) is False
        assert validate_age('1954-09-02', TODAY) is True  # exactly 70
        assert validate_age('1953-09-01', TODAY) is False

    def test_unparseable(self):
        assert validate_age('not a date', TODAY) is False

    def test_configurable_bounds(self):
        assert validate_age('2009-09-02', TODAY, min_age=15, max_age=100) is True


class TestPhoneValidation:
    @pytest.mark.parametrize('number', ['0712345678', '+254712345678', '712345678', '0712 345 678'])
    def test_valid(self, number):
        assert validate_phone(number) is True

    @pytest.mark.parametrize('number', ['0812345678', '071234567', '+2540712345678', 'phone', ''])
    def test_invalid(self, number):
        assert validate_phone(number) is False


class TestNationalIdValidation:
    @pytest.mark.parametrize('value', ['1234567', '12345678'])
    def test_valid(self, value):
        assert validate_national_id(value) is True

    @pytest.mark.parametrize('value', ['123456', '123456789', '1234567A', ''])
    def test_invalid(self, value):
        assert validate_national_id(value) is False


class TestKcseYear:
    def test_blank_is_allowed(self):
        assert validate_kcse_year('', TODAY) is True

    def test_range(self):
        assert validate_kcse_year('1990', TODAY) is True
        assert validate_kcse_year('2025', TODAY) is True
        assert validate_kcse_year('1989', TODAY) is False
        assert validate_kcse_year('2026', TODAY) is False
        assert validate_kcse_year('twenty', TODAY) is False


class TestRequiredFields:
    def test_empty_form_reports_every_required_field(self):
        result = validate_required(FieldValues(), LocationSelection())
        assert result.valid is False
        assert len(result.missing) == 14
        assert result.missing == REQUIRED_FIELDS
        assert result.missing.count(FieldId.COUNTY) == 1

    def test_county_field_without_selection(self):
        result = validate_required(complete_values(), LocationSelection())
        assert result.missing == (FieldId.COUNTY,)

    def test_complete(self):
        result = validate_required(complete_values(), county_selection())
        assert result.valid is True

    def test_whitespace_is_missing(self):
        result = validate_required(complete_values(fullName='   '), county_selection())
        assert result.missing_labels == ['Full Name']


class TestConsent:
    def test_both_checked(self):
        assert validate_consent(complete_values()).valid is True

    def test_missing_rights_acknowledgment(self):
        result = validate_consent(complete_values(dataRights=False))
        assert result.valid is False
        assert result.missing == ('Rights acknowledgment',)


class TestValidateForm:
    def test_valid_form(self):
        result = validate_form(complete_values(), county_selection(), TODAY)
        assert result.is_valid is True
        assert result.missing == []

    def test_empty_form(self):
        result = validate_form(FieldValues(), LocationSelection(), TODAY)
        assert result.is_valid is False
        assert len(result.missing) == 14
        assert result.missing.count('County') == 1
        assert result.first_invalid_field == 'fullName'

    def test_invalid_phones_reported_once(self):
        values = complete_values(phoneNumber='0812345678', fatherPhone='12345')
        result = validate_form(values, county_selection(), TODAY)
        assert result.missing == ['Valid Phone Numbers']
        assert {e.field for e in result.errors} == {'phoneNumber', 'fatherPhone'}

    def test_age_out_of_range(self):
        result = validate_form(complete_values(dateOfBirth='2015-01-01'), county_selection(), TODAY)
        assert result.missing == ['Valid Date of Birth']
        assert result.errors[0].code == 'age_range'

    def test_invalid_national_id(self):
        result = validate_form(complete_values(nationalId='123456'), county_selection(), TODAY)
        assert result.missing == ['Valid National ID']

    def test_consent_not_checked_here(self):
        values = complete_values(dataConsent=False, dataRights=False)
        assert validate_form(values, county_selection(), TODAY).is_valid is True

    def test_stricter_config(self):
        config = FormConfig(min_age=21)
        result = validate_form(complete_values(), county_selection(), TODAY, config)
        assert result.is_valid is False

    def test_media_release_required_when_included(self):
        result = validate_form(complete_values(), county_selection(), TODAY, include_media_release=True)
        assert result.is_valid is False
        assert 'Media Release Signature Name' in result.missing


class TestMediaRelease:
    def test_complete(self):
        values = FieldValues({
            'mediaFullName': 'Jane Chebet',
            'mediaIdNumber': '12345678',
            'mediaDate': '2024-09-02',
            'mediaSignatureName': 'Jane Chebet',
        })
        assert validate_media_release(values).is_valid is True

    def test_bad_date(self):
        values = FieldValues({
            'mediaFullName': 'Jane Chebet',
            'mediaIdNumber': '12345678',
            'mediaDate': '02/09/2024',
            'mediaSignatureName': 'Jane Chebet',
        })
        result = validate_media_release(values)
        assert result.errors[0].field == 'mediaDate'


class TestFieldStates:
    def test_untouched_by_default(self):
        tracker = FieldStateTracker()
        assert tracker.state(FieldId.PHONE_NUMBER) == FieldState.UNTOUCHED

    def test_evaluate_transitions(self):
        tracker = FieldStateTracker()
        state = tracker.evaluate(FieldId.PHONE_NUMBER, FieldValues({'phoneNumber': '0812345678'}), TODAY)
        assert state == FieldState.INVALID
        assert tracker.message(FieldId.PHONE_NUMBER) is not None

        state = tracker.evaluate(FieldId.PHONE_NUMBER, FieldValues({'phoneNumber': '0712345678'}), TODAY)
        assert state == FieldState.VALID
        assert tracker.message(FieldId.PHONE_NUMBER) is None

    def test_optional_blank_field_is_valid(self):
        assert validate_field(FieldId.RELIGION, FieldValues(), TODAY) is None

    def test_evaluate_all_returns_invalid_in_order(self):
        tracker = FieldStateTracker()
        invalid = tracker.evaluate_all(FieldValues(), [FieldId.FULL_NAME, FieldId.RELIGION, FieldId.GENDER], TODAY)
        assert invalid == [FieldId.FULL_NAME, FieldId.GENDER]
        assert tracker.invalid_fields() == [FieldId.FULL_NAME, FieldId.GENDER]

    def test_reset(self):
        tracker = FieldStateTracker()
        tracker.touch(FieldId.FULL_NAME)
        tracker.reset()
        assert tracker.to_dict() == {}
