"""
Unit tests for the field aggregator.
"""

from datetime import date, datetime, timezone

import pytest

from student_forms.aggregator import (
    collect, collect_emergency_contacts, collect_media_release, form_completeness,
    form_progress, media_release_defaults
)
from student_forms.config import FormConfig
from student_forms.fields import FieldValues, FormName, fields_for_form
from student_forms.locations import LocationSelection, SelectedLocation
from student_forms.utils import age_group


NOW = datetime(2024, 9, 2, 8, 30, tzinfo=timezone.utc)


def sample_values(**overrides):
    values = {
        'fullName': 'Jane Chebet',
        'admissionNumber': 'SCI/123/24',
        'phoneNumber': '0712 345 678',
        'nationalId': '12345678',
        'nationality': 'Kenyan',
        'gender': 'female',
        'dateOfBirth': '2004-05-10',
        'placeOfBirth': 'Eldoret',
        'permanentResidence': 'Langas',
        'location': 'Kapseret',
        'county': '027',
        'fatherName': 'John Kiprop',
        'fatherPhone': '0722000111',
        'sibling1': 'Brian',
        'sibling3': 'Faith',
        'emergency1Name': 'Mary Chebet',
        'emergency1Relationship': 'Mother',
        'emergency1Phone': '0722000222',
        'emergency2Relationship': 'Uncle',
        'clubsInterests': 'Drama, Chess ,Debate',
        'physicalImpairment': 'None',
        'kcseYear': '2022',
        'dataConsent': True,
        'dataRights': True,
    }
    values.update(overrides)
    return FieldValues(values)


def full_selection():
    return LocationSelection(
        county=SelectedLocation('027', 'UASIN GISHU', 'Uasin Gishu'),
        sub_county=SelectedLocation('145', 'KAPSERET', 'Kapseret', '027'),
        constituency=SelectedLocation('145', 'KAPSERET', 'Kapseret', '145'),
        ward=SelectedLocation('0726', 'LANGAS', 'Langas', '145'),
    )


class TestCollect:
    def test_personal_info(self):
        record = collect(sample_values(), full_selection(), FormConfig(), now=NOW)
        personal = record.personal_info
        assert personal.full_name == 'JANE CHEBET'
        assert personal.phone_number == '+254712345678'
        assert personal.age == 20
        assert personal.passport_no is None

    def test_metadata(self):
        record = collect(sample_values(), full_selection(), FormConfig(), now=NOW, user_agent='pytest')
        metadata = record.to_dict()['metadata']
        assert metadata['submissionDate'] == '2024-09-02T08:30:00Z'
        assert metadata['submissionYear'] == 2024
        assert metadata['formVersion'] == '2.5'
        assert metadata['userAgent'] == 'pytest'
        assert metadata['ipAddress'] is None
        assert metadata['locationDataSource'] == 'complete'

    def test_location_display_names(self):
        document = collect(sample_values(), full_selection(), now=NOW).to_dict()
        location = document['locationInfo']
        assert location['county'] == 'Uasin Gishu'
        assert location['ward'] == 'Langas'
        assert location['administrative']['ward']['constituencyId'] == '145'

    def test_family_and_contacts(self):
        document = collect(sample_values(), full_selection(), now=NOW).to_dict()
        assert document['familyInfo']['siblings'] == ['Brian', 'Faith']
        assert document['familyInfo']['siblingCount'] == 2
        assert document['familyInfo']['father']['phoneNumber'] == '+254722000111'
        assert len(document['emergencyContacts']) == 1
        assert document['emergencyContacts'][0]['priority'] == 1

    def test_interests_and_additional_info(self):
        document = collect(sample_values(), full_selection(), now=NOW).to_dict()
        assert document['interests']['hobbies'] == ['Drama', 'Chess', 'Debate']
        assert document['additionalInfo']['specialNeeds'] is False
        assert document['academicInfo']['kcse']['year'] == 2022

    def test_blank_hobbies_are_dropped(self):
        record = collect(sample_values(clubsInterests='Drama,, ,Chess,'), now=NOW)
        assert record.interests.hobbies == ('Drama', 'Chess')

    def test_special_needs(self):
        record = collect(sample_values(physicalImpairment='Partial hearing loss'), now=NOW)
        assert record.additional_info.special_needs is True

    def test_analytics(self):
        analytics = collect(sample_values(), full_selection(), FormConfig(), now=NOW).analytics
        assert analytics.age_group == '20-22'
        assert analytics.gender_code == 'F'
        assert analytics.location_completeness == 100
        assert analytics.data_quality == 'complete'
        assert analytics.academic_year == '2024/2025'

    def test_fallback_data_quality(self):
        record = collect(sample_values(), LocationSelection(), is_fallback=True, now=NOW)
        assert record.analytics.data_quality == 'basic'
        assert record.metadata.location_data_source == 'fallback'
        assert record.analytics.location_completeness == 0

    def test_number_of_children_defaults_to_zero(self):
        record = collect(sample_values(numberOfChildren='several'), now=NOW)
        assert record.marital_info.number_of_children == 0

    def test_stats_keys(self):
        assert collect(sample_values(), full_selection(), now=NOW).stats_keys() == {
            'county': 'Uasin Gishu', 'gender': 'female', 'ageGroup': '20-22'
        }
        assert collect(FieldValues(), now=NOW).stats_keys() == {
            'county': 'Unknown', 'gender': 'Unknown', 'ageGroup': 'Unknown'
        }

    def test_record_does_not_track_later_edits(self):
        selection = full_selection()
        record = collect(sample_values(), selection, now=NOW)
        selection.reset_below('county')
        assert record.location_info.ward == 'Langas'


class TestCompleteness:
    def test_empty_form(self):
        assert form_completeness(FieldValues()) == 0

    @pytest.mark.parametrize('field, value, filled', [
        ('dataConsent', True, 1),
        ('dataConsent', 'on', 1),
        ('dataConsent', False, 0),
        ('fullName', 'Jane', 1),
        ('fullName', '   ', 0),
        ('fullName', '', 0),
    ])
    def test_filled_counts(self, field, value, filled):
        progress = form_progress(FieldValues({field: value}))
        assert progress['filled'] == filled
        assert progress['total'] == len(fields_for_form(FormName.STUDENT))

    def test_percentage_rounds(self):
        total = len(fields_for_form(FormName.STUDENT))
        values = FieldValues({'fullName': 'Jane', 'dataConsent': True, 'dataRights': False})
        assert form_completeness(values) == round(2 / total * 100)

    def test_media_release_progress(self):
        values = FieldValues({'mediaFullName': 'Jane', 'mediaIdNumber': ' '})
        assert form_progress(values, FormName.MEDIA_RELEASE) == {
            'filled': 1, 'total': 4, 'formCompleteness': 25
        }

    def test_media_release_form(self):
        values = FieldValues({'mediaFullName': 'Jane', 'mediaIdNumber': '12345678'})
        assert form_completeness(values, FormName.MEDIA_RELEASE) == 50


class TestEmergencyContacts:
    def test_contact_without_name_is_skipped(self):
        contacts = collect_emergency_contacts(FieldValues({
            'emergency2Name': 'Peter', 'emergency2Phone': '0711000000'
        }))
        assert len(contacts) == 1
        assert contacts[0].priority == 2
        assert contacts[0].phone_number == '+254711000000'


class TestMediaRelease:
    def test_collect(self):
        values = FieldValues({
            'mediaFullName': ' Jane Chebet ',
            'mediaIdNumber': '12345678',
            'mediaDate': '2024-09-02',
            'mediaSignatureName': 'Jane Chebet',
        })
        document = collect_media_release(values, NOW).to_dict()
        assert document['fullName'] == 'Jane Chebet'
        assert document['formType'] == 'media_release'
        assert document['submissionDate'] == '2024-09-02T08:30:00Z'

    def test_defaults_copy_student_fields(self):
        defaults = media_release_defaults(sample_values(), date(2024, 9, 2))
        assert defaults == {
            'mediaFullName': 'Jane Chebet',
            'mediaIdNumber': '12345678',
            'mediaSignatureName': 'Jane Chebet',
            'mediaDate': '2024-09-02',
        }

    def test_defaults_keep_existing_values(self):
        values = sample_values(mediaSignatureName='J. Chebet')
        defaults = media_release_defaults(values, date(2024, 9, 2))
        assert defaults['mediaSignatureName'] == 'J. Chebet'


class TestAgeGroup:
    @pytest.mark.parametrize('age, group', [
        (17, '17-19'),
        (19, '17-19'),
        (20, '20-22'),
        (22, '20-22'),
        (23, '23-25'),
        (25, '23-25'),
        (26, '26+'),
        (70, '26+'),
        (0, '17-19'),
        (None, None),
        (-1, None),
    ])
    def test_boundaries(self, age, group):
        assert age_group(age) == group

    def test_record_without_date_of_birth(self):
        record = collect(sample_values(dateOfBirth=''), now=NOW)
        assert record.personal_info.age is None
        assert record.analytics.age_group is None

    def test_future_date_of_birth(self):
        analytics = collect(sample_values(dateOfBirth='2030-01-01'), now=NOW).analytics
        assert analytics.age_group is None
