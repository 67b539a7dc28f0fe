"""
Form configuration.

Defaults live in create_app's config mapping; FormConfig is the frozen view
handed to the core modules so they can run without a Flask application.
"""

import os
from dataclasses import dataclass
from typing import Any, Mapping


DEFAULT_SETTINGS = {
    'FORM_VERSION': '2.5',
    'ORG_CODE': 'UoE',
    'ORG_NAME': 'University of Eldoret',
    'ACADEMIC_YEAR': '2024/2025',
    'SEMESTER': '1',
    'LOCATION_DATA_URL': os.environ.get('LOCATION_DATA_URL', 'static/kenyan_locations.json'),
    'LOCATION_LOAD_TIMEOUT': float(os.environ.get('LOCATION_LOAD_TIMEOUT', 10)),
    'MIN_AGE': 16,
    'MAX_AGE': 70,
    'NATIONAL_ID_MIN_DIGITS': 7,
    'NATIONAL_ID_MAX_DIGITS': 8,
    'DRAFT_STORAGE_KEY': 'uoe_dual_form_data',
    'AUTOSAVE_DEBOUNCE_SECONDS': 1.0,
    'STUDENT_COLLECTION': 'student_submissions',
    'MEDIA_COLLECTION': 'media_submissions',
}


@dataclass(frozen=True)
class FormConfig:
    """Settings consumed by validation, aggregation and persistence."""
    form_version: str = DEFAULT_SETTINGS['FORM_VERSION']
    org_code: str = DEFAULT_SETTINGS['ORG_CODE']
    org_name: str = DEFAULT_SETTINGS['ORG_NAME']
    academic_year: str = DEFAULT_SETTINGS['ACADEMIC_YEAR']
    semester: str = DEFAULT_SETTINGS['SEMESTER']
    location_data_url: str = DEFAULT_SETTINGS['LOCATION_DATA_URL']
    location_load_timeout: float = DEFAULT_SETTINGS['LOCATION_LOAD_TIMEOUT']
    min_age: int = DEFAULT_SETTINGS['MIN_AGE']
    max_age: int = DEFAULT_SETTINGS['MAX_AGE']
    national_id_min_digits: int = DEFAULT_SETTINGS['NATIONAL_ID_MIN_DIGITS']
    national_id_max_digits: int = DEFAULT_SETTINGS['NATIONAL_ID_MAX_DIGITS']
    draft_storage_key: str = DEFAULT_SETTINGS['DRAFT_STORAGE_KEY']
    autosave_debounce_seconds: float = DEFAULT_SETTINGS['AUTOSAVE_DEBOUNCE_SECONDS']
    student_collection: str = DEFAULT_SETTINGS['STUDENT_COLLECTION']
    media_collection: str = DEFAULT_SETTINGS['MEDIA_COLLECTION']

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> 'FormConfig':
        """Build from a Flask config (or any mapping of upper-case keys)."""
        def get(key):
            return config.get(key, DEFAULT_SETTINGS[key])

        return cls(
            form_version=str(get('FORM_VERSION')),
            org_code=str(get('ORG_CODE')),
            org_name=str(get('ORG_NAME')),
            academic_year=str(get('ACADEMIC_YEAR')),
            semester=str(get('SEMESTER')),
            location_data_url=str(get('LOCATION_DATA_URL')),
            location_load_timeout=float(get('LOCATION_LOAD_TIMEOUT')),
            min_age=int(get('MIN_AGE')),
            max_age=int(get('MAX_AGE')),
            national_id_min_digits=int(get('NATIONAL_ID_MIN_DIGITS')),
            national_id_max_digits=int(get('NATIONAL_ID_MAX_DIGITS')),
            draft_storage_key=str(get('DRAFT_STORAGE_KEY')),
            autosave_debounce_seconds=float(get('AUTOSAVE_DEBOUNCE_SECONDS')),
            student_collection=str(get('STUDENT_COLLECTION')),
            media_collection=str(get('MEDIA_COLLECTION')),
        )
