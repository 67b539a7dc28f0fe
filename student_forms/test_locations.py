"""
Unit tests for the location hierarchy and the cascading dropdowns.
"""

import os

import pytest
import requests

from student_forms.errors import LoadFailure
from student_forms.locations import (
    FALLBACK_COUNTIES, CascadeController, DropdownState, LocationHierarchy,
    LocationSelection, SelectedLocation, completeness, normalize_display_name,
    parse_location_payload
)


PAYLOAD = {
    'counties': [
        {'county_id': '027', 'county_name': 'UASIN GISHU'},
        {'county_id': '047', 'county_name': 'NAIROBI CITY'},
        {'county_id': '005', 'county_name': 'LAMU'},
    ],
    'subcounties': [
        {'subcounty_id': '145', 'county_id': '027', 'constituency_name': 'KAPSERET'},
        {'subcounty_id': '141', 'county_id': '027', 'constituency_name': 'SOY'},
        {'subcounty_id': '274', 'county_id': '047', 'constituency_name': 'WESTLANDS'},
        {'subcounty_id': '999', 'county_id': '099', 'constituency_name': 'ORPHAN'},
    ],
    'station': [
        {'station_id': '0726', 'subcounty_id': '145', 'ward': 'LANGAS'},
        {'station_id': '0723', 'subcounty_id': '145', 'ward': 'KIPKENYO'},
        {'station_id': '0701', 'subcounty_id': '141', 'ward': "MOI'S BRIDGE"},
        {'station_id': '9999', 'subcounty_id': '0', 'ward': 'DIASPORA'},
        {'station_id': '9998', 'subcounty_id': '145', 'ward': ''},
    ],
}


def make_hierarchy(payload=PAYLOAD):
    return LocationHierarchy('test://locations', fetcher=lambda source, timeout: payload)


class TestNormalizeDisplayName:
    def test_title_cases_upper_case_names(self):
        assert normalize_display_name('UASIN GISHU') == 'Uasin Gishu'

    def test_spaces_slash_separators(self):
        assert normalize_display_name('ELGEYO/MARAKWET') == 'Elgeyo / Marakwet'

    def test_spaces_hyphen_separators(self):
        assert normalize_display_name('THARAKA-NITHI') == 'Tharaka - Nithi'

    def test_joins_apostrophes(self):
        assert normalize_display_name("MURANG ' A") == "Murang'a"
        assert normalize_display_name('MURANG’A') == "Murang'a"

    def test_empty(self):
        assert normalize_display_name('') == ''
        assert normalize_display_name(None) == ''

    @pytest.mark.parametrize('raw', ['ELGEYO/MARAKWET', 'THARAKA-NITHI', "MOI'S BRIDGE", 'Nairobi  City'])
    def test_stable_under_repetition(self, raw):
        once = normalize_display_name(raw)
        assert normalize_display_name(once) == once


class TestDatasetParsing:
    def test_drops_orphans_and_invalid_wards(self):
        dataset = parse_location_payload(PAYLOAD, 'test')
        assert dataset.get_sub_county('999') is None
        assert dataset.get_ward('9999') is None
        assert len(dataset.wards) == 3
        assert dataset.is_fallback is False

    def test_children_sorted_by_display_name(self):
        dataset = parse_location_payload(PAYLOAD, 'test')
        names = [s.display_name for s in dataset.sub_counties_of('027')]
        assert names == ['Kapseret', 'Soy']
        wards = [w.display_name for w in dataset.wards_of('145')]
        assert wards == ['Kipkenyo', 'Langas']

    def test_table_descriptor_list(self):
        raw = [
            {'type': 'header', 'version': '5.0'},
            {'type': 'table', 'name': 'counties', 'data': PAYLOAD['counties']},
            {'type': 'table', 'name': 'subcounties', 'data': PAYLOAD['subcounties']},
            {'type': 'table', 'name': 'station', 'data': PAYLOAD['station']},
        ]
        dataset = parse_location_payload(raw, 'test')
        assert len(dataset.counties) == 3
        assert len(dataset.sub_counties) == 3

    def test_tables_key(self):
        raw = {'tables': [{'name': 'counties', 'data': PAYLOAD['counties']}]}
        dataset = parse_location_payload(raw, 'test')
        assert len(dataset.counties) == 3
        assert dataset.sub_counties == ()

    def test_county_name_mapping(self):
        raw = {
            'Uasin Gishu': {'Kapseret': ['Langas', 'Megun'], 'Soy': []},
            'Lamu': [],
        }
        dataset = parse_location_payload(raw, 'test')
        county = next(c for c in dataset.counties if c.display_name == 'Uasin Gishu')
        sub_counties = dataset.sub_counties_of(county.id)
        assert [s.display_name for s in sub_counties] == ['Kapseret', 'Soy']
        assert len(dataset.wards_of(sub_counties[0].id)) == 2

    def test_no_counties_is_a_load_failure(self):
        with pytest.raises(LoadFailure):
            parse_location_payload({'counties': [], 'subcounties': []}, 'test')

    def test_unrecognized_structure(self):
        with pytest.raises(LoadFailure):
            parse_location_payload('not json', 'test')


class TestLocationHierarchy:
    def test_load_is_memoized(self):
        calls = []

        def fetcher(source, timeout):
            calls.append(source)
            return PAYLOAD

        hierarchy = LocationHierarchy('test://locations', fetcher=fetcher)
        first = hierarchy.load()
        second = hierarchy.load()
        assert first is second
        assert len(calls) == 1

    def test_network_failure_degrades_to_fallback(self):
        def fetcher(source, timeout):
            raise requests.ConnectionError('unreachable')

        hierarchy = LocationHierarchy('https://example.invalid/locations.json', fetcher=fetcher)
        dataset = hierarchy.load()
        assert dataset.is_fallback is True
        assert len(dataset.counties) == len(FALLBACK_COUNTIES) == 47
        assert isinstance(hierarchy.load_error, LoadFailure)

    def test_malformed_payload_degrades_to_fallback(self):
        hierarchy = make_hierarchy({'unexpected': 42})
        assert hierarchy.is_fallback is True

    def test_missing_file_degrades_to_fallback(self, tmp_path):
        hierarchy = LocationHierarchy('missing.json', base_path=str(tmp_path))
        assert hierarchy.is_fallback is True

    def test_fallback_has_no_children(self):
        hierarchy = LocationHierarchy('')
        county = hierarchy.counties()[0]
        assert hierarchy.children_of_county(county.id) == []

    def test_county_without_children_is_empty(self):
        hierarchy = make_hierarchy()
        assert hierarchy.children_of_county('005') == []

    def test_bundled_dataset_loads(self):
        base_path = os.path.dirname(__file__)
        hierarchy = LocationHierarchy('static/kenyan_locations.json', base_path=base_path)
        dataset = hierarchy.load()
        assert dataset.is_fallback is False
        assert len(dataset.counties) == 47
        names = [c.display_name for c in hierarchy.counties()]
        assert names == sorted(names, key=str.casefold)
        assert 'Elgeyo / Marakwet' in names


class TestLocationSelection:
    def test_completeness(self):
        selection = LocationSelection()
        assert completeness(selection) == 0
        selection.county = SelectedLocation('027', 'UASIN GISHU', 'Uasin Gishu')
        assert completeness(selection) == 25

    def test_reset_below(self):
        selection = LocationSelection(
            county=SelectedLocation('027', 'UASIN GISHU', 'Uasin Gishu'),
            sub_county=SelectedLocation('145', 'KAPSERET', 'Kapseret', '027'),
        )
        selection.reset_below('county')
        assert selection.sub_county is None
        assert selection.is_consistent()

    def test_to_dict_parent_keys(self):
        selection = LocationSelection(
            county=SelectedLocation('027', 'UASIN GISHU', 'Uasin Gishu'),
            sub_county=SelectedLocation('145', 'KAPSERET', 'Kapseret', '027'),
        )
        data = selection.to_dict()
        assert data['county']['isFallback'] is False
        assert data['subCounty']['countyId'] == '027'
        assert data['ward'] is None


class TestCascadeController:
    def test_selecting_county_populates_sub_counties(self):
        cascade = CascadeController(make_hierarchy())
        cascade.choose('county', '027')
        view = cascade.views['sub_county']
        assert view.state == DropdownState.READY
        assert [o.display_name for o in view.options] == ['Kapseret', 'Soy']
        assert cascade.views['ward'].state == DropdownState.DISABLED

    def test_county_without_children_shows_no_children(self):
        cascade = CascadeController(make_hierarchy())
        cascade.choose('county', '005')
        view = cascade.views['sub_county']
        assert view.state == DropdownState.NO_CHILDREN
        assert view.options == []
        assert view.disabled

    def test_changing_county_resets_descendants(self):
        cascade = CascadeController(make_hierarchy())
        cascade.choose('county', '027')
        cascade.choose('sub_county', '145')
        cascade.choose('ward', '0726')
        cascade.choose('county', '047')

        selection = cascade.selection
        assert selection.county.id == '047'
        assert selection.sub_county is None
        assert selection.constituency is None
        assert selection.ward is None

    def test_sub_county_selects_constituency(self):
        cascade = CascadeController(make_hierarchy())
        cascade.choose('county', '027')
        cascade.choose('sub_county', '145')
        assert cascade.selection.constituency.id == '145'
        assert cascade.selection.constituency.display_name == 'Kapseret'
        assert [o.display_name for o in cascade.views['ward'].options] == ['Kipkenyo', 'Langas']

    def test_stale_repopulation_is_discarded(self):
        cascade = CascadeController(make_hierarchy())
        first = cascade.select_county('027')
        second = cascade.select_county('047')

        assert cascade.apply(first, cascade.resolve(first)) is False
        assert cascade.apply(second, cascade.resolve(second)) is True
        assert [o.display_name for o in cascade.views['sub_county'].options] == ['Westlands']

    def test_ward_from_another_constituency_is_rejected(self):
        cascade = CascadeController(make_hierarchy())
        cascade.choose('county', '027')
        cascade.choose('sub_county', '141')
        assert cascade.select_ward('0726') is False
        assert cascade.selection.ward is None

    def test_fallback_mode_marks_sub_counties_unavailable(self):
        hierarchy = LocationHierarchy('')
        cascade = CascadeController(hierarchy)
        county = hierarchy.counties()[0]
        cascade.choose('county', county.id)
        assert cascade.selection.county.is_fallback is True
        assert cascade.views['sub_county'].state == DropdownState.UNAVAILABLE

    def test_restore_drops_inconsistent_ids(self):
        cascade = CascadeController(make_hierarchy())
        cascade.restore('047', '145', '0726')
        assert cascade.selection.county.id == '047'
        assert cascade.selection.sub_county is None
        assert cascade.selection.ward is None

    def test_unknown_level(self):
        cascade = CascadeController(make_hierarchy())
        with pytest.raises(ValueError):
            cascade.choose('village', '1')
