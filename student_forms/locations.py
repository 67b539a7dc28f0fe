"""
Kenyan Administrative Location Hierarchy

Loads the county -> sub-county -> ward dataset and resolves the cascading
location dropdowns (county, sub-county, constituency, ward).

Design Decisions:
=================

1. Single-shot loading:
   - load() is memoized behind a lock; concurrent callers share one fetch
   - A remote URL is fetched with an explicit timeout, anything else is read
     from disk relative to the application root
   - Any failure degrades to the fixed list of 47 counties (is_fallback=True)
     with no sub-county or ward data; load() never raises

2. Dataset shapes:
   - (a) object keyed by county name
   - (b) {counties, subcounties, station}
   - (c) {tables: [{name, data}]}
   - (d) top-level array of {name, type, data} table descriptors

3. Cascade consistency:
   - Selecting a parent resets every descendant before repopulating the
     immediate child
   - Every repopulation carries a generation token; results for anything but
     the newest token are discarded
"""

import json
import logging
import os
import re
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import requests

from student_forms.errors import LoadFailure


logger = logging.getLogger(__name__)


FALLBACK_COUNTIES = [
    'Baringo', 'Bomet', 'Bungoma', 'Busia', 'Elgeyo-Marakwet', 'Embu', 'Garissa',
    'Homa Bay', 'Isiolo', 'Kajiado', 'Kakamega', 'Kericho', 'Kiambu', 'Kilifi',
    'Kirinyaga', 'Kisii', 'Kisumu', 'Kitui', 'Kwale', 'Laikipia', 'Lamu', 'Machakos',
    'Makueni', 'Mandera', 'Marsabit', 'Meru', 'Migori', 'Mombasa', "Murang'a",
    'Nairobi', 'Nakuru', 'Nandi', 'Narok', 'Nyamira', 'Nyandarua', 'Nyeri',
    'Samburu', 'Siaya', 'Taita-Taveta', 'Tana River', 'Tharaka-Nithi', 'Trans Nzoia',
    'Turkana', 'Uasin Gishu', 'Vihiga', 'Wajir', 'West Pokot',
]

LEVELS = ('county', 'sub_county', 'constituency', 'ward')

SEPARATOR_SLASH_PATTERN = re.compile(r'\s*[/\\]\s*')
SEPARATOR_HYPHEN_PATTERN = re.compile(r'\s*-\s*')
APOSTROPHE_PATTERN = re.compile(r"\s*'\s*")


def normalize_display_name(raw: Optional[str]) -> str:
    """
    Normalize a raw location name for display.

    Source data is often all upper-case or inconsistently separated, so
    'ELGEYO/MARAKWET' becomes 'Elgeyo / Marakwet' and "MURANG ' A" becomes
    "Murang'a". The result is stable under repeated application.

    Args:
        raw: Name as found in the dataset

    Returns:
        Title-cased name with normalized separators
    """
    if not raw:
        return ''

    text = str(raw).replace('’', "'").replace('‘', "'")
    text = SEPARATOR_SLASH_PATTERN.sub(' / ', text)
    text = SEPARATOR_HYPHEN_PATTERN.sub(' - ', text)
    text = APOSTROPHE_PATTERN.sub("'", text)

    words = []
    for token in text.split():
        lowered = token.lower()
        words.append(lowered[:1].upper() + lowered[1:])
    return ' '.join(words)


def _sort_key(item) -> str:
    return item.display_name.casefold()


@dataclass(frozen=True)
class County:
    id: str
    raw_name: str
    display_name: str


@dataclass(frozen=True)
class SubCounty:
    id: str
    county_id: str
    raw_name: str
    display_name: str
    constituency_name: str = ''


@dataclass(frozen=True)
class Ward:
    id: str
    sub_county_id: str
    raw_name: str
    display_name: str
    constituency_name: str = ''


@dataclass(frozen=True)
class LocationDataset:
    """
    Immutable location table.

    Every sub-county references an existing county, every ward an existing
    sub-county, and siblings never share a display name.
    """
    counties: Tuple[County, ...] = ()
    sub_counties: Tuple[SubCounty, ...] = ()
    wards: Tuple[Ward, ...] = ()
    is_fallback: bool = False
    source: str = ''

    _county_index: Dict[str, County] = field(default=None, init=False, repr=False, compare=False)
    _sub_county_index: Dict[str, SubCounty] = field(default=None, init=False, repr=False, compare=False)
    _ward_index: Dict[str, Ward] = field(default=None, init=False, repr=False, compare=False)
    _sub_counties_by_county: Dict[str, List[SubCounty]] = field(default=None, init=False, repr=False, compare=False)
    _wards_by_sub_county: Dict[str, List[Ward]] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        by_county: Dict[str, List[SubCounty]] = {}
        for sub_county in self.sub_counties:
            by_county.setdefault(sub_county.county_id, []).append(sub_county)
        by_sub_county: Dict[str, List[Ward]] = {}
        for ward in self.wards:
            by_sub_county.setdefault(ward.sub_county_id, []).append(ward)

        object.__setattr__(self, '_county_index', {c.id: c for c in self.counties})
        object.__setattr__(self, '_sub_county_index', {s.id: s for s in self.sub_counties})
        object.__setattr__(self, '_ward_index', {w.id: w for w in self.wards})
        object.__setattr__(self, '_sub_counties_by_county',
                           {k: sorted(v, key=_sort_key) for k, v in by_county.items()})
        object.__setattr__(self, '_wards_by_sub_county',
                           {k: sorted(v, key=_sort_key) for k, v in by_sub_county.items()})

    def get_county(self, county_id: Optional[str]) -> Optional[County]:
        return self._county_index.get(str(county_id)) if county_id else None

    def get_sub_county(self, sub_county_id: Optional[str]) -> Optional[SubCounty]:
        return self._sub_county_index.get(str(sub_county_id)) if sub_county_id else None

    def get_ward(self, ward_id: Optional[str]) -> Optional[Ward]:
        return self._ward_index.get(str(ward_id)) if ward_id else None

    def sorted_counties(self) -> List[County]:
        return sorted(self.counties, key=_sort_key)

    def sub_counties_of(self, county_id: str) -> List[SubCounty]:
        return list(self._sub_counties_by_county.get(str(county_id), []))

    def wards_of(self, sub_county_id: str) -> List[Ward]:
        return list(self._wards_by_sub_county.get(str(sub_county_id), []))


def fallback_dataset() -> LocationDataset:
    """The reduced-capability dataset used when the real one cannot be loaded."""
    counties = tuple(
        County(id=str(index + 1).zfill(3), raw_name=name, display_name=name)
        for index, name in enumerate(FALLBACK_COUNTIES)
    )
    return LocationDataset(counties=counties, is_fallback=True, source='fallback')


# ========================================
# DATASET PARSING
# ========================================

def _text(value: Any) -> str:
    if value is None:
        return ''
    return str(value).strip()


def build_dataset(county_rows: Iterable[Dict[str, Any]],
                  sub_county_rows: Iterable[Dict[str, Any]],
                  ward_rows: Iterable[Dict[str, Any]],
                  source: str = '') -> LocationDataset:
    """
    Build a dataset from table rows, enforcing referential integrity and
    unique sibling display names.

    Args:
        county_rows: rows with county_id, county_name
        sub_county_rows: rows with subcounty_id, county_id, constituency_name or subcounty_name
        ward_rows: rows with station_id, subcounty_id, ward, constituency_name
        source: where the rows came from, for logging

    Returns:
        LocationDataset

    Raises:
        LoadFailure: if the rows are not a list of objects or yield no counties
    """
    counties: List[County] = []
    county_ids = set()
    seen_county_names = set()
    for row in _rows(county_rows, 'counties'):
        county_id = _text(row.get('county_id'))
        raw_name = _text(row.get('county_name'))
        display = normalize_display_name(raw_name)
        if not county_id or not display or county_id in county_ids:
            continue
        if display.casefold() in seen_county_names:
            logger.warning('Dropping duplicate county %r (%s)', display, county_id)
            continue
        seen_county_names.add(display.casefold())
        county_ids.add(county_id)
        counties.append(County(id=county_id, raw_name=raw_name, display_name=display))

    if not counties:
        raise LoadFailure(f'No counties found in location data ({source})')

    sub_counties: List[SubCounty] = []
    sub_county_ids = set()
    seen_sub_county_names = set()
    for row in _rows(sub_county_rows, 'subcounties'):
        sub_county_id = _text(row.get('subcounty_id'))
        county_id = _text(row.get('county_id'))
        raw_name = _text(row.get('constituency_name') or row.get('subcounty_name'))
        display = normalize_display_name(raw_name)
        if not sub_county_id or not display or sub_county_id in sub_county_ids:
            continue
        if county_id not in county_ids:
            logger.warning('Dropping sub-county %s: unknown county %r', sub_county_id, county_id)
            continue
        name_key = (county_id, display.casefold())
        if name_key in seen_sub_county_names:
            logger.warning('Dropping duplicate sub-county %r in county %s', display, county_id)
            continue
        seen_sub_county_names.add(name_key)
        sub_county_ids.add(sub_county_id)
        sub_counties.append(SubCounty(
            id=sub_county_id, county_id=county_id, raw_name=raw_name,
            display_name=display, constituency_name=_text(row.get('constituency_name')) or raw_name
        ))

    wards: List[Ward] = []
    ward_ids = set()
    seen_ward_names = set()
    for row in _rows(ward_rows, 'station'):
        sub_county_id = _text(row.get('subcounty_id'))
        raw_name = _text(row.get('ward'))
        if not sub_county_id or sub_county_id == '0' or not raw_name:
            continue
        if sub_county_id not in sub_county_ids:
            logger.warning('Dropping ward %r: unknown sub-county %r', raw_name, sub_county_id)
            continue
        ward_id = _text(row.get('station_id')) or f'{sub_county_id}-{len(wards) + 1}'
        display = normalize_display_name(raw_name)
        name_key = (sub_county_id, display.casefold())
        if ward_id in ward_ids or name_key in seen_ward_names:
            continue
        seen_ward_names.add(name_key)
        ward_ids.add(ward_id)
        wards.append(Ward(
            id=ward_id, sub_county_id=sub_county_id, raw_name=raw_name,
            display_name=display, constituency_name=_text(row.get('constituency_name'))
        ))

    logger.info('Processed %d counties, %d sub-counties, %d wards from %s',
                len(counties), len(sub_counties), len(wards), source or 'location data')

    return LocationDataset(
        counties=tuple(counties),
        sub_counties=tuple(sub_counties),
        wards=tuple(wards),
        is_fallback=False,
        source=source,
    )


def _rows(rows: Any, table_name: str) -> List[Dict[str, Any]]:
    if rows is None:
        return []
    if not isinstance(rows, list):
        raise LoadFailure(f'Table {table_name!r} is not a list')
    return [row for row in rows if isinstance(row, dict)]


def _tables_from_descriptors(descriptors: List[Any]) -> Dict[str, Any]:
    tables = {}
    for descriptor in descriptors:
        if not isinstance(descriptor, dict):
            continue
        if descriptor.get('type', 'table') != 'table':
            continue
        name = descriptor.get('name')
        if name and 'data' in descriptor:
            tables[name] = descriptor['data']
    return tables


def _rows_from_county_mapping(data: Dict[str, Any]):
    """Turn shape (a), {county name: {sub-county name: [ward, ...]}}, into table rows."""
    county_rows, sub_county_rows, ward_rows = [], [], []

    for county_index, (county_name, children) in enumerate(data.items(), start=1):
        county_id = str(county_index).zfill(3)
        county_rows.append({'county_id': county_id, 'county_name': county_name})

        if isinstance(children, list):
            children = {name: [] for name in children}
        elif children is None:
            children = {}
        elif not isinstance(children, dict):
            raise LoadFailure(f'Unrecognized entry for county {county_name!r}')

        for sub_index, (sub_county_name, ward_names) in enumerate(children.items(), start=1):
            sub_county_id = f'{county_id}-{sub_index:02d}'
            sub_county_rows.append({
                'subcounty_id': sub_county_id,
                'county_id': county_id,
                'constituency_name': sub_county_name,
            })
            for ward_index, ward_name in enumerate(ward_names or [], start=1):
                ward_rows.append({
                    'station_id': f'{sub_county_id}-{ward_index:02d}',
                    'subcounty_id': sub_county_id,
                    'ward': ward_name,
                    'constituency_name': sub_county_name,
                })

    return county_rows, sub_county_rows, ward_rows


def parse_location_payload(raw: Any, source: str = '') -> LocationDataset:
    """
    Parse any of the accepted location JSON shapes.

    Raises:
        LoadFailure: if the structure is not recognized or holds no counties
    """
    if isinstance(raw, list):
        tables = _tables_from_descriptors(raw)
        if 'counties' not in tables:
            raise LoadFailure('Table descriptor list has no counties table')
        return build_dataset(tables.get('counties'), tables.get('subcounties'),
                             tables.get('station'), source)

    if not isinstance(raw, dict) or not raw:
        raise LoadFailure('Location data must be a non-empty JSON object or array')

    if 'tables' in raw:
        if not isinstance(raw['tables'], list):
            raise LoadFailure('"tables" must be a list')
        tables = _tables_from_descriptors(raw['tables'])
        if 'counties' not in tables:
            raise LoadFailure('"tables" has no counties table')
        return build_dataset(tables.get('counties'), tables.get('subcounties'),
                             tables.get('station'), source)

    if 'counties' in raw and 'subcounties' in raw:
        return build_dataset(raw['counties'], raw['subcounties'], raw.get('station'), source)

    county_rows, sub_county_rows, ward_rows = _rows_from_county_mapping(raw)
    return build_dataset(county_rows, sub_county_rows, ward_rows, source)


# ========================================
# HIERARCHY
# ========================================

class LocationHierarchy:
    """Owns the location dataset for the lifetime of the application."""

    def __init__(self, source: str = '', timeout: float = 10.0, base_path: Optional[str] = None,
                 fetcher: Optional[Callable[[str, float], Any]] = None):
        self.source = source
        self.timeout = timeout
        self.base_path = base_path
        self._fetcher = fetcher
        self._lock = threading.Lock()
        self._dataset: Optional[LocationDataset] = None
        self.load_error: Optional[LoadFailure] = None

    @property
    def is_loaded(self) -> bool:
        return self._dataset is not None

    @property
    def dataset(self) -> LocationDataset:
        return self.load()

    @property
    def is_fallback(self) -> bool:
        return self.load().is_fallback

    def load(self) -> LocationDataset:
        """
        Load the dataset once.

        Returns:
            The parsed dataset, or the fallback dataset if loading failed
        """
        if self._dataset is not None:
            return self._dataset

        with self._lock:
            if self._dataset is not None:
                return self._dataset

            try:
                raw = self._fetch_raw()
                dataset = parse_location_payload(raw, self.source)
            except LoadFailure as e:
                dataset = self._degrade(e)
            except (requests.RequestException, OSError, ValueError) as e:
                dataset = self._degrade(LoadFailure(f'{type(e).__name__}: {e}'))

            self._dataset = dataset
            return dataset

    def _degrade(self, error: LoadFailure) -> LocationDataset:
        logger.error('Error loading location data from %r: %s', self.source, error)
        logger.info('Using fallback county list')
        self.load_error = error
        return fallback_dataset()

    def _fetch_raw(self) -> Any:
        if not self.source:
            raise LoadFailure('No location data source configured')

        if self._fetcher is not None:
            return self._fetcher(self.source, self.timeout)

        if self.source.startswith(('http://', 'https://')):
            response = requests.get(
                self.source,
                headers={'Accept': 'application/json'},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()

        path = self.source
        if self.base_path and not os.path.isabs(path):
            path = os.path.join(self.base_path, path)
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)

    def counties(self) -> List[County]:
        return self.load().sorted_counties()

    def children_of_county(self, county_id: str) -> List[SubCounty]:
        """Sub-counties of a county sorted by display name; empty in fallback mode."""
        dataset = self.load()
        if dataset.is_fallback:
            return []
        return dataset.sub_counties_of(county_id)

    def children_of_sub_county(self, sub_county_id: str) -> List[Ward]:
        """Wards of a sub-county sorted by display name; empty in fallback mode."""
        dataset = self.load()
        if dataset.is_fallback:
            return []
        return dataset.wards_of(sub_county_id)


# ========================================
# SELECTION AND CASCADE
# ========================================

@dataclass(frozen=True)
class SelectedLocation:
    """One populated level of a location selection."""
    id: str
    name: str
    display_name: str
    parent_id: Optional[str] = None
    is_fallback: bool = False

    def to_dict(self, parent_key: str = 'parentId') -> Dict[str, Any]:
        data = {'id': self.id, 'name': self.name, 'displayName': self.display_name}
        if self.parent_id is not None:
            data[parent_key] = self.parent_id
        else:
            data['isFallback'] = self.is_fallback
        return data


@dataclass
class LocationSelection:
    """County/sub-county/constituency/ward choice; a child is only set when its parent is."""
    county: Optional[SelectedLocation] = None
    sub_county: Optional[SelectedLocation] = None
    constituency: Optional[SelectedLocation] = None
    ward: Optional[SelectedLocation] = None

    def levels(self) -> List[Optional[SelectedLocation]]:
        return [self.county, self.sub_county, self.constituency, self.ward]

    def populated_levels(self) -> int:
        return sum(1 for level in self.levels() if level is not None)

    def is_consistent(self) -> bool:
        levels = self.levels()
        for parent, child in zip(levels, levels[1:]):
            if child is not None and parent is None:
                return False
        return True

    def reset_below(self, level: str):
        """Clear every level after the given one."""
        for name in LEVELS[LEVELS.index(level) + 1:]:
            setattr(self, name, None)

    def copy(self) -> 'LocationSelection':
        return LocationSelection(self.county, self.sub_county, self.constituency, self.ward)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'county': self.county.to_dict() if self.county else None,
            'subCounty': self.sub_county.to_dict('countyId') if self.sub_county else None,
            'constituency': self.constituency.to_dict('subcountyId') if self.constituency else None,
            'ward': self.ward.to_dict('constituencyId') if self.ward else None,
        }


def completeness(selection: LocationSelection) -> int:
    """Percentage of hierarchy levels populated. Analytics only, never used for gating."""
    return round(selection.populated_levels() / len(LEVELS) * 100)


class DropdownState(Enum):
    DISABLED = 'disabled'
    READY = 'ready'
    NO_CHILDREN = 'no_children'
    UNAVAILABLE = 'unavailable'


RESET_PLACEHOLDERS = {
    'sub_county': 'Select county first',
    'constituency': 'Select sub-county first',
    'ward': 'Select constituency first',
}
READY_PLACEHOLDERS = {
    'county': 'Select County',
    'sub_county': 'Select Sub County',
    'constituency': 'Select Constituency',
    'ward': 'Select Ward (Optional)',
}
NO_CHILDREN_PLACEHOLDERS = {
    'sub_county': 'No subcounties found for this county',
    'ward': 'No wards found for this constituency',
}
UNAVAILABLE_PLACEHOLDER = 'County selected - subcounty data unavailable'


@dataclass(frozen=True)
class LocationOption:
    id: str
    display_name: str
    name: str

    def to_dict(self) -> Dict[str, str]:
        return {'id': self.id, 'displayName': self.display_name, 'name': self.name}


@dataclass
class DropdownView:
    """What a dependent dropdown shows."""
    level: str
    state: DropdownState
    placeholder: str
    options: List[LocationOption] = field(default_factory=list)
    selected: Optional[str] = None

    @property
    def disabled(self) -> bool:
        return self.state != DropdownState.READY

    def to_dict(self) -> Dict[str, Any]:
        return {
            'level': self.level,
            'state': self.state.value,
            'disabled': self.disabled,
            'placeholder': self.placeholder,
            'options': [option.to_dict() for option in self.options],
            'selected': self.selected,
        }


@dataclass(frozen=True)
class CascadeRequest:
    """A pending repopulation of one dropdown level."""
    token: int
    level: str
    parent_id: Optional[str]


def _reset_view(level: str) -> DropdownView:
    return DropdownView(level, DropdownState.DISABLED, RESET_PLACEHOLDERS[level])


class CascadeController:
    """
    Applies dropdown selections to a LocationSelection.

    Each select_* call resets descendants synchronously and returns a
    CascadeRequest; resolve() computes the child options and apply() renders
    them only if no newer selection has happened since.
    """

    def __init__(self, hierarchy: LocationHierarchy):
        self.hierarchy = hierarchy
        self.selection = LocationSelection()
        self.views: Dict[str, DropdownView] = {
            level: _reset_view(level) for level in LEVELS[1:]
        }
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def county_view(self) -> DropdownView:
        options = [LocationOption(c.id, c.display_name, c.raw_name) for c in self.hierarchy.counties()]
        return DropdownView(
            'county', DropdownState.READY, READY_PLACEHOLDERS['county'], options,
            self.selection.county.id if self.selection.county else None
        )

    def _reset_below(self, level: str):
        self.selection.reset_below(level)
        for name in LEVELS[LEVELS.index(level) + 1:]:
            self.views[name] = _reset_view(name)

    def _next_token(self) -> int:
        self._generation += 1
        return self._generation

    def select_county(self, county_id: Optional[str]) -> CascadeRequest:
        self._reset_below('county')
        token = self._next_token()

        county = self.hierarchy.dataset.get_county(county_id)
        if county is None:
            self.selection.county = None
            return CascadeRequest(token, 'sub_county', None)

        self.selection.county = SelectedLocation(
            id=county.id, name=county.raw_name, display_name=county.display_name,
            is_fallback=self.hierarchy.dataset.is_fallback
        )
        return CascadeRequest(token, 'sub_county', county.id)

    def select_sub_county(self, sub_county_id: Optional[str]) -> CascadeRequest:
        self._reset_below('sub_county')
        token = self._next_token()

        sub_county = self.hierarchy.dataset.get_sub_county(sub_county_id)
        county = self.selection.county
        if sub_county is None or county is None or sub_county.county_id != county.id:
            self.selection.sub_county = None
            return CascadeRequest(token, 'ward', None)

        self.selection.sub_county = SelectedLocation(
            id=sub_county.id, name=sub_county.raw_name,
            display_name=sub_county.display_name, parent_id=county.id
        )
        # The constituency is the sub-county itself, selected automatically
        constituency_name = normalize_display_name(sub_county.constituency_name) or sub_county.display_name
        self.selection.constituency = SelectedLocation(
            id=sub_county.id, name=sub_county.constituency_name or sub_county.raw_name,
            display_name=constituency_name, parent_id=sub_county.id
        )
        self.views['constituency'] = DropdownView(
            'constituency', DropdownState.READY, READY_PLACEHOLDERS['constituency'],
            [LocationOption(sub_county.id, constituency_name, sub_county.constituency_name)],
            sub_county.id
        )
        return CascadeRequest(token, 'ward', sub_county.id)

    def select_constituency(self, constituency_id: Optional[str]) -> CascadeRequest:
        self._reset_below('constituency')
        token = self._next_token()

        if not constituency_id or self.selection.constituency is None \
                or self.selection.constituency.id != str(constituency_id):
            return CascadeRequest(token, 'ward', None)
        return CascadeRequest(token, 'ward', self.selection.constituency.id)

    def select_ward(self, ward_id: Optional[str]) -> bool:
        """Select a ward of the current constituency. Returns False if it does not belong there."""
        ward = self.hierarchy.dataset.get_ward(ward_id)
        constituency = self.selection.constituency
        if ward is None or constituency is None or ward.sub_county_id != constituency.id:
            self.selection.ward = None
            self.views['ward'].selected = None
            return False

        self.selection.ward = SelectedLocation(
            id=ward.id, name=ward.raw_name, display_name=ward.display_name,
            parent_id=constituency.id
        )
        self.views['ward'].selected = ward.id
        return True

    def resolve(self, request: CascadeRequest) -> List[LocationOption]:
        """Child options for a pending request. Pure; does not touch the selection."""
        if request.parent_id is None:
            return []
        if request.level == 'sub_county':
            children = self.hierarchy.children_of_county(request.parent_id)
        else:
            children = self.hierarchy.children_of_sub_county(request.parent_id)
        return [LocationOption(c.id, c.display_name, c.raw_name) for c in children]

    def apply(self, request: CascadeRequest, options: List[LocationOption]) -> bool:
        """
        Render resolved options into the requested dropdown.

        Returns:
            False (and changes nothing) when the request has been superseded
        """
        if request.token != self._generation:
            logger.debug('Discarding stale %s options (token %d, current %d)',
                         request.level, request.token, self._generation)
            return False

        level = request.level
        if request.parent_id is None:
            self.views[level] = _reset_view(level)
        elif self.hierarchy.dataset.is_fallback:
            self.views[level] = DropdownView(level, DropdownState.UNAVAILABLE, UNAVAILABLE_PLACEHOLDER)
        elif not options:
            self.views[level] = DropdownView(level, DropdownState.NO_CHILDREN, NO_CHILDREN_PLACEHOLDERS[level])
        else:
            self.views[level] = DropdownView(level, DropdownState.READY, READY_PLACEHOLDERS[level], list(options))
        return True

    def choose(self, level: str, location_id: Optional[str]) -> LocationSelection:
        """Select a value and repopulate its dependent dropdown in one step."""
        if level == 'county':
            request = self.select_county(location_id)
        elif level == 'sub_county':
            request = self.select_sub_county(location_id)
        elif level == 'constituency':
            request = self.select_constituency(location_id)
        elif level == 'ward':
            self.select_ward(location_id)
            return self.selection
        else:
            raise ValueError(f'Unknown location level: {level}')

        self.apply(request, self.resolve(request))
        return self.selection

    def restore(self, county_id: Optional[str] = None, sub_county_id: Optional[str] = None,
                ward_id: Optional[str] = None) -> LocationSelection:
        """Replay a saved chain of ids; any id inconsistent with its parent is dropped."""
        self.choose('county', county_id)
        if self.selection.county and sub_county_id:
            self.choose('sub_county', sub_county_id)
            if self.selection.constituency and ward_id:
                self.choose('ward', ward_id)
        return self.selection

    def views_dict(self) -> Dict[str, Any]:
        return {
            'county': self.county_view().to_dict(),
            'subCounty': self.views['sub_county'].to_dict(),
            'constituency': self.views['constituency'].to_dict(),
            'ward': self.views['ward'].to_dict(),
        }
