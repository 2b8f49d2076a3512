#!/usr/bin/env python3
"""
Location lookup: peak sun hours and electricity rate for a ZIP code, a state
or a pair of coordinates.

Order of precedence for each value:
    explicit override -> ZIP table -> state averages -> NREL API
    -> latitude estimate -> policy defaults
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Dict, Any

from exceptions import UpstreamError, ValidationError
from models import Location, PolicyConstants

logger = logging.getLogger(__name__)

ZIP_RE = re.compile(r'^\d{5}(-\d{4})?$')
STATE_RE = re.compile(r'^[A-Za-z][A-Za-z .]*$')


# ===== REFERENCE DATA =====

# ZIP -> (city, state, sun hours, $/kWh)
ZIP_CODE_DATA = {
    # California
    '90210': ('Beverly Hills', 'CA', 6.2, 0.28),
    '94102': ('San Francisco', 'CA', 5.8, 0.26),
    '90401': ('Santa Monica', 'CA', 6.1, 0.27),
    '92101': ('San Diego', 'CA', 6.8, 0.25),
    '95101': ('San Jose', 'CA', 5.9, 0.24),
    # Texas
    '75201': ('Dallas', 'TX', 5.3, 0.12),
    '77001': ('Houston', 'TX', 4.9, 0.11),
    '78701': ('Austin', 'TX', 5.6, 0.13),
    '78201': ('San Antonio', 'TX', 5.4, 0.12),
    # Florida
    '33101': ('Miami', 'FL', 5.8, 0.14),
    '33602': ('Tampa', 'FL', 5.7, 0.13),
    '32801': ('Orlando', 'FL', 5.6, 0.13),
    '32301': ('Tallahassee', 'FL', 5.4, 0.12),
    # New York
    '10001': ('New York', 'NY', 4.2, 0.19),
    '14201': ('Buffalo', 'NY', 3.8, 0.16),
    '12201': ('Albany', 'NY', 4.0, 0.17),
    # Southwest / Mountain
    '85001': ('Phoenix', 'AZ', 7.1, 0.13),
    '85701': ('Tucson', 'AZ', 6.9, 0.12),
    '80201': ('Denver', 'CO', 5.8, 0.14),
    '80301': ('Boulder', 'CO', 5.9, 0.15),
    '89101': ('Las Vegas', 'NV', 6.8, 0.12),
    '89501': ('Reno', 'NV', 6.2, 0.13),
    '84101': ('Salt Lake City', 'UT', 5.9, 0.11),
    '87101': ('Albuquerque', 'NM', 6.4, 0.13),
    # Pacific Northwest
    '98101': ('Seattle', 'WA', 3.4, 0.10),
    '99201': ('Spokane', 'WA', 4.2, 0.09),
    '97201': ('Portland', 'OR', 3.8, 0.11),
    # Midwest / East
    '60601': ('Chicago', 'IL', 4.1, 0.15),
    '02101': ('Boston', 'MA', 4.0, 0.22),
    '30301': ('Atlanta', 'GA', 4.8, 0.12),
    '27601': ('Raleigh', 'NC', 4.9, 0.11),
    '28201': ('Charlotte', 'NC', 5.0, 0.11),
    '23219': ('Richmond', 'VA', 4.6, 0.12),
}

# state -> sun hours, installed $/W, incentive rate
STATE_AVERAGES = {
    'california': {'sun_hours': 5.5, 'cost_per_watt': 3.2, 'incentives': 0.30},
    'texas': {'sun_hours': 5.0, 'cost_per_watt': 3.4, 'incentives': 0.26},
    'florida': {'sun_hours': 4.8, 'cost_per_watt': 3.3, 'incentives': 0.26},
    'arizona': {'sun_hours': 6.0, 'cost_per_watt': 3.1, 'incentives': 0.26},
    'nevada': {'sun_hours': 5.8, 'cost_per_watt': 3.2, 'incentives': 0.26},
    'other': {'sun_hours': 4.2, 'cost_per_watt': 3.5, 'incentives': 0.26},
}

US_STATES = {
    'AL': 'alabama', 'AK': 'alaska', 'AZ': 'arizona', 'AR': 'arkansas', 'CA': 'california',
    'CO': 'colorado', 'CT': 'connecticut', 'DE': 'delaware', 'FL': 'florida', 'GA': 'georgia',
    'HI': 'hawaii', 'ID': 'idaho', 'IL': 'illinois', 'IN': 'indiana', 'IA': 'iowa',
    'KS': 'kansas', 'KY': 'kentucky', 'LA': 'louisiana', 'ME': 'maine', 'MD': 'maryland',
    'MA': 'massachusetts', 'MI': 'michigan', 'MN': 'minnesota', 'MS': 'mississippi',
    'MO': 'missouri', 'MT': 'montana', 'NE': 'nebraska', 'NV': 'nevada', 'NH': 'new hampshire',
    'NJ': 'new jersey', 'NM': 'new mexico', 'NY': 'new york', 'NC': 'north carolina',
    'ND': 'north dakota', 'OH': 'ohio', 'OK': 'oklahoma', 'OR': 'oregon', 'PA': 'pennsylvania',
    'RI': 'rhode island', 'SC': 'south carolina', 'SD': 'south dakota', 'TN': 'tennessee',
    'TX': 'texas', 'UT': 'utah', 'VT': 'vermont', 'VA': 'virginia', 'WA': 'washington',
    'WV': 'west virginia', 'WI': 'wisconsin', 'WY': 'wyoming', 'DC': 'district of columbia',
}
US_STATE_NAMES = set(US_STATES.values())


@dataclass(frozen=True)
class LocationProfile:
    """
    What a location resolves to. Only sun hours and the electricity rate feed
    the engine; `cost_per_watt` and `incentive_rate` are the state's published
    averages, shown by /api/sun-hours for reference. Estimates are priced with
    PolicyConstants.
    """
    base_sun_hours: float
    electricity_rate: float
    source: str
    label: Optional[str] = None
    cost_per_watt: Optional[float] = None
    incentive_rate: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sunHours': round(self.base_sun_hours, 2),
            'electricityRate': self.electricity_rate,
            'source': self.source,
            'label': self.label,
            'costPerWatt': self.cost_per_watt,
            'incentiveRate': self.incentive_rate,
        }


# ===== ESTIMATES =====

def estimate_sun_hours(lat: float) -> float:
    """Rough latitude model: 6 hours at the equator, -1 hour per 20°, clamped to [2, 6]"""
    return max(2.0, min(6.0, 6.0 - abs(lat) / 20.0))


def validate_coordinates(lat: Optional[float], lng: Optional[float]) -> None:
    if lat is None and lng is None:
        return
    if lat is None or lng is None:
        raise ValidationError("Both lat and lng are required")
    if not -90 <= lat <= 90:
        raise ValidationError("lat must be between -90 and 90")
    if not -180 <= lng <= 180:
        raise ValidationError("lng must be between -180 and 180")


def lookup_zip(zip_code: str) -> Optional[Dict[str, Any]]:
    row = ZIP_CODE_DATA.get(zip_code[:5])
    if row is None:
        return None
    city, state, sun_hours, rate = row
    return {'city': city, 'state': state, 'sun_hours': sun_hours, 'electricity_rate': rate}


def state_averages(state: str) -> Optional[Dict[str, Any]]:
    """
    Averages for a state name or two-letter code. US states missing from the
    table get the 'other' row; anything that is not a US state returns None.
    """
    key = state.strip().lower()
    if len(key) == 2:
        key = US_STATES.get(key.upper(), '')
    if not key:
        return None
    if key in STATE_AVERAGES:
        return {'state': key, **STATE_AVERAGES[key]}
    if key in US_STATE_NAMES:
        return {'state': key, **STATE_AVERAGES['other']}
    return None


# ===== RESOLUTION =====

def resolve_location(location: Optional[Location], policy: Optional[PolicyConstants] = None,
                     nrel_client=None) -> LocationProfile:
    """
    Resolves sun hours and electricity rate for a location.

    A failing NREL lookup never fails the calculation: the resolver falls
    back to the latitude estimate.
    """
    policy = policy or PolicyConstants()
    location = location or Location()
    validate_coordinates(location.lat, location.lng)

    sun_hours = None
    rate = None
    source = 'default'
    label = None
    cost_per_watt = None
    incentive_rate = None

    region = (location.region_code or '').strip()
    if region:
        if ZIP_RE.match(region):
            zip_row = lookup_zip(region)
            if zip_row:
                sun_hours = zip_row['sun_hours']
                rate = zip_row['electricity_rate']
                source = 'zip_code'
                label = f"{zip_row['city']}, {zip_row['state']}"
                state = state_averages(zip_row['state'])
                if state:
                    cost_per_watt = state['cost_per_watt']
                    incentive_rate = state['incentives']
        elif STATE_RE.match(region):
            state = state_averages(region)
            if state:
                sun_hours = state['sun_hours']
                source = 'state_average'
                label = state['state'].title()
                cost_per_watt = state['cost_per_watt']
                incentive_rate = state['incentives']
        else:
            raise ValidationError(f"Unrecognized region code: {region}")

    if sun_hours is None and location.has_coordinates:
        sun_hours, source = _sun_hours_for_coordinates(location.lat, location.lng, nrel_client)
        label = label or f"{location.lat:.4f}, {location.lng:.4f}"

    if location.base_sun_hours is not None:
        sun_hours = location.base_sun_hours
        source = 'override'
    if location.electricity_rate is not None:
        rate = location.electricity_rate

    if sun_hours is None:
        sun_hours = policy.default_sun_hours
    if rate is None:
        rate = policy.default_electricity_rate

    if sun_hours <= 0:
        raise ValidationError("Sun hours must be greater than zero")
    if rate <= 0:
        raise ValidationError("Electricity rate must be greater than zero")

    profile = LocationProfile(base_sun_hours=sun_hours, electricity_rate=rate, source=source,
                              label=label, cost_per_watt=cost_per_watt, incentive_rate=incentive_rate)
    logger.debug("Resolved location %s -> %s", location, profile)
    return profile


def _sun_hours_for_coordinates(lat: float, lng: float, nrel_client):
    if nrel_client is None or not nrel_client.available():
        return estimate_sun_hours(lat), 'estimation'
    try:
        return nrel_client.sun_hours(lat, lng), 'nrel_api'
    except UpstreamError as e:
        logger.warning("NREL lookup failed, using latitude estimate: %s", e.message)
        return estimate_sun_hours(lat), 'estimation_fallback'


class LocationResolver:
    """Callable adapter used by calculate_solar_estimate"""

    def __init__(self, nrel_client=None):
        self.nrel_client = nrel_client

    def __call__(self, location: Location, policy: PolicyConstants) -> LocationProfile:
        return resolve_location(location, policy, self.nrel_client)
