#!/usr/bin/env python3
"""
Environment configuration (.env supported via python-dotenv).
"""

import logging
import os
from datetime import date

from dotenv import load_dotenv

from exceptions import ValidationError
from models import PolicyConstants, parse_float

load_dotenv()

DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///./solar_grind.db')
NREL_API_KEY = os.getenv('NREL_API_KEY') or None
NREL_TIMEOUT_SECONDS = float(os.getenv('NREL_TIMEOUT_SECONDS', '10'))
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
PORT = int(os.getenv('PORT', '5000'))

# env var -> PolicyConstants field
POLICY_ENV_VARS = {
    'SOLAR_ITC_RATE': 'federal_tax_credit_rate',
    'SOLAR_DEFAULT_RATE': 'default_electricity_rate',
    'SOLAR_DEFAULT_SUN_HOURS': 'default_sun_hours',
    'SOLAR_BASE_COST_PER_WATT': 'base_cost_per_watt',
    'SOLAR_CO2_TONS_PER_KWH': 'co2_tons_per_kwh',
    'SOLAR_ANALYSIS_YEARS': 'analysis_years',
}


def load_policy(environ=None) -> PolicyConstants:
    """
    Builds PolicyConstants from SOLAR_* variables, falling back to the
    built-in values for anything unset. Malformed values fail at start-up.
    """
    environ = os.environ if environ is None else environ
    overrides = {}
    for env_name, field_name in POLICY_ENV_VARS.items():
        value = parse_float(environ.get(env_name), env_name)
        if value is None:
            continue
        if field_name == 'analysis_years':
            if not value.is_integer():
                raise ValidationError(f"{env_name} must be a whole number")
            value = int(value)
        overrides[field_name] = value

    effective = environ.get('SOLAR_POLICY_EFFECTIVE_DATE')
    if effective:
        try:
            overrides['effective_date'] = date.fromisoformat(effective)
        except ValueError:
            raise ValidationError("SOLAR_POLICY_EFFECTIVE_DATE must be an ISO date (YYYY-MM-DD)")

    return PolicyConstants(**overrides)


def configure_logging(level: str = None) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL), logging.INFO),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )
